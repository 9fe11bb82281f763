"""Live-side services: market data ingestion and scheduled signal generation."""
