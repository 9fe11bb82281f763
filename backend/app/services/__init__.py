"""Business services."""

from app.services.data_ingestion import DataIngestionService, IngestionReport
from app.services.signal_service import (
    InMemorySignalRepository,
    SignalService,
    TradePlan,
)
from app.services.signal_job import SignalGenerationJob

__all__ = [
    "DataIngestionService",
    "IngestionReport",
    "SignalService",
    "InMemorySignalRepository",
    "TradePlan",
    "SignalGenerationJob",
]
