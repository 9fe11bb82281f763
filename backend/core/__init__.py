"""Core shared logic for signal generation, indicators, and models.

This package contains pure business logic with no I/O dependencies
(no database or network access). It is shared between the live signal
service (app/) and the backtesting system (backtest/).
"""
