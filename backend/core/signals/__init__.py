"""Signal fusion (news sentiment + technical indicators)."""

from core.signals.fuser import SignalFuser

__all__ = ["SignalFuser"]
