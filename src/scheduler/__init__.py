"""Challenge expiry tracking and periodic refresh."""

from .refresh import FIXED_WINDOW_SECONDS, TICK_INTERVAL_SECONDS, RefreshScheduler

__all__ = ["FIXED_WINDOW_SECONDS", "TICK_INTERVAL_SECONDS", "RefreshScheduler"]
