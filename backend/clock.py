"""
Clock capability.

A clock is any zero-argument callable returning the current local instant.
Functions that need "now" take a ``clock`` argument so tests can pin time
without patching the datetime module.
"""
from datetime import datetime
from typing import Callable

Clock = Callable[[], datetime]


def system_clock() -> datetime:
    return datetime.now()


def fixed_clock(instant: datetime) -> Clock:
    """Return a clock frozen at ``instant``."""
    def clock() -> datetime:
        return instant
    return clock


def to_epoch_ms(instant: datetime) -> int:
    """Local datetime -> epoch milliseconds."""
    return int(round(instant.timestamp() * 1000))


def from_epoch_ms(ms: float) -> datetime:
    """Epoch milliseconds -> local datetime."""
    return datetime.fromtimestamp(ms / 1000)
