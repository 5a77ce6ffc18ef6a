from .base import SchedulerBackend
from .interval import IntervalBackend

__all__ = ["SchedulerBackend", "IntervalBackend"]
