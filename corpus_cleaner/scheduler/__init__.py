"""Timers attached to a refinery run."""

from .apsched_adapter import APSchedulerAdapter

__all__ = ["APSchedulerAdapter"]
