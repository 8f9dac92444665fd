"""APScheduler wrapper driving the periodic and one-shot timers of a run."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from ..logging_conf import get_logger

PROGRESS_JOB_ID = "run::progress"
DEADLINE_JOB_ID = "run::deadline"


class APSchedulerAdapter:
    """Manage the progress-poll and max-runtime jobs of one refinery run."""

    def __init__(self) -> None:
        self.scheduler = BackgroundScheduler(timezone=timezone.utc)
        self.logger = get_logger("timers")
        self.started = False

    def start(self) -> None:
        if not self.started:
            self.scheduler.start()
            self.started = True
            self.logger.debug("apscheduler_started")

    def shutdown(self) -> None:
        if self.started:
            self.scheduler.shutdown(wait=False)
            self.started = False
            self.logger.debug("apscheduler_stopped")

    def schedule_progress(self, callback: Callable[[], None], interval: float) -> None:
        """Call ``callback`` every ``interval`` seconds until shutdown."""

        self.scheduler.add_job(
            callback,
            trigger=self._interval_trigger(interval),
            id=PROGRESS_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    def schedule_deadline(self, callback: Callable[[], None], seconds: float) -> datetime:
        """Call ``callback`` once after ``seconds``; returns the UTC deadline."""

        run_date = datetime.now(timezone.utc) + timedelta(seconds=seconds)
        self.scheduler.add_job(
            callback,
            trigger=DateTrigger(run_date=run_date),
            id=DEADLINE_JOB_ID,
            replace_existing=True,
            misfire_grace_time=None,
        )
        self.logger.info("max_runtime_scheduled", deadline=run_date.isoformat(), seconds=seconds)
        return run_date

    @staticmethod
    def _interval_trigger(interval: float) -> IntervalTrigger:
        if interval <= 0:
            raise ValueError("interval must be > 0")
        return IntervalTrigger(seconds=interval)

    def list_jobs(self) -> list[dict]:
        jobs = []
        for job in self.scheduler.get_jobs():
            jobs.append(
                {
                    "id": job.id,
                    "next_run_time": getattr(job, "next_run_time", None),
                    "trigger": str(job.trigger),
                }
            )
        return jobs

    def __enter__(self) -> "APSchedulerAdapter":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()


__all__ = ["APSchedulerAdapter", "DEADLINE_JOB_ID", "PROGRESS_JOB_ID"]
