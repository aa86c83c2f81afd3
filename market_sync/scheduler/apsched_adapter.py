"""APScheduler wrapper running periodic catch-up and refresh jobs."""

from __future__ import annotations

from datetime import datetime
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from ..config import ScheduleConfig, ScheduleType
from ..errors import SyncError
from ..logging_conf import configure_logging


class APSchedulerAdapter:
    """Manage APScheduler jobs for engine operations."""

    def __init__(self, scheduler: BackgroundScheduler | None = None) -> None:
        # Engine operations are exclusive; never overlap a job with itself.
        self.scheduler = scheduler or BackgroundScheduler(
            job_defaults={"max_instances": 1, "coalesce": True}
        )
        self.logger = configure_logging().bind(component="scheduler")
        self.started = False

    def start(self) -> None:
        if not self.started:
            self.scheduler.start()
            self.started = True
            self.logger.info("apscheduler_started")

    def shutdown(self) -> None:
        if self.started:
            self.scheduler.shutdown(wait=False)
            self.started = False
            self.logger.info("apscheduler_stopped")

    def schedule_job(
        self, name: str, schedule: ScheduleConfig, callback: Callable[[], object]
    ) -> None:
        trigger = self._build_trigger(schedule)
        job_id = f"sync::{name}"
        self.scheduler.add_job(
            self._guarded(name, callback), trigger=trigger, id=job_id, replace_existing=True
        )
        self.logger.info("job_scheduled", job=name, schedule=schedule.model_dump(mode="json"))

    def remove_job(self, name: str) -> None:
        job_id = f"sync::{name}"
        try:
            self.scheduler.remove_job(job_id)
        except Exception:  # noqa: BLE001
            self.logger.warning("job_remove_failed", job=name)

    def _guarded(self, name: str, callback: Callable[[], object]) -> Callable[[], None]:
        def _run() -> None:
            try:
                result = callback()
            except SyncError as exc:
                self.logger.warning("job_skipped", job=name, error=str(exc))
                return
            summary = result.as_dict() if hasattr(result, "as_dict") else result
            self.logger.info("job_finished", job=name, summary=summary)

        return _run

    def _build_trigger(self, schedule: ScheduleConfig):
        if schedule.type is ScheduleType.CRON:
            return CronTrigger.from_crontab(str(schedule.value))
        if schedule.type is ScheduleType.INTERVAL:
            if isinstance(schedule.value, (int, float)):
                return IntervalTrigger(seconds=float(schedule.value))
            if isinstance(schedule.value, dict):
                return IntervalTrigger(**schedule.value)
            raise ValueError("Interval schedule requires seconds or kwargs dict")
        if schedule.type is ScheduleType.ONCE:
            if schedule.value:
                run_date = datetime.fromisoformat(str(schedule.value))
            else:
                run_date = datetime.now()
            return DateTrigger(run_date=run_date)
        raise ValueError(f"Unknown schedule type: {schedule.type}")


__all__ = ["APSchedulerAdapter"]
