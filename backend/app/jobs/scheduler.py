"""Wall-clock scheduler for the batch jobs.

Each job runs in its own asyncio task that sleeps until the next fire
time, runs the job and goes back to sleep. Trigger times are server-local.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, time, timedelta

from app.core.config import Settings
from app.core.database import SessionFactory
from app.core.logging import get_logger
from app.jobs import batch
from app.llm.client import TextGenerationClient
from app.schemas.jobs import BatchResult
from app.services.notification_service import TelegramNotifier

logger = get_logger(__name__)

SUNDAY = 6

JobRunner = Callable[[], Awaitable[BatchResult]]


def parse_trigger_time(value: str) -> time:
    """Parse ``HH:MM``."""
    try:
        hour, minute = value.split(":")
        return time(int(hour), int(minute))
    except ValueError as e:
        raise ValueError(f"Invalid trigger time {value!r}, expected HH:MM") from e


def next_fire_time(now: datetime, at: time, weekday: int | None = None) -> datetime:
    """First moment strictly after ``now`` at ``at`` (on ``weekday`` if given)."""
    candidate = datetime.combine(now.date(), at)
    if weekday is not None:
        candidate += timedelta(days=(weekday - now.weekday()) % 7)
        if candidate <= now:
            candidate += timedelta(days=7)
    elif candidate <= now:
        candidate += timedelta(days=1)
    return candidate


@dataclass(frozen=True)
class JobSpec:
    name: str
    at: time
    run: JobRunner
    weekday: int | None = None


def build_default_jobs(
    settings: Settings,
    session_factory: SessionFactory,
    notifier: TelegramNotifier,
    text_client: TextGenerationClient | None,
) -> list[JobSpec]:
    return [
        JobSpec(
            name="task_generation",
            at=parse_trigger_time(settings.JOB_TASK_GENERATION_AT),
            run=lambda: batch.generate_daily_tasks_for_all_users(session_factory),
        ),
        JobSpec(
            name="daily_reminders",
            at=parse_trigger_time(settings.JOB_DAILY_REMINDERS_AT),
            run=lambda: batch.send_daily_task_reminders(session_factory, notifier),
        ),
        JobSpec(
            name="due_reminders",
            at=parse_trigger_time(settings.JOB_DUE_REMINDERS_AT),
            run=lambda: batch.send_milestone_due_reminders(session_factory, notifier),
        ),
        JobSpec(
            name="overdue_sweep",
            at=parse_trigger_time(settings.JOB_OVERDUE_SWEEP_AT),
            run=lambda: batch.sweep_overdue_milestones(session_factory, notifier),
        ),
        JobSpec(
            name="weekly_summary",
            at=parse_trigger_time(settings.JOB_WEEKLY_SUMMARY_AT),
            weekday=SUNDAY,
            run=lambda: batch.send_weekly_progress_summaries(session_factory, notifier),
        ),
        JobSpec(
            name="weekly_coaching",
            at=parse_trigger_time(settings.JOB_WEEKLY_COACHING_AT),
            weekday=SUNDAY,
            run=lambda: batch.send_weekly_coaching_to_all(session_factory, notifier, text_client),
        ),
    ]


class JobScheduler:
    """Runs each ``JobSpec`` forever on its trigger until ``stop``."""

    def __init__(
        self,
        jobs: list[JobSpec],
        *,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._jobs = jobs
        self._clock = clock
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def start(self) -> None:
        if self._tasks:
            return
        for job in self._jobs:
            self._tasks.append(asyncio.create_task(self._loop(job), name=f"job:{job.name}"))
        logger.info("Scheduler started", jobs=[job.name for job in self._jobs])

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("Scheduler stopped")

    async def run_once(self, job: JobSpec) -> BatchResult | None:
        """Run ``job`` now; a batch that fails outright is logged, not raised."""
        try:
            return await job.run()
        except Exception:
            logger.exception("Scheduled job failed", job=job.name)
            return None

    async def _loop(self, job: JobSpec) -> None:
        while True:
            now = self._clock()
            fire_at = next_fire_time(now, job.at, job.weekday)
            logger.debug("Next job run scheduled", job=job.name, fire_at=fire_at.isoformat())
            await asyncio.sleep((fire_at - now).total_seconds())
            await self.run_once(job)
