"""Batch jobs run by the scheduler.

Each job lists its eligible users or milestones in one session, then
processes every item in its own session so one failure rolls back only
that item. Every item is recorded in the returned ``BatchResult``.
Re-running a job is safe: items already handled are skipped or
recomputed to the same state.
"""

from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import day_range, start_of_day, utc_now
from app.core.database import SessionFactory
from app.core.logging import bind_job_context, clear_job_context, get_logger
from app.llm.client import TextGenerationClient
from app.models.enums import OPEN_MILESTONE_STATUSES, MilestoneStatus, RoadmapStatus
from app.models.roadmap import Goal, Milestone, Roadmap
from app.models.user import User
from app.schemas.jobs import BatchResult, ItemOutcome
from app.services.notification_service import (
    Delivery,
    TelegramNotifier,
    send_daily_task_reminder,
    send_milestone_due_reminder,
    send_overdue_alert,
    send_weekly_coaching,
    send_weekly_progress_summary,
)
from app.services.task_generator_service import (
    generate_tasks_for_milestone,
    get_milestones_needing_tasks,
)

logger = get_logger(__name__)

DUE_REMINDER_DAYS = (1, 3, 7)
DAILY_GENERATION_DAYS_AHEAD = 7
DAILY_GENERATION_TASKS_PER_MILESTONE = 3

ItemHandler = Callable[[AsyncSession, int], Awaitable[Delivery]]


async def _run_items(
    result: BatchResult,
    session_factory: SessionFactory,
    item_ids: list[int],
    handler: ItemHandler,
    **details: object,
) -> None:
    for item_id in item_ids:
        try:
            async with session_factory() as db:
                outcome, reason = await handler(db, item_id)
        except Exception as e:
            logger.exception("Batch item failed", item_id=item_id)
            result.record(item_id, ItemOutcome.FAILED, str(e) or type(e).__name__, **details)
        else:
            result.record(item_id, outcome, reason, **details)


def _log_result(result: BatchResult) -> BatchResult:
    logger.info(
        "Batch job finished",
        processed=result.processed,
        succeeded=result.succeeded,
        skipped=result.skipped,
        failed=result.failed,
    )
    return result


async def _notifiable_user_ids(session_factory: SessionFactory) -> list[int]:
    """Users with a chat handle and at least one active roadmap."""
    has_active_roadmap = exists(
        select(Roadmap.id).where(
            Roadmap.user_id == User.id, Roadmap.status == RoadmapStatus.ACTIVE
        )
    )
    async with session_factory() as db:
        result = await db.execute(
            select(User.id)
            .where(User.telegram_chat_id.is_not(None), has_active_roadmap)
            .order_by(User.id)
        )
        return list(result.scalars().all())


# ============================================================================
# Jobs
# ============================================================================


async def sweep_overdue_milestones(
    session_factory: SessionFactory,
    notifier: TelegramNotifier,
    *,
    now: datetime | None = None,
) -> BatchResult:
    """Mark open milestones of active roadmaps due before today as overdue and alert."""
    now = now or utc_now()
    result = BatchResult(job="overdue_sweep")
    bind_job_context(result.job)
    try:
        async with session_factory() as db:
            ids = list(
                (
                    await db.execute(
                        select(Milestone.id)
                        .join(Goal, Goal.id == Milestone.goal_id)
                        .join(Roadmap, Roadmap.id == Goal.roadmap_id)
                        .where(
                            Roadmap.status == RoadmapStatus.ACTIVE,
                            Milestone.status.in_(OPEN_MILESTONE_STATUSES),
                            Milestone.due_date < start_of_day(now),
                        )
                        .order_by(Milestone.due_date, Milestone.id)
                    )
                )
                .scalars()
                .all()
            )

        async def handle(db: AsyncSession, milestone_id: int) -> Delivery:
            milestone = await db.get(Milestone, milestone_id)
            if milestone is None or milestone.status not in OPEN_MILESTONE_STATUSES:
                return ItemOutcome.SKIPPED, "already_processed"
            milestone.status = MilestoneStatus.OVERDUE
            await db.flush()
            return await send_overdue_alert(db, notifier, milestone_id, now=now)

        await _run_items(result, session_factory, ids, handle)
        return _log_result(result)
    finally:
        clear_job_context()


async def send_milestone_due_reminders(
    session_factory: SessionFactory,
    notifier: TelegramNotifier,
    *,
    now: datetime | None = None,
) -> BatchResult:
    """Remind owners of open milestones due in exactly 1, 3 or 7 days."""
    now = now or utc_now()
    result = BatchResult(job="due_reminders")
    bind_job_context(result.job)
    try:
        for days_ahead in DUE_REMINDER_DAYS:
            day_start, next_day = day_range((now + timedelta(days=days_ahead)).date())
            async with session_factory() as db:
                ids = list(
                    (
                        await db.execute(
                            select(Milestone.id)
                            .join(Goal, Goal.id == Milestone.goal_id)
                            .join(Roadmap, Roadmap.id == Goal.roadmap_id)
                            .where(
                                Roadmap.status == RoadmapStatus.ACTIVE,
                                Milestone.status.in_(OPEN_MILESTONE_STATUSES),
                                Milestone.due_date >= day_start,
                                Milestone.due_date < next_day,
                            )
                            .order_by(Milestone.id)
                        )
                    )
                    .scalars()
                    .all()
                )

            async def handle(db: AsyncSession, milestone_id: int, days: int = days_ahead) -> Delivery:
                return await send_milestone_due_reminder(db, notifier, milestone_id, days)

            await _run_items(result, session_factory, ids, handle, days_ahead=days_ahead)
        return _log_result(result)
    finally:
        clear_job_context()


async def send_daily_task_reminders(
    session_factory: SessionFactory,
    notifier: TelegramNotifier,
    *,
    now: datetime | None = None,
) -> BatchResult:
    """Send each notifiable user today's open roadmap tasks."""
    today = (now or utc_now()).date()
    result = BatchResult(job="daily_reminders")
    bind_job_context(result.job)
    try:
        user_ids = await _notifiable_user_ids(session_factory)

        async def handle(db: AsyncSession, user_id: int) -> Delivery:
            return await send_daily_task_reminder(db, notifier, user_id, day=today)

        await _run_items(result, session_factory, user_ids, handle)
        return _log_result(result)
    finally:
        clear_job_context()


async def send_weekly_progress_summaries(
    session_factory: SessionFactory,
    notifier: TelegramNotifier,
    *,
    now: datetime | None = None,
) -> BatchResult:
    now = now or utc_now()
    result = BatchResult(job="weekly_summary")
    bind_job_context(result.job)
    try:
        user_ids = await _notifiable_user_ids(session_factory)

        async def handle(db: AsyncSession, user_id: int) -> Delivery:
            return await send_weekly_progress_summary(db, notifier, user_id, now=now)

        await _run_items(result, session_factory, user_ids, handle)
        return _log_result(result)
    finally:
        clear_job_context()


async def generate_daily_tasks_for_all_users(
    session_factory: SessionFactory,
    *,
    now: datetime | None = None,
) -> BatchResult:
    """Rule-based task generation for milestones due within the coming week."""
    now = now or utc_now()
    result = BatchResult(job="task_generation")
    bind_job_context(result.job)
    try:
        async with session_factory() as db:
            user_ids = list(
                (
                    await db.execute(
                        select(Roadmap.user_id)
                        .where(Roadmap.status == RoadmapStatus.ACTIVE)
                        .distinct()
                        .order_by(Roadmap.user_id)
                    )
                )
                .scalars()
                .all()
            )

        for user_id in user_ids:
            try:
                async with session_factory() as db:
                    milestones = await get_milestones_needing_tasks(
                        db,
                        user_id,
                        days_ahead=DAILY_GENERATION_DAYS_AHEAD,
                        include_overdue=True,
                        now=now,
                    )
                    generated = 0
                    for milestone in milestones:
                        tasks = await generate_tasks_for_milestone(
                            db,
                            user_id,
                            milestone.id,
                            use_llm=False,
                            task_count=DAILY_GENERATION_TASKS_PER_MILESTONE,
                            now=now,
                        )
                        generated += len(tasks)
            except Exception as e:
                logger.exception("Task generation failed for user", user_id=user_id)
                result.record(user_id, ItemOutcome.FAILED, str(e) or type(e).__name__)
                continue

            if milestones:
                result.record(
                    user_id,
                    ItemOutcome.SUCCEEDED,
                    milestones_processed=len(milestones),
                    tasks_generated=generated,
                )
            else:
                result.record(user_id, ItemOutcome.SKIPPED, "nothing_due")

        return _log_result(result)
    finally:
        clear_job_context()


async def send_weekly_coaching_to_all(
    session_factory: SessionFactory,
    notifier: TelegramNotifier,
    text_client: TextGenerationClient | None,
    *,
    now: datetime | None = None,
) -> BatchResult:
    now = now or utc_now()
    result = BatchResult(job="weekly_coaching")
    bind_job_context(result.job)
    try:
        user_ids = await _notifiable_user_ids(session_factory)

        async def handle(db: AsyncSession, user_id: int) -> Delivery:
            return await send_weekly_coaching(
                db, notifier, user_id, text_client=text_client, now=now
            )

        await _run_items(result, session_factory, user_ids, handle)
        return _log_result(result)
    finally:
        clear_job_context()
