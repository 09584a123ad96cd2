"""Outbound chat notifications.

``TelegramNotifier`` is the only piece that touches the network and it
never raises: delivery problems are logged and reported as ``False``.
The ``send_*`` functions load what a message needs, skip users without a
chat handle and report an ``(outcome, reason)`` pair for batch jobs.
"""

from datetime import date, datetime, timedelta

import httpx
from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import day_range, days_between, start_of_day, utc_now
from app.core.config import Settings
from app.core.logging import get_logger
from app.llm.client import TextGenerationClient
from app.models.enums import (
    OPEN_TASK_STATUSES,
    GoalCategory,
    GoalStatus,
    MilestoneStatus,
    TaskPriority,
    TaskStatus,
)
from app.models.roadmap import Goal, Milestone, Roadmap, RoadmapTask
from app.models.user import User
from app.schemas.analytics import VelocityTrend
from app.schemas.coaching import CoachingResult
from app.schemas.jobs import ItemOutcome
from app.services.coaching_service import generate_weekly_coaching
from app.services.events import GoalCompleted, MilestoneCompleted, ProgressEvent
from app.services.roadmap_service import active_roadmaps_with_goals

logger = get_logger(__name__)

Delivery = tuple[ItemOutcome, str | None]

DAILY_TASK_LIMIT = 10

CATEGORY_EMOJI = {
    GoalCategory.CAREER: "💼",
    GoalCategory.HEALTH: "💪",
    GoalCategory.FINANCE: "💰",
    GoalCategory.RELATIONSHIPS: "❤️",
    GoalCategory.LEARNING: "📚",
    GoalCategory.PERSONAL: "🌟",
    GoalCategory.OTHER: "📌",
}

PRIORITY_EMOJI = {
    TaskPriority.HIGH: "🟠",
    TaskPriority.NORMAL: "🟡",
    TaskPriority.LOW: "🟢",
}

TREND_EMOJI = {
    VelocityTrend.INCREASING: "📈",
    VelocityTrend.DECREASING: "📉",
    VelocityTrend.STABLE: "➡️",
}


class TelegramNotifier:
    """Sends Markdown messages through the Telegram Bot API."""

    def __init__(
        self,
        bot_token: str | None,
        *,
        api_base: str = "https://api.telegram.org",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._bot_token = bot_token
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_settings(cls, settings: Settings) -> "TelegramNotifier":
        if not settings.TELEGRAM_BOT_TOKEN:
            logger.warning("TELEGRAM_BOT_TOKEN not configured, notifications disabled")
        return cls(
            settings.TELEGRAM_BOT_TOKEN,
            api_base=settings.TELEGRAM_API_BASE,
            timeout=settings.NOTIFICATION_TIMEOUT_SECONDS,
        )

    @property
    def configured(self) -> bool:
        return bool(self._bot_token)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def send_message(self, chat_handle: str, text: str) -> bool:
        """Deliver ``text`` to ``chat_handle``; returns False on any failure."""
        if not self._bot_token:
            logger.info("Notification skipped, bot not configured", chat_handle=chat_handle)
            return False

        url = f"{self._api_base}/bot{self._bot_token}/sendMessage"
        payload = {"chat_id": chat_handle, "text": text, "parse_mode": "Markdown"}
        try:
            response = await self._get_client().post(url, json=payload, timeout=self._timeout)
        except httpx.HTTPError as e:
            logger.warning("Notification request failed", chat_handle=chat_handle, error=str(e))
            return False

        if response.status_code >= 400:
            logger.warning(
                "Notification rejected",
                chat_handle=chat_handle,
                status_code=response.status_code,
            )
            return False

        try:
            body = response.json()
        except ValueError:
            logger.warning("Notification response was not JSON", chat_handle=chat_handle)
            return False
        if not body.get("ok", False):
            logger.warning(
                "Notification not accepted",
                chat_handle=chat_handle,
                description=body.get("description"),
            )
            return False

        logger.debug("Notification sent", chat_handle=chat_handle)
        return True


# ============================================================================
# Formatters
# ============================================================================


def progress_bar(percentage: float) -> str:
    """Ten-cell bar, one cell per 10%."""
    filled = min(10, max(0, round(percentage / 10)))
    return "█" * filled + "░" * (10 - filled)


def _format_date(moment: datetime) -> str:
    return f"{moment:%b} {moment.day}, {moment.year}"


def format_goal_completed(goal: Goal, roadmap: Roadmap, milestones_completed: int) -> str:
    emoji = CATEGORY_EMOJI.get(goal.category, "📌")
    return (
        "🏆 *GOAL ACHIEVED!*\n\n"
        f"🎯 *{goal.title}*\n\n"
        f"Category: {emoji} {goal.category.value}\n"
        f"Milestones completed: {milestones_completed}\n"
        f"Roadmap: {roadmap.title}\n\n"
        "🚀 This is a HUGE accomplishment! Celebrate this victory!\n\n"
        f"Your roadmap is now {roadmap.progress_percentage:.0f}% complete. Keep crushing it! 💪"
    )


def format_milestone_completed(milestone: Milestone, goal: Goal, roadmap: Roadmap) -> str:
    return (
        "🎉 *Milestone Completed!*\n\n"
        f"✅ *{milestone.title}*\n\n"
        f"Goal: {goal.title}\n"
        f"Roadmap: {roadmap.title}\n\n"
        f"Keep up the great work! You're {roadmap.progress_percentage:.0f}% done with your roadmap.\n\n"
        "💪 Every milestone brings you closer to your vision!"
    )


def format_milestone_due(milestone: Milestone, goal: Goal, days_until_due: int) -> str:
    if days_until_due <= 1:
        emoji = "🚨"
    elif days_until_due <= 3:
        emoji = "⏰"
    else:
        emoji = "📅"

    if days_until_due == 0:
        urgency = "DUE TODAY"
    elif days_until_due == 1:
        urgency = "DUE TOMORROW"
    else:
        urgency = f"Due in {days_until_due} days"

    description = f"\n{milestone.description}\n" if milestone.description else ""
    return (
        f"{emoji} *Milestone Due Soon*\n\n"
        f"📌 *{milestone.title}*\n\n"
        f"{urgency}\n"
        f"Goal: {goal.title}\n"
        f"Due date: {_format_date(milestone.due_date)}\n"
        f"{description}\n"
        "Time to focus and finish strong! 💪"
    )


def format_milestone_overdue(milestone: Milestone, goal: Goal, days_overdue: int) -> str:
    return (
        "⚠️ *Milestone Overdue*\n\n"
        f"📌 *{milestone.title}*\n\n"
        f"Goal: {goal.title}\n"
        f"Due date: {_format_date(milestone.due_date)}\n"
        f"Days overdue: {days_overdue}\n\n"
        "Don't worry! You can:\n"
        "• Adjust the timeline\n"
        "• Break it into smaller tasks\n"
        "• Ask for help if needed\n\n"
        "Need to reschedule? Just update the milestone in your roadmap."
    )


def format_daily_tasks(
    rows: list[tuple[RoadmapTask, Milestone, Roadmap]],
    day: date,
) -> str:
    """Today's tasks grouped by roadmap, in the order given."""
    message = f"📅 *Your Tasks for {day:%A}, {day:%B} {day.day}*\n\n"
    if not rows:
        return message + "No tasks scheduled for today. Enjoy your day! 😊"

    grouped: dict[str, list[tuple[RoadmapTask, Milestone]]] = {}
    for task, milestone, roadmap in rows:
        grouped.setdefault(roadmap.title, []).append((task, milestone))

    for roadmap_title, items in grouped.items():
        message += f"🗺️ *{roadmap_title}*\n\n"
        for task, milestone in items:
            emoji = PRIORITY_EMOJI.get(task.priority, "⚪")
            duration = f" (~{task.estimated_duration}min)" if task.estimated_duration else ""
            message += f"{emoji} {task.title}{duration}\n"
            message += f"   └ Milestone: {milestone.title}\n\n"

    noun = "task" if len(rows) == 1 else "tasks"
    message += f"\n💪 Total: {len(rows)} {noun}\n"
    message += "\nLet's make today count! 🚀"
    return message


def format_weekly_progress(
    roadmaps: list[tuple[Roadmap, list[Goal]]],
    completed_this_week: int,
) -> str:
    message = "📊 *Weekly Progress Summary*\n\n"
    message += f"✅ Tasks completed this week: *{completed_this_week}*\n\n"

    for roadmap, goals in roadmaps:
        percentage = round(roadmap.progress_percentage or 0)
        done = sum(1 for g in goals if g.status == GoalStatus.COMPLETED)
        active = sum(1 for g in goals if g.status == GoalStatus.IN_PROGRESS)
        message += f"🗺️ *{roadmap.title}*\n"
        message += f"{progress_bar(percentage)} {percentage}%\n"
        message += f"Goals: {done} completed, {active} in progress\n\n"

    message += "\n🎯 Keep pushing forward! Every small step counts.\n"
    message += "\nHave a great week ahead! 🚀"
    return message


def format_weekly_coaching(coaching: CoachingResult) -> str:
    message = "🎯 *Your Weekly Coaching Insights*\n\n"

    if coaching.highlights:
        message += f"✨ *Progress Highlights*\n{coaching.highlights}\n\n"

    if coaching.insights:
        message += "💡 *Key Insights*\n"
        message += "".join(f"• {insight}\n" for insight in coaching.insights)
        message += "\n"

    if coaching.recommendations:
        message += "🎯 *This Week's Focus*\n"
        message += "".join(
            f"{index}. {rec}\n" for index, rec in enumerate(coaching.recommendations, start=1)
        )
        message += "\n"

    stats = coaching.analytics
    message += "📊 *Quick Stats*\n"
    message += f"• Velocity: {TREND_EMOJI[stats.velocity_trend]} {stats.velocity_trend.value}\n"
    message += f"• Tasks/week: {stats.tasks_per_week:.1f}\n"
    message += f"• Current streak: {stats.current_streak} days\n"
    if stats.overdue_count:
        message += f"• ⚠️ Overdue items: {stats.overdue_count}\n"
    message += "\n"

    if coaching.motivation:
        message += f"💪 *{coaching.motivation}*\n\n"

    message += "---\n"
    message += f"_Generated {coaching.generated_at:%Y-%m-%d}_"
    return message


# ============================================================================
# Senders
# ============================================================================


async def _owner_of_roadmap(db: AsyncSession, roadmap_id: int) -> User | None:
    result = await db.execute(
        select(User).join(Roadmap, Roadmap.user_id == User.id).where(Roadmap.id == roadmap_id)
    )
    return result.scalar_one_or_none()


async def _deliver(
    notifier: TelegramNotifier, user: User, text: str, **log_fields: object
) -> Delivery:
    if await notifier.send_message(user.telegram_chat_id, text):
        logger.info("Notification delivered", user_id=user.id, **log_fields)
        return ItemOutcome.SUCCEEDED, None
    return ItemOutcome.FAILED, "send_failed"


async def _load_milestone(
    db: AsyncSession, milestone_id: int
) -> tuple[Milestone, Goal, Roadmap, User] | None:
    row = (
        await db.execute(
            select(Milestone, Goal, Roadmap, User)
            .join(Goal, Goal.id == Milestone.goal_id)
            .join(Roadmap, Roadmap.id == Goal.roadmap_id)
            .join(User, User.id == Roadmap.user_id)
            .where(Milestone.id == milestone_id)
        )
    ).one_or_none()
    return tuple(row) if row is not None else None


async def send_goal_completed(
    db: AsyncSession, notifier: TelegramNotifier, goal_id: int
) -> Delivery:
    goal = await db.get(Goal, goal_id)
    if goal is None:
        return ItemOutcome.SKIPPED, "not_found"
    roadmap = await db.get(Roadmap, goal.roadmap_id)
    user = await _owner_of_roadmap(db, goal.roadmap_id)
    if user is None or not user.telegram_chat_id:
        return ItemOutcome.SKIPPED, "no_chat_handle"

    completed = (
        await db.execute(
            select(func.count(Milestone.id)).where(
                Milestone.goal_id == goal_id, Milestone.status == MilestoneStatus.COMPLETED
            )
        )
    ).scalar_one()
    text = format_goal_completed(goal, roadmap, completed)
    return await _deliver(notifier, user, text, goal_id=goal_id, kind="goal_completed")


async def send_milestone_completed(
    db: AsyncSession, notifier: TelegramNotifier, milestone_id: int
) -> Delivery:
    loaded = await _load_milestone(db, milestone_id)
    if loaded is None:
        return ItemOutcome.SKIPPED, "not_found"
    milestone, goal, roadmap, user = loaded
    if not user.telegram_chat_id:
        return ItemOutcome.SKIPPED, "no_chat_handle"

    text = format_milestone_completed(milestone, goal, roadmap)
    return await _deliver(
        notifier, user, text, milestone_id=milestone_id, kind="milestone_completed"
    )


async def send_milestone_due_reminder(
    db: AsyncSession,
    notifier: TelegramNotifier,
    milestone_id: int,
    days_until_due: int,
) -> Delivery:
    loaded = await _load_milestone(db, milestone_id)
    if loaded is None:
        return ItemOutcome.SKIPPED, "not_found"
    milestone, goal, _, user = loaded
    if not user.telegram_chat_id:
        return ItemOutcome.SKIPPED, "no_chat_handle"

    text = format_milestone_due(milestone, goal, days_until_due)
    return await _deliver(
        notifier, user, text, milestone_id=milestone_id, kind="milestone_due", days=days_until_due
    )


async def send_overdue_alert(
    db: AsyncSession,
    notifier: TelegramNotifier,
    milestone_id: int,
    *,
    now: datetime | None = None,
) -> Delivery:
    loaded = await _load_milestone(db, milestone_id)
    if loaded is None:
        return ItemOutcome.SKIPPED, "not_found"
    milestone, goal, _, user = loaded
    if not user.telegram_chat_id:
        return ItemOutcome.SKIPPED, "no_chat_handle"

    days_overdue = days_between(now or utc_now(), milestone.due_date)
    text = format_milestone_overdue(milestone, goal, days_overdue)
    return await _deliver(notifier, user, text, milestone_id=milestone_id, kind="milestone_overdue")


async def send_daily_task_reminder(
    db: AsyncSession,
    notifier: TelegramNotifier,
    user_id: int,
    *,
    day: date | None = None,
) -> Delivery:
    """Up to ten open tasks scheduled for ``day``, highest priority first."""
    user = await db.get(User, user_id)
    if user is None:
        return ItemOutcome.SKIPPED, "not_found"
    if not user.telegram_chat_id:
        return ItemOutcome.SKIPPED, "no_chat_handle"

    day = day or utc_now().date()
    day_start, next_day = day_range(day)
    priority_rank = case(
        (RoadmapTask.priority == TaskPriority.HIGH, 0),
        (RoadmapTask.priority == TaskPriority.NORMAL, 1),
        else_=2,
    )
    rows = (
        await db.execute(
            select(RoadmapTask, Milestone, Roadmap)
            .join(Milestone, Milestone.id == RoadmapTask.milestone_id)
            .join(Roadmap, Roadmap.id == RoadmapTask.roadmap_id)
            .where(
                Roadmap.user_id == user_id,
                RoadmapTask.status.in_(OPEN_TASK_STATUSES),
                RoadmapTask.scheduled_date >= day_start,
                RoadmapTask.scheduled_date < next_day,
            )
            .order_by(priority_rank, RoadmapTask.scheduled_date, RoadmapTask.id)
            .limit(DAILY_TASK_LIMIT)
        )
    ).all()
    if not rows:
        return ItemOutcome.SKIPPED, "no_tasks"

    text = format_daily_tasks([tuple(row) for row in rows], day)
    return await _deliver(notifier, user, text, kind="daily_tasks", tasks=len(rows))


async def send_weekly_progress_summary(
    db: AsyncSession,
    notifier: TelegramNotifier,
    user_id: int,
    *,
    now: datetime | None = None,
) -> Delivery:
    """Tasks completed since Monday plus a progress bar per active roadmap."""
    user = await db.get(User, user_id)
    if user is None:
        return ItemOutcome.SKIPPED, "not_found"
    if not user.telegram_chat_id:
        return ItemOutcome.SKIPPED, "no_chat_handle"

    roadmaps = await active_roadmaps_with_goals(db, user_id)
    if not roadmaps:
        return ItemOutcome.SKIPPED, "no_active_roadmaps"

    now = now or utc_now()
    week_start = start_of_day(now) - timedelta(days=now.weekday())
    completed = (
        await db.execute(
            select(func.count(RoadmapTask.id))
            .join(Roadmap, Roadmap.id == RoadmapTask.roadmap_id)
            .where(
                Roadmap.user_id == user_id,
                RoadmapTask.status == TaskStatus.COMPLETED,
                RoadmapTask.completed_at >= week_start,
                RoadmapTask.completed_at <= now,
            )
        )
    ).scalar_one()

    text = format_weekly_progress(roadmaps, completed)
    return await _deliver(notifier, user, text, kind="weekly_progress", completed=completed)


async def send_weekly_coaching(
    db: AsyncSession,
    notifier: TelegramNotifier,
    user_id: int,
    *,
    text_client: TextGenerationClient | None,
    now: datetime | None = None,
) -> Delivery:
    user = await db.get(User, user_id)
    if user is None:
        return ItemOutcome.SKIPPED, "not_found"
    if not user.telegram_chat_id:
        return ItemOutcome.SKIPPED, "no_chat_handle"

    coaching = await generate_weekly_coaching(db, user_id, text_client=text_client, now=now)
    text = format_weekly_coaching(coaching)
    return await _deliver(
        notifier, user, text, kind="weekly_coaching", source=coaching.source.value
    )


# ============================================================================
# Progress events
# ============================================================================


async def handle_event(
    db: AsyncSession, notifier: TelegramNotifier, event: ProgressEvent
) -> Delivery:
    """Send the celebration for a rollup event."""
    if isinstance(event, GoalCompleted):
        return await send_goal_completed(db, notifier, event.goal_id)
    if isinstance(event, MilestoneCompleted):
        return await send_milestone_completed(db, notifier, event.milestone_id)
    logger.warning("Unhandled progress event", progress_event=repr(event))
    return ItemOutcome.SKIPPED, "unhandled_event"
