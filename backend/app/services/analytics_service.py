"""Analytics over a user's roadmap history.

Velocity, completion prediction, bottleneck detection, streaks and
category distribution. Nothing here is persisted: every view is computed
from the roadmap tables on request and tolerates a user with no data.
"""

import math
from collections import defaultdict
from datetime import date, datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import days_between, start_of_day, utc_now
from app.core.errors import InvalidInputError
from app.core.logging import get_logger
from app.models.enums import (
    OPEN_MILESTONE_STATUSES,
    GoalCategory,
    GoalStatus,
    MilestoneStatus,
    RoadmapStatus,
    TaskStatus,
)
from app.models.roadmap import Goal, Milestone, Roadmap, RoadmapTask
from app.schemas.analytics import (
    AnalyticsOverview,
    AnalyticsReport,
    BottleneckReport,
    BottleneckSummary,
    CategoryDistribution,
    CategoryDistributionSummary,
    CategoryStats,
    Confidence,
    OverdueMilestone,
    Prediction,
    RoadmapPrediction,
    Severity,
    StreakInfo,
    StrugglingGoal,
    UnderperformingCategory,
    VelocityAverages,
    VelocityPeriod,
    VelocityReport,
    VelocityTotals,
    VelocityTrend,
    WeeklyBucket,
)
from app.services.roadmap_service import get_owned_roadmap

logger = get_logger(__name__)

DEFAULT_WINDOW_DAYS = 30
BUCKET_DAYS = 7

# Prediction confidence by tasks completed in the velocity window
HIGH_CONFIDENCE_TASKS = 50
MEDIUM_CONFIDENCE_TASKS = 20

# Struggling goal: enough milestones to judge, few of them done
STRUGGLING_MIN_MILESTONES = 3
STRUGGLING_MAX_RATE = 30.0

# Underperforming category: enough tasks to judge, fewer than half done
UNDERPERFORMING_MIN_TASKS = 5
UNDERPERFORMING_MAX_RATE = 50.0

# Severity escalation
HIGH_SEVERITY_OVERDUE = 5
HIGH_SEVERITY_STRUGGLING = 3
MEDIUM_SEVERITY_OVERDUE = 2

# A category is "balanced" when its goal count is within this of the mean
BALANCE_TOLERANCE = 2

NO_VELOCITY_MESSAGE = "Not enough data to predict. Complete some tasks to see predictions."

# Projections further out than this get no date
MAX_PREDICTION_WEEKS = 52 * 100
BEYOND_HORIZON_MESSAGE = (
    "At the current pace this roadmap would take more than 100 years. "
    "Complete more tasks each week to get a predicted date."
)


def _ratio(numerator: float, denominator: float, digits: int = 2) -> float:
    if not denominator:
        return 0.0
    return round(numerator / denominator, digits)


def _percentage(part: int, total: int) -> float:
    if not total:
        return 0.0
    return round(part / total * 100, 2)


# ============================================================================
# Velocity
# ============================================================================


def velocity_trend(task_counts: list[int]) -> VelocityTrend:
    """Compare the mean of the recent half against the older half.

    ``task_counts`` is chronological (oldest first) and split at
    ``floor(n / 2)``; the recent half gets the extra bucket when ``n`` is odd.
    """
    if len(task_counts) < 2:
        return VelocityTrend.STABLE

    half = len(task_counts) // 2
    older, recent = task_counts[:half], task_counts[half:]
    older_mean = sum(older) / len(older) if older else 0.0
    recent_mean = sum(recent) / len(recent) if recent else 0.0

    if recent_mean > older_mean:
        return VelocityTrend.INCREASING
    if recent_mean < older_mean:
        return VelocityTrend.DECREASING
    return VelocityTrend.STABLE


async def calculate_velocity(
    db: AsyncSession,
    user_id: int,
    window_days: int = DEFAULT_WINDOW_DAYS,
    *,
    now: datetime | None = None,
) -> VelocityReport:
    """Completed work per trailing week over the last ``window_days`` days.

    Buckets are calendar-day aligned and half-open. Bucket ``i`` (0 = most
    recent) covers ``[tomorrow - 7(i+1) days, tomorrow - 7i days)`` and the
    oldest bucket is clipped to the window start.
    """
    if window_days < 1:
        raise InvalidInputError("window_days must be at least 1")

    now = now or utc_now()
    window_end = start_of_day(now) + timedelta(days=1)
    window_start = window_end - timedelta(days=window_days)
    bucket_count = math.ceil(window_days / BUCKET_DAYS)

    task_rows = (
        await db.execute(
            select(RoadmapTask.completed_at, RoadmapTask.estimated_duration)
            .join(Roadmap, Roadmap.id == RoadmapTask.roadmap_id)
            .where(
                Roadmap.user_id == user_id,
                RoadmapTask.status == TaskStatus.COMPLETED,
                RoadmapTask.completed_at >= window_start,
                RoadmapTask.completed_at < window_end,
            )
        )
    ).all()
    milestone_dates = (
        await db.execute(
            select(Milestone.completion_date)
            .join(Goal, Goal.id == Milestone.goal_id)
            .join(Roadmap, Roadmap.id == Goal.roadmap_id)
            .where(
                Roadmap.user_id == user_id,
                Milestone.status == MilestoneStatus.COMPLETED,
                Milestone.completion_date >= window_start,
                Milestone.completion_date < window_end,
            )
        )
    ).scalars().all()

    def bucket_index(moment: datetime) -> int:
        # A moment on a bucket's start boundary belongs to that bucket
        weeks_back = (window_end - moment) / timedelta(days=BUCKET_DAYS)
        return min(max(math.ceil(weeks_back) - 1, 0), bucket_count - 1)

    tasks = [0] * bucket_count
    minutes = [0] * bucket_count
    milestones = [0] * bucket_count
    for completed_at, duration in task_rows:
        index = bucket_index(completed_at)
        tasks[index] += 1
        minutes[index] += duration or 0
    for completed_at in milestone_dates:
        milestones[bucket_index(completed_at)] += 1

    breakdown = []
    for index in reversed(range(bucket_count)):
        bucket_end = window_end - timedelta(days=BUCKET_DAYS * index)
        bucket_start = max(bucket_end - timedelta(days=BUCKET_DAYS), window_start)
        breakdown.append(
            WeeklyBucket(
                week_start=bucket_start,
                week_end=bucket_end,
                tasks_completed=tasks[index],
                milestones_completed=milestones[index],
                total_hours=round(minutes[index] / 60, 2),
            )
        )

    total_tasks = sum(tasks)
    total_milestones = sum(milestones)
    total_hours = round(sum(minutes) / 60, 2)
    tasks_per_week = _ratio(total_tasks, bucket_count)

    report = VelocityReport(
        period=VelocityPeriod(start_date=window_start, end_date=window_end, days=window_days),
        totals=VelocityTotals(
            tasks_completed=total_tasks,
            milestones_completed=total_milestones,
            total_hours=total_hours,
        ),
        averages=VelocityAverages(
            tasks_per_week=tasks_per_week,
            milestones_per_week=_ratio(total_milestones, bucket_count),
            hours_per_week=_ratio(sum(minutes) / 60, bucket_count),
            tasks_per_day=_ratio(tasks_per_week, 7),
        ),
        trend=velocity_trend([bucket.tasks_completed for bucket in breakdown]),
        weekly_breakdown=breakdown,
    )

    logger.debug(
        "Velocity calculated",
        user_id=user_id,
        window_days=window_days,
        tasks=total_tasks,
        trend=report.trend.value,
    )
    return report


# ============================================================================
# Prediction
# ============================================================================


def confidence_for(tasks_completed: int) -> Confidence:
    if tasks_completed >= HIGH_CONFIDENCE_TASKS:
        return Confidence.HIGH
    if tasks_completed >= MEDIUM_CONFIDENCE_TASKS:
        return Confidence.MEDIUM
    return Confidence.LOW


async def _remaining_hours(db: AsyncSession, roadmap_id: int) -> float:
    result = await db.execute(
        select(func.coalesce(func.sum(Milestone.estimated_effort_hours), 0))
        .join(Goal, Goal.id == Milestone.goal_id)
        .where(
            Goal.roadmap_id == roadmap_id,
            Milestone.status != MilestoneStatus.COMPLETED,
        )
    )
    return float(result.scalar_one())


def _build_prediction(
    roadmap: Roadmap,
    remaining_hours: float,
    velocity: VelocityReport,
    now: datetime,
) -> Prediction:
    hours_per_week = velocity.averages.hours_per_week

    def undated(message: str, weeks: float | None = None) -> Prediction:
        return Prediction(
            roadmap_id=roadmap.id,
            predicted_completion_date=None,
            confidence=Confidence.LOW,
            remaining_hours=round(remaining_hours, 2),
            estimated_weeks=weeks,
            current_velocity=max(hours_per_week, 0.0),
            on_track=None,
            scheduled_end_date=roadmap.end_date,
            days_ahead_or_behind=None,
            message=message,
        )

    if hours_per_week <= 0:
        return undated(NO_VELOCITY_MESSAGE)

    weeks = remaining_hours / hours_per_week
    if weeks > MAX_PREDICTION_WEEKS:
        logger.info(
            "Prediction beyond horizon",
            roadmap_id=roadmap.id,
            remaining_hours=remaining_hours,
            hours_per_week=hours_per_week,
        )
        return undated(BEYOND_HORIZON_MESSAGE, round(weeks, 1))
    predicted = now + timedelta(weeks=weeks)

    return Prediction(
        roadmap_id=roadmap.id,
        predicted_completion_date=predicted,
        confidence=confidence_for(velocity.totals.tasks_completed),
        remaining_hours=round(remaining_hours, 2),
        estimated_weeks=round(weeks, 1),
        current_velocity=hours_per_week,
        on_track=predicted < roadmap.end_date,
        scheduled_end_date=roadmap.end_date,
        days_ahead_or_behind=days_between(roadmap.end_date, predicted),
    )


async def predict_completion(
    db: AsyncSession,
    roadmap_id: int,
    *,
    user_id: int,
    now: datetime | None = None,
    velocity: VelocityReport | None = None,
) -> Prediction:
    """Project a completion date from remaining effort and 30-day velocity.

    With zero velocity the prediction is ``None`` with low confidence
    rather than a division by zero.
    """
    roadmap = await get_owned_roadmap(db, roadmap_id, user_id)
    now = now or utc_now()

    remaining = await _remaining_hours(db, roadmap_id)
    if velocity is None:
        velocity = await calculate_velocity(db, roadmap.user_id, DEFAULT_WINDOW_DAYS, now=now)

    prediction = _build_prediction(roadmap, remaining, velocity, now)
    logger.debug(
        "Completion predicted",
        roadmap_id=roadmap_id,
        remaining_hours=prediction.remaining_hours,
        confidence=prediction.confidence.value,
    )
    return prediction


# ============================================================================
# Bottlenecks
# ============================================================================


def severity_for(overdue: int, struggling: int) -> Severity:
    if overdue > HIGH_SEVERITY_OVERDUE or struggling > HIGH_SEVERITY_STRUGGLING:
        return Severity.HIGH
    if overdue > MEDIUM_SEVERITY_OVERDUE:
        return Severity.MEDIUM
    return Severity.LOW


async def _overdue_milestones(
    db: AsyncSession, user_id: int, now: datetime
) -> list[OverdueMilestone]:
    rows = (
        await db.execute(
            select(Milestone, Goal, Roadmap)
            .join(Goal, Goal.id == Milestone.goal_id)
            .join(Roadmap, Roadmap.id == Goal.roadmap_id)
            .where(
                Roadmap.user_id == user_id,
                Milestone.status.in_(OPEN_MILESTONE_STATUSES),
                Milestone.due_date < now,
            )
            .order_by(Milestone.due_date, Milestone.id)
        )
    ).all()

    return [
        OverdueMilestone(
            milestone_id=milestone.id,
            milestone_title=milestone.title,
            due_date=milestone.due_date,
            days_overdue=days_between(now, milestone.due_date),
            goal_id=goal.id,
            goal_title=goal.title,
            category=goal.category,
            roadmap_id=roadmap.id,
            roadmap_title=roadmap.title,
        )
        for milestone, goal, roadmap in rows
    ]


async def _struggling_goals(db: AsyncSession, user_id: int) -> list[StrugglingGoal]:
    goal_rows = (
        await db.execute(
            select(Goal, Roadmap)
            .join(Roadmap, Roadmap.id == Goal.roadmap_id)
            .where(Roadmap.user_id == user_id, Goal.status != GoalStatus.COMPLETED)
        )
    ).all()
    if not goal_rows:
        return []

    goal_ids = [goal.id for goal, _ in goal_rows]
    milestone_rows = (
        await db.execute(
            select(Milestone.goal_id, Milestone.status).where(Milestone.goal_id.in_(goal_ids))
        )
    ).all()

    totals: dict[int, int] = defaultdict(int)
    completed: dict[int, int] = defaultdict(int)
    for goal_id, status in milestone_rows:
        totals[goal_id] += 1
        if status == MilestoneStatus.COMPLETED:
            completed[goal_id] += 1

    struggling = []
    for goal, roadmap in goal_rows:
        total = totals[goal.id]
        rate = _percentage(completed[goal.id], total)
        if total >= STRUGGLING_MIN_MILESTONES and rate < STRUGGLING_MAX_RATE:
            struggling.append(
                StrugglingGoal(
                    goal_id=goal.id,
                    goal_title=goal.title,
                    category=goal.category,
                    roadmap_id=roadmap.id,
                    roadmap_title=roadmap.title,
                    completion_rate=rate,
                    total_milestones=total,
                    completed_milestones=completed[goal.id],
                )
            )

    struggling.sort(key=lambda g: (g.completion_rate, g.goal_id))
    return struggling


async def _underperforming_categories(
    db: AsyncSession, user_id: int
) -> list[UnderperformingCategory]:
    rows = (
        await db.execute(
            select(Goal.category, RoadmapTask.status)
            .select_from(RoadmapTask)
            .join(Milestone, Milestone.id == RoadmapTask.milestone_id)
            .join(Goal, Goal.id == Milestone.goal_id)
            .join(Roadmap, Roadmap.id == Goal.roadmap_id)
            .where(Roadmap.user_id == user_id)
        )
    ).all()

    totals: dict[GoalCategory, int] = defaultdict(int)
    completed: dict[GoalCategory, int] = defaultdict(int)
    for category, status in rows:
        totals[category] += 1
        if status == TaskStatus.COMPLETED:
            completed[category] += 1

    underperforming = [
        UnderperformingCategory(
            category=category,
            total_tasks=total,
            completed_tasks=completed[category],
            completion_rate=_percentage(completed[category], total),
        )
        for category, total in totals.items()
        if total >= UNDERPERFORMING_MIN_TASKS
        and _percentage(completed[category], total) < UNDERPERFORMING_MAX_RATE
    ]
    underperforming.sort(key=lambda c: (c.completion_rate, c.category.value))
    return underperforming


async def detect_bottlenecks(
    db: AsyncSession,
    user_id: int,
    *,
    now: datetime | None = None,
) -> BottleneckReport:
    """Overdue milestones, struggling goals and underperforming categories."""
    now = now or utc_now()

    overdue = await _overdue_milestones(db, user_id, now)
    struggling = await _struggling_goals(db, user_id)
    underperforming = await _underperforming_categories(db, user_id)

    summary = BottleneckSummary(
        total_overdue=len(overdue),
        struggling_goals_count=len(struggling),
        underperforming_categories_count=len(underperforming),
        severity=severity_for(len(overdue), len(struggling)),
    )
    logger.debug(
        "Bottlenecks detected",
        user_id=user_id,
        overdue=summary.total_overdue,
        struggling=summary.struggling_goals_count,
        severity=summary.severity.value,
    )
    return BottleneckReport(
        overdue_milestones=overdue,
        struggling_goals=struggling,
        underperforming_categories=underperforming,
        summary=summary,
    )


# ============================================================================
# Streak
# ============================================================================


def streaks_from_dates(active_days: set[date], today: date) -> tuple[int, int]:
    """Return ``(current, longest)`` runs of consecutive active days."""
    current = 0
    day = today
    while day in active_days:
        current += 1
        day -= timedelta(days=1)

    longest = 0
    run = 0
    previous: date | None = None
    for day in sorted(active_days):
        run = run + 1 if previous is not None and day - previous == timedelta(days=1) else 1
        longest = max(longest, run)
        previous = day

    return current, max(longest, current)


async def get_streak(
    db: AsyncSession,
    user_id: int,
    *,
    now: datetime | None = None,
) -> StreakInfo:
    """Consecutive calendar days with at least one completed roadmap task."""
    now = now or utc_now()

    completed_at = (
        await db.execute(
            select(RoadmapTask.completed_at)
            .join(Roadmap, Roadmap.id == RoadmapTask.roadmap_id)
            .where(
                Roadmap.user_id == user_id,
                RoadmapTask.status == TaskStatus.COMPLETED,
                RoadmapTask.completed_at.is_not(None),
            )
        )
    ).scalars().all()

    active_days = {moment.date() for moment in completed_at}
    if not active_days:
        return StreakInfo(current_streak=0, longest_streak=0, last_active_date=None, total_active_days=0)

    current, longest = streaks_from_dates(active_days, now.date())
    return StreakInfo(
        current_streak=current,
        longest_streak=longest,
        last_active_date=max(active_days),
        total_active_days=len(active_days),
    )


# ============================================================================
# Category distribution and report
# ============================================================================


async def get_category_distribution(db: AsyncSession, user_id: int) -> CategoryDistribution:
    """Goals, milestones and effort per category, most goals first."""
    goal_rows = (
        await db.execute(
            select(Goal.id, Goal.category)
            .join(Roadmap, Roadmap.id == Goal.roadmap_id)
            .where(Roadmap.user_id == user_id)
        )
    ).all()
    category_of = {goal_id: category for goal_id, category in goal_rows}

    milestone_rows = []
    if category_of:
        milestone_rows = (
            await db.execute(
                select(Milestone.goal_id, Milestone.status, Milestone.estimated_effort_hours).where(
                    Milestone.goal_id.in_(list(category_of))
                )
            )
        ).all()

    goals_count: dict[GoalCategory, int] = defaultdict(int)
    milestones_total: dict[GoalCategory, int] = defaultdict(int)
    milestones_completed: dict[GoalCategory, int] = defaultdict(int)
    hours: dict[GoalCategory, float] = defaultdict(float)

    for category in category_of.values():
        goals_count[category] += 1
    for goal_id, status, effort in milestone_rows:
        category = category_of[goal_id]
        milestones_total[category] += 1
        hours[category] += effort or 0
        if status == MilestoneStatus.COMPLETED:
            milestones_completed[category] += 1

    distribution = [
        CategoryStats(
            category=category,
            goals_count=count,
            milestones_total=milestones_total[category],
            milestones_completed=milestones_completed[category],
            estimated_hours=round(hours[category], 2),
            completion_rate=_percentage(milestones_completed[category], milestones_total[category]),
        )
        for category, count in goals_count.items()
    ]
    distribution.sort(key=lambda c: (-c.goals_count, c.category.value))

    total_goals = sum(c.goals_count for c in distribution)
    expected = total_goals / len(distribution) if distribution else 0.0
    is_balanced = all(abs(c.goals_count - expected) <= BALANCE_TOLERANCE for c in distribution)

    return CategoryDistribution(
        distribution=distribution,
        summary=CategoryDistributionSummary(
            total_categories=len(distribution),
            total_goals=total_goals,
            is_balanced=is_balanced,
            most_focused_category=distribution[0].category if distribution else None,
            least_focused_category=distribution[-1].category if distribution else None,
        ),
    )


async def generate_analytics_report(
    db: AsyncSession,
    user_id: int,
    *,
    roadmap_id: int | None = None,
    now: datetime | None = None,
) -> AnalyticsReport:
    """Everything above in one payload.

    Predictions cover ``roadmap_id`` when given, otherwise every active
    roadmap of the user.
    """
    now = now or utc_now()

    velocity = await calculate_velocity(db, user_id, DEFAULT_WINDOW_DAYS, now=now)
    bottlenecks = await detect_bottlenecks(db, user_id, now=now)
    categories = await get_category_distribution(db, user_id)

    if roadmap_id is not None:
        roadmaps = [await get_owned_roadmap(db, roadmap_id, user_id)]
    else:
        roadmaps = list(
            (
                await db.execute(
                    select(Roadmap)
                    .where(Roadmap.user_id == user_id, Roadmap.status == RoadmapStatus.ACTIVE)
                    .order_by(Roadmap.id)
                )
            )
            .scalars()
            .all()
        )

    predictions = [
        RoadmapPrediction(
            roadmap_id=roadmap.id,
            roadmap_title=roadmap.title,
            prediction=_build_prediction(
                roadmap, await _remaining_hours(db, roadmap.id), velocity, now
            ),
        )
        for roadmap in roadmaps
    ]

    status_counts = dict(
        (
            await db.execute(
                select(Roadmap.status, func.count(Roadmap.id))
                .where(Roadmap.user_id == user_id)
                .group_by(Roadmap.status)
            )
        ).all()
    )

    logger.info("Analytics report generated", user_id=user_id, roadmaps=len(predictions))
    return AnalyticsReport(
        generated_at=now,
        user_id=user_id,
        overview=AnalyticsOverview(
            total_roadmaps=sum(status_counts.values()),
            active_roadmaps=status_counts.get(RoadmapStatus.ACTIVE, 0),
            completed_roadmaps=status_counts.get(RoadmapStatus.COMPLETED, 0),
        ),
        velocity=velocity,
        predictions=predictions,
        bottlenecks=bottlenecks,
        category_distribution=categories,
    )
