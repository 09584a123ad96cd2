"""Roadmap service for ownership-scoped CRUD and milestone completion.

Every lookup resolves the entity through the Roadmap -> Goal -> Milestone
chain back to the owning user. A row owned by someone else is reported
exactly like a missing row.
"""

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import add_years, as_naive_utc, utc_now
from app.core.errors import NotFoundError
from app.core.logging import get_logger
from app.models.enums import (
    OPEN_MILESTONE_STATUSES,
    GoalStatus,
    MilestoneStatus,
    RoadmapStatus,
    TaskStatus,
)
from app.models.roadmap import Goal, Milestone, Roadmap, RoadmapTask
from app.schemas.roadmap import (
    GoalCreate,
    GoalUpdate,
    MilestoneCreate,
    MilestoneUpdate,
    RoadmapCreate,
    RoadmapStats,
    RoadmapUpdate,
)
from app.services.events import Emit, MilestoneCompleted, safe_emit
from app.services.progress_service import recompute_roadmap_progress, refresh_progress

logger = get_logger(__name__)

DEFAULT_ROADMAP_YEARS = 5


# ============================================================================
# Ownership-scoped lookups
# ============================================================================


async def get_owned_roadmap(db: AsyncSession, roadmap_id: int, user_id: int) -> Roadmap:
    roadmap = await db.get(Roadmap, roadmap_id)
    if roadmap is None or roadmap.user_id != user_id:
        raise NotFoundError("Roadmap", roadmap_id)
    return roadmap


async def get_owned_goal(db: AsyncSession, goal_id: int, user_id: int) -> Goal:
    result = await db.execute(
        select(Goal)
        .join(Roadmap, Roadmap.id == Goal.roadmap_id)
        .where(Goal.id == goal_id, Roadmap.user_id == user_id)
    )
    goal = result.scalar_one_or_none()
    if goal is None:
        raise NotFoundError("Goal", goal_id)
    return goal


async def get_owned_milestone(db: AsyncSession, milestone_id: int, user_id: int) -> Milestone:
    result = await db.execute(
        select(Milestone)
        .join(Goal, Goal.id == Milestone.goal_id)
        .join(Roadmap, Roadmap.id == Goal.roadmap_id)
        .where(Milestone.id == milestone_id, Roadmap.user_id == user_id)
    )
    milestone = result.scalar_one_or_none()
    if milestone is None:
        raise NotFoundError("Milestone", milestone_id)
    return milestone


async def get_owned_roadmap_task(db: AsyncSession, task_id: int, user_id: int) -> RoadmapTask:
    result = await db.execute(
        select(RoadmapTask)
        .join(Roadmap, Roadmap.id == RoadmapTask.roadmap_id)
        .where(RoadmapTask.id == task_id, Roadmap.user_id == user_id)
    )
    task = result.scalar_one_or_none()
    if task is None:
        raise NotFoundError("Roadmap task", task_id)
    return task


# ============================================================================
# Roadmaps
# ============================================================================


async def create_roadmap(db: AsyncSession, user_id: int, data: RoadmapCreate) -> Roadmap:
    """Create a roadmap; ``end_date`` defaults to five years after ``start_date``."""
    start_date = as_naive_utc(data.start_date)
    end_date = (
        as_naive_utc(data.end_date)
        if data.end_date is not None
        else add_years(start_date, DEFAULT_ROADMAP_YEARS)
    )
    roadmap = Roadmap(
        user_id=user_id,
        title=data.title,
        vision_statement=data.vision_statement,
        start_date=start_date,
        end_date=end_date,
        status=data.status,
        generation_method=data.generation_method,
        progress_percentage=0.0,
    )
    db.add(roadmap)
    await db.flush()

    logger.info("Roadmap created", roadmap_id=roadmap.id, user_id=user_id)
    return roadmap


async def list_roadmaps(
    db: AsyncSession,
    user_id: int,
    status: RoadmapStatus | None = None,
) -> list[Roadmap]:
    query = select(Roadmap).where(Roadmap.user_id == user_id)
    if status is not None:
        query = query.where(Roadmap.status == status)
    result = await db.execute(query.order_by(Roadmap.created_at.desc(), Roadmap.id.desc()))
    return list(result.scalars().all())


async def update_roadmap(
    db: AsyncSession,
    roadmap_id: int,
    user_id: int,
    data: RoadmapUpdate,
) -> Roadmap:
    roadmap = await get_owned_roadmap(db, roadmap_id, user_id)

    changes = data.model_dump(exclude_unset=True)
    if changes.get("end_date") is not None:
        changes["end_date"] = as_naive_utc(changes["end_date"])
    for field, value in changes.items():
        if value is not None:
            setattr(roadmap, field, value)
    await db.flush()

    logger.info("Roadmap updated", roadmap_id=roadmap_id, fields=sorted(changes))
    return roadmap


async def delete_roadmap(db: AsyncSession, roadmap_id: int, user_id: int) -> None:
    roadmap = await get_owned_roadmap(db, roadmap_id, user_id)
    await db.delete(roadmap)
    await db.flush()
    logger.info("Roadmap deleted", roadmap_id=roadmap_id)


# ============================================================================
# Goals
# ============================================================================


async def create_goal(
    db: AsyncSession,
    roadmap_id: int,
    user_id: int,
    data: GoalCreate,
) -> Goal:
    await get_owned_roadmap(db, roadmap_id, user_id)

    goal = Goal(
        roadmap_id=roadmap_id,
        category=data.category,
        title=data.title,
        description=data.description,
        priority=data.priority,
        target_year=data.target_year,
        order=data.order,
        completion_percentage=0.0,
        status=GoalStatus.NOT_STARTED,
    )
    db.add(goal)
    await db.flush()

    # A new empty goal pulls the roadmap mean down
    await recompute_roadmap_progress(db, roadmap_id)

    logger.info("Goal created", goal_id=goal.id, roadmap_id=roadmap_id, category=goal.category.value)
    return goal


async def list_goals(db: AsyncSession, roadmap_id: int, user_id: int) -> list[Goal]:
    await get_owned_roadmap(db, roadmap_id, user_id)
    result = await db.execute(
        select(Goal).where(Goal.roadmap_id == roadmap_id).order_by(Goal.order, Goal.id)
    )
    return list(result.scalars().all())


async def update_goal(db: AsyncSession, goal_id: int, user_id: int, data: GoalUpdate) -> Goal:
    goal = await get_owned_goal(db, goal_id, user_id)

    changes = data.model_dump(exclude_unset=True)
    for field, value in changes.items():
        if value is not None:
            setattr(goal, field, value)
    await db.flush()

    logger.info("Goal updated", goal_id=goal_id, fields=sorted(changes))
    return goal


async def delete_goal(db: AsyncSession, goal_id: int, user_id: int) -> None:
    goal = await get_owned_goal(db, goal_id, user_id)
    roadmap_id = goal.roadmap_id
    await db.delete(goal)
    await db.flush()

    await recompute_roadmap_progress(db, roadmap_id)
    logger.info("Goal deleted", goal_id=goal_id, roadmap_id=roadmap_id)


# ============================================================================
# Milestones
# ============================================================================


async def create_milestone(
    db: AsyncSession,
    goal_id: int,
    user_id: int,
    data: MilestoneCreate,
    *,
    emit: Emit | None = None,
) -> Milestone:
    await get_owned_goal(db, goal_id, user_id)

    milestone = Milestone(
        goal_id=goal_id,
        title=data.title,
        description=data.description,
        due_date=as_naive_utc(data.due_date),
        estimated_effort_hours=data.estimated_effort_hours,
        order=data.order,
        status=MilestoneStatus.NOT_STARTED,
    )
    db.add(milestone)
    await db.flush()

    await refresh_progress(db, goal_id, emit=emit)

    logger.info("Milestone created", milestone_id=milestone.id, goal_id=goal_id)
    return milestone


async def list_milestones(db: AsyncSession, goal_id: int, user_id: int) -> list[Milestone]:
    await get_owned_goal(db, goal_id, user_id)
    result = await db.execute(
        select(Milestone)
        .where(Milestone.goal_id == goal_id)
        .order_by(Milestone.order, Milestone.due_date, Milestone.id)
    )
    return list(result.scalars().all())


def _apply_milestone_status(
    milestone: Milestone,
    status: MilestoneStatus,
    now: datetime,
) -> bool:
    """Set ``status``; returns True when the milestone just became completed."""
    was_completed = milestone.status == MilestoneStatus.COMPLETED
    milestone.status = status
    if status == MilestoneStatus.COMPLETED:
        if not was_completed:
            milestone.completion_date = now
        return not was_completed
    milestone.completion_date = None
    return False


async def update_milestone(
    db: AsyncSession,
    milestone_id: int,
    user_id: int,
    data: MilestoneUpdate,
    *,
    emit: Emit | None = None,
    now: datetime | None = None,
) -> Milestone:
    milestone = await get_owned_milestone(db, milestone_id, user_id)
    now = now or utc_now()

    changes = data.model_dump(exclude_unset=True)
    status = changes.pop("status", None)
    if changes.get("due_date") is not None:
        changes["due_date"] = as_naive_utc(changes["due_date"])
    for field, value in changes.items():
        if value is not None:
            setattr(milestone, field, value)

    became_completed = False
    if status is not None:
        became_completed = _apply_milestone_status(milestone, status, now)
    await db.flush()

    if became_completed:
        safe_emit(emit, MilestoneCompleted(milestone_id=milestone.id, goal_id=milestone.goal_id))
    await refresh_progress(db, milestone.goal_id, emit=emit)

    logger.info("Milestone updated", milestone_id=milestone_id, fields=sorted(data.model_fields_set))
    return milestone


async def complete_milestone(
    db: AsyncSession,
    milestone_id: int,
    user_id: int,
    *,
    emit: Emit | None = None,
    now: datetime | None = None,
) -> Milestone:
    """Mark a milestone completed and roll the change up to goal and roadmap.

    Completing an already completed milestone keeps its original
    completion date and emits nothing.
    """
    milestone = await get_owned_milestone(db, milestone_id, user_id)
    became_completed = _apply_milestone_status(
        milestone, MilestoneStatus.COMPLETED, now or utc_now()
    )
    await db.flush()

    if became_completed:
        safe_emit(emit, MilestoneCompleted(milestone_id=milestone.id, goal_id=milestone.goal_id))
    await refresh_progress(db, milestone.goal_id, emit=emit)

    logger.info("Milestone completed", milestone_id=milestone_id, goal_id=milestone.goal_id)
    return milestone


async def delete_milestone(
    db: AsyncSession,
    milestone_id: int,
    user_id: int,
    *,
    emit: Emit | None = None,
) -> None:
    milestone = await get_owned_milestone(db, milestone_id, user_id)
    goal_id = milestone.goal_id
    await db.delete(milestone)
    await db.flush()

    await refresh_progress(db, goal_id, emit=emit)
    logger.info("Milestone deleted", milestone_id=milestone_id, goal_id=goal_id)


async def active_roadmaps_with_goals(
    db: AsyncSession, user_id: int
) -> list[tuple[Roadmap, list[Goal]]]:
    """Active roadmaps of a user, each with its goals in id order."""
    roadmaps = (
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
    if not roadmaps:
        return []

    goals = (
        (
            await db.execute(
                select(Goal).where(Goal.roadmap_id.in_([r.id for r in roadmaps])).order_by(Goal.id)
            )
        )
        .scalars()
        .all()
    )
    by_roadmap: dict[int, list[Goal]] = {r.id: [] for r in roadmaps}
    for goal in goals:
        by_roadmap[goal.roadmap_id].append(goal)
    return [(r, by_roadmap[r.id]) for r in roadmaps]


# ============================================================================
# Stats
# ============================================================================


async def get_roadmap_stats(
    db: AsyncSession,
    roadmap_id: int,
    *,
    user_id: int,
    now: datetime | None = None,
) -> RoadmapStats:
    """Goal, milestone and task counts by status for one roadmap."""
    await get_owned_roadmap(db, roadmap_id, user_id)
    now = now or utc_now()

    goal_rows = (
        await db.execute(select(Goal.status, Goal.category).where(Goal.roadmap_id == roadmap_id))
    ).all()
    milestone_rows = (
        await db.execute(
            select(Milestone.status, Milestone.due_date)
            .join(Goal, Goal.id == Milestone.goal_id)
            .where(Goal.roadmap_id == roadmap_id)
        )
    ).all()
    task_rows = (
        await db.execute(
            select(RoadmapTask.status, func.count(RoadmapTask.id))
            .where(RoadmapTask.roadmap_id == roadmap_id)
            .group_by(RoadmapTask.status)
        )
    ).all()

    category_distribution: dict[str, int] = {}
    for _, category in goal_rows:
        category_distribution[category.value] = category_distribution.get(category.value, 0) + 1

    overdue = sum(
        1
        for status, due_date in milestone_rows
        if status == MilestoneStatus.OVERDUE
        or (status in OPEN_MILESTONE_STATUSES and due_date < now)
    )
    task_counts = {status: count for status, count in task_rows}

    return RoadmapStats(
        total_goals=len(goal_rows),
        completed_goals=sum(1 for status, _ in goal_rows if status == GoalStatus.COMPLETED),
        in_progress_goals=sum(1 for status, _ in goal_rows if status == GoalStatus.IN_PROGRESS),
        total_milestones=len(milestone_rows),
        completed_milestones=sum(
            1 for status, _ in milestone_rows if status == MilestoneStatus.COMPLETED
        ),
        overdue_milestones=overdue,
        total_tasks=sum(task_counts.values()),
        completed_tasks=task_counts.get(TaskStatus.COMPLETED, 0),
        pending_tasks=task_counts.get(TaskStatus.PENDING, 0),
        category_distribution=category_distribution,
    )
