"""Progress rollup: milestones -> goal percentage -> roadmap percentage.

Both recomputes read the current children and overwrite the derived
field, so they are idempotent and concurrent runs converge on the same
value without locking.
"""

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError
from app.core.logging import get_logger
from app.models.enums import GoalStatus, MilestoneStatus
from app.models.roadmap import Goal, Milestone, Roadmap
from app.services.events import Emit, GoalCompleted, safe_emit

logger = get_logger(__name__)


def status_for_percentage(percentage: float) -> GoalStatus:
    if percentage >= 100:
        return GoalStatus.COMPLETED
    if percentage > 0:
        return GoalStatus.IN_PROGRESS
    return GoalStatus.NOT_STARTED


async def recompute_goal_progress(
    db: AsyncSession,
    goal_id: int,
    *,
    emit: Emit | None = None,
) -> Goal:
    """Recompute a goal's completion percentage and status from its milestones.

    Emits ``GoalCompleted`` when the goal moves into ``completed`` from any
    other status.
    """
    goal = await db.get(Goal, goal_id)
    if goal is None:
        raise NotFoundError("Goal", goal_id)

    result = await db.execute(
        select(
            func.count(Milestone.id),
            func.coalesce(
                func.sum(case((Milestone.status == MilestoneStatus.COMPLETED, 1), else_=0)), 0
            ),
        ).where(Milestone.goal_id == goal_id)
    )
    total, completed = result.one()

    percentage = round(completed / total * 100, 2) if total else 0.0
    previous_status = goal.status
    new_status = status_for_percentage(percentage)

    goal.completion_percentage = percentage
    goal.status = new_status
    await db.flush()

    logger.info(
        "Goal progress recomputed",
        goal_id=goal_id,
        completed=completed,
        total=total,
        percentage=percentage,
        status=new_status.value,
    )

    if new_status is GoalStatus.COMPLETED and previous_status != GoalStatus.COMPLETED:
        safe_emit(emit, GoalCompleted(goal_id=goal.id, roadmap_id=goal.roadmap_id))

    return goal


async def recompute_roadmap_progress(db: AsyncSession, roadmap_id: int) -> Roadmap:
    """Set a roadmap's progress to the unweighted mean of its goals' percentages."""
    roadmap = await db.get(Roadmap, roadmap_id)
    if roadmap is None:
        raise NotFoundError("Roadmap", roadmap_id)

    result = await db.execute(
        select(Goal.completion_percentage).where(Goal.roadmap_id == roadmap_id)
    )
    percentages = list(result.scalars().all())

    progress = round(sum(percentages) / len(percentages), 2) if percentages else 0.0
    roadmap.progress_percentage = progress
    await db.flush()

    logger.info(
        "Roadmap progress recomputed",
        roadmap_id=roadmap_id,
        goals=len(percentages),
        progress=progress,
    )
    return roadmap


async def refresh_progress(
    db: AsyncSession,
    goal_id: int,
    *,
    emit: Emit | None = None,
) -> Roadmap:
    """Run the full chain after a milestone mutation: goal first, then its roadmap."""
    goal = await recompute_goal_progress(db, goal_id, emit=emit)
    return await recompute_roadmap_progress(db, goal.roadmap_id)
