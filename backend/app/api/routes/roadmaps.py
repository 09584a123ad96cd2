"""Roadmap, goal and milestone routes."""

from fastapi import APIRouter, status

from app.api.deps import CurrentUser, DbSession, EmitDep
from app.core.logging import get_logger
from app.models.enums import RoadmapStatus
from app.schemas.roadmap import (
    GoalCreate,
    GoalResponse,
    GoalUpdate,
    MilestoneCreate,
    MilestoneResponse,
    MilestoneUpdate,
    RoadmapCreate,
    RoadmapResponse,
    RoadmapStats,
    RoadmapUpdate,
)
from app.services import progress_service, roadmap_service

logger = get_logger(__name__)
router = APIRouter(prefix="/roadmaps", tags=["roadmaps"])


# ============================================================================
# Roadmaps
# ============================================================================


@router.post("", response_model=RoadmapResponse, status_code=status.HTTP_201_CREATED)
async def create_roadmap(data: RoadmapCreate, db: DbSession, user_id: CurrentUser) -> RoadmapResponse:
    roadmap = await roadmap_service.create_roadmap(db, user_id, data)
    return RoadmapResponse.model_validate(roadmap)


@router.get("", response_model=list[RoadmapResponse])
async def list_roadmaps(
    db: DbSession,
    user_id: CurrentUser,
    status: RoadmapStatus | None = None,
) -> list[RoadmapResponse]:
    """List the caller's roadmaps, newest first."""
    roadmaps = await roadmap_service.list_roadmaps(db, user_id, status)
    return [RoadmapResponse.model_validate(r) for r in roadmaps]


@router.get("/{roadmap_id}", response_model=RoadmapResponse)
async def get_roadmap(roadmap_id: int, db: DbSession, user_id: CurrentUser) -> RoadmapResponse:
    roadmap = await roadmap_service.get_owned_roadmap(db, roadmap_id, user_id)
    return RoadmapResponse.model_validate(roadmap)


@router.patch("/{roadmap_id}", response_model=RoadmapResponse)
async def update_roadmap(
    roadmap_id: int,
    data: RoadmapUpdate,
    db: DbSession,
    user_id: CurrentUser,
) -> RoadmapResponse:
    roadmap = await roadmap_service.update_roadmap(db, roadmap_id, user_id, data)
    return RoadmapResponse.model_validate(roadmap)


@router.delete("/{roadmap_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_roadmap(roadmap_id: int, db: DbSession, user_id: CurrentUser) -> None:
    """Delete a roadmap with its goals, milestones and tasks."""
    await roadmap_service.delete_roadmap(db, roadmap_id, user_id)


@router.post("/{roadmap_id}/recompute", response_model=RoadmapResponse)
async def recompute_roadmap(roadmap_id: int, db: DbSession, user_id: CurrentUser) -> RoadmapResponse:
    await roadmap_service.get_owned_roadmap(db, roadmap_id, user_id)
    roadmap = await progress_service.recompute_roadmap_progress(db, roadmap_id)
    return RoadmapResponse.model_validate(roadmap)


@router.get("/{roadmap_id}/stats", response_model=RoadmapStats)
async def get_roadmap_stats(roadmap_id: int, db: DbSession, user_id: CurrentUser) -> RoadmapStats:
    return await roadmap_service.get_roadmap_stats(db, roadmap_id, user_id=user_id)


# ============================================================================
# Goals
# ============================================================================


@router.post(
    "/{roadmap_id}/goals",
    response_model=GoalResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_goal(
    roadmap_id: int,
    data: GoalCreate,
    db: DbSession,
    user_id: CurrentUser,
) -> GoalResponse:
    goal = await roadmap_service.create_goal(db, roadmap_id, user_id, data)
    return GoalResponse.model_validate(goal)


@router.get("/{roadmap_id}/goals", response_model=list[GoalResponse])
async def list_goals(roadmap_id: int, db: DbSession, user_id: CurrentUser) -> list[GoalResponse]:
    goals = await roadmap_service.list_goals(db, roadmap_id, user_id)
    return [GoalResponse.model_validate(g) for g in goals]


@router.get("/goals/{goal_id}", response_model=GoalResponse)
async def get_goal(goal_id: int, db: DbSession, user_id: CurrentUser) -> GoalResponse:
    goal = await roadmap_service.get_owned_goal(db, goal_id, user_id)
    return GoalResponse.model_validate(goal)


@router.patch("/goals/{goal_id}", response_model=GoalResponse)
async def update_goal(
    goal_id: int,
    data: GoalUpdate,
    db: DbSession,
    user_id: CurrentUser,
) -> GoalResponse:
    goal = await roadmap_service.update_goal(db, goal_id, user_id, data)
    return GoalResponse.model_validate(goal)


@router.delete("/goals/{goal_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_goal(goal_id: int, db: DbSession, user_id: CurrentUser) -> None:
    await roadmap_service.delete_goal(db, goal_id, user_id)


@router.post("/goals/{goal_id}/recompute", response_model=GoalResponse)
async def recompute_goal(
    goal_id: int,
    db: DbSession,
    user_id: CurrentUser,
    emit: EmitDep,
) -> GoalResponse:
    """Recompute a goal's progress and its roadmap's."""
    await roadmap_service.get_owned_goal(db, goal_id, user_id)
    await progress_service.refresh_progress(db, goal_id, emit=emit)
    goal = await roadmap_service.get_owned_goal(db, goal_id, user_id)
    return GoalResponse.model_validate(goal)


# ============================================================================
# Milestones
# ============================================================================


@router.post(
    "/goals/{goal_id}/milestones",
    response_model=MilestoneResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_milestone(
    goal_id: int,
    data: MilestoneCreate,
    db: DbSession,
    user_id: CurrentUser,
    emit: EmitDep,
) -> MilestoneResponse:
    milestone = await roadmap_service.create_milestone(db, goal_id, user_id, data, emit=emit)
    return MilestoneResponse.model_validate(milestone)


@router.get("/goals/{goal_id}/milestones", response_model=list[MilestoneResponse])
async def list_milestones(
    goal_id: int, db: DbSession, user_id: CurrentUser
) -> list[MilestoneResponse]:
    milestones = await roadmap_service.list_milestones(db, goal_id, user_id)
    return [MilestoneResponse.model_validate(m) for m in milestones]


@router.patch("/milestones/{milestone_id}", response_model=MilestoneResponse)
async def update_milestone(
    milestone_id: int,
    data: MilestoneUpdate,
    db: DbSession,
    user_id: CurrentUser,
    emit: EmitDep,
) -> MilestoneResponse:
    milestone = await roadmap_service.update_milestone(db, milestone_id, user_id, data, emit=emit)
    return MilestoneResponse.model_validate(milestone)


@router.post("/milestones/{milestone_id}/complete", response_model=MilestoneResponse)
async def complete_milestone(
    milestone_id: int,
    db: DbSession,
    user_id: CurrentUser,
    emit: EmitDep,
) -> MilestoneResponse:
    """Mark a milestone completed and roll progress up to its goal and roadmap."""
    milestone = await roadmap_service.complete_milestone(db, milestone_id, user_id, emit=emit)
    return MilestoneResponse.model_validate(milestone)


@router.delete("/milestones/{milestone_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_milestone(
    milestone_id: int,
    db: DbSession,
    user_id: CurrentUser,
    emit: EmitDep,
) -> None:
    await roadmap_service.delete_milestone(db, milestone_id, user_id, emit=emit)
