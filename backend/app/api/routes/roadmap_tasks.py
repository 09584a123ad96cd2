"""Roadmap task routes: generation, completion and promotion to planner tasks."""

from fastapi import APIRouter, status

from app.api.deps import CurrentUser, DbSession, TextClientDep
from app.core.logging import get_logger
from app.schemas.roadmap import (
    RoadmapTaskResponse,
    TaskConversionRequest,
    TaskGenerationRequest,
    TaskResponse,
)
from app.services import task_generator_service

logger = get_logger(__name__)
router = APIRouter(prefix="/roadmap-tasks", tags=["roadmap-tasks"])


@router.post(
    "/milestones/{milestone_id}/generate",
    response_model=list[RoadmapTaskResponse],
    status_code=status.HTTP_201_CREATED,
)
async def generate_tasks(
    milestone_id: int,
    data: TaskGenerationRequest,
    db: DbSession,
    user_id: CurrentUser,
    text_client: TextClientDep,
) -> list[RoadmapTaskResponse]:
    """Schedule tasks for a milestone, model-assisted when ``use_llm`` is set."""
    tasks = await task_generator_service.generate_tasks_for_milestone(
        db,
        user_id,
        milestone_id,
        text_client=text_client,
        use_llm=data.use_llm,
        task_count=data.task_count,
        start_date=data.start_date,
    )
    return [RoadmapTaskResponse.model_validate(t) for t in tasks]


@router.post("/{roadmap_task_id}/complete", response_model=RoadmapTaskResponse)
async def complete_task(
    roadmap_task_id: int, db: DbSession, user_id: CurrentUser
) -> RoadmapTaskResponse:
    task = await task_generator_service.complete_roadmap_task(
        db, roadmap_task_id, user_id=user_id
    )
    return RoadmapTaskResponse.model_validate(task)


@router.post(
    "/{roadmap_task_id}/convert",
    response_model=TaskResponse,
    status_code=status.HTTP_201_CREATED,
)
async def convert_task(
    roadmap_task_id: int,
    db: DbSession,
    user_id: CurrentUser,
    data: TaskConversionRequest | None = None,
) -> TaskResponse:
    """Promote a roadmap task into the daily planner and link the two."""
    task = await task_generator_service.convert_roadmap_task_to_task(
        db, roadmap_task_id, user_id=user_id, overrides=data
    )
    return TaskResponse.model_validate(task)


@router.post("/{roadmap_task_id}/link/{task_id}", response_model=RoadmapTaskResponse)
async def link_task(
    roadmap_task_id: int,
    task_id: int,
    db: DbSession,
    user_id: CurrentUser,
) -> RoadmapTaskResponse:
    roadmap_task = await task_generator_service.link_roadmap_task(
        db, roadmap_task_id, task_id, user_id=user_id
    )
    return RoadmapTaskResponse.model_validate(roadmap_task)
