"""Roadmap schemas for API requests and responses."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models.enums import (
    GenerationMethod,
    GoalCategory,
    GoalStatus,
    MilestoneStatus,
    RoadmapStatus,
    TaskPriority,
    TaskSource,
    TaskStatus,
)

# ============================================================================
# Roadmap
# ============================================================================


class RoadmapCreate(BaseModel):
    """Create a new roadmap."""

    title: str = Field(min_length=5, max_length=200)
    vision_statement: str | None = Field(default=None, max_length=2000)
    start_date: datetime
    end_date: datetime | None = None  # defaults to start_date + 5 years
    status: RoadmapStatus = RoadmapStatus.DRAFT
    generation_method: GenerationMethod = GenerationMethod.MANUAL

    @model_validator(mode="after")
    def _check_dates(self) -> "RoadmapCreate":
        if self.end_date is not None and self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class RoadmapUpdate(BaseModel):
    """Update an existing roadmap."""

    title: str | None = Field(default=None, min_length=5, max_length=200)
    vision_statement: str | None = Field(default=None, max_length=2000)
    end_date: datetime | None = None
    status: RoadmapStatus | None = None


class RoadmapResponse(BaseModel):
    """Roadmap response."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    title: str
    vision_statement: str | None
    start_date: datetime
    end_date: datetime
    status: RoadmapStatus
    generation_method: GenerationMethod
    progress_percentage: float
    created_at: datetime
    updated_at: datetime


# ============================================================================
# Goal
# ============================================================================


class GoalCreate(BaseModel):
    category: GoalCategory
    title: str = Field(min_length=5, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    priority: int = Field(default=3, ge=1, le=5)
    target_year: int = Field(ge=1, le=5)
    order: int = Field(default=0, ge=0)


class GoalUpdate(BaseModel):
    category: GoalCategory | None = None
    title: str | None = Field(default=None, min_length=5, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    priority: int | None = Field(default=None, ge=1, le=5)
    target_year: int | None = Field(default=None, ge=1, le=5)
    status: GoalStatus | None = None
    order: int | None = Field(default=None, ge=0)


class GoalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    roadmap_id: int
    category: GoalCategory
    title: str
    description: str | None
    priority: int
    target_year: int
    order: int
    completion_percentage: float
    status: GoalStatus


# ============================================================================
# Milestone
# ============================================================================


class MilestoneCreate(BaseModel):
    title: str = Field(min_length=5, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    due_date: datetime
    estimated_effort_hours: int | None = Field(default=None, ge=0)
    order: int = Field(default=0, ge=0)


class MilestoneUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=5, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    due_date: datetime | None = None
    estimated_effort_hours: int | None = Field(default=None, ge=0)
    status: MilestoneStatus | None = None
    order: int | None = Field(default=None, ge=0)


class MilestoneResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    goal_id: int
    title: str
    description: str | None
    due_date: datetime
    estimated_effort_hours: int | None
    order: int
    status: MilestoneStatus
    completion_date: datetime | None


# ============================================================================
# Tasks
# ============================================================================


class RoadmapTaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    milestone_id: int
    roadmap_id: int
    title: str
    description: str | None
    scheduled_date: datetime | None
    estimated_duration: int | None
    priority: TaskPriority
    status: TaskStatus
    source: TaskSource
    task_id: int | None
    completed_at: datetime | None


class TaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    title: str
    description: str | None
    start_time: datetime | None
    end_time: datetime | None
    is_all_day: bool
    category: str | None
    priority: TaskPriority
    status: TaskStatus


class TaskGenerationRequest(BaseModel):
    """Options for breaking a milestone into roadmap tasks."""

    use_llm: bool = False
    task_count: int = Field(default=5, ge=1, le=20)
    start_date: datetime | None = None


class TaskConversionRequest(BaseModel):
    """Overrides applied when promoting a roadmap task into the planner."""

    title: str | None = None
    description: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    category: str | None = None
    is_all_day: bool = False


class RoadmapStats(BaseModel):
    """Counts by status across one roadmap."""

    total_goals: int
    completed_goals: int
    in_progress_goals: int
    total_milestones: int
    completed_milestones: int
    overdue_milestones: int
    total_tasks: int
    completed_tasks: int
    pending_tasks: int
    category_distribution: dict[str, int]
