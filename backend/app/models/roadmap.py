"""Roadmap planning models: Roadmap -> Goal -> Milestone -> RoadmapTask."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.clock import utc_now
from app.core.database import Base
from app.models.enums import (
    GenerationMethod,
    GoalCategory,
    GoalStatus,
    MilestoneStatus,
    RoadmapStatus,
    TaskPriority,
    TaskSource,
    TaskStatus,
    enum_column,
)


class Roadmap(Base):
    """A user's multi-year plan."""

    __tablename__ = "roadmaps"
    __table_args__ = (Index("ix_roadmaps_user_status", "user_id", "status"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))

    title: Mapped[str] = mapped_column(String(200))
    vision_statement: Mapped[str | None] = mapped_column(Text, default=None)
    start_date: Mapped[datetime] = mapped_column(DateTime)
    end_date: Mapped[datetime] = mapped_column(DateTime)

    status: Mapped[RoadmapStatus] = mapped_column(
        enum_column(RoadmapStatus), default=RoadmapStatus.DRAFT
    )
    generation_method: Mapped[GenerationMethod] = mapped_column(
        enum_column(GenerationMethod), default=GenerationMethod.MANUAL
    )

    # Derived: unweighted mean of goal completion percentages
    progress_percentage: Mapped[float] = mapped_column(Float, default=0.0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now)


class Goal(Base):
    """A category-tagged objective inside a roadmap."""

    __tablename__ = "goals"

    id: Mapped[int] = mapped_column(primary_key=True)
    roadmap_id: Mapped[int] = mapped_column(
        ForeignKey("roadmaps.id", ondelete="CASCADE"), index=True
    )

    category: Mapped[GoalCategory] = mapped_column(enum_column(GoalCategory))
    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(Text, default=None)
    priority: Mapped[int] = mapped_column(Integer, default=3)  # 1 (low) .. 5 (high)
    target_year: Mapped[int] = mapped_column(Integer, default=1)  # 1..5
    order: Mapped[int] = mapped_column(Integer, default=0)

    # Derived: completed milestones / total milestones * 100
    completion_percentage: Mapped[float] = mapped_column(Float, default=0.0)
    status: Mapped[GoalStatus] = mapped_column(
        enum_column(GoalStatus), default=GoalStatus.NOT_STARTED
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now)


class Milestone(Base):
    """A time-boxed sub-objective of a goal."""

    __tablename__ = "milestones"
    __table_args__ = (Index("ix_milestones_status_due", "status", "due_date"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    goal_id: Mapped[int] = mapped_column(ForeignKey("goals.id", ondelete="CASCADE"), index=True)

    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(Text, default=None)
    due_date: Mapped[datetime] = mapped_column(DateTime)
    estimated_effort_hours: Mapped[int | None] = mapped_column(Integer, default=None)
    order: Mapped[int] = mapped_column(Integer, default=0)

    status: Mapped[MilestoneStatus] = mapped_column(
        enum_column(MilestoneStatus), default=MilestoneStatus.NOT_STARTED
    )
    completion_date: Mapped[datetime | None] = mapped_column(DateTime, default=None)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now)


class RoadmapTask(Base):
    """A concrete, schedulable unit of work under a milestone."""

    __tablename__ = "roadmap_tasks"
    __table_args__ = (
        Index("ix_roadmap_tasks_roadmap_status", "roadmap_id", "status"),
        Index("ix_roadmap_tasks_completed_at", "completed_at"),
        Index("ix_roadmap_tasks_scheduled_date", "scheduled_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    milestone_id: Mapped[int] = mapped_column(
        ForeignKey("milestones.id", ondelete="CASCADE"), index=True
    )
    roadmap_id: Mapped[int] = mapped_column(ForeignKey("roadmaps.id", ondelete="CASCADE"))

    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(Text, default=None)
    scheduled_date: Mapped[datetime | None] = mapped_column(DateTime, default=None)
    estimated_duration: Mapped[int | None] = mapped_column(Integer, default=60)  # minutes

    priority: Mapped[TaskPriority] = mapped_column(
        enum_column(TaskPriority), default=TaskPriority.NORMAL
    )
    status: Mapped[TaskStatus] = mapped_column(enum_column(TaskStatus), default=TaskStatus.PENDING)
    source: Mapped[TaskSource] = mapped_column(enum_column(TaskSource), default=TaskSource.MANUAL)

    # Set once the task is promoted into the daily planner
    task_id: Mapped[int | None] = mapped_column(
        ForeignKey("tasks.id", ondelete="SET NULL"), default=None
    )
    generation_context: Mapped[dict | None] = mapped_column(JSON, default=None)

    completed_at: Mapped[datetime | None] = mapped_column(DateTime, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now)
