"""Closed value sets for roadmap entities."""

from enum import Enum

from sqlalchemy import Enum as SAEnum


class RoadmapStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class GenerationMethod(str, Enum):
    LLM_ASSISTED = "llm_assisted"
    MANUAL = "manual"
    HYBRID = "hybrid"


class GoalCategory(str, Enum):
    CAREER = "career"
    HEALTH = "health"
    FINANCE = "finance"
    RELATIONSHIPS = "relationships"
    LEARNING = "learning"
    PERSONAL = "personal"
    OTHER = "other"


class GoalStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"
    ABANDONED = "abandoned"


class MilestoneStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    OVERDUE = "overdue"
    SKIPPED = "skipped"


# Milestones still expected to be worked on; only these can become overdue
OPEN_MILESTONE_STATUSES = (MilestoneStatus.NOT_STARTED, MilestoneStatus.IN_PROGRESS)


class TaskPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


OPEN_TASK_STATUSES = (TaskStatus.PENDING, TaskStatus.IN_PROGRESS)


class TaskSource(str, Enum):
    SYSTEM_SUGGESTED = "system_suggested"
    AI_GENERATED = "ai_generated"
    MANUAL = "manual"


def enum_column(enum_cls: type[Enum]) -> SAEnum:
    """Column type storing the enum's value (not its member name) as VARCHAR."""
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=32,
        validate_strings=True,
        values_callable=lambda members: [m.value for m in members],
    )
