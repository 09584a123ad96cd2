"""Coaching and suggestion schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from app.models.enums import GoalCategory
from app.schemas.analytics import Severity, VelocityTrend


class CoachingSource(str, Enum):
    """Which path produced the text."""

    LLM = "llm"
    FALLBACK = "fallback"


class CoachingAnalytics(BaseModel):
    """Metrics echoed back alongside the coaching text."""

    velocity_trend: VelocityTrend
    tasks_per_week: float
    current_streak: int
    bottleneck_severity: Severity
    overdue_count: int


class CoachingResult(BaseModel):
    """Weekly coaching; identical shape whichever path produced it."""

    type: str = "weekly_coaching"
    generated_at: datetime
    source: CoachingSource
    highlights: str
    insights: list[str]
    recommendations: list[str]
    motivation: str
    analytics: CoachingAnalytics


class RecommendationType(str, Enum):
    NEW_CATEGORY = "new_category"
    IMPROVE_EXISTING = "improve_existing"
    BALANCE = "balance"


class GoalRecommendation(BaseModel):
    type: RecommendationType
    priority: str  # low | medium | high
    categories: list[GoalCategory] = Field(default_factory=list)
    message: str


class GoalRecommendations(BaseModel):
    recommendations: list[GoalRecommendation]
    missing_categories: list[GoalCategory]
    struggling_categories: list[GoalCategory]


class MilestoneSuggestion(BaseModel):
    title: str
    description: str
    estimated_effort_hours: int
