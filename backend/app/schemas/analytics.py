"""Derived analytics views.

None of these are persisted: each is computed per request from the
roadmap tables and must tolerate users with no data at all.
"""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel

from app.models.enums import GoalCategory


class VelocityTrend(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class Confidence(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# ============================================================================
# Velocity
# ============================================================================


class WeeklyBucket(BaseModel):
    week_start: datetime
    week_end: datetime
    tasks_completed: int
    milestones_completed: int
    total_hours: float


class VelocityPeriod(BaseModel):
    start_date: datetime
    end_date: datetime
    days: int


class VelocityTotals(BaseModel):
    tasks_completed: int
    milestones_completed: int
    total_hours: float


class VelocityAverages(BaseModel):
    tasks_per_week: float
    milestones_per_week: float
    hours_per_week: float
    tasks_per_day: float


class VelocityReport(BaseModel):
    period: VelocityPeriod
    totals: VelocityTotals
    averages: VelocityAverages
    trend: VelocityTrend
    weekly_breakdown: list[WeeklyBucket]  # chronological, oldest first


# ============================================================================
# Prediction
# ============================================================================


class Prediction(BaseModel):
    roadmap_id: int
    predicted_completion_date: datetime | None
    confidence: Confidence
    remaining_hours: float
    estimated_weeks: float | None
    current_velocity: float  # hours per week
    on_track: bool | None
    scheduled_end_date: datetime
    days_ahead_or_behind: int | None  # positive = ahead of schedule
    message: str | None = None


# ============================================================================
# Bottlenecks
# ============================================================================


class OverdueMilestone(BaseModel):
    milestone_id: int
    milestone_title: str
    due_date: datetime
    days_overdue: int
    goal_id: int
    goal_title: str
    category: GoalCategory
    roadmap_id: int
    roadmap_title: str


class StrugglingGoal(BaseModel):
    goal_id: int
    goal_title: str
    category: GoalCategory
    roadmap_id: int
    roadmap_title: str
    completion_rate: float  # percent
    total_milestones: int
    completed_milestones: int


class UnderperformingCategory(BaseModel):
    category: GoalCategory
    total_tasks: int
    completed_tasks: int
    completion_rate: float  # percent


class BottleneckSummary(BaseModel):
    total_overdue: int
    struggling_goals_count: int
    underperforming_categories_count: int
    severity: Severity


class BottleneckReport(BaseModel):
    overdue_milestones: list[OverdueMilestone]
    struggling_goals: list[StrugglingGoal]
    underperforming_categories: list[UnderperformingCategory]
    summary: BottleneckSummary


# ============================================================================
# Streak
# ============================================================================


class StreakInfo(BaseModel):
    current_streak: int
    longest_streak: int
    last_active_date: date | None
    total_active_days: int


# ============================================================================
# Categories and report
# ============================================================================


class CategoryStats(BaseModel):
    category: GoalCategory
    goals_count: int
    milestones_total: int
    milestones_completed: int
    estimated_hours: float
    completion_rate: float


class CategoryDistributionSummary(BaseModel):
    total_categories: int
    total_goals: int
    is_balanced: bool
    most_focused_category: GoalCategory | None
    least_focused_category: GoalCategory | None


class CategoryDistribution(BaseModel):
    distribution: list[CategoryStats]  # most goals first
    summary: CategoryDistributionSummary


class RoadmapPrediction(BaseModel):
    roadmap_id: int
    roadmap_title: str
    prediction: Prediction


class AnalyticsOverview(BaseModel):
    total_roadmaps: int
    active_roadmaps: int
    completed_roadmaps: int


class AnalyticsReport(BaseModel):
    generated_at: datetime
    user_id: int
    overview: AnalyticsOverview
    velocity: VelocityReport
    predictions: list[RoadmapPrediction]
    bottlenecks: BottleneckReport
    category_distribution: CategoryDistribution
