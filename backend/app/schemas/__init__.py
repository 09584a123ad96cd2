"""Pydantic schemas."""

from app.schemas.analytics import (
    AnalyticsReport,
    BottleneckReport,
    CategoryDistribution,
    Confidence,
    Prediction,
    Severity,
    StreakInfo,
    VelocityReport,
    VelocityTrend,
)
from app.schemas.coaching import (
    CoachingResult,
    CoachingSource,
    GoalRecommendations,
    MilestoneSuggestion,
)
from app.schemas.jobs import BatchResult, ItemOutcome, ItemResult
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
    RoadmapTaskResponse,
    RoadmapUpdate,
    TaskConversionRequest,
    TaskGenerationRequest,
    TaskResponse,
)

__all__ = [
    "RoadmapCreate",
    "RoadmapResponse",
    "RoadmapUpdate",
    "RoadmapStats",
    "GoalCreate",
    "GoalResponse",
    "GoalUpdate",
    "MilestoneCreate",
    "MilestoneResponse",
    "MilestoneUpdate",
    "RoadmapTaskResponse",
    "TaskResponse",
    "TaskGenerationRequest",
    "TaskConversionRequest",
    "VelocityReport",
    "VelocityTrend",
    "Prediction",
    "Confidence",
    "BottleneckReport",
    "Severity",
    "StreakInfo",
    "CategoryDistribution",
    "AnalyticsReport",
    "CoachingResult",
    "CoachingSource",
    "GoalRecommendations",
    "MilestoneSuggestion",
    "BatchResult",
    "ItemOutcome",
    "ItemResult",
]
