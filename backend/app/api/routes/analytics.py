"""Analytics routes: velocity, predictions, bottlenecks, streaks and categories."""

from typing import Annotated

from fastapi import APIRouter, Query

from app.api.deps import CurrentUser, DbSession
from app.schemas.analytics import (
    AnalyticsReport,
    BottleneckReport,
    CategoryDistribution,
    Prediction,
    StreakInfo,
    VelocityReport,
)
from app.services import analytics_service

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/velocity", response_model=VelocityReport)
async def get_velocity(
    db: DbSession,
    user_id: CurrentUser,
    days: Annotated[int, Query(ge=1, le=365)] = analytics_service.DEFAULT_WINDOW_DAYS,
) -> VelocityReport:
    """Completed tasks, milestones and hours per week over the last ``days`` days."""
    return await analytics_service.calculate_velocity(db, user_id, days)


@router.get("/roadmaps/{roadmap_id}/prediction", response_model=Prediction)
async def get_prediction(roadmap_id: int, db: DbSession, user_id: CurrentUser) -> Prediction:
    return await analytics_service.predict_completion(db, roadmap_id, user_id=user_id)


@router.get("/bottlenecks", response_model=BottleneckReport)
async def get_bottlenecks(db: DbSession, user_id: CurrentUser) -> BottleneckReport:
    return await analytics_service.detect_bottlenecks(db, user_id)


@router.get("/streak", response_model=StreakInfo)
async def get_streak(db: DbSession, user_id: CurrentUser) -> StreakInfo:
    return await analytics_service.get_streak(db, user_id)


@router.get("/categories", response_model=CategoryDistribution)
async def get_categories(db: DbSession, user_id: CurrentUser) -> CategoryDistribution:
    return await analytics_service.get_category_distribution(db, user_id)


@router.get("/report", response_model=AnalyticsReport)
async def get_report(
    db: DbSession,
    user_id: CurrentUser,
    roadmap_id: int | None = None,
) -> AnalyticsReport:
    """Full report; predictions cover ``roadmap_id`` or every active roadmap."""
    return await analytics_service.generate_analytics_report(db, user_id, roadmap_id=roadmap_id)
