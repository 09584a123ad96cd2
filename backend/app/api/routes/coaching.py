"""Coaching routes."""

from fastapi import APIRouter

from app.api.deps import CurrentUser, DbSession, TextClientDep
from app.schemas.coaching import CoachingResult, GoalRecommendations, MilestoneSuggestion
from app.services import coaching_service

router = APIRouter(prefix="/coaching", tags=["coaching"])


@router.get("/weekly", response_model=CoachingResult)
async def get_weekly_coaching(
    db: DbSession,
    user_id: CurrentUser,
    text_client: TextClientDep,
) -> CoachingResult:
    """This week's coaching; rule-based when text generation is unavailable."""
    return await coaching_service.generate_weekly_coaching(db, user_id, text_client=text_client)


@router.get("/recommendations", response_model=GoalRecommendations)
async def get_recommendations(db: DbSession, user_id: CurrentUser) -> GoalRecommendations:
    return await coaching_service.generate_goal_recommendations(db, user_id)


@router.post("/goals/{goal_id}/milestone-suggestions", response_model=list[MilestoneSuggestion])
async def suggest_milestones(
    goal_id: int,
    db: DbSession,
    user_id: CurrentUser,
    text_client: TextClientDep,
) -> list[MilestoneSuggestion]:
    return await coaching_service.suggest_milestones(
        db, goal_id, user_id=user_id, text_client=text_client
    )
