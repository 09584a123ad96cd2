"""Tests for coaching, recommendations and milestone suggestions."""

from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError
from app.models.enums import GoalCategory, MilestoneStatus
from app.schemas.analytics import Severity
from app.schemas.coaching import CoachingSource, RecommendationType
from app.services import coaching_service

COACHING_REPLY = """\
**Progress Highlights**
You completed three tasks this week.

**Key Insights**
- Your health goal is behind schedule

**Recommendations**
- Block an hour on Saturday for the overdue milestone

**Motivation**
Small steps add up.
"""


async def _user_with_overdue_milestone(seed, now):
    user = await seed.user()
    roadmap = await seed.roadmap(user)
    goal = await seed.goal(roadmap, category=GoalCategory.HEALTH, title="Run a marathon")
    milestone = await seed.milestone(goal, due_date=now - timedelta(days=3))
    for offset in (0, 1, 2):
        await seed.completed_task(milestone, roadmap, now - timedelta(days=offset))
    return user


# ============================================================================
# Weekly coaching
# ============================================================================


@pytest.mark.asyncio
async def test_weekly_coaching_without_client_uses_fallback(
    test_session: AsyncSession, seed, now
) -> None:
    user = await _user_with_overdue_milestone(seed, now)

    result = await coaching_service.generate_weekly_coaching(
        test_session, user.id, text_client=None, now=now
    )

    assert result.source is CoachingSource.FALLBACK
    assert result.type == "weekly_coaching"
    assert "3-day streak" in result.highlights
    assert any("1 overdue milestone." in insight for insight in result.insights)
    assert result.recommendations[0].startswith("Review overdue milestones")
    assert result.motivation
    assert result.analytics.current_streak == 3
    assert result.analytics.overdue_count == 1
    assert result.analytics.bottleneck_severity is Severity.LOW


@pytest.mark.asyncio
async def test_weekly_coaching_falls_back_when_generation_fails(
    test_session: AsyncSession, seed, now, text_client_factory
) -> None:
    user = await _user_with_overdue_milestone(seed, now)
    client = text_client_factory(RuntimeError("quota exceeded"), max_attempts=2)

    result = await coaching_service.generate_weekly_coaching(
        test_session, user.id, text_client=client, now=now
    )
    baseline = await coaching_service.generate_weekly_coaching(
        test_session, user.id, text_client=None, now=now
    )

    assert result.source is CoachingSource.FALLBACK
    assert result.model_dump() == baseline.model_dump()


@pytest.mark.asyncio
async def test_weekly_coaching_uses_generated_sections(
    test_session: AsyncSession, seed, now, text_client_factory
) -> None:
    user = await _user_with_overdue_milestone(seed, now)
    client = text_client_factory(COACHING_REPLY)

    result = await coaching_service.generate_weekly_coaching(
        test_session, user.id, text_client=client, now=now
    )

    assert result.source is CoachingSource.LLM
    assert result.highlights == "You completed three tasks this week."
    assert result.insights == ["Your health goal is behind schedule"]
    assert result.recommendations == ["Block an hour on Saturday for the overdue milestone"]
    assert result.motivation == "Small steps add up."
    assert result.analytics.overdue_count == 1


@pytest.mark.asyncio
async def test_partial_reply_is_completed_from_templates(
    test_session: AsyncSession, seed, now, text_client_factory
) -> None:
    user = await _user_with_overdue_milestone(seed, now)
    client = text_client_factory("**Progress Highlights**\nThree tasks done this week.\n")

    result = await coaching_service.generate_weekly_coaching(
        test_session, user.id, text_client=client, now=now
    )
    baseline = await coaching_service.generate_weekly_coaching(
        test_session, user.id, text_client=None, now=now
    )

    assert result.source is CoachingSource.LLM
    assert result.highlights == "Three tasks done this week."
    assert result.insights == baseline.insights
    assert result.recommendations == baseline.recommendations
    assert result.motivation == baseline.motivation
    assert result.insights and result.recommendations and result.motivation


@pytest.mark.asyncio
async def test_weekly_coaching_prompt_carries_user_data(
    test_session: AsyncSession, seed, now, text_client_factory
) -> None:
    user = await _user_with_overdue_milestone(seed, now)
    client = text_client_factory(COACHING_REPLY)

    await coaching_service.generate_weekly_coaching(
        test_session, user.id, text_client=client, now=now
    )

    prompt = client._chat_model.calls[0]["messages"][1].content
    assert "- Overdue milestones: 1" in prompt
    assert "- Current streak: 3 days" in prompt


@pytest.mark.asyncio
async def test_reply_without_sections_uses_fallback(
    test_session: AsyncSession, seed, now, text_client_factory
) -> None:
    user = await seed.user()
    client = text_client_factory("I'm not sure what to say this week.")

    result = await coaching_service.generate_weekly_coaching(
        test_session, user.id, text_client=client, now=now
    )

    assert result.source is CoachingSource.FALLBACK
    assert result.highlights == "You're working on your roadmap. Every step forward counts!"
    assert result.insights == ["Your progress is steady. Keep maintaining your current approach."]
    assert result.motivation.startswith("Getting started is the hardest part")


# ============================================================================
# Recommendations
# ============================================================================


@pytest.mark.asyncio
async def test_recommendations_for_new_user(test_session: AsyncSession, seed, now) -> None:
    user = await seed.user()

    result = await coaching_service.generate_goal_recommendations(test_session, user.id, now=now)

    assert len(result.missing_categories) == len(coaching_service.CORE_CATEGORIES)
    assert [r.type for r in result.recommendations] == [RecommendationType.NEW_CATEGORY]
    assert result.recommendations[0].categories == [GoalCategory.CAREER, GoalCategory.HEALTH]
    assert result.struggling_categories == []


@pytest.mark.asyncio
async def test_recommendations_flag_struggling_and_imbalance(
    test_session: AsyncSession, seed, now
) -> None:
    user = await seed.user()
    roadmap = await seed.roadmap(user)
    for _ in range(6):
        await seed.goal(roadmap, category=GoalCategory.CAREER)
    finance = await seed.goal(roadmap, category=GoalCategory.FINANCE)
    milestone = await seed.milestone(finance)
    for _ in range(5):
        await seed.task(milestone, roadmap)

    result = await coaching_service.generate_goal_recommendations(test_session, user.id, now=now)

    types = [r.type for r in result.recommendations]
    assert types == [
        RecommendationType.NEW_CATEGORY,
        RecommendationType.IMPROVE_EXISTING,
        RecommendationType.BALANCE,
    ]
    assert GoalCategory.CAREER not in result.missing_categories
    assert result.struggling_categories == [GoalCategory.FINANCE]
    assert result.recommendations[1].priority == "high"
    assert result.recommendations[2].categories == [GoalCategory.CAREER, GoalCategory.FINANCE]


# ============================================================================
# Milestone suggestions
# ============================================================================


@pytest.mark.asyncio
async def test_suggest_milestones_from_templates(test_session: AsyncSession, seed) -> None:
    user = await seed.user()
    roadmap = await seed.roadmap(user)
    goal = await seed.goal(roadmap, category=GoalCategory.HEALTH, title="Run a marathon")

    suggestions = await coaching_service.suggest_milestones(
        test_session, goal.id, user_id=user.id, text_client=None
    )

    assert [s.title for s in suggestions] == [
        title for title, _ in coaching_service.FALLBACK_MILESTONES[GoalCategory.HEALTH]
    ]
    assert suggestions[0].description.endswith("for: Run a marathon")


@pytest.mark.asyncio
async def test_suggest_milestones_unknown_category_uses_career_template(
    test_session: AsyncSession, seed
) -> None:
    user = await seed.user()
    roadmap = await seed.roadmap(user)
    goal = await seed.goal(roadmap, category=GoalCategory.OTHER)

    suggestions = await coaching_service.suggest_milestones(
        test_session, goal.id, user_id=user.id, text_client=None
    )

    assert len(suggestions) == len(coaching_service.FALLBACK_MILESTONES[GoalCategory.CAREER])


@pytest.mark.asyncio
async def test_suggest_milestones_from_generated_text(
    test_session: AsyncSession, seed, text_client_factory
) -> None:
    user = await seed.user()
    roadmap = await seed.roadmap(user)
    goal = await seed.goal(roadmap)
    await seed.milestone(goal, status=MilestoneStatus.COMPLETED, title="Update the CV")
    client = text_client_factory(
        "MILESTONE: Apply to five companies\nDESCRIPTION: Shortlist and apply.\nEFFORT: 12\n---"
    )

    suggestions = await coaching_service.suggest_milestones(
        test_session, goal.id, user_id=user.id, text_client=client
    )

    assert [(s.title, s.estimated_effort_hours) for s in suggestions] == [
        ("Apply to five companies", 12)
    ]
    assert "Update the CV" in client._chat_model.calls[0]["messages"][1].content


@pytest.mark.asyncio
async def test_suggest_milestones_unparseable_reply_uses_templates(
    test_session: AsyncSession, seed, text_client_factory
) -> None:
    user = await seed.user()
    roadmap = await seed.roadmap(user)
    goal = await seed.goal(roadmap, category=GoalCategory.FINANCE)

    suggestions = await coaching_service.suggest_milestones(
        test_session, goal.id, user_id=user.id, text_client=text_client_factory("No.")
    )

    assert suggestions[0].title == "Audit current finances and set targets"


@pytest.mark.asyncio
async def test_suggest_milestones_for_other_users_goal(test_session: AsyncSession, seed) -> None:
    owner = await seed.user()
    stranger = await seed.user()
    goal = await seed.goal(await seed.roadmap(owner))

    with pytest.raises(NotFoundError, match="Goal not found"):
        await coaching_service.suggest_milestones(
            test_session, goal.id, user_id=stranger.id, text_client=None
        )
