"""Weekly coaching, goal recommendations and milestone suggestions.

Text generation is optional. Whenever the client is unavailable, fails,
or returns nothing usable, the rule-based templates below produce output
of exactly the same shape.
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utc_now
from app.core.errors import ExternalServiceError
from app.core.logging import get_logger
from app.llm.client import TextGenerationClient
from app.llm.parsing import parse_coaching_sections, parse_milestone_suggestions
from app.llm.prompts import (
    COACHING_PROMPT,
    build_coaching_context,
    build_milestone_suggestion_prompt,
)
from app.models.enums import GoalCategory
from app.models.roadmap import Goal, Milestone
from app.schemas.analytics import BottleneckReport, StreakInfo, VelocityReport, VelocityTrend
from app.schemas.coaching import (
    CoachingAnalytics,
    CoachingResult,
    CoachingSource,
    GoalRecommendation,
    GoalRecommendations,
    MilestoneSuggestion,
    RecommendationType,
)
from app.services.analytics_service import (
    calculate_velocity,
    detect_bottlenecks,
    get_category_distribution,
    get_streak,
)
from app.services.roadmap_service import active_roadmaps_with_goals, get_owned_goal

logger = get_logger(__name__)

# Categories a well-rounded roadmap is expected to touch
CORE_CATEGORIES = (
    GoalCategory.CAREER,
    GoalCategory.HEALTH,
    GoalCategory.FINANCE,
    GoalCategory.LEARNING,
    GoalCategory.RELATIONSHIPS,
    GoalCategory.PERSONAL,
)

FALLBACK_MILESTONES: dict[GoalCategory, list[tuple[str, int]]] = {
    GoalCategory.CAREER: [
        ("Complete skill assessment and create learning plan", 10),
        ("Achieve intermediate proficiency in key skills", 40),
        ("Complete major project or certification", 60),
        ("Reach target position or capability", 30),
    ],
    GoalCategory.HEALTH: [
        ("Establish baseline and create routine", 8),
        ("Build consistent habit (30 days)", 15),
        ("Reach intermediate goal markers", 20),
        ("Achieve target health metrics", 15),
    ],
    GoalCategory.FINANCE: [
        ("Audit current finances and set targets", 5),
        ("Implement savings/investment plan", 10),
        ("Reach 50% of financial goal", 20),
        ("Achieve full financial target", 15),
    ],
}


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


# ============================================================================
# Rule-based coaching
# ============================================================================


def fallback_highlights(velocity: VelocityReport, streak: StreakInfo) -> str:
    highlights = []

    if velocity.totals.tasks_completed > 20:
        highlights.append(
            f"Great work! You completed {velocity.totals.tasks_completed} tasks "
            f"in the last {velocity.period.days} days."
        )

    if streak.current_streak >= 7:
        highlights.append(f"You're on fire with a {streak.current_streak}-day streak!")
    elif streak.current_streak >= 3:
        highlights.append(f"Keep it up! You have a {streak.current_streak}-day streak going.")

    if velocity.trend is VelocityTrend.INCREASING:
        highlights.append("Your productivity is trending upward and momentum is building!")

    if not highlights:
        highlights.append("You're working on your roadmap. Every step forward counts!")

    return " ".join(highlights)


def fallback_insights(velocity: VelocityReport, bottlenecks: BottleneckReport) -> list[str]:
    insights = []
    overdue = bottlenecks.summary.total_overdue
    struggling = len(bottlenecks.struggling_goals)

    if velocity.averages.tasks_per_week < 3 and velocity.totals.tasks_completed > 0:
        insights.append(
            f"You're completing about {velocity.averages.tasks_per_week:.1f} tasks per week. "
            "Consider increasing your pace to maintain momentum."
        )

    if overdue:
        insights.append(
            f"You have {_plural(overdue, 'overdue milestone')}. "
            "Addressing these should be a priority."
        )

    if struggling:
        verb = "is" if struggling == 1 else "are"
        insights.append(
            f"{_plural(struggling, 'goal')} {verb} showing low progress. "
            "These may need more attention or timeline adjustment."
        )

    if velocity.trend is VelocityTrend.DECREASING:
        insights.append(
            "Your task completion rate has decreased recently. "
            "Consider reviewing your schedule and priorities."
        )

    if not insights:
        insights.append("Your progress is steady. Keep maintaining your current approach.")

    return insights


def fallback_recommendations(
    velocity: VelocityReport, bottlenecks: BottleneckReport
) -> list[str]:
    recommendations = []

    if bottlenecks.summary.total_overdue:
        recommendations.append(
            "Review overdue milestones and either reschedule them or break them into smaller tasks."
        )

    if bottlenecks.struggling_goals:
        goal = bottlenecks.struggling_goals[0]
        recommendations.append(
            f'Focus on "{goal.goal_title}" ({goal.category.value}), it needs attention.'
        )

    if velocity.averages.tasks_per_week < 2:
        recommendations.append("Try to complete at least 3-5 tasks per week to build momentum.")

    if bottlenecks.underperforming_categories:
        category = bottlenecks.underperforming_categories[0].category
        recommendations.append(f"Dedicate more time to your {category.value} goals this week.")

    if not recommendations:
        recommendations.append("Continue your current pace and stay consistent.")
        recommendations.append("Review your roadmap weekly to stay aligned with your vision.")

    return recommendations


def fallback_motivation(velocity: VelocityReport, streak: StreakInfo) -> str:
    if streak.current_streak >= 7:
        return (
            "You're building incredible momentum! Consistency is the key to achieving "
            "your 5-year vision. Keep going!"
        )
    if velocity.trend is VelocityTrend.INCREASING:
        return (
            "Your upward trend shows you're finding your rhythm. "
            "Trust the process and keep pushing forward!"
        )
    if velocity.totals.tasks_completed > 0:
        return "Every task completed is a step closer to your dreams. You've got this!"
    return (
        "Getting started is the hardest part, but you're here and ready. "
        "Take it one task at a time!"
    )


# ============================================================================
# Weekly coaching
# ============================================================================


async def generate_weekly_coaching(
    db: AsyncSession,
    user_id: int,
    *,
    text_client: TextGenerationClient | None,
    now: datetime | None = None,
) -> CoachingResult:
    """Build this week's coaching for ``user_id``.

    The generated text is used when it yields at least one section, with
    any missing section filled from the rule-based templates. Otherwise,
    or on any text-generation failure, the templates fill every section.
    """
    now = now or utc_now()

    velocity = await calculate_velocity(db, user_id, 30, now=now)
    bottlenecks = await detect_bottlenecks(db, user_id, now=now)
    categories = await get_category_distribution(db, user_id)
    streak = await get_streak(db, user_id, now=now)

    analytics = CoachingAnalytics(
        velocity_trend=velocity.trend,
        tasks_per_week=velocity.averages.tasks_per_week,
        current_streak=streak.current_streak,
        bottleneck_severity=bottlenecks.summary.severity,
        overdue_count=bottlenecks.summary.total_overdue,
    )

    sections = None
    if text_client is not None:
        roadmaps = await active_roadmaps_with_goals(db, user_id)
        context = build_coaching_context(
            velocity=velocity,
            bottlenecks=bottlenecks,
            categories=categories,
            streak=streak,
            roadmaps=roadmaps,
        )
        try:
            text = await text_client.generate(
                COACHING_PROMPT.format(context=context), temperature=0.7, max_tokens=1000
            )
        except ExternalServiceError as e:
            logger.warning("Coaching generation failed, using fallback", user_id=user_id, error=str(e))
        else:
            parsed = parse_coaching_sections(text)
            if any(parsed.values()):
                sections = parsed
            else:
                logger.warning("Coaching response had no usable sections", user_id=user_id)

    if sections is not None:
        # Sections the reply left out come from the templates
        logger.info("Weekly coaching generated", user_id=user_id, source="llm")
        return CoachingResult(
            generated_at=now,
            source=CoachingSource.LLM,
            highlights=sections["highlights"] or fallback_highlights(velocity, streak),
            insights=sections["insights"] or fallback_insights(velocity, bottlenecks),
            recommendations=sections["recommendations"]
            or fallback_recommendations(velocity, bottlenecks),
            motivation=sections["motivation"] or fallback_motivation(velocity, streak),
            analytics=analytics,
        )

    logger.info("Weekly coaching generated", user_id=user_id, source="fallback")
    return CoachingResult(
        generated_at=now,
        source=CoachingSource.FALLBACK,
        highlights=fallback_highlights(velocity, streak),
        insights=fallback_insights(velocity, bottlenecks),
        recommendations=fallback_recommendations(velocity, bottlenecks),
        motivation=fallback_motivation(velocity, streak),
        analytics=analytics,
    )


# ============================================================================
# Goal recommendations
# ============================================================================


async def generate_goal_recommendations(
    db: AsyncSession,
    user_id: int,
    *,
    now: datetime | None = None,
) -> GoalRecommendations:
    """Rule-based nudges toward missing, lagging and over-weighted categories."""
    categories = await get_category_distribution(db, user_id)
    bottlenecks = await detect_bottlenecks(db, user_id, now=now)

    present = {c.category for c in categories.distribution}
    missing = [c for c in CORE_CATEGORIES if c not in present]
    struggling = [c.category for c in bottlenecks.underperforming_categories]

    recommendations = []
    if missing:
        suggested = missing[:2]
        recommendations.append(
            GoalRecommendation(
                type=RecommendationType.NEW_CATEGORY,
                priority="medium",
                categories=suggested,
                message=(
                    f"Consider adding goals in {' or '.join(c.value for c in suggested)} "
                    "to create a more balanced roadmap."
                ),
            )
        )

    if struggling:
        recommendations.append(
            GoalRecommendation(
                type=RecommendationType.IMPROVE_EXISTING,
                priority="high",
                categories=struggling,
                message=(
                    f"Your {struggling[0].value} goals need more attention. "
                    "Consider breaking them into smaller milestones."
                ),
            )
        )

    summary = categories.summary
    if not summary.is_balanced and summary.most_focused_category and summary.least_focused_category:
        recommendations.append(
            GoalRecommendation(
                type=RecommendationType.BALANCE,
                priority="low",
                categories=[summary.most_focused_category, summary.least_focused_category],
                message=(
                    f"You have many {summary.most_focused_category.value} goals but fewer "
                    f"{summary.least_focused_category.value} goals. "
                    "Consider balancing your focus areas."
                ),
            )
        )

    return GoalRecommendations(
        recommendations=recommendations,
        missing_categories=missing,
        struggling_categories=struggling,
    )


# ============================================================================
# Milestone suggestions
# ============================================================================


def fallback_milestones(goal: Goal) -> list[MilestoneSuggestion]:
    template = FALLBACK_MILESTONES.get(goal.category, FALLBACK_MILESTONES[GoalCategory.CAREER])
    return [
        MilestoneSuggestion(
            title=title,
            description=f"{title} for: {goal.title}",
            estimated_effort_hours=effort,
        )
        for title, effort in template
    ]


async def suggest_milestones(
    db: AsyncSession,
    goal_id: int,
    *,
    user_id: int,
    text_client: TextGenerationClient | None,
) -> list[MilestoneSuggestion]:
    """Suggest milestones for a goal, falling back to category templates."""
    goal = await get_owned_goal(db, goal_id, user_id)

    if text_client is None:
        return fallback_milestones(goal)

    existing = (
        (
            await db.execute(
                select(Milestone).where(Milestone.goal_id == goal_id).order_by(Milestone.order)
            )
        )
        .scalars()
        .all()
    )
    try:
        text = await text_client.generate(
            build_milestone_suggestion_prompt(goal, list(existing)),
            temperature=0.7,
            max_tokens=800,
        )
    except ExternalServiceError as e:
        logger.warning("Milestone suggestion failed, using templates", goal_id=goal_id, error=str(e))
        return fallback_milestones(goal)

    suggestions = parse_milestone_suggestions(text)
    if not suggestions:
        logger.warning("No milestones parsed from response, using templates", goal_id=goal_id)
        return fallback_milestones(goal)

    logger.info("Milestones suggested", goal_id=goal_id, count=len(suggestions))
    return suggestions
