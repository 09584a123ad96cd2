"""Prompt templates for coaching, milestone suggestions and task breakdown."""

from app.models.enums import GoalStatus
from app.models.roadmap import Goal, Milestone, Roadmap
from app.schemas.analytics import (
    BottleneckReport,
    CategoryDistribution,
    StreakInfo,
    VelocityReport,
)

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant specialized in life planning and goal setting."
)

JSON_ONLY_INSTRUCTION = (
    "IMPORTANT: Respond ONLY with valid JSON. No additional text or explanations."
)

COACHING_PROMPT = """\
You are an expert life coach analyzing a user's 5-year roadmap progress. \
Based on the data below, provide personalized coaching insights.

{context}

Please provide:
1. **Progress Highlights** (2-3 sentences): Celebrate recent wins and positive trends
2. **Key Insights** (3-4 bullet points): Important observations about their progress
3. **Recommendations** (3-4 actionable items): Specific advice to improve their journey
4. **Motivation** (1-2 sentences): Encouraging message tailored to their situation

Keep the tone supportive, specific, and actionable. Use their actual data in your insights."""

MILESTONE_SUGGESTION_PROMPT = """\
Generate 3-5 realistic quarterly milestones for this goal:

**Category**: {category}
**Goal**: {title}
**Description**: {description}
**Target Year**: Year {target_year}
**Priority**: {priority}/5

**Existing Milestones**: {existing}

Please suggest milestones that:
1. Are specific and measurable
2. Progress logically toward the goal
3. Are achievable within quarterly timeframes
4. Build on each other

Format each milestone as:
MILESTONE: [title]
DESCRIPTION: [2-3 sentences]
EFFORT: [estimated hours]
---"""

TASK_BREAKDOWN_SYSTEM_PROMPT = (
    "You are an expert productivity coach who breaks down goals into actionable tasks. "
    "Always respond with valid JSON."
)

TASK_BREAKDOWN_PROMPT = """\
Break down the following milestone into {task_count} actionable daily tasks.

**Milestone:** {milestone_title}
{milestone_description}
**Goal Context:**
- Category: {category}
- Goal: {goal_title}
- Vision: {vision}

**Constraints:**
- Start Date: {start_date}
- Due Date: {due_date}
- Days Available: {days_available}
- Estimated Effort: {effort} hours total

**Requirements:**
1. Create {task_count} specific, actionable tasks
2. Order tasks logically (what comes first?)
3. Distribute tasks evenly across available days
4. Each task should be completable in 30-90 minutes
5. Be specific about what the user should do

**Output Format:**
{{
  "tasks": [
    {{
      "title": "Task title (max 100 chars)",
      "description": "Detailed description of what to do",
      "dayOffset": 0,
      "estimatedMinutes": 60,
      "priority": "normal"
    }}
  ]
}}"""


def build_coaching_context(
    *,
    velocity: VelocityReport,
    bottlenecks: BottleneckReport,
    categories: CategoryDistribution,
    streak: StreakInfo,
    roadmaps: list[tuple[Roadmap, list[Goal]]],
) -> str:
    """Render the user's analytics as the markdown block the coaching prompt embeds."""
    lines = [
        "## User Progress Data",
        "",
        f"### Velocity (Last {velocity.period.days} Days)",
        f"- Tasks completed: {velocity.totals.tasks_completed}",
        f"- Milestones completed: {velocity.totals.milestones_completed}",
        f"- Average tasks per week: {velocity.averages.tasks_per_week}",
        f"- Average hours per week: {velocity.averages.hours_per_week}",
        f"- Trend: {velocity.trend.value}",
        "",
        "### Consistency",
        f"- Current streak: {streak.current_streak} days",
        f"- Longest streak: {streak.longest_streak} days",
        f"- Total active days: {streak.total_active_days}",
        "",
    ]

    summary = bottlenecks.summary
    if summary.total_overdue or bottlenecks.struggling_goals:
        lines.append("### Challenges")
        if summary.total_overdue:
            lines.append(f"- Overdue milestones: {summary.total_overdue}")
            for m in bottlenecks.overdue_milestones[:3]:
                lines.append(f'  - "{m.milestone_title}" ({m.days_overdue} days overdue)')
        if bottlenecks.struggling_goals:
            lines.append("- Goals with low progress:")
            for g in bottlenecks.struggling_goals[:2]:
                lines.append(f'  - "{g.goal_title}" ({g.completion_rate}% complete)')
        if bottlenecks.underperforming_categories:
            lines.append("- Categories needing attention:")
            for c in bottlenecks.underperforming_categories[:2]:
                lines.append(f"  - {c.category.value} ({c.completion_rate}% completion rate)")
        lines.append("")

    lines.append("### Category Focus")
    for cat in categories.distribution:
        lines.append(
            f"- {cat.category.value}: {cat.goals_count} goals, {cat.completion_rate}% complete"
        )
    lines.append("")

    lines.append("### Active Roadmaps")
    for roadmap, goals in roadmaps:
        done = sum(1 for g in goals if g.status == GoalStatus.COMPLETED)
        lines.append(
            f'- "{roadmap.title}": {roadmap.progress_percentage:.0f}% complete '
            f"({done}/{len(goals)} goals done)"
        )

    return "\n".join(lines)


def build_milestone_suggestion_prompt(goal: Goal, existing: list[Milestone]) -> str:
    return MILESTONE_SUGGESTION_PROMPT.format(
        category=goal.category.value,
        title=goal.title,
        description=goal.description or "Not provided",
        target_year=goal.target_year,
        priority=goal.priority,
        existing=", ".join(m.title for m in existing) if existing else "None yet",
    )
