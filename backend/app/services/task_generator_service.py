"""Break milestones into scheduled roadmap tasks and promote them to the planner."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import as_naive_utc, days_between, end_of_day, start_of_day, utc_now
from app.core.errors import ExternalServiceError, NotFoundError
from app.core.logging import get_logger
from app.llm.client import TextGenerationClient
from app.llm.prompts import TASK_BREAKDOWN_PROMPT, TASK_BREAKDOWN_SYSTEM_PROMPT
from app.models.enums import (
    OPEN_TASK_STATUSES,
    GoalCategory,
    MilestoneStatus,
    RoadmapStatus,
    TaskPriority,
    TaskSource,
    TaskStatus,
)
from app.models.roadmap import Goal, Milestone, Roadmap, RoadmapTask
from app.models.task import Task
from app.schemas.roadmap import TaskConversionRequest
from app.services.roadmap_service import get_owned_milestone, get_owned_roadmap_task

logger = get_logger(__name__)

DEFAULT_TASK_DURATION = 60
NEEDS_MORE_TASKS_WITHIN_DAYS = 7
NEEDS_MORE_TASKS_BELOW = 5


@dataclass(frozen=True)
class TaskTemplate:
    action: str
    description: str
    duration: int


@dataclass
class PlannedTask:
    title: str
    description: str
    scheduled_date: datetime
    estimated_duration: int = DEFAULT_TASK_DURATION
    priority: TaskPriority = TaskPriority.NORMAL
    context: dict = field(default_factory=dict)


TASK_TEMPLATES: dict[GoalCategory, tuple[TaskTemplate, ...]] = {
    GoalCategory.CAREER: (
        TaskTemplate("Research and Planning", "Research required skills and create action plan for {milestone}", 60),
        TaskTemplate("Skill Development", "Practice key skills needed for {milestone}", 90),
        TaskTemplate("Implementation Work", "Make tangible progress on {milestone}", 120),
        TaskTemplate("Review and Adjust", "Review progress and adjust approach if needed", 45),
        TaskTemplate("Final Push", "Complete remaining work and document results", 90),
    ),
    GoalCategory.HEALTH: (
        TaskTemplate("Initial Assessment", "Assess current state and set baseline for {milestone}", 30),
        TaskTemplate("Build Routine", "Establish daily routine supporting {milestone}", 45),
        TaskTemplate("Progressive Practice", "Increase intensity/difficulty progressively", 60),
        TaskTemplate("Track Progress", "Measure results and track improvements", 30),
        TaskTemplate("Optimize Approach", "Fine-tune approach based on results", 45),
    ),
    GoalCategory.FINANCE: (
        TaskTemplate("Financial Analysis", "Analyze current financial situation for {milestone}", 60),
        TaskTemplate("Create Budget Plan", "Design budget and savings plan", 45),
        TaskTemplate("Implement Changes", "Put financial plan into action", 30),
        TaskTemplate("Monitor Progress", "Track expenses and progress toward {milestone}", 30),
        TaskTemplate("Review and Optimize", "Review results and optimize strategy", 45),
    ),
    GoalCategory.LEARNING: (
        TaskTemplate("Study Foundation", "Learn fundamental concepts for {milestone}", 90),
        TaskTemplate("Practice Exercises", "Complete practice problems and exercises", 60),
        TaskTemplate("Deep Work Session", "Focus deeply on challenging aspects", 120),
        TaskTemplate("Review and Test", "Review material and test understanding", 60),
        TaskTemplate("Apply Knowledge", "Apply what you learned to real scenarios", 90),
    ),
    GoalCategory.RELATIONSHIPS: (
        TaskTemplate("Plan Activity", "Plan meaningful interaction for {milestone}", 30),
        TaskTemplate("Quality Time", "Spend focused quality time together", 90),
        TaskTemplate("Communication", "Have important conversation about {goal}", 60),
        TaskTemplate("Shared Experience", "Create shared positive experience", 120),
        TaskTemplate("Follow Up", "Follow up and strengthen connection", 30),
    ),
    GoalCategory.PERSONAL: (
        TaskTemplate("Self Reflection", "Reflect on goals and motivation for {milestone}", 30),
        TaskTemplate("Take Action", "Take concrete step toward {milestone}", 60),
        TaskTemplate("Practice Consistency", "Build consistent habits supporting {goal}", 45),
        TaskTemplate("Overcome Challenge", "Address obstacles blocking progress", 60),
        TaskTemplate("Celebrate Progress", "Acknowledge and celebrate progress made", 30),
    ),
}


def templates_for(category: GoalCategory) -> tuple[TaskTemplate, ...]:
    return TASK_TEMPLATES.get(category, TASK_TEMPLATES[GoalCategory.PERSONAL])


# ============================================================================
# Planning
# ============================================================================


def plan_rule_based(
    milestone: Milestone,
    goal: Goal,
    task_count: int,
    start: datetime,
) -> list[PlannedTask]:
    """Spread ``task_count`` template tasks evenly from ``start`` to the due date.

    The first and last tasks are high priority.
    """
    days_available = max(1, days_between(milestone.due_date, start))
    interval = max(1, days_available // task_count)
    templates = templates_for(goal.category)

    planned = []
    for i in range(task_count):
        template = templates[i % len(templates)]
        planned.append(
            PlannedTask(
                title=f"{milestone.title}: {template.action}",
                description=template.description.format(milestone=milestone.title, goal=goal.title),
                scheduled_date=start + timedelta(days=i * interval),
                estimated_duration=template.duration,
                priority=TaskPriority.HIGH if i in (0, task_count - 1) else TaskPriority.NORMAL,
            )
        )
    return planned


def _coerce_priority(value: object) -> TaskPriority:
    try:
        return TaskPriority(str(value).lower())
    except ValueError:
        return TaskPriority.NORMAL


async def plan_with_llm(
    text_client: TextGenerationClient,
    milestone: Milestone,
    goal: Goal,
    roadmap: Roadmap,
    task_count: int,
    start: datetime,
) -> list[PlannedTask]:
    """Ask the model for a task breakdown.

    Raises:
        ExternalServiceError: Generation failed or the reply held no usable tasks.
    """
    prompt = TASK_BREAKDOWN_PROMPT.format(
        task_count=task_count,
        milestone_title=milestone.title,
        milestone_description=(
            f"**Description:** {milestone.description}\n" if milestone.description else ""
        ),
        category=goal.category.value,
        goal_title=goal.title,
        vision=roadmap.vision_statement or "N/A",
        start_date=start.date().isoformat(),
        due_date=milestone.due_date.date().isoformat(),
        days_available=days_between(milestone.due_date, start),
        effort=milestone.estimated_effort_hours or "unknown",
    )
    data = await text_client.generate_json(
        prompt,
        system_prompt=TASK_BREAKDOWN_SYSTEM_PROMPT,
        temperature=0.7,
        max_tokens=2000,
    )

    items = data.get("tasks") if isinstance(data, dict) else data
    if not isinstance(items, list):
        raise ExternalServiceError("text-generation", "reply has no task list")

    planned = []
    for item in items:
        if not isinstance(item, dict) or not str(item.get("title") or "").strip():
            continue
        try:
            offset = max(0, int(item.get("dayOffset") or 0))
            duration = int(item.get("estimatedMinutes") or DEFAULT_TASK_DURATION)
        except (TypeError, ValueError):
            offset, duration = 0, DEFAULT_TASK_DURATION
        planned.append(
            PlannedTask(
                title=str(item["title"]).strip()[:200],
                description=str(item.get("description") or ""),
                scheduled_date=start + timedelta(days=offset),
                estimated_duration=duration,
                priority=_coerce_priority(item.get("priority", "normal")),
                context={"llm_generated": True, "milestone": milestone.title},
            )
        )

    if not planned:
        raise ExternalServiceError("text-generation", "reply has no usable tasks")
    return planned


# ============================================================================
# Generation
# ============================================================================


async def generate_tasks_for_milestone(
    db: AsyncSession,
    user_id: int,
    milestone_id: int,
    *,
    text_client: TextGenerationClient | None = None,
    use_llm: bool = False,
    task_count: int = 5,
    start_date: datetime | None = None,
    now: datetime | None = None,
) -> list[RoadmapTask]:
    """Create ``task_count`` scheduled roadmap tasks for a milestone.

    With ``use_llm`` the model proposes the tasks; any failure falls back to
    the category templates. Tasks are marked ``ai_generated`` only when the
    model's output was actually used.
    """
    milestone = await get_owned_milestone(db, milestone_id, user_id)
    goal = await db.get(Goal, milestone.goal_id)
    roadmap = await db.get(Roadmap, goal.roadmap_id)

    start = as_naive_utc(start_date) if start_date is not None else (now or utc_now())

    planned: list[PlannedTask] | None = None
    source = TaskSource.SYSTEM_SUGGESTED
    if use_llm and text_client is not None:
        try:
            planned = await plan_with_llm(text_client, milestone, goal, roadmap, task_count, start)
            source = TaskSource.AI_GENERATED
        except ExternalServiceError as e:
            logger.warning(
                "LLM task generation failed, falling back to rule-based",
                milestone_id=milestone_id,
                error=str(e),
            )
    if planned is None:
        planned = plan_rule_based(milestone, goal, task_count, start)

    tasks = [
        RoadmapTask(
            milestone_id=milestone.id,
            roadmap_id=goal.roadmap_id,
            title=item.title,
            description=item.description,
            scheduled_date=item.scheduled_date,
            estimated_duration=item.estimated_duration or DEFAULT_TASK_DURATION,
            priority=item.priority,
            status=TaskStatus.PENDING,
            source=source,
            generation_context=item.context or None,
        )
        for item in planned
    ]
    db.add_all(tasks)
    await db.flush()

    logger.info(
        "Tasks generated for milestone",
        milestone_id=milestone_id,
        count=len(tasks),
        source=source.value,
    )
    return tasks


async def get_milestones_needing_tasks(
    db: AsyncSession,
    user_id: int,
    *,
    roadmap_id: int | None = None,
    days_ahead: int = 14,
    include_overdue: bool = True,
    now: datetime | None = None,
) -> list[Milestone]:
    """Open milestones due within ``days_ahead`` that lack enough open tasks.

    A milestone qualifies when it has no open tasks at all, or is due within
    a week and has fewer than five.
    """
    now = now or utc_now()
    horizon = end_of_day(now + timedelta(days=days_ahead))

    open_tasks = (
        select(RoadmapTask.milestone_id, func.count(RoadmapTask.id).label("open_count"))
        .where(RoadmapTask.status.in_(OPEN_TASK_STATUSES))
        .group_by(RoadmapTask.milestone_id)
        .subquery()
    )

    query = (
        select(Milestone, func.coalesce(open_tasks.c.open_count, 0))
        .join(Goal, Goal.id == Milestone.goal_id)
        .join(Roadmap, Roadmap.id == Goal.roadmap_id)
        .outerjoin(open_tasks, open_tasks.c.milestone_id == Milestone.id)
        .where(
            Roadmap.user_id == user_id,
            Roadmap.status.in_((RoadmapStatus.ACTIVE, RoadmapStatus.DRAFT)),
            Milestone.status.in_(
                (MilestoneStatus.NOT_STARTED, MilestoneStatus.IN_PROGRESS, MilestoneStatus.OVERDUE)
            ),
            Milestone.due_date <= horizon,
        )
        .order_by(Milestone.due_date, Milestone.id)
    )
    if not include_overdue:
        query = query.where(Milestone.due_date >= start_of_day(now))
    if roadmap_id is not None:
        query = query.where(Goal.roadmap_id == roadmap_id)

    rows = (await db.execute(query)).all()
    return [
        milestone
        for milestone, open_count in rows
        if open_count == 0
        or (
            days_between(milestone.due_date, now) <= NEEDS_MORE_TASKS_WITHIN_DAYS
            and open_count < NEEDS_MORE_TASKS_BELOW
        )
    ]


# ============================================================================
# Planner promotion and completion
# ============================================================================


async def convert_roadmap_task_to_task(
    db: AsyncSession,
    roadmap_task_id: int,
    *,
    user_id: int,
    overrides: TaskConversionRequest | None = None,
) -> Task:
    """Create a planner task from a roadmap task and link the two."""
    roadmap_task = await get_owned_roadmap_task(db, roadmap_task_id, user_id)
    overrides = overrides or TaskConversionRequest()

    start_time = (
        as_naive_utc(overrides.start_time) if overrides.start_time else roadmap_task.scheduled_date
    )
    if overrides.end_time:
        end_time = as_naive_utc(overrides.end_time)
    elif start_time is not None:
        end_time = start_time + timedelta(
            minutes=roadmap_task.estimated_duration or DEFAULT_TASK_DURATION
        )
    else:
        end_time = None

    task = Task(
        user_id=user_id,
        title=overrides.title or roadmap_task.title,
        description=overrides.description or roadmap_task.description,
        start_time=start_time,
        end_time=end_time,
        priority=roadmap_task.priority,
        status=TaskStatus.PENDING,
        category=overrides.category,
        is_all_day=overrides.is_all_day,
    )
    db.add(task)
    await db.flush()

    roadmap_task.task_id = task.id
    await db.flush()

    logger.info("Roadmap task converted", roadmap_task_id=roadmap_task_id, task_id=task.id)
    return task


async def link_roadmap_task(
    db: AsyncSession,
    roadmap_task_id: int,
    task_id: int,
    *,
    user_id: int,
) -> RoadmapTask:
    """Link an existing planner task owned by the same user."""
    roadmap_task = await get_owned_roadmap_task(db, roadmap_task_id, user_id)
    task = await db.get(Task, task_id)
    if task is None or task.user_id != user_id:
        raise NotFoundError("Task", task_id)

    roadmap_task.task_id = task.id
    await db.flush()

    logger.info("Roadmap task linked", roadmap_task_id=roadmap_task_id, task_id=task_id)
    return roadmap_task


async def complete_roadmap_task(
    db: AsyncSession,
    roadmap_task_id: int,
    *,
    user_id: int,
    now: datetime | None = None,
) -> RoadmapTask:
    """Mark a roadmap task completed; repeating it keeps the first timestamp."""
    roadmap_task = await get_owned_roadmap_task(db, roadmap_task_id, user_id)
    if roadmap_task.status != TaskStatus.COMPLETED:
        roadmap_task.status = TaskStatus.COMPLETED
        roadmap_task.completed_at = now or utc_now()
        await db.flush()
        logger.info("Roadmap task completed", roadmap_task_id=roadmap_task_id)
    return roadmap_task
