"""Scheduled batch jobs and their wall-clock scheduler."""

from app.jobs.batch import (
    generate_daily_tasks_for_all_users,
    send_daily_task_reminders,
    send_milestone_due_reminders,
    send_weekly_coaching_to_all,
    send_weekly_progress_summaries,
    sweep_overdue_milestones,
)
from app.jobs.scheduler import JobScheduler, JobSpec, build_default_jobs

__all__ = [
    "sweep_overdue_milestones",
    "send_milestone_due_reminders",
    "send_daily_task_reminders",
    "send_weekly_progress_summaries",
    "generate_daily_tasks_for_all_users",
    "send_weekly_coaching_to_all",
    "JobScheduler",
    "JobSpec",
    "build_default_jobs",
]
