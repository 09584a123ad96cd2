"""Database models."""

from app.models.roadmap import Goal, Milestone, Roadmap, RoadmapTask
from app.models.task import Task
from app.models.user import User

__all__ = [
    "User",
    "Roadmap",
    "Goal",
    "Milestone",
    "RoadmapTask",
    "Task",
]
