"""Service layer modules."""

from app.services import (
    analytics_service,
    coaching_service,
    events,
    notification_service,
    progress_service,
    roadmap_service,
    task_generator_service,
)

__all__ = [
    "analytics_service",
    "coaching_service",
    "events",
    "notification_service",
    "progress_service",
    "roadmap_service",
    "task_generator_service",
]
