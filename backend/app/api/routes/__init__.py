"""API routes."""

from app.api.routes import analytics, coaching, roadmap_tasks, roadmaps

__all__ = ["roadmaps", "analytics", "coaching", "roadmap_tasks"]
