"""User model."""

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.clock import utc_now
from app.core.database import Base


class User(Base):
    """Account owning roadmaps and planner tasks."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str | None] = mapped_column(String, unique=True)
    email: Mapped[str | None] = mapped_column(String, unique=True)

    # Chat handle for outbound notifications (None = notifications skipped)
    telegram_chat_id: Mapped[str | None] = mapped_column(String, default=None)

    # Metadata
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
