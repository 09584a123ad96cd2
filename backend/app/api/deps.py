"""API dependencies."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_auth_user
from app.core.database import get_db_session
from app.llm.client import TextGenerationClient
from app.services.events import Emit, EventOutbox, ProgressEvent
from app.services.notification_service import TelegramNotifier


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency.

    Progress events raised while handling the request are held back and
    only reach the outbox once the session has committed.
    """
    pending: list[ProgressEvent] = []
    request.state.pending_events = pending
    async with get_db_session() as session:
        yield session

    outbox: EventOutbox | None = getattr(request.app.state, "outbox", None)
    if outbox is not None:
        for event in pending:
            outbox.emit(event)


def get_emit(request: Request, db: Annotated[AsyncSession, Depends(get_db)]) -> Emit:
    return request.state.pending_events.append


def get_text_client(request: Request) -> TextGenerationClient | None:
    client: TextGenerationClient | None = getattr(request.app.state, "text_client", None)
    if client is None or not client.available:
        return None
    return client


def get_notifier(request: Request) -> TelegramNotifier | None:
    return getattr(request.app.state, "notifier", None)


# Database dependency
DbSession = Annotated[AsyncSession, Depends(get_db)]

EmitDep = Annotated[Emit, Depends(get_emit)]

TextClientDep = Annotated[TextGenerationClient | None, Depends(get_text_client)]

NotifierDep = Annotated[TelegramNotifier | None, Depends(get_notifier)]

# Auth user dependency - returns user_id (default: 1 for anonymous access)
CurrentUser = Annotated[int, Depends(get_auth_user)]
