"""FastAPI application entry point."""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import analytics, coaching, roadmap_tasks, roadmaps
from app.core.config import get_settings
from app.core.database import close_db, get_db_session, init_db
from app.core.errors import AuraError
from app.core.logging import configure_logging, get_logger
from app.jobs import JobScheduler, build_default_jobs
from app.llm.client import TextGenerationClient
from app.services.events import EventOutbox, ProgressEvent
from app.services.notification_service import TelegramNotifier, handle_event

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    configure_logging(debug=settings.DEBUG)
    logger.info(
        "Starting Aura",
        version=settings.APP_VERSION,
        env=settings.ENV,
        debug=settings.DEBUG,
    )
    await init_db()

    text_client = TextGenerationClient.from_settings(settings)
    notifier = TelegramNotifier.from_settings(settings)
    outbox = EventOutbox()
    app.state.text_client = text_client
    app.state.notifier = notifier
    app.state.outbox = outbox

    async def dispatch(event: ProgressEvent) -> None:
        async with get_db_session() as db:
            await handle_event(db, notifier, event)

    dispatcher = asyncio.create_task(outbox.drain(dispatch), name="event-dispatcher")

    scheduler = None
    if settings.SCHEDULER_ENABLED:
        scheduler = JobScheduler(
            build_default_jobs(settings, get_db_session, notifier, text_client)
        )
        scheduler.start()

    yield

    # Shutdown
    logger.info("Shutting down Aura", pending_events=outbox.pending())
    if scheduler is not None:
        await scheduler.stop()
    dispatcher.cancel()
    await asyncio.gather(dispatcher, return_exceptions=True)
    await notifier.aclose()
    await close_db()


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Roadmap progress analytics and coaching",
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.is_development else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AuraError)
async def aura_error_handler(request: Request, exc: AuraError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request failed", path=request.url.path, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Include routers
app.include_router(roadmaps.router, prefix="/api")
app.include_router(analytics.router, prefix="/api")
app.include_router(coaching.router, prefix="/api")
app.include_router(roadmap_tasks.router, prefix="/api")


@app.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "env": settings.ENV,
    }


@app.get("/")
async def root() -> dict:
    """Root endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
