"""ObelixIA Backend API - FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from postgrest.exceptions import APIError
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from . import __version__
from .config import get_settings
from .database import get_supabase_client
from .logging_config import configure_logging, get_logger
from .notices import error_payload
from .rate_limit import limiter
from .remote import RemoteCallError
from .routes import (
    audit_router,
    goals_router,
    inbox_router,
    panels_router,
    reports_router,
    visits_router,
)
from .services.goals import NothingToDistribute
from .services.panels import PanelService, UnknownAction, UnknownPanel
from .services.trends import UnknownCategory
from .services.visits import VisitSheetAutosaver

logger = get_logger("obelixia.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    configure_logging()
    settings = get_settings()
    logger.info(f"Starting ObelixIA Backend API (debug={settings.debug})")

    app.state.autosaver = VisitSheetAutosaver(
        get_supabase_client, delay=settings.autosave_delay_seconds
    )
    app.state.panels = PanelService(settings, get_supabase_client)
    yield

    # Pending edits are written before the process exits
    await app.state.autosaver.aclose()
    await app.state.panels.aclose()
    logger.info("Shutting down ObelixIA Backend API")


app = FastAPI(
    title="ObelixIA Backend API",
    description="Backend for the ObelixIA banking CRM: goals, visits, inbox and admin engines",
    version=__version__,
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(RemoteCallError)
async def remote_call_error_handler(request: Request, exc: RemoteCallError):
    logger.error(f"Remote call failed | {exc.function}.{exc.action} | {exc.message}")
    return JSONResponse(status_code=502, content=error_payload(exc.user_message()))


@app.exception_handler(APIError)
async def database_error_handler(request: Request, exc: APIError):
    logger.error(f"Database error on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=502, content=error_payload("Database error"))


@app.exception_handler(UnknownPanel)
async def unknown_panel_handler(request: Request, exc: UnknownPanel):
    return JSONResponse(status_code=404, content=error_payload(str(exc)))


@app.exception_handler(UnknownAction)
@app.exception_handler(UnknownCategory)
@app.exception_handler(NothingToDistribute)
async def bad_request_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content=error_payload(str(exc)))


# CORS middleware
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(goals_router)
app.include_router(visits_router)
app.include_router(inbox_router)
app.include_router(reports_router)
app.include_router(panels_router)
app.include_router(audit_router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "service": "obelixia-backend",
        "version": __version__,
        "status": "ok",
    }


@app.get("/health")
async def health():
    """Detailed health check with actual database verification."""
    db_status = "disconnected"
    try:
        db = get_supabase_client()
        db.table("profiles").select("id").limit(1).execute()
        db_status = "connected"
    except Exception as e:
        db_status = f"error: {str(e)[:50]}"

    overall_status = "healthy" if db_status == "connected" else "degraded"

    return {
        "status": overall_status,
        "database": db_status,
    }
