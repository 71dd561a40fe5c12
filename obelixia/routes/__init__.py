"""API routes."""

from .audit import router as audit_router
from .goals import router as goals_router
from .inbox import router as inbox_router
from .panels import router as panels_router
from .reports import router as reports_router
from .visits import router as visits_router

__all__ = [
    "audit_router",
    "goals_router",
    "inbox_router",
    "panels_router",
    "reports_router",
    "visits_router",
]
