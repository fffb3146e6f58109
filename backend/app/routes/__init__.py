"""API routes."""

from .applications import router as applications_router
from .jobs import router as jobs_router
from .workers import router as workers_router

__all__ = [
    "applications_router",
    "jobs_router",
    "workers_router",
]
