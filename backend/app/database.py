"""Storage and service wiring for the GrameenLink backend.

The API runs on Supabase when ``SUPABASE_URL`` and ``SUPABASE_SECRET_KEY``
are both set, and on in-process memory otherwise (local development and
tests). Either way every request shares one ``ApplicationService`` so its
lock covers all writers in the process.
"""

from typing import Annotated

from fastapi import Depends
from supabase import Client, create_client

from grameenlink.marketplace.applications import (
    ApplicationService,
    ApplicationStorage,
    InMemoryApplicationStorage,
)

from .config import Settings, get_settings
from .logging_config import get_logger

logger = get_logger("grameenlink.database")

_supabase_client: Client | None = None
_service: ApplicationService | None = None


def get_supabase_client(settings: Settings | None = None) -> Client:
    """Get cached Supabase client."""
    global _supabase_client
    if _supabase_client is None:
        if settings is None:
            settings = get_settings()
        if not settings.uses_supabase:
            raise ValueError("SUPABASE_URL and SUPABASE_SECRET_KEY must both be set")
        _supabase_client = create_client(settings.supabase_url, settings.supabase_secret_key)
    return _supabase_client


def create_storage(settings: Settings) -> ApplicationStorage:
    """Pick the storage backend the settings ask for."""
    if settings.uses_supabase:
        from grameenlink.marketplace.applications.supabase_storage import (
            SupabaseApplicationStorage,
        )

        logger.info("Using Supabase application storage")
        return SupabaseApplicationStorage(get_supabase_client(settings))

    logger.warning("Supabase not configured; using in-memory application storage")
    return InMemoryApplicationStorage()


def get_service(settings: Annotated[Settings, Depends(get_settings)]) -> ApplicationService:
    """FastAPI dependency for the shared application service."""
    global _service
    if _service is None:
        _service = ApplicationService(
            storage=create_storage(settings),
            config=settings.marketplace_config(),
        )
    return _service


def reset_service() -> None:
    """Drop the shared service so the next request builds a fresh one."""
    global _service
    _service = None


# Type alias for dependency injection
Service = Annotated[ApplicationService, Depends(get_service)]
