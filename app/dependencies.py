"""
FastAPI dependency injection.
Provides the lifecycle coordinator and the caller identity.
"""

from typing import Optional

from fastapi import Header, HTTPException, status

from app.clock import SystemClock
from app.config import LifecycleConfig, settings
from app.lifecycle.coordinator import LifecycleCoordinator
from app.models.database import async_session_factory
from app.models.enums import Role
from app.notifications.sinks import build_sink
from app.schemas.reports import Identity
from app.store.sql import SqlReportStore


# ── Singleton instances ──────────────────────────────────────
_lifecycle: Optional[LifecycleCoordinator] = None


def build_lifecycle() -> LifecycleCoordinator:
    """Wire a coordinator against the configured database and sink."""
    return LifecycleCoordinator(
        store=SqlReportStore(async_session_factory),
        sink=build_sink(settings),
        clock=SystemClock(),
        config=LifecycleConfig.from_settings(settings),
    )


def get_lifecycle() -> LifecycleCoordinator:
    """Get or create the lifecycle coordinator singleton."""
    global _lifecycle
    if _lifecycle is None:
        _lifecycle = build_lifecycle()
    return _lifecycle


async def get_identity(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_role: Optional[str] = Header(None, alias="X-User-Role"),
) -> Identity:
    """
    Caller identity as forwarded by the authenticating gateway.
    This service authorizes; it never authenticates.
    """
    if not x_user_id or not x_user_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing caller identity",
        )
    try:
        role = Role(x_user_role)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Unknown role: {x_user_role}",
        )
    return Identity(id=x_user_id, role=role)
