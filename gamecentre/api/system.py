"""System status API endpoints."""

from fastapi import APIRouter, Depends

from gamecentre.api.deps import get_session_engine
from gamecentre.config import settings
from gamecentre.services.session_service import SessionEngine
from gamecentre.ws.events import manager

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/ping")
def system_ping():
    """Lightweight health check."""
    return {"status": "ok"}


@router.get("/status")
def system_status(engine: SessionEngine = Depends(get_session_engine)):
    """Open sessions, free devices and connected dashboards."""
    counts = {
        status: len(engine.list_sessions(status))
        for status in ("pending", "approved", "active")
    }
    return {
        "server_name": settings.server_name,
        "sessions": counts,
        "devices_available": engine.devices.available_count(),
        "pending_timers": engine.timers.active_count,
        "dashboards": manager.connection_count,
    }
