"""GameCentre Server - FastAPI Application Entry Point."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from gamecentre.config import settings
from gamecentre.database import engine, init_db
from gamecentre.models.device import Device
from gamecentre.models.session import GameSession
from gamecentre.services.notifications import CallbackSink, FanoutSink, LoggingSink
from gamecentre.services.payment import SimulatedPaymentGateway
from gamecentre.services.session_service import build_session_engine
from gamecentre.ws.events import manager, websocket_events

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database, provision devices and re-arm timers on startup."""
    init_db()
    manager.attach_loop(asyncio.get_running_loop())

    # Tests install their own engine before startup
    sessions = getattr(app.state, "sessions", None)
    if sessions is None:
        sessions = build_session_engine(
            engine,
            notifier=FanoutSink(LoggingSink(), CallbackSink(manager.publish)),
            payments=SimulatedPaymentGateway(),
        )
        app.state.sessions = sessions

    sessions.devices.provision(settings.devices)
    sessions.recover()
    unsubscribers = [
        sessions.store.subscribe(GameSession, manager.publish_change),
        sessions.store.subscribe(Device, manager.publish_change),
    ]
    logger.info("%s ready", settings.server_name)

    yield

    for unsubscribe in unsubscribers:
        unsubscribe()
    sessions.shutdown()


app = FastAPI(
    title="GameCentre",
    description="Gaming centre session booking, one-time codes and device control",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS - allow all origins for local network usage
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Register API routers ---
from gamecentre.api.sessions import router as sessions_router  # noqa: E402
from gamecentre.api.devices import router as devices_router  # noqa: E402
from gamecentre.api.system import router as system_router  # noqa: E402

API_PREFIX = "/api/v1"

app.include_router(sessions_router, prefix=API_PREFIX)
app.include_router(devices_router, prefix=API_PREFIX)
app.include_router(system_router, prefix=API_PREFIX)


# --- WebSocket endpoints ---

@app.websocket("/ws")
async def ws_endpoint(ws: WebSocket):
    await websocket_events(ws)


@app.get("/")
def root():
    """Health check / server info."""
    return {
        "name": settings.server_name,
        "version": "0.1.0",
        "status": "running",
    }


@app.get("/api/v1/health")
def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("gamecentre.main:app", host=settings.host, port=settings.port)
