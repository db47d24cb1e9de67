"""
lobby/server.py - FastAPI signaling server for duet.

Endpoints:
    WS     /ws          Signaling socket (ready / signal / leave / pong)
    GET    /health      Server health check
    GET    /stats       Aggregate counters (Authorization: Bearer <admin token>)

The socket handler never touches matchmaking state. It turns socket
activity into coordinator events and drains the connection's outbox; the
coordinator applies events one at a time on the event loop.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Callable

from fastapi import APIRouter, FastAPI, Header, HTTPException, Request, WebSocket
from pydantic import BaseModel
from starlette.middleware.cors import CORSMiddleware

from duet.config import ServerSettings
from duet.coordinator import Connected, Disconnected, Inbound, SessionCoordinator
from duet.heartbeat import HeartbeatMonitor
from duet.stats import InMemoryStats

logger = logging.getLogger(__name__)

_CLOSE = object()

# Application-level close code for connections reaped by the heartbeat
# or dropped for not reading their messages
CLOSE_UNRESPONSIVE = 4008

# Messages a link may have queued before its reader is considered stuck
OUTBOX_LIMIT = 256


# ======================================================================
# Transport Link
# ======================================================================


class WebSocketLink:
    """Outbound side of one signaling socket.

    send() and close() only enqueue; pump() does the awaiting. A failed
    send marks this link closed and affects no other connection. A peer
    that stops reading fills the outbox; the link then closes itself and
    calls on_overflow so the connection can be torn down.
    """

    def __init__(
        self,
        websocket: WebSocket,
        limit: int = OUTBOX_LIMIT,
        on_overflow: Callable[[], None] | None = None,
    ):
        self._websocket = websocket
        self._outbox: asyncio.Queue = asyncio.Queue(maxsize=limit)
        self._on_overflow = on_overflow
        self._open = True

    @property
    def is_open(self) -> bool:
        return self._open

    def send(self, message: dict[str, Any]) -> None:
        if not self._open:
            return
        try:
            self._outbox.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning(f"Outbox full ({self._outbox.maxsize} messages), dropping link")
            self._overflow()

    def close(self) -> None:
        if self._open:
            self._open = False
            if self._outbox.full():
                self._discard_pending()
            self._outbox.put_nowait(_CLOSE)

    def _discard_pending(self) -> None:
        while not self._outbox.empty():
            self._outbox.get_nowait()

    def _overflow(self) -> None:
        # Only the close remains queued
        self._discard_pending()
        self.close()
        if self._on_overflow is not None:
            self._on_overflow()

    def mark_closed(self) -> None:
        """The peer went away; drop anything still queued."""
        self._open = False

    async def pump(self) -> None:
        while True:
            message = await self._outbox.get()
            if message is _CLOSE:
                try:
                    await self._websocket.close(code=CLOSE_UNRESPONSIVE)
                except Exception as e:
                    logger.debug(f"Close on dead socket failed: {e}")
                return
            try:
                await self._websocket.send_json(message)
            except Exception as e:
                logger.warning(f"Send failed, dropping link: {e}")
                self._open = False
                return


# ======================================================================
# Response Models
# ======================================================================


class HealthResponse(BaseModel):
    status: str
    connections: int
    queue_size: int
    active_pairings: int


# ======================================================================
# Endpoints
# ======================================================================

router = APIRouter()


def get_coordinator(request: Request) -> SessionCoordinator:
    return request.app.state.coordinator


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> dict[str, Any]:
    """Server health check."""
    coordinator = get_coordinator(request)
    return {
        "status": "ok",
        "connections": len(coordinator.registry),
        "queue_size": len(coordinator.queue),
        "active_pairings": coordinator.active_pairings,
    }


@router.get("/stats")
async def stats(
    request: Request, authorization: str | None = Header(default=None)
) -> dict[str, Any]:
    """Visitor and conversation counters for the admin page."""
    settings: ServerSettings = request.app.state.settings
    if not settings.admin_token:
        raise HTTPException(status_code=503, detail="Stats disabled: no admin token configured")

    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or token != settings.admin_token:
        raise HTTPException(status_code=401, detail="Unauthorized")

    coordinator = get_coordinator(request)
    return request.app.state.stats.snapshot(
        connected=len(coordinator.registry),
        queue_length=len(coordinator.queue),
    )


@router.websocket("/ws")
async def signaling_socket(websocket: WebSocket):
    """One anonymous participant. Lives until the socket closes."""
    coordinator: SessionCoordinator = websocket.app.state.coordinator

    await websocket.accept()
    link = WebSocketLink(
        websocket,
        on_overflow=lambda: coordinator.submit(Disconnected(link, "outbox overflow")),
    )
    writer = asyncio.create_task(link.pump())
    coordinator.submit(Connected(link))

    reason = "closed"
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            coordinator.submit(Inbound(link, raw))
    except Exception as e:
        reason = f"transport error: {e}"
        logger.warning(f"Socket error: {e}")
    finally:
        link.mark_closed()
        coordinator.submit(Disconnected(link, reason))
        writer.cancel()


# ======================================================================
# App
# ======================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: ServerSettings = app.state.settings
    stats = InMemoryStats()
    coordinator = SessionCoordinator(
        stats=stats,
        heartbeat=HeartbeatMonitor(settings.heartbeat_interval),
    )
    app.state.stats = stats
    app.state.coordinator = coordinator

    _log_startup_config(settings)
    tasks = [
        asyncio.create_task(coordinator.run()),
        asyncio.create_task(coordinator.heartbeat.run(coordinator.tick)),
    ]

    yield

    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    logger.info("Signaling server stopped")


def _log_startup_config(settings: ServerSettings) -> None:
    logger.info("=" * 50)
    logger.info("Signaling server config:")
    logger.info(f"  Listen: {settings.host}:{settings.port}")
    logger.info(f"  Heartbeat: every {settings.heartbeat_interval:g}s")
    if settings.admin_token:
        logger.info("  Stats endpoint: enabled")
    else:
        logger.warning("  Stats endpoint: DISABLED (no admin token / ADMIN_PASSWORD)")
    logger.info("=" * 50)


def create_app(settings: ServerSettings | None = None) -> FastAPI:
    app = FastAPI(title="duet signaling", lifespan=lifespan)
    app.state.settings = settings or ServerSettings()

    # The admin page may be served from a different origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )
    app.include_router(router)
    return app


app = create_app()
