"""
Socket.IO server.

Uses python-socketio in ASGI mode so it can wrap FastAPI.
`create_socket_app(fastapi_app)` returns the composite ASGI application to
pass to uvicorn.
"""
from __future__ import annotations

import asyncio
from logging import getLogger
from typing import Any, Dict, Set

import socketio

from .trace_emitter import global_tracer

logger = getLogger(__name__)

# ---------------------------------------------------------------------------
# Socket.IO instance (async, ASGI mode)
# ---------------------------------------------------------------------------

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins="*",
    logger=False,
    engineio_logger=False,
)


# ---------------------------------------------------------------------------
# Trace fan-out: wire global_tracer -> Socket.IO emit
# ---------------------------------------------------------------------------

# pending emits; held so they are not collected before they finish
_pending: Set["asyncio.Task[Any]"] = set()


def _emit_done(task: "asyncio.Task[Any]") -> None:
    _pending.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("trace emit failed: %r", exc)


def _on_trace(event: Dict[str, Any]) -> None:
    """
    Called synchronously by TraceEmitter.fire().
    Schedules an async emit on the running event loop; outside a loop there
    are no connected clients to reach, so the event is dropped.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        logger.debug("no running loop, dropping %s", event.get("type"))
        return
    task = loop.create_task(sio.emit("trace", event))
    _pending.add(task)
    task.add_done_callback(_emit_done)


global_tracer.on_trace(_on_trace)


# ---------------------------------------------------------------------------
# Socket.IO lifecycle events
# ---------------------------------------------------------------------------

@sio.event
async def connect(sid: str, environ: dict) -> None:
    logger.debug("trace client connected: %s", sid)


@sio.event
async def disconnect(sid: str) -> None:
    logger.debug("trace client disconnected: %s", sid)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def create_socket_app(fastapi_app: Any) -> socketio.ASGIApp:
    """Wrap *fastapi_app* inside a Socket.IO ASGI application."""
    return socketio.ASGIApp(sio, other_asgi_app=fastapi_app)
