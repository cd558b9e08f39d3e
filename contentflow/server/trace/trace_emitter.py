"""
TraceEmitter: fan-out of run trace events to registered listeners
(the Socket.IO bridge, loggers, tests).
"""
from __future__ import annotations

import time
from logging import getLogger
from typing import Any, Callable, Dict, List

from .trace_types import TraceEvent

logger = getLogger(__name__)

TraceListener = Callable[[TraceEvent], None]


class TraceEmitter:
    def __init__(self) -> None:
        self._listeners: List[TraceListener] = []

    # ------------------------------------------------------------------
    # Listener registration
    # ------------------------------------------------------------------

    def on_trace(self, callback: TraceListener) -> Callable[[], None]:
        """Register a callback that receives every emitted trace event."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)
        return unsubscribe

    # ------------------------------------------------------------------
    # Emit
    # ------------------------------------------------------------------

    def fire(self, payload: Dict[str, Any]) -> None:
        """Stamp the payload with a millisecond timestamp and broadcast it."""
        if "ts" not in payload:
            payload["ts"] = _now_ms()
        for cb in list(self._listeners):
            try:
                cb(payload)
            except Exception:
                # a listener must never break a run
                logger.exception("trace listener failed on %s", payload.get("type"))


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

global_tracer = TraceEmitter()


def _now_ms() -> int:
    return int(time.time() * 1000)
