"""
Bridges executor progress callbacks into trace events.
"""
from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

from contentflow.core.GraphPrimitives import Edge
from contentflow.core.Interface import IProgressReporter

from .trace_emitter import TraceEmitter, global_tracer


class TraceReporter(IProgressReporter):
    def __init__(self, workflow_id: str, tracer: Optional[TraceEmitter] = None) -> None:
        self.workflow_id = workflow_id
        self.tracer = tracer or global_tracer
        self._started: Dict[str, float] = {}

    def _fire(self, event_type: str, **kwargs: Any) -> None:
        self.tracer.fire({"type": event_type, "workflowId": self.workflow_id, **kwargs})

    def on_run_start(self, run_id: str, node_ids: List[str]) -> None:
        self._fire("EXEC_START", runId=run_id, nodeIds=list(node_ids))

    def on_node_start(self, node_id: str) -> None:
        self._started[node_id] = time.perf_counter()
        self._fire("NODE_RUNNING", nodeId=node_id)

    def on_node_complete(self, node_id: str, outputs: Dict[str, Any]) -> None:
        t0 = self._started.pop(node_id, None)
        duration = (time.perf_counter() - t0) * 1000 if t0 is not None else 0.0
        self._fire("NODE_DONE", nodeId=node_id, durationMs=round(duration, 1))

    def on_node_error(self, node_id: str, message: str) -> None:
        self._started.pop(node_id, None)
        self._fire("NODE_ERROR", nodeId=node_id, error=message)

    def on_node_skipped(self, node_id: str, reason: str) -> None:
        self._fire("NODE_SKIPPED", nodeId=node_id, reason=reason)

    def on_edge_active(self, edge: Edge) -> None:
        self._fire("EDGE_ACTIVE",
                   edgeId=edge.id,
                   fromNodeId=edge.source_node_id,
                   fromPort=edge.source_port_id,
                   toNodeId=edge.target_node_id,
                   toPort=edge.target_port_id)

    def on_run_complete(self, run_id: str, summary: Dict[str, Any]) -> None:
        self._fire("EXEC_DONE", runId=run_id, summary=summary)
