"""
TraceEvent type definitions.
All events are plain dicts so they can be emitted over Socket.IO without Pydantic overhead.
"""
from typing import Any, Dict, List, Literal, TypedDict, Union


class ExecStartEvent(TypedDict):
    type: Literal["EXEC_START"]
    workflowId: str
    runId: str
    nodeIds: List[str]
    ts: int


class NodeRunningEvent(TypedDict):
    type: Literal["NODE_RUNNING"]
    workflowId: str
    nodeId: str
    ts: int


class NodeDoneEvent(TypedDict):
    type: Literal["NODE_DONE"]
    workflowId: str
    nodeId: str
    durationMs: float
    ts: int


class NodeErrorEvent(TypedDict):
    type: Literal["NODE_ERROR"]
    workflowId: str
    nodeId: str
    error: str
    ts: int


class NodeSkippedEvent(TypedDict):
    type: Literal["NODE_SKIPPED"]
    workflowId: str
    nodeId: str
    reason: str
    ts: int


class EdgeActiveEvent(TypedDict):
    type: Literal["EDGE_ACTIVE"]
    workflowId: str
    edgeId: str
    fromNodeId: str
    fromPort: str
    toNodeId: str
    toPort: str
    ts: int


class ExecDoneEvent(TypedDict):
    type: Literal["EXEC_DONE"]
    workflowId: str
    runId: str
    summary: Dict[str, Any]
    ts: int


TraceEvent = Union[
    ExecStartEvent,
    NodeRunningEvent,
    NodeDoneEvent,
    NodeErrorEvent,
    NodeSkippedEvent,
    EdgeActiveEvent,
    ExecDoneEvent,
]
