"""
Admission rules for new edges.

`validate` is a pure function over a node/edge snapshot: it never mutates
the graph and returns the first failing rule in a fixed order.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Set

from .GraphPrimitives import Edge, EdgeCandidate
from .Node import Node
from .NodeRegistry import NodeTypeRegistry
from .Errors import UnknownNodeTypeError
from .Types import DataKind

SELF_CONNECTION = "self-connection not allowed"
NODE_NOT_FOUND = "source or target node not found"
UNKNOWN_PORT = "unknown port"
PORT_CONNECTED = "port already connected"
CYCLE = "connection would create a cycle"


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    reason: Optional[str] = None
    data_kind: Optional[DataKind] = None

    def to_dict(self):
        return {
            "valid": self.valid,
            "reason": self.reason,
            "dataKind": self.data_kind.value if self.data_kind else None,
        }


@dataclass(frozen=True)
class ConnectionRejected:
    """Returned by GraphStore.connect when the validator refuses an edge."""
    reason: str
    candidate: EdgeCandidate

    def to_dict(self):
        return {"valid": False, "reason": self.reason}


def _incompatible(source_type: str, target_type: str) -> str:
    return f"{source_type} output is incompatible with {target_type} input"


def _reaches(start: str, goal: str, edges: Iterable[Edge]) -> bool:
    adjacency: Dict[str, List[str]] = {}
    for edge in edges:
        adjacency.setdefault(edge.source_node_id, []).append(edge.target_node_id)

    visited: Set[str] = set()
    stack = [start]
    while stack:
        node_id = stack.pop()
        if node_id == goal:
            return True
        if node_id in visited:
            continue
        visited.add(node_id)
        stack.extend(adjacency.get(node_id, []))
    return False


def validate(candidate: EdgeCandidate,
             nodes: Mapping[str, Node],
             edges: List[Edge],
             registry: NodeTypeRegistry) -> ValidationResult:
    if candidate.source_node_id == candidate.target_node_id:
        return ValidationResult(False, SELF_CONNECTION)

    source = nodes.get(candidate.source_node_id)
    target = nodes.get(candidate.target_node_id)
    if source is None or target is None:
        return ValidationResult(False, NODE_NOT_FOUND)

    try:
        source_def = registry.get(source.type)
        target_def = registry.get(target.type)
    except UnknownNodeTypeError:
        return ValidationResult(False, UNKNOWN_PORT)

    out_port = source_def.get_output(candidate.source_port_id)
    in_port = target_def.get_input(candidate.target_port_id)
    if out_port is None or in_port is None:
        return ValidationResult(False, UNKNOWN_PORT)

    feeding = [e for e in edges
               if e.target_node_id == candidate.target_node_id
               and e.target_port_id == candidate.target_port_id]
    if feeding:
        if not in_port.allow_multiple:
            return ValidationResult(False, PORT_CONNECTED)
        for e in feeding:
            if (e.source_node_id, e.source_port_id) == (candidate.source_node_id, candidate.source_port_id):
                return ValidationResult(False, PORT_CONNECTED)

    data_kind = out_port.produced_kind
    if not in_port.accepts(data_kind):
        return ValidationResult(False, _incompatible(source.type, target.type))

    if _reaches(candidate.target_node_id, candidate.source_node_id, edges):
        return ValidationResult(False, CYCLE)

    return ValidationResult(True, None, data_kind)
