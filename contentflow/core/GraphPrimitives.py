from typing import Dict, List, NamedTuple, Optional
from collections import defaultdict

from .Node import Node
from .Types import DataKind


# Edges are immutable; the store replaces, never mutates them.
class Edge(NamedTuple):
    id: str
    source_node_id: str
    source_port_id: str
    target_node_id: str
    target_port_id: str
    data_kind: DataKind

    def to_dict(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "sourceNodeId": self.source_node_id,
            "sourcePortId": self.source_port_id,
            "targetNodeId": self.target_node_id,
            "targetPortId": self.target_port_id,
            "dataKind": self.data_kind.value,
        }

    def __repr__(self):
        return f"Edge({self.source_node_id}.{self.source_port_id} -> {self.target_node_id}.{self.target_port_id})"


class EdgeCandidate(NamedTuple):
    """A proposed connection, not yet admitted to any graph."""
    source_node_id: str
    source_port_id: str
    target_node_id: str
    target_port_id: str

    def __repr__(self):
        return f"EdgeCandidate({self.source_node_id}.{self.source_port_id} -> {self.target_node_id}.{self.target_port_id})"


class WorkflowGraph:
    """
    Nodes (in insertion order) and edges of one workflow.
    Used for the store's live collections and for the independent copies handed to runs.
    """

    def __init__(self, nodes: Optional[Dict[str, Node]] = None, edges: Optional[List[Edge]] = None):
        self.nodes: Dict[str, Node] = nodes if nodes is not None else {}
        self.edges: List[Edge] = edges if edges is not None else []

    def get_node(self, node_id: str) -> Optional[Node]:
        return self.nodes.get(node_id)

    def incoming_edges(self, node_id: str) -> List[Edge]:
        return [e for e in self.edges if e.target_node_id == node_id]

    def outgoing_edges(self, node_id: str) -> List[Edge]:
        return [e for e in self.edges if e.source_node_id == node_id]

    def adjacency(self) -> Dict[str, List[str]]:
        succ: Dict[str, List[str]] = defaultdict(list)
        for edge in self.edges:
            succ[edge.source_node_id].append(edge.target_node_id)
        return succ

    def copy(self) -> 'WorkflowGraph':
        return WorkflowGraph({nid: n.copy() for nid, n in self.nodes.items()}, list(self.edges))

    def to_dict(self) -> Dict[str, list]:
        return {
            "nodes": [n.to_dict() for n in self.nodes.values()],
            "edges": [e.to_dict() for e in self.edges],
        }

    def __len__(self) -> int:
        return len(self.nodes)
