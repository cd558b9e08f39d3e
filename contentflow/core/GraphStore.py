from typing import Any, Callable, Dict, List, Mapping, Optional, Union, TYPE_CHECKING
from logging import getLogger
import uuid

from pydantic import BaseModel

from .ConnectionValidator import ConnectionRejected, validate
from .Errors import DuplicateNodeError, NodeLimitError, NodeNotFoundError
from .GraphPrimitives import Edge, EdgeCandidate, WorkflowGraph
from .Node import Node
from .NodeRegistry import NodeTypeRegistry
from .Types import NodeStatus

if TYPE_CHECKING:
    from .Executor import ExecutionRun

logger = getLogger(__name__)

EdgeListener = Callable[[Edge], None]


def _new_id() -> str:
    return uuid.uuid4().hex[:8]


class GraphStore:
    """
    Owns the nodes and edges of one workflow.

    Single writer: every mutation goes through this class. Runs operate on
    `snapshot()` copies, so editing the store never affects a run in flight.
    """

    def __init__(self, registry: NodeTypeRegistry, workflow_id: Optional[str] = None, name: str = ""):
        self.registry = registry
        self.id = workflow_id or _new_id()
        self.name = name or self.id
        self._graph = WorkflowGraph()
        self._edge_listeners: List[EdgeListener] = []

    # --- read side ---

    @property
    def nodes(self) -> List[Node]:
        return list(self._graph.nodes.values())

    @property
    def edges(self) -> List[Edge]:
        return list(self._graph.edges)

    def get_node(self, node_id: str) -> Node:
        node = self._graph.get_node(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def get_edge(self, edge_id: str) -> Optional[Edge]:
        for edge in self._graph.edges:
            if edge.id == edge_id:
                return edge
        return None

    def snapshot(self) -> WorkflowGraph:
        return self._graph.copy()

    def to_dict(self) -> Dict[str, Any]:
        data = self._graph.to_dict()
        data["id"] = self.id
        data["name"] = self.name
        return data

    # --- nodes ---

    def add_node(self,
                 type_id: str,
                 config: Union[Mapping[str, Any], BaseModel, None] = None,
                 node_id: Optional[str] = None) -> Node:
        definition = self.registry.get(type_id)

        if definition.max_instances is not None:
            count = sum(1 for n in self._graph.nodes.values() if n.type == type_id)
            if count >= definition.max_instances:
                raise NodeLimitError(
                    f"Only {definition.max_instances} {definition.title} node(s) allowed per workflow",
                    details={"type": type_id, "max_instances": definition.max_instances},
                )

        if node_id is not None:
            if node_id in self._graph.nodes:
                raise DuplicateNodeError(f"Node with id '{node_id}' already exists in the workflow")
        else:
            node_id = _new_id()
            while node_id in self._graph.nodes:
                node_id = _new_id()

        node = Node(node_id, type_id, definition.build_config(config))
        self._graph.nodes[node_id] = node
        logger.debug("workflow %s: added %r", self.id, node)
        return node

    def remove_node(self, node_id: str) -> bool:
        if node_id not in self._graph.nodes:
            return False
        # cascade: incident edges go with the node
        self._graph.edges = [e for e in self._graph.edges
                             if e.source_node_id != node_id and e.target_node_id != node_id]
        del self._graph.nodes[node_id]
        logger.debug("workflow %s: removed node %s", self.id, node_id)
        return True

    def update_node_config(self, node_id: str, patch: Mapping[str, Any]) -> Node:
        """Shallow-merge `patch` into the node's config and re-validate it."""
        node = self.get_node(node_id)
        definition = self.registry.get(node.type)
        merged = node.config.model_dump()
        merged.update(patch)
        node.config = definition.build_config(merged)
        return node

    # --- edges ---

    def connect(self, candidate: EdgeCandidate) -> Union[Edge, ConnectionRejected]:
        result = validate(candidate, self._graph.nodes, self._graph.edges, self.registry)
        if not result.valid:
            logger.debug("workflow %s: rejected %r (%s)", self.id, candidate, result.reason)
            return ConnectionRejected(result.reason, candidate)

        edge = Edge(_new_id(),
                    candidate.source_node_id,
                    candidate.source_port_id,
                    candidate.target_node_id,
                    candidate.target_port_id,
                    result.data_kind)
        self._graph.edges.append(edge)

        for listener in list(self._edge_listeners):
            try:
                listener(edge)
            except Exception:
                logger.exception("edge listener failed for %r", edge)
        return edge

    def disconnect(self, edge_id: str) -> bool:
        before = len(self._graph.edges)
        self._graph.edges = [e for e in self._graph.edges if e.id != edge_id]
        return len(self._graph.edges) != before

    def on_edge_added(self, listener: EdgeListener) -> Callable[[], None]:
        self._edge_listeners.append(listener)

        def unsubscribe():
            if listener in self._edge_listeners:
                self._edge_listeners.remove(listener)
        return unsubscribe

    # --- runs ---

    def record_run(self, run: 'ExecutionRun') -> None:
        """Copy outputs of completed nodes back onto the live nodes."""
        for node_id, state in run.node_states.items():
            node = self._graph.get_node(node_id)
            if node is not None and state.status == NodeStatus.COMPLETED:
                node.last_outputs = dict(state.outputs or {})

    def __len__(self) -> int:
        return len(self._graph)
