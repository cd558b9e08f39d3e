import copy
import heapq
import inspect
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Set, Union
from logging import getLogger

from .Errors import (
    GraphCycleError,
    MissingRequiredInputError,
    NodeExecutionError,
    RunStateError,
    UnknownNodeTypeError,
)
from .GraphPrimitives import Edge, WorkflowGraph
from .GraphStore import GraphStore
from .Interface import IProgressReporter
from .Node import Node, NodeTypeDefinition
from .NodeRegistry import NodeTypeRegistry
from .Types import NodeStatus, RunStatus

logger = getLogger(__name__)

BRANCH_NOT_TAKEN = "branch not taken"


class NodeState:
    """Per-node bookkeeping for one run. Frozen once the node reaches a final status."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        self.status = NodeStatus.PENDING
        self.inputs: Dict[str, Any] = {}
        self.outputs: Optional[Dict[str, Any]] = None
        self.error: Optional[str] = None
        self.skip_reason: Optional[str] = None
        self.started_at: Optional[float] = None
        self.finished_at: Optional[float] = None

    def _transition(self, status: NodeStatus):
        if self.status.is_final():
            raise RunStateError(
                f"Node '{self.node_id}' is already {self.status.value}, cannot become {status.value}")
        if status == NodeStatus.RUNNING and self.status != NodeStatus.PENDING:
            raise RunStateError(f"Node '{self.node_id}' cannot start from {self.status.value}")
        self.status = status

    def mark_running(self, inputs: Dict[str, Any]):
        self._transition(NodeStatus.RUNNING)
        self.inputs = inputs
        self.started_at = time.time()

    def mark_completed(self, outputs: Dict[str, Any]):
        self._transition(NodeStatus.COMPLETED)
        self.outputs = outputs
        self.finished_at = time.time()

    def mark_error(self, message: str, inputs: Optional[Dict[str, Any]] = None):
        self._transition(NodeStatus.ERROR)
        if inputs is not None:
            self.inputs = inputs
        self.error = message
        self.finished_at = time.time()

    def mark_skipped(self, reason: str):
        self._transition(NodeStatus.SKIPPED)
        self.skip_reason = reason
        self.finished_at = time.time()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodeId": self.node_id,
            "status": self.status.value,
            "inputs": self.inputs,
            "outputs": self.outputs,
            "error": self.error,
            "skipReason": self.skip_reason,
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
        }

    def __repr__(self):
        return f"NodeState({self.node_id}: {self.status.value})"


@dataclass
class RunSummary:
    total_nodes: int
    nodes_executed: int
    nodes_succeeded: int
    nodes_failed: int
    nodes_skipped: int
    errors: List[str] = field(default_factory=list)
    execution_time_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalNodes": self.total_nodes,
            "nodesExecuted": self.nodes_executed,
            "nodesSucceeded": self.nodes_succeeded,
            "nodesFailed": self.nodes_failed,
            "nodesSkipped": self.nodes_skipped,
            "errors": list(self.errors),
            "executionTimeMs": self.execution_time_ms,
        }


class ExecutionRun:
    """
    State of one traversal of a graph snapshot: idle -> running -> completed.
    Node executions happen only while running; completed is terminal.
    """

    def __init__(self, run_id: Optional[str] = None):
        self.id = run_id or uuid.uuid4().hex
        self.status = RunStatus.IDLE
        self.node_states: Dict[str, NodeState] = {}
        self.execution_order: List[str] = []
        self.errors: List[Dict[str, str]] = []
        self.started_at: Optional[float] = None
        self.finished_at: Optional[float] = None
        self.summary: Optional[RunSummary] = None
        self._total_nodes = 0
        self._t0 = 0.0

    def start(self, total_nodes: int):
        if self.status != RunStatus.IDLE:
            raise RunStateError(f"Run {self.id} is {self.status.value}; start a new run to re-execute")
        self.status = RunStatus.RUNNING
        self._total_nodes = total_nodes
        self.started_at = time.time()
        self._t0 = time.perf_counter()

    def finish(self) -> RunSummary:
        if self.status != RunStatus.RUNNING:
            raise RunStateError(f"Run {self.id} is {self.status.value}, not running")
        self.status = RunStatus.COMPLETED
        self.finished_at = time.time()
        self.summary = self._summarize((time.perf_counter() - self._t0) * 1000.0)
        return self.summary

    def state(self, node_id: str) -> NodeState:
        if self.status != RunStatus.RUNNING:
            raise RunStateError(f"Run {self.id} is {self.status.value}, not running")
        node_state = self.node_states.get(node_id)
        if node_state is None:
            node_state = NodeState(node_id)
            self.node_states[node_id] = node_state
        return node_state

    def record_error(self, node_id: str, message: str):
        self.errors.append({"nodeId": node_id, "message": message})

    def count(self, status: NodeStatus) -> int:
        return sum(1 for s in self.node_states.values() if s.status == status)

    def _summarize(self, elapsed_ms: float) -> RunSummary:
        succeeded = self.count(NodeStatus.COMPLETED)
        failed = self.count(NodeStatus.ERROR)
        return RunSummary(
            total_nodes=self._total_nodes,
            nodes_executed=succeeded + failed,
            nodes_succeeded=succeeded,
            nodes_failed=failed,
            nodes_skipped=self.count(NodeStatus.SKIPPED),
            errors=[f"{e['nodeId']}: {e['message']}" for e in self.errors],
            execution_time_ms=round(elapsed_ms, 3),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "executionOrder": list(self.execution_order),
            "nodeStates": {nid: s.to_dict() for nid, s in self.node_states.items()},
            "errors": list(self.errors),
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
            "summary": self.summary.to_dict() if self.summary else None,
        }


class Executor:
    """
    Runs a workflow snapshot node by node in topological order.

    One node is running at a time; each executor call is awaited before the
    next node starts. Node failures are recorded on the run and never raised.
    """

    def __init__(self, registry: NodeTypeRegistry):
        self.registry = registry

    def topological_order(self, graph: WorkflowGraph) -> List[str]:
        """Kahn's algorithm; ready nodes are taken in graph insertion order."""
        position = {node_id: i for i, node_id in enumerate(graph.nodes)}
        in_degree = {node_id: 0 for node_id in graph.nodes}
        successors: Dict[str, List[str]] = {node_id: [] for node_id in graph.nodes}
        for edge in graph.edges:
            if edge.source_node_id not in position or edge.target_node_id not in position:
                continue
            successors[edge.source_node_id].append(edge.target_node_id)
            in_degree[edge.target_node_id] += 1

        ready = [(position[n], n) for n, degree in in_degree.items() if degree == 0]
        heapq.heapify(ready)
        order: List[str] = []
        while ready:
            _, node_id = heapq.heappop(ready)
            order.append(node_id)
            for target in successors[node_id]:
                in_degree[target] -= 1
                if in_degree[target] == 0:
                    heapq.heappush(ready, (position[target], target))

        if len(order) != len(graph.nodes):
            stuck = [n for n in graph.nodes if n not in order]
            raise GraphCycleError(f"Workflow graph contains a cycle through {stuck}", details={"nodes": stuck})
        return order

    async def run(self,
                  graph: Union[WorkflowGraph, GraphStore],
                  reporter: Optional[IProgressReporter] = None) -> RunSummary:
        run = await self.execute(graph, reporter)
        return run.summary

    async def execute(self,
                      graph: Union[WorkflowGraph, GraphStore],
                      reporter: Optional[IProgressReporter] = None,
                      run: Optional[ExecutionRun] = None) -> ExecutionRun:
        if isinstance(graph, GraphStore):
            graph = graph.snapshot()

        order = self.topological_order(graph)
        run = run or ExecutionRun()
        run.start(len(graph.nodes))
        logger.info("run %s: executing %d node(s)", run.id, len(order))
        await self._notify(reporter, "on_run_start", run.id, list(order))

        active_edges: Set[str] = set()
        # node id -> id of the errored node that made it unusable
        failed: Dict[str, str] = {}

        for node_id in order:
            node = graph.nodes[node_id]
            incoming = graph.incoming_edges(node_id)
            state = run.state(node_id)

            culprit = next((failed[e.source_node_id] for e in incoming if e.source_node_id in failed), None)
            if culprit is not None:
                failed[node_id] = culprit
                await self._skip(run, state, f"upstream failure: {culprit}", reporter)
                continue

            live = [e for e in incoming if e.id in active_edges]
            if incoming and not live:
                await self._skip(run, state, BRANCH_NOT_TAKEN, reporter)
                continue

            try:
                definition = self.registry.get(node.type)
            except UnknownNodeTypeError as exc:
                self._fail(run, state, exc.message)
                failed[node_id] = node_id
                await self._notify(reporter, "on_node_error", node_id, exc.message)
                continue

            inputs = self._gather_inputs(definition, live, graph)

            missing = next((p.port_id for p in definition.required_inputs() if p.port_id not in inputs), None)
            if missing is not None:
                err = MissingRequiredInputError(node_id, missing)
                self._fail(run, state, err.message, inputs)
                failed[node_id] = node_id
                await self._notify(reporter, "on_node_error", node_id, err.message)
                continue

            outputs = await self._invoke(run, state, node, definition, inputs, reporter)
            if outputs is None:
                failed[node_id] = node_id
                continue

            for edge in self._activated(definition, outputs, graph.outgoing_edges(node_id)):
                active_edges.add(edge.id)
                await self._notify(reporter, "on_edge_active", edge)

        summary = run.finish()
        logger.info("run %s: %d succeeded, %d failed, %d skipped in %.1fms",
                    run.id, summary.nodes_succeeded, summary.nodes_failed,
                    summary.nodes_skipped, summary.execution_time_ms)
        await self._notify(reporter, "on_run_complete", run.id, summary.to_dict())
        return run

    def _gather_inputs(self, definition: NodeTypeDefinition, edges: List[Edge], graph: WorkflowGraph) -> Dict[str, Any]:
        inputs: Dict[str, Any] = {}
        for edge in edges:
            port = definition.get_input(edge.target_port_id)
            source = graph.nodes.get(edge.source_node_id)
            if port is None or source is None or source.last_outputs is None:
                continue
            value = source.last_outputs.get(edge.source_port_id)
            if value is None:
                continue
            # each consumer gets its own copy; upstream outputs stay untouched
            value = copy.deepcopy(value)
            if port.allow_multiple:
                inputs.setdefault(port.port_id, []).append(value)
            else:
                inputs[port.port_id] = value
        return inputs

    async def _invoke(self,
                      run: ExecutionRun,
                      state: NodeState,
                      node: Node,
                      definition: NodeTypeDefinition,
                      inputs: Dict[str, Any],
                      reporter: Optional[IProgressReporter]) -> Optional[Dict[str, Any]]:
        state.mark_running(copy.deepcopy(inputs))
        # invocation order: a node whose executor raises is still listed
        run.execution_order.append(node.id)
        logger.debug("run %s: starting %r", run.id, node)
        await self._notify(reporter, "on_node_start", node.id)

        try:
            outputs = await definition.invoke(inputs, node.config)
        except Exception as exc:
            err = NodeExecutionError.from_exception(node.id, exc)
            self._fail(run, state, err.message)
            await self._notify(reporter, "on_node_error", node.id, err.message)
            return None

        node.last_outputs = outputs
        state.mark_completed(copy.deepcopy(outputs))
        logger.debug("run %s: completed %r", run.id, node)
        await self._notify(reporter, "on_node_complete", node.id, outputs)
        return outputs

    def _activated(self, definition: NodeTypeDefinition, outputs: Dict[str, Any], edges: List[Edge]) -> List[Edge]:
        taken = bool(outputs.get(definition.condition_port)) if definition.isBranching() else None
        activated = []
        for edge in edges:
            port = definition.get_output(edge.source_port_id)
            if port is not None and port.isBranchPort() and port.branch != taken:
                continue
            activated.append(edge)
        return activated

    def _fail(self, run: ExecutionRun, state: NodeState, message: str, inputs: Optional[Dict[str, Any]] = None):
        state.mark_error(message, inputs)
        run.record_error(state.node_id, message)
        logger.warning("run %s: node %s failed: %s", run.id, state.node_id, message)

    async def _skip(self, run: ExecutionRun, state: NodeState, reason: str, reporter: Optional[IProgressReporter]):
        state.mark_skipped(reason)
        logger.debug("run %s: skipped %s (%s)", run.id, state.node_id, reason)
        await self._notify(reporter, "on_node_skipped", state.node_id, reason)

    async def _notify(self, reporter: Optional[IProgressReporter], event: str, *args):
        callback = getattr(reporter, event, None)
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("progress reporter failed in %s", event)
