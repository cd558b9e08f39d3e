import asyncio
import logging

import pytest

from contentflow.core.Errors import GraphCycleError, RunStateError
from contentflow.core.Executor import Executor, ExecutionRun
from contentflow.core.GraphPrimitives import Edge, EdgeCandidate, WorkflowGraph
from contentflow.core.GraphStore import GraphStore
from contentflow.core.Interface import CallbackReporter, IProgressReporter
from contentflow.core.Node import Node, NodeConfig
from contentflow.core.NodePort import InputPort, OutputPort
from contentflow.core.NodeRegistry import NodeTypeRegistry
from contentflow.core.Types import DataKind, NodeStatus, RunStatus

# Global execution log to verify order
EXECUTION_LOG = []


def run_idea(inputs, config):
    EXECUTION_LOG.append("idea")
    return {"output": {"selectedIdea": getattr(config, "topic", "ideas")}}


async def run_draft(inputs, config):
    EXECUTION_LOG.append("draft")
    await asyncio.sleep(0)
    return {"output": {"draft": f"Draft about {inputs['input']['selectedIdea']}"}}


def run_step(inputs, config):
    EXECUTION_LOG.append(getattr(config, "name", "step"))
    if getattr(config, "fail", False):
        raise RuntimeError("image search failed")
    return {"output": inputs.get("input", getattr(config, "name", "step"))}


def run_branch(inputs, config):
    EXECUTION_LOG.append("branch")
    value = inputs["input"]
    return {"true": value, "false": value, "result": bool(getattr(config, "result", True))}


def run_collect(inputs, config):
    EXECUTION_LOG.append("collect")
    return {"output": list(inputs.get("parts", []))}


def make_registry() -> NodeTypeRegistry:
    registry = NodeTypeRegistry()
    registry.node_type("idea", outputs=[OutputPort("output", DataKind.IDEA)])(run_idea)
    registry.node_type("draft",
                       inputs=[InputPort("input", DataKind.IDEA, required=True)],
                       outputs=[OutputPort("output", DataKind.DRAFT)])(run_draft)
    registry.node_type("step",
                       inputs=[InputPort("input", DataKind.ANY)],
                       outputs=[OutputPort("output", DataKind.ANY)])(run_step)
    registry.node_type("branch",
                       inputs=[InputPort("input", DataKind.ANY, required=True)],
                       outputs=[OutputPort("true", DataKind.ANY, branch=True),
                                OutputPort("false", DataKind.ANY, branch=False),
                                OutputPort("result", DataKind.BOOLEAN)],
                       condition_port="result")(run_branch)
    registry.node_type("collect",
                       inputs=[InputPort("parts", DataKind.ANY, allow_multiple=True)],
                       outputs=[OutputPort("output", DataKind.ANY)])(run_collect)
    return registry


class RecordingReporter(IProgressReporter):
    def __init__(self):
        self.events = []

    def on_node_start(self, node_id):
        self.events.append(("start", node_id))

    def on_node_complete(self, node_id, outputs):
        self.events.append(("complete", node_id))

    def on_node_error(self, node_id, message):
        self.events.append(("error", node_id, message))

    def on_node_skipped(self, node_id, reason):
        self.events.append(("skipped", node_id, reason))


class TestExecutor:

    def setup_method(self):
        global EXECUTION_LOG
        EXECUTION_LOG.clear()
        self.registry = make_registry()
        self.store = GraphStore(self.registry)
        self.executor = Executor(self.registry)

    def teardown_method(self):
        pass

    def connect(self, source, source_port, target, target_port):
        edge = self.store.connect(EdgeCandidate(source, source_port, target, target_port))
        assert isinstance(edge, Edge), edge
        return edge

    def execute(self, reporter=None) -> ExecutionRun:
        return asyncio.run(self.executor.execute(self.store.snapshot(), reporter))

    def test_idea_to_draft(self):
        """
        Structural: n1:idea -> n2:draft
        """
        self.store.add_node("idea", {"topic": "remote work"}, node_id="n1")
        self.store.add_node("draft", node_id="n2")
        self.connect("n1", "output", "n2", "input")

        run = self.execute()

        assert run.status == RunStatus.COMPLETED
        assert run.execution_order == ["n1", "n2"]
        assert run.node_states["n2"].inputs == {"input": {"selectedIdea": "remote work"}}
        assert run.node_states["n2"].outputs == {"output": {"draft": "Draft about remote work"}}
        summary = run.summary
        assert summary.total_nodes == 2
        assert summary.nodes_succeeded == 2
        assert summary.nodes_failed == 0
        assert summary.nodes_executed == 2
        assert summary.errors == []
        assert summary.execution_time_ms >= 0

    def test_run_returns_summary(self):
        self.store.add_node("idea", node_id="n1")
        summary = asyncio.run(self.executor.run(self.store))
        assert summary.to_dict()["totalNodes"] == 1
        assert summary.to_dict()["nodesSucceeded"] == 1

    def test_deterministic_order(self):
        for name in ("a", "b", "c", "d"):
            self.store.add_node("step", {"name": name}, node_id=name)
        self.connect("c", "output", "a", "input")
        self.connect("d", "output", "b", "input")

        first = self.execute().execution_order
        second = self.execute().execution_order
        assert first == second
        # ready nodes are taken in insertion order
        assert first == ["c", "a", "d", "b"]

    def test_topological_order_respects_edges(self):
        for name in ("a", "b", "c"):
            self.store.add_node("step", {"name": name}, node_id=name)
        self.connect("c", "output", "b", "input")
        self.connect("b", "output", "a", "input")
        assert self.executor.topological_order(self.store.snapshot()) == ["c", "b", "a"]

    def test_failure_isolation(self):
        """
        Structural: A -> B -> C, D independent. B throws.
        """
        self.store.add_node("step", {"name": "A"}, node_id="A")
        self.store.add_node("step", {"name": "B", "fail": True}, node_id="B")
        self.store.add_node("step", {"name": "C"}, node_id="C")
        self.store.add_node("step", {"name": "D"}, node_id="D")
        self.connect("A", "output", "B", "input")
        self.connect("B", "output", "C", "input")

        run = self.execute()

        states = run.node_states
        assert states["A"].status == NodeStatus.COMPLETED
        assert states["B"].status == NodeStatus.ERROR
        assert states["B"].error == "image search failed"
        assert states["C"].status == NodeStatus.SKIPPED
        assert states["C"].skip_reason == "upstream failure: B"
        assert states["D"].status == NodeStatus.COMPLETED
        assert "C" not in EXECUTION_LOG
        assert run.status == RunStatus.COMPLETED
        assert run.summary.nodes_failed == 1
        assert run.summary.nodes_skipped == 1
        assert run.summary.errors == ["B: image search failed"]

    def test_transitive_failure_names_the_failed_node(self):
        self.store.add_node("step", {"name": "A", "fail": True}, node_id="A")
        self.store.add_node("step", {"name": "B"}, node_id="B")
        self.store.add_node("step", {"name": "C"}, node_id="C")
        self.connect("A", "output", "B", "input")
        self.connect("B", "output", "C", "input")

        run = self.execute()
        assert run.node_states["B"].skip_reason == "upstream failure: A"
        assert run.node_states["C"].skip_reason == "upstream failure: A"

    def test_missing_required_input(self):
        self.store.add_node("draft", node_id="lonely")
        run = self.execute()

        state = run.node_states["lonely"]
        assert state.status == NodeStatus.ERROR
        assert state.error == "missing required input: input"
        assert EXECUTION_LOG == []
        assert run.summary.errors == ["lonely: missing required input: input"]
        assert run.summary.nodes_executed == 1

    def test_conditional_true_branch(self):
        """
        Structural: src -> X(branch); X.true -> Y, X.false -> Z
        """
        self.store.add_node("step", {"name": "src"}, node_id="src")
        self.store.add_node("branch", {"result": True}, node_id="X")
        self.store.add_node("step", {"name": "Y"}, node_id="Y")
        self.store.add_node("step", {"name": "Z"}, node_id="Z")
        self.connect("src", "output", "X", "input")
        self.connect("X", "true", "Y", "input")
        self.connect("X", "false", "Z", "input")

        run = self.execute()

        assert run.node_states["Y"].status == NodeStatus.COMPLETED
        assert run.node_states["Y"].inputs == {"input": "src"}
        assert run.node_states["Z"].status == NodeStatus.SKIPPED
        assert run.node_states["Z"].skip_reason == "branch not taken"
        assert "Z" not in EXECUTION_LOG
        assert run.summary.nodes_failed == 0

    def test_conditional_false_branch(self):
        self.store.add_node("step", {"name": "src"}, node_id="src")
        self.store.add_node("branch", {"result": False}, node_id="X")
        self.store.add_node("step", {"name": "Y"}, node_id="Y")
        self.store.add_node("step", {"name": "Z"}, node_id="Z")
        self.connect("src", "output", "X", "input")
        self.connect("X", "true", "Y", "input")
        self.connect("X", "false", "Z", "input")

        run = self.execute()
        assert run.node_states["Y"].status == NodeStatus.SKIPPED
        assert run.node_states["Z"].status == NodeStatus.COMPLETED

    def test_pruning_propagates_down_untaken_branch(self):
        self.store.add_node("step", {"name": "src"}, node_id="src")
        self.store.add_node("branch", {"result": True}, node_id="X")
        self.store.add_node("step", {"name": "Z"}, node_id="Z")
        self.store.add_node("step", {"name": "after"}, node_id="after")
        self.connect("src", "output", "X", "input")
        self.connect("X", "false", "Z", "input")
        self.connect("Z", "output", "after", "input")

        run = self.execute()
        assert run.node_states["Z"].skip_reason == "branch not taken"
        assert run.node_states["after"].skip_reason == "branch not taken"

    def test_node_fed_by_taken_and_untaken_edges_runs_with_taken_input(self):
        self.store.add_node("step", {"name": "src"}, node_id="src")
        self.store.add_node("branch", {"result": True}, node_id="X")
        self.store.add_node("collect", node_id="merge")
        self.connect("src", "output", "X", "input")
        self.connect("X", "true", "merge", "parts")
        self.connect("X", "false", "merge", "parts")

        run = self.execute()
        state = run.node_states["merge"]
        assert state.status == NodeStatus.COMPLETED
        assert state.inputs == {"parts": ["src"]}

    def test_multi_input_port_receives_list_in_edge_order(self):
        for name in ("a", "b", "c"):
            self.store.add_node("step", {"name": name}, node_id=name)
        self.store.add_node("collect", node_id="merge")
        self.connect("b", "output", "merge", "parts")
        self.connect("a", "output", "merge", "parts")
        self.connect("c", "output", "merge", "parts")

        run = self.execute()
        assert run.node_states["merge"].outputs == {"output": ["b", "a", "c"]}

    def test_reporter_events(self):
        self.store.add_node("step", {"name": "A"}, node_id="A")
        self.store.add_node("step", {"name": "B", "fail": True}, node_id="B")
        self.store.add_node("step", {"name": "C"}, node_id="C")
        self.connect("A", "output", "B", "input")
        self.connect("B", "output", "C", "input")

        reporter = RecordingReporter()
        self.execute(reporter)
        assert reporter.events == [
            ("start", "A"),
            ("complete", "A"),
            ("start", "B"),
            ("error", "B", "image search failed"),
            ("skipped", "C", "upstream failure: B"),
        ]

    def test_callback_reporter_with_partial_callbacks(self):
        started = []
        self.store.add_node("idea", node_id="n1")
        self.store.add_node("draft", node_id="n2")
        self.connect("n1", "output", "n2", "input")

        run = self.execute(CallbackReporter(on_node_start=started.append))
        assert started == ["n1", "n2"]
        assert run.summary.nodes_succeeded == 2

    def test_failing_reporter_does_not_abort_run(self, caplog):
        def boom(node_id, outputs):
            raise RuntimeError("ui went away")

        self.store.add_node("idea", node_id="n1")
        with caplog.at_level(logging.ERROR, logger="contentflow.core.Executor"):
            run = self.execute(CallbackReporter(on_node_complete=boom))
        assert run.node_states["n1"].status == NodeStatus.COMPLETED
        assert "progress reporter failed" in caplog.text

    def test_async_reporter_callbacks_are_awaited(self):
        seen = []

        async def on_start(node_id):
            await asyncio.sleep(0)
            seen.append(node_id)

        self.store.add_node("idea", node_id="n1")
        self.execute(CallbackReporter(on_node_start=on_start))
        assert seen == ["n1"]

    def test_engine_does_not_write_to_store(self):
        node = self.store.add_node("idea", node_id="n1")
        run = asyncio.run(self.executor.execute(self.store))
        assert run.node_states["n1"].status == NodeStatus.COMPLETED
        assert node.last_outputs is None

        self.store.record_run(run)
        assert node.last_outputs == {"output": {"selectedIdea": "ideas"}}

    def test_executor_returning_non_mapping_is_an_error(self):
        self.registry.node_type("broken", outputs=[OutputPort("output", DataKind.ANY)])(lambda i, c: 42)
        self.store.add_node("broken", node_id="b")
        run = self.execute()
        assert run.node_states["b"].status == NodeStatus.ERROR
        assert "expected a mapping" in run.node_states["b"].error

    def test_cyclic_snapshot_is_rejected(self):
        nodes = {nid: Node(nid, "step", NodeConfig()) for nid in ("a", "b")}
        edges = [Edge("e1", "a", "output", "b", "input", DataKind.ANY),
                 Edge("e2", "b", "output", "a", "input", DataKind.ANY)]
        with pytest.raises(GraphCycleError):
            asyncio.run(self.executor.execute(WorkflowGraph(nodes, edges)))

    def test_run_state_machine(self):
        run = ExecutionRun()
        assert run.status == RunStatus.IDLE
        with pytest.raises(RunStateError):
            run.finish()
        run.start(0)
        with pytest.raises(RunStateError):
            run.start(0)
        run.finish()
        assert run.status == RunStatus.COMPLETED
        with pytest.raises(RunStateError):
            run.state("n1")

    def test_completed_run_cannot_be_reused(self):
        self.store.add_node("idea", node_id="n1")
        run = self.execute()
        with pytest.raises(RunStateError):
            asyncio.run(self.executor.execute(self.store, run=run))

    def test_node_state_is_frozen_once_final(self):
        run = ExecutionRun()
        run.start(1)
        state = run.state("n1")
        state.mark_skipped("branch not taken")
        with pytest.raises(RunStateError):
            state.mark_running({})
        with pytest.raises(RunStateError):
            state.mark_completed({})

    def test_unknown_node_type_is_recorded_per_node(self):
        nodes = {
            "a": Node("a", "idea", NodeConfig()),
            "b": Node("b", "ghost", NodeConfig()),
            "c": Node("c", "step", NodeConfig()),
        }
        edges = [Edge("e1", "b", "output", "c", "input", DataKind.ANY)]
        reporter = RecordingReporter()

        run = asyncio.run(self.executor.execute(WorkflowGraph(nodes, edges), reporter))

        assert run.status == RunStatus.COMPLETED
        assert run.node_states["a"].status == NodeStatus.COMPLETED
        assert run.node_states["b"].status == NodeStatus.ERROR
        assert run.node_states["b"].error == "Unknown node type 'ghost'"
        assert run.node_states["c"].skip_reason == "upstream failure: b"
        assert run.summary.errors == ["b: Unknown node type 'ghost'"]
        assert ("error", "b", "Unknown node type 'ghost'") in reporter.events
        assert ("start", "b") not in reporter.events

    def test_downstream_mutation_does_not_reach_upstream_state(self):
        def make_tags(inputs, config):
            return {"output": ["#a"]}

        def append_tag(inputs, config):
            inputs["input"].append("#leaked")
            return {"output": inputs["input"]}

        self.registry.node_type("tags", outputs=[OutputPort("output", DataKind.HASHTAG_SET)])(make_tags)
        self.registry.node_type("append",
                                inputs=[InputPort("input", DataKind.HASHTAG_SET)],
                                outputs=[OutputPort("output", DataKind.HASHTAG_SET)])(append_tag)
        self.store.add_node("tags", node_id="A")
        self.store.add_node("append", node_id="B")
        self.store.add_node("append", node_id="C")
        self.connect("A", "output", "B", "input")
        self.connect("A", "output", "C", "input")
        snapshot = self.store.snapshot()

        run = asyncio.run(self.executor.execute(snapshot))

        assert run.node_states["A"].outputs == {"output": ["#a"]}
        assert snapshot.nodes["A"].last_outputs == {"output": ["#a"]}
        assert run.node_states["B"].inputs == {"input": ["#a"]}
        assert run.node_states["B"].outputs == {"output": ["#a", "#leaked"]}
        assert run.node_states["C"].outputs == {"output": ["#a", "#leaked"]}

    def test_execution_order_lists_every_invoked_node(self):
        self.store.add_node("step", {"name": "A", "fail": True}, node_id="A")
        self.store.add_node("draft", node_id="lonely")
        self.store.add_node("step", {"name": "B"}, node_id="B")

        run = self.execute()

        # the failing executor was invoked, the node without its input never was
        assert run.execution_order == ["A", "B"]
        assert run.node_states["A"].status == NodeStatus.ERROR
        assert run.node_states["lonely"].status == NodeStatus.ERROR
