import asyncio
import logging

import pytest

from contentflow.core.Executor import Executor
from contentflow.core.GraphPrimitives import EdgeCandidate
from contentflow.core.GraphStore import GraphStore
from contentflow.noderegistry.ContentNodes import build_content_registry
from contentflow.server.settings import Settings
from contentflow.server.trace import socket_server
from contentflow.server.trace.socket_server import _on_trace
from contentflow.server.trace.trace_emitter import TraceEmitter
from contentflow.server.trace.trace_reporter import TraceReporter
from contentflow.server.trace.trace_types import (
    EdgeActiveEvent,
    ExecDoneEvent,
    ExecStartEvent,
    NodeDoneEvent,
    NodeErrorEvent,
    NodeRunningEvent,
    NodeSkippedEvent,
)

EVENT_KEYS = {
    "EXEC_START": ExecStartEvent,
    "NODE_RUNNING": NodeRunningEvent,
    "NODE_DONE": NodeDoneEvent,
    "NODE_ERROR": NodeErrorEvent,
    "NODE_SKIPPED": NodeSkippedEvent,
    "EDGE_ACTIVE": EdgeActiveEvent,
    "EXEC_DONE": ExecDoneEvent,
}


class TestTraceEmitter:

    def test_fire_stamps_timestamp(self):
        emitter = TraceEmitter()
        seen = []
        emitter.on_trace(seen.append)
        emitter.fire({"type": "NODE_RUNNING", "nodeId": "a"})
        emitter.fire({"type": "NODE_RUNNING", "nodeId": "b", "ts": 42})
        assert isinstance(seen[0]["ts"], int)
        assert seen[1]["ts"] == 42

    def test_unsubscribe(self):
        emitter = TraceEmitter()
        seen = []
        unsubscribe = emitter.on_trace(seen.append)
        unsubscribe()
        unsubscribe()
        emitter.fire({"type": "NODE_RUNNING"})
        assert seen == []

    def test_failing_listener_is_logged(self, caplog):
        emitter = TraceEmitter()
        seen = []

        def boom(event):
            raise RuntimeError("socket closed")

        emitter.on_trace(boom)
        emitter.on_trace(seen.append)
        with caplog.at_level(logging.ERROR):
            emitter.fire({"type": "EXEC_DONE"})
        assert len(seen) == 1
        assert "trace listener failed on EXEC_DONE" in caplog.text

    def test_socket_bridge_without_loop_drops_event(self):
        _on_trace({"type": "NODE_RUNNING", "workflowId": "wf", "nodeId": "a", "ts": 0})

    def test_socket_bridge_emits_and_logs_failures(self, monkeypatch, caplog):
        emitted = []

        async def emit(name, event):
            if event["type"] == "EXEC_DONE":
                raise ConnectionError("client gone")
            emitted.append((name, event["type"]))

        monkeypatch.setattr(socket_server.sio, "emit", emit)

        async def fire_both():
            _on_trace({"type": "NODE_RUNNING", "workflowId": "wf", "nodeId": "a", "ts": 0})
            _on_trace({"type": "EXEC_DONE", "workflowId": "wf", "ts": 0})
            assert len(socket_server._pending) == 2
            for _ in range(3):
                await asyncio.sleep(0)

        with caplog.at_level(logging.ERROR):
            asyncio.run(fire_both())
        assert emitted == [("trace", "NODE_RUNNING")]
        assert socket_server._pending == set()
        assert "trace emit failed" in caplog.text


class TestTraceReporter:

    def test_run_events(self):
        registry = build_content_registry()
        store = GraphStore(registry, workflow_id="wf")
        store.add_node("draft", {"prompt": "Launch", "draft": "We launched"}, node_id="draft")
        store.add_node("conditional", {"condition": "never"}, node_id="check")
        store.add_node("platform", node_id="post")
        store.add_node("idea", node_id="idea")
        store.connect(EdgeCandidate("draft", "draft", "check", "input"))
        store.connect(EdgeCandidate("check", "true", "post", "draft"))

        emitter = TraceEmitter()
        events = []
        emitter.on_trace(events.append)
        run = asyncio.run(Executor(registry).execute(store, TraceReporter("wf", emitter)))

        assert [(e["type"], e.get("nodeId")) for e in events] == [
            ("EXEC_START", None),
            ("NODE_RUNNING", "draft"),
            ("NODE_DONE", "draft"),
            ("EDGE_ACTIVE", None),
            ("NODE_RUNNING", "check"),
            ("NODE_DONE", "check"),
            ("NODE_SKIPPED", "post"),
            ("NODE_RUNNING", "idea"),
            ("NODE_ERROR", "idea"),
            ("EXEC_DONE", None),
        ]
        for event in events:
            assert set(event) == set(EVENT_KEYS[event["type"]].__annotations__)
            assert event["workflowId"] == "wf"

        assert events[0]["runId"] == run.id
        assert events[0]["nodeIds"] == ["draft", "check", "post", "idea"]
        assert events[3]["fromNodeId"] == "draft"
        assert events[3]["toPort"] == "input"
        assert events[6]["reason"] == "branch not taken"
        assert events[8]["error"] == "Idea node needs a topic"
        assert events[-1]["summary"]["nodesSkipped"] == 1


class TestSettings:

    def test_defaults(self):
        settings = Settings.from_env({})
        assert settings.port == 3001
        assert settings.content_service == "template"
        assert settings.seed_demo

    def test_from_env(self):
        settings = Settings.from_env({
            "CONTENTFLOW_PORT": "8080",
            "CONTENTFLOW_LOG_LEVEL": "debug",
            "CONTENTFLOW_CONTENT_SERVICE": "OpenAI",
            "CONTENTFLOW_SEED_DEMO": "no",
        })
        assert settings.port == 8080
        assert settings.log_level == "DEBUG"
        assert settings.content_service == "openai"
        assert not settings.seed_demo

    def test_invalid_values(self):
        with pytest.raises(ValueError):
            Settings.from_env({"CONTENTFLOW_PORT": "http"})
        with pytest.raises(ValueError):
            Settings.from_env({"CONTENTFLOW_CONTENT_SERVICE": "gemini"})
