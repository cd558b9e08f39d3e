"""
WorkflowState: the registry, the executor and every workflow the server holds.

Optionally seeds a demo workflow on start-up so a client has something to
display and run on first load.
"""
from __future__ import annotations

from logging import getLogger
from typing import Dict, List, Optional

from contentflow.core.Errors import NotFoundError
from contentflow.core.Executor import ExecutionRun, Executor
from contentflow.core.GraphPrimitives import EdgeCandidate
from contentflow.core.GraphStore import GraphStore
from contentflow.core.NodeRegistry import NodeTypeRegistry
from contentflow.noderegistry.ContentNodes import build_content_registry
from contentflow.noderegistry.services import ContentService, build_content_service

from .settings import Settings
from .trace.trace_emitter import TraceEmitter, global_tracer
from .trace.trace_reporter import TraceReporter

logger = getLogger(__name__)


class WorkflowNotFoundError(NotFoundError):
    """Raised when a workflow id is unknown to the server."""
    error_code = "contentflow.workflow_not_found"

    def __init__(self, workflow_id: str) -> None:
        super().__init__(f"Workflow '{workflow_id}' not found", details={"workflow_id": workflow_id})
        self.workflow_id = workflow_id


class WorkflowState:

    def __init__(self,
                 registry: NodeTypeRegistry,
                 tracer: Optional[TraceEmitter] = None,
                 seed_demo: bool = False) -> None:
        self.registry = registry
        self.executor = Executor(registry)
        self.tracer = tracer or global_tracer
        self.workflows: Dict[str, GraphStore] = {}
        self.last_runs: Dict[str, ExecutionRun] = {}

        if seed_demo:
            self._seed_demo()

    @classmethod
    def from_settings(cls, settings: Settings, service: Optional[ContentService] = None) -> "WorkflowState":
        service = service or build_content_service(
            settings.content_service, settings.text_model, settings.image_model)
        return cls(build_content_registry(service), seed_demo=settings.seed_demo)

    # ── Workflows ───────────────────────────────────────────────────────────

    def create_workflow(self, name: str = "", workflow_id: Optional[str] = None) -> GraphStore:
        if workflow_id is not None and workflow_id in self.workflows:
            raise ValueError(f"Workflow '{workflow_id}' already exists")
        store = GraphStore(self.registry, workflow_id, name)
        self.workflows[store.id] = store
        logger.info("created workflow %s (%s)", store.id, store.name)
        return store

    def get_workflow(self, workflow_id: str) -> GraphStore:
        store = self.workflows.get(workflow_id)
        if store is None:
            raise WorkflowNotFoundError(workflow_id)
        return store

    def list_workflows(self) -> List[GraphStore]:
        return list(self.workflows.values())

    async def run_workflow(self, workflow_id: str) -> ExecutionRun:
        store = self.get_workflow(workflow_id)
        run = await self.executor.execute(store.snapshot(), TraceReporter(store.id, self.tracer))
        store.record_run(run)
        self.last_runs[store.id] = run
        return run

    # ── Demo workflow ───────────────────────────────────────────────────────

    def _seed_demo(self) -> None:
        store = self.create_workflow("Idea to post", workflow_id="demo")

        idea = store.add_node("idea", {"topic": "content marketing"}, node_id="idea")
        draft = store.add_node("draft", {"tone": "friendly"}, node_id="draft")
        hashtags = store.add_node("hashtag", {"count": 4}, node_id="hashtags")
        media = store.add_node("media", node_id="media")
        platform = store.add_node("platform", {"platform": "linkedin"}, node_id="platform")
        preview = store.add_node("preview", node_id="preview")
        publish = store.add_node("publish", node_id="publish")

        for edge in [
            (idea.id, "idea", draft.id, "idea"),
            (draft.id, "draft", hashtags.id, "draft"),
            (draft.id, "draft", media.id, "draft"),
            (draft.id, "draft", platform.id, "draft"),
            (media.id, "media", platform.id, "media"),
            (hashtags.id, "hashtags", platform.id, "hashtags"),
            (platform.id, "content", preview.id, "content"),
            (preview.id, "approved", publish.id, "content"),
        ]:
            store.connect(EdgeCandidate(*edge))
