"""
Workflow REST routes.

All routes are mounted under /api by main.py.
"""
from __future__ import annotations

from logging import getLogger
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pydantic import BaseModel

from contentflow.core.ConnectionValidator import ConnectionRejected, validate
from contentflow.core.Errors import ContentFlowError, NotFoundError
from contentflow.core.GraphPrimitives import EdgeCandidate
from contentflow.server.serializers.graph_serializer import (
    serialize_node,
    serialize_node_types,
    serialize_run,
    serialize_workflow,
    serialize_workflow_listing,
)
from contentflow.server.state import WorkflowState

logger = getLogger(__name__)

router = APIRouter()


def get_state(request: Request) -> WorkflowState:
    return request.app.state.workflow_state


def _http_error(exc: ContentFlowError) -> HTTPException:
    status = 404 if isinstance(exc, NotFoundError) else 400
    return HTTPException(status_code=status, detail=exc.to_dict())


# ── GET /node-types ───────────────────────────────────────────────────────────

@router.get("/node-types")
async def get_node_types(state: WorkflowState = Depends(get_state)) -> List[Dict[str, Any]]:
    return serialize_node_types(state.registry)


# ── GET /workflows ────────────────────────────────────────────────────────────

@router.get("/workflows")
async def list_workflows(state: WorkflowState = Depends(get_state)) -> List[Dict[str, Any]]:
    return [serialize_workflow_listing(store) for store in state.list_workflows()]


# ── POST /workflows ───────────────────────────────────────────────────────────

class CreateWorkflowBody(BaseModel):
    name: str = ""
    id: Optional[str] = None


@router.post("/workflows", status_code=201)
async def create_workflow(body: CreateWorkflowBody, state: WorkflowState = Depends(get_state)) -> Dict[str, Any]:
    try:
        store = state.create_workflow(body.name, body.id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return serialize_workflow(store)


# ── GET /workflows/:id ────────────────────────────────────────────────────────

@router.get("/workflows/{workflow_id}")
async def get_workflow(workflow_id: str, state: WorkflowState = Depends(get_state)) -> Dict[str, Any]:
    try:
        store = state.get_workflow(workflow_id)
    except ContentFlowError as exc:
        raise _http_error(exc)
    return serialize_workflow(store, state.last_runs.get(workflow_id))


# ── POST /workflows/:id/nodes ─────────────────────────────────────────────────

class CreateNodeBody(BaseModel):
    type: str
    config: Optional[Dict[str, Any]] = None
    id: Optional[str] = None


@router.post("/workflows/{workflow_id}/nodes", status_code=201)
async def create_node(workflow_id: str, body: CreateNodeBody, state: WorkflowState = Depends(get_state)) -> Dict[str, Any]:
    try:
        store = state.get_workflow(workflow_id)
        node = store.add_node(body.type, body.config, node_id=body.id)
    except ContentFlowError as exc:
        raise _http_error(exc)
    return serialize_node(node, state.registry)


# ── PATCH /workflows/:id/nodes/:nodeId ────────────────────────────────────────

class UpdateNodeBody(BaseModel):
    config: Dict[str, Any]


@router.patch("/workflows/{workflow_id}/nodes/{node_id}")
async def update_node(workflow_id: str,
                      node_id: str,
                      body: UpdateNodeBody,
                      state: WorkflowState = Depends(get_state)) -> Dict[str, Any]:
    try:
        store = state.get_workflow(workflow_id)
        node = store.update_node_config(node_id, body.config)
    except ContentFlowError as exc:
        raise _http_error(exc)
    return serialize_node(node, state.registry)


# ── DELETE /workflows/:id/nodes/:nodeId ───────────────────────────────────────

@router.delete("/workflows/{workflow_id}/nodes/{node_id}", status_code=204)
async def delete_node(workflow_id: str, node_id: str, state: WorkflowState = Depends(get_state)) -> Response:
    try:
        state.get_workflow(workflow_id).remove_node(node_id)
    except ContentFlowError as exc:
        raise _http_error(exc)
    return Response(status_code=204)


# ── POST /workflows/:id/edges ─────────────────────────────────────────────────

class EdgeBody(BaseModel):
    sourceNodeId: str
    sourcePortId: str
    targetNodeId: str
    targetPortId: str

    def candidate(self) -> EdgeCandidate:
        return EdgeCandidate(self.sourceNodeId, self.sourcePortId, self.targetNodeId, self.targetPortId)


@router.post("/workflows/{workflow_id}/edges", status_code=201)
async def create_edge(workflow_id: str, body: EdgeBody, state: WorkflowState = Depends(get_state)) -> Dict[str, Any]:
    try:
        store = state.get_workflow(workflow_id)
    except ContentFlowError as exc:
        raise _http_error(exc)

    result = store.connect(body.candidate())
    if isinstance(result, ConnectionRejected):
        raise HTTPException(status_code=400, detail=result.to_dict())
    return result.to_dict()


# ── POST /workflows/:id/edges/validate ────────────────────────────────────────

@router.post("/workflows/{workflow_id}/edges/validate")
async def validate_edge(workflow_id: str, body: EdgeBody, state: WorkflowState = Depends(get_state)) -> Dict[str, Any]:
    try:
        store = state.get_workflow(workflow_id)
    except ContentFlowError as exc:
        raise _http_error(exc)

    snapshot = store.snapshot()
    return validate(body.candidate(), snapshot.nodes, snapshot.edges, state.registry).to_dict()


# ── DELETE /workflows/:id/edges/:edgeId ───────────────────────────────────────

@router.delete("/workflows/{workflow_id}/edges/{edge_id}", status_code=204)
async def delete_edge(workflow_id: str, edge_id: str, state: WorkflowState = Depends(get_state)) -> Response:
    try:
        store = state.get_workflow(workflow_id)
    except ContentFlowError as exc:
        raise _http_error(exc)

    if not store.disconnect(edge_id):
        raise HTTPException(status_code=404, detail="Edge not found")
    return Response(status_code=204)


# ── POST /workflows/:id/execute ───────────────────────────────────────────────

@router.post("/workflows/{workflow_id}/execute")
async def execute_workflow(workflow_id: str, state: WorkflowState = Depends(get_state)) -> Dict[str, Any]:
    try:
        run = await state.run_workflow(workflow_id)
    except ContentFlowError as exc:
        raise _http_error(exc)
    logger.info("workflow %s run %s finished", workflow_id, run.id)
    return serialize_run(run)


# ── GET /health ───────────────────────────────────────────────────────────────

@router.get("/health")
async def health(request: Request) -> Dict[str, Any]:
    return {"status": "ok", "contentService": request.app.state.settings.content_service}
