"""
Graph serializer.

Converts workflow stores, node types and runs into JSON-safe dicts for the
HTTP API.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from contentflow.core.Executor import ExecutionRun
from contentflow.core.GraphStore import GraphStore
from contentflow.core.Node import Node, NodeTypeDefinition
from contentflow.core.NodeRegistry import NodeTypeRegistry

# SerializedNode keys: id, type, title, config, lastOutputs, status
# SerializedEdge keys: id, sourceNodeId, sourcePortId, targetNodeId,
#                      targetPortId, dataKind
# SerializedWorkflow keys: id, name, nodes, edges, lastRun


def serialize_node_type(definition: NodeTypeDefinition) -> Dict[str, Any]:
    return definition.to_dict()


def serialize_node_types(registry: NodeTypeRegistry) -> List[Dict[str, Any]]:
    return [serialize_node_type(d) for d in registry.list()]


def serialize_node(node: Node, registry: NodeTypeRegistry, run: Optional[ExecutionRun] = None) -> Dict[str, Any]:
    data = node.to_dict()
    data["title"] = registry.get(node.type).title
    state = run.node_states.get(node.id) if run else None
    data["status"] = state.status.value if state else None
    return data


def serialize_workflow(store: GraphStore, run: Optional[ExecutionRun] = None) -> Dict[str, Any]:
    return {
        "id": store.id,
        "name": store.name,
        "nodes": [serialize_node(n, store.registry, run) for n in store.nodes],
        "edges": [e.to_dict() for e in store.edges],
        "lastRun": run.summary.to_dict() if run and run.summary else None,
    }


def serialize_workflow_listing(store: GraphStore) -> Dict[str, Any]:
    return {"id": store.id, "name": store.name, "nodeCount": len(store.nodes), "edgeCount": len(store.edges)}


def serialize_run(run: ExecutionRun) -> Dict[str, Any]:
    return run.to_dict()
