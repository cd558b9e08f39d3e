"""
Error taxonomy for the workflow engine.

Store and registry errors are raised to the immediate caller. Run-level
errors (MissingRequiredInputError, NodeExecutionError) are captured per node
by the Executor and only ever surface inside an ExecutionRun.
"""
from typing import Any, Dict, Optional


class ContentFlowError(Exception):
    """Base error for the workflow engine."""

    error_code: str = "contentflow.error"

    def __init__(self, message: Optional[str] = None, *, details: Optional[Dict[str, Any]] = None) -> None:
        self.message: str = message or self.__class__.__doc__ or "contentflow error"
        self.details: Dict[str, Any] = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(ContentFlowError, KeyError):
    """Raised when an object is not found."""
    error_code = "contentflow.not_found"


class UnknownNodeTypeError(NotFoundError):
    """Raised when a node type id is not registered."""
    error_code = "contentflow.unknown_node_type"

    def __init__(self, type_id: str) -> None:
        super().__init__(f"Unknown node type '{type_id}'", details={"type": type_id})
        self.type_id = type_id


class NodeNotFoundError(NotFoundError):
    """Raised when a node id does not exist in the workflow."""
    error_code = "contentflow.node_not_found"

    def __init__(self, node_id: str) -> None:
        super().__init__(f"Node '{node_id}' does not exist in the workflow", details={"node_id": node_id})
        self.node_id = node_id


class DuplicateNodeTypeError(ContentFlowError, ValueError):
    """Raised when a node type id is registered twice."""
    error_code = "contentflow.duplicate_node_type"


class InvalidNodeTypeError(ContentFlowError, ValueError):
    """Raised when a node type definition is malformed."""
    error_code = "contentflow.invalid_node_type"


class DuplicateNodeError(ContentFlowError, ValueError):
    """Raised when a node id is already taken in the workflow."""
    error_code = "contentflow.duplicate_node"


class InvalidNodeConfigError(ContentFlowError, ValueError):
    """Raised when a node config does not match its node type's config model."""
    error_code = "contentflow.invalid_node_config"


class NodeLimitError(ContentFlowError, ValueError):
    """Raised when adding a node would exceed its type's instance limit."""
    error_code = "contentflow.node_limit"


class GraphCycleError(ContentFlowError, ValueError):
    """Raised when a graph snapshot is not a DAG."""
    error_code = "contentflow.graph_cycle"


class RunStateError(ContentFlowError, RuntimeError):
    """Raised on an illegal ExecutionRun state transition."""
    error_code = "contentflow.run_state"


# --- Run-level errors: recorded on the node, never raised out of a run ---

class MissingRequiredInputError(ContentFlowError):
    """A required input port had no resolved value."""
    error_code = "contentflow.missing_required_input"

    def __init__(self, node_id: str, port_id: str) -> None:
        super().__init__(f"missing required input: {port_id}", details={"node_id": node_id, "port_id": port_id})
        self.node_id = node_id
        self.port_id = port_id


class NodeExecutionError(ContentFlowError):
    """A node executor raised."""
    error_code = "contentflow.node_execution"

    def __init__(self, node_id: str, message: str, original: Optional[BaseException] = None) -> None:
        details: Dict[str, Any] = {"node_id": node_id}
        if original is not None:
            details["original_exception"] = repr(original)
        super().__init__(message, details=details)
        self.node_id = node_id
        self.original = original

    @classmethod
    def from_exception(cls, node_id: str, exc: BaseException) -> 'NodeExecutionError':
        return cls(node_id, str(exc) or exc.__class__.__name__, original=exc)
