from .Types import DataKind, NodeStatus, RunStatus
from .Errors import (
    ContentFlowError,
    NotFoundError,
    UnknownNodeTypeError,
    NodeNotFoundError,
    DuplicateNodeTypeError,
    InvalidNodeTypeError,
    DuplicateNodeError,
    InvalidNodeConfigError,
    NodeLimitError,
    GraphCycleError,
    RunStateError,
    MissingRequiredInputError,
    NodeExecutionError,
)
from .NodePort import InputPort, OutputPort
from .Node import Node, NodeConfig, NodeTypeDefinition
from .NodeRegistry import NodeTypeRegistry
from .GraphPrimitives import Edge, EdgeCandidate, WorkflowGraph
from .ConnectionValidator import ValidationResult, ConnectionRejected, validate
from .GraphStore import GraphStore
from .Interface import IProgressReporter, CallbackReporter
from .Executor import Executor, ExecutionRun, NodeState, RunSummary
