from typing import Optional, List, Dict, Any, Type, Callable, Mapping, Union
import copy
import inspect
import logging

from pydantic import BaseModel, ConfigDict, ValidationError

from .Errors import InvalidNodeConfigError, InvalidNodeTypeError
from .NodePort import InputPort, OutputPort
from .Types import DataKind


# Get a logger for this module
logger = logging.getLogger(__name__)

# execute(inputs, config) -> outputs, sync or async
ExecuteFn = Callable[[Dict[str, Any], Any], Any]


class NodeConfig(BaseModel):
    """
    Config of a node type that does not declare its own model.
    Typed node types subclass this and forbid unknown keys.
    """
    model_config = ConfigDict(extra="allow")


class NodeTypeDefinition:
    """
    A registered kind of processing step: typed ports, a config model and an executor.
    Definitions are immutable once registered and shared by every Node of that type.
    """
    def __init__(self,
                 type_id: str,
                 title: str,
                 execute: ExecuteFn,
                 inputs: Optional[List[InputPort]] = None,
                 outputs: Optional[List[OutputPort]] = None,
                 description: str = "",
                 category: str = "",
                 config_model: Type[BaseModel] = NodeConfig,
                 max_instances: Optional[int] = None,
                 condition_port: Optional[str] = None,
                 terminal: bool = False):
        if not type_id:
            raise InvalidNodeTypeError("node type id must be a non-empty string")
        if not callable(execute):
            raise InvalidNodeTypeError(f"Node type '{type_id}' needs a callable executor")

        self.id = type_id
        self.title = title or type_id
        self.description = description
        self.category = category
        self.execute = execute
        self.config_model = config_model
        self.max_instances = max_instances
        self.condition_port = condition_port
        self.terminal = terminal

        # Keep declaration order; it is the order ports are shown and gathered in.
        self.inputs: Dict[str, InputPort] = {}
        self.outputs: Dict[str, OutputPort] = {}
        for port in inputs or []:
            self._check_port_id(port.port_id)
            self.inputs[port.port_id] = port
        for port in outputs or []:
            self._check_port_id(port.port_id)
            self.outputs[port.port_id] = port

        self._check_shape()

    def _check_port_id(self, port_id: str):
        if port_id in self.inputs or port_id in self.outputs:
            raise InvalidNodeTypeError(f"Port '{port_id}' is declared twice on node type '{self.id}'")

    def _check_shape(self):
        if not self.outputs and not self.terminal:
            raise InvalidNodeTypeError(f"Node type '{self.id}' must declare at least one output")

        branch_ports = [p for p in self.outputs.values() if p.isBranchPort()]
        if branch_ports or self.condition_port:
            cond = self.outputs.get(self.condition_port) if self.condition_port else None
            if cond is None or cond.isBranchPort() or cond.produced_kind != DataKind.BOOLEAN:
                raise InvalidNodeTypeError(
                    f"Branching node type '{self.id}' must name a Boolean condition output")
            if not branch_ports:
                raise InvalidNodeTypeError(f"Node type '{self.id}' has a condition port but no branch outputs")

    def get_input(self, port_id: str) -> Optional[InputPort]:
        return self.inputs.get(port_id)

    def get_output(self, port_id: str) -> Optional[OutputPort]:
        return self.outputs.get(port_id)

    def required_inputs(self) -> List[InputPort]:
        return [p for p in self.inputs.values() if p.required]

    def isBranching(self) -> bool:
        return self.condition_port is not None

    def build_config(self, config: Union[Mapping[str, Any], BaseModel, None] = None) -> BaseModel:
        """Validate raw settings into this type's config model."""
        if isinstance(config, self.config_model):
            return config.model_copy(deep=True)
        if isinstance(config, BaseModel):
            config = config.model_dump()
        try:
            return self.config_model.model_validate(dict(config or {}))
        except ValidationError as exc:
            raise InvalidNodeConfigError(
                f"Invalid config for node type '{self.id}': {exc.error_count()} error(s)",
                details={"type": self.id, "errors": exc.errors(include_url=False, include_context=False, include_input=False)},
            ) from exc

    async def invoke(self, inputs: Dict[str, Any], config: Any) -> Dict[str, Any]:
        result = self.execute(inputs, config)
        if inspect.isawaitable(result):
            result = await result
        if result is None:
            return {}
        if not isinstance(result, Mapping):
            raise TypeError(f"Executor of '{self.id}' returned {type(result).__name__}, expected a mapping")
        return dict(result)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "inputs": [p.to_dict() for p in self.inputs.values()],
            "outputs": [p.to_dict() for p in self.outputs.values()],
            "maxInstances": self.max_instances,
            "conditionPort": self.condition_port,
            "configSchema": self.config_model.model_json_schema(),
        }

    def __repr__(self):
        return f"NodeTypeDefinition({self.id})"


class Node:
    """A node instance placed in one workflow graph."""

    def __init__(self, node_id: str, type_id: str, config: BaseModel):
        self.id = node_id
        self.type = type_id
        self.config = config
        # Outputs of the most recent successful execution.
        self.last_outputs: Optional[Dict[str, Any]] = None

    def copy(self) -> 'Node':
        node = Node(self.id, self.type, self.config.model_copy(deep=True))
        node.last_outputs = copy.deepcopy(self.last_outputs)
        return node

    def config_dict(self) -> Dict[str, Any]:
        return self.config.model_dump(mode="json")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "config": self.config_dict(),
            "lastOutputs": self.last_outputs,
        }

    def __repr__(self):
        return f"Node({self.id}:{self.type})"
