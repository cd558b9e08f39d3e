from typing import Callable, Dict, Iterator, List
from logging import getLogger

from .Errors import DuplicateNodeTypeError, UnknownNodeTypeError
from .Node import NodeTypeDefinition, ExecuteFn

logger = getLogger(__name__)


class NodeTypeRegistry:
    """
    Catalog of node types keyed by type id.
    Populated once at start-up; the store and the executor only read from it.
    """

    def __init__(self):
        self._types: Dict[str, NodeTypeDefinition] = {}

    def register(self, definition: NodeTypeDefinition) -> NodeTypeDefinition:
        if definition.id in self._types:
            raise DuplicateNodeTypeError(f"Node type '{definition.id}' is already registered.")
        self._types[definition.id] = definition
        logger.debug("registered node type %s", definition.id)
        return definition

    def node_type(self, type_id: str, **kwargs) -> Callable[[ExecuteFn], ExecuteFn]:
        """Decorator to register an executor function as a node type."""
        def decorator(execute: ExecuteFn) -> ExecuteFn:
            title = kwargs.pop("title", type_id)
            self.register(NodeTypeDefinition(type_id, title, execute, **kwargs))
            return execute
        return decorator

    def get(self, type_id: str) -> NodeTypeDefinition:
        definition = self._types.get(type_id)
        if definition is None:
            raise UnknownNodeTypeError(type_id)
        return definition

    def list(self) -> List[NodeTypeDefinition]:
        return list(self._types.values())

    def __contains__(self, type_id: str) -> bool:
        return type_id in self._types

    def __iter__(self) -> Iterator[NodeTypeDefinition]:
        return iter(self._types.values())

    def __len__(self) -> int:
        return len(self._types)
