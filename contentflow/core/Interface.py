from typing import Any, Callable, Dict, Optional
from abc import ABC, abstractmethod

from .GraphPrimitives import Edge


class IProgressReporter(ABC):
    """
    Observer of a workflow run. The executor calls exactly one of
    complete/error/skipped per node, after start for nodes that ran.
    """

    @abstractmethod
    def on_node_start(self, node_id: str):
        pass

    @abstractmethod
    def on_node_complete(self, node_id: str, outputs: Dict[str, Any]):
        pass

    @abstractmethod
    def on_node_error(self, node_id: str, message: str):
        pass

    def on_node_skipped(self, node_id: str, reason: str):
        pass

    def on_edge_active(self, edge: Edge):
        pass

    def on_run_start(self, run_id: str, node_ids: list):
        pass

    def on_run_complete(self, run_id: str, summary: Dict[str, Any]):
        pass


class CallbackReporter(IProgressReporter):
    """Adapts plain callables to IProgressReporter. Every callback is optional."""

    def __init__(self,
                 on_node_start: Optional[Callable[[str], Any]] = None,
                 on_node_complete: Optional[Callable[[str, Dict[str, Any]], Any]] = None,
                 on_node_error: Optional[Callable[[str, str], Any]] = None,
                 on_node_skipped: Optional[Callable[[str, str], Any]] = None):
        self._start = on_node_start
        self._complete = on_node_complete
        self._error = on_node_error
        self._skipped = on_node_skipped

    def on_node_start(self, node_id: str):
        if self._start:
            self._start(node_id)

    def on_node_complete(self, node_id: str, outputs: Dict[str, Any]):
        if self._complete:
            self._complete(node_id, outputs)

    def on_node_error(self, node_id: str, message: str):
        if self._error:
            self._error(node_id, message)

    def on_node_skipped(self, node_id: str, reason: str):
        if self._skipped:
            self._skipped(node_id, reason)
