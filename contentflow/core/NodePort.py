from typing import Any, Dict, FrozenSet, Iterable, Optional, Union

from .Types import DataKind

KindsArg = Union[DataKind, str, Iterable[Union[DataKind, str]]]


def _kinds(kinds: KindsArg) -> FrozenSet[DataKind]:
    if isinstance(kinds, (DataKind, str)):
        return frozenset([DataKind.parse(kinds)])
    return frozenset(DataKind.parse(k) for k in kinds)


class NodePort:
    """A named slot on a node type. Ports are declared once per type and shared by every instance."""

    def __init__(self, port_id: str, label: str = ""):
        if not port_id:
            raise ValueError("port id must be a non-empty string")
        self.port_id = port_id
        self.label = label or port_id

    def isInputPort(self) -> bool:
        return False

    def isOutputPort(self) -> bool:
        return False


class InputPort(NodePort):
    def __init__(self,
                 port_id: str,
                 accepted_kinds: KindsArg,
                 required: bool = False,
                 allow_multiple: bool = False,
                 label: str = ""):
        super().__init__(port_id, label)
        self.accepted_kinds: FrozenSet[DataKind] = _kinds(accepted_kinds)
        if not self.accepted_kinds:
            raise ValueError(f"Input port '{port_id}' must accept at least one data kind")
        self.required = required
        # Most ports are single-input; multi-input ports collect a list of values.
        self.allow_multiple = allow_multiple

    def isInputPort(self) -> bool:
        return True

    def accepts(self, kind: DataKind) -> bool:
        return DataKind.accepts(self.accepted_kinds, kind)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.port_id,
            "label": self.label,
            "acceptedKinds": sorted(k.value for k in self.accepted_kinds),
            "required": self.required,
            "allowMultiple": self.allow_multiple,
        }

    def __repr__(self):
        kinds = ",".join(sorted(k.value for k in self.accepted_kinds))
        return f"InputPort({self.port_id}: {kinds}{' required' if self.required else ''})"


class OutputPort(NodePort):
    def __init__(self,
                 port_id: str,
                 produced_kind: Union[DataKind, str],
                 branch: Optional[bool] = None,
                 label: str = ""):
        super().__init__(port_id, label)
        self.produced_kind: DataKind = DataKind.parse(produced_kind)
        # Branch ports only propagate when the node's condition equals `branch`.
        self.branch = branch

    def isOutputPort(self) -> bool:
        return True

    def isBranchPort(self) -> bool:
        return self.branch is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.port_id,
            "label": self.label,
            "producedKind": self.produced_kind.value,
            "branch": self.branch,
        }

    def __repr__(self):
        return f"OutputPort({self.port_id}: {self.produced_kind.value})"
