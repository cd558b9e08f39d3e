from enum import Enum
from typing import Any, Iterable


class DataKind(Enum):
    IDEA = "Idea"
    DRAFT = "Draft"
    MEDIA = "Media"
    PLATFORM_SETTINGS = "PlatformSettings"
    AUDIENCE = "Audience"
    HASHTAG_SET = "HashtagSet"
    COMBINED_CONTENT = "CombinedContent"
    PREVIEW = "Preview"
    BOOLEAN = "Boolean"
    STRUCTURED_TEXT = "StructuredText"
    ANY = "Any"

    @staticmethod
    def accepts(accepted: Iterable['DataKind'], kind: 'DataKind') -> bool:
        """True when a port accepting `accepted` can receive `kind`."""
        accepted = set(accepted)
        if kind == DataKind.ANY or DataKind.ANY in accepted:
            return True
        return kind in accepted

    @classmethod
    def parse(cls, value: Any) -> 'DataKind':
        if isinstance(value, DataKind):
            return value
        for kind in cls:
            if value in (kind.value, kind.name):
                return kind
        raise ValueError(f"Unknown data kind '{value}'")


class NodeStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    SKIPPED = "skipped"

    def is_final(self) -> bool:
        return self in (NodeStatus.COMPLETED, NodeStatus.ERROR, NodeStatus.SKIPPED)


class RunStatus(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
