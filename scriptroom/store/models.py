from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class ElementType(str, Enum):
    SCENE_HEADING = "SCENE_HEADING"
    ACTION = "ACTION"
    CHARACTER = "CHARACTER"
    DIALOGUE = "DIALOGUE"
    PARENTHETICAL = "PARENTHETICAL"
    TRANSITION = "TRANSITION"
    IMAGE = "IMAGE"
    VIDEO = "VIDEO"
    TEXT = "TEXT"


# Kinds the model may insert through add_script_element.
SCRIPT_ELEMENT_TYPES = (
    ElementType.SCENE_HEADING,
    ElementType.ACTION,
    ElementType.CHARACTER,
    ElementType.DIALOGUE,
    ElementType.PARENTHETICAL,
    ElementType.TRANSITION,
)


class TurnRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


@dataclass(frozen=True)
class ConversationTurn:
    turn_id: str
    project_id: str
    role: TurnRole
    content: str
    seq: int
    created_at: float
    tool_calls: Optional[List[Dict[str, Any]]] = None


@dataclass(frozen=True)
class Element:
    element_id: str
    project_id: str
    type: ElementType
    content: str
    order: int
    created_at: float
    updated_at: float
    is_generating: bool = False
    asset_url: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Wire shape shared with the editor client."""
        data: Dict[str, Any] = {
            "id": self.element_id,
            "projectId": self.project_id,
            "type": self.type.value,
            "content": self.content,
            "isGenerating": self.is_generating,
            "order": self.order,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }
        if self.asset_url is not None:
            data["assetUrl"] = self.asset_url
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        return data
