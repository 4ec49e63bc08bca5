"""
Conversation and script element persistence.

One SQLite database per project; turns and elements are append-only.
"""

from .models import SCRIPT_ELEMENT_TYPES, ConversationTurn, Element, ElementType, TurnRole
from .service import ProjectRepository

__all__ = [
    "ConversationTurn",
    "Element",
    "ElementType",
    "ProjectRepository",
    "SCRIPT_ELEMENT_TYPES",
    "TurnRole",
]
