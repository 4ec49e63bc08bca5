from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import ConversationTurn, Element, ElementType, TurnRole
from .store import ProjectStore


class ProjectRepository:
    """
    Project-keyed conversation and element store.

    Keeps a per-process cache of open per-project stores so repeated calls during a
    cycle reuse one connection. Turns and elements are append-only from here.
    """

    def __init__(self, data_dir: Optional[os.PathLike] = None):
        self.data_dir = Path(data_dir) if data_dir is not None else None
        self._stores: Dict[str, ProjectStore] = {}
        self._guard = threading.Lock()

    def store(self, project_id: str) -> ProjectStore:
        with self._guard:
            if project_id not in self._stores:
                self._stores[project_id] = ProjectStore.open(project_id=project_id, data_dir=self.data_dir)
            return self._stores[project_id]

    def close(self) -> None:
        with self._guard:
            for store in self._stores.values():
                store.close()
            self._stores.clear()

    def append_turn(
        self,
        project_id: str,
        role: TurnRole,
        content: str,
        tool_calls: Optional[List[Dict[str, Any]]] = None,
    ) -> ConversationTurn:
        if not content or not content.strip():
            raise ValueError("conversation turn content must be non-empty")
        return self.store(project_id).append_turn(role=role, content=content, tool_calls=tool_calls)

    def list_turns(self, project_id: str) -> List[ConversationTurn]:
        return self.store(project_id).list_turns()

    def append_element(
        self,
        project_id: str,
        type: ElementType,
        content: str,
        asset_url: Optional[str] = None,
        is_generating: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
        element_id: Optional[str] = None,
    ) -> Element:
        if asset_url is not None and is_generating:
            raise ValueError("an element with an asset_url cannot still be generating")
        return self.store(project_id).append_element(
            type=type,
            content=content,
            asset_url=asset_url,
            is_generating=is_generating,
            metadata=metadata,
            element_id=element_id,
        )

    def list_elements(self, project_id: str) -> List[Element]:
        return self.store(project_id).list_elements()
