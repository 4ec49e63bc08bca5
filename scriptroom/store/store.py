import hashlib
import json
import os
import re
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

from .models import ConversationTurn, Element, ElementType, TurnRole


def _repo_root() -> Path:
    # scriptroom/store/store.py -> scriptroom/store -> scriptroom -> repo root
    return Path(__file__).resolve().parents[2]


def safe_project_id(project_id: str) -> str:
    project_id = (project_id or "").strip()
    if not project_id:
        raise ValueError("project_id must be non-empty")
    # Keep it filename-safe.
    return re.sub(r"[^a-zA-Z0-9._-]+", "_", project_id)


def project_dir_name(project_id: str) -> str:
    """Filename-safe and injective: the digest keeps ids that sanitize alike apart."""
    digest = hashlib.sha256(project_id.encode("utf-8")).hexdigest()[:12]
    return f"{safe_project_id(project_id)[:48]}-{digest}"


def default_project_db_path(project_id: str, data_dir: Optional[os.PathLike] = None) -> Path:
    base = Path(data_dir) if data_dir is not None else _repo_root() / "projects"
    return base / project_dir_name(project_id) / "script.db"


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS meta (
  key TEXT PRIMARY KEY,
  value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS conversation_turns (
  seq INTEGER PRIMARY KEY AUTOINCREMENT,  -- context reconstruction order
  turn_id TEXT NOT NULL UNIQUE,
  project_id TEXT NOT NULL,
  role TEXT NOT NULL CHECK (role IN ('user', 'assistant', 'tool')),
  content TEXT NOT NULL CHECK (length(content) > 0),
  tool_calls_json TEXT,              -- JSON list
  created_at REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_turns_project_seq ON conversation_turns(project_id, seq);

CREATE TABLE IF NOT EXISTS elements (
  element_id TEXT PRIMARY KEY,
  project_id TEXT NOT NULL,
  type TEXT NOT NULL,
  content TEXT NOT NULL,
  asset_url TEXT,
  is_generating INTEGER NOT NULL DEFAULT 0,
  order_index INTEGER NOT NULL,
  metadata_json TEXT,                -- JSON dict
  created_at REAL NOT NULL,
  updated_at REAL NOT NULL,
  UNIQUE(project_id, order_index),
  CHECK (asset_url IS NULL OR is_generating = 0)
);
CREATE INDEX IF NOT EXISTS idx_elements_project_order ON elements(project_id, order_index);
"""


@dataclass
class ProjectStore:
    project_id: str
    db_path: Path
    conn: sqlite3.Connection

    @classmethod
    def open(
        cls,
        project_id: str,
        db_path: Optional[os.PathLike] = None,
        data_dir: Optional[os.PathLike] = None,
    ) -> "ProjectStore":
        safe_project_id(project_id)
        path = Path(db_path) if db_path is not None else default_project_db_path(project_id, data_dir=data_dir)
        path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(str(path), isolation_level=None, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")

        # Rows carry the caller's id verbatim; every query filters on it.
        store = cls(project_id=project_id, db_path=path, conn=conn)
        store._ensure_schema()
        store.conn.execute(
            "INSERT OR IGNORE INTO meta(key, value) VALUES(?, ?)",
            ("project_id", project_id),
        )
        return store

    def close(self) -> None:
        self.conn.close()

    def _ensure_schema(self) -> None:
        self.conn.executescript(SCHEMA_SQL)
        self.conn.execute("INSERT OR IGNORE INTO meta(key, value) VALUES(?, ?)", ("schema_version", "1"))

    def _now(self) -> float:
        return time.time()

    def _j(self, obj: Any) -> Optional[str]:
        if obj is None:
            return None
        return json.dumps(obj, ensure_ascii=True, separators=(",", ":"), sort_keys=True)

    def _ju(self, s: Optional[str]) -> Any:
        if not s:
            return None
        try:
            return json.loads(s)
        except json.JSONDecodeError:
            return s

    # --- conversation turns ---
    def append_turn(
        self,
        role: TurnRole,
        content: str,
        tool_calls: Optional[List[Dict[str, Any]]] = None,
    ) -> ConversationTurn:
        tid = str(uuid4())
        ts = self._now()
        cur = self.conn.execute(
            """
            INSERT INTO conversation_turns(turn_id, project_id, role, content, tool_calls_json, created_at)
            VALUES(?, ?, ?, ?, ?, ?)
            """,
            (tid, self.project_id, TurnRole(role).value, content, self._j(tool_calls), ts),
        )
        return ConversationTurn(
            turn_id=tid,
            project_id=self.project_id,
            role=TurnRole(role),
            content=content,
            seq=int(cur.lastrowid),
            created_at=ts,
            tool_calls=tool_calls,
        )

    def list_turns(self) -> List[ConversationTurn]:
        cur = self.conn.execute(
            "SELECT * FROM conversation_turns WHERE project_id=? ORDER BY seq ASC",
            (self.project_id,),
        )
        return [self._turn_from_row(r) for r in cur.fetchall()]

    def _turn_from_row(self, row: sqlite3.Row) -> ConversationTurn:
        return ConversationTurn(
            turn_id=row["turn_id"],
            project_id=row["project_id"],
            role=TurnRole(row["role"]),
            content=row["content"],
            seq=int(row["seq"]),
            created_at=float(row["created_at"]),
            tool_calls=self._ju(row["tool_calls_json"]),
        )

    # --- elements ---
    def append_element(
        self,
        type: ElementType,
        content: str,
        asset_url: Optional[str] = None,
        is_generating: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
        element_id: Optional[str] = None,
    ) -> Element:
        eid = element_id or str(uuid4())
        ts = self._now()
        # Reading the max and inserting must not interleave with another writer.
        self.conn.execute("BEGIN IMMEDIATE")
        try:
            cur = self.conn.execute(
                "SELECT COALESCE(MAX(order_index), -1) AS mx FROM elements WHERE project_id=?",
                (self.project_id,),
            )
            order = int(cur.fetchone()["mx"]) + 1
            self.conn.execute(
                """
                INSERT INTO elements(element_id, project_id, type, content, asset_url, is_generating, order_index, metadata_json, created_at, updated_at)
                VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    eid,
                    self.project_id,
                    ElementType(type).value,
                    content,
                    asset_url,
                    1 if is_generating else 0,
                    order,
                    self._j(metadata),
                    ts,
                    ts,
                ),
            )
        except Exception:
            self.conn.execute("ROLLBACK")
            raise
        self.conn.execute("COMMIT")
        return Element(
            element_id=eid,
            project_id=self.project_id,
            type=ElementType(type),
            content=content,
            order=order,
            created_at=ts,
            updated_at=ts,
            is_generating=is_generating,
            asset_url=asset_url,
            metadata=metadata or {},
        )

    def get_element(self, element_id: str) -> Optional[Element]:
        cur = self.conn.execute(
            "SELECT * FROM elements WHERE project_id=? AND element_id=?",
            (self.project_id, element_id),
        )
        row = cur.fetchone()
        return self._element_from_row(row) if row else None

    def list_elements(self) -> List[Element]:
        cur = self.conn.execute(
            "SELECT * FROM elements WHERE project_id=? ORDER BY order_index ASC",
            (self.project_id,),
        )
        return [self._element_from_row(r) for r in cur.fetchall()]

    def _element_from_row(self, row: sqlite3.Row) -> Element:
        return Element(
            element_id=row["element_id"],
            project_id=row["project_id"],
            type=ElementType(row["type"]),
            content=row["content"],
            order=int(row["order_index"]),
            created_at=float(row["created_at"]),
            updated_at=float(row["updated_at"]),
            is_generating=bool(row["is_generating"]),
            asset_url=row["asset_url"],
            metadata=self._ju(row["metadata_json"]) or {},
        )
