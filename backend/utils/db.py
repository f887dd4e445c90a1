"""
Draft store — generated content awaiting human review.

Two interchangeable backends behind the DraftStore protocol:
  InMemoryDraftStore   process-lifetime dict (default, no eviction)
  SqliteDraftStore     sqlite file, survives restarts

Env vars:
  DRAFT_STORE      "memory" (default) | "sqlite"
  DATABASE_PATH    path to drafts.db (default: ./drafts.db relative to backend/)
                   Point at a mounted volume for persistence.
"""

import logging
import os
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol

from utils.errors import DraftNotFoundError
from utils.models import Draft, DraftInput

logger = logging.getLogger(__name__)

DB_PATH = os.environ.get(
    "DATABASE_PATH",
    str(Path(__file__).parent.parent / "drafts.db")
)


def new_draft_id() -> str:
    return f"draft-{uuid.uuid4().hex}"


def _build_draft(data: DraftInput) -> Draft:
    """Fully construct a Draft before it becomes visible to readers."""
    return Draft(
        **data.model_dump(),
        id=new_draft_id(),
        created_at=datetime.now(timezone.utc),
    )


class DraftStore(Protocol):
    def put(self, data: DraftInput) -> str: ...

    def get(self, draft_id: str) -> Draft: ...

    def list_drafts(self) -> list[Draft]: ...

    def approve(self, draft_id: str) -> bool: ...

    def unapprove(self, draft_id: str) -> bool: ...


# ── In-memory backend ────────────────────────────────────────────────────────

class InMemoryDraftStore:
    """Keyed dict guarded by a lock. Hands out copies so stored drafts never change."""

    def __init__(self) -> None:
        self._drafts: dict[str, Draft] = {}
        self._lock = threading.Lock()

    def put(self, data: DraftInput) -> str:
        draft = _build_draft(data)
        with self._lock:
            self._drafts[draft.id] = draft
            total = len(self._drafts)
        logger.info("Stored draft %s (type: %s, %d total)", draft.id, draft.content_type.value, total)
        return draft.id

    def get(self, draft_id: str) -> Draft:
        with self._lock:
            draft = self._drafts.get(draft_id)
        if draft is None:
            raise DraftNotFoundError(draft_id)
        return draft.model_copy(deep=True)

    def list_drafts(self) -> list[Draft]:
        """All drafts, newest first."""
        with self._lock:
            drafts = list(self._drafts.values())
        drafts.sort(key=lambda d: d.created_at, reverse=True)
        return [d.model_copy(deep=True) for d in drafts]

    def approve(self, draft_id: str) -> bool:
        return self._set_approval(draft_id, True)

    def unapprove(self, draft_id: str) -> bool:
        return self._set_approval(draft_id, False)

    def _set_approval(self, draft_id: str, approved: bool) -> bool:
        with self._lock:
            draft = self._drafts.get(draft_id)
            if draft is None:
                return False
            self._drafts[draft_id] = draft.model_copy(update={
                "approved": approved,
                "approved_at": datetime.now(timezone.utc) if approved else None,
            })
        return True


# ── SQLite backend ───────────────────────────────────────────────────────────

class SqliteDraftStore:
    """One row per draft; the content document is stored as JSON."""

    def __init__(self, db_path: str = DB_PATH) -> None:
        self.db_path = db_path
        self.init_db()

    def _connect(self) -> sqlite3.Connection:
        # Parent directory may not exist yet on a fresh volume
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create tables if they don't exist. Safe to call on every startup."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS drafts (
                    draft_id     TEXT PRIMARY KEY,
                    content_type TEXT NOT NULL,
                    entity_id    TEXT,
                    body         TEXT NOT NULL,
                    approved     INTEGER NOT NULL DEFAULT 0,
                    approved_at  TEXT,
                    created_at   TEXT NOT NULL
                )
            """)
            conn.commit()

    @staticmethod
    def _row_to_draft(row: sqlite3.Row) -> Draft:
        draft = Draft.model_validate_json(row["body"])
        return draft.model_copy(update={
            "approved": bool(row["approved"]),
            "approved_at": datetime.fromisoformat(row["approved_at"]) if row["approved_at"] else None,
        })

    def put(self, data: DraftInput) -> str:
        draft = _build_draft(data)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO drafts
                  (draft_id, content_type, entity_id, body, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    draft.id,
                    draft.content_type.value,
                    draft.entity_id,
                    draft.model_dump_json(by_alias=True),
                    draft.created_at.isoformat(),
                ),
            )
            conn.commit()
        logger.info("Stored draft %s (type: %s) in %s", draft.id, draft.content_type.value, self.db_path)
        return draft.id

    def get(self, draft_id: str) -> Draft:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM drafts WHERE draft_id = ?", (draft_id,)
            ).fetchone()
        if not row:
            raise DraftNotFoundError(draft_id)
        return self._row_to_draft(row)

    def list_drafts(self) -> list[Draft]:
        """All drafts, newest first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM drafts ORDER BY created_at DESC"
            ).fetchall()
        return [self._row_to_draft(row) for row in rows]

    def approve(self, draft_id: str) -> bool:
        """Set approved=1 and record approval time."""
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE drafts SET approved=1, approved_at=? WHERE draft_id=?",
                (datetime.now(timezone.utc).isoformat(), draft_id),
            )
            conn.commit()
            return cur.rowcount > 0

    def unapprove(self, draft_id: str) -> bool:
        """Set approved=0 and clear approval time."""
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE drafts SET approved=0, approved_at=NULL WHERE draft_id=?",
                (draft_id,),
            )
            conn.commit()
            return cur.rowcount > 0


# ── Process-wide default ─────────────────────────────────────────────────────

_default_store: Optional[DraftStore] = None
_default_lock = threading.Lock()


def get_draft_store() -> DraftStore:
    """Return the process-wide store, creating it on first use."""
    global _default_store
    with _default_lock:
        if _default_store is None:
            backend = os.environ.get("DRAFT_STORE", "memory").strip().lower()
            if backend == "sqlite":
                _default_store = SqliteDraftStore()
            else:
                _default_store = InMemoryDraftStore()
            logger.info("Draft store backend: %s", type(_default_store).__name__)
        return _default_store
