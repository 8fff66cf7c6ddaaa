"""Reading history and saved positions backed by SQLite."""

from __future__ import annotations

import contextlib
import logging
import re
import sqlite3
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from ..config import AppConfig


_TITLE_LIMIT = 50

_DOCUMENT_COLUMNS = "id, title, content, language, char_offset, created_at, last_played_at"


@dataclass
class DocumentRecord:
    id: int
    title: str
    content: str
    language: str
    char_offset: int
    created_at: str
    last_played_at: str

    @property
    def character_count(self) -> int:
        return len(self.content)


LOGGER = logging.getLogger(__name__)


def build_title(content: str) -> str:
    """Return a one-line title: collapsed whitespace, 50 characters at most."""

    cleaned = re.sub(r"\s+", " ", content or "").strip()
    if len(cleaned) <= _TITLE_LIMIT:
        return cleaned
    return cleaned[: _TITLE_LIMIT - 3] + "..."


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


class ReadingRepository:
    """CRUD helpers for documents read aloud and the position reached in each."""

    def __init__(
        self,
        config: AppConfig,
        *,
        event_emitter: Optional[Callable[..., None]] = None,
    ) -> None:
        self._db_path = config.database_file
        self._history_limit = config.history_limit
        self._event_emitter: Optional[Callable[..., None]] = event_emitter

    @property
    def history_limit(self) -> int:
        return self._history_limit

    def configure_event_emitter(self, emitter: Optional[Callable[..., None]]) -> None:
        """Register the callable responsible for emitting DB events."""

        self._event_emitter = emitter

    @contextlib.contextmanager
    def _track_db_event(self, action: str, **payload: Any) -> Iterator[Dict[str, Any]]:
        """Emit a structured event capturing execution time for a DB action."""

        if self._event_emitter is None:
            yield payload
            return

        start = time.perf_counter()
        event_payload: Dict[str, Any] = dict(payload)
        error: BaseException | None = None
        try:
            yield event_payload
        except Exception as exc:
            error = exc
            event_payload.setdefault("status", "error")
            event_payload.setdefault("error", f"{exc.__class__.__name__}: {exc}")
            raise
        finally:
            duration_ms = (time.perf_counter() - start) * 1000.0
            if error is None:
                event_payload.setdefault("status", "ok")
            filtered = {key: value for key, value in event_payload.items() if value is not None}
            self._event_emitter(action, payload=filtered, duration_ms=duration_ms)

    @staticmethod
    def _summarize_sql(statement: str) -> str:
        collapsed = " ".join(statement.strip().split())
        return collapsed[:120] + ("…" if len(collapsed) > 120 else "")

    def _execute(
        self,
        connection: sqlite3.Connection,
        statement: str,
        parameters: Sequence[Any] | Tuple[Any, ...] = (),
        *,
        action: str,
    ) -> sqlite3.Cursor:
        params = tuple(parameters)
        with self._track_db_event(
            action,
            sql=self._summarize_sql(statement),
            parameter_count=len(params),
        ) as event:
            cursor = connection.execute(statement, params)
            if cursor.rowcount >= 0:
                event.setdefault("rowcount", int(cursor.rowcount))
            return cursor

    @contextlib.contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        LOGGER.debug("Opening SQLite connection to %s", self._db_path)
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        try:
            with connection:
                yield connection
        finally:
            connection.close()

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------
    def add_document(self, content: str, language: str = "en") -> int:
        """Store *content* as the newest history entry and prune older ones."""

        if not content or not content.strip():
            raise ValueError("Document content is required")

        title = build_title(content)
        timestamp = _now()
        LOGGER.debug("Adding document '%s' (%s chars)", title, len(content))
        with self._session() as connection:
            cursor = self._execute(
                connection,
                "INSERT INTO documents(title, content, language, char_offset, created_at, last_played_at)"
                " VALUES (?, ?, ?, 0, ?, ?)",
                (title, content, language, timestamp, timestamp),
                action="documents.insert",
            )
            document_id = int(cursor.lastrowid)
            self._prune(connection, self._history_limit)
        return document_id

    def get_document(self, document_id: int) -> Optional[DocumentRecord]:
        with self._session() as connection:
            row = self._execute(
                connection,
                f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = ?",
                (document_id,),
                action="documents.get",
            ).fetchone()
        return DocumentRecord(**row) if row else None

    def find_document_by_content(self, content: str) -> Optional[DocumentRecord]:
        """Return the newest history entry holding exactly *content*."""

        with self._session() as connection:
            row = self._execute(
                connection,
                f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE content = ?"
                " ORDER BY last_played_at DESC, id DESC LIMIT 1",
                (content,),
                action="documents.lookup_by_content",
            ).fetchone()
        return DocumentRecord(**row) if row else None

    def iter_documents(self) -> List[DocumentRecord]:
        """Return the history, most recently played first."""

        with self._session() as connection:
            rows = self._execute(
                connection,
                f"SELECT {_DOCUMENT_COLUMNS} FROM documents ORDER BY last_played_at DESC, id DESC",
                action="documents.list",
            ).fetchall()
        return [DocumentRecord(**row) for row in rows]

    def count_documents(self) -> int:
        with self._session() as connection:
            row = self._execute(
                connection, "SELECT COUNT(*) FROM documents", action="documents.count"
            ).fetchone()
        return int(row[0]) if row else 0

    def update_position(self, document_id: int, char_offset: int) -> int:
        """Persist the reading position, clamped to the document length."""

        with self._session() as connection:
            row = self._execute(
                connection,
                "SELECT LENGTH(content) FROM documents WHERE id = ?",
                (document_id,),
                action="documents.length",
            ).fetchone()
            if row is None:
                raise KeyError(document_id)
            clamped = min(max(int(char_offset), 0), int(row[0]))
            self._execute(
                connection,
                "UPDATE documents SET char_offset = ? WHERE id = ?",
                (clamped, document_id),
                action="documents.update_position",
            )
        LOGGER.debug("Saved position %s for document %s", clamped, document_id)
        return clamped

    def update_language(self, document_id: int, language: str) -> None:
        with self._session() as connection:
            self._execute(
                connection,
                "UPDATE documents SET language = ? WHERE id = ?",
                (language, document_id),
                action="documents.update_language",
            )

    def touch(self, document_id: int) -> None:
        """Mark *document_id* as just played so it sorts first."""

        with self._session() as connection:
            self._execute(
                connection,
                "UPDATE documents SET last_played_at = ? WHERE id = ?",
                (_now(), document_id),
                action="documents.touch",
            )

    def remove_document(self, document_id: int) -> bool:
        with self._session() as connection:
            cursor = self._execute(
                connection,
                "DELETE FROM documents WHERE id = ?",
                (document_id,),
                action="documents.delete",
            )
        return cursor.rowcount > 0

    def clear(self) -> int:
        with self._session() as connection:
            cursor = self._execute(connection, "DELETE FROM documents", action="documents.clear")
        return max(cursor.rowcount, 0)

    def _prune(self, connection: sqlite3.Connection, max_items: int) -> int:
        cursor = self._execute(
            connection,
            "DELETE FROM documents WHERE id NOT IN ("
            " SELECT id FROM documents ORDER BY last_played_at DESC, id DESC LIMIT ?)",
            (max(int(max_items), 0),),
            action="documents.prune",
        )
        removed = max(cursor.rowcount, 0)
        if removed:
            LOGGER.info("Pruned %s document(s) from reading history", removed)
        return removed


__all__ = ["DocumentRecord", "ReadingRepository", "build_title"]
