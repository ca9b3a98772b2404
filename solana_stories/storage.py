"""JSON file storage for conversation messages.

All messages live in flat JSON files under a configurable base directory.
There is no database or ORM; reads and writes go through plain helper
methods that load and dump JSON.

Directory layout:

    {base}/
      sessions/
        {quoted session id}.json   ← append-only Message stream

A session has no record of its own: it is the set of messages sharing a
sessionId, and it exists as soon as its file does.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, TypeVar
from urllib.parse import quote, unquote

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from solana_stories.errors import PersistenceError
from solana_stories.models import Message, NewMessage

_Record = TypeVar("_Record", bound=BaseModel)


class JsonStore:
    """Shared JSON file helpers. Every I/O or decode failure is a PersistenceError."""

    def __init__(self, base_path: Path) -> None:
        self._base = base_path

    def _read_json(self, path: Path) -> Any:
        try:
            return json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Cannot read {path.name}: {e}") from e

    def _write_json(self, path: Path, data: Any) -> None:
        try:
            path.write_text(json.dumps(data, indent=2))
        except OSError as e:
            raise PersistenceError(f"Cannot write {path.name}: {e}") from e

    def _load_records(self, path: Path, model: type[_Record]) -> list[_Record]:
        """Validate every entry of a JSON array file; [] if the file does not exist."""
        if not path.exists():
            return []
        try:
            return [model.model_validate(r) for r in self._read_json(path)]
        except (PydanticValidationError, TypeError) as e:
            raise PersistenceError(f"Corrupt record file {path.name}: {e}") from e

    def _save_records(self, path: Path, records: list[BaseModel]) -> None:
        self._write_json(path, [r.model_dump(mode="json") for r in records])


class ConversationStore(JsonStore):
    def __init__(self, base_path: Path) -> None:
        super().__init__(base_path)
        self._sessions_root = base_path / "sessions"
        self._sessions_root.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Internal path helpers
    # ------------------------------------------------------------------

    def _session_file(self, session_id: str) -> Path:
        # quote() escapes "/" so an id can never leave sessions/
        return self._sessions_root / f"{quote(session_id, safe='')}.json"

    def _load(self, path: Path) -> list[Message]:
        return self._load_records(path, Message)

    # ------------------------------------------------------------------
    # Messages (append-only)
    # ------------------------------------------------------------------

    def append(self, message: NewMessage) -> Message:
        """Store a message, assigning its id and creation time."""
        stored = Message(
            **message.model_dump(),
            id=uuid.uuid4().hex,
            createdAt=datetime.now(timezone.utc),
        )
        path = self._session_file(message.sessionId)
        existing = self._load(path)
        existing.append(stored)
        self._save_records(path, existing)
        return stored

    def list_by_session(self, session_id: str) -> list[Message]:
        """All messages of a session in insertion order; [] if unknown."""
        return self._load(self._session_file(session_id))

    # ------------------------------------------------------------------
    # Sessions (derived, read-only)
    # ------------------------------------------------------------------

    def session_ids(self) -> list[str]:
        return sorted(unquote(p.stem) for p in self._sessions_root.glob("*.json"))

    def list_sessions_for_user(self, user_id: int) -> dict[str, list[Message]]:
        """Map session id → that user's messages, for every session they wrote in."""
        sessions: dict[str, list[Message]] = {}
        for session_id in self.session_ids():
            mine = [m for m in self.list_by_session(session_id) if m.userId == user_id]
            if mine:
                sessions[session_id] = mine
        return sessions
