"""Client id -> CLI session id cache.

Callers identify a conversation with their own id (OpenAI `user`, Anthropic
`metadata.user_id`). The CLI needs a UUID for `--session-id`, so each client id
is mapped to a generated UUID which is reused until the mapping sits idle for
`ttl_s`.

The mapping is persisted as one JSON object keyed by client id.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
import uuid
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

SESSION_TTL_S = 24 * 60 * 60
CLEANUP_INTERVAL_S = 60 * 60


def default_sessions_path() -> Path:
    env_path = os.environ.get("CLIGATE_SESSIONS_FILE")
    if env_path:
        return Path(env_path)
    return Path.home() / ".claude-code-cli-sessions.json"


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class SessionMapping:
    client_id: str
    cli_session_id: str
    created_at: int  # unix ms
    last_used_at: int  # unix ms
    model: str

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> SessionMapping:
        return cls(
            client_id=str(d["client_id"]),
            cli_session_id=str(d["cli_session_id"]),
            created_at=int(d["created_at"]),
            last_used_at=int(d["last_used_at"]),
            model=str(d["model"]),
        )


class SessionStore:
    """File-backed session mapping with time-based eviction."""

    def __init__(self, path: str | Path | None = None, *, ttl_s: float = SESSION_TTL_S) -> None:
        self._path = Path(path) if path is not None else default_sessions_path()
        self._ttl_ms = int(ttl_s * 1000)
        self._lock = threading.Lock()
        self._sessions: dict[str, SessionMapping] = {}

    @property
    def path(self) -> Path:
        return self._path

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def get(self, client_id: str) -> SessionMapping | None:
        with self._lock:
            return self._sessions.get(client_id)

    def load(self) -> None:
        """Replace in-memory mappings with the file's content (missing file is fine)."""
        if not self._path.exists():
            return
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            if not isinstance(raw, dict):
                raise ValueError("sessions file must contain a JSON object")
            sessions = {key: SessionMapping.from_dict(value) for key, value in raw.items()}
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.error("Failed to read sessions file %s: %s", self._path, exc)
            return

        with self._lock:
            self._sessions = sessions
        logger.info("Loaded %d sessions from %s", len(sessions), self._path)

    def save(self) -> None:
        with self._lock:
            data = {key: asdict(value) for key, value in self._sessions.items()}
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path.with_suffix(self._path.suffix + ".tmp")
            tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
            tmp.replace(self._path)
        except OSError as exc:
            logger.error("Failed to write sessions file %s: %s", self._path, exc)

    def get_or_create(self, client_id: str, model: str) -> str:
        """Return the CLI session id for `client_id`, creating one if needed."""
        now = _now_ms()
        with self._lock:
            existing = self._sessions.get(client_id)
            if existing is not None:
                existing.last_used_at = now
                existing.model = model
                return existing.cli_session_id

            session_id = str(uuid.uuid4())
            self._sessions[client_id] = SessionMapping(
                client_id=client_id,
                cli_session_id=session_id,
                created_at=now,
                last_used_at=now,
                model=model,
            )

        self.save()
        return session_id

    def cleanup_expired(self, *, now_ms: int | None = None) -> int:
        """Drop mappings idle for longer than the TTL. Returns the number removed."""
        now = _now_ms() if now_ms is None else now_ms
        with self._lock:
            expired = [key for key, value in self._sessions.items() if now - value.last_used_at >= self._ttl_ms]
            for key in expired:
                del self._sessions[key]

        if expired:
            logger.info("Cleaned up %d expired sessions", len(expired))
            self.save()
        return len(expired)
