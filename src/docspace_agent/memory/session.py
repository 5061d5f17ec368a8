"""In-memory, bounded conversation history keyed by session token."""

from __future__ import annotations

import logging
import threading
from collections import deque

from docspace_agent.config import MemoryConfig
from docspace_agent.types import Turn

logger = logging.getLogger(__name__)


class SessionMemory:
    """Per-session ring buffers of turns.

    Sessions are created lazily on first append and are volatile. A `None`
    or empty session id means a stateless call: reads return nothing and
    writes are dropped.
    """

    def __init__(self, config: MemoryConfig | None = None) -> None:
        self.config = config or MemoryConfig()
        self._sessions: dict[str, deque[Turn]] = {}
        self._lock = threading.Lock()

    def get_history(self, session_id: str | None) -> list[Turn]:
        """Return the retained turns oldest-first (a copy)."""
        if not session_id:
            return []
        with self._lock:
            turns = self._sessions.get(session_id)
            return list(turns) if turns else []

    def recent(self, session_id: str | None, limit: int | None = None) -> list[Turn]:
        """Return the turns surfaced into prompts (the last `prompt_turns`)."""
        limit = self.config.prompt_turns if limit is None else limit
        if limit <= 0:
            return []
        return self.get_history(session_id)[-limit:]

    def append(self, session_id: str | None, user_turn: Turn, assistant_turn: Turn) -> None:
        if not session_id:
            return
        with self._lock:
            turns = self._sessions.get(session_id)
            if turns is None:
                turns = deque(maxlen=self.config.retention_turns)
                self._sessions[session_id] = turns
            turns.append(user_turn)
            turns.append(assistant_turn)
        logger.debug("Session %s now holds %d turns", session_id[:16], len(turns))

    def clear(self, session_id: str | None) -> bool:
        if not session_id:
            return False
        with self._lock:
            return self._sessions.pop(session_id, None) is not None
