"""Durable snapshot of one session's state."""

from __future__ import annotations

import threading
from pathlib import Path

from subagent.session.contracts import load_json_object, write_json
from subagent.session.models import AgentSession


class StateStore:
    """Full-file snapshot of an `AgentSession` at ``state.json``.

    Writes are serialized by a lock; the file itself is replaced on every
    save, so readers never see a partial document.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()

    def save(self, session: AgentSession) -> None:
        payload = session.to_payload()
        with self._lock:
            write_json(self.path, payload)

    def load(self) -> AgentSession:
        return AgentSession.from_payload(load_json_object(self.path))
