"""Append-only conversation transcript and its renderings."""

from __future__ import annotations

import json
import threading
from pathlib import Path

from subagent.session.contracts import load_json, write_json
from subagent.session.models import TranscriptEntry

_SECTION_SEPARATOR = "\n\n---\n\n"


class TranscriptLog:
    """Ordered list of turns persisted as a JSON array.

    Appends are read-modify-write under a lock, so concurrent appends from
    threads of one process keep every entry.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()

    def append(self, entry: TranscriptEntry) -> int:
        """Append one entry and return the new entry count."""

        with self._lock:
            payload = self._read_payload()
            payload.append(entry.to_payload())
            write_json(self.path, payload)
            return len(payload)

    def entries(self) -> list[TranscriptEntry]:
        with self._lock:
            payload = self._read_payload()
        return [TranscriptEntry.from_payload(item) for item in payload]

    def _read_payload(self) -> list[dict]:
        if not self.path.exists():
            return []
        payload = load_json(self.path)
        if not isinstance(payload, list):
            raise TypeError(f"Expected JSON array in {self.path}")
        return payload


def render_markdown(entries: list[TranscriptEntry]) -> str:
    """One ``## Role - timestamp`` section per turn, tool calls as a sub-list."""

    sections: list[str] = []
    for entry in entries:
        role = entry.role.value.capitalize()
        section = f"## {role} - {entry.timestamp}\n\n{entry.content}"
        if entry.tool_calls:
            section += "\n\n### Tool Calls:\n"
            for call in entry.tool_calls:
                section += f"- **{call.name}**: {json.dumps(call.arguments, ensure_ascii=False)}\n"
        sections.append(section)
    return _SECTION_SEPARATOR.join(sections)


def write_markdown(path: Path, entries: list[TranscriptEntry]) -> None:
    path.write_text(render_markdown(entries), "utf-8")


def write_json_export(path: Path, entries: list[TranscriptEntry]) -> None:
    write_json(path, [entry.to_payload() for entry in entries])
