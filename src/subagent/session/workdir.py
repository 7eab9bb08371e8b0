"""Working directory materialization for agent sessions."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

from subagent.session.contracts import (
    RUNTIME_CONFIG_FILE,
    SETTINGS_DIR,
    SETTINGS_FILE,
    STATE_FILE,
    TRANSCRIPT_EXPORT_FILE,
    TRANSCRIPT_FILE,
    TRANSCRIPT_MARKDOWN_FILE,
    runtime_config_payload,
    settings_payload,
    write_json,
)


@dataclass(slots=True)
class SessionLayout:
    """Paths of every file kept in one session directory."""

    root: Path

    @property
    def settings_path(self) -> Path:
        return self.root / SETTINGS_DIR / SETTINGS_FILE

    @property
    def runtime_config_path(self) -> Path:
        return self.root / RUNTIME_CONFIG_FILE

    @property
    def state_path(self) -> Path:
        return self.root / STATE_FILE

    @property
    def transcript_path(self) -> Path:
        return self.root / TRANSCRIPT_FILE

    @property
    def transcript_markdown_path(self) -> Path:
        return self.root / TRANSCRIPT_MARKDOWN_FILE

    @property
    def transcript_export_path(self) -> Path:
        return self.root / TRANSCRIPT_EXPORT_FILE


@dataclass(slots=True)
class MaterializedSession:
    """Freshly created session directory."""

    agent_id: str
    layout: SessionLayout


class SessionWorkdirManager:
    """Creates one exclusively owned directory per session."""

    def __init__(self, root_dir: Path, *, denied_tools: tuple[str, ...] = ("WebFetch",)) -> None:
        self.root_dir = root_dir
        self.denied_tools = denied_tools

    def materialize(self) -> MaterializedSession:
        agent_id = str(uuid4())
        layout = SessionLayout(root=self.root_dir / agent_id)
        layout.root.mkdir(parents=True, exist_ok=False)
        write_json(layout.settings_path, settings_payload(denied_tools=self.denied_tools))
        write_json(layout.runtime_config_path, runtime_config_payload({}))
        write_json(layout.transcript_path, [])
        return MaterializedSession(agent_id=agent_id, layout=layout)
