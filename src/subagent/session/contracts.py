"""On-disk contracts shared by the session manager and the agent tool."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

SETTINGS_DIR = ".claude"
SETTINGS_FILE = "settings.json"
RUNTIME_CONFIG_FILE = ".mcp.json"
STATE_FILE = "state.json"
TRANSCRIPT_FILE = "transcript.json"
TRANSCRIPT_MARKDOWN_FILE = "transcript.md"
TRANSCRIPT_EXPORT_FILE = "transcript_export.json"

RUNTIME_CONFIG_KEY = "mcpServers"


def write_json(path: Path, payload: Any) -> None:
    """Persist JSON payload, replacing the file atomically."""

    path.parent.mkdir(parents=True, exist_ok=True)
    staging = path.with_name(f".{path.name}.tmp")
    staging.write_text(json.dumps(payload, ensure_ascii=False, indent=2), "utf-8")
    staging.replace(path)


def load_json(path: Path) -> Any:
    """Load a JSON document of any top-level type."""

    return json.loads(path.read_text("utf-8"))


def load_json_object(path: Path) -> dict[str, Any]:
    """Load JSON document and validate top-level object type."""

    payload = load_json(path)
    if not isinstance(payload, dict):
        raise TypeError(f"Expected JSON object in {path}")
    return payload


def settings_payload(*, denied_tools: tuple[str, ...]) -> dict[str, Any]:
    """Agent settings: companion servers auto-enabled, listed tools denied."""

    return {
        "enableAllProjectMcpServers": True,
        "hooks": {},
        "permissions": {"deny": list(denied_tools)},
    }


def runtime_config_payload(entries: dict[str, dict[str, Any]]) -> dict[str, Any]:
    return {RUNTIME_CONFIG_KEY: entries}
