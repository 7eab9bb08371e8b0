"""Domain models for agent sessions, transcripts and operation results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from subagent.backend.shutdown import StopStatus


class SessionStatus(str, Enum):
    """Lifecycle of the live session: idle -> working -> idle."""

    IDLE = "idle"
    WORKING = "working"


class TranscriptRole(str, Enum):
    """Speaker of one transcript turn."""

    USER = "user"
    ASSISTANT = "assistant"


class InstallStatus(str, Enum):
    """Outcome of resolving one companion server."""

    SUCCESS = "success"
    FAILED = "failed"


class TranscriptFormat(str, Enum):
    """Rendering requested by ``inspect_transcript``."""

    MARKDOWN = "markdown"
    JSON = "json"


def utc_now_iso() -> str:
    """Current UTC time in ISO-8601 with millisecond precision."""

    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(slots=True)
class AgentSession:
    """The single live session owned by a manager."""

    session_id: str
    system_prompt: str
    working_directory: Path
    status: SessionStatus = SessionStatus.IDLE
    installed_servers: list[str] = field(default_factory=list)
    created_at: str = field(default_factory=utc_now_iso)
    last_active_at: str = field(default_factory=utc_now_iso)

    def snapshot(self) -> AgentSession:
        """Detached copy safe to hand to callers."""

        return AgentSession(
            session_id=self.session_id,
            system_prompt=self.system_prompt,
            working_directory=self.working_directory,
            status=self.status,
            installed_servers=list(self.installed_servers),
            created_at=self.created_at,
            last_active_at=self.last_active_at,
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "status": self.status.value,
            "system_prompt": self.system_prompt,
            "installed_servers": list(self.installed_servers),
            "created_at": self.created_at,
            "last_active_at": self.last_active_at,
            "working_directory": str(self.working_directory),
        }

    @classmethod
    def from_payload(cls, raw: dict[str, Any]) -> AgentSession:
        session_id = raw.get("session_id")
        if not isinstance(session_id, str) or not session_id.strip():
            raise ValueError("state.session_id must be a non-empty string")
        installed = raw.get("installed_servers", [])
        if not isinstance(installed, list) or not all(isinstance(n, str) for n in installed):
            raise TypeError("state.installed_servers must be an array of strings")
        return cls(
            session_id=session_id,
            system_prompt=str(raw.get("system_prompt", "")),
            working_directory=Path(str(raw["working_directory"])),
            status=SessionStatus(raw.get("status", SessionStatus.IDLE.value)),
            installed_servers=list(installed),
            created_at=str(raw.get("created_at", "")),
            last_active_at=str(raw.get("last_active_at", "")),
        )


@dataclass(slots=True)
class ToolCall:
    """One tool invocation recorded alongside a transcript turn."""

    name: str
    arguments: Any = None


@dataclass(slots=True)
class TranscriptEntry:
    """One conversation turn."""

    role: TranscriptRole
    content: str
    timestamp: str = field(default_factory=utc_now_iso)
    tokens_used: int | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp,
        }
        metadata: dict[str, Any] = {}
        if self.tokens_used is not None:
            metadata["tokens_used"] = self.tokens_used
        if self.tool_calls:
            metadata["tool_calls"] = [
                {"name": call.name, "arguments": call.arguments} for call in self.tool_calls
            ]
        if metadata:
            payload["metadata"] = metadata
        return payload

    @classmethod
    def from_payload(cls, raw: dict[str, Any]) -> TranscriptEntry:
        content = raw.get("content")
        timestamp = raw.get("timestamp")
        if not isinstance(content, str):
            raise TypeError("transcript.content must be a string")
        if not isinstance(timestamp, str):
            raise TypeError("transcript.timestamp must be a string")
        metadata = raw.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise TypeError("transcript.metadata must be an object")
        tokens_used = metadata.get("tokens_used")
        tool_calls = [
            ToolCall(name=str(call.get("name", "")), arguments=call.get("arguments"))
            for call in metadata.get("tool_calls", [])
            if isinstance(call, dict)
        ]
        return cls(
            role=TranscriptRole(raw.get("role")),
            content=content,
            timestamp=timestamp,
            tokens_used=tokens_used if isinstance(tokens_used, int) else None,
            tool_calls=tool_calls,
        )


@dataclass(slots=True)
class ServerInstallation:
    """Per-call result of resolving one requested server."""

    server_name: str
    status: InstallStatus
    error: str | None = None


@dataclass(slots=True)
class RuntimeServerEntry:
    """How the agent should start one companion server."""

    command: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class ServerSuggestion:
    """One server proposed by the agent for a task."""

    name: str
    rationale: str = ""


@dataclass(slots=True)
class ServerDescription:
    """Catalog view of one server."""

    name: str
    description: str
    capabilities: dict[str, list[str]] = field(default_factory=dict)


@dataclass(slots=True)
class InitResult:
    session_id: str
    status: SessionStatus
    state_path: Path

    @property
    def state_uri(self) -> str:
        return self.state_path.resolve().as_uri()


@dataclass(slots=True)
class FindServersResult:
    servers: list[ServerSuggestion] = field(default_factory=list)


@dataclass(slots=True)
class InstallResult:
    installations: list[ServerInstallation]
    config_path: Path

    @property
    def config_uri(self) -> str:
        return self.config_path.resolve().as_uri()


@dataclass(slots=True)
class ChatMetadata:
    duration_ms: int
    timestamp: str
    tokens_used: int | None = None


@dataclass(slots=True)
class ChatResult:
    response: str
    metadata: ChatMetadata


@dataclass(slots=True)
class TranscriptExport:
    path: Path
    message_count: int
    last_updated: str

    @property
    def uri(self) -> str:
        return self.path.resolve().as_uri()


@dataclass(slots=True)
class StopResult:
    status: StopStatus
    final_state: AgentSession | None
    error: str | None = None


@dataclass(slots=True)
class SessionArtifact:
    """A file of the live session that hosts may expose read-only."""

    uri: str
    name: str
    description: str
    mime_type: str


@dataclass(slots=True)
class ArtifactContent:
    uri: str
    mime_type: str
    text: str
