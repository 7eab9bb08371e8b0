"""Runtime configuration for the agent session manager."""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(slots=True)
class AgentSettings:
    """How the external CLI agent is launched."""

    command: str = "claude"
    skip_permissions: bool = True
    denied_tools: tuple[str, ...] = ("WebFetch",)
    base_dir: Path = Path(".subagent/agents")

    def command_argv(self) -> list[str]:
        """Shell-split command head, e.g. ``python -m pkg.agent``."""

        return shlex.split(self.command)


@dataclass(slots=True)
class CatalogSettings:
    """Locations of the companion-server catalog documents."""

    trusted_servers_path: Path = Path("servers.md")
    server_configs_path: Path = Path("servers.json")
    secrets_path: Path | None = None


@dataclass(slots=True)
class TimeoutSettings:
    """Deadlines for agent invocations, in seconds."""

    init_seconds: float = 30.0
    command_seconds: float = 60.0
    chat_seconds: float = 300.0
    graceful_shutdown_seconds: float = 5.0


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    agent: AgentSettings = field(default_factory=AgentSettings)
    catalog: CatalogSettings = field(default_factory=CatalogSettings)
    timeouts: TimeoutSettings = field(default_factory=TimeoutSettings)

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment with defaults for local development."""

        secrets_raw = os.getenv("SUBAGENT_SECRETS_PATH", "").strip()
        return cls(
            agent=AgentSettings(
                command=os.getenv("SUBAGENT_AGENT_COMMAND", "claude"),
                skip_permissions=_env_bool("SUBAGENT_SKIP_PERMISSIONS", default=True),
                denied_tools=_env_csv("SUBAGENT_DENIED_TOOLS", default=("WebFetch",)),
                base_dir=Path(os.getenv("SUBAGENT_AGENT_BASE_DIR", ".subagent/agents")),
            ),
            catalog=CatalogSettings(
                trusted_servers_path=Path(
                    os.getenv("SUBAGENT_TRUSTED_SERVERS_PATH", "servers.md"),
                ),
                server_configs_path=Path(
                    os.getenv("SUBAGENT_SERVER_CONFIGS_PATH", "servers.json"),
                ),
                secrets_path=Path(secrets_raw) if secrets_raw else None,
            ),
            timeouts=TimeoutSettings(
                init_seconds=float(os.getenv("SUBAGENT_INIT_TIMEOUT_SECONDS", "30")),
                command_seconds=float(os.getenv("SUBAGENT_COMMAND_TIMEOUT_SECONDS", "60")),
                chat_seconds=float(os.getenv("SUBAGENT_CHAT_TIMEOUT_SECONDS", "300")),
                graceful_shutdown_seconds=float(
                    os.getenv("SUBAGENT_GRACEFUL_SHUTDOWN_SECONDS", "5"),
                ),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error if launch settings are unusable."""

        if not self.agent.command_argv():
            raise ValueError("SUBAGENT_AGENT_COMMAND must not be empty.")
        checks = (
            ("SUBAGENT_INIT_TIMEOUT_SECONDS", self.timeouts.init_seconds),
            ("SUBAGENT_COMMAND_TIMEOUT_SECONDS", self.timeouts.command_seconds),
            ("SUBAGENT_CHAT_TIMEOUT_SECONDS", self.timeouts.chat_seconds),
        )
        for name, value in checks:
            if value <= 0:
                raise ValueError(f"{name} must be > 0.")
        if self.timeouts.graceful_shutdown_seconds < 0:
            raise ValueError("SUBAGENT_GRACEFUL_SHUTDOWN_SECONDS must be >= 0.")


def _env_csv(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    values: list[str] = []
    for part in raw.split(","):
        token = part.strip()
        if token and token not in values:
            values.append(token)
    return tuple(values)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
