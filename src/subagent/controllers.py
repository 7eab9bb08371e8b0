"""Controllers for the subagent CLI commands."""

from __future__ import annotations

import json
from dataclasses import dataclass

from subagent.config import Settings
from subagent.errors import SubagentError
from subagent.session import SessionManager, TranscriptFormat


@dataclass(slots=True)
class RunSessionCommand:
    """CLI input for one full session lifecycle."""

    system_prompt: str
    servers: tuple[str, ...]
    prompts: tuple[str, ...]
    timeout_ms: int | None
    transcript_format: str
    force_stop: bool


@dataclass(slots=True)
class FindServersCommand:
    """CLI input for standalone server selection."""

    task: str


@dataclass(slots=True)
class DescribeServersCommand:
    """CLI input for catalog lookups."""

    names: tuple[str, ...]


@dataclass(slots=True)
class RunSessionReport:
    """Lines to render plus overall outcome."""

    lines: list[str]
    success: bool


class SubagentCliController:
    """Drives a `SessionManager` on behalf of the CLI."""

    def __init__(self, settings_factory=Settings.from_env) -> None:
        self.settings_factory = settings_factory

    def run_session(self, command: RunSessionCommand) -> RunSessionReport:
        manager = self._manager()
        lines: list[str] = []
        success = True

        try:
            init = manager.init_agent(command.system_prompt)
            lines.append(
                f"Agent initialized: session_id={init.session_id} "
                f"status={init.status.value} state={init.state_uri}",
            )

            if command.servers:
                installed = manager.install_servers(list(command.servers))
                for item in installed.installations:
                    line = f"Server {item.server_name}: status={item.status.value}"
                    if item.error:
                        line += f" error={item.error}"
                    lines.append(line)
                lines.append(f"Runtime config: {installed.config_uri}")

            for prompt in command.prompts:
                reply = manager.chat(prompt, command.timeout_ms)
                tokens = reply.metadata.tokens_used
                lines.append(
                    f"Chat: duration_ms={reply.metadata.duration_ms} "
                    f"tokens_used={tokens if tokens is not None else '-'}",
                )
                lines.append(reply.response)

            export = manager.inspect_transcript(TranscriptFormat(command.transcript_format))
            lines.append(
                f"Transcript: messages={export.message_count} "
                f"last_updated={export.last_updated} path={export.uri}",
            )
        except SubagentError as error:
            lines.append(f"Error: {error}")
            success = False
        finally:
            if manager.get_agent_state() is not None:
                stopped = manager.stop_agent(force=command.force_stop)
                lines.append(f"Agent stopped: status={stopped.status.value}")

        return RunSessionReport(lines=lines, success=success)

    def find_servers(self, command: FindServersCommand) -> list[str]:
        result = self._manager().find_servers(command.task)
        if not result.servers:
            return ["No servers selected."]
        return [f"{server.name}: {server.rationale}" for server in result.servers]

    def describe_servers(self, command: DescribeServersCommand) -> list[str]:
        descriptions = self._manager().describe_servers(list(command.names))
        return [
            json.dumps(
                {
                    "name": item.name,
                    "description": item.description,
                    "capabilities": item.capabilities,
                },
                ensure_ascii=False,
            )
            for item in descriptions
        ]

    def _manager(self) -> SessionManager:
        settings = self.settings_factory()
        settings.validate()
        return SessionManager(settings)
