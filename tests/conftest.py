"""Shared test fixtures."""

from __future__ import annotations

import json
import shlex
import sys
from pathlib import Path

import pytest

from subagent.backend.base import InvocationRequest
from subagent.config import AgentSettings, CatalogSettings, Settings, TimeoutSettings

ECHO_AGENT_COMMAND = f"{shlex.quote(sys.executable)} -m subagent.backend.echo_agent"

SERVER_CATALOG = [
    {
        "name": "com.pulsemcp/fetch",
        "description": "Fetch web pages",
        "version": "1.0.0",
        "packages": [
            {
                "type": "npm",
                "name": "@pulsemcp/fetch",
                "command": "npx",
                "args": ["-y", "@pulsemcp/fetch"],
                "env": {"A": "1"},
            },
        ],
        "capabilities": {"tools": ["fetch_url"]},
    },
    {
        "name": "com.example/python-only",
        "description": "Python packaged server",
        "version": "0.1.0",
        "packages": [
            {"type": "python", "name": "example", "command": "uvx", "args": ["example"]},
        ],
    },
]

TRUSTED_SERVERS = """\
# Trusted servers
- com.pulsemcp/fetch: fetch and read web pages
- com.example/python-only: demo server
"""


class ScriptedInvoker:
    """Returns queued outputs (or raises queued errors) in call order."""

    def __init__(self, *outcomes: str | Exception) -> None:
        self.outcomes = list(outcomes)
        self.requests: list[InvocationRequest] = []

    def invoke(self, request: InvocationRequest) -> str:
        self.requests.append(request)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture()
def catalog_paths(tmp_path: Path) -> CatalogSettings:
    catalog_dir = tmp_path / "catalog"
    catalog_dir.mkdir()
    configs = catalog_dir / "servers.json"
    configs.write_text(json.dumps(SERVER_CATALOG), "utf-8")
    trusted = catalog_dir / "servers.md"
    trusted.write_text(TRUSTED_SERVERS, "utf-8")
    secrets = catalog_dir / "secrets.json"
    secrets.write_text(json.dumps({"com.pulsemcp/fetch": {"A": "9"}}), "utf-8")
    return CatalogSettings(
        trusted_servers_path=trusted,
        server_configs_path=configs,
        secrets_path=secrets,
    )


@pytest.fixture()
def settings(tmp_path: Path, catalog_paths: CatalogSettings) -> Settings:
    return Settings(
        agent=AgentSettings(command=ECHO_AGENT_COMMAND, base_dir=tmp_path / "agents"),
        catalog=catalog_paths,
        timeouts=TimeoutSettings(init_seconds=30, command_seconds=30, graceful_shutdown_seconds=1),
    )


@pytest.fixture()
def echo_agent_env(monkeypatch, settings: Settings, catalog_paths: CatalogSettings):
    """Point ``Settings.from_env`` at the echo agent and the test catalog."""

    monkeypatch.setenv("SUBAGENT_AGENT_COMMAND", settings.agent.command)
    monkeypatch.setenv("SUBAGENT_AGENT_BASE_DIR", str(settings.agent.base_dir))
    monkeypatch.setenv("SUBAGENT_TRUSTED_SERVERS_PATH", str(catalog_paths.trusted_servers_path))
    monkeypatch.setenv("SUBAGENT_SERVER_CONFIGS_PATH", str(catalog_paths.server_configs_path))
    monkeypatch.setenv("SUBAGENT_SECRETS_PATH", str(catalog_paths.secrets_path))
    monkeypatch.setenv("SUBAGENT_GRACEFUL_SHUTDOWN_SECONDS", "1")
    monkeypatch.delenv("ECHO_AGENT_MODE", raising=False)
    return settings


@pytest.fixture()
def scripted_invoker():
    """Factory for invokers that replay canned agent outputs."""

    return ScriptedInvoker
