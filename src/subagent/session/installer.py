"""Resolution of requested servers into the agent's runtime config."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from subagent.errors import ConfigurationError
from subagent.session.catalog import FileSecretsProvider, ServerCatalog
from subagent.session.contracts import runtime_config_payload, write_json
from subagent.session.models import InstallStatus, RuntimeServerEntry, ServerInstallation

logger = logging.getLogger(__name__)

SERVER_NOT_FOUND = "Server configuration not found"
NO_SUPPORTED_PACKAGE = "No npm package found for server"

ServerOverrides = Mapping[str, Mapping[str, Any]]


@dataclass(slots=True)
class InstallPlan:
    """Outcome of resolving a batch of server names."""

    installations: list[ServerInstallation] = field(default_factory=list)
    entries: dict[str, RuntimeServerEntry] = field(default_factory=dict)

    def succeeded(self, requested: list[str]) -> list[str]:
        ok = {
            item.server_name
            for item in self.installations
            if item.status is InstallStatus.SUCCESS
        }
        names: list[str] = []
        for name in requested:
            if name in ok and name not in names:
                names.append(name)
        return names


def layer_env(
    catalog_env: Mapping[str, str],
    override_env: Mapping[str, str] | None,
    secret_env: Mapping[str, str] | None,
) -> dict[str, str]:
    """Catalog defaults < caller overrides < secrets; secrets always win."""

    env = dict(catalog_env)
    env.update(override_env or {})
    env.update(secret_env or {})
    return env


class ServerInstaller:
    """Turns server names into ``.mcp.json`` entries for the agent."""

    def __init__(self, *, catalog_path: Path, secrets: FileSecretsProvider) -> None:
        self.catalog_path = catalog_path
        self.secrets = secrets

    def resolve(
        self,
        names: list[str],
        overrides: ServerOverrides | None = None,
    ) -> InstallPlan:
        catalog = ServerCatalog.from_file(self.catalog_path)
        secrets = self.secrets.load()
        logger.debug(
            "Resolving %d servers against %d catalog entries", len(names), len(catalog)
        )

        plan = InstallPlan()
        for name in names:
            try:
                entry = self._resolve_one(name, catalog, overrides or {}, secrets)
            except ConfigurationError as error:
                logger.warning("Server %s not installed: %s", name, error)
                plan.installations.append(
                    ServerInstallation(
                        server_name=name,
                        status=InstallStatus.FAILED,
                        error=str(error),
                    ),
                )
                continue
            plan.entries[name] = entry
            plan.installations.append(
                ServerInstallation(server_name=name, status=InstallStatus.SUCCESS),
            )
        return plan

    def write(self, config_path: Path, plan: InstallPlan) -> None:
        """Replace the runtime config with exactly the plan's resolved entries."""

        write_json(
            config_path,
            runtime_config_payload({name: asdict(entry) for name, entry in plan.entries.items()}),
        )

    def _resolve_one(
        self,
        name: str,
        catalog: ServerCatalog,
        overrides: ServerOverrides,
        secrets: dict[str, dict[str, str]],
    ) -> RuntimeServerEntry:
        entry = catalog.get(name)
        if entry is None:
            raise ConfigurationError(SERVER_NOT_FOUND)
        package = entry.supported_package()
        if package is None:
            raise ConfigurationError(NO_SUPPORTED_PACKAGE)
        override_env = (overrides.get(name) or {}).get("env")
        return RuntimeServerEntry(
            command=package.command,
            args=list(package.args),
            env=layer_env(package.env, _string_map(override_env), secrets.get(name)),
        )


def _string_map(raw: Any) -> dict[str, str] | None:
    if raw is None:
        return None
    if not isinstance(raw, Mapping):
        raise ConfigurationError("Server override env must be an object")
    return {str(key): str(value) for key, value in raw.items()}
