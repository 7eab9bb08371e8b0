"""Companion-server catalog, trusted-server document and secrets overlay."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from subagent.errors import ConfigurationError
from subagent.session.contracts import load_json

logger = logging.getLogger(__name__)

SUPPORTED_PACKAGE_TYPE = "npm"


@dataclass(slots=True)
class PackageOption:
    """One way of starting a server, as listed in the catalog."""

    type: str
    name: str
    command: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class CatalogEntry:
    name: str
    description: str = ""
    version: str | None = None
    packages: list[PackageOption] = field(default_factory=list)
    capabilities: dict[str, list[str]] = field(default_factory=dict)

    def supported_package(self) -> PackageOption | None:
        return next(
            (option for option in self.packages if option.type == SUPPORTED_PACKAGE_TYPE),
            None,
        )


class ServerCatalog:
    """Name-indexed view of the structured server catalog."""

    def __init__(self, entries: list[CatalogEntry]) -> None:
        self._entries = {entry.name: entry for entry in entries}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, name: str) -> CatalogEntry | None:
        return self._entries.get(name)

    @classmethod
    def from_file(cls, path: Path) -> ServerCatalog:
        try:
            raw = load_json(path)
        except (OSError, json.JSONDecodeError) as error:
            raise ConfigurationError(
                f"Failed to load server configurations from {path}: {error}",
            ) from error
        try:
            return cls.from_payload(raw)
        except (TypeError, ValueError) as error:
            raise ConfigurationError(f"Invalid server catalog at {path}: {error}") from error

    @classmethod
    def from_payload(cls, raw: Any) -> ServerCatalog:
        if isinstance(raw, dict) and isinstance(raw.get("servers"), list):
            raw = raw["servers"]
        if not isinstance(raw, list):
            raise TypeError("server catalog must be an array of servers")
        return cls([_parse_entry(item) for item in raw])


def _parse_entry(item: Any) -> CatalogEntry:
    if not isinstance(item, dict):
        raise TypeError("server catalog entry must be an object")
    name = item.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValueError("server catalog entry name must be a non-empty string")
    raw_packages = item.get("packages", [])
    if not isinstance(raw_packages, list):
        raise TypeError(f"packages of {name!r} must be an array")
    raw_capabilities = item.get("capabilities", {})
    capabilities = (
        {
            str(kind): [str(value) for value in values]
            for kind, values in raw_capabilities.items()
            if isinstance(values, list)
        }
        if isinstance(raw_capabilities, dict)
        else {}
    )
    version = item.get("version")
    return CatalogEntry(
        name=name,
        description=str(item.get("description", "")),
        version=str(version) if version is not None else None,
        packages=[_parse_package(name, package) for package in raw_packages],
        capabilities=capabilities,
    )


def _parse_package(server_name: str, package: Any) -> PackageOption:
    if not isinstance(package, dict):
        raise TypeError(f"package of {server_name!r} must be an object")
    package_type = package.get("type")
    command = package.get("command")
    if not isinstance(package_type, str):
        raise TypeError(f"package type of {server_name!r} must be a string")
    if not isinstance(command, str):
        raise TypeError(f"package command of {server_name!r} must be a string")
    args = package.get("args") or []
    env = package.get("env") or {}
    if not isinstance(args, list):
        raise TypeError(f"package args of {server_name!r} must be an array")
    if not isinstance(env, dict):
        raise TypeError(f"package env of {server_name!r} must be an object")
    return PackageOption(
        type=package_type,
        name=str(package.get("name", "")),
        command=command,
        args=[str(arg) for arg in args],
        env={str(key): str(value) for key, value in env.items()},
    )


def read_trusted_servers(path: Path) -> str:
    """Free-text list of trusted servers with rationale, passed to the agent."""

    try:
        return path.read_text("utf-8")
    except OSError as error:
        raise ConfigurationError(f"Failed to read trusted servers from {path}: {error}") from error


class FileSecretsProvider:
    """Per-server environment secrets from an optional JSON file.

    A missing or unreadable file yields no secrets.
    """

    def __init__(self, path: Path | None) -> None:
        self.path = path

    def load(self) -> dict[str, dict[str, str]]:
        if self.path is None:
            return {}
        try:
            raw = load_json(self.path)
        except (OSError, json.JSONDecodeError) as error:
            logger.warning("Could not read secrets file %s: %s", self.path, error)
            return {}
        if not isinstance(raw, dict):
            logger.warning("Secrets file %s is not a JSON object, ignoring", self.path)
            return {}
        return {
            str(server): {str(key): str(value) for key, value in values.items()}
            for server, values in raw.items()
            if isinstance(values, dict)
        }
