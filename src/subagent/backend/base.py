"""Invoker interface for external agent executions."""

from __future__ import annotations

import subprocess
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

SpawnCallback = Callable[["subprocess.Popen[str]"], None]


@dataclass(slots=True)
class InvocationRequest:
    """Inputs required to run the agent tool once."""

    args: list[str]
    working_directory: Path
    timeout_seconds: float
    operation: str = "command"
    on_spawn: SpawnCallback | None = None


class AgentInvoker(Protocol):
    """Protocol implemented by agent process runners."""

    def invoke(self, request: InvocationRequest) -> str:
        """Run the agent once and return its raw stdout."""
