"""Subprocess-based invoker for the external CLI agent."""

from __future__ import annotations

import logging
import os
import subprocess
import time

from subagent.backend.base import InvocationRequest
from subagent.errors import AgentTimeoutError, NonZeroExitError, SpawnError

logger = logging.getLogger(__name__)

_DRAIN_SECONDS = 2.0

INIT_MESSAGE = "Agent initialized successfully. Ready to assist."
SKIP_PERMISSIONS_FLAG = "--dangerously-skip-permissions"


class ProcessInvoker:
    """Spawn the agent tool once per call and collect its output in memory.

    No process outlives a call: continuity between calls comes from the
    ``--resume`` argument, not from a kept-alive child.
    """

    def __init__(self, command: list[str], *, env: dict[str, str] | None = None) -> None:
        if not command:
            raise ValueError("Agent command must not be empty.")
        self.command = list(command)
        self.env = env

    def invoke(self, request: InvocationRequest) -> str:
        argv = [*self.command, *request.args]
        logger.debug(
            "Spawning agent process: operation=%s argv=%s cwd=%s",
            request.operation,
            argv,
            request.working_directory,
        )
        try:
            process = subprocess.Popen(  # noqa: S603
                argv,
                cwd=request.working_directory,
                env=self.env if self.env is not None else os.environ.copy(),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except FileNotFoundError as error:
            raise SpawnError(
                f"Agent command not found: {self.command[0]}",
                operation=request.operation,
            ) from error
        except OSError as error:
            raise SpawnError(
                f"Agent failed to start: {error}",
                operation=request.operation,
            ) from error

        if request.on_spawn is not None:
            request.on_spawn(process)
        return _collect_with_deadline(
            process=process,
            timeout_seconds=request.timeout_seconds,
            operation=request.operation,
        )


def _collect_with_deadline(
    *,
    process: subprocess.Popen[str],
    timeout_seconds: float,
    operation: str,
) -> str:
    start_monotonic = time.monotonic()
    try:
        stdout, stderr = process.communicate(timeout=timeout_seconds)
    except subprocess.TimeoutExpired:
        process.kill()
        stdout, stderr = _drain(process)
        elapsed = time.monotonic() - start_monotonic
        logger.error(
            "Agent process timed out: operation=%s timeout=%.1fs elapsed=%.1fs",
            operation,
            timeout_seconds,
            elapsed,
        )
        raise AgentTimeoutError(
            f"Command timed out after {int(timeout_seconds * 1000)}ms. "
            f"stdout: {stdout}, stderr: {stderr}",
            timeout_seconds=timeout_seconds,
            stdout=stdout,
            stderr=stderr,
            operation=operation,
        ) from None

    if process.returncode != 0:
        logger.error(
            "Agent process failed: operation=%s exit_code=%s stderr=%s",
            operation,
            process.returncode,
            stderr.strip(),
        )
        raise NonZeroExitError(
            f"Command failed with code {process.returncode}: {stderr}",
            exit_code=process.returncode,
            stdout=stdout,
            stderr=stderr,
            operation=operation,
        )

    logger.debug(
        "Agent process finished: operation=%s elapsed=%.1fs stdout_chars=%d",
        operation,
        time.monotonic() - start_monotonic,
        len(stdout),
    )
    return stdout


def _drain(process: subprocess.Popen[str]) -> tuple[str, str]:
    """Collect what a killed process wrote; give up if pipes stay open."""

    try:
        stdout, stderr = process.communicate(timeout=_DRAIN_SECONDS)
    except subprocess.TimeoutExpired:
        return "", ""
    return stdout or "", stderr or ""


def build_init_args(*, system_prompt: str, skip_permissions: bool) -> list[str]:
    """Arguments for the single-turn session bootstrap call."""

    args = ["-p", INIT_MESSAGE]
    if skip_permissions:
        args.append(SKIP_PERMISSIONS_FLAG)
    args.extend(
        [
            "--output-format",
            "json",
            "--append-system-prompt",
            system_prompt,
            "--max-turns",
            "1",
        ],
    )
    return args


def build_prompt_args(
    *,
    prompt: str,
    session_id: str | None,
    skip_permissions: bool,
) -> list[str]:
    """Arguments for a prompt, resumed into ``session_id`` when one is given."""

    args: list[str] = [SKIP_PERMISSIONS_FLAG] if skip_permissions else []
    if session_id:
        args.extend(["--resume", session_id])
    args.extend(["--output-format", "json", "-p", prompt])
    return args
