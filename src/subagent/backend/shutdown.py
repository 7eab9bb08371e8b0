"""Graceful-then-forceful termination of a running agent invocation."""

from __future__ import annotations

import logging
import subprocess
from enum import Enum

logger = logging.getLogger(__name__)

_REAP_SECONDS = 2.0


class StopStatus(str, Enum):
    """Terminal state reported by a stop request."""

    STOPPED = "stopped"
    FORCE_KILLED = "force_killed"
    FAILED = "failed"


class ShutdownController:
    """Terminate an agent process: SIGTERM, grace period, then SIGKILL.

    ``force=True`` skips the grace period and always reports
    ``force_killed``. A missing or already-exited process counts as a clean
    graceful stop.
    """

    def __init__(self, *, graceful_seconds: float = 5.0) -> None:
        self.graceful_seconds = graceful_seconds

    def stop(
        self,
        process: subprocess.Popen[str] | None,
        *,
        force: bool = False,
    ) -> StopStatus:
        if force:
            if process is not None and process.poll() is None:
                logger.debug("Force-killing agent process pid=%s", process.pid)
                _kill(process)
            return StopStatus.FORCE_KILLED

        if process is None or process.poll() is not None:
            return StopStatus.STOPPED

        logger.debug(
            "Terminating agent process pid=%s grace=%.1fs",
            process.pid,
            self.graceful_seconds,
        )
        try:
            process.terminate()
        except ProcessLookupError:
            return StopStatus.STOPPED
        try:
            process.wait(timeout=self.graceful_seconds)
        except subprocess.TimeoutExpired:
            logger.warning(
                "Agent process pid=%s ignored SIGTERM for %.1fs, killing",
                process.pid,
                self.graceful_seconds,
            )
            _kill(process)
            return StopStatus.FORCE_KILLED
        return StopStatus.STOPPED


def _kill(process: subprocess.Popen[str]) -> None:
    try:
        process.kill()
    except ProcessLookupError:
        return
    try:
        process.wait(timeout=_REAP_SECONDS)
    except subprocess.TimeoutExpired:
        logger.error("Agent process pid=%s did not exit after SIGKILL", process.pid)
