"""Agent process backends."""

from subagent.backend.base import AgentInvoker, InvocationRequest
from subagent.backend.cli_backend import ProcessInvoker
from subagent.backend.shutdown import ShutdownController, StopStatus

__all__ = [
    "AgentInvoker",
    "InvocationRequest",
    "ProcessInvoker",
    "ShutdownController",
    "StopStatus",
]
