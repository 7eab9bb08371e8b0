"""Error taxonomy for the agent session manager."""

from __future__ import annotations


class SubagentError(Exception):
    """Base class for every error raised by this package."""


class ProcessError(SubagentError):
    """External agent invocation failed.

    Carries whatever the process wrote before failing and, once it crosses the
    manager boundary, the name of the operation that issued the call.
    """

    def __init__(
        self,
        message: str,
        *,
        stdout: str = "",
        stderr: str = "",
        operation: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stdout = stdout
        self.stderr = stderr
        self.operation = operation

    def __str__(self) -> str:
        if self.operation:
            return f"{self.operation}: {self.message}"
        return self.message

    def with_operation(self, operation: str) -> ProcessError:
        """Return a copy of this error tagged with the calling operation."""

        clone = self.__class__.__new__(self.__class__)
        clone.__dict__.update(self.__dict__)
        clone.args = self.args
        clone.operation = operation
        return clone


class SpawnError(ProcessError):
    """The OS could not start the agent executable."""


class AgentTimeoutError(ProcessError):
    """The invocation exceeded its deadline and the process was killed."""

    def __init__(
        self,
        message: str,
        *,
        timeout_seconds: float,
        stdout: str = "",
        stderr: str = "",
        operation: str | None = None,
    ) -> None:
        super().__init__(message, stdout=stdout, stderr=stderr, operation=operation)
        self.timeout_seconds = timeout_seconds


class NonZeroExitError(ProcessError):
    """The agent ran and reported failure through its exit code."""

    def __init__(
        self,
        message: str,
        *,
        exit_code: int,
        stdout: str = "",
        stderr: str = "",
        operation: str | None = None,
    ) -> None:
        super().__init__(message, stdout=stdout, stderr=stderr, operation=operation)
        self.exit_code = exit_code


class ParseError(SubagentError):
    """Agent output did not match the expected envelope."""


class PreconditionError(SubagentError):
    """Operation requires a live session but none exists."""


class ConfigurationError(SubagentError):
    """Server catalog is missing, malformed, or cannot satisfy a request."""


class InitializationError(SubagentError):
    """Starting a new agent session failed."""


class ArtifactAccessError(SubagentError):
    """A session artifact could not be served."""
