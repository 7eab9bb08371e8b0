"""Read-only exposure of session files to the host application."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from urllib.parse import unquote, urlparse

from subagent.errors import ArtifactAccessError
from subagent.session.models import AgentSession, ArtifactContent, SessionArtifact
from subagent.session.workdir import SessionLayout

logger = logging.getLogger(__name__)


def list_artifacts(session: AgentSession | None) -> list[SessionArtifact]:
    if session is None:
        return []
    layout = SessionLayout(root=session.working_directory)
    return [
        SessionArtifact(
            uri=layout.state_path.resolve().as_uri(),
            name="Subagent State",
            description=(
                "Current state of the agent session including status, "
                "installed servers, and metadata"
            ),
            mime_type="application/json",
        ),
        SessionArtifact(
            uri=layout.transcript_path.resolve().as_uri(),
            name="Subagent Transcript",
            description="Full conversation history with the agent for debugging purposes",
            mime_type="application/json",
        ),
    ]


def read_artifact(session: AgentSession | None, uri: str) -> ArtifactContent:
    """Serve a file from the session directory, refusing anything outside it."""

    parsed = urlparse(uri)
    if parsed.scheme != "file":
        raise ArtifactAccessError(f"Unsupported URI scheme: {uri}")
    if session is None:
        raise ArtifactAccessError("No agent initialized - cannot read resources")

    requested = Path(os.path.realpath(unquote(parsed.path)))
    root = Path(os.path.realpath(session.working_directory))
    if not requested.is_relative_to(root):
        logger.error("Path traversal attempt detected: %s", uri)
        raise ArtifactAccessError("Access denied: path is outside agent working directory")

    try:
        text = requested.read_text("utf-8")
    except FileNotFoundError as error:
        raise ArtifactAccessError(f"Resource not found: {uri}") from error
    except PermissionError as error:
        raise ArtifactAccessError(f"Permission denied reading resource: {uri}") from error
    except IsADirectoryError as error:
        raise ArtifactAccessError(f"Cannot read directory as resource: {uri}") from error
    except OSError as error:
        logger.error("Failed to read resource %s: %s", uri, error)
        raise ArtifactAccessError(f"Failed to read resource: {uri}") from error

    mime_type = "application/json" if requested.suffix == ".json" else "text/plain"
    return ArtifactContent(uri=uri, mime_type=mime_type, text=text)
