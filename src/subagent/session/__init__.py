"""Agent session lifecycle: working directory, state, transcript, servers.

`SessionManager` owns at most one live session. Each operation either reads
and writes the session files directly or runs the agent CLI once through an
`AgentInvoker` and folds the result back into state and transcript.
"""

from subagent.session.manager import SessionManager
from subagent.session.models import AgentSession, SessionStatus, TranscriptFormat

__all__ = [
    "AgentSession",
    "SessionManager",
    "SessionStatus",
    "TranscriptFormat",
]
