"""Parsers for the agent's stdout, each usable without spawning anything."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

from subagent.errors import ParseError
from subagent.session.models import ServerSuggestion
from subagent.session.usage import extract_tokens_used

_FENCED_BLOCK = re.compile(r"```[a-zA-Z0-9_-]*[ \t]*\r?\n?(.*?)```", re.DOTALL)
_SESSION_ID_KEYS = ("session_id", "sessionId")
_REPLY_KEYS = ("result", "content", "message")


@dataclass(slots=True)
class ChatReply:
    """Response text and usage read from a chat envelope."""

    text: str
    tokens_used: int | None = None


def parse_envelope(stdout: str) -> dict[str, Any]:
    """Decode the JSON object the agent prints in structured output mode."""

    try:
        payload = json.loads(stdout)
    except json.JSONDecodeError as error:
        raise ParseError(f"Agent output is not JSON: {error}") from error
    if not isinstance(payload, dict):
        raise ParseError("Agent output is not a JSON object")
    return payload


def parse_session_id(stdout: str) -> str:
    """Session identifier issued by the agent on its first turn."""

    payload = parse_envelope(stdout)
    for key in _SESSION_ID_KEYS:
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    raise ParseError("Agent output carries no session identifier")


def parse_chat_reply(stdout: str) -> ChatReply:
    """Reply text from ``result``/``content``/``message`` plus token usage."""

    payload = parse_envelope(stdout)
    text = next(
        (payload[key] for key in _REPLY_KEYS if isinstance(payload.get(key), str)),
        stdout,
    )
    return ChatReply(text=text, tokens_used=extract_tokens_used(payload))


def extract_fenced_json(text: str) -> Any:
    """Stage 1: parse the first fenced code block that holds valid JSON."""

    blocks = _FENCED_BLOCK.findall(text)
    if not blocks:
        raise ParseError("No fenced code block found")
    for block in blocks:
        try:
            return json.loads(block)
        except json.JSONDecodeError:
            continue
    raise ParseError("No fenced code block contains valid JSON")


def parse_whole_json(text: str) -> Any:
    """Stage 2: parse the entire text as one JSON document."""

    try:
        return json.loads(text)
    except json.JSONDecodeError as error:
        raise ParseError(f"Output is not a JSON document: {error}") from error


def parse_server_selection(stdout: str) -> list[ServerSuggestion]:
    """Read the ``[{name, rationale}]`` array the agent was asked for.

    When stdout is an envelope the reply text inside it is searched,
    otherwise stdout itself.
    """

    text = _reply_text(stdout)
    try:
        payload = extract_fenced_json(text)
    except ParseError:
        payload = parse_whole_json(text)
    return _normalize_suggestions(payload)


def _reply_text(stdout: str) -> str:
    try:
        payload = parse_envelope(stdout)
    except ParseError:
        return stdout
    for key in _REPLY_KEYS:
        value = payload.get(key)
        if isinstance(value, str):
            return value
    return stdout


def _normalize_suggestions(payload: Any) -> list[ServerSuggestion]:
    if isinstance(payload, dict) and isinstance(payload.get("servers"), list):
        payload = payload["servers"]
    if not isinstance(payload, list):
        raise ParseError("Server selection must be a JSON array")

    suggestions: list[ServerSuggestion] = []
    seen: set[str] = set()
    for item in payload:
        if not isinstance(item, dict):
            raise ParseError("Server selection entries must be objects")
        name = item.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ParseError("Server selection entry is missing a name")
        if name in seen:
            continue
        seen.add(name)
        rationale = item.get("rationale")
        suggestions.append(
            ServerSuggestion(
                name=name,
                rationale=rationale if isinstance(rationale, str) else "",
            ),
        )
    return suggestions
