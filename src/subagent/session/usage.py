"""Token usage extraction from the agent's JSON envelope."""

from __future__ import annotations

from typing import Any

_TOTAL_KEYS = ("tokensUsed", "tokens_used", "total_tokens")
_INPUT_KEYS = ("input_tokens", "prompt_tokens")
_OUTPUT_KEYS = ("output_tokens", "completion_tokens")


def extract_tokens_used(payload: dict[str, Any]) -> int | None:
    """Best-effort total token count; ``None`` when the envelope has none.

    A reported total wins. Otherwise input and output counts from the
    ``usage`` object are summed, ignoring cache counters.
    """

    total = _first_int(payload, _TOTAL_KEYS)
    if total is not None:
        return total

    usage = payload.get("usage")
    if not isinstance(usage, dict):
        return None
    total = _first_int(usage, _TOTAL_KEYS)
    if total is not None:
        return total
    known = [
        value
        for value in (_first_int(usage, _INPUT_KEYS), _first_int(usage, _OUTPUT_KEYS))
        if value is not None
    ]
    return sum(known) if known else None


def _first_int(source: dict[str, Any], keys: tuple[str, ...]) -> int | None:
    for key in keys:
        value = source.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, int) and value >= 0:
            return value
    return None
