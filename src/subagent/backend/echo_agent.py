"""Local stand-in for the CLI agent, used by integration tests.

Understands the subset of agent flags the session manager passes and prints
a JSON envelope. ``ECHO_AGENT_MODE`` selects the behaviour:

* ``ok`` (default): JSON envelope with ``session_id``, ``result`` and ``usage``.
* ``plain``: plain text, no JSON.
* ``fail``: message on stderr, exit code 2.
* ``hang``: sleep until killed.
* ``ignore-term``: like ``hang`` but ignores SIGTERM.
"""

from __future__ import annotations

import argparse
import json
import os
import signal
import sys
import time

DEFAULT_SESSION_ID = "echo-session"


def main(argv: list[str] | None = None) -> int:
    """Run one deterministic agent turn."""

    parser = argparse.ArgumentParser()
    parser.add_argument("-p", "--print", dest="prompt", default="")
    parser.add_argument("--resume", default=None)
    parser.add_argument("--output-format", default="text")
    parser.add_argument("--append-system-prompt", default=None)
    parser.add_argument("--max-turns", type=int, default=None)
    parser.add_argument("--dangerously-skip-permissions", action="store_true")
    args = parser.parse_args(argv)

    mode = os.getenv("ECHO_AGENT_MODE", "ok")
    if mode in {"hang", "ignore-term"}:
        if mode == "ignore-term":
            signal.signal(signal.SIGTERM, signal.SIG_IGN)
        while True:
            time.sleep(0.1)
    if mode == "fail":
        sys.stderr.write("echo agent failure requested\n")
        return 2
    if mode == "plain":
        sys.stdout.write(f"plain reply: {args.prompt}\n")
        return 0

    session_id = args.resume or os.getenv("ECHO_AGENT_SESSION_ID", DEFAULT_SESSION_ID)
    reply = os.getenv("ECHO_AGENT_REPLY") or f"echo: {args.prompt}"
    payload = {
        "type": "result",
        "session_id": session_id,
        "result": reply,
        "usage": {"input_tokens": len(args.prompt.split()), "output_tokens": len(reply.split())},
    }
    if args.output_format == "json":
        sys.stdout.write(json.dumps(payload) + "\n")
    else:
        sys.stdout.write(reply + "\n")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
