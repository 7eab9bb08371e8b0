from __future__ import annotations

import json
from pathlib import Path

import allure
from click.testing import CliRunner

from subagent.main import subagent

pytestmark = [
    allure.epic("Agent Runtime"),
    allure.feature("CLI"),
]


def test_run_full_session(echo_agent_env, monkeypatch) -> None:
    monkeypatch.setenv("ECHO_AGENT_SESSION_ID", "cli-session")
    runner = CliRunner()
    result = runner.invoke(
        subagent,
        [
            "run",
            "--system-prompt",
            "release assistant",
            "--server",
            "com.pulsemcp/fetch",
            "--server",
            "missing",
            "--prompt",
            "first question",
            "--prompt",
            "second question",
            "--transcript-format",
            "json",
        ],
    )

    assert result.exit_code == 0, result.output
    output = result.output
    assert "Agent initialized: session_id=cli-session status=idle" in output
    assert "Server com.pulsemcp/fetch: status=success" in output
    assert "Server missing: status=failed error=Server configuration not found" in output
    assert "echo: first question" in output
    assert "echo: second question" in output
    assert "Transcript: messages=4" in output
    assert "Agent stopped: status=stopped" in output

    transcript_line = next(line for line in output.splitlines() if line.startswith("Transcript:"))
    export_path = Path(transcript_line.split("path=file://", 1)[1])
    entries = json.loads(export_path.read_text("utf-8"))
    assert [item["role"] for item in entries] == ["user", "assistant", "user", "assistant"]


def test_run_reports_failure_and_still_stops(echo_agent_env, monkeypatch) -> None:
    runner = CliRunner()
    monkeypatch.setenv("ECHO_AGENT_MODE", "ok")
    init = runner.invoke(subagent, ["run", "--system-prompt", "x", "--force-stop"])
    assert init.exit_code == 0, init.output
    assert "Agent stopped: status=force_killed" in init.output

    monkeypatch.setenv("ECHO_AGENT_MODE", "fail")
    failed = runner.invoke(subagent, ["run", "--system-prompt", "x", "--prompt", "hi"])
    assert failed.exit_code == 1
    assert "Error: Agent initialization failed" in failed.output
    assert "Agent session failed." in failed.output
    assert "Agent stopped" not in failed.output


def test_find_servers(echo_agent_env, monkeypatch) -> None:
    monkeypatch.setenv(
        "ECHO_AGENT_REPLY",
        '[{"name": "com.pulsemcp/fetch", "rationale": "reads web pages"}]',
    )
    runner = CliRunner()
    result = runner.invoke(subagent, ["find-servers", "--task", "summarize a page"])
    assert result.exit_code == 0, result.output
    assert "com.pulsemcp/fetch: reads web pages" in result.output


def test_find_servers_without_match(echo_agent_env) -> None:
    runner = CliRunner()
    result = runner.invoke(subagent, ["find-servers", "--task", "nothing"])
    assert result.exit_code == 0, result.output
    assert "No servers selected." in result.output


def test_describe_servers(echo_agent_env) -> None:
    runner = CliRunner()
    result = runner.invoke(subagent, ["describe-servers", "com.pulsemcp/fetch", "unknown"])
    assert result.exit_code == 0, result.output
    lines = [json.loads(line) for line in result.output.strip().splitlines()]
    assert lines[0] == {
        "name": "com.pulsemcp/fetch",
        "description": "Fetch web pages",
        "capabilities": {"tools": ["fetch_url"]},
    }
    assert lines[1]["description"] == "Server not found in configuration"


def test_describe_servers_with_broken_catalog(echo_agent_env, monkeypatch, tmp_path) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", "utf-8")
    monkeypatch.setenv("SUBAGENT_SERVER_CONFIGS_PATH", str(broken))
    runner = CliRunner()
    result = runner.invoke(subagent, ["describe-servers", "any"])
    assert result.exit_code == 1
    assert "Failed to load server configurations" in result.output
