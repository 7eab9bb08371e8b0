"""Lifecycle tests for SessionManager with a scripted agent."""

from __future__ import annotations

import json

import allure
import pytest

from subagent.backend.shutdown import StopStatus
from subagent.errors import (
    AgentTimeoutError,
    ArtifactAccessError,
    InitializationError,
    NonZeroExitError,
    PreconditionError,
    SpawnError,
)
from subagent.session import SessionManager, SessionStatus, TranscriptFormat
from subagent.session.installer import NO_SUPPORTED_PACKAGE, SERVER_NOT_FOUND
from subagent.session.models import InstallStatus, TranscriptRole

pytestmark = [
    allure.epic("Agent Runtime"),
    allure.feature("Session Lifecycle"),
]

INIT_OUTPUT = json.dumps({"type": "result", "session_id": "s-1", "result": "ready"})


def _reply(text: str, **extra) -> str:
    return json.dumps({"type": "result", "session_id": "s-1", "result": text, **extra})


class _BrokenShutdown:
    def stop(self, process, *, force=False):
        raise RuntimeError("signal delivery failed")


@pytest.fixture()
def make_manager(settings, scripted_invoker):
    def _make(*outcomes, **kwargs):
        invoker = scripted_invoker(*outcomes)
        return SessionManager(settings, invoker=invoker, **kwargs), invoker

    return _make


class TestInitAgent:
    def test_returns_agent_session_id_and_idle_state(self, make_manager):
        manager, invoker = make_manager(INIT_OUTPUT)
        result = manager.init_agent("release assistant")

        assert result.session_id == "s-1"
        assert result.status is SessionStatus.IDLE
        assert result.state_uri.startswith("file://")
        state = json.loads(result.state_path.read_text("utf-8"))
        assert state["session_id"] == "s-1"
        assert state["status"] == "idle"

        args = invoker.requests[0].args
        assert args[args.index("--append-system-prompt") + 1] == "release assistant"
        assert invoker.requests[0].working_directory == result.state_path.parent

    def test_unparseable_output_falls_back_to_local_id(self, make_manager):
        manager, _ = make_manager("Welcome!")
        result = manager.init_agent("helper")
        assert result.session_id == result.state_path.parent.name

    def test_process_failure_raises_initialization_error(self, make_manager):
        manager, _ = make_manager(
            NonZeroExitError("Command failed with code 1: denied", exit_code=1),
        )
        with pytest.raises(InitializationError, match="Command failed with code 1"):
            manager.init_agent("helper")
        assert manager.get_agent_state() is None

    def test_spawn_failure_raises_initialization_error(self, make_manager):
        manager, _ = make_manager(SpawnError("Agent command not found: claude"))
        with pytest.raises(InitializationError, match="not found"):
            manager.init_agent("helper")

    def test_reinit_replaces_the_live_session(self, make_manager):
        second = json.dumps({"session_id": "s-2"})
        manager, _ = make_manager(INIT_OUTPUT, second)
        first = manager.init_agent("a")
        replacement = manager.init_agent("b")

        state = manager.get_agent_state()
        assert state is not None
        assert state.session_id == "s-2"
        assert state.system_prompt == "b"
        assert replacement.state_path.parent != first.state_path.parent


class TestPreconditions:
    @pytest.mark.parametrize(
        ("operation", "call"),
        [
            ("chat", lambda manager: manager.chat("hi")),
            ("install_servers", lambda manager: manager.install_servers(["x"])),
            ("inspect_transcript", lambda manager: manager.inspect_transcript()),
        ],
    )
    def test_requires_live_session(self, make_manager, operation, call):
        manager, invoker = make_manager()
        with pytest.raises(PreconditionError, match=f"{operation}: No agent initialized"):
            call(manager)
        assert invoker.requests == []

    def test_get_agent_state_without_session(self, make_manager):
        manager, _ = make_manager()
        assert manager.get_agent_state() is None


class TestChat:
    def test_records_both_turns_and_returns_metadata(self, make_manager):
        manager, invoker = make_manager(
            INIT_OUTPUT,
            _reply("Two PRs are open.", usage={"input_tokens": 4, "output_tokens": 6}),
        )
        manager.init_agent("release assistant")
        result = manager.chat("list open PRs", 5000)

        assert result.response == "Two PRs are open."
        assert result.metadata.tokens_used == 10
        assert result.metadata.duration_ms >= 0
        assert result.metadata.timestamp

        request = invoker.requests[-1]
        assert request.timeout_seconds == 5
        assert request.args[request.args.index("--resume") + 1] == "s-1"
        assert request.args[-2:] == ["-p", "list open PRs"]

        export = manager.inspect_transcript(TranscriptFormat.JSON)
        entries = json.loads(export.path.read_text("utf-8"))
        assert [(item["role"], item["content"]) for item in entries] == [
            ("user", "list open PRs"),
            ("assistant", "Two PRs are open."),
        ]
        assert manager.get_agent_state().status is SessionStatus.IDLE

    def test_plain_text_output_is_kept_verbatim(self, make_manager):
        manager, invoker = make_manager(INIT_OUTPUT, "just text\n")
        manager.init_agent("helper")
        result = manager.chat("hello")
        assert invoker.requests[-1].timeout_seconds == 300
        assert result.response == "just text\n"
        assert result.metadata.tokens_used is None

    def test_failure_keeps_user_turn_and_returns_to_idle(self, make_manager):
        manager, _ = make_manager(
            INIT_OUTPUT,
            AgentTimeoutError("Command timed out after 5000ms", timeout_seconds=5),
        )
        manager.init_agent("helper")

        with pytest.raises(AgentTimeoutError) as excinfo:
            manager.chat("list open PRs", 5000)
        assert excinfo.value.operation == "chat"
        assert str(excinfo.value).startswith("chat: Command timed out")

        assert manager.get_agent_state().status is SessionStatus.IDLE
        export = manager.inspect_transcript("json")
        assert export.message_count == 1

    def test_n_chats_produce_two_n_entries_in_order(self, make_manager):
        replies = [_reply(f"answer {index}") for index in range(3)]
        manager, _ = make_manager(INIT_OUTPUT, *replies)
        manager.init_agent("helper")
        for index in range(3):
            manager.chat(f"question {index}")

        export = manager.inspect_transcript(TranscriptFormat.MARKDOWN)
        assert export.message_count == 6
        text = export.path.read_text("utf-8")
        positions = [text.index(f"question {i}") for i in range(3)]
        positions += [text.index(f"answer {i}") for i in range(3)]
        assert positions[0] < positions[3] < positions[1] < positions[4] < positions[2]


class TestFindServers:
    def test_standalone_call_does_not_resume(self, make_manager, settings):
        selection = _reply('```json\n[{"name": "com.pulsemcp/fetch", "rationale": "web"}]\n```')
        manager, invoker = make_manager(selection)

        result = manager.find_servers("summarize a web page")

        assert [(s.name, s.rationale) for s in result.servers] == [("com.pulsemcp/fetch", "web")]
        request = invoker.requests[0]
        assert "--resume" not in request.args
        assert request.working_directory == settings.agent.base_dir
        prompt = request.args[-1]
        assert 'Based on this task: "summarize a web page"' in prompt
        assert "com.example/python-only: demo server" in prompt

    def test_resumes_live_session(self, make_manager):
        manager, invoker = make_manager(INIT_OUTPUT, _reply("[]"))
        manager.init_agent("helper")
        assert manager.find_servers("anything").servers == []
        assert invoker.requests[-1].args[invoker.requests[-1].args.index("--resume") + 1] == "s-1"

    def test_unparseable_selection_degrades_to_empty(self, make_manager):
        manager, _ = make_manager(_reply("I cannot decide."))
        assert manager.find_servers("anything").servers == []

    def test_process_failure_propagates(self, make_manager):
        manager, _ = make_manager(NonZeroExitError("Command failed with code 3: x", exit_code=3))
        with pytest.raises(NonZeroExitError) as excinfo:
            manager.find_servers("anything")
        assert excinfo.value.operation == "find_servers"


class TestInstallServers:
    def test_writes_runtime_config_and_state(self, make_manager):
        manager, _ = make_manager(INIT_OUTPUT)
        manager.init_agent("helper")

        result = manager.install_servers(
            ["com.pulsemcp/fetch", "com.example/python-only", "missing"],
            overrides={"com.pulsemcp/fetch": {"env": {"A": "0", "B": "2"}}},
        )

        outcome = {item.server_name: (item.status, item.error) for item in result.installations}
        assert outcome == {
            "com.pulsemcp/fetch": (InstallStatus.SUCCESS, None),
            "com.example/python-only": (InstallStatus.FAILED, NO_SUPPORTED_PACKAGE),
            "missing": (InstallStatus.FAILED, SERVER_NOT_FOUND),
        }
        config = json.loads(result.config_path.read_text("utf-8"))
        assert config == {
            "mcpServers": {
                "com.pulsemcp/fetch": {
                    "command": "npx",
                    "args": ["-y", "@pulsemcp/fetch"],
                    "env": {"A": "9", "B": "2"},
                },
            },
        }
        assert manager.get_agent_state().installed_servers == ["com.pulsemcp/fetch"]
        state = json.loads((result.config_path.parent / "state.json").read_text("utf-8"))
        assert state["installed_servers"] == ["com.pulsemcp/fetch"]

    def test_second_install_replaces_previous_set(self, make_manager):
        manager, _ = make_manager(INIT_OUTPUT)
        manager.init_agent("helper")
        manager.install_servers(["com.pulsemcp/fetch"])
        result = manager.install_servers(["missing"])

        assert json.loads(result.config_path.read_text("utf-8")) == {"mcpServers": {}}
        assert manager.get_agent_state().installed_servers == []


class TestInspectTranscript:
    def test_empty_transcript_reports_now(self, make_manager):
        manager, _ = make_manager(INIT_OUTPUT)
        manager.init_agent("helper")
        export = manager.inspect_transcript()
        assert export.message_count == 0
        assert export.last_updated
        assert export.path.name == "transcript.md"
        assert export.uri.startswith("file://")

    def test_last_updated_is_newest_entry(self, make_manager):
        manager, _ = make_manager(INIT_OUTPUT, _reply("ok"))
        manager.init_agent("helper")
        manager.chat("ping")
        export = manager.inspect_transcript("json")
        entries = json.loads(export.path.read_text("utf-8"))
        assert export.last_updated == entries[-1]["timestamp"]
        assert export.path.name == "transcript_export.json"


class TestStopAgent:
    def test_without_session_reports_failed(self, make_manager):
        manager, _ = make_manager()
        result = manager.stop_agent()
        assert result.status is StopStatus.FAILED
        assert result.final_state is None
        assert result.error

    def test_graceful_stop_when_idle(self, make_manager):
        manager, _ = make_manager(INIT_OUTPUT)
        manager.init_agent("helper")
        result = manager.stop_agent()
        assert result.status is StopStatus.STOPPED
        assert result.final_state.session_id == "s-1"
        assert manager.get_agent_state() is None

    def test_force_stop_when_idle(self, make_manager):
        manager, _ = make_manager(INIT_OUTPUT)
        manager.init_agent("helper")
        assert manager.stop_agent(force=True).status is StopStatus.FORCE_KILLED

    def test_shutdown_error_is_reported_not_raised(self, make_manager):
        manager, _ = make_manager(INIT_OUTPUT, shutdown=_BrokenShutdown())
        manager.init_agent("helper")
        result = manager.stop_agent()
        assert result.status is StopStatus.FAILED
        assert result.error == "signal delivery failed"
        assert result.final_state.session_id == "s-1"
        assert manager.get_agent_state() is None


class TestStateSnapshot:
    def test_snapshot_is_not_live(self, make_manager):
        manager, _ = make_manager(INIT_OUTPUT)
        manager.init_agent("helper")
        snapshot = manager.get_agent_state()
        snapshot.installed_servers.append("tampered")
        snapshot.status = SessionStatus.WORKING
        fresh = manager.get_agent_state()
        assert fresh.installed_servers == []
        assert fresh.status is SessionStatus.IDLE


def test_describe_servers_reports_catalog_and_unknown(make_manager) -> None:
    manager, _ = make_manager()
    descriptions = manager.describe_servers(["com.pulsemcp/fetch", "nope"])
    assert descriptions[0].description == "Fetch web pages"
    assert descriptions[0].capabilities == {"tools": ["fetch_url"]}
    assert descriptions[1].description == "Server not found in configuration"
    assert descriptions[1].capabilities == {}


class TestArtifacts:
    def test_no_session_lists_nothing(self, make_manager):
        manager, _ = make_manager()
        assert manager.list_artifacts() == []

    def test_list_and_read_state(self, make_manager):
        manager, _ = make_manager(INIT_OUTPUT)
        manager.init_agent("helper")
        artifacts = manager.list_artifacts()
        assert [item.name for item in artifacts] == ["Subagent State", "Subagent Transcript"]

        content = manager.read_artifact(artifacts[0].uri)
        assert content.mime_type == "application/json"
        assert json.loads(content.text)["session_id"] == "s-1"

    def test_path_outside_session_is_denied(self, make_manager, tmp_path):
        manager, _ = make_manager(INIT_OUTPUT)
        result = manager.init_agent("helper")
        outside = tmp_path / "secret.txt"
        outside.write_text("nope", "utf-8")

        with pytest.raises(ArtifactAccessError, match="Access denied"):
            manager.read_artifact(outside.as_uri())
        escaped = f"{result.state_path.parent.as_uri()}/../../catalog/secrets.json"
        with pytest.raises(ArtifactAccessError, match="Access denied"):
            manager.read_artifact(escaped)

    def test_unsupported_scheme_and_missing_file(self, make_manager):
        manager, _ = make_manager(INIT_OUTPUT)
        result = manager.init_agent("helper")
        with pytest.raises(ArtifactAccessError, match="Unsupported URI scheme"):
            manager.read_artifact("http://example.com/state.json")
        missing = (result.state_path.parent / "absent.json").as_uri()
        with pytest.raises(ArtifactAccessError, match="Resource not found"):
            manager.read_artifact(missing)


def test_transcript_roles_persist_as_enums(make_manager) -> None:
    manager, _ = make_manager(INIT_OUTPUT, _reply("pong"))
    manager.init_agent("helper")
    manager.chat("ping")
    state = manager.get_agent_state()
    live_entries = manager._live.transcript.entries()  # noqa: SLF001
    assert [entry.role for entry in live_entries] == [
        TranscriptRole.USER,
        TranscriptRole.ASSISTANT,
    ]
    assert state.status is SessionStatus.IDLE
