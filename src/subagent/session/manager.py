"""Session manager: the single owner of the live agent session."""

from __future__ import annotations

import logging
import subprocess
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from subagent.backend.base import AgentInvoker, InvocationRequest
from subagent.backend.cli_backend import ProcessInvoker, build_init_args, build_prompt_args
from subagent.backend.shutdown import ShutdownController, StopStatus
from subagent.config import Settings
from subagent.errors import (
    InitializationError,
    ParseError,
    PreconditionError,
    ProcessError,
)
from subagent.session.artifacts import list_artifacts, read_artifact
from subagent.session.catalog import FileSecretsProvider, ServerCatalog, read_trusted_servers
from subagent.session.installer import ServerInstaller, ServerOverrides
from subagent.session.models import (
    AgentSession,
    ArtifactContent,
    ChatMetadata,
    ChatResult,
    FindServersResult,
    InitResult,
    InstallResult,
    ServerDescription,
    SessionArtifact,
    SessionStatus,
    StopResult,
    TranscriptEntry,
    TranscriptExport,
    TranscriptFormat,
    TranscriptRole,
    utc_now_iso,
)
from subagent.session.output_fallback import (
    parse_chat_reply,
    parse_server_selection,
    parse_session_id,
)
from subagent.session.state_store import StateStore
from subagent.session.transcript import TranscriptLog, write_json_export, write_markdown
from subagent.session.workdir import SessionLayout, SessionWorkdirManager

logger = logging.getLogger(__name__)

UNKNOWN_SERVER_DESCRIPTION = "Server not found in configuration"


@dataclass(slots=True)
class LiveSession:
    """Everything the manager holds for the session it currently owns."""

    session: AgentSession
    layout: SessionLayout
    state: StateStore
    transcript: TranscriptLog
    process: subprocess.Popen[str] | None = field(default=None)


class SessionManager:
    """Start, drive and stop one external agent session at a time.

    Operations are not serialized against each other: callers that share a
    manager between threads must serialize their calls themselves. File
    writes of one store are still never interleaved.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        invoker: AgentInvoker | None = None,
        installer: ServerInstaller | None = None,
        shutdown: ShutdownController | None = None,
        workdir_manager: SessionWorkdirManager | None = None,
    ) -> None:
        self.settings = settings
        self.invoker = invoker or ProcessInvoker(settings.agent.command_argv())
        self.installer = installer or ServerInstaller(
            catalog_path=settings.catalog.server_configs_path,
            secrets=FileSecretsProvider(settings.catalog.secrets_path),
        )
        self.shutdown = shutdown or ShutdownController(
            graceful_seconds=settings.timeouts.graceful_shutdown_seconds,
        )
        self.workdir_manager = workdir_manager or SessionWorkdirManager(
            settings.agent.base_dir,
            denied_tools=settings.agent.denied_tools,
        )
        self._live: LiveSession | None = None
        self._process_lock = threading.Lock()

    def init_agent(self, system_prompt: str) -> InitResult:
        if self._live is not None:
            logger.debug("Stopping live session before re-initialization")
            self.stop_agent()

        materialized = self.workdir_manager.materialize()
        layout = materialized.layout
        args = build_init_args(
            system_prompt=system_prompt,
            skip_permissions=self.settings.agent.skip_permissions,
        )
        try:
            stdout = self.invoker.invoke(
                InvocationRequest(
                    args=args,
                    working_directory=layout.root,
                    timeout_seconds=self.settings.timeouts.init_seconds,
                    operation="init_agent",
                ),
            )
        except ProcessError as error:
            logger.error("Failed to initialize agent: %s", error)
            raise InitializationError(f"Agent initialization failed: {error}") from error

        try:
            session_id = parse_session_id(stdout)
        except ParseError as error:
            logger.warning(
                "Could not read session id from agent output (%s), using fallback id %s: %r",
                error,
                materialized.agent_id,
                stdout,
            )
            session_id = materialized.agent_id

        session = AgentSession(
            session_id=session_id,
            system_prompt=system_prompt,
            working_directory=layout.root,
        )
        live = LiveSession(
            session=session,
            layout=layout,
            state=StateStore(layout.state_path),
            transcript=TranscriptLog(layout.transcript_path),
        )
        live.state.save(session)
        self._live = live
        logger.info("Agent initialized: session_id=%s workdir=%s", session_id, layout.root)
        return InitResult(
            session_id=session_id,
            status=session.status,
            state_path=layout.state_path,
        )

    def find_servers(self, task_prompt: str) -> FindServersResult:
        servers_document = read_trusted_servers(self.settings.catalog.trusted_servers_path)
        prompt = _selection_prompt(task_prompt=task_prompt, servers_document=servers_document)

        live = self._live
        args = build_prompt_args(
            prompt=prompt,
            session_id=live.session.session_id if live is not None else None,
            skip_permissions=self.settings.agent.skip_permissions,
        )
        stdout = self._invoke(
            live,
            args=args,
            timeout_seconds=self.settings.timeouts.command_seconds,
            operation="find_servers",
        )
        try:
            servers = parse_server_selection(stdout)
        except ParseError as error:
            logger.warning("Could not parse server selection, returning no servers: %s", error)
            return FindServersResult(servers=[])
        logger.info("Agent selected %d servers", len(servers))
        return FindServersResult(servers=servers)

    def install_servers(
        self,
        names: list[str],
        overrides: ServerOverrides | None = None,
    ) -> InstallResult:
        live = self._require_live("install_servers")
        plan = self.installer.resolve(names, overrides)
        self.installer.write(live.layout.runtime_config_path, plan)

        live.session.installed_servers = plan.succeeded(names)
        live.state.save(live.session)
        logger.info(
            "Installed %d of %d servers", len(live.session.installed_servers), len(names)
        )
        return InstallResult(
            installations=plan.installations,
            config_path=live.layout.runtime_config_path,
        )

    def chat(self, prompt: str, timeout_ms: int | None = None) -> ChatResult:
        """Send one prompt in the live session.

        ``timeout_ms`` defaults to ``SUBAGENT_CHAT_TIMEOUT_SECONDS`` (300000 ms).
        """

        live = self._require_live("chat")
        timeout_seconds = (
            timeout_ms / 1000 if timeout_ms is not None else self.settings.timeouts.chat_seconds
        )
        session = live.session
        session.status = SessionStatus.WORKING
        session.last_active_at = utc_now_iso()
        live.state.save(session)

        try:
            start_monotonic = time.monotonic()
            live.transcript.append(TranscriptEntry(role=TranscriptRole.USER, content=prompt))
            stdout = self._invoke(
                live,
                args=build_prompt_args(
                    prompt=prompt,
                    session_id=session.session_id,
                    skip_permissions=self.settings.agent.skip_permissions,
                ),
                timeout_seconds=timeout_seconds,
                operation="chat",
            )
            duration_ms = int((time.monotonic() - start_monotonic) * 1000)

            try:
                reply = parse_chat_reply(stdout)
                response, tokens_used = reply.text, reply.tokens_used
            except ParseError:
                logger.debug("Chat output is not a JSON envelope, keeping raw text")
                response, tokens_used = stdout, None

            live.transcript.append(
                TranscriptEntry(
                    role=TranscriptRole.ASSISTANT,
                    content=response,
                    tokens_used=tokens_used,
                ),
            )
        finally:
            session.status = SessionStatus.IDLE
            live.state.save(session)

        logger.info("Chat completed: duration_ms=%d tokens_used=%s", duration_ms, tokens_used)
        return ChatResult(
            response=response,
            metadata=ChatMetadata(
                duration_ms=duration_ms,
                timestamp=utc_now_iso(),
                tokens_used=tokens_used,
            ),
        )

    def inspect_transcript(
        self,
        output_format: TranscriptFormat | str = TranscriptFormat.MARKDOWN,
    ) -> TranscriptExport:
        live = self._require_live("inspect_transcript")
        output_format = TranscriptFormat(output_format)
        entries = live.transcript.entries()

        if output_format is TranscriptFormat.MARKDOWN:
            path = live.layout.transcript_markdown_path
            write_markdown(path, entries)
        else:
            path = live.layout.transcript_export_path
            write_json_export(path, entries)

        return TranscriptExport(
            path=path,
            message_count=len(entries),
            last_updated=entries[-1].timestamp if entries else utc_now_iso(),
        )

    def stop_agent(self, force: bool = False) -> StopResult:  # noqa: FBT001, FBT002
        live = self._live
        final_state = live.session.snapshot() if live is not None else None
        try:
            if live is None:
                raise PreconditionError("No agent initialized")
            with self._process_lock:
                process = live.process
            status = self.shutdown.stop(process, force=force)
        except Exception as error:  # noqa: BLE001
            logger.error("Failed to stop agent: %s", error)
            self._live = None
            return StopResult(status=StopStatus.FAILED, final_state=final_state, error=str(error))

        self._live = None
        logger.info("Agent stopped: session_id=%s status=%s", live.session.session_id, status.value)
        return StopResult(status=status, final_state=final_state)

    def get_agent_state(self) -> AgentSession | None:
        live = self._live
        return live.session.snapshot() if live is not None else None

    def describe_servers(self, names: list[str]) -> list[ServerDescription]:
        catalog = ServerCatalog.from_file(self.settings.catalog.server_configs_path)
        descriptions: list[ServerDescription] = []
        for name in names:
            entry = catalog.get(name)
            if entry is None:
                descriptions.append(
                    ServerDescription(name=name, description=UNKNOWN_SERVER_DESCRIPTION),
                )
                continue
            descriptions.append(
                ServerDescription(
                    name=name,
                    description=entry.description,
                    capabilities={kind: list(items) for kind, items in entry.capabilities.items()},
                ),
            )
        return descriptions

    def list_artifacts(self) -> list[SessionArtifact]:
        return list_artifacts(self.get_agent_state())

    def read_artifact(self, uri: str) -> ArtifactContent:
        return read_artifact(self.get_agent_state(), uri)

    def _require_live(self, operation: str) -> LiveSession:
        live = self._live
        if live is None:
            raise PreconditionError(f"{operation}: No agent initialized")
        return live

    def _invoke(
        self,
        live: LiveSession | None,
        *,
        args: list[str],
        timeout_seconds: float,
        operation: str,
    ) -> str:
        working_directory = live.layout.root if live is not None else self._standalone_dir()
        request = InvocationRequest(
            args=args,
            working_directory=working_directory,
            timeout_seconds=timeout_seconds,
            operation=operation,
        )
        try:
            if live is None:
                return self.invoker.invoke(request)
            with self._attached(live, request):
                return self.invoker.invoke(request)
        except ProcessError as error:
            logger.error("%s failed: %s", operation, error.message)
            raise error.with_operation(operation) from error

    @contextmanager
    def _attached(self, live: LiveSession, request: InvocationRequest) -> Iterator[None]:
        """Expose the in-flight process to `stop_agent` while the call runs."""

        def _on_spawn(process: subprocess.Popen[str]) -> None:
            with self._process_lock:
                live.process = process

        request.on_spawn = _on_spawn
        try:
            yield
        finally:
            with self._process_lock:
                live.process = None

    def _standalone_dir(self) -> Path:
        base_dir = self.settings.agent.base_dir
        base_dir.mkdir(parents=True, exist_ok=True)
        return base_dir


def _selection_prompt(*, task_prompt: str, servers_document: str) -> str:
    return (
        f'Based on this task: "{task_prompt}"\n'
        f"\n"
        f"And these available servers:\n"
        f"{servers_document}\n"
        f"\n"
        f"Which servers would be relevant for this task? "
        f"Return a JSON array of server names with rationales.\n"
        f'Format: [{{"name": "server.name", "rationale": "why this server is needed"}}]'
    )
