"""CLI entrypoint for subagent."""

import logging

import rich_click as click

from subagent import __version__
from subagent.controllers import (
    DescribeServersCommand,
    FindServersCommand,
    RunSessionCommand,
    SubagentCliController,
)
from subagent.errors import SubagentError

click.rich_click.USE_MARKDOWN = True
CONTROLLER = SubagentCliController()


@click.group()
@click.version_option(version=__version__, prog_name="subagent")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity.",
)
def subagent(log_level: str) -> None:
    """Run and inspect an external CLI agent session."""

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@subagent.command("run")
@click.option("--system-prompt", required=True, help="Extra system prompt for the agent.")
@click.option(
    "--server",
    "servers",
    multiple=True,
    help="Companion server to install before chatting. Can be repeated.",
)
@click.option(
    "--prompt",
    "prompts",
    multiple=True,
    help="Message to send to the agent. Can be repeated; sent in order.",
)
@click.option(
    "--timeout-ms",
    type=click.IntRange(min=1),
    default=None,
    help=(
        "Deadline for each chat turn in milliseconds. "
        "Defaults to SUBAGENT_CHAT_TIMEOUT_SECONDS."
    ),
)
@click.option(
    "--transcript-format",
    type=click.Choice(["markdown", "json"], case_sensitive=False),
    default="markdown",
    show_default=True,
    help="Rendering of the transcript artifact written at the end.",
)
@click.option(
    "--force-stop/--graceful-stop",
    default=False,
    show_default=True,
    help="Kill the agent without a grace period when the run ends.",
)
def run(  # noqa: PLR0913
    system_prompt: str,
    servers: tuple[str, ...],
    prompts: tuple[str, ...],
    timeout_ms: int | None,
    transcript_format: str,
    force_stop: bool,
) -> None:
    """Start a session, install servers, chat, export the transcript and stop."""

    report = CONTROLLER.run_session(
        RunSessionCommand(
            system_prompt=system_prompt,
            servers=servers,
            prompts=prompts,
            timeout_ms=timeout_ms,
            transcript_format=transcript_format.lower(),
            force_stop=force_stop,
        ),
    )
    _emit_lines(report.lines)
    if not report.success:
        raise click.ClickException("Agent session failed.")


@subagent.command("find-servers")
@click.option("--task", required=True, help="Task description used to pick servers.")
def find_servers(task: str) -> None:
    """Ask the agent which trusted servers fit a task."""

    try:
        lines = CONTROLLER.find_servers(FindServersCommand(task=task))
    except SubagentError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@subagent.command("describe-servers")
@click.argument("names", nargs=-1, required=True)
def describe_servers(names: tuple[str, ...]) -> None:
    """Show catalog descriptions and capabilities of servers."""

    try:
        lines = CONTROLLER.describe_servers(DescribeServersCommand(names=names))
    except SubagentError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)
