"""nodeagent CLI - Main entry point.

This module defines the main typer app and its commands.
"""

from pathlib import Path
from typing import Optional

import typer

from nodeagent import __version__
from nodeagent.cli.output import OutputFormat, output, output_error
from nodeagent.cli.utils import exit_code_for, run_async
from nodeagent.client import LifecycleOrchestrator, RunResult
from nodeagent.config import AgentConfig, load_config
from nodeagent.exceptions import ConfigError, NodeAgentError
from nodeagent.facts import SystemFactSource
from nodeagent.logging_config import configure_logging
from nodeagent.node import safe_identifier

app = typer.Typer(
    name="nodeagent",
    help="Pull-based configuration client: register, authenticate and converge this node.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        typer.echo(f"nodeagent version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """nodeagent - configuration client for managed hosts.

    Examples:
        nodeagent run --server-url https://config.example.com
        nodeagent facts --format table
        nodeagent node-id web1.example.com
    """


async def _run_lifecycle(config: AgentConfig) -> RunResult:
    orchestrator = LifecycleOrchestrator.from_config(config)
    try:
        return await orchestrator.run()
    finally:
        await orchestrator.close()


@app.command("run")
def run_cmd(
    node_name: Optional[str] = typer.Option(
        None, "--node-name", "-N", help="Node name (defaults to the fqdn/hostname fact)"
    ),
    server_url: Optional[str] = typer.Option(
        None, "--server-url", "-S", help="Configuration server URL"
    ),
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", help="JSON config file"
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", "-l", help="Log level (debug, info, warning, error)"
    ),
    log_file: Optional[str] = typer.Option(
        None, "--logfile", "-L", help="Log file location (defaults to stderr)"
    ),
    format: OutputFormat = typer.Option(
        OutputFormat.json, "--format", "-f", help="Output format"
    ),
) -> None:
    """Run the full node lifecycle once.

    Builds the node, registers or loads its secret, authenticates,
    applies attribute files, saves the node and hands the compiled
    resource graph to the execution engine.
    """
    try:
        config = load_config(
            config_file,
            node_name=node_name,
            server_url=server_url,
            log_level=log_level,
            log_file=log_file,
        )
    except ConfigError as e:
        output_error(e, exit_code_for(e))
        return

    configure_logging(config.log_level, config.log_format, config.log_file)

    try:
        result = run_async(_run_lifecycle(config))
    except NodeAgentError as e:
        output_error(e, exit_code_for(e), error_type=type(e).__name__)
        return

    output(result.summary(), format, title="Run summary")


@app.command("facts")
def facts_cmd(
    format: OutputFormat = typer.Option(
        OutputFormat.pretty, "--format", "-f", help="Output format"
    ),
) -> None:
    """Print the facts this host reports."""
    output(SystemFactSource().facts(), format, title="Host facts")


@app.command("node-id")
def node_id_cmd(
    name: str = typer.Argument(..., help="Canonical node name"),
) -> None:
    """Print the safe identifier used as the node's remote key."""
    typer.echo(safe_identifier(name))


if __name__ == "__main__":
    app()
