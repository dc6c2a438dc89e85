"""Output formatting for the nodeagent CLI.

Everything the CLI prints is a flat mapping (run summary, host facts),
rendered in one of three formats:
- json: one line, for piping into other tools (default)
- pretty: indented, key-sorted JSON
- table: two-column rich table

Errors always go to stderr as one JSON object, whatever the format.
"""

import json
import sys
from enum import Enum
from typing import Any, Mapping, Optional

import typer
from rich.console import Console
from rich.table import Table

from nodeagent.exceptions import NodeAgentError


class OutputFormat(str, Enum):
    """Output format options."""

    json = "json"
    pretty = "pretty"
    table = "table"


def _dumps(data: Any, pretty: bool) -> str:
    try:
        return json.dumps(data, indent=2 if pretty else None, sort_keys=pretty, default=str)
    except (TypeError, ValueError) as e:
        typer.echo(f"Error serializing output: {e}", err=True)
        raise typer.Exit(2) from e


def _mapping_table(data: Mapping[str, Any], title: Optional[str]) -> Table:
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("key")
    table.add_column("value")
    for key in sorted(data):
        value = data[key]
        # Nested values stay readable as compact JSON.
        text = value if isinstance(value, str) else _dumps(value, pretty=False)
        table.add_row(key, text)
    return table


def output(
    data: Mapping[str, Any],
    format: OutputFormat = OutputFormat.json,
    title: Optional[str] = None,
) -> None:
    """Print a mapping to stdout in the requested format.

    Args:
        data: Mapping to print (values must be JSON-serializable or str()-able)
        format: json, pretty or table
        title: Table title, ignored by the JSON formats
    """
    if format == OutputFormat.table:
        if not data:
            typer.echo("No data to display.", err=True)
            return
        Console().print(_mapping_table(data, title))
    else:
        typer.echo(_dumps(dict(data), pretty=format == OutputFormat.pretty))


def output_error(error: NodeAgentError, exit_code: int, **details: Any) -> None:
    """Print a NodeAgentError as JSON on stderr and exit.

    Args:
        error: The error that ended the command
        exit_code: Process exit code
        **details: Extra fields reported under ``details``
    """
    payload = error.to_dict()
    if details:
        payload["details"] = details
    print(json.dumps(payload, default=str), file=sys.stderr)
    raise typer.Exit(exit_code)
