"""Output formatters for the CLI: human-readable and JSON."""

import json
import sys
from typing import Any, Sequence

import click


def format_json(data: Any) -> str:
    """Wrap data in the success envelope."""
    return json.dumps({"success": True, "data": data}, indent=2, default=str)


def format_error_json(
    error: Exception,
    error_type: str | None = None,
    help_text: str | None = None,
) -> str:
    """Format an error as JSON.

    No traceback is included; provider errors can echo request details.
    """
    payload = {
        "type": error_type or error.__class__.__name__,
        "message": str(error),
        "help": help_text or "",
    }
    return json.dumps({"success": False, "error": payload}, indent=2)


def _column_widths(headers: Sequence[str], rows: Sequence[Sequence[Any]]) -> list[int]:
    return [max(len(str(cell)) for cell in column) for column in zip(headers, *rows)]


class OutputHandler:
    """Writes command results as JSON envelopes or plain text."""

    def __init__(self, json_mode: bool = False):
        self.json_mode = json_mode

    def success(self, data: Any, human_message: str | None = None) -> None:
        if self.json_mode:
            click.echo(format_json(data))
            return
        if human_message is None:
            human_message = json.dumps(data, indent=2, default=str)
        click.echo(human_message)

    def error(
        self,
        error: Exception,
        error_type: str | None = None,
        help_text: str | None = None,
    ) -> None:
        """Report an error and exit with status 1.

        JSON errors go to stdout so scripts can parse them; human errors go
        to stderr.
        """
        if self.json_mode:
            click.echo(format_error_json(error, error_type, help_text))
        else:
            click.secho(f"Error: {error}", fg="red", err=True)
            if help_text:
                click.echo(f"\n{help_text}", err=True)
        sys.exit(1)

    def table(self, headers: list[str], rows: list[list[str]]) -> None:
        """Print rows under headers; JSON mode emits a list of objects."""
        if self.json_mode:
            click.echo(format_json([dict(zip(headers, row)) for row in rows]))
            return

        widths = _column_widths(headers, rows)

        def render(cells: Sequence[Any]) -> str:
            return "  ".join(str(cell).ljust(width) for cell, width in zip(cells, widths))

        heading = render(headers)
        click.secho(heading, bold=True)
        click.echo("-" * len(heading))
        for row in rows:
            click.echo(render(row))
