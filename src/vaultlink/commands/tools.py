"""vaultlink tools — print the tool definitions offered to agents."""

from __future__ import annotations

import json

import click

from vaultlink.tools import builtin_schemas


@click.command()
@click.option("--names", "names_only", is_flag=True, help="Print tool names only.")
def tools(names_only: bool) -> None:
    """Print the built-in tool definitions as JSON."""
    schemas = builtin_schemas()
    if names_only:
        for schema in schemas:
            click.echo(schema["name"])
        return
    click.echo(json.dumps(schemas, indent=2))
