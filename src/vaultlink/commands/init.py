"""vaultlink init — scaffold a vaultlink.yaml next to a vault."""

from __future__ import annotations

from pathlib import Path

import click

CONFIG_FILENAME = "vaultlink.yaml"
ENV_EXAMPLE_FILENAME = ".env.example"

TEMPLATE_YAML = """\
# vaultlink configuration
version: "1"

# Root folder of the note vault (relative to this file)
vault: .

# Folder used by vault_write_note when the agent names none
default_note_folder: ""

agents:
  # A headless Letta Code agent; omit agent_id to start a fresh one
  assistant:
    # agent_id: agent-1234
    command: letta
    args: [--headless, --output, json]
    # executable: /usr/local/bin/letta
    # runtime: /usr/local/bin/node
    # entrypoint: /usr/local/lib/node_modules/@letta-ai/letta-code/letta.js
    # working_directory: .
    # debug: false

# Folders agents may never read or modify
permissions:
  blocked_folders:
    - .obsidian
    - private
  case_sensitive: true

# Bridge timing in seconds
# timeouts:
#   ready_grace: 1.0
#   stop_grace: 2.0
#   completion: 30.0
#   request: 30.0

# Initial agent memory blocks
# memory_blocks:
#   project_context: Notes about the current project

# Announce tool definitions to each agent after it connects
# advertise_tools: false
"""

TEMPLATE_ENV_EXAMPLE = """\
# Environment for agent processes.
# Copy this file to .env; vaultlink loads it before starting agents.

LETTA_API_KEY=
LETTA_BASE_URL=
"""


@click.command()
@click.option(
    "--force",
    is_flag=True,
    help="Overwrite existing vaultlink.yaml if it exists.",
)
def init(force: bool) -> None:
    """Scaffold a vaultlink.yaml in the current directory."""
    cwd = Path.cwd()
    config_path = cwd / CONFIG_FILENAME
    env_example_path = cwd / ENV_EXAMPLE_FILENAME

    if config_path.exists() and not force:
        raise click.ClickException(
            f"{CONFIG_FILENAME} already exists. Use --force to overwrite."
        )

    try:
        config_path.write_text(TEMPLATE_YAML, encoding="utf-8")
    except OSError as exc:
        raise click.ClickException(f"Cannot write {CONFIG_FILENAME}: {exc}") from exc
    click.echo(f"  Created {CONFIG_FILENAME}")

    if not env_example_path.exists() or force:
        try:
            env_example_path.write_text(TEMPLATE_ENV_EXAMPLE, encoding="utf-8")
        except OSError as exc:
            raise click.ClickException(
                f"Cannot write {ENV_EXAMPLE_FILENAME}: {exc}"
            ) from exc
        click.echo(f"  Created {ENV_EXAMPLE_FILENAME}")
    else:
        click.echo(f"  Skipped {ENV_EXAMPLE_FILENAME} (already exists)")

    click.echo()
    click.echo("Next steps:")
    click.echo(f"  1. Edit {CONFIG_FILENAME} to point at your vault and agent")
    click.echo("  2. Copy .env.example to .env if your agent needs credentials")
    click.echo("  3. Run `vaultlink chat` to talk to your agent")
