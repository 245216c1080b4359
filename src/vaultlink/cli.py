"""Root CLI group and version flag."""

import click

from vaultlink import __version__
from vaultlink.commands.chat import chat
from vaultlink.commands.init import init
from vaultlink.commands.tools import tools


@click.group()
@click.version_option(version=__version__, prog_name="vaultlink")
def cli() -> None:
    """vaultlink — connect note vaults to local agent processes."""


cli.add_command(init)
cli.add_command(tools)
cli.add_command(chat)
