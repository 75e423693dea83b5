# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""mcpz CLI package."""

import click

from mcpz import __version__
from mcpz.utils.logging import configure_logging, log_startup_info


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="mcpz")
@click.option("--debug", is_flag=True, help="Verbose output (same as MCPZ_DEBUG=1)")
@click.pass_context
def cli(ctx, debug: bool):
    """mcpz - run many MCP servers behind one stdio endpoint."""
    # stdout belongs to the MCP stream under `run`
    daemon = ctx.invoked_subcommand == "run"
    configure_logging(debug=debug, daemon=daemon, force=debug or daemon)
    log_startup_info()
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


def main():
    cli()


from mcpz.cli.commands import config  # noqa: E402,F401
from mcpz.cli.commands import instances  # noqa: E402,F401
from mcpz.cli.commands import plugin  # noqa: E402,F401
from mcpz.cli.commands import run  # noqa: E402,F401
from mcpz.cli.commands import servers  # noqa: E402,F401
from mcpz.cli.commands import skill  # noqa: E402,F401
from mcpz.cli.commands import toolbox  # noqa: E402,F401
