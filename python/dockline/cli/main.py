# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""CLI entry point for dockline."""

from __future__ import annotations

import dataclasses
import logging

import click

from dockline import __version__


@dataclasses.dataclass
class CliContext:
    """Shared state passed through Click's context object."""

    socket: str | None = None
    verbose: bool = False


@click.group()
@click.option(
    "--socket",
    envvar="DOCKLINE_SOCKET",
    default=None,
    help="Path to container engine socket.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.version_option(version=__version__, prog_name="dockline")
@click.pass_context
def cli(ctx: click.Context, socket: str | None, *, verbose: bool) -> None:
    """Query and stream from a Docker-compatible container engine."""
    ctx.ensure_object(dict)
    ctx.obj = CliContext(socket=socket, verbose=verbose)
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")


# --- Register commands ---

from dockline.cli._commands import (  # noqa: E402
    events_cmd,
    images_cmd,
    ping_cmd,
    pull_cmd,
    version_cmd,
)

cli.add_command(ping_cmd)
cli.add_command(version_cmd)
cli.add_command(images_cmd)
cli.add_command(pull_cmd)
cli.add_command(events_cmd)
