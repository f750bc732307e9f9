# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""CLI command implementations."""

from __future__ import annotations

import datetime
import logging
from pathlib import Path
from typing import TYPE_CHECKING

import click

if TYPE_CHECKING:
    from dockline import EngineClient
    from dockline.cli.main import CliContext
    from dockline.types import ProgressMessage

from dockline.cli._output import (
    format_error,
    format_image_list,
    format_version,
    print_event,
    print_progress,
    print_success,
)


def _get_ctx(ctx: click.Context) -> CliContext:
    """Extract the CliContext from Click's context object."""
    return ctx.obj  # type: ignore[no-any-return]


def _connect(cli_ctx: CliContext) -> EngineClient:
    """Build a client from config and the --socket option, or raise SystemExit."""
    import dockline  # noqa: PLC0415

    try:
        config = dockline.load_config(Path.cwd())
        if not cli_ctx.verbose:
            logging.basicConfig(level=config.log_level.upper())
        return dockline.EngineClient(cli_ctx.socket, config=config)
    except dockline.DocklineError as exc:
        format_error(exc)
        raise SystemExit(1) from exc


def _parse_filters(pairs: tuple[str, ...]) -> dict[str, dict[str, bool]]:
    """Turn ``key=value`` options into the engine's nested filter mapping."""
    filters: dict[str, dict[str, bool]] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key or not value:
            msg = f"expected key=value, got {pair!r}"
            raise click.BadParameter(msg, param_hint="--filter")
        filters.setdefault(key, {})[value] = True
    return filters


def _as_utc(value: datetime.datetime | None) -> datetime.datetime | None:
    # click.DateTime yields naive datetimes; the user means local time
    if value is None:
        return None
    return value.astimezone(datetime.timezone.utc)


# ---------------------------------------------------------------------------
# System
# ---------------------------------------------------------------------------


@click.command("ping")
@click.pass_context
def ping_cmd(ctx: click.Context) -> None:
    """Check that the container engine answers."""
    import dockline  # noqa: PLC0415

    client = _connect(_get_ctx(ctx))
    try:
        reply = client.ping()
    except dockline.DocklineError as exc:
        format_error(exc)
        raise SystemExit(1) from exc
    print_success(f"{client.socket_path}: {reply}")


@click.command("version")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON.")
@click.pass_context
def version_cmd(ctx: click.Context, *, json_output: bool) -> None:
    """Show the container engine version."""
    import dockline  # noqa: PLC0415

    client = _connect(_get_ctx(ctx))
    try:
        data = client.version()
    except dockline.DocklineError as exc:
        format_error(exc)
        raise SystemExit(1) from exc
    format_version(data, json_output=json_output)


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------


@click.command("images")
@click.option("--all", "-a", "show_all", is_flag=True, help="Include intermediate images.")
@click.option("--filter", "-f", "filter_pairs", multiple=True, help="Filter as key=value.")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON.")
@click.pass_context
def images_cmd(
    ctx: click.Context,
    filter_pairs: tuple[str, ...],
    *,
    show_all: bool,
    json_output: bool,
) -> None:
    """List images."""
    import dockline  # noqa: PLC0415
    from dockline.parameters import ImagesListParameters  # noqa: PLC0415

    params = ImagesListParameters(all=show_all, filters=_parse_filters(filter_pairs) or None)
    client = _connect(_get_ctx(ctx))
    try:
        images = client.list_images(params)
    except dockline.DocklineError as exc:
        format_error(exc)
        raise SystemExit(1) from exc
    format_image_list(images, json_output=json_output)


@click.command("pull")
@click.argument("image")
@click.option("--tag", default="", help="Tag to pull (defaults to the tag in IMAGE).")
@click.option("--platform", default="", help="Platform as os[/arch[/variant]].")
@click.pass_context
def pull_cmd(ctx: click.Context, image: str, tag: str, platform: str) -> None:
    """Pull an image, printing progress as it arrives."""
    import dockline  # noqa: PLC0415
    from dockline.parameters import ImagesPullParameters  # noqa: PLC0415

    errors: list[ProgressMessage] = []
    sinks = dockline.SinkRegistry()
    sinks.on_message(print_progress)
    sinks.on_error(errors.append)

    client = _connect(_get_ctx(ctx))
    try:
        client.pull_image(ImagesPullParameters(image=image, tag=tag, platform=platform), sinks)
    except dockline.DocklineError as exc:
        format_error(exc)
        raise SystemExit(1) from exc
    if errors:
        raise SystemExit(1)
    print_success(f"Pulled {image}{':' + tag if tag else ''}")


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@click.command("events")
@click.option("--since", type=click.DateTime(), default=None, help="Show events after this time.")
@click.option("--until", type=click.DateTime(), default=None, help="Stop at this time.")
@click.option("--filter", "-f", "filter_pairs", multiple=True, help="Filter as key=value.")
@click.option("--json", "json_output", is_flag=True, help="One JSON object per line.")
@click.pass_context
def events_cmd(
    ctx: click.Context,
    since: datetime.datetime | None,
    until: datetime.datetime | None,
    filter_pairs: tuple[str, ...],
    *,
    json_output: bool,
) -> None:
    """Stream engine events until --until is reached or Ctrl-C."""
    import dockline  # noqa: PLC0415
    from dockline.parameters import ContainerEventsParameters  # noqa: PLC0415
    from dockline.types import MonitorOutcome  # noqa: PLC0415

    params = ContainerEventsParameters(
        since=_as_utc(since),
        until=_as_utc(until),
        filters=_parse_filters(filter_pairs) or None,
    )
    client = _connect(_get_ctx(ctx))
    try:
        monitor = client.start_events(
            params, lambda message: print_event(message, json_output=json_output)
        )
        try:
            outcome = monitor.wait()
        except KeyboardInterrupt:
            monitor.cancel()
            outcome = monitor.wait(timeout=5)
    except dockline.DocklineError as exc:
        format_error(exc)
        raise SystemExit(1) from exc
    finally:
        client.close()

    if json_output:
        return
    if outcome is MonitorOutcome.CANCELLED:
        click.echo("Stopped.", err=True)
    else:
        click.echo(f"{monitor.message_count} event(s).", err=True)
