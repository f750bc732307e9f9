# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""Rich output formatters for the CLI."""

from __future__ import annotations

import dataclasses
import datetime
import json
import sys
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from dockline.errors import DocklineError
    from dockline.types import EventMessage, ProgressMessage

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

_console = Console()
_err_console = Console(stderr=True)


def _short_id(image_id: str) -> str:
    return image_id.removeprefix("sha256:")[:12]


def _human_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1000:  # noqa: PLR2004
            return f"{value:.1f} {unit}" if unit != "B" else f"{int(value)} B"
        value /= 1000
    return f"{value:.1f} TB"


def format_image_list(images: list[dict[str, Any]], *, json_output: bool = False) -> None:
    """Print a list of images as a rich table or JSON."""
    if json_output:
        click_echo_json(images)
        return

    if not images:
        _console.print("[dim]No images found.[/dim]")
        return

    table = Table(title="Images")
    table.add_column("Repository:Tag", style="cyan")
    table.add_column("ID", style="dim")
    table.add_column("Created")
    table.add_column("Size", justify="right")

    for image in images:
        tags = image.get("RepoTags") or ["<none>:<none>"]
        created = datetime.datetime.fromtimestamp(
            image.get("Created", 0), tz=datetime.timezone.utc
        )
        table.add_row(
            ", ".join(tags),
            _short_id(image.get("Id", "")),
            created.strftime("%Y-%m-%d %H:%M"),
            _human_size(image.get("Size", 0)),
        )

    _console.print(table)


def format_version(data: dict[str, Any], *, json_output: bool = False) -> None:
    """Print the engine version document as a rich panel or JSON."""
    if json_output:
        click_echo_json(data)
        return

    lines = [
        f"[bold]Version:[/bold]     {data.get('Version', '')}",
        f"[bold]API:[/bold]         {data.get('ApiVersion', '')}",
        f"[bold]OS/Arch:[/bold]     {data.get('Os', '')}/{data.get('Arch', '')}",
        f"[bold]Kernel:[/bold]      {data.get('KernelVersion', '')}",
    ]
    components = [c.get("Name", "") for c in data.get("Components") or []]
    if components:
        lines.append(f"[bold]Components:[/bold]  {', '.join(components)}")

    _console.print(Panel("\n".join(lines), title="[cyan]Engine[/cyan]", expand=False))


def print_progress(message: ProgressMessage) -> None:
    """Print one pull/push progress record."""
    if message.is_error:
        detail = message.error_detail.message if message.error_detail else message.error
        _err_console.print(f"[red]error:[/red] {detail}")
        return
    prefix = f"[cyan]{message.id}[/cyan]: " if message.id else ""
    suffix = f" [dim]{message.progress}[/dim]" if message.progress else ""
    _console.print(f"{prefix}{message.status}{suffix}", highlight=False)


def print_event(message: EventMessage, *, json_output: bool = False) -> None:
    """Print one engine event as a single line or JSON."""
    if json_output:
        sys.stdout.write(json.dumps(dataclasses.asdict(message), default=str) + "\n")
        sys.stdout.flush()
        return
    when = datetime.datetime.fromtimestamp(message.time, tz=datetime.timezone.utc)
    actor = message.actor.attributes.get("name", "") if message.actor else ""
    target = actor or message.id[:12]
    _console.print(
        f"[dim]{when:%Y-%m-%d %H:%M:%S}[/dim] [bold]{message.type}[/bold] "
        f"{message.action or message.status} [cyan]{target}[/cyan]",
        highlight=False,
    )


def format_error(err: DocklineError) -> None:
    """Print an SDK error as a rich panel with suggestions."""
    title, suggestion = _error_info(err)
    lines = [str(err)]
    if suggestion:
        lines.append(f"\n[dim]{suggestion}[/dim]")

    panel = Panel(
        "\n".join(lines),
        title=f"[red]{title}[/red]",
        expand=False,
    )
    _err_console.print(panel)


def _error_info(err: DocklineError) -> tuple[str, str]:
    """Map an SDK error to a title and suggestion string."""
    from dockline.errors import (  # noqa: PLC0415
        EngineNotRunning,
        ImageNotFound,
        MalformedMessage,
        ParameterError,
        SocketConnectionError,
    )

    if isinstance(err, EngineNotRunning):
        return "Engine Not Found", "Start Podman or Docker, or pass --socket."
    if isinstance(err, SocketConnectionError):
        return "Connection Failed", "Check that the socket path is correct and readable."
    if isinstance(err, ImageNotFound):
        return "Image Not Found", "Check the image name and tag."
    if isinstance(err, ParameterError):
        return "Invalid Parameters", ""
    if isinstance(err, MalformedMessage):
        return "Malformed Stream", "Run with --verbose to trace the response."
    return "Error", ""


def print_success(msg: str) -> None:
    """Print a success message with a checkmark."""
    _console.print(f"[green]\u2713[/green] {msg}")


def click_echo_json(data: object) -> None:
    """Serialize data to JSON and echo to stdout."""
    sys.stdout.write(json.dumps(data, indent=2, default=str) + "\n")
