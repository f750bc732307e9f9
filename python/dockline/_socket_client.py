# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""Async HTTP-over-Unix-socket client for Podman/Docker.

Each function opens its own connection to the Unix socket, performs the
HTTP request, and closes the connection.  This is the connection-per-operation
model: Unix sockets are free, and isolation prevents a long-lived stream
(``/events``, an image pull) from blocking other operations.

Query strings come from parameter objects via :func:`encode_query`; message
streams are handed to :func:`monitor_stream`.  Uses unversioned
Docker-compatible API paths for Podman + Docker compatibility.
"""

from __future__ import annotations

import asyncio
import base64
import dataclasses
import json
import logging
import os
import pathlib
from typing import TYPE_CHECKING, Any

from dockline._filters import encode_filters
from dockline._monitor import _DEFAULT_READ_SIZE, monitor_stream, require_sink
from dockline._query import encode_query
from dockline._stream import ChunkedBodyReader
from dockline.errors import (
    APIError,
    ImageNotFound,
    InvalidArgument,
    SocketCommunicationError,
    SocketConnectionError,
)
from dockline.types import EventMessage, MonitorOutcome, ProgressMessage

if TYPE_CHECKING:
    from dockline._monitor import Sink
    from dockline._stream import ByteReader
    from dockline.parameters import (
        AuthConfig,
        ContainerEventsParameters,
        ContainersListParameters,
        ContainerStopParameters,
        ImageDeleteParameters,
        ImagePushParameters,
        ImagesCreateParameters,
        ImagesImportParameters,
        ImagesListParameters,
        ImagesPullParameters,
        ImagesSearchParameters,
        ImageTagParameters,
        ServiceFilterParameters,
    )

_log = logging.getLogger(__name__)

_REGISTRY_AUTH_HEADER = "X-Registry-Auth"
_TAR_CONTENT_TYPE = "application/x-tar"
_IMPORT_FROM_BODY = "-"

# ---------------------------------------------------------------------------
# Socket detection
# ---------------------------------------------------------------------------


def detect_socket() -> str | None:
    """Auto-detect an available container engine socket.

    Detection order:
    1. ``DOCKLINE_SOCKET`` env var
    2. Podman rootless: ``$XDG_RUNTIME_DIR/podman/podman.sock``
    3. Podman system: ``/run/podman/podman.sock``
    4. Docker: ``/var/run/docker.sock``

    Returns:
        The path to the first socket found, or ``None``.

    """
    explicit = os.environ.get("DOCKLINE_SOCKET")
    if explicit and pathlib.Path(explicit).exists():
        return explicit

    xdg = os.environ.get("XDG_RUNTIME_DIR", f"/run/user/{os.getuid()}")
    candidates = [
        pathlib.Path(xdg) / "podman" / "podman.sock",
        pathlib.Path("/run/podman/podman.sock"),
        pathlib.Path("/var/run/docker.sock"),
    ]
    for candidate in candidates:
        if candidate.exists():
            return str(candidate)
    return None


# ---------------------------------------------------------------------------
# Raw HTTP helpers
# ---------------------------------------------------------------------------


async def _open_connection(
    socket_path: str,
) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """Open an async connection to a Unix socket."""
    try:
        return await asyncio.open_unix_connection(socket_path)
    except (OSError, ConnectionRefusedError) as exc:
        raise SocketConnectionError(socket_path, str(exc)) from exc


async def _send_request(  # noqa: PLR0913
    writer: asyncio.StreamWriter,
    method: str,
    path: str,
    body: bytes | None = None,
    content_type: str = "application/json",
    headers: dict[str, str] | None = None,
) -> None:
    """Write an HTTP/1.1 request to the writer."""
    lines = [
        f"{method} {path} HTTP/1.1",
        "Host: localhost",
    ]
    for key, value in (headers or {}).items():
        lines.append(f"{key}: {value}")
    if body is not None:
        lines.append(f"Content-Type: {content_type}")
        lines.append(f"Content-Length: {len(body)}")
    lines.append("Connection: close")
    lines.append("")
    lines.append("")

    header_bytes = "\r\n".join(lines).encode("ascii")
    writer.write(header_bytes)
    if body is not None:
        writer.write(body)
    await writer.drain()


async def _read_status_line(reader: asyncio.StreamReader) -> int:
    """Read the HTTP status line and return the status code."""
    line = await reader.readline()
    if not line:
        msg = "empty response"
        raise SocketCommunicationError(msg)
    parts = line.decode("ascii", errors="replace").split(None, 2)
    if len(parts) < 2:  # noqa: PLR2004
        msg = f"malformed status line: {line!r}"
        raise SocketCommunicationError(msg)
    return int(parts[1])


async def _read_headers(reader: asyncio.StreamReader) -> dict[str, str]:
    """Read HTTP headers until the blank line."""
    headers: dict[str, str] = {}
    while True:
        line = await reader.readline()
        stripped = line.strip()
        if not stripped:
            break
        decoded = stripped.decode("ascii", errors="replace")
        if ":" in decoded:
            key, value = decoded.split(":", 1)
            headers[key.strip().lower()] = value.strip()
    return headers


async def _read_body(
    reader: asyncio.StreamReader,
    headers: dict[str, str],
) -> bytes:
    """Read the HTTP response body, handling Content-Length and chunked TE."""
    if headers.get("transfer-encoding", "").lower() == "chunked":
        return await _read_chunked(reader)

    content_length_str = headers.get("content-length")
    if content_length_str is not None:
        length = int(content_length_str)
        return await _read_exact_body(reader, length)

    # No Content-Length, no chunked: read until EOF
    parts: list[bytes] = []
    while True:
        chunk = await reader.read(65536)
        if not chunk:
            break
        parts.append(chunk)
    return b"".join(parts)


async def _read_exact_body(reader: asyncio.StreamReader, length: int) -> bytes:
    """Read exactly ``length`` bytes from the reader."""
    data = b""
    while len(data) < length:
        chunk = await reader.read(length - len(data))
        if not chunk:
            break
        data += chunk
    return data


async def _read_chunked(reader: asyncio.StreamReader) -> bytes:
    """Read a chunked transfer-encoded body."""
    body = ChunkedBodyReader(reader)
    parts: list[bytes] = []
    while True:
        chunk = await body.read()
        if not chunk:
            break
        parts.append(chunk)
    return b"".join(parts)


def _body_reader(reader: asyncio.StreamReader, headers: dict[str, str]) -> ByteReader:
    """Return a plain byte reader over a streaming response body."""
    if headers.get("transfer-encoding", "").lower() == "chunked":
        return ChunkedBodyReader(reader)
    return reader


async def _request(
    socket_path: str,
    method: str,
    path: str,
    body: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> tuple[int, bytes]:
    """Make an HTTP request and return (status_code, response_body).

    Opens a new connection per call.
    """
    reader, writer = await _open_connection(socket_path)
    _log.debug("%s %s", method, path)
    try:
        body_bytes = json.dumps(body).encode("utf-8") if body is not None else None
        await _send_request(writer, method, path, body_bytes, headers=headers)

        status = await _read_status_line(reader)
        response_headers = await _read_headers(reader)
        response_body = await _read_body(reader, response_headers)
    except SocketConnectionError:
        raise
    except (OSError, asyncio.IncompleteReadError) as exc:
        raise SocketCommunicationError(str(exc)) from exc
    else:
        return status, response_body
    finally:
        writer.close()
        await writer.wait_closed()


async def _request_stream(  # noqa: PLR0913
    socket_path: str,
    method: str,
    path: str,
    body: bytes | None = None,
    content_type: str = "application/json",
    headers: dict[str, str] | None = None,
) -> tuple[int, dict[str, str], asyncio.StreamReader, asyncio.StreamWriter]:
    """Make an HTTP request and return (status, headers, reader, writer) for streaming.

    The caller is responsible for closing the writer.
    """
    reader, writer = await _open_connection(socket_path)
    _log.debug("%s %s (stream)", method, path)
    try:
        await _send_request(writer, method, path, body, content_type, headers)

        status = await _read_status_line(reader)
        response_headers = await _read_headers(reader)
    except Exception:
        writer.close()
        await writer.wait_closed()
        raise
    else:
        return status, response_headers, reader, writer


async def open_stream(  # noqa: PLR0913
    socket_path: str,
    method: str,
    path: str,
    *,
    body: bytes | None = None,
    content_type: str = "application/json",
    headers: dict[str, str] | None = None,
    image: str | None = None,
) -> tuple[ByteReader, asyncio.StreamWriter]:
    """Start a streaming request and return (body_reader, writer).

    Raises the mapped API error, after closing the connection, if the engine
    refuses the request.  The caller must close the writer when done.
    """
    status, response_headers, reader, writer = await _request_stream(
        socket_path, method, path, body, content_type, headers
    )
    if status >= 400:  # noqa: PLR2004
        try:
            error_body = await _read_body(reader, response_headers)
        finally:
            writer.close()
            await writer.wait_closed()
        _raise_for_status(status, error_body, image=image)
    return _body_reader(reader, response_headers), writer


async def _monitor_to_end(  # noqa: PLR0913
    stream: tuple[ByteReader, asyncio.StreamWriter],
    message_type: type,
    sink: Sink,
    cancel: asyncio.Event | None,
    *,
    allow_truncated: bool = True,
    read_size: int = _DEFAULT_READ_SIZE,
) -> MonitorOutcome:
    """Monitor an opened stream until it ends, then close the connection."""
    reader, writer = stream
    try:
        return await monitor_stream(
            reader,
            sink,
            message_type,
            cancel,
            allow_truncated=allow_truncated,
            read_size=read_size,
        )
    finally:
        writer.close()
        await writer.wait_closed()


# ---------------------------------------------------------------------------
# Request building and error mapping
# ---------------------------------------------------------------------------


def _with_query(path: str, query: str) -> str:
    return f"{path}?{query}" if query else path


def _require(value: object, name: str) -> None:
    if value is None or value == "":
        raise InvalidArgument(name, "a value is required")


def registry_auth_headers(auth: AuthConfig | None) -> dict[str, str]:
    """Build the ``X-Registry-Auth`` header (``{}`` when *auth* is ``None``)."""
    payload = json.dumps(auth.to_dict() if auth is not None else {}).encode("utf-8")
    return {_REGISTRY_AUTH_HEADER: base64.urlsafe_b64encode(payload).decode("ascii")}


def _error_message(body: bytes) -> str:
    text = body.decode("utf-8", errors="replace").strip()
    try:
        data = json.loads(text)
    except ValueError:
        return text
    if isinstance(data, dict) and "message" in data:
        return str(data["message"])
    return text


def _raise_for_status(status: int, body: bytes, *, image: str | None = None) -> None:
    """Raise appropriate errors based on HTTP status codes."""
    if status < 400:  # noqa: PLR2004
        return
    if status == 404 and image is not None:  # noqa: PLR2004
        raise ImageNotFound(image)
    raise APIError(status, _error_message(body))


def _json(body: bytes) -> Any:
    if not body:
        return None
    try:
        return json.loads(body)
    except ValueError as exc:
        msg = f"invalid JSON response: {exc}"
        raise SocketCommunicationError(msg) from exc


# ---------------------------------------------------------------------------
# System
# ---------------------------------------------------------------------------


async def ping(socket_path: str) -> str:
    """Ping the container engine.

    Returns:
        ``"OK"`` on success.

    """
    status, body = await _request(socket_path, "GET", "/_ping")
    if status != 200:  # noqa: PLR2004
        msg = f"ping failed: HTTP {status}"
        raise SocketCommunicationError(msg)
    return body.decode("ascii").strip()


async def get_version(socket_path: str) -> dict[str, Any]:
    """Return the engine's ``/version`` document."""
    status, body = await _request(socket_path, "GET", "/version")
    _raise_for_status(status, body)
    return _json(body)  # type: ignore[no-any-return]


async def get_system_info(socket_path: str) -> dict[str, Any]:
    """Return the engine's ``/info`` document."""
    status, body = await _request(socket_path, "GET", "/info")
    _raise_for_status(status, body)
    return _json(body)  # type: ignore[no-any-return]


async def monitor_events(  # noqa: PLR0913
    socket_path: str,
    params: ContainerEventsParameters,
    sink: Sink,
    cancel: asyncio.Event | None = None,
    *,
    allow_truncated: bool = True,
    read_size: int = _DEFAULT_READ_SIZE,
) -> MonitorOutcome:
    """Stream engine events to *sink* until the stream ends or *cancel* fires.

    Uses ``GET /events``.  Without an ``until`` bound the engine keeps the
    stream open indefinitely; set *cancel* to stop.
    """
    require_sink(sink)
    stream = await open_events_stream(socket_path, params)
    return await _monitor_to_end(
        stream,
        EventMessage,
        sink,
        cancel,
        allow_truncated=allow_truncated,
        read_size=read_size,
    )


async def open_events_stream(
    socket_path: str,
    params: ContainerEventsParameters,
) -> tuple[ByteReader, asyncio.StreamWriter]:
    """Open ``GET /events`` and return (body_reader, writer)."""
    _require(params, "params")
    path = _with_query("/events", encode_query(params))
    return await open_stream(socket_path, "GET", path)


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------


async def list_images(socket_path: str, params: ImagesListParameters) -> list[dict[str, Any]]:
    """List images.  Uses ``GET /images/json``."""
    _require(params, "params")
    status, body = await _request(socket_path, "GET", _with_query("/images/json", encode_query(params)))
    _raise_for_status(status, body)
    return _json(body) or []  # type: ignore[no-any-return]


async def inspect_image(socket_path: str, name: str) -> dict[str, Any]:
    """Inspect an image.  Uses ``GET /images/{name}/json``."""
    _require(name, "name")
    status, body = await _request(socket_path, "GET", f"/images/{name}/json")
    _raise_for_status(status, body, image=name)
    return _json(body)  # type: ignore[no-any-return]


async def get_image_history(socket_path: str, name: str) -> list[dict[str, Any]]:
    """Return an image's layer history.  Uses ``GET /images/{name}/history``."""
    _require(name, "name")
    status, body = await _request(socket_path, "GET", f"/images/{name}/history")
    _raise_for_status(status, body, image=name)
    return _json(body) or []  # type: ignore[no-any-return]


async def tag_image(socket_path: str, name: str, params: ImageTagParameters) -> None:
    """Tag an image.  Uses ``POST /images/{name}/tag``."""
    _require(name, "name")
    _require(params, "params")
    path = _with_query(f"/images/{name}/tag", encode_query(params))
    status, body = await _request(socket_path, "POST", path)
    _raise_for_status(status, body, image=name)


async def delete_image(
    socket_path: str,
    name: str,
    params: ImageDeleteParameters,
) -> list[dict[str, str]]:
    """Remove an image.  Uses ``DELETE /images/{name}``.

    Returns:
        The engine's list of ``{"Untagged": ...}`` / ``{"Deleted": ...}`` records.

    """
    _require(name, "name")
    _require(params, "params")
    path = _with_query(f"/images/{name}", encode_query(params))
    status, body = await _request(socket_path, "DELETE", path)
    _raise_for_status(status, body, image=name)
    return _json(body) or []  # type: ignore[no-any-return]


async def search_images(
    socket_path: str,
    params: ImagesSearchParameters,
) -> list[dict[str, Any]]:
    """Search a registry.  Uses ``GET /images/search``."""
    _require(params, "params")
    path = _with_query("/images/search", encode_query(params))
    status, body = await _request(socket_path, "GET", path)
    _raise_for_status(status, body)
    return _json(body) or []  # type: ignore[no-any-return]


async def pull_image(  # noqa: PLR0913
    socket_path: str,
    params: ImagesPullParameters,
    auth: AuthConfig | None,
    sink: Sink,
    cancel: asyncio.Event | None = None,
    *,
    allow_truncated: bool = True,
    read_size: int = _DEFAULT_READ_SIZE,
) -> MonitorOutcome:
    """Pull an image, reporting progress messages to *sink*.

    Uses ``POST /images/create?fromImage=...``.  A failed pull is reported by
    the engine as a progress message carrying ``error``, not as an HTTP
    status; inspect :attr:`ProgressMessage.is_error`.
    """
    require_sink(sink)
    stream = await open_pull_stream(socket_path, params, auth)
    return await _monitor_to_end(
        stream,
        ProgressMessage,
        sink,
        cancel,
        allow_truncated=allow_truncated,
        read_size=read_size,
    )


async def open_pull_stream(
    socket_path: str,
    params: ImagesPullParameters,
    auth: AuthConfig | None,
) -> tuple[ByteReader, asyncio.StreamWriter]:
    """Open ``POST /images/create?fromImage=...`` and return (body_reader, writer)."""
    _require(params, "params")
    path = _with_query("/images/create", encode_query(params))
    return await open_stream(
        socket_path,
        "POST",
        path,
        headers=registry_auth_headers(auth),
        image=params.image,
    )


async def create_image(  # noqa: PLR0913
    socket_path: str,
    params: ImagesCreateParameters,
    auth: AuthConfig | None,
    sink: Sink,
    cancel: asyncio.Event | None = None,
    *,
    allow_truncated: bool = True,
    read_size: int = _DEFAULT_READ_SIZE,
) -> MonitorOutcome:
    """Create an image by pulling it.  See :func:`pull_image`."""
    _require(params, "params")
    return await pull_image(
        socket_path,
        params.to_pull_parameters(),
        auth,
        sink,
        cancel,
        allow_truncated=allow_truncated,
        read_size=read_size,
    )


async def push_image(  # noqa: PLR0913
    socket_path: str,
    name: str,
    params: ImagePushParameters,
    auth: AuthConfig | None,
    sink: Sink,
    cancel: asyncio.Event | None = None,
    *,
    allow_truncated: bool = True,
    read_size: int = _DEFAULT_READ_SIZE,
) -> MonitorOutcome:
    """Push an image, reporting progress messages to *sink*.

    Uses ``POST /images/{name}/push``.
    """
    _require(name, "name")
    _require(params, "params")
    require_sink(sink)
    path = _with_query(f"/images/{name}/push", encode_query(params))
    stream = await open_stream(
        socket_path,
        "POST",
        path,
        headers=registry_auth_headers(auth),
        image=name,
    )
    return await _monitor_to_end(
        stream,
        ProgressMessage,
        sink,
        cancel,
        allow_truncated=allow_truncated,
        read_size=read_size,
    )


async def import_image(  # noqa: PLR0913
    socket_path: str,
    params: ImagesImportParameters,
    sink: Sink,
    cancel: asyncio.Event | None = None,
    *,
    tarball: pathlib.Path | None = None,
    auth: AuthConfig | None = None,
    allow_truncated: bool = True,
    read_size: int = _DEFAULT_READ_SIZE,
) -> MonitorOutcome:
    """Import a root filesystem as an image.

    With *tarball*, the file is uploaded as the request body and
    ``params.source`` is forced to ``"-"``.  Without it, ``params.source``
    must be a URL the engine can fetch.

    Uses ``POST /images/create?fromSrc=...``.
    """
    _require(params, "params")
    require_sink(sink)
    body: bytes | None = None
    if tarball is not None:
        params = dataclasses.replace(params, source=_IMPORT_FROM_BODY)
        body = tarball.read_bytes()
    elif not params.source or params.source == _IMPORT_FROM_BODY:
        raise InvalidArgument("params.source", "must be a URL where the image can be retrieved")

    path = _with_query("/images/create", encode_query(params))
    stream = await open_stream(
        socket_path,
        "POST",
        path,
        body=body,
        content_type=_TAR_CONTENT_TYPE,
        headers=registry_auth_headers(auth),
    )
    return await _monitor_to_end(
        stream,
        ProgressMessage,
        sink,
        cancel,
        allow_truncated=allow_truncated,
        read_size=read_size,
    )


# ---------------------------------------------------------------------------
# Containers and services
# ---------------------------------------------------------------------------


async def list_containers(
    socket_path: str,
    params: ContainersListParameters,
) -> list[dict[str, Any]]:
    """List containers.  Uses ``GET /containers/json``."""
    _require(params, "params")
    path = _with_query("/containers/json", encode_query(params))
    status, body = await _request(socket_path, "GET", path)
    _raise_for_status(status, body)
    return _json(body) or []  # type: ignore[no-any-return]


async def stop_container(
    socket_path: str,
    container_id: str,
    params: ContainerStopParameters,
) -> None:
    """Stop a running container.  Uses ``POST /containers/{id}/stop``."""
    _require(container_id, "container_id")
    path = _with_query(f"/containers/{container_id}/stop", encode_query(params))
    status, body = await _request(socket_path, "POST", path)
    # 204 = success, 304 = already stopped
    if status not in (204, 304):
        _raise_for_status(status, body)


async def restart_container(
    socket_path: str,
    container_id: str,
    params: ContainerStopParameters,
) -> None:
    """Restart a container.  Uses ``POST /containers/{id}/restart``."""
    _require(container_id, "container_id")
    path = _with_query(f"/containers/{container_id}/restart", encode_query(params))
    status, body = await _request(socket_path, "POST", path)
    if status != 204:  # noqa: PLR2004
        _raise_for_status(status, body)


async def list_services(
    socket_path: str,
    filters: ServiceFilterParameters | None = None,
) -> list[dict[str, Any]]:
    """List swarm services.  Uses ``GET /services?filters=...``."""
    path = "/services"
    if filters is not None:
        path = _with_query(path, encode_filters(filters))
    status, body = await _request(socket_path, "GET", path)
    _raise_for_status(status, body)
    return _json(body) or []  # type: ignore[no-any-return]

