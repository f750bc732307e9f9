"""Unit tests for socket client pure functions, HTTP parsing and endpoints.

These tests don't require a running container engine. They test the parsing
logic directly using in-memory asyncio.StreamReader instances, and patch the
request helpers to exercise each endpoint.
"""

from __future__ import annotations

import asyncio
import base64
import datetime
import json
import os
import urllib.parse
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock, MagicMock, patch

if TYPE_CHECKING:
    import pathlib

import pytest
from dockline._socket_client import (
    _body_reader,
    _error_message,
    _raise_for_status,
    _read_body,
    _read_chunked,
    _read_exact_body,
    _read_headers,
    _read_status_line,
    _request,
    _request_stream,
    _send_request,
    create_image,
    delete_image,
    detect_socket,
    get_version,
    import_image,
    inspect_image,
    list_containers,
    list_images,
    list_services,
    monitor_events,
    open_stream,
    ping,
    pull_image,
    push_image,
    registry_auth_headers,
    restart_container,
    stop_container,
    tag_image,
)
from dockline._stream import ChunkedBodyReader
from dockline.errors import (
    APIError,
    ImageNotFound,
    InvalidArgument,
    MissingRequiredParameter,
    SocketCommunicationError,
    SocketConnectionError,
)
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
    ImageTagParameters,
    ServiceFilterParameters,
)
from dockline.types import EventMessage, MonitorOutcome, ProgressMessage

_SOCK = "/tmp/s.sock"

# -- Helpers --


class _MockTransport(asyncio.Transport):
    """Minimal transport that captures written bytes."""

    def __init__(self) -> None:
        super().__init__()
        self.data = b""
        self._closing = False

    def write(self, data: bytes) -> None:  # type: ignore[override]
        self.data += data

    def close(self) -> None:
        self._closing = True

    def is_closing(self) -> bool:
        return self._closing

    def get_extra_info(  # type: ignore[override]
        self, _name: str, default: object = None
    ) -> object:
        return default


def _make_mock_writer() -> MagicMock:
    """Create a mock writer with close() and wait_closed()."""
    writer = MagicMock()
    writer.wait_closed = AsyncMock()
    return writer


def _reader(data: bytes) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    reader.feed_eof()
    return reader


def _patch_request(status: int, body: Any = b"") -> Any:
    if not isinstance(body, bytes):
        body = json.dumps(body).encode()
    return patch(
        "dockline._socket_client._request",
        new_callable=AsyncMock,
        return_value=(status, body),
    )


def _patch_open_stream(data: bytes) -> tuple[Any, MagicMock]:
    writer = _make_mock_writer()
    mock = patch(
        "dockline._socket_client.open_stream",
        new_callable=AsyncMock,
        return_value=(_reader(data), writer),
    )
    return mock, writer


# -- detect_socket --


def test_detect_socket_with_env_var(tmp_path: pathlib.Path) -> None:
    sock = tmp_path / "test.sock"
    sock.touch()
    with patch.dict(os.environ, {"DOCKLINE_SOCKET": str(sock)}):
        assert detect_socket() == str(sock)


def test_detect_socket_env_var_nonexistent() -> None:
    with patch.dict(os.environ, {"DOCKLINE_SOCKET": "/tmp/nonexistent.sock"}):
        # Falls through to candidate list; may or may not find Docker
        assert detect_socket() != "/tmp/nonexistent.sock"


def test_detect_socket_no_env_no_candidates() -> None:
    with (
        patch.dict(os.environ, {"DOCKLINE_SOCKET": "", "XDG_RUNTIME_DIR": "/tmp/fake_xdg"}),
        patch("dockline._socket_client.pathlib.Path.exists", return_value=False),
    ):
        assert detect_socket() is None


def test_detect_socket_finds_candidate(tmp_path: pathlib.Path) -> None:
    sock = tmp_path / "podman" / "podman.sock"
    sock.parent.mkdir()
    sock.touch()
    with patch.dict(os.environ, {"DOCKLINE_SOCKET": "", "XDG_RUNTIME_DIR": str(tmp_path)}):
        assert detect_socket() == str(sock)


# -- _read_status_line --


async def test_read_status_line_200() -> None:
    assert await _read_status_line(_reader(b"HTTP/1.1 200 OK\r\n")) == 200


async def test_read_status_line_404() -> None:
    assert await _read_status_line(_reader(b"HTTP/1.1 404 Not Found\r\n")) == 404


async def test_read_status_line_empty() -> None:
    with pytest.raises(SocketCommunicationError, match="empty response"):
        await _read_status_line(_reader(b""))


async def test_read_status_line_malformed() -> None:
    with pytest.raises(SocketCommunicationError, match="malformed"):
        await _read_status_line(_reader(b"GARBAGE\r\n"))


# -- _read_headers --


async def test_read_headers_simple() -> None:
    headers = await _read_headers(
        _reader(b"Content-Type: application/json\r\nContent-Length: 42\r\n\r\n")
    )
    assert headers["content-type"] == "application/json"
    assert headers["content-length"] == "42"


async def test_read_headers_empty() -> None:
    assert await _read_headers(_reader(b"\r\n")) == {}


async def test_read_headers_line_without_colon() -> None:
    headers = await _read_headers(_reader(b"MalformedHeader\r\nContent-Type: text/plain\r\n\r\n"))
    assert headers == {"content-type": "text/plain"}


# -- _read_body --


async def test_read_body_content_length() -> None:
    body = await _read_body(_reader(b"hello world"), {"content-length": "5"})
    assert body == b"hello"


async def test_read_body_chunked() -> None:
    body = await _read_body(
        _reader(b"5\r\nhello\r\n0\r\n\r\n"), {"transfer-encoding": "chunked"}
    )
    assert body == b"hello"


async def test_read_body_until_eof() -> None:
    assert await _read_body(_reader(b"all of it"), {}) == b"all of it"


async def test_read_exact_body_short() -> None:
    assert await _read_exact_body(_reader(b"abc"), 10) == b"abc"


async def test_read_chunked_multiple_chunks() -> None:
    body = await _read_chunked(_reader(b"3\r\nabc\r\n4\r\ndefg\r\n0\r\n\r\n"))
    assert body == b"abcdefg"


async def test_body_reader_chunked() -> None:
    reader = _reader(b"")
    assert isinstance(_body_reader(reader, {"transfer-encoding": "chunked"}), ChunkedBodyReader)
    assert _body_reader(reader, {}) is reader


# -- _send_request --


async def test_send_request_with_body_and_headers() -> None:
    transport = _MockTransport()
    loop = asyncio.get_running_loop()
    protocol = asyncio.StreamReaderProtocol(asyncio.StreamReader())
    writer = asyncio.StreamWriter(transport, protocol, reader=asyncio.StreamReader(), loop=loop)

    await _send_request(
        writer,
        "POST",
        "/images/create?fromSrc=-",
        b"tardata",
        content_type="application/x-tar",
        headers={"X-Registry-Auth": "e30="},
    )

    written = transport.data
    assert b"POST /images/create?fromSrc=- HTTP/1.1\r\n" in written
    assert b"Host: localhost\r\n" in written
    assert b"X-Registry-Auth: e30=\r\n" in written
    assert b"Content-Type: application/x-tar\r\n" in written
    assert b"Content-Length: 7\r\n" in written
    assert written.endswith(b"\r\n\r\ntardata")


async def test_send_request_without_body() -> None:
    transport = _MockTransport()
    loop = asyncio.get_running_loop()
    protocol = asyncio.StreamReaderProtocol(asyncio.StreamReader())
    writer = asyncio.StreamWriter(transport, protocol, reader=asyncio.StreamReader(), loop=loop)

    await _send_request(writer, "GET", "/_ping")

    written = transport.data
    assert b"GET /_ping HTTP/1.1\r\n" in written
    assert b"Content-Type" not in written
    assert b"Content-Length" not in written


# -- _request / _request_stream error handling --


async def test_request_reraises_socket_connection_error() -> None:
    with (
        patch(
            "dockline._socket_client._open_connection",
            new_callable=AsyncMock,
            return_value=(asyncio.StreamReader(), _make_mock_writer()),
        ),
        patch(
            "dockline._socket_client._send_request",
            new_callable=AsyncMock,
            side_effect=SocketConnectionError(_SOCK, "test"),
        ),
        pytest.raises(SocketConnectionError),
    ):
        await _request(_SOCK, "GET", "/test")


async def test_request_wraps_oserror() -> None:
    writer = _make_mock_writer()
    with (
        patch(
            "dockline._socket_client._open_connection",
            new_callable=AsyncMock,
            return_value=(asyncio.StreamReader(), writer),
        ),
        patch(
            "dockline._socket_client._send_request",
            new_callable=AsyncMock,
            side_effect=OSError("broken pipe"),
        ),
        pytest.raises(SocketCommunicationError, match="broken pipe"),
    ):
        await _request(_SOCK, "GET", "/test")
    writer.close.assert_called_once()


async def test_request_reads_response() -> None:
    reader = _reader(b'HTTP/1.1 200 OK\r\nContent-Length: 2\r\n\r\n{}')
    with (
        patch(
            "dockline._socket_client._open_connection",
            new_callable=AsyncMock,
            return_value=(reader, _make_mock_writer()),
        ),
        patch("dockline._socket_client._send_request", new_callable=AsyncMock),
    ):
        assert await _request(_SOCK, "GET", "/version") == (200, b"{}")


async def test_request_stream_cleans_up_on_exception() -> None:
    writer = _make_mock_writer()
    with (
        patch(
            "dockline._socket_client._open_connection",
            new_callable=AsyncMock,
            return_value=(asyncio.StreamReader(), writer),
        ),
        patch(
            "dockline._socket_client._send_request",
            new_callable=AsyncMock,
            side_effect=OSError("connection reset"),
        ),
        pytest.raises(OSError, match="connection reset"),
    ):
        await _request_stream(_SOCK, "GET", "/test")

    writer.close.assert_called_once()
    writer.wait_closed.assert_awaited_once()


# -- open_stream --


async def test_open_stream_success_chunked() -> None:
    writer = _make_mock_writer()
    reader = _reader(b"")
    with patch(
        "dockline._socket_client._request_stream",
        new_callable=AsyncMock,
        return_value=(200, {"transfer-encoding": "chunked"}, reader, writer),
    ):
        body, returned_writer = await open_stream(_SOCK, "GET", "/events")
    assert isinstance(body, ChunkedBodyReader)
    assert returned_writer is writer
    writer.close.assert_not_called()


async def test_open_stream_error_closes_and_raises() -> None:
    writer = _make_mock_writer()
    reader = _reader(b'{"message":"no such image"}')
    with (
        patch(
            "dockline._socket_client._request_stream",
            new_callable=AsyncMock,
            return_value=(404, {}, reader, writer),
        ),
        pytest.raises(ImageNotFound, match="alpine:nope"),
    ):
        await open_stream(_SOCK, "POST", "/images/create", image="alpine:nope")
    writer.close.assert_called_once()
    writer.wait_closed.assert_awaited_once()


# -- error mapping --


def test_raise_for_status_success() -> None:
    _raise_for_status(200, b"")
    _raise_for_status(204, b"")
    _raise_for_status(304, b"")


def test_raise_for_status_404_image() -> None:
    with pytest.raises(ImageNotFound) as exc_info:
        _raise_for_status(404, b"", image="alpine")
    assert exc_info.value.image == "alpine"


def test_raise_for_status_404_without_image() -> None:
    with pytest.raises(APIError) as exc_info:
        _raise_for_status(404, b"not here")
    assert not isinstance(exc_info.value, ImageNotFound)
    assert exc_info.value.status == 404


def test_raise_for_status_500_json_message() -> None:
    with pytest.raises(APIError, match="HTTP 500: engine exploded"):
        _raise_for_status(500, b'{"message":"engine exploded"}')


def test_error_message_plain_text() -> None:
    assert _error_message(b"  oops \n") == "oops"
    assert _error_message(b"[1,2]") == "[1,2]"


def test_registry_auth_headers_encodes_json() -> None:
    headers = registry_auth_headers(AuthConfig(username="u", password="p"))
    decoded = json.loads(base64.urlsafe_b64decode(headers["X-Registry-Auth"]))
    assert decoded == {"username": "u", "password": "p"}


def test_registry_auth_headers_anonymous() -> None:
    headers = registry_auth_headers(None)
    assert base64.urlsafe_b64decode(headers["X-Registry-Auth"]) == b"{}"


# --- system ---


async def test_ping_success() -> None:
    with _patch_request(200, b"OK\n"):
        assert await ping(_SOCK) == "OK"


async def test_ping_failure() -> None:
    with _patch_request(500, b"error"), pytest.raises(SocketCommunicationError, match="ping failed"):
        await ping(_SOCK)


async def test_get_version() -> None:
    with _patch_request(200, {"Version": "5.0.0"}) as mock:
        assert await get_version(_SOCK) == {"Version": "5.0.0"}
    assert mock.call_args[0][1:3] == ("GET", "/version")


async def test_get_version_invalid_json() -> None:
    with (
        _patch_request(200, b"not json"),
        pytest.raises(SocketCommunicationError, match="invalid JSON"),
    ):
        await get_version(_SOCK)


# --- images ---


async def test_list_images_query() -> None:
    with _patch_request(200, [{"Id": "sha256:1"}]) as mock:
        result = await list_images(_SOCK, ImagesListParameters(all=True))
    assert result == [{"Id": "sha256:1"}]
    assert mock.call_args[0][2] == "/images/json?all=true"


async def test_list_images_no_query() -> None:
    with _patch_request(200, b"") as mock:
        assert await list_images(_SOCK, ImagesListParameters()) == []
    assert mock.call_args[0][2] == "/images/json"


async def test_list_images_none_params() -> None:
    with pytest.raises(InvalidArgument, match="params"):
        await list_images(_SOCK, None)  # type: ignore[arg-type]


async def test_inspect_image_not_found() -> None:
    with _patch_request(404, b"{}"), pytest.raises(ImageNotFound):
        await inspect_image(_SOCK, "ghost")


async def test_inspect_image_empty_name() -> None:
    with pytest.raises(InvalidArgument, match="name"):
        await inspect_image(_SOCK, "")


async def test_tag_image_path() -> None:
    with _patch_request(201) as mock:
        await tag_image(_SOCK, "alpine", ImageTagParameters(repo="mine/alpine", tag="v1"))
    assert mock.call_args[0][1:3] == ("POST", "/images/alpine/tag?repo=mine%2Falpine&tag=v1")


async def test_tag_image_missing_repo() -> None:
    with pytest.raises(MissingRequiredParameter):
        await tag_image(_SOCK, "alpine", ImageTagParameters())


async def test_delete_image_records() -> None:
    records = [{"Untagged": "alpine:latest"}, {"Deleted": "sha256:1"}]
    with _patch_request(200, records) as mock:
        result = await delete_image(_SOCK, "alpine", ImageDeleteParameters(force=True))
    assert result == records
    assert mock.call_args[0][1:3] == ("DELETE", "/images/alpine?force=true")


async def test_delete_image_conflict() -> None:
    with (
        _patch_request(409, b'{"message":"image is in use"}'),
        pytest.raises(APIError, match="image is in use"),
    ):
        await delete_image(_SOCK, "alpine", ImageDeleteParameters())


# --- streaming endpoints ---


async def test_pull_image_dispatches_progress() -> None:
    data = b'{"status":"Pulling from library/alpine","id":"latest"}\r\n{"status":"Done"}\r\n'
    opener, writer = _patch_open_stream(data)
    received: list[ProgressMessage] = []
    with opener as mock:
        outcome = await pull_image(
            _SOCK, ImagesPullParameters(image="alpine", tag="3.20"), None, received.append
        )

    assert outcome is MonitorOutcome.COMPLETED
    assert [m.status for m in received] == ["Pulling from library/alpine", "Done"]
    args, kwargs = mock.call_args
    assert args[1:3] == ("POST", "/images/create?fromImage=alpine&tag=3.20")
    assert kwargs["image"] == "alpine"
    assert "X-Registry-Auth" in kwargs["headers"]
    writer.close.assert_called_once()
    writer.wait_closed.assert_awaited_once()


async def test_pull_image_requires_image() -> None:
    with pytest.raises(MissingRequiredParameter, match="image"):
        await pull_image(_SOCK, ImagesPullParameters(), None, lambda _m: None)


async def test_pull_image_requires_sink() -> None:
    with pytest.raises(InvalidArgument, match="sink"):
        await pull_image(_SOCK, ImagesPullParameters(image="alpine"), None, None)  # type: ignore[arg-type]


async def test_pull_image_closes_on_sink_error() -> None:
    opener, writer = _patch_open_stream(b'{"status":"x"}')

    def _boom(_msg: object) -> None:
        raise RuntimeError("sink failed")

    with opener, pytest.raises(RuntimeError, match="sink failed"):
        await pull_image(_SOCK, ImagesPullParameters(image="alpine"), None, _boom)
    writer.close.assert_called_once()


async def test_create_image_maps_to_pull() -> None:
    opener, _writer = _patch_open_stream(b'{"status":"Done"}')
    with opener as mock:
        outcome = await create_image(
            _SOCK, ImagesCreateParameters(from_image="busybox"), None, lambda _m: None
        )
    assert outcome is MonitorOutcome.COMPLETED
    assert mock.call_args[0][2] == "/images/create?fromImage=busybox"


async def test_push_image_path() -> None:
    opener, _writer = _patch_open_stream(b'{"status":"Pushed"}{"aux":{"Tag":"v1"}}')
    received: list[ProgressMessage] = []
    with opener as mock:
        await push_image(
            _SOCK,
            "registry.local/app",
            ImagePushParameters(tag="v1"),
            AuthConfig(identity_token="t"),
            received.append,
        )
    assert mock.call_args[0][2] == "/images/registry.local/app/push?tag=v1"
    assert received[1].aux == {"Tag": "v1"}


async def test_import_image_from_url() -> None:
    opener, _writer = _patch_open_stream(b'{"status":"sha256:abc"}')
    with opener as mock:
        await import_image(
            _SOCK, ImagesImportParameters(source="http://host/rootfs.tar"), lambda _m: None
        )
    args, kwargs = mock.call_args
    assert args[2] == "/images/create?fromSrc=http%3A%2F%2Fhost%2Frootfs.tar"
    assert kwargs["body"] is None


async def test_import_image_tarball_forces_body_source(tmp_path: pathlib.Path) -> None:
    tarball = tmp_path / "rootfs.tar"
    tarball.write_bytes(b"tarbytes")
    opener, _writer = _patch_open_stream(b'{"status":"sha256:abc"}')
    with opener as mock:
        await import_image(
            _SOCK,
            ImagesImportParameters(source="http://ignored", repo="mine"),
            lambda _m: None,
            tarball=tarball,
        )
    args, kwargs = mock.call_args
    assert args[2] == "/images/create?fromSrc=-&repo=mine"
    assert kwargs["body"] == b"tarbytes"
    assert kwargs["content_type"] == "application/x-tar"


@pytest.mark.parametrize("source", ["", "-", None])
async def test_import_image_requires_url(source: str | None) -> None:
    with pytest.raises(InvalidArgument, match=r"params\.source"):
        await import_image(_SOCK, ImagesImportParameters(source=source), lambda _m: None)


async def test_monitor_events_decodes_events() -> None:
    data = b'{"Type":"container","Action":"start","Actor":{"ID":"c1"}}\n'
    opener, _writer = _patch_open_stream(data)
    received: list[EventMessage] = []
    utc = datetime.timezone.utc
    params = ContainerEventsParameters(until=datetime.datetime(2024, 1, 1, tzinfo=utc))
    with opener as mock:
        outcome = await monitor_events(_SOCK, params, received.append)
    assert outcome is MonitorOutcome.COMPLETED
    assert received[0].action == "start"
    assert received[0].actor is not None
    assert received[0].actor.id == "c1"
    assert mock.call_args[0][1:3] == ("GET", "/events?until=1704067200")


async def test_monitor_events_cancelled_before_read() -> None:
    opener, writer = _patch_open_stream(b'{"Action":"start"}')
    cancel = asyncio.Event()
    cancel.set()
    received: list[EventMessage] = []
    with opener:
        outcome = await monitor_events(_SOCK, ContainerEventsParameters(), received.append, cancel)
    assert outcome is MonitorOutcome.CANCELLED
    assert received == []
    writer.close.assert_called_once()


# --- containers and services ---


async def test_list_containers_query() -> None:
    with _patch_request(200, [{"Id": "abc"}]) as mock:
        result = await list_containers(
            _SOCK, ContainersListParameters(all=True, filters={"label": {"app=web": True}})
        )
    assert result == [{"Id": "abc"}]
    path = mock.call_args[0][2]
    assert path.startswith("/containers/json?all=true&filters=")
    assert json.loads(urllib.parse.unquote(path.split("filters=", 1)[1])) == {
        "label": {"app=web": True}
    }


async def test_stop_container_already_stopped() -> None:
    with _patch_request(304) as mock:
        await stop_container(
            _SOCK, "abc", ContainerStopParameters(wait_before_kill=datetime.timedelta(seconds=5))
        )
    assert mock.call_args[0][2] == "/containers/abc/stop?t=5"


async def test_stop_container_error() -> None:
    with _patch_request(500, b"boom"), pytest.raises(APIError, match="boom"):
        await stop_container(_SOCK, "abc", ContainerStopParameters())


async def test_restart_container_success() -> None:
    with _patch_request(204) as mock:
        await restart_container(_SOCK, "abc", ContainerStopParameters())
    assert mock.call_args[0][1:3] == ("POST", "/containers/abc/restart")


async def test_list_services_filters() -> None:
    with _patch_request(200, []) as mock:
        await list_services(_SOCK, ServiceFilterParameters(id="x", mode="global"))
    assert mock.call_args[0][2] == (
        "/services?filters=%7B%22id%22%3A%7B%22x%22%3Atrue%7D%2C%22mode%22%3A%7B%22global%22%3Atrue%7D%7D"
    )


async def test_list_services_without_filters() -> None:
    with _patch_request(200, [{"ID": "s1"}]) as mock:
        assert await list_services(_SOCK) == [{"ID": "s1"}]
    assert mock.call_args[0][2] == "/services"
