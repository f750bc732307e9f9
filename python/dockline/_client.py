# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""AsyncEngineClient: the async core implementation.

All real work happens here.  The sync ``EngineClient`` class is a thin
facade that dispatches coroutines to a background event loop.
"""

from __future__ import annotations

import asyncio
import datetime
import inspect
from pathlib import Path
from typing import TYPE_CHECKING, Any

from dockline import _socket_client as sc
from dockline._config import DocklineConfig
from dockline._logger import MessageRecorder
from dockline._monitor import StreamMonitor, require_sink
from dockline.errors import EngineNotRunning, InvalidArgument
from dockline.parameters import (
    ContainersListParameters,
    ContainerStopParameters,
    ImageDeleteParameters,
    ImagePushParameters,
    ImagesListParameters,
)
from dockline.types import EventMessage, ProgressMessage

if TYPE_CHECKING:
    from collections.abc import Awaitable

    from typing_extensions import Self

    from dockline._monitor import Sink
    from dockline.parameters import (
        AuthConfig,
        ContainerEventsParameters,
        ImagesCreateParameters,
        ImagesImportParameters,
        ImagesPullParameters,
        ImagesSearchParameters,
        ImageTagParameters,
        ServiceFilterParameters,
    )
    from dockline.types import MonitorOutcome, StreamMessage


def _require_params(params: object) -> None:
    if params is None:
        raise InvalidArgument("params", "a parameter object is required")


class AsyncEngineClient:
    """Async client for one container engine socket.

    Args:
        socket_path: Engine socket.  Falls back to ``config.socket``, then to
            :func:`detect_socket`.
        config: Resolved configuration; defaults to :class:`DocklineConfig`.

    Raises:
        EngineNotRunning: No socket was given and none could be found.

    """

    def __init__(
        self,
        socket_path: str | None = None,
        *,
        config: DocklineConfig | None = None,
    ) -> None:
        self._config = config if config is not None else DocklineConfig()
        resolved = socket_path or self._config.socket or sc.detect_socket()
        if resolved is None:
            raise EngineNotRunning
        self._socket_path = resolved
        self._recorder = (
            MessageRecorder(Path(self._config.record_messages))
            if self._config.record_messages
            else None
        )
        self._monitors: list[StreamMonitor] = []

    @property
    def socket_path(self) -> str:
        """Path to the container engine Unix socket."""
        return self._socket_path

    @property
    def config(self) -> DocklineConfig:
        return self._config

    def _stream_options(self) -> dict[str, Any]:
        return {
            "allow_truncated": self._config.allow_truncated_stream,
            "read_size": self._config.read_size,
        }

    async def _call(self, awaitable: Awaitable[Any]) -> Any:
        """Await a request-response call, bounded by ``config.timeout``."""
        return await asyncio.wait_for(awaitable, timeout=self._config.timeout)

    def _sink(self, sink: Sink | None, label: str) -> Sink | None:
        """Wrap *sink* so messages are recorded first, when recording is configured."""
        recorder = self._recorder
        if recorder is None:
            return sink
        recorder.start_session(label, datetime.datetime.now(tz=datetime.timezone.utc))

        async def recording_sink(message: StreamMessage) -> None:
            recorder.record(message)
            if sink is None:
                return
            result = sink(message)
            if inspect.isawaitable(result):
                await result

        return recording_sink

    # -- system --

    async def ping(self) -> str:
        """Ping the engine; returns ``"OK"``."""
        return await self._call(sc.ping(self._socket_path))  # type: ignore[no-any-return]

    async def version(self) -> dict[str, Any]:
        """Return the engine version document."""
        return await self._call(sc.get_version(self._socket_path))  # type: ignore[no-any-return]

    async def info(self) -> dict[str, Any]:
        """Return the engine system-info document."""
        info: dict[str, Any] = await self._call(sc.get_system_info(self._socket_path))
        return info

    async def monitor_events(
        self,
        params: ContainerEventsParameters,
        sink: Sink,
        cancel: asyncio.Event | None = None,
    ) -> MonitorOutcome:
        """Stream engine events to *sink* until the stream ends or *cancel* fires."""
        _require_params(params)
        require_sink(sink)
        return await sc.monitor_events(
            self._socket_path,
            params,
            self._sink(sink, "events"),
            cancel,
            **self._stream_options(),
        )

    async def start_events(
        self,
        params: ContainerEventsParameters,
        sink: Sink | None = None,
    ) -> StreamMonitor:
        """Start monitoring engine events in the background."""
        _require_params(params)
        reader, writer = await sc.open_events_stream(self._socket_path, params)
        return self._track(StreamMonitor(
            reader,
            writer,
            EventMessage,
            self._sink(sink, "events"),
            buffer_capacity=self._config.buffer_capacity,
            **self._stream_options(),
        ))

    # -- images --

    async def list_images(self, params: ImagesListParameters | None = None) -> list[dict[str, Any]]:
        return await self._call(  # type: ignore[no-any-return]
            sc.list_images(self._socket_path, params or ImagesListParameters()),
        )

    async def inspect_image(self, name: str) -> dict[str, Any]:
        return await self._call(  # type: ignore[no-any-return]
            sc.inspect_image(self._socket_path, name),
        )

    async def image_history(self, name: str) -> list[dict[str, Any]]:
        return await self._call(  # type: ignore[no-any-return]
            sc.get_image_history(self._socket_path, name),
        )

    async def tag_image(self, name: str, params: ImageTagParameters) -> None:
        await self._call(sc.tag_image(self._socket_path, name, params))

    async def delete_image(
        self,
        name: str,
        params: ImageDeleteParameters | None = None,
    ) -> list[dict[str, str]]:
        return await self._call(  # type: ignore[no-any-return]
            sc.delete_image(self._socket_path, name, params or ImageDeleteParameters()),
        )

    async def search_images(self, params: ImagesSearchParameters) -> list[dict[str, Any]]:
        return await self._call(  # type: ignore[no-any-return]
            sc.search_images(self._socket_path, params),
        )

    async def pull_image(
        self,
        params: ImagesPullParameters,
        sink: Sink,
        *,
        auth: AuthConfig | None = None,
        cancel: asyncio.Event | None = None,
    ) -> MonitorOutcome:
        """Pull an image, reporting progress to *sink*."""
        require_sink(sink)
        return await sc.pull_image(
            self._socket_path,
            params,
            auth,
            self._sink(sink, "pull"),
            cancel,
            **self._stream_options(),
        )

    async def create_image(
        self,
        params: ImagesCreateParameters,
        sink: Sink,
        *,
        auth: AuthConfig | None = None,
        cancel: asyncio.Event | None = None,
    ) -> MonitorOutcome:
        """Create an image by pulling it.  See :meth:`pull_image`."""
        require_sink(sink)
        return await sc.create_image(
            self._socket_path,
            params,
            auth,
            self._sink(sink, "create"),
            cancel,
            **self._stream_options(),
        )

    async def start_pull(
        self,
        params: ImagesPullParameters,
        sink: Sink | None = None,
        *,
        auth: AuthConfig | None = None,
    ) -> StreamMonitor:
        """Start pulling an image in the background."""
        reader, writer = await sc.open_pull_stream(self._socket_path, params, auth)
        return self._track(StreamMonitor(
            reader,
            writer,
            ProgressMessage,
            self._sink(sink, "pull"),
            buffer_capacity=self._config.buffer_capacity,
            **self._stream_options(),
        ))

    async def push_image(
        self,
        name: str,
        sink: Sink,
        params: ImagePushParameters | None = None,
        *,
        auth: AuthConfig | None = None,
        cancel: asyncio.Event | None = None,
    ) -> MonitorOutcome:
        """Push an image, reporting progress to *sink*."""
        require_sink(sink)
        return await sc.push_image(
            self._socket_path,
            name,
            params or ImagePushParameters(),
            auth,
            self._sink(sink, "push"),
            cancel,
            **self._stream_options(),
        )

    async def import_image(
        self,
        params: ImagesImportParameters,
        sink: Sink,
        *,
        tarball: Path | None = None,
        auth: AuthConfig | None = None,
        cancel: asyncio.Event | None = None,
    ) -> MonitorOutcome:
        """Import a root filesystem from a URL or a local tarball."""
        require_sink(sink)
        return await sc.import_image(
            self._socket_path,
            params,
            self._sink(sink, "import"),
            cancel,
            tarball=tarball,
            auth=auth,
            **self._stream_options(),
        )

    # -- containers and services --

    async def list_containers(
        self,
        params: ContainersListParameters | None = None,
    ) -> list[dict[str, Any]]:
        return await self._call(  # type: ignore[no-any-return]
            sc.list_containers(self._socket_path, params or ContainersListParameters()),
        )

    async def stop_container(
        self,
        container_id: str,
        params: ContainerStopParameters | None = None,
    ) -> None:
        await self._call(
            sc.stop_container(self._socket_path, container_id, params or ContainerStopParameters()),
        )

    async def restart_container(
        self,
        container_id: str,
        params: ContainerStopParameters | None = None,
    ) -> None:
        await self._call(
            sc.restart_container(self._socket_path, container_id, params or ContainerStopParameters()),
        )

    async def list_services(
        self,
        filters: ServiceFilterParameters | None = None,
    ) -> list[dict[str, Any]]:
        return await self._call(  # type: ignore[no-any-return]
            sc.list_services(self._socket_path, filters),
        )

    # -- lifecycle --

    def _track(self, monitor: StreamMonitor) -> StreamMonitor:
        self._monitors.append(monitor)
        return monitor

    async def close(self) -> None:
        """Stop every background monitor started by this client."""
        monitors, self._monitors = self._monitors, []
        for monitor in monitors:
            await monitor._close()  # noqa: SLF001

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
