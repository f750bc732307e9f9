# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""Sync facade over :class:`AsyncEngineClient`.

Manages a background event loop thread so users never see ``async/await``
unless they want to.  Each call dispatches to the background event loop
via :func:`asyncio.run_coroutine_threadsafe`.  Sinks passed to the sync
client are invoked on the loop thread.
"""

from __future__ import annotations

import asyncio
import atexit
import threading
from typing import TYPE_CHECKING, Any

from dockline._client import AsyncEngineClient

if TYPE_CHECKING:
    import concurrent.futures
    from pathlib import Path

    from typing_extensions import Self

    from dockline._config import DocklineConfig
    from dockline._monitor import Sink, StreamMonitor
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
    from dockline.types import MonitorOutcome, StreamMessage


class _LoopThread:
    """Singleton background event loop thread shared by all sync clients."""

    _instance: _LoopThread | None = None
    _lock = threading.Lock()

    def __init__(self) -> None:
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._loop.run_forever,
            name="dockline-event-loop",
            daemon=True,
        )
        self._thread.start()
        atexit.register(self._shutdown)

    @classmethod
    def get(cls) -> _LoopThread:
        """Return the singleton, creating it lazily."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    def run(self, coro: object, *, timeout: float | None = None) -> object:
        """Submit a coroutine and block until it finishes."""
        future: concurrent.futures.Future[object] = asyncio.run_coroutine_threadsafe(
            coro,  # type: ignore[arg-type]
            self._loop,
        )
        return future.result(timeout=timeout)

    def _shutdown(self) -> None:
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5)


class SyncStreamMonitor:
    """Sync handle to a background message stream.

    Wraps :class:`StreamMonitor` for synchronous usage.  :meth:`cancel` is
    safe to call from any thread.
    """

    def __init__(self, monitor: StreamMonitor, lt: _LoopThread) -> None:
        self._monitor = monitor
        self._lt = lt

    def cancel(self) -> None:
        """Request the monitor to stop."""
        self._lt.loop.call_soon_threadsafe(self._monitor.cancel)

    def is_running(self) -> bool:
        """Return True if the background monitor has not finished."""
        return self._lt.run(self._monitor.is_running())  # type: ignore[return-value]

    def wait(self, timeout: float | None = None) -> MonitorOutcome:
        """Block until the monitor ends, then return its outcome."""
        return self._lt.run(self._monitor.wait(timeout=timeout))  # type: ignore[return-value]

    def read(self) -> list[StreamMessage]:
        """Drain and return buffered messages."""
        return self._monitor.read()

    def peek(self) -> list[StreamMessage]:
        """Return buffered messages without draining."""
        return self._monitor.peek()

    @property
    def message_count(self) -> int:
        return self._monitor.message_count

    @property
    def buffer_overflow(self) -> bool:
        """True if any buffered message was evicted due to capacity."""
        return self._monitor.buffer_overflow


class EngineClient:
    """Sync client for one container engine socket.

    See :class:`AsyncEngineClient` for the full documentation of each method.
    """

    def __init__(
        self,
        socket_path: str | None = None,
        *,
        config: DocklineConfig | None = None,
    ) -> None:
        self._ac = AsyncEngineClient(socket_path, config=config)
        self._lt = _LoopThread.get()

    @property
    def socket_path(self) -> str:
        """Path to the container engine Unix socket."""
        return self._ac.socket_path

    @property
    def config(self) -> DocklineConfig:
        return self._ac.config

    def ping(self) -> str:
        return self._lt.run(self._ac.ping())  # type: ignore[return-value]

    def version(self) -> dict[str, Any]:
        return self._lt.run(self._ac.version())  # type: ignore[return-value]

    def info(self) -> dict[str, Any]:
        return self._lt.run(self._ac.info())  # type: ignore[return-value]

    def monitor_events(
        self,
        params: ContainerEventsParameters,
        sink: Sink,
    ) -> MonitorOutcome:
        """Stream events until the engine closes the stream.

        Without an ``until`` bound this blocks indefinitely; use
        :meth:`start_events` for a cancellable monitor.
        """
        return self._lt.run(self._ac.monitor_events(params, sink))  # type: ignore[return-value]

    def start_events(
        self,
        params: ContainerEventsParameters,
        sink: Sink | None = None,
    ) -> SyncStreamMonitor:
        monitor = self._lt.run(self._ac.start_events(params, sink))
        return SyncStreamMonitor(monitor, self._lt)  # type: ignore[arg-type]

    def list_images(self, params: ImagesListParameters | None = None) -> list[dict[str, Any]]:
        return self._lt.run(self._ac.list_images(params))  # type: ignore[return-value]

    def inspect_image(self, name: str) -> dict[str, Any]:
        return self._lt.run(self._ac.inspect_image(name))  # type: ignore[return-value]

    def image_history(self, name: str) -> list[dict[str, Any]]:
        return self._lt.run(self._ac.image_history(name))  # type: ignore[return-value]

    def tag_image(self, name: str, params: ImageTagParameters) -> None:
        self._lt.run(self._ac.tag_image(name, params))

    def delete_image(
        self,
        name: str,
        params: ImageDeleteParameters | None = None,
    ) -> list[dict[str, str]]:
        return self._lt.run(self._ac.delete_image(name, params))  # type: ignore[return-value]

    def search_images(self, params: ImagesSearchParameters) -> list[dict[str, Any]]:
        return self._lt.run(self._ac.search_images(params))  # type: ignore[return-value]

    def pull_image(
        self,
        params: ImagesPullParameters,
        sink: Sink,
        *,
        auth: AuthConfig | None = None,
    ) -> MonitorOutcome:
        return self._lt.run(  # type: ignore[return-value]
            self._ac.pull_image(params, sink, auth=auth),
        )

    def create_image(
        self,
        params: ImagesCreateParameters,
        sink: Sink,
        *,
        auth: AuthConfig | None = None,
    ) -> MonitorOutcome:
        return self._lt.run(  # type: ignore[return-value]
            self._ac.create_image(params, sink, auth=auth),
        )

    def start_pull(
        self,
        params: ImagesPullParameters,
        sink: Sink | None = None,
        *,
        auth: AuthConfig | None = None,
    ) -> SyncStreamMonitor:
        monitor = self._lt.run(self._ac.start_pull(params, sink, auth=auth))
        return SyncStreamMonitor(monitor, self._lt)  # type: ignore[arg-type]

    def push_image(
        self,
        name: str,
        sink: Sink,
        params: ImagePushParameters | None = None,
        *,
        auth: AuthConfig | None = None,
    ) -> MonitorOutcome:
        return self._lt.run(  # type: ignore[return-value]
            self._ac.push_image(name, sink, params, auth=auth),
        )

    def import_image(
        self,
        params: ImagesImportParameters,
        sink: Sink,
        *,
        tarball: Path | None = None,
        auth: AuthConfig | None = None,
    ) -> MonitorOutcome:
        return self._lt.run(  # type: ignore[return-value]
            self._ac.import_image(params, sink, tarball=tarball, auth=auth),
        )

    def list_containers(
        self,
        params: ContainersListParameters | None = None,
    ) -> list[dict[str, Any]]:
        return self._lt.run(self._ac.list_containers(params))  # type: ignore[return-value]

    def stop_container(
        self,
        container_id: str,
        params: ContainerStopParameters | None = None,
    ) -> None:
        self._lt.run(self._ac.stop_container(container_id, params))

    def restart_container(
        self,
        container_id: str,
        params: ContainerStopParameters | None = None,
    ) -> None:
        self._lt.run(self._ac.restart_container(container_id, params))

    def list_services(
        self,
        filters: ServiceFilterParameters | None = None,
    ) -> list[dict[str, Any]]:
        return self._lt.run(self._ac.list_services(filters))  # type: ignore[return-value]

    def close(self) -> None:
        """Stop every background monitor started by this client."""
        self._lt.run(self._ac.close())

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.close()
