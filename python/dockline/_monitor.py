# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""Streaming message monitor.

:func:`monitor_stream` reads an unbounded response body, splits it into
JSON frames, decodes each frame into a message record and hands it to a
sink before reading again.  Dispatch order is frame order.

Cancellation is cooperative.  The ``cancel`` event is checked before every
read and after every dispatch, and a read that is blocked waiting for the
engine is raced against it.  A read can still complete in the same loop
iteration the event is set, so a cancelled monitor may report
``COMPLETED`` if the stream ended at that moment; callers must accept
either outcome.  To stop a monitor unconditionally, cancel its task or
close the underlying connection.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import json
import logging
from typing import TYPE_CHECKING, Any, Callable

from dockline._buffer import MessageBuffer
from dockline._stream import JsonFrameBuffer
from dockline.errors import InvalidArgument, MalformedMessage, SocketError, StreamFailure
from dockline.types import MonitorOutcome, ProgressMessage

if TYPE_CHECKING:
    from dockline._stream import ByteReader
    from dockline.types import StreamMessage

_log = logging.getLogger(__name__)

_DEFAULT_READ_SIZE = 65536

Sink = Callable[[Any], Any]


def require_sink(sink: object) -> None:
    """Raise :class:`InvalidArgument` unless *sink* is callable."""
    if sink is None or not callable(sink):
        raise InvalidArgument("sink", "a callable is required")


def _is_set(cancel: asyncio.Event | None) -> bool:
    return cancel is not None and cancel.is_set()


async def _read(reader: ByteReader, n: int, cancel: asyncio.Event | None) -> bytes | None:
    """Read up to *n* bytes, or return ``None`` if *cancel* fires first."""
    if cancel is None:
        return await reader.read(n)

    read_task = asyncio.ensure_future(reader.read(n))
    cancel_task = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait(
            {read_task, cancel_task},
            return_when=asyncio.FIRST_COMPLETED,
        )
    finally:
        cancel_task.cancel()
        if not read_task.done():
            read_task.cancel()
            # Collect the abandoned read so its outcome is not reported as unretrieved
            await asyncio.gather(read_task, return_exceptions=True)

    if read_task in done:
        return read_task.result()
    return None


def _reject_constant(name: str) -> Any:
    msg = f"non-standard JSON constant {name}"
    raise ValueError(msg)


def _decode(frame: bytes, message_type: type) -> StreamMessage:
    try:
        data = json.loads(frame, parse_constant=_reject_constant)
    except (ValueError, RecursionError) as exc:
        msg = f"invalid JSON frame: {exc}"
        raise MalformedMessage(msg, frame) from exc
    try:
        return message_type.from_dict(data)  # type: ignore[no-any-return]
    except (TypeError, ValueError, OverflowError, RecursionError) as exc:
        msg = f"frame is not a valid {message_type.__name__}: {exc}"
        raise MalformedMessage(msg, frame) from exc


async def monitor_stream(  # noqa: C901, PLR0913
    reader: ByteReader,
    sink: Sink,
    message_type: type = ProgressMessage,
    cancel: asyncio.Event | None = None,
    *,
    allow_truncated: bool = True,
    read_size: int = _DEFAULT_READ_SIZE,
) -> MonitorOutcome:
    """Read *reader* to the end, dispatching each decoded message to *sink*.

    Args:
        reader: Object with ``async read(n) -> bytes``; ``b""`` means EOF.
        sink: Called once per message.  If it returns an awaitable, the
            awaitable is awaited before the next read.
        message_type: Record type with a ``from_dict`` constructor,
            normally :class:`ProgressMessage` or :class:`EventMessage`.
        cancel: Event requesting the monitor to stop.
        allow_truncated: If False, an unfinished frame at EOF is an error.
        read_size: Maximum bytes per read.

    Returns:
        ``COMPLETED`` when the stream ended, ``CANCELLED`` when *cancel* was
        observed first.

    Raises:
        InvalidArgument: *reader* or *sink* is missing.
        MalformedMessage: A frame could not be decoded.  Messages before it
            have been dispatched; nothing after it is read.
        StreamFailure: The stream failed for a reason other than cancellation.

    """
    if reader is None:
        raise InvalidArgument("reader", "byte stream is None")
    require_sink(sink)

    frames = JsonFrameBuffer()
    dispatched = 0

    while True:
        if _is_set(cancel):
            _log.debug("monitor cancelled after %d message(s)", dispatched)
            return MonitorOutcome.CANCELLED

        try:
            data = await _read(reader, read_size, cancel)
        except (OSError, asyncio.IncompleteReadError, SocketError) as exc:
            if _is_set(cancel):
                _log.debug("read failed after cancellation: %s", exc)
                return MonitorOutcome.CANCELLED
            raise StreamFailure(exc) from exc

        if data is None or _is_set(cancel):
            _log.debug("monitor cancelled after %d message(s)", dispatched)
            return MonitorOutcome.CANCELLED

        if not data:
            if frames.pending:
                if not allow_truncated:
                    msg = "stream ended in the middle of a frame"
                    raise MalformedMessage(msg)
                _log.debug("discarding unfinished frame at end of stream")
            _log.debug("stream completed after %d message(s)", dispatched)
            return MonitorOutcome.COMPLETED

        frames.feed(data)
        while (frame := frames.next_frame()) is not None:
            message = _decode(frame, message_type)
            result = sink(message)
            if inspect.isawaitable(result):
                await result
            dispatched += 1
            if _is_set(cancel):
                _log.debug("monitor cancelled after %d message(s)", dispatched)
                return MonitorOutcome.CANCELLED


class StreamMonitor:
    """Handle to a message stream monitored by a background task.

    Returned by ``AsyncEngineClient.start_pull()`` / ``start_events()``.
    Every message goes to the bounded buffer and then to the optional sink.
    The connection is closed when the task ends, however it ends.
    """

    def __init__(  # noqa: PLR0913
        self,
        reader: ByteReader,
        writer: asyncio.StreamWriter | None,
        message_type: type,
        sink: Sink | None = None,
        *,
        buffer_capacity: int = 1000,
        allow_truncated: bool = True,
        read_size: int = _DEFAULT_READ_SIZE,
    ) -> None:
        self._writer = writer
        self._sink = sink
        self._buffer = MessageBuffer(buffer_capacity)
        self._cancel = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(
            self._run(reader, message_type, allow_truncated, read_size)
        )

    async def _dispatch(self, message: StreamMessage) -> None:
        self._buffer.write(message)
        if self._sink is not None:
            result = self._sink(message)
            if inspect.isawaitable(result):
                await result

    async def _run(
        self,
        reader: ByteReader,
        message_type: type,
        allow_truncated: bool,  # noqa: FBT001
        read_size: int,
    ) -> MonitorOutcome:
        try:
            return await monitor_stream(
                reader,
                self._dispatch,
                message_type,
                self._cancel,
                allow_truncated=allow_truncated,
                read_size=read_size,
            )
        finally:
            if self._writer is not None:
                self._writer.close()
                await self._writer.wait_closed()

    def cancel(self) -> None:
        """Request the monitor to stop.  Must be called on the loop's thread."""
        self._cancel.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    async def is_running(self) -> bool:
        """Return True if the background task has not finished."""
        return not self._task.done()

    async def wait(self, timeout: float | None = None) -> MonitorOutcome:
        """Block until the monitor ends and return its outcome.

        Raises whatever ended the monitor (``MalformedMessage``,
        ``StreamFailure``, a sink exception).  A timeout leaves the
        monitor running.
        """
        if timeout is not None:
            return await asyncio.wait_for(asyncio.shield(self._task), timeout=timeout)
        return await self._task

    def read(self) -> list[StreamMessage]:
        """Drain and return buffered messages."""
        return self._buffer.read()

    def peek(self) -> list[StreamMessage]:
        """Return buffered messages without draining."""
        return self._buffer.peek()

    @property
    def message_count(self) -> int:
        """Messages received so far."""
        return self._buffer.total

    @property
    def buffer_overflow(self) -> bool:
        """True if any buffered message was evicted due to capacity."""
        return self._buffer.overflow

    async def _close(self) -> None:
        """Cancel the background task.  Used by client shutdown."""
        if self._task.done():
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
