# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""Byte-stream framing for engine message streams.

Pull, push, import and ``/events`` responses are a sequence of JSON objects
written back to back, with no length prefix and no separator beyond
optional whitespace.  :class:`JsonFrameBuffer` finds frame boundaries by
tracking bracket depth and string state over the raw bytes; UTF-8
continuation bytes never collide with the ASCII structural characters, so
no decoding happens until a frame is complete.

Docker wraps these bodies in chunked transfer encoding; Podman may not.
:class:`ChunkedBodyReader` strips the chunk framing so the monitor can read
either kind of body the same way.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from dockline.errors import MalformedMessage, SocketCommunicationError

if TYPE_CHECKING:
    from typing import Protocol

    class ByteReader(Protocol):
        async def read(self, n: int = -1) -> bytes: ...


_WHITESPACE = frozenset(b" \t\r\n")
_OPEN = frozenset(b"{[")
_CLOSE = frozenset(b"}]")
_QUOTE = ord('"')
_BACKSLASH = ord("\\")
_SNIPPET = 64


class JsonFrameBuffer:
    """Accumulates bytes and yields complete top-level JSON frames.

    Scan state survives between :meth:`feed` calls, so each byte is
    examined once no matter how the stream is split into reads.
    """

    def __init__(self) -> None:
        self._buf = bytearray()
        self._pos = 0
        self._depth = 0
        self._in_string = False
        self._escape = False

    def feed(self, data: bytes) -> None:
        """Append raw bytes read from the stream."""
        self._buf.extend(data)

    @property
    def pending(self) -> bool:
        """True if non-whitespace bytes of an unfinished frame are buffered."""
        return bool(bytes(self._buf).strip())

    def next_frame(self) -> bytes | None:
        """Return the next complete frame, or ``None`` if more bytes are needed.

        Raises:
            MalformedMessage: Data between frames is not the start of a JSON
                object or array.

        """
        buf = self._buf
        if self._depth == 0:
            i = 0
            while i < len(buf) and buf[i] in _WHITESPACE:
                i += 1
            del buf[:i]
            if not buf:
                return None
            if buf[0] not in _OPEN:
                snippet = bytes(buf[:_SNIPPET])
                msg = f"unexpected data between frames: {snippet!r}"
                raise MalformedMessage(msg, snippet)
            self._depth = 1
            self._pos = 1

        i = self._pos
        n = len(buf)
        depth = self._depth
        in_string = self._in_string
        escape = self._escape
        while i < n:
            c = buf[i]
            i += 1
            if in_string:
                if escape:
                    escape = False
                elif c == _BACKSLASH:
                    escape = True
                elif c == _QUOTE:
                    in_string = False
            elif c == _QUOTE:
                in_string = True
            elif c in _OPEN:
                depth += 1
            elif c in _CLOSE:
                depth -= 1
                if depth == 0:
                    frame = bytes(buf[:i])
                    del buf[:i]
                    self._depth = 0
                    self._pos = 0
                    self._in_string = False
                    self._escape = False
                    return frame

        self._pos = i
        self._depth = depth
        self._in_string = in_string
        self._escape = escape
        return None


class ChunkedBodyReader:
    """Presents a chunked transfer-encoded body as a plain byte reader.

    ``read()`` returns ``b""`` once the terminating zero-size chunk has been
    consumed, or when the connection closes on a chunk boundary.  A close in
    the middle of a chunk raises :class:`asyncio.IncompleteReadError`.
    """

    def __init__(self, reader: asyncio.StreamReader) -> None:
        self._reader = reader
        self._remaining = 0
        self._eof = False

    async def read(self, n: int = -1) -> bytes:
        if self._eof:
            return b""
        if self._remaining == 0:
            size = await self._next_chunk_size()
            if size == 0:
                self._eof = True
                return b""
            self._remaining = size

        want = self._remaining if n < 0 else min(n, self._remaining)
        data = await self._reader.read(want)
        if not data:
            raise asyncio.IncompleteReadError(b"", want)
        self._remaining -= len(data)
        if self._remaining == 0:
            await self._reader.readline()  # trailing CRLF after chunk
        return data

    async def _next_chunk_size(self) -> int:
        while True:
            line = await self._reader.readline()
            if not line:
                return 0
            size_str = line.strip().split(b";", 1)[0].decode("ascii", errors="replace")
            if not size_str:
                continue
            try:
                size = int(size_str, 16)
            except ValueError as exc:
                msg = f"malformed chunk size line: {line!r}"
                raise SocketCommunicationError(msg) from exc
            if size == 0:
                await self._reader.readline()  # CRLF closing the trailer section
            return size
