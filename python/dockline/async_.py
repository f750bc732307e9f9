# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""Async public API for dockline.

Usage::

    from dockline.async_ import AsyncEngineClient
    from dockline.parameters import ImagesPullParameters

    async def main():
        async with AsyncEngineClient() as client:
            await client.pull_image(ImagesPullParameters(image="alpine"), print)
"""

from __future__ import annotations

from dockline._client import AsyncEngineClient
from dockline._monitor import StreamMonitor, monitor_stream
from dockline._stream import ChunkedBodyReader, JsonFrameBuffer

__all__ = [
    "AsyncEngineClient",
    "ChunkedBodyReader",
    "JsonFrameBuffer",
    "StreamMonitor",
    "monitor_stream",
]
