# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""Callback registry usable as a stream monitor sink."""

from __future__ import annotations

from typing import TYPE_CHECKING

from dockline.types import ProgressMessage

if TYPE_CHECKING:
    from collections.abc import Callable

    from dockline.types import StreamMessage


class SinkRegistry:
    """Fan a message out to registered callbacks.

    Callbacks run in registration order.  Exceptions propagate, which stops
    the monitor that is feeding this registry.
    """

    def __init__(self) -> None:
        self._message_cbs: list[Callable[..., object]] = []
        self._error_cbs: list[Callable[..., object]] = []

    def on_message(self, fn: Callable[..., object]) -> None:
        """Register a callback for every message: fn(message)."""
        self._message_cbs.append(fn)

    def on_error(self, fn: Callable[..., object]) -> None:
        """Register a callback for progress messages reporting an error: fn(message)."""
        self._error_cbs.append(fn)

    def dispatch(self, message: StreamMessage) -> None:
        """Fire all callbacks matching *message*."""
        for fn in self._message_cbs:
            fn(message)
        if isinstance(message, ProgressMessage) and message.is_error:
            for fn in self._error_cbs:
                fn(message)

    def __call__(self, message: StreamMessage) -> None:
        self.dispatch(message)
