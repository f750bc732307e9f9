# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""Fire-and-forget recording of stream messages to disk.

All I/O is synchronous filesystem writes: simple, no async overhead.
"""

from __future__ import annotations

import dataclasses
import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import datetime
    from pathlib import Path

    from dockline.types import StreamMessage


class MessageRecorder:
    """Appends each message to ``<directory>/messages.jsonl``.

    Usable directly as a monitor sink.
    """

    def __init__(self, directory: Path, *, enabled: bool = True) -> None:
        self._directory = directory
        self._history_path = directory / "messages.jsonl"
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        """Whether recording is active."""
        return self._enabled

    @property
    def path(self) -> Path:
        """The JSONL file messages are appended to."""
        return self._history_path

    def record(self, message: StreamMessage) -> None:
        """Append one JSONL line describing *message*."""
        if not self._enabled:
            return
        entry: dict[str, object] = {"type": type(message).__name__}
        entry.update(dataclasses.asdict(message))
        self.append_history(entry)

    def append_history(self, entry: dict[str, object]) -> None:
        """Append one JSONL line to ``messages.jsonl``."""
        if not self._enabled:
            return
        self._directory.mkdir(parents=True, exist_ok=True)
        with self._history_path.open("a") as f:
            f.write(json.dumps(entry, default=str) + "\n")

    def start_session(self, label: str, started_at: datetime.datetime) -> None:
        """Write a marker line separating one monitored stream from the next."""
        self.append_history(
            {"type": "session", "label": label, "timestamp": started_at.isoformat()}
        )

    def __call__(self, message: StreamMessage) -> None:
        self.record(message)
