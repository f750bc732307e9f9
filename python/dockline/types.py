# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""Message records decoded from engine streams, and monitor outcomes.

``from_dict`` constructors raise ``TypeError`` or ``ValueError`` when a
decoded JSON value does not fit the record; the stream monitor turns those
into :class:`~dockline.errors.MalformedMessage`.
"""

from __future__ import annotations

import dataclasses
import enum
from typing import Any, Union


class MonitorOutcome(enum.Enum):
    """How a monitored stream ended when it did not fail."""

    COMPLETED = "completed"
    CANCELLED = "cancelled"


def _require_mapping(data: object, what: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        msg = f"{what} must be a JSON object, got {type(data).__name__}"
        raise TypeError(msg)
    return data


def _text(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        msg = f"field {key!r} must be a scalar"
        raise TypeError(msg)
    return str(value)


def _int(data: dict[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, (dict, list, bool)):
        msg = f"field {key!r} must be an integer"
        raise TypeError(msg)
    return int(value)


@dataclasses.dataclass(frozen=True)
class ProgressDetail:
    """Byte-level progress of a layer transfer."""

    current: int = 0
    total: int = 0
    start: int = 0

    @classmethod
    def from_dict(cls, data: object) -> ProgressDetail:
        d = _require_mapping(data, "progressDetail")
        return cls(current=_int(d, "current"), total=_int(d, "total"), start=_int(d, "start"))


@dataclasses.dataclass(frozen=True)
class ErrorDetail:
    """Structured error attached to a progress message."""

    code: int = 0
    message: str = ""

    @classmethod
    def from_dict(cls, data: object) -> ErrorDetail:
        d = _require_mapping(data, "errorDetail")
        return cls(code=_int(d, "code"), message=_text(d, "message"))


@dataclasses.dataclass(frozen=True)
class ProgressMessage:
    """One status record from a pull, push, import or build stream."""

    id: str = ""
    status: str = ""
    from_: str = ""
    progress: str = ""
    progress_detail: ProgressDetail | None = None
    stream: str = ""
    error: str = ""
    error_detail: ErrorDetail | None = None
    time: int = 0
    time_nano: int = 0
    aux: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, data: object) -> ProgressMessage:
        d = _require_mapping(data, "progress message")
        detail = d.get("progressDetail")
        error_detail = d.get("errorDetail")
        aux = d.get("aux")
        if aux is not None and not isinstance(aux, dict):
            msg = "field 'aux' must be an object"
            raise TypeError(msg)
        return cls(
            id=_text(d, "id"),
            status=_text(d, "status"),
            from_=_text(d, "from"),
            progress=_text(d, "progress"),
            # The engine sends {} for layers that have not started yet
            progress_detail=ProgressDetail.from_dict(detail) if detail else None,
            stream=_text(d, "stream"),
            error=_text(d, "error"),
            error_detail=ErrorDetail.from_dict(error_detail) if error_detail else None,
            time=_int(d, "time"),
            time_nano=_int(d, "timeNano"),
            aux=aux,
        )

    @property
    def is_error(self) -> bool:
        """Return True if the engine reported a failure in this message."""
        return bool(self.error) or self.error_detail is not None


@dataclasses.dataclass(frozen=True)
class EventActor:
    """The object an engine event refers to."""

    id: str = ""
    attributes: dict[str, str] = dataclasses.field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: object) -> EventActor:
        d = _require_mapping(data, "Actor")
        attrs = d.get("Attributes") or {}
        if not isinstance(attrs, dict):
            msg = "field 'Attributes' must be an object"
            raise TypeError(msg)
        return cls(id=_text(d, "ID"), attributes={str(k): str(v) for k, v in attrs.items()})


@dataclasses.dataclass(frozen=True)
class EventMessage:
    """One record from the engine's ``/events`` stream."""

    action: str = ""
    status: str = ""
    id: str = ""
    from_: str = ""
    type: str = ""
    actor: EventActor | None = None
    scope: str = ""
    time: int = 0
    time_nano: int = 0

    @classmethod
    def from_dict(cls, data: object) -> EventMessage:
        d = _require_mapping(data, "event message")
        actor = d.get("Actor")
        return cls(
            action=_text(d, "Action"),
            status=_text(d, "status"),
            id=_text(d, "id"),
            from_=_text(d, "from"),
            type=_text(d, "Type"),
            actor=EventActor.from_dict(actor) if actor is not None else None,
            scope=_text(d, "scope"),
            time=_int(d, "time"),
            time_nano=_int(d, "timeNano"),
        )


StreamMessage = Union[ProgressMessage, EventMessage]
