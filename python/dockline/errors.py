# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

from __future__ import annotations


class DocklineError(Exception):
    """Base exception for all dockline errors."""


class ConfigurationError(DocklineError):
    """A parameter type, descriptor table or converter registry is misdeclared."""


# ---------------------------------------------------------------------------
# Query encoding
# ---------------------------------------------------------------------------


class ParameterError(DocklineError):
    """A parameter object carries values that cannot be encoded."""


class MissingRequiredParameter(ParameterError):
    """A required query parameter was left unset."""

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"Got None/unset value for required query parameter {field!r}")


class InvalidFilterValue(ParameterError):
    """A constrained filter field holds a value outside its allowed set."""

    def __init__(self, field: str, value: str, choices: tuple[str, ...]) -> None:
        self.field = field
        self.value = value
        self.choices = choices
        allowed = ", ".join(repr(c) for c in choices)
        super().__init__(f"Invalid filter {field}={value!r}: should be one of {allowed}")


class ConversionError(DocklineError):
    """A value converter misbehaved."""


class UnsupportedConversion(ConversionError):
    """The configured converter cannot handle the field's value type."""

    def __init__(self, value_type: type, converter_id: str) -> None:
        self.value_type = value_type
        self.converter_id = converter_id
        super().__init__(
            f"Cannot convert type {value_type.__qualname__} using converter {converter_id!r}"
        )


class ConverterContractViolation(ConversionError):
    """A converter returned no values, or something other than a list of strings."""

    def __init__(self, converter_id: str, detail: str = "") -> None:
        self.converter_id = converter_id
        msg = f"Got no values from converter {converter_id!r}"
        if detail:
            msg = f"Converter {converter_id!r} broke its contract: {detail}"
        super().__init__(msg)


class InvalidArgument(DocklineError):
    """A required argument was ``None`` or of the wrong kind."""

    def __init__(self, name: str, detail: str = "") -> None:
        self.name = name
        msg = f"Invalid argument {name!r}"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


# ---------------------------------------------------------------------------
# Stream monitoring
# ---------------------------------------------------------------------------


class MonitorError(DocklineError):
    """A message stream could not be monitored to completion."""


class MalformedMessage(MonitorError):
    """The engine sent a frame that is not a valid message."""

    def __init__(self, detail: str, frame: bytes = b"") -> None:
        self.detail = detail
        self.frame = frame
        super().__init__(f"Malformed stream message: {detail}")


class StreamFailure(MonitorError):
    """The underlying byte stream failed while being read."""

    def __init__(self, cause: BaseException) -> None:
        self.cause = cause
        super().__init__(f"Stream failure: {cause}")


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


class SocketError(DocklineError):
    """Error related to socket communication with the container engine."""


class SocketConnectionError(SocketError):
    """Cannot connect to the container engine socket."""

    def __init__(self, socket_path: str, detail: str = "") -> None:
        self.socket_path = socket_path
        msg = f"Cannot connect to socket at {socket_path}"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class SocketCommunicationError(SocketError):
    """Error during communication over the socket."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        msg = "Socket communication error"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class EngineNotRunning(SocketError):
    """No container engine socket found."""

    def __init__(self) -> None:
        super().__init__(
            "No container engine socket found. "
            "Is Podman or Docker running? "
            "Try: systemctl --user start podman.socket"
        )


class APIError(DocklineError):
    """The engine answered with an HTTP error status."""

    def __init__(self, status: int, detail: str = "") -> None:
        self.status = status
        self.detail = detail
        msg = f"HTTP {status}"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class ImageNotFound(APIError):
    """Requested image does not exist (HTTP 404 on an image route)."""

    def __init__(self, image: str) -> None:
        self.image = image
        super().__init__(404, f"Image not found: {image}")
