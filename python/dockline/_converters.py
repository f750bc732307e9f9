# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""Value converters for query-string encoding.

A converter turns one field value into one or more query values.  Parameter
types name their converter by identifier in their descriptor table; the
identifier is resolved against a :class:`ConverterRegistry` when the
:class:`~dockline._query.QueryString` is built.
"""

from __future__ import annotations

import datetime
import json
from typing import TYPE_CHECKING, Any, Protocol

from dockline.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Iterator


class Converter(Protocol):
    """Capability interface for query value converters."""

    def can_convert(self, value_type: type) -> bool: ...

    def convert(self, value: Any) -> list[str]: ...


class BoolConverter:
    """``True`` -> ``"true"``, ``False`` -> ``"false"``."""

    def can_convert(self, value_type: type) -> bool:
        return issubclass(value_type, bool)

    def convert(self, value: Any) -> list[str]:
        return ["true" if value else "false"]


class EnumerableConverter:
    """Expand a sequence into one query value per item (``k=a&k=b``)."""

    def can_convert(self, value_type: type) -> bool:
        return issubclass(value_type, (list, tuple, set, frozenset))

    def convert(self, value: Any) -> list[str]:
        return [str(item) for item in value]


class JsonConverter:
    """Serialize a mapping or list as a single compact JSON value."""

    def can_convert(self, value_type: type) -> bool:
        return issubclass(value_type, (dict, list))

    def convert(self, value: Any) -> list[str]:
        return [json.dumps(value, separators=(",", ":"))]


class SecondsConverter:
    """A :class:`datetime.timedelta` as whole seconds."""

    def can_convert(self, value_type: type) -> bool:
        return issubclass(value_type, datetime.timedelta)

    def convert(self, value: Any) -> list[str]:
        return [str(int(value.total_seconds()))]


class NanosecondsConverter:
    """A :class:`datetime.timedelta` as whole nanoseconds."""

    def can_convert(self, value_type: type) -> bool:
        return issubclass(value_type, datetime.timedelta)

    def convert(self, value: Any) -> list[str]:
        # Integer arithmetic; total_seconds() loses precision past ~104 days
        micros = (value.days * 86_400 + value.seconds) * 1_000_000 + value.microseconds
        return [str(micros * 1000)]


class TimestampConverter:
    """A :class:`datetime.datetime` as Unix seconds.  Naive values are UTC."""

    def can_convert(self, value_type: type) -> bool:
        return issubclass(value_type, datetime.datetime)

    def convert(self, value: Any) -> list[str]:
        if value.tzinfo is None:
            value = value.replace(tzinfo=datetime.timezone.utc)
        return [str(int(value.timestamp()))]


class ConverterRegistry:
    """Maps converter identifiers to converter instances."""

    def __init__(self, converters: dict[str, Converter] | None = None) -> None:
        self._converters: dict[str, Converter] = dict(converters or {})

    def register(self, converter_id: str, converter: Converter) -> None:
        """Add or replace the converter for *converter_id*."""
        if not converter_id:
            msg = "converter id must be non-empty"
            raise ConfigurationError(msg)
        self._converters[converter_id] = converter

    def resolve(self, converter_id: str) -> Converter:
        """Return the converter registered as *converter_id*.

        Raises:
            ConfigurationError: If nothing is registered under that id.

        """
        try:
            return self._converters[converter_id]
        except KeyError:
            known = ", ".join(sorted(self._converters))
            msg = f"Unknown converter {converter_id!r}. Known converters: {known}"
            raise ConfigurationError(msg) from None

    def __contains__(self, converter_id: object) -> bool:
        return converter_id in self._converters

    def __iter__(self) -> Iterator[str]:
        return iter(self._converters)


def builtin_converters() -> dict[str, Converter]:
    """Return a fresh mapping of the built-in converters by identifier."""
    return {
        "bool": BoolConverter(),
        "enumerable": EnumerableConverter(),
        "json": JsonConverter(),
        "seconds": SecondsConverter(),
        "nanoseconds": NanosecondsConverter(),
        "timestamp": TimestampConverter(),
    }


default_registry = ConverterRegistry(builtin_converters())
