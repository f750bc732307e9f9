# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""Declarative query-string encoding for parameter objects.

A parameter type declares which of its attributes become query parameters
in a ``QUERY_PARAMETERS`` class attribute: a tuple of
:class:`ParameterDescriptor` in the order the keys should appear.

    >>> @dataclasses.dataclass
    ... class ImageTagParameters:
    ...     repo: str | None = None
    ...     tag: str = ""
    ...     QUERY_PARAMETERS: ClassVar[tuple[ParameterDescriptor, ...]] = (
    ...         ParameterDescriptor("repo", "repo", required=True),
    ...         ParameterDescriptor("tag", "tag"),
    ...     )
    >>> encode_query(ImageTagParameters(repo="library/app"))
    'repo=library%2Fapp'

Optional fields left at their type's zero value are omitted.  Keys are
escaped as URIs, values as data components.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
import urllib.parse
from typing import TYPE_CHECKING, Any, Dict, List

from dockline._converters import default_registry
from dockline.errors import (
    ConfigurationError,
    ConverterContractViolation,
    InvalidArgument,
    MissingRequiredParameter,
    UnsupportedConversion,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from dockline._converters import Converter, ConverterRegistry

_log = logging.getLogger(__name__)

# Reserved characters left intact when escaping a key (RFC 3986 gen-delims
# and sub-delims); values keep only the unreserved set.
_URI_SAFE = ";/?:@&=+$,!*'()#[]"

QueryParameterSet = Dict[str, List[str]]


def escape_uri(text: str) -> str:
    """Percent-escape *text* as a URI, keeping reserved characters."""
    return urllib.parse.quote(text, safe=_URI_SAFE)


def escape_data(text: str) -> str:
    """Percent-escape *text* as a URI data component (``/`` -> ``%2F``)."""
    return urllib.parse.quote(text, safe="")


@dataclasses.dataclass(frozen=True)
class ParameterDescriptor:
    """How one attribute of a parameter object maps to a query key."""

    field: str
    key: str
    required: bool = False
    converter: str | None = None

    def __post_init__(self) -> None:
        if not self.field:
            msg = "descriptor field name must be non-empty"
            raise ConfigurationError(msg)
        if not self.key:
            msg = f"descriptor for {self.field!r} has an empty query key"
            raise ConfigurationError(msg)


def _validate_table(
    table: Iterable[ParameterDescriptor],
    type_name: str,
) -> tuple[ParameterDescriptor, ...]:
    descriptors = tuple(table)
    if not descriptors:
        msg = f"no encodable fields declared for this type: {type_name}"
        raise ConfigurationError(msg)
    seen: set[str] = set()
    for d in descriptors:
        if d.key in seen:
            msg = f"duplicate query key {d.key!r} declared on {type_name}"
            raise ConfigurationError(msg)
        seen.add(d.key)
    return descriptors


def descriptors_for(param_type: type) -> tuple[ParameterDescriptor, ...]:
    """Return the validated descriptor table declared on *param_type*.

    Raises:
        ConfigurationError: If the type declares no descriptors, or two
            descriptors share a key.

    """
    table = getattr(param_type, "QUERY_PARAMETERS", None) or ()
    return _validate_table(table, param_type.__qualname__)


def _is_default(value: object) -> bool:
    """Return True if *value* equals the zero value of its own type."""
    if value is None:
        return True
    try:
        zero = type(value)()
    except TypeError:
        # No zero-argument constructor (datetime, enums, ...): never default
        return False
    return bool(value == zero)


def _natural(value: object) -> str:
    if isinstance(value, enum.Enum):
        return str(value.value)
    return str(value)


class QueryString:
    """Encoder for one parameter object.

    Converters named by the descriptor table are resolved here, at
    construction, so an unknown converter id fails before any encoding.
    """

    def __init__(
        self,
        params: object,
        *,
        descriptors: Iterable[ParameterDescriptor] | None = None,
        registry: ConverterRegistry | None = None,
    ) -> None:
        if params is None:
            raise InvalidArgument("params", "parameter object is None")
        self._params = params
        type_name = type(params).__qualname__
        if descriptors is None:
            self._descriptors = descriptors_for(type(params))
        else:
            self._descriptors = _validate_table(descriptors, type_name)
        registry = registry if registry is not None else default_registry
        self._converters: dict[str, Converter] = {
            d.converter: registry.resolve(d.converter) for d in self._descriptors if d.converter
        }

    def get_key_value_pairs(self) -> QueryParameterSet:
        """Return the encoded parameters as an ordered key -> values mapping.

        Raises:
            MissingRequiredParameter: A required field is ``None``.
            UnsupportedConversion: A converter rejects the field's type.
            ConverterContractViolation: A converter returned no values or
                something other than a list of strings.

        """
        pairs: QueryParameterSet = {}
        for d in self._descriptors:
            try:
                value = getattr(self._params, d.field)
            except AttributeError:
                msg = f"{type(self._params).__qualname__} has no field {d.field!r}"
                raise ConfigurationError(msg) from None

            if value is None:
                if d.required:
                    raise MissingRequiredParameter(d.field)
                continue
            if not d.required and _is_default(value):
                continue

            pairs[d.key] = self._convert(d, value)
        return pairs

    def _convert(self, d: ParameterDescriptor, value: Any) -> list[str]:
        if d.converter is None:
            return [_natural(value)]

        converter = self._converters[d.converter]
        if not converter.can_convert(type(value)):
            raise UnsupportedConversion(type(value), d.converter)
        values = converter.convert(value)
        if not values:
            raise ConverterContractViolation(d.converter)
        if not isinstance(values, (list, tuple)):
            detail = f"returned {type(values).__name__}, expected a list of strings"
            raise ConverterContractViolation(d.converter, detail)
        if not all(isinstance(v, str) for v in values):
            raise ConverterContractViolation(d.converter, "returned a non-string value")
        return list(values)

    def get_query_string(self) -> str:
        """Return the formatted query string (no leading ``?``)."""
        query = "&".join(
            f"{escape_uri(key)}={escape_data(v)}"
            for key, values in self.get_key_value_pairs().items()
            for v in values
        )
        _log.debug("encoded %s -> %r", type(self._params).__qualname__, query)
        return query

    def __str__(self) -> str:
        return self.get_query_string()


def encode_query_params(
    params: object,
    *,
    registry: ConverterRegistry | None = None,
) -> QueryParameterSet:
    """Encode *params* into an ordered key -> values mapping."""
    return QueryString(params, registry=registry).get_key_value_pairs()


def encode_query(params: object, *, registry: ConverterRegistry | None = None) -> str:
    """Encode *params* into a query string (``key=v1&key=v2&...``)."""
    return QueryString(params, registry=registry).get_query_string()


def enumerable_query_string(key: str, values: Iterable[str]) -> str:
    """Render ``key=v1&key=v2...`` for a bare list of values."""
    return "&".join(f"{escape_uri(key)}={escape_data(v)}" for v in values)
