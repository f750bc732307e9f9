# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""Encoding for the engine's ``filters`` query parameter.

The engine expects ``filters`` to be JSON shaped as
``{"<field>": {"<value>": true, ...}, ...}``.  That shape is part of the
wire protocol and is reproduced exactly: compact separators, lower-cased
field names, ``true`` leaves.
"""

from __future__ import annotations

import dataclasses
import json
from typing import TYPE_CHECKING

from dockline._query import escape_data, escape_uri
from dockline.errors import ConfigurationError, InvalidArgument, InvalidFilterValue

if TYPE_CHECKING:
    from typing_extensions import Self


@dataclasses.dataclass(frozen=True)
class FilterField:
    """One filterable attribute of a filter parameter type.

    ``choices`` restricts a non-empty value to a fixed set.
    """

    attribute: str
    choices: tuple[str, ...] | None = None


class FilterExpression:
    """Accumulates ``{field: {value: true}}`` filter entries."""

    def __init__(self) -> None:
        self._filters: dict[str, dict[str, bool]] = {}

    def add(self, name: str, value: str | None) -> Self:
        """Add a filter entry.  Empty values are skipped.

        Adding a field that is already present replaces its entry.
        """
        if value is None or not value.strip():
            return self
        self._filters[name.lower()] = {escape_uri(value): True}
        return self

    def __len__(self) -> int:
        return len(self._filters)

    def __bool__(self) -> bool:
        return bool(self._filters)

    def to_dict(self) -> dict[str, dict[str, bool]]:
        """Return a copy of the accumulated filters."""
        return {name: dict(values) for name, values in self._filters.items()}

    def to_json(self) -> str:
        """Serialize to the compact JSON the engine expects."""
        return json.dumps(self._filters, separators=(",", ":"))

    def to_query_string(self) -> str:
        """Return ``filters=<escaped json>``."""
        return f"filters={escape_data(self.to_json())}"


def build_filter_expression(params: object) -> FilterExpression:
    """Validate *params* against its ``FILTER_FIELDS`` and build the expression.

    Raises:
        InvalidArgument: *params* is ``None``.
        ConfigurationError: The type declares no filter fields.
        InvalidFilterValue: A constrained field holds a value outside its choices.

    """
    if params is None:
        raise InvalidArgument("params", "filter parameter object is None")
    fields: tuple[FilterField, ...] = tuple(getattr(type(params), "FILTER_FIELDS", None) or ())
    if not fields:
        msg = f"no filter fields declared for this type: {type(params).__qualname__}"
        raise ConfigurationError(msg)

    values = [(f, getattr(params, f.attribute)) for f in fields]

    # Validate everything before building anything
    for f, value in values:
        if f.choices is not None and value and value.strip() and value not in f.choices:
            raise InvalidFilterValue(f.attribute, value, f.choices)

    expression = FilterExpression()
    for f, value in values:
        expression.add(f.attribute, value)
    return expression


def encode_filters(params: object) -> str:
    """Encode a filter parameter object as a ``filters=<json>`` query fragment."""
    return build_filter_expression(params).to_query_string()
