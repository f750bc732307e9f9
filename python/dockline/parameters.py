# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""Parameter objects for engine endpoints.

Each type carries its own descriptor table (``QUERY_PARAMETERS``) or filter
table (``FILTER_FIELDS``); see :mod:`dockline._query` and
:mod:`dockline._filters`.
"""

from __future__ import annotations

import dataclasses
import datetime
from typing import Any, ClassVar

from dockline._filters import FilterField
from dockline._query import ParameterDescriptor

Filters = dict[str, dict[str, bool]]


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class ImagesListParameters:
    """``GET /images/json``."""

    all: bool = False
    digests: bool = False
    filters: Filters | None = None

    QUERY_PARAMETERS: ClassVar[tuple[ParameterDescriptor, ...]] = (
        ParameterDescriptor("all", "all", converter="bool"),
        ParameterDescriptor("digests", "digests", converter="bool"),
        ParameterDescriptor("filters", "filters", converter="json"),
    )


@dataclasses.dataclass(frozen=True)
class ImagesPullParameters:
    """``POST /images/create`` pulling from a registry."""

    image: str | None = None
    tag: str = ""
    platform: str = ""

    QUERY_PARAMETERS: ClassVar[tuple[ParameterDescriptor, ...]] = (
        ParameterDescriptor("image", "fromImage", required=True),
        ParameterDescriptor("tag", "tag"),
        ParameterDescriptor("platform", "platform"),
    )


@dataclasses.dataclass(frozen=True)
class ImagesCreateParameters:
    """Create an image by pulling it; mapped onto :class:`ImagesPullParameters`."""

    from_image: str | None = None
    tag: str = ""
    platform: str = ""

    QUERY_PARAMETERS: ClassVar[tuple[ParameterDescriptor, ...]] = (
        ParameterDescriptor("from_image", "fromImage", required=True),
        ParameterDescriptor("tag", "tag"),
        ParameterDescriptor("platform", "platform"),
    )

    def to_pull_parameters(self) -> ImagesPullParameters:
        return ImagesPullParameters(image=self.from_image, tag=self.tag, platform=self.platform)


@dataclasses.dataclass(frozen=True)
class ImagesImportParameters:
    """``POST /images/create`` importing a root filesystem.

    ``source`` is a URL, or ``"-"`` when the tarball is sent as the body.
    """

    source: str | None = None
    repo: str = ""
    tag: str = ""
    message: str = ""
    changes: tuple[str, ...] = ()
    platform: str = ""

    QUERY_PARAMETERS: ClassVar[tuple[ParameterDescriptor, ...]] = (
        ParameterDescriptor("source", "fromSrc", required=True),
        ParameterDescriptor("repo", "repo"),
        ParameterDescriptor("tag", "tag"),
        ParameterDescriptor("message", "message"),
        ParameterDescriptor("changes", "changes", converter="enumerable"),
        ParameterDescriptor("platform", "platform"),
    )


@dataclasses.dataclass(frozen=True)
class ImagePushParameters:
    """``POST /images/{name}/push``."""

    tag: str = ""

    QUERY_PARAMETERS: ClassVar[tuple[ParameterDescriptor, ...]] = (
        ParameterDescriptor("tag", "tag"),
    )


@dataclasses.dataclass(frozen=True)
class ImageTagParameters:
    """``POST /images/{name}/tag``."""

    repo: str | None = None
    tag: str = ""
    force: bool = False

    QUERY_PARAMETERS: ClassVar[tuple[ParameterDescriptor, ...]] = (
        ParameterDescriptor("repo", "repo", required=True),
        ParameterDescriptor("tag", "tag"),
        ParameterDescriptor("force", "force", converter="bool"),
    )


@dataclasses.dataclass(frozen=True)
class ImageDeleteParameters:
    """``DELETE /images/{name}``."""

    force: bool = False
    no_prune: bool = False

    QUERY_PARAMETERS: ClassVar[tuple[ParameterDescriptor, ...]] = (
        ParameterDescriptor("force", "force", converter="bool"),
        ParameterDescriptor("no_prune", "noprune", converter="bool"),
    )


@dataclasses.dataclass(frozen=True)
class ImagesSearchParameters:
    """``GET /images/search``."""

    term: str | None = None
    limit: int = 0
    filters: Filters | None = None

    QUERY_PARAMETERS: ClassVar[tuple[ParameterDescriptor, ...]] = (
        ParameterDescriptor("term", "term", required=True),
        ParameterDescriptor("limit", "limit"),
        ParameterDescriptor("filters", "filters", converter="json"),
    )


# ---------------------------------------------------------------------------
# Containers
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class ContainersListParameters:
    """``GET /containers/json``."""

    all: bool = False
    limit: int = 0
    size: bool = False
    filters: Filters | None = None

    QUERY_PARAMETERS: ClassVar[tuple[ParameterDescriptor, ...]] = (
        ParameterDescriptor("all", "all", converter="bool"),
        ParameterDescriptor("limit", "limit"),
        ParameterDescriptor("size", "size", converter="bool"),
        ParameterDescriptor("filters", "filters", converter="json"),
    )


@dataclasses.dataclass(frozen=True)
class ContainerStopParameters:
    """``POST /containers/{id}/stop`` and ``/restart``."""

    wait_before_kill: datetime.timedelta | None = None

    QUERY_PARAMETERS: ClassVar[tuple[ParameterDescriptor, ...]] = (
        ParameterDescriptor("wait_before_kill", "t", converter="seconds"),
    )


@dataclasses.dataclass(frozen=True)
class ContainerEventsParameters:
    """``GET /events``."""

    since: datetime.datetime | None = None
    until: datetime.datetime | None = None
    filters: Filters | None = None

    QUERY_PARAMETERS: ClassVar[tuple[ParameterDescriptor, ...]] = (
        ParameterDescriptor("since", "since", converter="timestamp"),
        ParameterDescriptor("until", "until", converter="timestamp"),
        ParameterDescriptor("filters", "filters", converter="json"),
    )


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class ServiceFilterParameters:
    """Filters for ``GET /services``."""

    id: str = ""
    name: str = ""
    label: str = ""
    mode: str = ""

    FILTER_FIELDS: ClassVar[tuple[FilterField, ...]] = (
        FilterField("id"),
        FilterField("name"),
        FilterField("label"),
        FilterField("mode", choices=("global", "replicated")),
    )


@dataclasses.dataclass(frozen=True)
class AuthConfig:
    """Registry credentials sent in the ``X-Registry-Auth`` header."""

    username: str = ""
    password: str = ""
    email: str = ""
    server_address: str = ""
    identity_token: str = ""
    registry_token: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Return the engine's JSON shape, omitting empty fields."""
        fields = {
            "username": self.username,
            "password": self.password,
            "email": self.email,
            "serveraddress": self.server_address,
            "identitytoken": self.identity_token,
            "registrytoken": self.registry_token,
        }
        return {k: v for k, v in fields.items() if v}
