# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

from __future__ import annotations

from importlib.metadata import version

from dockline._callbacks import SinkRegistry
from dockline._config import DocklineConfig, load_config
from dockline._converters import Converter, ConverterRegistry, default_registry
from dockline._filters import FilterExpression, FilterField, encode_filters
from dockline._logger import MessageRecorder
from dockline._query import (
    ParameterDescriptor,
    QueryString,
    encode_query,
    encode_query_params,
    enumerable_query_string,
)
from dockline._socket_client import detect_socket
from dockline._sync_client import EngineClient, SyncStreamMonitor
from dockline.errors import (
    APIError,
    ConfigurationError,
    ConversionError,
    ConverterContractViolation,
    DocklineError,
    EngineNotRunning,
    ImageNotFound,
    InvalidArgument,
    InvalidFilterValue,
    MalformedMessage,
    MissingRequiredParameter,
    MonitorError,
    ParameterError,
    SocketCommunicationError,
    SocketConnectionError,
    SocketError,
    StreamFailure,
    UnsupportedConversion,
)
from dockline.types import (
    EventActor,
    EventMessage,
    MonitorOutcome,
    ProgressDetail,
    ProgressMessage,
)

__version__ = version("dockline")


def get_version() -> str:
    """Return the dockline package version string."""
    return __version__


StreamMonitor = SyncStreamMonitor

__all__ = [
    "APIError",
    "ConfigurationError",
    "ConversionError",
    "Converter",
    "ConverterContractViolation",
    "ConverterRegistry",
    "DocklineConfig",
    "DocklineError",
    "EngineClient",
    "EngineNotRunning",
    "EventActor",
    "EventMessage",
    "FilterExpression",
    "FilterField",
    "ImageNotFound",
    "InvalidArgument",
    "InvalidFilterValue",
    "MalformedMessage",
    "MessageRecorder",
    "MissingRequiredParameter",
    "MonitorError",
    "MonitorOutcome",
    "ParameterDescriptor",
    "ParameterError",
    "ProgressDetail",
    "ProgressMessage",
    "QueryString",
    "SinkRegistry",
    "SocketCommunicationError",
    "SocketConnectionError",
    "SocketError",
    "StreamFailure",
    "StreamMonitor",
    "UnsupportedConversion",
    "__version__",
    "default_registry",
    "detect_socket",
    "encode_filters",
    "encode_query",
    "encode_query_params",
    "enumerable_query_string",
    "get_version",
    "load_config",
]
