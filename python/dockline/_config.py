# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""Configuration loading with install-level -> project-level precedence."""

from __future__ import annotations

import dataclasses
from pathlib import Path
from typing import Any

import yaml

from dockline.errors import ConfigurationError

_CONFIG_DIRNAME = ".dockline"
_CONFIG_FILENAME = "dockline.yaml"

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


@dataclasses.dataclass(frozen=True)
class DocklineConfig:
    """Resolved dockline configuration.

    Raises:
        ConfigurationError: A field has the wrong type or is out of range.
    """

    socket: str | None = None
    timeout: float = 60.0
    read_size: int = 65536
    allow_truncated_stream: bool = True
    buffer_capacity: int = 1000
    record_messages: str | None = None
    log_level: str = "warning"

    def __post_init__(self) -> None:
        for name in ("socket", "record_messages"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, str):
                _invalid(name, value, "a string")
        if isinstance(self.timeout, bool) or not isinstance(self.timeout, (int, float)):
            _invalid("timeout", self.timeout, "a number of seconds")
        if self.timeout <= 0:
            _invalid("timeout", self.timeout, "greater than zero")
        for name in ("read_size", "buffer_capacity"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                _invalid(name, value, "an integer")
            if value < 1:
                _invalid(name, value, "at least 1")
        if not isinstance(self.allow_truncated_stream, bool):
            _invalid("allow_truncated_stream", self.allow_truncated_stream, "true or false")
        if not isinstance(self.log_level, str) or self.log_level.lower() not in LOG_LEVELS:
            _invalid("log_level", self.log_level, "one of " + ", ".join(LOG_LEVELS))


def _invalid(name: str, value: object, expected: str) -> None:
    msg = f"config field {name!r} must be {expected}, got {value!r}"
    raise ConfigurationError(msg)


def load_config(project_root: Path | None = None) -> DocklineConfig:
    """Load configuration with precedence: project > install > defaults.

    1. Start with defaults
    2. Overlay install-level ``~/.dockline/dockline.yaml`` (if exists)
    3. Overlay project-level ``.dockline/dockline.yaml`` (if exists)
    """
    overrides: dict[str, Any] = {}

    # Install-level config
    install_config = Path.home() / _CONFIG_DIRNAME / _CONFIG_FILENAME
    if install_config.is_file():
        _merge_yaml(overrides, install_config)

    # Project-level config
    if project_root is not None:
        project_config = project_root / _CONFIG_DIRNAME / _CONFIG_FILENAME
        if project_config.is_file():
            _merge_yaml(overrides, project_config)

    return _build_config(overrides)


def _merge_yaml(target: dict[str, Any], path: Path) -> None:
    """Parse a YAML file and merge its values into *target*."""
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError:
        return
    if not isinstance(data, dict):
        return

    for key, value in data.items():
        if key == "stream" and isinstance(value, dict):
            # Flatten stream sub-keys into top-level config keys
            target.update(value)
        else:
            target[key] = value


def _build_config(overrides: dict[str, Any]) -> DocklineConfig:
    """Build a ``DocklineConfig`` from a dict of overrides."""
    field_names = {f.name for f in dataclasses.fields(DocklineConfig)}
    filtered = {k: v for k, v in overrides.items() if k in field_names}
    # YAML reads "timeout: 30" as an int
    timeout = filtered.get("timeout")
    if isinstance(timeout, int) and not isinstance(timeout, bool):
        filtered["timeout"] = float(timeout)
    if isinstance(filtered.get("log_level"), str):
        filtered["log_level"] = filtered["log_level"].lower()
    return DocklineConfig(**filtered)
