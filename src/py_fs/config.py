"""Server configuration — defaults, JSON config file, and overrides.

Configuration is resolved in three layers, each overriding the last:

1. The defaults baked into ``ServerConfig``.
2. An optional JSON file whose keys are ``ServerConfig`` field names.
3. Explicit overrides (the command-line flags).

The disk geometry (``block_size``, ``max_files``, ``max_blocks``) is
fixed for the life of an image: changing it makes an existing image
unreadable, and the engine starts over with an empty one.
"""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from py_fs.fs.structures import Geometry
from py_fs.logging import LogLevel

_MAX_PORT = 65535


class ConfigError(ValueError):
    """Raise when configuration cannot be loaded or is invalid."""


@dataclass(frozen=True)
class ServerConfig:
    """Everything the server needs to start."""

    host: str = "127.0.0.1"
    port: int = 12345
    image_path: Path = Path("filesystem.dat")
    block_size: int = 128
    max_files: int = 20
    max_blocks: int = 100
    log_level: LogLevel = LogLevel.INFO

    @property
    def geometry(self) -> Geometry:
        """Return the disk geometry described by this config."""
        return Geometry(
            max_files=self.max_files,
            max_blocks=self.max_blocks,
            block_size=self.block_size,
        )

    @property
    def total_size(self) -> int:
        """Return the raw storage capacity in bytes."""
        return self.block_size * self.max_blocks


def _coerce(values: dict[str, Any]) -> dict[str, Any]:
    """Convert JSON/CLI values to the field types of ``ServerConfig``."""
    result = dict(values)
    if "host" in result and not isinstance(result["host"], str):
        msg = f"host must be a string, got {result['host']!r}"
        raise ConfigError(msg)
    if "image_path" in result:
        if not isinstance(result["image_path"], str | Path):
            msg = f"image_path must be a string, got {result['image_path']!r}"
            raise ConfigError(msg)
        result["image_path"] = Path(result["image_path"])
    if "log_level" in result and not isinstance(result["log_level"], LogLevel):
        try:
            result["log_level"] = LogLevel[str(result["log_level"]).upper()]
        except KeyError as e:
            msg = f"Unknown log level: {result['log_level']}"
            raise ConfigError(msg) from e
    for key in ("port", "block_size", "max_files", "max_blocks"):
        if key in result and (isinstance(result[key], bool) or not isinstance(result[key], int)):
            msg = f"{key} must be an integer, got {result[key]!r}"
            raise ConfigError(msg)
    return result


def _validate(config: ServerConfig) -> None:
    if not 0 <= config.port <= _MAX_PORT:
        msg = f"port must be between 0 and {_MAX_PORT}, got {config.port}"
        raise ConfigError(msg)
    try:
        config.geometry  # noqa: B018
    except ValueError as e:
        raise ConfigError(str(e)) from e


def load_config(path: Path | None = None, **overrides: Any) -> ServerConfig:
    """Build a validated ``ServerConfig``.

    Args:
        path: Optional JSON config file.
        **overrides: Field values that win over the file; ``None``
            values are ignored so unset CLI flags fall through.

    Returns:
        The resolved configuration.

    Raises:
        ConfigError: If the file cannot be read or parsed, names an
            unknown field, or any value is invalid.

    """
    values: dict[str, Any] = {}
    if path is not None:
        try:
            data = json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            msg = f"Cannot load config {path}: {e}"
            raise ConfigError(msg) from e
        if not isinstance(data, dict):
            msg = f"Config {path} must contain a JSON object"
            raise ConfigError(msg)
        values.update(data)

    values.update({k: v for k, v in overrides.items() if v is not None})

    known = {f.name for f in dataclasses.fields(ServerConfig)}
    unknown = sorted(set(values) - known)
    if unknown:
        msg = f"Unknown config keys: {', '.join(unknown)}"
        raise ConfigError(msg)

    config = ServerConfig(**_coerce(values))
    _validate(config)
    return config
