"""Load engine configuration from TOML files."""

from __future__ import annotations

import tomllib
from pathlib import Path

import aiofiles
from pydantic import ValidationError

from modloc_schemas.config import EngineConfig
from modloc_schemas.primitives import JsonValue
from modloc_schemas.validation import validate_engine_config


class ConfigError(Exception):
    """Raised when an engine configuration file cannot be used.

    Attributes:
        source_path: Path to the offending file.
    """

    def __init__(self, message: str, source_path: Path | None = None) -> None:
        """Initialize the config error.

        Args:
            message: Error message.
            source_path: Path to the configuration file.
        """
        super().__init__(message)
        self.source_path = source_path


def load_engine_config(path: Path | str) -> EngineConfig:
    """Load engine configuration from a TOML file.

    A missing file yields the default configuration.

    Args:
        path: Path to the TOML file.

    Returns:
        EngineConfig: Validated engine configuration.

    Raises:
        ConfigError: If the file is not valid TOML or fails validation.
    """
    source = Path(path)
    try:
        with source.open("rb") as handle:
            payload = tomllib.load(handle)
    except FileNotFoundError:
        return EngineConfig()
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in engine config: {exc}", source) from exc
    return _validate(payload, source)


async def load_engine_config_async(path: Path | str) -> EngineConfig:
    """Load engine configuration from a TOML file asynchronously.

    Args:
        path: Path to the TOML file.

    Returns:
        EngineConfig: Validated engine configuration.

    Raises:
        ConfigError: If the file is not valid TOML or fails validation.
    """
    source = Path(path)
    try:
        async with aiofiles.open(source, "rb") as handle:
            content = await handle.read()
        payload = tomllib.loads(content.decode("utf-8"))
    except FileNotFoundError:
        return EngineConfig()
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Invalid TOML in engine config: {exc}", source) from exc
    return _validate(payload, source)


def _validate(payload: dict[str, JsonValue], source: Path) -> EngineConfig:
    # Engine settings may live at the top level or under an [engine] table.
    section = payload.get("engine", payload)
    if not isinstance(section, dict):
        raise ConfigError("[engine] must be a table", source)
    try:
        return validate_engine_config(section)
    except ValidationError as exc:
        raise ConfigError(f"Invalid engine config: {exc}", source) from exc
