"""TOML configuration loader.

Loads proxy, upstream and server settings from defaults.toml (or a
user-supplied file) and applies a small set of environment overrides.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path

from pydantic import ValidationError

from veilstream.schemas.config import VeilstreamConfig

logger = logging.getLogger(__name__)

# Default config directory relative to the veilstream package
_CONFIG_DIR = Path(__file__).parent / "config"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


def load_config(config_path: Path | None = None) -> VeilstreamConfig:
    """Load configuration from a TOML file.

    Args:
        config_path: Path to a TOML file. Defaults to veilstream/config/defaults.toml.

    Returns:
        VeilstreamConfig with file values and environment overrides applied.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the TOML contents are invalid.
    """
    path = config_path or _CONFIG_DIR / "defaults.toml"
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")

    with open(path, "rb") as f:
        try:
            raw = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML in {path}: {e}") from e

    _apply_env_overrides(raw)

    try:
        return VeilstreamConfig(
            proxy=raw.get("proxy", {}),
            upstream=raw.get("upstream", {}),
            server=raw.get("server", {}),
        )
    except ValidationError as e:
        raise ValueError(f"Invalid configuration in {path}: {e}") from e


def _apply_env_overrides(raw: dict) -> None:
    """Apply VEILSTREAM_* environment variables on top of file values."""
    reasoning = os.environ.get("VEILSTREAM_REASONING_ENABLED")
    if reasoning is not None:
        value = reasoning.strip().lower()
        if value in _TRUTHY:
            raw.setdefault("proxy", {})["reasoning_enabled"] = True
        elif value in _FALSY:
            raw.setdefault("proxy", {})["reasoning_enabled"] = False
        else:
            logger.warning("Ignoring VEILSTREAM_REASONING_ENABLED=%r", reasoning)

    model = os.environ.get("VEILSTREAM_MODEL")
    if model:
        raw.setdefault("upstream", {})["model"] = model
