# === NAVMAP v1 ===
# {
#   "module": "PixivNovel.config.loader",
#   "purpose": "Configuration loading with file/env/CLI precedence",
#   "sections": [
#     {
#       "id": "strip-jsonc",
#       "name": "strip_jsonc",
#       "anchor": "function-strip-jsonc",
#       "kind": "function"
#     },
#     {
#       "id": "read-file",
#       "name": "_read_file",
#       "anchor": "function-read-file",
#       "kind": "function"
#     },
#     {
#       "id": "discover-config",
#       "name": "discover_config",
#       "anchor": "function-discover-config",
#       "kind": "function"
#     },
#     {
#       "id": "load-config",
#       "name": "load_config",
#       "anchor": "function-load-config",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Configuration Loading with File/Env/CLI Precedence

1. **File level**: ``appsettings.jsonc``, ``appsettings.json`` or
   ``appsettings.yaml`` (first found in the base directory), or an explicit path
2. **Environment level**: ``PIXIV_*`` variables override the file
3. **CLI level**: programmatic overrides win

Environment variables map onto field names:
  PIXIV_CONCURRENCY=4          →  concurrency=4
  PIXIV_REQUEST_DELAY_MS=0     →  request_delay_ms=0

A missing configuration file is not an error: defaults are used and an
error-level line is logged so the user notices.
"""

from __future__ import annotations

import json
import logging
import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional, Sequence

import yaml
from pydantic import ValidationError
from pydantic.alias_generators import to_snake

from PixivNovel.errors import ConfigError

from .models import NovelDownloadConfig

_LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_STEM = "appsettings"
CONFIG_SUFFIXES: Sequence[str] = (".jsonc", ".json", ".yaml", ".yml")

# Strings are matched first so comment markers inside them survive.
_JSONC_TOKEN_RE = re.compile(r'("(?:\\.|[^"\\])*")|//[^\n]*|/\*.*?\*/', re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r'("(?:\\.|[^"\\])*")|,(\s*[}\]])', re.DOTALL)


def strip_jsonc(text: str) -> str:
    """Remove ``//`` and ``/* */`` comments and trailing commas from JSONC text."""

    text = _JSONC_TOKEN_RE.sub(lambda m: m.group(1) or "", text)
    return _TRAILING_COMMA_RE.sub(lambda m: m.group(1) or m.group(2), text)


def _read_file(path: Path) -> dict[str, Any]:
    """
    Read a JSON, JSONC or YAML config file and snake_case its top-level keys.

    Raises:
        ConfigError: If the file cannot be read or parsed
    """
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        text = path.read_text(encoding="utf-8-sig")
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    suffix = path.suffix.lower()
    try:
        if suffix in (".yaml", ".yml"):
            data = yaml.safe_load(text) or {}
        elif suffix == ".jsonc":
            data = json.loads(strip_jsonc(text))
        elif suffix == ".json":
            data = json.loads(text)
        else:
            raise ConfigError(f"Unsupported config format: {suffix}. Use .jsonc, .json or .yaml")
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Invalid config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level")
    return {to_snake(str(key)): value for key, value in data.items()}


def discover_config(
    base_dir: Optional[Path] = None, stem: str = DEFAULT_CONFIG_STEM
) -> Optional[Path]:
    """Return the first ``<stem><suffix>`` file found in ``base_dir``."""

    base = base_dir or Path.cwd()
    for suffix in CONFIG_SUFFIXES:
        candidate = base / f"{stem}{suffix}"
        if candidate.is_file():
            return candidate
    return None


def _coerce_env_value(value: str) -> Any:
    try:
        return json.loads(value)
    except (json.JSONDecodeError, ValueError):
        return value


def _merge_env_overrides(data: dict[str, Any], env_prefix: str) -> dict[str, Any]:
    for env_key, env_value in os.environ.items():
        if not env_key.startswith(env_prefix):
            continue
        key = env_key[len(env_prefix) :].lower()
        field = NovelDownloadConfig.model_fields.get(key)
        if field is None:
            # e.g. PIXIV_CONFIG, consumed by the CLI itself
            continue
        # String fields (cookie, user agent, paths) are taken verbatim.
        if field.annotation is str:
            data[key] = env_value
        else:
            data[key] = _coerce_env_value(env_value)
        _LOGGER.debug("Environment override: %s → %s", env_key, key)
    return data


def _merge_cli_overrides(
    data: dict[str, Any], cli_overrides: Mapping[str, Any] | None
) -> dict[str, Any]:
    if not cli_overrides:
        return data
    for key, value in cli_overrides.items():
        if value is None:
            continue
        data[key] = value
        _LOGGER.debug("CLI override: %s = %r", key, value)
    return data


def load_config(
    path: str | Path | None = None,
    env_prefix: str = "PIXIV_",
    cli_overrides: Mapping[str, Any] | None = None,
    base_dir: Optional[Path] = None,
) -> NovelDownloadConfig:
    """
    Load NovelDownloadConfig from file, environment, and CLI with proper precedence.

    Args:
        path: Explicit config file; ``None`` discovers ``appsettings.*``
        env_prefix: Environment variable prefix
        cli_overrides: Overrides from the command line; ``None`` values are ignored
        base_dir: Directory searched when ``path`` is ``None`` (defaults to cwd)

    Returns:
        Validated NovelDownloadConfig instance

    Raises:
        ConfigError: If the file is unreadable or the merged values are invalid
    """
    data: dict[str, Any] = {}

    config_path = Path(path) if path else discover_config(base_dir)
    if config_path is not None:
        data = _read_file(config_path)
        _LOGGER.info("Loaded config from %s", config_path)
    else:
        _LOGGER.error("No config file found; using defaults")

    data = _merge_env_overrides(data, env_prefix)
    data = _merge_cli_overrides(data, cli_overrides)

    try:
        config = NovelDownloadConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Configuration validation failed: {e}") from e

    _LOGGER.debug("Configuration validated. Config hash: %s...", config.config_hash()[:8])
    return config
