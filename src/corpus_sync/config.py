"""
Settings loading and logging setup for corpus-sync.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from corpus_sync.exceptions import ConfigError

# Environment variable naming a default settings file
CONFIG_ENV_VAR = "CORPUS_SYNC_CONFIG"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the content core."""
    database_path: str = ":memory:"
    seed_predefined: bool = True
    purge_legacy_ids: bool = False
    emergency_fallback: bool = True
    catalog_path: Optional[str] = None
    log_level: str = "INFO"
    default_user: str = "guest"


_FIELD_TYPES: Dict[str, tuple] = {
    "database_path": (str,),
    "seed_predefined": (bool,),
    "purge_legacy_ids": (bool,),
    "emergency_fallback": (bool,),
    "catalog_path": (str, type(None)),
    "log_level": (str,),
    "default_user": (str,),
}


def load_settings(
    source: Union[str, Path, Dict[str, Any], None] = None,
) -> Settings:
    """Load settings from a YAML file, YAML string, or dictionary.

    Args:
        source: Path to YAML file, YAML string, or parsed dictionary.
            When omitted, the file named by ``CORPUS_SYNC_CONFIG`` is
            used, or the defaults if that variable is unset.

    Returns:
        Settings object

    Raises:
        ConfigError: If the source cannot be parsed or holds bad values
        FileNotFoundError: If the file does not exist
    """
    if source is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        if not env_path:
            return Settings()
        source = Path(env_path)

    if isinstance(source, dict):
        data = source
    elif isinstance(source, Path) or (isinstance(source, str) and _is_file_path(source)):
        source_path = Path(source)
        if not source_path.exists():
            raise FileNotFoundError(f"File not found: {source_path}")
        data = load_yaml_file(source_path)
    else:
        # Assume it's a YAML string
        data = load_yaml_string(source)

    return _parse_settings(data)


def _is_file_path(s: str) -> bool:
    """Check if a string looks like a file path."""
    if "\n" in s:
        return False
    if "/" in s or "\\" in s:
        return True
    if s.endswith((".yaml", ".yml")):
        return True
    return False


def load_yaml_file(path: Path) -> Dict[str, Any]:
    """Load a YAML mapping from a file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        raise ConfigError(f"Empty YAML file: {path}")
    if not isinstance(data, dict):
        raise ConfigError("YAML root must be a mapping (dictionary)")

    return data


def load_yaml_string(s: str) -> Dict[str, Any]:
    """Load a YAML mapping from a string."""
    try:
        data = yaml.safe_load(s)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML: {e}") from e

    if data is None:
        raise ConfigError("Empty YAML content")
    if not isinstance(data, dict):
        raise ConfigError("YAML root must be a mapping (dictionary)")

    return data


def _parse_settings(data: Dict[str, Any]) -> Settings:
    """Check keys and value types, then build Settings."""
    known = {f.name for f in fields(Settings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown setting(s): {', '.join(unknown)}")

    for key, value in data.items():
        expected = _FIELD_TYPES[key]
        if not isinstance(value, expected):
            names = " or ".join(t.__name__ for t in expected)
            raise ConfigError(f"Setting '{key}' must be {names}")

    level = data.get("log_level")
    if level is not None and not isinstance(logging.getLevelName(level.upper()), int):
        raise ConfigError(f"Unknown log level: {level!r}")

    return Settings(**data)


def configure_logging(level: Union[str, int] = "INFO") -> None:
    """Attach a stream handler to the ``corpus_sync`` logger."""
    if isinstance(level, str):
        level = level.upper()
    root = logging.getLogger("corpus_sync")
    root.setLevel(level)
    if not any(getattr(h, "_corpus_sync", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._corpus_sync = True  # type: ignore[attr-defined]
        root.addHandler(handler)
