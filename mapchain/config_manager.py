"""Configuration manager for mapchain using TOML files.

Default merge options are read from the ``[merge]`` table of two files:

- the global ``~/.mapchain/config.toml`` (``MAPCHAIN_HOME`` overrides the directory)
- a project-local ``.mapchain.toml`` in the working directory, which wins
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import toml

from . import config

logger = logging.getLogger(__name__)


DEFAULT_MERGE_OPTIONS: Dict[str, bool] = {
    "inline_sources": False,
    "inline_source_map": False,
    "ignore_missing_source_maps": False,
    "ignore_missing_sources": True,
}


def _read_toml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", path, exc)
        return {}


def _merge_section(path: Path) -> Dict[str, bool]:
    section = _read_toml(path).get("merge", {})
    if not isinstance(section, dict):
        logger.warning("Ignoring non-table [merge] entry in %s", path)
        return {}

    values: Dict[str, bool] = {}
    for key, value in section.items():
        key = key.replace("-", "_")
        if key not in config.MERGE_OPTION_KEYS:
            logger.warning("Unknown merge option '%s' in %s", key, path)
            continue
        if not isinstance(value, bool):
            logger.warning("Merge option '%s' in %s must be true or false", key, path)
            continue
        values[key] = value
    return values


def local_config_file(cwd: Optional[Path] = None) -> Path:
    return (cwd or Path.cwd()) / config.LOCAL_CONFIG_NAME


def load_merge_defaults(cwd: Optional[Path] = None) -> Dict[str, bool]:
    """Load default merge options.

    Built-in defaults are overlaid by the global config file, then by the
    project-local one.

    Args:
        cwd: Directory searched for ``.mapchain.toml``. Defaults to the
             current working directory.

    Returns:
        Mapping of every known option name to its effective value.
    """
    defaults = DEFAULT_MERGE_OPTIONS.copy()
    defaults.update(_merge_section(config.CONFIG_FILE))
    defaults.update(_merge_section(local_config_file(cwd)))
    return defaults


def describe_config(cwd: Optional[Path] = None) -> List[Tuple[str, bool, str]]:
    """Return ``(option, value, origin)`` rows for every merge option."""
    global_values = _merge_section(config.CONFIG_FILE)
    local_path = local_config_file(cwd)
    local_values = _merge_section(local_path)

    rows = []
    for key in config.MERGE_OPTION_KEYS:
        if key in local_values:
            rows.append((key, local_values[key], str(local_path)))
        elif key in global_values:
            rows.append((key, global_values[key], str(config.CONFIG_FILE)))
        else:
            rows.append((key, DEFAULT_MERGE_OPTIONS[key], "default"))
    return rows


def save_merge_defaults(values: Dict[str, bool]) -> Path:
    """Write merge options to the global config file.

    Other tables in the file are preserved.

    Args:
        values: Option names (dashes or underscores) mapped to booleans.

    Returns:
        Path of the written config file.
    """
    unknown = [k for k in values if k.replace("-", "_") not in config.MERGE_OPTION_KEYS]
    if unknown:
        raise ValueError(f"Unknown merge option(s): {', '.join(sorted(unknown))}")

    full = _read_toml(config.CONFIG_FILE)
    section = full.get("merge", {})
    if not isinstance(section, dict):
        section = {}
    for key, value in values.items():
        section[key.replace("-", "_")] = bool(value)
    full["merge"] = section

    config.CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    with open(config.CONFIG_FILE, "w", encoding="utf-8") as f:
        toml.dump(full, f)
    return config.CONFIG_FILE
