"""Configuration paths and fixed markers for mapchain."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(os.environ.get("MAPCHAIN_HOME", str(Path.home() / ".mapchain"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"
LOCAL_CONFIG_NAME = ".mapchain.toml"

# Reference comment and embedded payload markers
MAPPING_URL_PREFIX = "# sourceMappingURL="
DATA_URL_PREFIX = "data:application/json;base64,"
FILE_PROTOCOL_PREFIX = "file:/"

# Appended to an external table path that would overwrite its own artifact
MAP_SUFFIX = ".map"

SOURCE_MAP_VERSION = 3

MERGE_OPTION_KEYS = (
    "inline_sources",
    "inline_source_map",
    "ignore_missing_source_maps",
    "ignore_missing_sources",
)

