"""Generated files and the sourceMappingURL references they carry.

Architecture:
- :class:`GeneratedArtifact` owns the text of one file and at most one
  :class:`~mapchain.mapping_table.MappingTable`, parsed from the last
  ``# sourceMappingURL=`` comment in the file.
- :class:`ArtifactRegistry` is the arena every artifact of one merge lives in,
  keyed by absolute path. Tables refer to their declared sources by path and
  look them up here, so no table owns another artifact.
"""

from __future__ import annotations

import base64
import json
import logging
import os
import re
from typing import Dict, Optional, Tuple

from .config import DATA_URL_PREFIX, MAPPING_URL_PREFIX
from .errors import (
    ChainCycleError,
    MappingTableError,
    MissingSourceMapError,
    OutputTargetMissingError,
    SourceNotFoundError,
)
from .mapping_table import MappingTable
from .models import MappedPosition

logger = logging.getLogger(__name__)

DATA_URL_PATTERN = re.compile(r"^data:application/json(?:;charset=[^;,]+)?;base64,", re.IGNORECASE)


def _read_text(path: str, errors: str = "strict") -> str:
    with open(path, "r", encoding="utf-8", errors=errors, newline="") as f:
        return f.read()


def _write_text(path: str, content: str) -> None:
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(content)


def split_reference(text: str) -> Tuple[str, str]:
    """Split the text following the reference marker into ``(value, suffix)``.

    The suffix is everything that must be re-emitted after a rewritten value:
    a closing ``*/`` with the whitespace before it, and any trailing whitespace.
    Matching surrounding quotes are removed from the value.
    """
    stripped = text.rstrip()
    trailing = text[len(stripped):]
    value = stripped.lstrip()

    close = ""
    if value.endswith("*/"):
        body = value[:-2].rstrip()
        close = value[len(body):]
        value = body

    if len(value) >= 2 and value[0] in "\"'" and value[-1] == value[0]:
        value = value[1:-1]
    return value, close + trailing


class ArtifactRegistry:
    """Arena of artifacts opened during one merge, keyed by absolute path."""

    def __init__(self, ignore_missing_sources: bool = True) -> None:
        self.ignore_missing_sources = ignore_missing_sources
        self._artifacts: Dict[str, GeneratedArtifact] = {}

    def __contains__(self, path: str) -> bool:
        return os.path.abspath(path) in self._artifacts

    def __len__(self) -> int:
        return len(self._artifacts)

    def get(self, path: str) -> Optional["GeneratedArtifact"]:
        return self._artifacts.get(os.path.abspath(path))

    def register(self, artifact: "GeneratedArtifact") -> None:
        self._artifacts[artifact.path] = artifact

    def open(self, path: str, tolerate_missing: bool = False) -> "GeneratedArtifact":
        """Return the artifact at ``path``, opening it on first use."""
        existing = self.get(path)
        if existing is not None:
            return existing
        return GeneratedArtifact.open(path, self, tolerate_missing=tolerate_missing)

    def open_source(self, path: str) -> "GeneratedArtifact":
        """Open a declared source of a mapping table."""
        if not self.ignore_missing_sources and path not in self and not os.path.exists(path):
            raise SourceNotFoundError("Declared source does not exist", path)
        return self.open(path, tolerate_missing=True)


class GeneratedArtifact:
    """A text file that may reference one mapping table."""

    def __init__(self, path: str, content: str, registry: ArtifactRegistry):
        self.path = os.path.abspath(path)
        self.content = content
        self.registry = registry
        # Offset of the reference value in ``content``; None without a reference.
        self.url_start: Optional[int] = None
        self.url_suffix = ""
        self.table: Optional[MappingTable] = None

    @classmethod
    def open(
        cls,
        path: str,
        registry: Optional[ArtifactRegistry] = None,
        tolerate_missing: bool = False,
    ) -> "GeneratedArtifact":
        """Read ``path`` and parse its mapping reference, if any.

        Args:
            path: File to open.
            registry: Arena to register the artifact in. A fresh one is
                      created when omitted.
            tolerate_missing: Treat a missing file as empty instead of failing.

        Returns:
            The registered artifact. Its ``table`` is None for a leaf.
        """
        if registry is None:
            registry = ArtifactRegistry()
        path = os.path.abspath(path)
        existing = registry.get(path)
        if existing is not None:
            return existing

        if tolerate_missing and not os.path.exists(path):
            logger.warning("Source %s does not exist; treating it as empty", path)
            content = ""
        else:
            # Declared sources are read only; undecodable bytes become U+FFFD.
            errors = "replace" if tolerate_missing else "strict"
            try:
                content = _read_text(path, errors)
            except (OSError, UnicodeDecodeError) as exc:
                raise SourceNotFoundError(f"Cannot read file: {exc}", path) from exc

        artifact = cls(path, content, registry)
        # Registered before parsing so a chain that loops back reuses this node.
        registry.register(artifact)
        artifact._parse_reference()
        logger.debug("Opened %s (%s)", path, "leaf" if artifact.table is None else "mapped")
        return artifact

    def _parse_reference(self) -> None:
        prefix_index = self.content.rfind(MAPPING_URL_PREFIX)
        if prefix_index == -1:
            self.url_start = None
            self.url_suffix = ""
            self.table = None
            return

        self.url_start = prefix_index + len(MAPPING_URL_PREFIX)
        url, self.url_suffix = split_reference(self.content[self.url_start:])
        self.table = self._table_from_url(url)

    def _table_from_url(self, url: str) -> MappingTable:
        match = DATA_URL_PATTERN.match(url)
        if match:
            payload = url[match.end():]
            payload += "=" * (-len(payload) % 4)
            try:
                raw = json.loads(base64.b64decode(payload).decode("utf-8"))
            except ValueError as exc:
                raise MappingTableError(f"Failed to parse embedded source map: {exc}", self.path) from exc
            table_path = self.path
        else:
            table_path = self.resolve_relative_path(url)
            try:
                raw = json.loads(_read_text(table_path))
            except OSError as exc:
                raise MappingTableError(
                    f"Failed to read external source map {table_path}: {exc}", self.path
                ) from exc
            except ValueError as exc:
                raise MappingTableError(
                    f"Failed to parse external source map {table_path}: {exc}", self.path
                ) from exc

        logger.debug("Loaded mapping table for %s from %s", self.path, "payload" if match else table_path)
        return MappingTable(raw, self.path, table_path, self.registry)

    def _require_table(self) -> MappingTable:
        if self.table is None:
            raise MissingSourceMapError("File does not reference a source map", self.path)
        return self.table

    def resolve_relative_path(self, path: str) -> str:
        return os.path.abspath(os.path.join(os.path.dirname(self.path), path))

    def relative_path_from(self, target: str) -> str:
        """Path of ``target`` relative to this file's directory, with forward slashes."""
        relative = os.path.relpath(os.path.abspath(target), os.path.dirname(self.path))
        return relative.replace(os.sep, "/")

    def set_reference(self, url: str) -> None:
        """Point the reference comment at ``url`` and reload the table from it."""
        if self.url_start is None:
            raise MissingSourceMapError("File has no sourceMappingURL to rewrite", self.path)
        self.content = f"{self.content[:self.url_start]}{url}{self.url_suffix}"
        self.table = self._table_from_url(url)

    def resolve_position(
        self,
        line: int,
        column: int,
        tolerate_gaps: bool = False,
        chain: Tuple[str, ...] = (),
    ) -> MappedPosition:
        """Map a position in this file to its true original position.

        A leaf file is its own original, so the position comes back unchanged.
        ``chain`` holds the files already visited above this one.
        """
        if self.path in chain:
            raise ChainCycleError(chain, self.path)
        if self.table is None:
            return MappedPosition(source=self.path, line=line, column=column)
        return self.table.resolve_position(line, column, tolerate_gaps, chain + (self.path,))

    def merge(self, tolerate_gaps: bool = True) -> MappingTable:
        self.table = self._require_table().merge(tolerate_gaps)
        return self.table

    def inline_sources(self) -> MappingTable:
        self.table = self._require_table().inline_sources()
        return self.table

    def retarget(self, path: str) -> MappingTable:
        self.table = self._require_table().with_path(path)
        return self.table

    def persist(self) -> None:
        _write_text(self.path, self.content)
        logger.debug("Wrote %s", self.path)

    def inline_table(self) -> None:
        """Embed the current table as a base64 payload and write the file."""
        table = self._require_table()
        if not os.path.exists(self.path):
            raise OutputTargetMissingError("Cannot inline source map into a file that no longer exists", self.path)
        if table.path != self.path:
            table = table.rebased(self.path)
        payload = base64.b64encode(table.to_json().encode("utf-8")).decode("ascii")
        self.set_reference(f"{DATA_URL_PREFIX}{payload}")
        self.persist()
