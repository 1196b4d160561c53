"""Mapping tables and chained position resolution.

A :class:`MappingTable` is a value: merging it, inlining its sources or moving
it returns a new table, which the owning artifact swaps into its slot. Every
construction decodes the raw table again, so the codec re-checks that the
entries only reference declared sources.
"""

from __future__ import annotations

import copy
import json
import logging
import os
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple
from urllib.parse import unquote, urlparse

from .codec import MappingConsumer, MappingGenerator
from .config import FILE_PROTOCOL_PREFIX
from .errors import MappingTableError, PositionNotFoundError
from .models import MappedPosition

if TYPE_CHECKING:
    from .artifact import ArtifactRegistry, GeneratedArtifact

logger = logging.getLogger(__name__)


def _posix(path: str) -> str:
    return path.replace(os.sep, "/")


class MappingTable:
    """One decoded mapping table and the artifacts it declares as sources."""

    def __init__(
        self,
        raw: Dict[str, Any],
        owner_path: str,
        path: str,
        registry: "ArtifactRegistry",
    ):
        self.raw = raw
        self.owner_path = os.path.abspath(owner_path)
        self.path = os.path.abspath(path)
        self.registry = registry

        try:
            self.consumer = MappingConsumer(raw)
        except MappingTableError as exc:
            if exc.path is None:
                exc.path = self.path
            raise

        self.source_paths: List[Optional[str]] = self.absolute_source_paths()
        for source_path in self.source_paths:
            if source_path is not None:
                registry.open_source(source_path)

    # ------------------------------------------------------------------
    # Path algebra. Everything is relative to the table's own location,
    # not the location of the file it annotates.
    # ------------------------------------------------------------------

    @property
    def directory(self) -> str:
        return os.path.dirname(self.path)

    def fix_file_url(self, source: str) -> str:
        """Turn a ``file:`` URL into a path relative to this table.

        dart-sass writes absolute ``file:///`` URLs into its source maps;
        every other stage writes paths relative to the map.
        """
        start = source.find(FILE_PROTOCOL_PREFIX)
        if start == -1:
            return source
        location = os.path.normpath(unquote(urlparse(source[start:]).path))
        return _posix(os.path.relpath(location, self.directory))

    def resolve_relative_path(self, path: str) -> str:
        return os.path.abspath(os.path.join(self.directory, path))

    def relative_path(self, path: str) -> str:
        return _posix(os.path.relpath(self.fix_file_url(path), self.directory))

    def absolute_source_root(self) -> str:
        return self.resolve_relative_path(self.raw.get("sourceRoot") or ".")

    def absolute_source_paths(self) -> List[Optional[str]]:
        root = self.absolute_source_root()
        return [
            None if source is None else os.path.abspath(os.path.join(root, self.fix_file_url(source)))
            for source in self.consumer.sources
        ]

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def children(self) -> List[Optional["GeneratedArtifact"]]:
        """Declared source artifacts, in declared order. None for a null source."""
        return [None if p is None else self.registry.open_source(p) for p in self.source_paths]

    @property
    def is_embedded(self) -> bool:
        return self.path == self.owner_path

    def __len__(self) -> int:
        return len(self.consumer)

    def to_json(self) -> str:
        return json.dumps(self.raw, separators=(",", ":"), ensure_ascii=False)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve_position(
        self,
        line: int,
        column: int,
        tolerate_gaps: bool = False,
        chain: Tuple[str, ...] = (),
    ) -> MappedPosition:
        """Follow ``line:column`` through this table and every table below it.

        Args:
            line: 1-based generated line in the owner's coordinates.
            column: 0-based generated column.
            tolerate_gaps: Return an empty or partial position instead of
                           raising when the chain has no entry for it.
            chain: Files already visited, for cycle detection.

        Returns:
            The position in the last file of the chain. Its name is the
            terminal one, or the name from the deepest table that gave one
            when the end of the chain has none.
        """
        mapping = self.consumer.original_position_for(line, column)
        if mapping is None:
            if tolerate_gaps:
                return MappedPosition()
            raise PositionNotFoundError(self.owner_path, line, column)

        position = MappedPosition(
            source=self.source_paths[mapping.source],
            line=mapping.original_line,
            column=mapping.original_column,
            name=self.consumer.name_at(mapping),
        )
        child = None if position.source is None else self.registry.get(position.source)
        if child is None:
            if tolerate_gaps:
                return position
            if position.source is None:
                reason = "entry points at a null source"
            else:
                reason = f"{position.source} was never opened"
            raise PositionNotFoundError(self.owner_path, line, column, reason=reason)

        resolved = child.resolve_position(position.line, position.column, tolerate_gaps, chain)
        if resolved.name is None and position.name is not None and not resolved.is_empty:
            resolved = replace(resolved, name=position.name)
        return resolved

    def merge(self, tolerate_gaps: bool = True) -> "MappingTable":
        """Flatten the whole chain below this table into a new table.

        Generated coordinates are kept; original positions, sources and names
        come from the end of the chain. Entries with no resolution are dropped
        when ``tolerate_gaps`` is set.
        """
        generator = MappingGenerator(file=self.relative_path(self.owner_path))
        dropped = 0
        for mapping in self.consumer.each_mapping():
            resolved = self.resolve_position(
                mapping.generated_line,
                mapping.generated_column,
                tolerate_gaps,
                chain=(self.owner_path,),
            )
            if resolved.is_empty or resolved.source is None:
                dropped += 1
                continue
            generator.add_mapping(
                mapping.generated_line,
                mapping.generated_column,
                source=resolved.source,
                original_line=resolved.line,
                original_column=resolved.column,
                name=resolved.name,
            )

        raw = generator.to_json()
        raw["sources"] = [self.relative_path(source) for source in raw["sources"]]
        if dropped:
            logger.info("Dropped %d unmapped position(s) while merging %s", dropped, self.owner_path)
        logger.debug("Merged %s into %d source(s)", self.owner_path, len(raw["sources"]))
        return MappingTable(raw, self.owner_path, self.path, self.registry)

    def inline_sources(self) -> "MappingTable":
        """Return a table carrying each declared source's text in ``sourcesContent``."""
        raw = dict(self.raw)
        raw["sourcesContent"] = [None if artifact is None else artifact.content for artifact in self.children]
        return MappingTable(raw, self.owner_path, self.path, self.registry)

    def with_path(self, path: str) -> "MappingTable":
        """Same content, persisted at ``path``."""
        table = copy.copy(self)
        table.path = os.path.abspath(path)
        return table

    def rebased(self, path: str) -> "MappingTable":
        """Move the table to ``path``, rewriting sources to stay correct there."""
        directory = os.path.dirname(os.path.abspath(path))
        raw = dict(self.raw)
        raw.pop("sourceRoot", None)
        raw["sources"] = [None if p is None else _posix(os.path.relpath(p, directory)) for p in self.source_paths]
        if "file" in raw:
            raw["file"] = _posix(os.path.relpath(self.owner_path, directory))
        return MappingTable(raw, self.owner_path, path, self.registry)

    def flush(self) -> None:
        """Write the table out, or embed it when it lives inside its owner."""
        if self.is_embedded:
            owner: Optional["GeneratedArtifact"] = self.registry.get(self.owner_path)
            if owner is None:
                raise MappingTableError("Owning file was never opened", self.owner_path)
            owner.table = self
            owner.inline_table()
            return

        target = Path(self.path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "w", encoding="utf-8", newline="") as f:
            f.write(self.to_json())
        logger.debug("Wrote mapping table %s", self.path)
