"""Merge orchestration: open a file, flatten its chain, write the results."""

from __future__ import annotations

import logging
import os
from typing import Any, Iterable, List, Mapping, Optional, Union

from .artifact import ArtifactRegistry
from .config import MAP_SUFFIX
from .errors import MissingSourceMapError
from .models import ChainLink, FileSpec, MappedPosition, MergeOptions, MergeResult

logger = logging.getLogger(__name__)

FileLike = Union[FileSpec, Mapping[str, Any], str]


def _same_location(a: str, b: str) -> bool:
    return os.path.abspath(a) == os.path.abspath(b)


def merge_file(spec: FileLike, options: Optional[MergeOptions] = None) -> Optional[MergeResult]:
    """Flatten the source map chain of one file.

    Args:
        spec: Source file and destination of the flattened table. A bare
              string updates the file in place.
        options: Merge options. Defaults to :class:`MergeOptions` defaults.

    Returns:
        A :class:`MergeResult`, or None when the file has no source map and
        ``ignore_missing_source_maps`` is set.
    """
    spec = FileSpec.coerce(spec)
    options = options or MergeOptions()

    sources = spec.sources
    if not sources:
        raise ValueError("File spec has no source file")
    if len(sources) > 1:
        logger.warning("Multiple source files specified for a single target: %s", " ".join(sources))
    src = sources[0]
    dest = spec.dest or src

    registry = ArtifactRegistry(ignore_missing_sources=options.ignore_missing_sources)
    artifact = registry.open(src)
    if artifact.table is None:
        if options.ignore_missing_source_maps:
            logger.info("Skipping %s: no source map", src)
            return None
        raise MissingSourceMapError(
            'File does not have any source maps. If this is not an error, set "ignore_missing_source_maps".',
            src,
        )

    table = artifact.merge()
    if options.inline_sources:
        table = artifact.inline_sources()

    if options.inline_source_map:
        if dest != src:
            logger.warning("Ignoring destination %s: the source map is inlined into %s", dest, src)
        # The table is embedded; no separate file is written.
        artifact.inline_table()
    else:
        if dest != src:
            if os.path.dirname(os.path.abspath(dest)) != table.directory:
                logger.warning(
                    "Source map moved from %s to %s keeps sources relative to the old directory",
                    table.directory,
                    os.path.dirname(os.path.abspath(dest)),
                )
            table = artifact.retarget(dest)
        if _same_location(table.path, artifact.path):
            table = artifact.retarget(f"{table.path}{MAP_SUFFIX}")
        table.flush()
        artifact.set_reference(artifact.relative_path_from(table.path))
        artifact.persist()

    final = artifact.table
    logger.info("Merged source maps for %s", artifact.path)
    return MergeResult(
        src=artifact.path,
        table_path=final.path,
        inlined=options.inline_source_map,
        sources=list(final.source_paths),
        mappings=len(final),
    )


def merge(
    files: Union[FileLike, Iterable[FileLike]],
    options: Union[MergeOptions, Mapping[str, Any], None] = None,
) -> List[MergeResult]:
    """Merge the source map chains of one or many files, in order.

    ``options`` is overlaid onto the defaults. The first fatal error stops the
    batch and propagates.
    """
    if isinstance(options, MergeOptions):
        resolved_options = options
    else:
        resolved_options = MergeOptions().overlay(options)

    if isinstance(files, (FileSpec, str, Mapping)):
        specs = [files]
    else:
        specs = list(files)

    results = []
    for spec in specs:
        result = merge_file(spec, resolved_options)
        if result is not None:
            results.append(result)
    return results


def resolve(
    path: str,
    line: int,
    column: int,
    tolerate_gaps: bool = False,
    ignore_missing_sources: bool = True,
) -> MappedPosition:
    """Resolve one generated position of ``path`` to its true original position."""
    registry = ArtifactRegistry(ignore_missing_sources=ignore_missing_sources)
    artifact = registry.open(path)
    return artifact.resolve_position(line, column, tolerate_gaps)


def trace_chain(path: str, ignore_missing_sources: bool = True) -> List[ChainLink]:
    """Follow the first declared source from file to file.

    Stops at a file without a source map, at a table without sources, or when
    a file is reached twice.
    """
    registry = ArtifactRegistry(ignore_missing_sources=ignore_missing_sources)
    artifact = registry.open(path)
    links: List[ChainLink] = []
    seen = set()

    while artifact is not None:
        if artifact.path in seen:
            logger.warning("Source map chain of %s loops back to %s", path, artifact.path)
            break
        seen.add(artifact.path)

        table = artifact.table
        if table is None:
            links.append(ChainLink(path=artifact.path, table_path=None, embedded=False))
            break

        sources = [p for p in table.source_paths if p is not None]
        links.append(
            ChainLink(
                path=artifact.path,
                table_path=table.path,
                embedded=table.is_embedded,
                sources=sources,
            )
        )
        if not sources:
            break
        if len(sources) > 1:
            logger.warning("%s has multiple source files: %s", artifact.path, " ".join(sources))
        artifact = registry.get(sources[0])

    return links
