"""Exception hierarchy for source map chain resolution."""

from __future__ import annotations

from typing import Optional


class MapchainError(Exception):
    """Base error carrying a stable code and the file it concerns."""

    code = "E_MAPCHAIN"

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = path

    def __str__(self) -> str:
        if self.path is None:
            return f"[{self.code}] {self.message}"
        return f"[{self.code}] {self.message} ({self.path})"


class MissingSourceMapError(MapchainError):
    """Raised when an input file has no sourceMappingURL reference."""

    code = "E_NO_MAP"


class MappingTableError(MapchainError):
    """Raised when a referenced mapping table cannot be read or parsed."""

    code = "E_BAD_MAP"


class CodecError(MappingTableError):
    """Raised for malformed mappings, versions or out-of-range indices."""

    code = "E_CODEC"


class SectionsUnsupportedError(MappingTableError):
    """Raised for index maps using the ``sections`` form."""

    code = "E_SECTIONS"


class PositionNotFoundError(MapchainError):
    """Raised when a generated position has no original counterpart."""

    code = "E_NO_POSITION"

    def __init__(self, path: str, line: int, column: int, reason: str = "") -> None:
        message = f"Could not find original location of {path}:{line}:{column}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.artifact_path = path
        self.line = line
        self.column = column


class ChainCycleError(MapchainError):
    """Raised when a chain of mapping tables refers back to itself."""

    code = "E_CYCLE"

    def __init__(self, chain: tuple[str, ...], path: str) -> None:
        hops = " -> ".join(chain + (path,))
        super().__init__(f"Source map chain refers back to an earlier file: {hops}", path)
        self.chain = chain


class SourceNotFoundError(MapchainError):
    """Raised when a declared source is missing and missing sources are not ignored."""

    code = "E_NO_SOURCE"


class OutputTargetMissingError(MapchainError):
    """Raised when the file receiving an inlined table no longer exists."""

    code = "E_NO_TARGET"
