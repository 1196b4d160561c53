"""Data models shared by the mapping table, artifact and orchestration layers."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional, Union


@dataclass(frozen=True)
class MappedPosition:
    """A resolved position. ``line`` is 1-based and ``column`` 0-based."""

    source: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None
    name: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.line is None


@dataclass
class FileSpec:
    """One merge job. ``src`` may list several files; only the first is used."""

    src: Union[str, List[str]]
    dest: Optional[str] = None

    @classmethod
    def coerce(cls, value: Union["FileSpec", Mapping[str, Any], str]) -> "FileSpec":
        if isinstance(value, FileSpec):
            return value
        if isinstance(value, str):
            return cls(src=value, dest=value)
        return cls(src=value["src"], dest=value.get("dest"))

    @property
    def sources(self) -> List[str]:
        return [self.src] if isinstance(self.src, str) else list(self.src)


@dataclass
class MergeOptions:
    inline_sources: bool = False
    inline_source_map: bool = False
    ignore_missing_source_maps: bool = False
    ignore_missing_sources: bool = True

    def overlay(self, values: Optional[Mapping[str, Any]]) -> "MergeOptions":
        """Return a copy with every non-None entry of ``values`` applied."""
        known = {f.name for f in fields(self)}
        current: Dict[str, Any] = {name: getattr(self, name) for name in known}
        for key, value in (values or {}).items():
            key = key.replace("-", "_")
            if key not in known:
                raise ValueError(f"Unknown merge option '{key}'")
            if value is not None:
                current[key] = bool(value)
        return MergeOptions(**current)


@dataclass
class MergeResult:
    src: str
    table_path: str
    inlined: bool
    sources: List[str] = field(default_factory=list)
    mappings: int = 0


@dataclass
class ChainLink:
    """One hop of a chain: a generated file and the table it references."""

    path: str
    table_path: Optional[str]
    embedded: bool
    sources: List[str] = field(default_factory=list)
