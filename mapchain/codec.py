"""Base64 VLQ codec for version 3 source maps.

Decodes a raw mapping table (the parsed JSON object) into generated-to-original
entries, answers point lookups by generated coordinate, and builds raw tables
back from entries.

Coordinates follow the usual source map API conventions: lines are 1-based,
columns are 0-based. The encoded ``mappings`` string stores 0-based lines.
"""

from __future__ import annotations

from bisect import bisect_left, bisect_right
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional

from .config import SOURCE_MAP_VERSION
from .errors import CodecError, SectionsUnsupportedError

BASE64_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"
_BASE64_VALUES = {ch: i for i, ch in enumerate(BASE64_ALPHABET)}

VLQ_SHIFT = 5
VLQ_BASE = 1 << VLQ_SHIFT
VLQ_MASK = VLQ_BASE - 1
VLQ_CONTINUATION = VLQ_BASE


def encode_vlq(value: int) -> str:
    """Encode one signed integer as base64 VLQ."""
    vlq = ((-value) << 1) | 1 if value < 0 else value << 1
    digits = []
    while True:
        digit = vlq & VLQ_MASK
        vlq >>= VLQ_SHIFT
        if vlq:
            digit |= VLQ_CONTINUATION
        digits.append(BASE64_ALPHABET[digit])
        if not vlq:
            return "".join(digits)


def decode_vlq(segment: str) -> List[int]:
    """Decode every base64 VLQ value in ``segment``."""
    values: List[int] = []
    accum = 0
    shift = 0
    for ch in segment:
        digit = _BASE64_VALUES.get(ch)
        if digit is None:
            raise CodecError(f"Invalid base64 VLQ character {ch!r} in segment {segment!r}")
        accum += (digit & VLQ_MASK) << shift
        if digit & VLQ_CONTINUATION:
            shift += VLQ_SHIFT
            continue
        negative = accum & 1
        accum >>= 1
        values.append(-accum if negative else accum)
        accum = 0
        shift = 0
    if shift:
        raise CodecError(f"Truncated base64 VLQ segment {segment!r}")
    return values


@dataclass(frozen=True)
class Mapping:
    """One decoded entry. ``source`` and ``name`` are indices into the table lists."""

    generated_line: int
    generated_column: int
    source: Optional[int] = None
    original_line: Optional[int] = None
    original_column: Optional[int] = None
    name: Optional[int] = None


def decode_mappings(text: str, source_count: int, name_count: int = 0) -> List[Mapping]:
    """Decode a ``mappings`` string, checking indices against the table lists."""
    mappings: List[Mapping] = []
    source = original_line = original_column = name = 0

    for line_index, line_text in enumerate(text.split(";")):
        generated_column = 0
        for segment in line_text.split(","):
            if not segment:
                continue
            fields = decode_vlq(segment)
            if len(fields) not in (1, 4, 5):
                raise CodecError(f"Segment {segment!r} has {len(fields)} fields; expected 1, 4 or 5")

            generated_column += fields[0]
            if generated_column < 0:
                raise CodecError(f"Negative generated column on line {line_index + 1}")
            if len(fields) == 1:
                mappings.append(Mapping(line_index + 1, generated_column))
                continue

            source += fields[1]
            original_line += fields[2]
            original_column += fields[3]
            if not 0 <= source < source_count:
                raise CodecError(
                    f"Source index {source} on line {line_index + 1} is outside the "
                    f"{source_count} declared source(s)"
                )
            if original_line < 0 or original_column < 0:
                raise CodecError(f"Negative original position on line {line_index + 1}")

            name_index = None
            if len(fields) == 5:
                name += fields[4]
                if not 0 <= name < name_count:
                    raise CodecError(
                        f"Name index {name} on line {line_index + 1} is outside the "
                        f"{name_count} declared name(s)"
                    )
                name_index = name

            mappings.append(
                Mapping(
                    generated_line=line_index + 1,
                    generated_column=generated_column,
                    source=source,
                    original_line=original_line + 1,
                    original_column=original_column,
                    name=name_index,
                )
            )
    return mappings


def encode_mappings(mappings: Iterable[Mapping]) -> str:
    """Encode entries sorted by generated position into a ``mappings`` string."""
    lines: List[str] = []
    segments: List[str] = []
    current_line = 1
    previous_column = 0
    previous_source = previous_line = previous_original_column = previous_name = 0

    for mapping in mappings:
        while current_line < mapping.generated_line:
            lines.append(",".join(segments))
            segments = []
            previous_column = 0
            current_line += 1

        parts = [encode_vlq(mapping.generated_column - previous_column)]
        previous_column = mapping.generated_column

        if mapping.source is not None:
            original_line = mapping.original_line - 1
            parts.append(encode_vlq(mapping.source - previous_source))
            parts.append(encode_vlq(original_line - previous_line))
            parts.append(encode_vlq(mapping.original_column - previous_original_column))
            previous_source = mapping.source
            previous_line = original_line
            previous_original_column = mapping.original_column

            if mapping.name is not None:
                parts.append(encode_vlq(mapping.name - previous_name))
                previous_name = mapping.name

        segments.append("".join(parts))

    lines.append(",".join(segments))
    return ";".join(lines)


def _string_list(raw: Dict[str, Any], key: str, keep_null: bool = False) -> List[Optional[str]]:
    value = raw.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise CodecError(f"'{key}' must be a list")
    items: List[Optional[str]] = []
    for item in value:
        if item is None:
            items.append(None if keep_null else "")
            continue
        if not isinstance(item, str):
            raise CodecError(f"'{key}' entries must be strings, got {item!r}")
        items.append(item)
    return items


class MappingConsumer:
    """Decoded, lookup-ready view of a raw mapping table."""

    def __init__(self, raw: Any):
        if not isinstance(raw, dict):
            raise CodecError("Mapping table must be a JSON object")
        if "sections" in raw:
            raise SectionsUnsupportedError('Mapping table uses the unsupported "sections" form')
        version = raw.get("version")
        if version != SOURCE_MAP_VERSION:
            raise CodecError(f"Unsupported source map version {version!r}")
        if not isinstance(raw.get("sources"), list):
            raise CodecError("Mapping table has no 'sources' list")
        mappings = raw.get("mappings")
        if not isinstance(mappings, str):
            raise CodecError("Mapping table has no 'mappings' string")

        # A null source has no file behind it.
        self.sources = _string_list(raw, "sources", keep_null=True)
        self.names = _string_list(raw, "names")
        decoded = decode_mappings(mappings, len(self.sources), len(self.names))
        self._mappings = sorted(decoded, key=lambda m: (m.generated_line, m.generated_column))

        self._by_line: Dict[int, List[Mapping]] = {}
        for mapping in self._mappings:
            self._by_line.setdefault(mapping.generated_line, []).append(mapping)
        self._columns = {
            line: [m.generated_column for m in entries] for line, entries in self._by_line.items()
        }

    def __len__(self) -> int:
        return len(self._mappings)

    def each_mapping(self) -> Iterator[Mapping]:
        """Yield every entry in generated order."""
        return iter(self._mappings)

    def original_position_for(self, line: int, column: int) -> Optional[Mapping]:
        """Return the entry covering ``line:column``.

        That is the entry on the same generated line with the greatest column
        not past ``column``. ``None`` when the line has no such entry or the
        entry carries no original position.
        """
        columns = self._columns.get(line)
        if not columns:
            return None
        index = bisect_right(columns, column) - 1
        if index < 0:
            return None
        index = bisect_left(columns, columns[index])
        mapping = self._by_line[line][index]
        if mapping.source is None:
            return None
        return mapping

    def source_at(self, mapping: Mapping) -> Optional[str]:
        return None if mapping.source is None else self.sources[mapping.source]

    def name_at(self, mapping: Mapping) -> Optional[str]:
        return None if mapping.name is None else self.names[mapping.name]


class MappingGenerator:
    """Accumulate entries and build a raw version 3 mapping table."""

    def __init__(self, file: Optional[str] = None):
        self.file = file
        self._sources: List[str] = []
        self._source_index: Dict[str, int] = {}
        self._names: List[str] = []
        self._name_index: Dict[str, int] = {}
        self._mappings: List[Mapping] = []

    def _intern(self, value: str, items: List[str], index: Dict[str, int]) -> int:
        if value not in index:
            index[value] = len(items)
            items.append(value)
        return index[value]

    def add_mapping(
        self,
        generated_line: int,
        generated_column: int,
        source: Optional[str] = None,
        original_line: Optional[int] = None,
        original_column: Optional[int] = None,
        name: Optional[str] = None,
    ) -> None:
        if generated_line < 1 or generated_column < 0:
            raise CodecError(f"Invalid generated position {generated_line}:{generated_column}")
        if source is None:
            self._mappings.append(Mapping(generated_line, generated_column))
            return
        if original_line is None or original_column is None or original_line < 1 or original_column < 0:
            raise CodecError(
                f"Invalid original position {original_line}:{original_column} for {source}"
            )

        source_index = self._intern(source, self._sources, self._source_index)
        name_index = None if name is None else self._intern(name, self._names, self._name_index)
        self._mappings.append(
            Mapping(generated_line, generated_column, source_index, original_line, original_column, name_index)
        )

    def to_json(self) -> Dict[str, Any]:
        ordered = sorted(self._mappings, key=lambda m: (m.generated_line, m.generated_column))
        unique: List[Mapping] = []
        for mapping in ordered:
            if unique and unique[-1] == mapping:
                continue
            unique.append(mapping)

        raw: Dict[str, Any] = {
            "version": SOURCE_MAP_VERSION,
            "sources": list(self._sources),
            "names": list(self._names),
            "mappings": encode_mappings(unique),
        }
        if self.file is not None:
            raw["file"] = self.file
        return raw
