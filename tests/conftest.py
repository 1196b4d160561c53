"""Pytest configuration and fixtures for mapchain tests."""

import json
import shutil
import tempfile
from pathlib import Path
from types import SimpleNamespace
from typing import Callable, Generator, List, Tuple

import pytest

from mapchain.codec import MappingConsumer, MappingGenerator


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path: Path, monkeypatch):
    """Keep tests away from the user's ~/.mapchain and any local .mapchain.toml.

    The working directory is moved to an empty directory and the global config
    file is redirected into it.
    """
    home = tmp_path / "mapchain_home"
    monkeypatch.setattr("mapchain.config.BASE_DIR", home)
    monkeypatch.setattr("mapchain.config.CONFIG_FILE", home / "config.toml")
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def write_map() -> Callable[..., dict]:
    """Return a helper writing a source map built from ``(gen_line, gen_col, source, line, col[, name])`` tuples."""

    def _write(path: Path, entries: List[Tuple], **extra) -> dict:
        generator = MappingGenerator()
        for entry in entries:
            generator.add_mapping(*entry)
        raw = generator.to_json()
        raw.update(extra)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(raw), encoding="utf-8")
        return raw

    return _write


@pytest.fixture
def decode_entries() -> Callable[[dict], list]:
    """Return a helper listing a raw table's entries as plain tuples."""

    def _decode(raw: dict) -> list:
        consumer = MappingConsumer(raw)
        return [
            (
                m.generated_line,
                m.generated_column,
                consumer.source_at(m),
                m.original_line,
                m.original_column,
                consumer.name_at(m),
            )
            for m in consumer.each_mapping()
        ]

    return _decode


APP_TS = '''function greet(name: string) {
  return "hi " + name;
}
greet("x");
'''

INTERMEDIATE_JS = '''function greet(name) {
  return "hi " + name;
}
greet("x");
//# sourceMappingURL=intermediate.js.map
'''

OUT_JS = '''function greet(n){return"hi "+n}greet("x");
//# sourceMappingURL=out.js.map
'''


@pytest.fixture
def chain_project(temp_dir: Path, write_map) -> SimpleNamespace:
    """Three-stage chain: out.js -> intermediate.js -> app.ts.

    intermediate.js.map:  1:0 -> app.ts 1:0, 1:10 -> 2:4, 2:0 -> 3:2 (greet)
    out.js.map:           1:0 -> 1:0, 1:5 -> 1:10, 1:20 -> 2:0 (a),
                          1:30 -> 2:7, 1:40 -> 5:0 (no entry in intermediate.js.map)
    """
    app = temp_dir / "app.ts"
    intermediate = temp_dir / "intermediate.js"
    out = temp_dir / "out.js"

    app.write_text(APP_TS, encoding="utf-8")
    intermediate.write_text(INTERMEDIATE_JS, encoding="utf-8")
    out.write_text(OUT_JS, encoding="utf-8")

    write_map(
        temp_dir / "intermediate.js.map",
        [
            (1, 0, "app.ts", 1, 0),
            (1, 10, "app.ts", 2, 4),
            (2, 0, "app.ts", 3, 2, "greet"),
        ],
        file="intermediate.js",
    )
    write_map(
        temp_dir / "out.js.map",
        [
            (1, 0, "intermediate.js", 1, 0),
            (1, 5, "intermediate.js", 1, 10),
            (1, 20, "intermediate.js", 2, 0, "a"),
            (1, 30, "intermediate.js", 2, 7),
            (1, 40, "intermediate.js", 5, 0),
        ],
        file="out.js",
    )

    return SimpleNamespace(
        root=temp_dir,
        app=app,
        intermediate=intermediate,
        out=out,
        out_map=temp_dir / "out.js.map",
        intermediate_map=temp_dir / "intermediate.js.map",
    )


@pytest.fixture
def merged_entries() -> list:
    """Entries expected in out.js's flattened table."""
    app = "app.ts"
    return [
        (1, 0, app, 1, 0, None),
        (1, 5, app, 2, 4, None),
        (1, 20, app, 3, 2, "greet"),
        (1, 30, app, 3, 2, "greet"),
    ]
