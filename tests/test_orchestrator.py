"""End-to-end tests for merging source map chains."""

import base64
import json
import logging
from pathlib import Path

import pytest

from mapchain.artifact import GeneratedArtifact
from mapchain.errors import MissingSourceMapError, SourceNotFoundError
from mapchain.models import FileSpec, MappedPosition, MergeOptions
from mapchain.orchestrator import merge, merge_file, resolve, trace_chain


def _embedded_table(path: Path) -> dict:
    content = path.read_text()
    prefix = "sourceMappingURL=data:application/json;base64,"
    payload = content[content.rindex(prefix) + len(prefix):].strip()
    return json.loads(base64.b64decode(payload).decode("utf-8"))


class TestMergeFile:
    """Tests for merging one file."""

    def test_in_place_merge(self, chain_project, decode_entries, merged_entries):
        result = merge_file(str(chain_project.out))

        raw = json.loads(chain_project.out_map.read_text())
        assert raw["sources"] == ["app.ts"]
        assert decode_entries(raw) == merged_entries
        assert chain_project.out.read_text().endswith("//# sourceMappingURL=out.js.map\n")
        assert result.table_path == str(chain_project.out_map)
        assert result.sources == [str(chain_project.app)]
        assert result.mappings == 4
        assert not result.inlined

    def test_intermediate_files_untouched(self, chain_project):
        before = chain_project.intermediate_map.read_text()

        merge_file(str(chain_project.out))

        assert chain_project.intermediate_map.read_text() == before

    def test_inline_source_map(self, chain_project, decode_entries, merged_entries):
        external_before = chain_project.out_map.read_text()

        result = merge_file(str(chain_project.out), MergeOptions(inline_source_map=True))

        raw = _embedded_table(chain_project.out)
        assert decode_entries(raw) == merged_entries
        assert chain_project.out.read_text().startswith('function greet(n){return"hi "+n}greet("x");\n')
        assert chain_project.out_map.read_text() == external_before
        assert result.inlined
        assert result.table_path == str(chain_project.out)

    def test_inline_sources(self, chain_project):
        merge_file(str(chain_project.out), MergeOptions(inline_sources=True))

        raw = json.loads(chain_project.out_map.read_text())
        assert raw["sourcesContent"] == [chain_project.app.read_text()]

    def test_custom_destination(self, chain_project):
        dest = chain_project.root / "merged.map"

        merge_file(FileSpec(src=str(chain_project.out), dest=str(dest)))

        assert json.loads(dest.read_text())["sources"] == ["app.ts"]
        assert chain_project.out.read_text().endswith("//# sourceMappingURL=merged.map\n")

    def test_embedded_input_gets_map_suffix(self, chain_project):
        inline = MergeOptions(inline_source_map=True)
        merge_file(str(chain_project.out), inline)
        chain_project.out_map.unlink()

        result = merge_file(str(chain_project.out))

        assert result.table_path == str(chain_project.out_map)
        assert json.loads(chain_project.out_map.read_text())["sources"] == ["app.ts"]
        assert chain_project.out.read_text().endswith("//# sourceMappingURL=out.js.map\n")

    def test_missing_source_map_fails(self, temp_dir: Path):
        path = temp_dir / "plain.js"
        path.write_text("var a;\n")

        with pytest.raises(MissingSourceMapError) as excinfo:
            merge_file(str(path))
        assert "plain.js" in str(excinfo.value)

    def test_missing_source_map_ignored(self, temp_dir: Path):
        path = temp_dir / "plain.js"
        path.write_text("var a;\n")

        result = merge_file(str(path), MergeOptions(ignore_missing_source_maps=True))

        assert result is None
        assert path.read_text() == "var a;\n"

    def test_missing_input_file(self, temp_dir: Path):
        with pytest.raises(SourceNotFoundError):
            merge_file(str(temp_dir / "missing.js"))

    def test_multiple_sources_use_first(self, chain_project, caplog):
        spec = {"src": [str(chain_project.out), str(chain_project.intermediate)], "dest": str(chain_project.out)}

        with caplog.at_level(logging.WARNING):
            result = merge_file(spec)

        assert result.src == str(chain_project.out)
        assert "Multiple source files" in caplog.text

    def test_non_utf8_source_is_read_lossily(self, chain_project):
        chain_project.app.write_bytes("// caf\xe9\ngreet();\n".encode("latin-1"))

        result = merge_file(str(chain_project.out), MergeOptions(inline_sources=True))

        raw = json.loads(chain_project.out_map.read_text())
        assert raw["sourcesContent"] == ["// caf\ufffd\ngreet();\n"]
        assert result.sources == [str(chain_project.app)]

    def test_null_source_entries_are_dropped(self, temp_dir: Path):
        out = temp_dir / "out.js"
        out.write_text("x;\n//# sourceMappingURL=out.js.map\n")
        (temp_dir / "out.js.map").write_text(json.dumps({"version": 3, "sources": [None], "mappings": "AAAA"}))

        result = merge_file(str(out))

        raw = json.loads((temp_dir / "out.js.map").read_text())
        assert raw["sources"] == []
        assert result.mappings == 0

    def test_destination_in_other_directory(self, chain_project, caplog):
        dest = chain_project.root / "maps" / "out.js.map"

        with caplog.at_level(logging.WARNING):
            result = merge_file(FileSpec(src=str(chain_project.out), dest=str(dest)))

        assert json.loads(dest.read_text())["sources"] == ["app.ts"]
        assert chain_project.out.read_text().endswith("//# sourceMappingURL=maps/out.js.map\n")
        assert result.sources == [str(chain_project.root / "maps" / "app.ts")]
        assert "keeps sources relative to the old directory" in caplog.text


class TestMerge:
    """Tests for batches and option handling."""

    def test_batch_in_order(self, chain_project, temp_dir: Path):
        plain = temp_dir / "plain.js"
        plain.write_text("x")

        results = merge(
            [
                {"src": str(chain_project.out), "dest": str(chain_project.out)},
                {"src": str(plain), "dest": str(plain)},
            ],
            {"ignore_missing_source_maps": True},
        )

        assert [r.src for r in results] == [str(chain_project.out)]

    def test_single_spec(self, chain_project):
        results = merge(FileSpec(src=str(chain_project.out), dest=str(chain_project.out)))

        assert len(results) == 1

    def test_first_error_stops_batch(self, chain_project, temp_dir: Path):
        plain = temp_dir / "plain.js"
        plain.write_text("x")
        before = chain_project.out_map.read_text()

        with pytest.raises(MissingSourceMapError):
            merge([str(plain), str(chain_project.out)])

        assert chain_project.out_map.read_text() == before

    def test_unknown_option(self, chain_project):
        with pytest.raises(ValueError):
            merge(str(chain_project.out), {"inline_everything": True})

    def test_options_overlay_defaults(self):
        options = MergeOptions().overlay({"inline-sources": True, "inline_source_map": None})

        assert options == MergeOptions(inline_sources=True)


class TestTraceAndResolve:
    """Tests for chain inspection helpers."""

    def test_trace_chain(self, chain_project):
        links = trace_chain(str(chain_project.out))

        assert [link.path for link in links] == [
            str(chain_project.out),
            str(chain_project.intermediate),
            str(chain_project.app),
        ]
        assert links[0].table_path == str(chain_project.out_map)
        assert links[0].sources == [str(chain_project.intermediate)]
        assert links[-1].table_path is None

    def test_trace_warns_on_multiple_sources(self, temp_dir: Path, write_map, caplog):
        (temp_dir / "a.ts").write_text("a")
        (temp_dir / "b.ts").write_text("b")
        (temp_dir / "out.js").write_text("//# sourceMappingURL=out.js.map\n")
        write_map(temp_dir / "out.js.map", [(1, 0, "a.ts", 1, 0), (1, 4, "b.ts", 1, 0)])

        with caplog.at_level(logging.WARNING):
            links = trace_chain(str(temp_dir / "out.js"))

        assert links[-1].path == str(temp_dir / "a.ts")
        assert "multiple source files" in caplog.text

    def test_trace_stops_on_loop(self, temp_dir: Path, write_map):
        (temp_dir / "a.js").write_text("//# sourceMappingURL=a.js.map\n")
        write_map(temp_dir / "a.js.map", [(1, 0, "a.js", 1, 0)])

        links = trace_chain(str(temp_dir / "a.js"))

        assert len(links) == 1

    def test_resolve(self, chain_project):
        position = resolve(str(chain_project.out), 1, 5)

        assert position == MappedPosition(source=str(chain_project.app), line=2, column=4)

    def test_resolve_after_merge_matches_before(self, chain_project):
        before = resolve(str(chain_project.out), 1, 30)

        merge_file(str(chain_project.out))

        assert resolve(str(chain_project.out), 1, 30) == before
        assert GeneratedArtifact.open(str(chain_project.out)).table.source_paths == [str(chain_project.app)]
