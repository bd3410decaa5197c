"""
test_trace_loader.py

Tests for reading trace documents from JSON and zstd-compressed JSON.
"""

import json

import pytest
import zstandard as zstd

from common_types import EventType, TraceLoadError, TraceOpType
from trace_loader import load_trace, parse_trace, trace_name_from_path


class TestParseTrace:

    def test_parses_all_sections(self, trace_dict):
        document = parse_trace(json.dumps(trace_dict), name="sample")
        assert document.name == "sample"
        assert len(document.events) == 7
        assert document.events[2].type is EventType.MALLOC
        assert document.events[2].request_size == 20
        assert document.events[0].request_size is None
        assert document.trace_ops[0].type is TraceOpType.ALLOC
        assert document.trace_ops[2].type is TraceOpType.FREE
        assert document.trace_ops[2].size is None
        assert document.snapshots[0].free_lists[1] == 1

    def test_accepts_long_op_names(self):
        document = parse_trace({"events": [], "trace_ops": [{"type": "realloc", "index": 2, "size": 8}]})
        assert document.trace_ops[0].type is TraceOpType.REALLOC
        assert document.trace_ops[0].describe() == "realloc(2, 8)"

    def test_optional_sections_default_empty(self):
        document = parse_trace(b'{"events": []}')
        assert document.events == ()
        assert document.trace_ops == ()
        assert document.snapshots == ()

    def test_missing_trace_op_defaults_to_unattributed(self):
        document = parse_trace({"events": [{"type": "split", "offset": 0, "size": 8, "heap_size": 8}]})
        assert document.events[0].trace_op == -1

    def test_null_trace_op_defaults_to_unattributed(self):
        document = parse_trace({"events": [{"type": "free", "offset": 0, "size": 8, "heap_size": 8, "trace_op": None}]})
        assert document.events[0].trace_op == -1

    def test_describe_keeps_zero_size(self):
        document = parse_trace({"events": [], "trace_ops": [{"type": "a", "index": 3, "size": 0}]})
        assert document.trace_ops[0].describe(7) == "alloc(3, 0) #7"

    @pytest.mark.parametrize("raw", [
        "{not json",
        "[]",
        '{"trace_ops": []}',
        '{"events": {}}',
        '{"events": [{"type": "realloc", "offset": 0, "size": 1, "heap_size": 1}]}',
        '{"events": [{"type": "malloc", "size": 1, "heap_size": 1}]}',
        '{"events": [{"type": "malloc", "offset": "0x10", "size": 1, "heap_size": 1}]}',
        '{"events": [], "trace_ops": [{"type": "x", "index": 0}]}',
        '{"events": [], "snapshots": [{"free_lists": ["a"]}]}',
        '{"events": [1]}',
        '{"events": [], "snapshots": "xy"}',
        '{"events": [], "trace_ops": [null]}',
        '{"events": [], "snapshots": [{"blocks": [3]}]}',
        '{"events": [], "snapshots": [{"free_lists": 5}]}',
    ])
    def test_malformed_documents_raise(self, raw):
        with pytest.raises(TraceLoadError):
            parse_trace(raw)


class TestLoadTrace:

    def test_load_plain_json(self, tmp_path, trace_dict):
        path = tmp_path / "binary.json"
        path.write_text(json.dumps(trace_dict))
        document = load_trace(path)
        assert document.name == "binary"
        assert len(document.events) == 7

    def test_load_zstd_json(self, tmp_path, trace_dict):
        path = tmp_path / "random.json.zst"
        path.write_bytes(zstd.ZstdCompressor().compress(json.dumps(trace_dict).encode()))
        document = load_trace(path)
        assert document.name == "random"
        assert document.events[-1].type is EventType.COALESCE

    def test_missing_file(self, tmp_path):
        with pytest.raises(TraceLoadError):
            load_trace(tmp_path / "absent.json")

    def test_corrupt_zstd(self, tmp_path):
        path = tmp_path / "bad.json.zst"
        path.write_bytes(b"definitely not zstd")
        with pytest.raises(TraceLoadError):
            load_trace(path)

    @pytest.mark.parametrize("filename, name", [
        ("amptjp.json", "amptjp"),
        ("amptjp.json.zst", "amptjp"),
        ("realloc", "realloc"),
    ])
    def test_trace_name_from_path(self, tmp_path, filename, name):
        assert trace_name_from_path(tmp_path / filename) == name
