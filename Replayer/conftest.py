"""
conftest.py

Shared fixtures and event builders for the replayer tests.
"""

import pytest

from common_types import Event, EventType, TraceDocument, TraceOp, TraceOpType


def ev(kind, offset=0, size=0, heap_size=4096, trace_op=-1, request_size=None):
    """Build an Event from a short type name."""
    return Event(
        type=EventType(kind),
        offset=offset,
        size=size,
        heap_size=heap_size,
        request_size=request_size,
        trace_op=trace_op,
    )


@pytest.fixture
def free_after_two_mallocs():
    return [
        ev("malloc", 0, 16),
        ev("malloc", 16, 16),
        ev("free", 0, 16),
    ]


@pytest.fixture
def coalescing_events():
    return [
        ev("malloc", 0, 16),
        ev("malloc", 16, 16),
        ev("free", 0, 16),
        ev("free", 16, 16),
        ev("coalesce", 0, 32),
    ]


@pytest.fixture
def trace_dict():
    """A small trace in the on-disk shape, with op codes as recorded."""
    return {
        "events": [
            {"type": "extend_heap", "offset": 0, "size": 4096, "heap_size": 4096, "trace_op": -1},
            {"type": "split", "offset": 0, "size": 4096, "heap_size": 4096, "trace_op": 0},
            {"type": "malloc", "offset": 0, "size": 32, "heap_size": 4096,
             "request_size": 20, "trace_op": 0},
            {"type": "malloc", "offset": 32, "size": 64, "heap_size": 4096, "trace_op": 1},
            {"type": "free", "offset": 0, "size": 32, "heap_size": 4096, "trace_op": 2},
            {"type": "free", "offset": 32, "size": 64, "heap_size": 4096, "trace_op": 3},
            {"type": "coalesce", "offset": 0, "size": 96, "heap_size": 4096, "trace_op": 3},
        ],
        "trace_ops": [
            {"type": "a", "index": 0, "size": 20},
            {"type": "a", "index": 1, "size": 60},
            {"type": "f", "index": 0},
            {"type": "f", "index": 1},
        ],
        "snapshots": [
            {"blocks": [{"offset": 0, "size": 96, "allocated": False}],
             "free_lists": [0, 1, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0]},
        ],
    }


@pytest.fixture
def trace_document(trace_dict):
    return TraceDocument.from_dict(trace_dict, name="sample")


@pytest.fixture
def strided_document():
    """Eleven mallocs of 16 bytes, one per trace op."""
    events = tuple(ev("malloc", i * 16, 16, trace_op=i) for i in range(11))
    ops = tuple(TraceOp(TraceOpType.ALLOC, i, 16) for i in range(11))
    return TraceDocument(name="strided", events=events, trace_ops=ops)
