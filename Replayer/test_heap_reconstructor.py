"""
test_heap_reconstructor.py

Tests for folding allocator events into per-event heap states.
"""

import random

import pytest

from analysis import compute_metrics
from common_types import Block, EventType
from conftest import ev
from heap_reconstructor import (
    FOLD_HANDLERS,
    build_heap_states,
    build_op_index,
    event_indices_for_trace_op,
)


def assert_well_formed(state):
    offsets = [b.offset for b in state.blocks]
    assert offsets == sorted(offsets)
    for left, right in zip(state.blocks, state.blocks[1:]):
        assert left.end <= right.offset


class TestFoldRules:

    def test_every_event_type_has_a_handler(self):
        assert set(FOLD_HANDLERS) == set(EventType)

    def test_states_match_events_one_to_one(self, coalescing_events):
        states = build_heap_states(coalescing_events)
        assert len(states) == len(coalescing_events)
        for state, event in zip(states, coalescing_events):
            assert state.event is event

    def test_free_flips_existing_block(self, free_after_two_mallocs):
        states = build_heap_states(free_after_two_mallocs)
        assert states[2].blocks == (
            Block(0, 16, allocated=False),
            Block(16, 16, allocated=True),
        )

    def test_free_keeps_recorded_size(self):
        states = build_heap_states([ev("malloc", 0, 48), ev("free", 0, 16)])
        assert states[-1].blocks == (Block(0, 48, allocated=False),)

    def test_unreferenced_free_synthesizes_block(self):
        states = build_heap_states([ev("free", 128, 32), ev("malloc", 0, 16)])
        assert states[0].blocks == (Block(128, 32, allocated=False),)
        assert states[1].blocks == (
            Block(0, 16, allocated=True),
            Block(128, 32, allocated=False),
        )

    def test_malloc_overwrites_block_at_same_offset(self):
        states = build_heap_states([ev("malloc", 0, 16), ev("free", 0, 16), ev("malloc", 0, 32)])
        assert states[-1].blocks == (Block(0, 32, allocated=True),)

    def test_coalesce_merges_into_single_free_block(self, coalescing_events):
        states = build_heap_states(coalescing_events)
        assert states[-1].blocks == (Block(0, 32, allocated=False),)

    def test_coalesce_only_retires_blocks_starting_inside_range(self):
        events = [
            ev("malloc", 0, 16),
            ev("malloc", 16, 16),
            ev("malloc", 32, 16),
            ev("malloc", 48, 16),
            ev("free", 16, 16),
            ev("free", 32, 16),
            ev("coalesce", 16, 32),
        ]
        before, after = build_heap_states(events)[-2:]
        assert after.blocks == (
            Block(0, 16, allocated=True),
            Block(16, 32, allocated=False),
            Block(48, 16, allocated=True),
        )
        retired = {b.offset for b in before.blocks if 16 <= b.offset < 48}
        survivors = {b.offset for b in after.blocks if 16 <= b.offset < 48}
        assert retired == {16, 32}
        assert survivors == {16}

    def test_extend_heap_updates_size_only(self):
        states = build_heap_states([
            ev("malloc", 0, 16, heap_size=1024),
            ev("extend_heap", 1024, 1024, heap_size=2048),
        ])
        assert states[1].heap_size == 2048
        assert states[1].blocks == states[0].blocks

    def test_split_does_not_change_blocks(self):
        states = build_heap_states([ev("malloc", 0, 64), ev("split", 0, 64)])
        assert states[1].blocks == states[0].blocks

    def test_empty_log(self):
        assert build_heap_states([]) == []


class TestStateIsolation:

    def test_earlier_states_unaffected_by_later_folds(self, coalescing_events):
        states = build_heap_states(coalescing_events)
        assert states[0].blocks == (Block(0, 16, allocated=True),)
        assert states[1].blocks == (Block(0, 16, True), Block(16, 16, True))
        assert states[3].blocks == (Block(0, 16, False), Block(16, 16, False))

    def test_blocks_are_tuples(self, coalescing_events):
        for state in build_heap_states(coalescing_events):
            assert isinstance(state.blocks, tuple)

    def test_random_log_is_always_well_formed(self):
        rng = random.Random(1234)
        events = []
        expected = []
        tracked = {}
        cursor = heap = 0

        def free_runs():
            runs, run = [], []
            for off in sorted(tracked):
                _, allocated = tracked[off]
                if not allocated and run and sum(tracked[o][0] for o in run) + run[0] == off:
                    run.append(off)
                else:
                    if len(run) > 1:
                        runs.append(run)
                    run = [] if allocated else [off]
            if len(run) > 1:
                runs.append(run)
            return runs

        for _ in range(600):
            choice = rng.random()
            allocated = [o for o, (_, a) in tracked.items() if a]
            free = [o for o, (_, a) in tracked.items() if not a]
            runs = free_runs()
            if choice < 0.35 or not tracked:
                size = rng.choice([16, 32, 48, 64, 128])
                heap = max(heap, cursor + size)
                events.append(ev("malloc", cursor, size, heap_size=heap))
                tracked[cursor] = (size, True)
                cursor += size
            elif choice < 0.45 and free:
                # reuse a free block as a whole
                off = rng.choice(sorted(free))
                events.append(ev("malloc", off, tracked[off][0], heap_size=heap))
                tracked[off] = (tracked[off][0], True)
            elif choice < 0.7 and allocated:
                off = rng.choice(sorted(allocated))
                events.append(ev("free", off, tracked[off][0], heap_size=heap))
                tracked[off] = (tracked[off][0], False)
            elif choice < 0.85 and runs:
                run = rng.choice(runs)
                start = run[rng.randrange(len(run) - 1)]
                stop = rng.randrange(run.index(start) + 2, len(run) + 1)
                merged = run[run.index(start):stop]
                size = sum(tracked[o][0] for o in merged)
                events.append(ev("coalesce", start, size, heap_size=heap))
                for off in merged:
                    del tracked[off]
                tracked[start] = (size, False)
            elif choice < 0.92:
                heap += rng.choice([256, 4096])
                events.append(ev("extend_heap", cursor, heap - cursor, heap_size=heap))
            else:
                events.append(ev("split", 0, 0, heap_size=heap))
            expected.append(tuple(Block(o, s, a) for o, (s, a) in sorted(tracked.items())))

        assert {e.type for e in events} == set(EventType)
        states = build_heap_states(events)
        for state, blocks in zip(states, expected):
            assert_well_formed(state)
            assert state.blocks == blocks
            metrics = compute_metrics(state)
            assert metrics.total_alloc + metrics.total_free == sum(b.size for b in state.blocks)


class TestOpIndex:

    def test_indices_are_ascending_and_exact(self, trace_document):
        index = build_op_index(trace_document.events)
        for op in range(len(trace_document.trace_ops)):
            expected = [i for i, e in enumerate(trace_document.events) if e.trace_op == op]
            assert event_indices_for_trace_op(index, op) == expected

    def test_negative_trace_op_not_indexed(self, trace_document):
        index = build_op_index(trace_document.events)
        assert -1 not in index
        assert event_indices_for_trace_op(index, -1) == []

    def test_op_with_several_events(self, trace_document):
        index = build_op_index(trace_document.events)
        assert event_indices_for_trace_op(index, 0) == [1, 2]
        assert event_indices_for_trace_op(index, 3) == [5, 6]

    @pytest.mark.parametrize("op", [4, 99])
    def test_unknown_op_is_empty(self, trace_document, op):
        index = build_op_index(trace_document.events)
        assert event_indices_for_trace_op(index, op) == []
