"""
Copyright (c) 2026, Chen Jie, Joungtao, Xuzheng Jiang
All rights reserved.
This source code is licensed under the BSD-2-Clause license found in the
LICENSE file in the root directory of this source tree.
"""

# heap_reconstructor.py
import logging
from typing import Callable, Iterable, Sequence

from common_types import Block, Event, EventType, HeapState

logger = logging.getLogger(__name__)

BlockMap = dict[int, Block]
"""offset -> Block。每一步折叠都返回新的映射，旧映射保持不变。"""


def _apply_malloc(blocks: BlockMap, event: Event) -> BlockMap:
    """在 offset 处插入或覆盖一个已分配块。"""
    updated = dict(blocks)
    updated[event.offset] = Block(event.offset, event.size, allocated=True)
    return updated


def _apply_free(blocks: BlockMap, event: Event) -> BlockMap:
    """
    将 offset 处的块标记为空闲并保留其记录的大小。
    如果该位置没有被跟踪的块（例如录制开始前分配的内存），则直接合成一个空闲块。
    """
    updated = dict(blocks)
    existing = updated.get(event.offset)
    if existing is not None:
        updated[event.offset] = Block(existing.offset, existing.size, allocated=False)
    else:
        logger.debug(f"free 事件引用了未跟踪的偏移 {event.offset}，合成大小为 {event.size} 的空闲块")
        updated[event.offset] = Block(event.offset, event.size, allocated=False)
    return updated


def _apply_coalesce(blocks: BlockMap, event: Event) -> BlockMap:
    """
    移除所有起始地址落在 [offset, offset+size) 内的块，再插入合并后的空闲块。
    被覆盖的块是被替换而不是被切分。
    """
    c_start, c_end = event.offset, event.end
    updated = {off: blk for off, blk in blocks.items() if not (c_start <= off < c_end)}
    updated[event.offset] = Block(event.offset, event.size, allocated=False)
    return updated


def _apply_noop(blocks: BlockMap, event: Event) -> BlockMap:
    """extend_heap 只更新堆大小，split 只用于时间线着色。"""
    return blocks


FOLD_HANDLERS: dict[EventType, Callable[[BlockMap, Event], BlockMap]] = {
    EventType.MALLOC: _apply_malloc,
    EventType.FREE: _apply_free,
    EventType.COALESCE: _apply_coalesce,
    EventType.EXTEND_HEAP: _apply_noop,
    EventType.SPLIT: _apply_noop,
}

# 新增事件类型时必须同时提供对应的折叠函数
_missing = set(EventType) - set(FOLD_HANDLERS)
if _missing:
    raise RuntimeError(f"以下事件类型缺少折叠函数: {sorted(t.value for t in _missing)}")


def fold_event(blocks: BlockMap, event: Event) -> BlockMap:
    """对单个事件执行折叠，返回新的块映射。"""
    return FOLD_HANDLERS[event.type](blocks, event)


def _freeze(blocks: BlockMap) -> tuple[Block, ...]:
    return tuple(sorted(blocks.values(), key=lambda b: b.offset))


def iter_heap_states(events: Iterable[Event], log_interval: int = 0):
    """
    逐个事件地折叠事件流并产出 HeapState。
    log_interval > 0 时每处理 log_interval 个事件输出一次进度日志。
    """
    blocks: BlockMap = {}
    for idx, event in enumerate(events):
        blocks = fold_event(blocks, event)
        if log_interval > 0 and (idx + 1) % log_interval == 0:
            logger.info(f"重建进度: {idx + 1} 个事件, 当前跟踪 {len(blocks)} 个块")
        yield HeapState(blocks=_freeze(blocks), heap_size=event.heap_size, event=event)


def build_heap_states(events: Sequence[Event], log_interval: int = 0) -> list[HeapState]:
    """
    将有序事件序列折叠为等长的 HeapState 列表，states[i] 反映事件 0..i 的累积效果。
    """
    states = list(iter_heap_states(events, log_interval))
    logger.info(f"已重建 {len(states)} 个堆状态")
    return states


def build_op_index(events: Sequence[Event]) -> dict[int, tuple[int, ...]]:
    """
    构建 TraceOp 下标 -> 事件下标列表 的反向索引（升序）。
    trace_op < 0 的事件不归属任何调用，不会被索引。
    """
    op_to_events: dict[int, list[int]] = {}
    for idx, event in enumerate(events):
        if event.trace_op >= 0:
            op_to_events.setdefault(event.trace_op, []).append(idx)
    return {op: tuple(indices) for op, indices in op_to_events.items()}


def event_indices_for_trace_op(op_index: dict[int, tuple[int, ...]], op: int) -> list[int]:
    """返回由第 op 个 TraceOp 产生的所有事件下标，未知的 op 返回空列表。"""
    return list(op_index.get(op, ()))
