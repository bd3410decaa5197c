"""
Copyright (c) 2026, Chen Jie, Joungtao, Xuzheng Jiang
All rights reserved.
This source code is licensed under the BSD-2-Clause license found in the
LICENSE file in the root directory of this source tree.
"""

# layout_engine.py
import math
from dataclasses import dataclass, replace

from common_types import Block, HeapState
from utils import format_size


@dataclass(frozen=True)
class Viewport:
    """绘图区域的像素尺寸。"""
    width: float
    height: float


@dataclass(frozen=True)
class LayoutConfig:
    """行布局参数（像素 / 字节）。"""
    row_height: float = 28
    row_gap: float = 2
    padding: float = 8
    min_bytes_per_row: int = 1024
    label_min_width: float = 40

    @property
    def row_pitch(self) -> float:
        return self.row_height + self.row_gap


@dataclass(frozen=True)
class LayoutRect:
    """一个内存块在某一行上的可视片段。"""
    x: float
    y: float
    width: float
    height: float
    row: int
    byte_start: int
    byte_end: int
    block: Block
    label: str | None = None

    def contains(self, px: float, py: float) -> bool:
        return self.x <= px <= self.x + self.width and self.y <= py <= self.y + self.height


@dataclass(frozen=True)
class Layout:
    """把 [0, heap_size) 映射到多行网格后的结果。"""
    rects: tuple[LayoutRect, ...]
    bytes_per_row: int
    rows: int
    row_width: float
    config: LayoutConfig

    def row_y(self, row: int) -> float:
        return self.config.padding + row * self.config.row_pitch

    def x_for_byte(self, byte: int, row: int) -> float:
        """字节地址 -> 指定行上的像素横坐标。"""
        row_start = row * self.bytes_per_row
        return self.config.padding + ((byte - row_start) / self.bytes_per_row) * self.row_width

    def byte_at(self, x: float, row: int) -> float:
        """x_for_byte 的逆映射。"""
        if self.row_width <= 0:
            return float(row * self.bytes_per_row)
        return row * self.bytes_per_row + ((x - self.config.padding) / self.row_width) * self.bytes_per_row

    def rects_for(self, block: Block) -> list[LayoutRect]:
        return [r for r in self.rects if r.block == block]


def effective_heap_size(state: HeapState) -> int:
    """优先使用记录的堆大小，为 0 时退化为最后一个块的结束地址。"""
    if state.heap_size:
        return state.heap_size
    if state.blocks:
        return state.blocks[-1].end
    return 0


def compute_layout(state: HeapState, viewport: Viewport, config: LayoutConfig | None = None) -> Layout:
    """
    把堆状态映射为按行排列的矩形片段。

    bytes_per_row 只会随着堆变大而增大，行数由可用高度决定，
    因此整个堆总能放进可用行中。跨行的块被切成多个连续片段，
    每个块恰好有一个片段带有大小标签。
    """
    config = config or LayoutConfig()
    heap_size = effective_heap_size(state)
    if heap_size <= 0 or not state.blocks:
        return Layout(rects=(), bytes_per_row=0, rows=0, row_width=0.0, config=config)

    row_width = max(viewport.width - 2 * config.padding, 0)
    max_rows = max(1, math.floor((viewport.height - config.padding) / config.row_pitch))
    bytes_per_row = max(math.ceil(heap_size / max_rows), config.min_bytes_per_row)

    layout = Layout(rects=(), bytes_per_row=bytes_per_row, rows=max_rows,
                    row_width=row_width, config=config)
    rects: list[LayoutRect] = []
    for block in state.blocks:
        rects.extend(_block_segments(layout, block))
    return Layout(rects=tuple(rects), bytes_per_row=bytes_per_row, rows=max_rows,
                  row_width=row_width, config=config)


def _block_segments(layout: Layout, block: Block) -> list[LayoutRect]:
    config = layout.config
    bpr = layout.bytes_per_row
    start_byte, end_byte = block.offset, block.end

    start_row = start_byte // bpr
    # 0 大小的块也占据一个零宽片段，保证每个块都有标签位置
    end_row = max(start_row, (end_byte - 1) // bpr)

    segments = []
    for row in range(start_row, end_row + 1):
        # 超出可用行的部分只会出现在越界的畸形块上，直接裁掉
        if row >= layout.rows:
            break
        row_start = row * bpr
        draw_start = max(start_byte, row_start)
        draw_end = min(end_byte, row_start + bpr)
        x0 = layout.x_for_byte(draw_start, row)
        x1 = layout.x_for_byte(draw_end, row)
        segments.append(LayoutRect(
            x=x0, y=layout.row_y(row), width=x1 - x0, height=config.row_height,
            row=row, byte_start=draw_start, byte_end=draw_end, block=block,
        ))

    if not segments:
        return segments

    label_at = next((i for i, seg in enumerate(segments) if seg.width > config.label_min_width), None)
    if label_at is None:
        label_at = max(range(len(segments)), key=lambda i: (segments[i].width, -i))
    segments[label_at] = replace(segments[label_at], label=format_size(block.size))
    return segments


def hit_test(layout: Layout, x: float, y: float) -> Block | None:
    """指针坐标 -> 内存块，返回第一个命中的片段对应的块。"""
    for rect in layout.rects:
        if rect.contains(x, y):
            return rect.block
    return None
