"""
Copyright (c) 2026, Chen Jie, Joungtao, Xuzheng Jiang
All rights reserved.
This source code is licensed under the BSD-2-Clause license found in the
LICENSE file in the root directory of this source tree.
"""

# heap_renderer.py
import logging
import math
from typing import Sequence

import matplotlib.patches as patches
from matplotlib.backends.backend_agg import FigureCanvasAgg
from matplotlib.figure import Figure

from analysis import BUCKET_LABELS
from common_types import Event, EventType
from layout_engine import Layout
from playback import RenderFrame
from utils import format_size

logger = logging.getLogger(__name__)

COLORS = {
    'allocated': '#238636',
    'free': '#da3633',
    'highlight': '#f0883e',
    'bg': '#0d1117',
    'text': '#8b949e',
    'bucket': '#388bfd',
}

EVENT_COLORS = {
    EventType.MALLOC: '#238636',
    EventType.FREE: '#da3633',
    EventType.COALESCE: '#d29922',
    EventType.EXTEND_HEAP: '#8b949e',
    EventType.SPLIT: '#a371f7',
}

TIMELINE_HEIGHT = 24


def event_color(event_type: EventType) -> str:
    return EVENT_COLORS.get(event_type, COLORS['text'])


def timeline_points(events: Sequence[Event], current: int, width: float) -> list[tuple[float, str, bool]]:
    """
    计算时间线上每个事件点的 (x, 颜色, 是否当前)。
    事件过密（每个事件不足半个像素）时按间隔抽样，但始终保留当前事件。
    """
    n = len(events)
    if n == 0:
        return []
    step = width / n
    stride = math.ceil(1 / step) if step < 0.5 else 1
    points = []
    for i, event in enumerate(events):
        if stride > 1 and i % stride != 0 and i != current:
            continue
        points.append(((i / n) * width, event_color(event.type), i == current))
    return points


def _draw_heap(ax, layout: Layout, frame: RenderFrame, width: float, height: float):
    ax.set_xlim(0, width)
    ax.set_ylim(height, 0)  # 与画布坐标一致，y 轴向下
    ax.set_facecolor(COLORS['bg'])
    ax.set_xticks([])
    ax.set_yticks([])

    highlight_offset = frame.event.offset if frame.event else -1
    for rect in layout.rects:
        block = rect.block
        ax.add_patch(patches.Rectangle(
            (rect.x, rect.y), max(rect.width - 0.5, 0.5), rect.height,
            facecolor=COLORS['allocated'] if block.allocated else COLORS['free'],
            linewidth=0,
        ))
        if block.offset == highlight_offset:
            ax.add_patch(patches.Rectangle(
                (rect.x + 1, rect.y + 1), max(rect.width - 2.5, 0.5), rect.height - 2,
                fill=False, edgecolor=COLORS['highlight'], linewidth=2,
            ))
        if rect.label:
            ax.text(rect.x + rect.width / 2, rect.y + rect.height / 2, rect.label,
                    color='white', fontsize=7, family='monospace',
                    ha='center', va='center', clip_on=True)


def _draw_timeline(ax, events: Sequence[Event], current: int, width: float):
    ax.set_xlim(0, width)
    ax.set_ylim(0, TIMELINE_HEIGHT)
    ax.set_facecolor(COLORS['bg'])
    ax.set_xticks([])
    ax.set_yticks([])
    for x, color, is_current in timeline_points(events, current, width):
        ax.plot(x, TIMELINE_HEIGHT / 2, 'o', color=color, markersize=6 if is_current else 2)
    if events:
        ax.axvline((current / len(events)) * width, color='white', linewidth=1)


def _draw_buckets(ax, buckets: Sequence[int]):
    ax.set_facecolor(COLORS['bg'])
    positions = list(range(len(buckets)))
    ax.barh(positions, buckets, color=COLORS['bucket'])
    ax.set_yticks(positions)
    ax.set_yticklabels(BUCKET_LABELS[:len(buckets)], fontsize=7)
    ax.invert_yaxis()
    ax.tick_params(axis='x', labelsize=7)
    ax.set_title("Free blocks by size", fontsize=8)


def render_frame(frame: RenderFrame, events: Sequence[Event], output_path: str, dpi: int = 100) -> str:
    """
    将一个渲染帧绘制成 PNG：堆布局、事件时间线和空闲桶统计。
    frame.layout 必须已经计算（会话需要设置 viewport）。
    """
    if frame.layout is None:
        raise ValueError("渲染帧缺少布局信息，请先为会话设置 viewport")

    layout = frame.layout
    heap_w = layout.row_width + 2 * layout.config.padding
    heap_h = max(layout.rows, 1) * layout.config.row_pitch + layout.config.padding
    fig_w = (heap_w + 260) / dpi
    fig_h = (heap_h + TIMELINE_HEIGHT + 60) / dpi

    fig = Figure(figsize=(fig_w, fig_h), dpi=dpi, facecolor=COLORS['bg'])
    FigureCanvasAgg(fig)
    grid = fig.add_gridspec(2, 2, width_ratios=[heap_w, 220], height_ratios=[heap_h, TIMELINE_HEIGHT])
    heap_ax = fig.add_subplot(grid[0, 0])
    timeline_ax = fig.add_subplot(grid[1, 0])
    bucket_ax = fig.add_subplot(grid[:, 1])

    _draw_heap(heap_ax, layout, frame, heap_w, heap_h)
    _draw_timeline(timeline_ax, events, frame.position, heap_w)
    _draw_buckets(bucket_ax, frame.buckets)

    metrics = frame.metrics
    title = (f"{frame.counter} | Heap {format_size(metrics.heap_size)} | "
             f"Alloc {format_size(metrics.total_alloc)} | Free {format_size(metrics.total_free)} | "
             f"Util {metrics.util:.1%} | Frag {metrics.frag:.1%}")
    if frame.event is not None:
        title += f"\n{frame.event.type.value} @ {hex(frame.event.offset)} ({format_size(frame.event.size)})"
    if frame.trace_op is not None:
        title += f" | {frame.trace_op.describe(frame.highlighted_op)}"
    fig.suptitle(title, color=COLORS['text'], fontsize=8, family='monospace')

    fig.savefig(output_path, dpi=dpi, facecolor=fig.get_facecolor())
    logger.info(f"事件 {frame.position} 已渲染至: {output_path}")
    return output_path
