"""
Copyright (c) 2026, Chen Jie, Joungtao, Xuzheng Jiang
All rights reserved.
This source code is licensed under the BSD-2-Clause license found in the
LICENSE file in the root directory of this source tree.
"""

# playback.py
import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Sequence

import analysis
import heap_reconstructor as Reconstructor
import trace_loader
from common_types import EMPTY_STATE, Event, HeapState, Metrics, TraceDocument, TraceOp
from layout_engine import Layout, LayoutConfig, Viewport, compute_layout

logger = logging.getLogger(__name__)

# 一个动画帧的间隔（毫秒）
FRAME_INTERVAL_MS = 16


def stride_for_speed(speed: int) -> int:
    """播放速度 -> 每帧前进的事件数，至少为 1。"""
    return max(1, speed // 5)


class PlaybackMode(str, Enum):
    PAUSED = "paused"
    PLAYING = "playing"


# --- 调度器 ---

class Scheduler:
    """可取消的延迟调用。取消只是不再调度下一次，不会打断正在执行的回调。"""

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> Any:
        raise NotImplementedError

    def cancel(self, handle: Any) -> None:
        raise NotImplementedError


class ManualScheduler(Scheduler):
    """由调用方手动推进的调度器，用于测试和命令行回放。"""

    def __init__(self):
        self._queue: list[tuple[int, Callable[[], None]]] = []
        self._ids = itertools.count()

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> int:
        handle = next(self._ids)
        self._queue.append((handle, callback))
        return handle

    def cancel(self, handle: int) -> None:
        self._queue = [(h, cb) for h, cb in self._queue if h != handle]

    @property
    def pending(self) -> int:
        return len(self._queue)

    def run_next(self) -> bool:
        """执行最早的一个回调，队列为空时返回 False。"""
        if not self._queue:
            return False
        _, callback = self._queue.pop(0)
        callback()
        return True

    def run_pending(self, limit: int | None = None) -> int:
        """持续执行直到队列为空或达到 limit 次，返回执行次数。"""
        count = 0
        while (limit is None or count < limit) and self.run_next():
            count += 1
        return count


class TkScheduler(Scheduler):
    """基于 Tk 组件 after/after_cancel 的调度器。"""

    def __init__(self, widget):
        self.widget = widget

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> str:
        return self.widget.after(int(delay_ms), callback)

    def cancel(self, handle: str) -> None:
        self.widget.after_cancel(handle)


# --- 渲染帧 ---

@dataclass(frozen=True)
class RenderFrame:
    """一次渲染所需的全部数据，交给外部的绘制层使用。"""
    position: int
    total: int
    state: HeapState
    metrics: Metrics
    buckets: tuple[int, ...]
    highlighted_op: int | None
    trace_op: TraceOp | None
    layout: Layout | None = None

    @property
    def event(self) -> Event | None:
        return self.state.event

    @property
    def counter(self) -> str:
        return f"{self.position + 1} / {self.total}"


class PlaybackSession:
    """
    一条已加载轨迹的回放会话。

    会话持有轨迹文档、缓存的 HeapState 序列和 TraceOp 反向索引，
    并维护当前位置和播放模式。位置始终被限制在 [0, N-1] 内，
    每次 seek/step/tick 都会触发一次渲染并通知所有监听者。
    """

    def __init__(
        self,
        scheduler: Scheduler | None = None,
        stride: int = 1,
        viewport: Viewport | None = None,
        layout_config: LayoutConfig | None = None,
        frame_interval_ms: int = FRAME_INTERVAL_MS,
        log_interval: int = 0,
    ):
        self.scheduler = scheduler or ManualScheduler()
        self.stride = max(1, stride)
        self.viewport = viewport
        self.layout_config = layout_config or LayoutConfig()
        self.frame_interval_ms = frame_interval_ms
        self.log_interval = log_interval

        self.document = TraceDocument(name="")
        self.states: list[HeapState] = []
        self.op_index: dict[int, tuple[int, ...]] = {}
        self.position = 0
        self.mode = PlaybackMode.PAUSED
        self.last_frame: RenderFrame | None = None

        self._pending: Any = None
        self._listeners: list[Callable[[RenderFrame], None]] = []

    # --- 加载 ---

    def load(self, document: TraceDocument, states: Sequence[HeapState] | None = None) -> RenderFrame:
        """
        加载新轨迹：先完整构建所有派生数据，再一次性替换并重置位置和播放模式。
        states 可以是从缓存中恢复的重建结果，长度必须与事件数一致。
        """
        if states is None or len(states) != len(document.events):
            states = Reconstructor.build_heap_states(document.events, self.log_interval)
        op_index = Reconstructor.build_op_index(document.events)

        self._cancel_pending()
        self.document = document
        self.states = list(states)
        self.op_index = op_index
        self.position = 0
        self.mode = PlaybackMode.PAUSED
        logger.info(f"会话已切换到轨迹 '{document.name}' ({len(self.states)} 个状态)")
        return self.render()

    def load_path(self, path: str | Path) -> RenderFrame:
        """从文件加载；失败时抛出 TraceLoadError，当前会话保持不变。"""
        return self.load(trace_loader.load_trace(path))

    # --- 查询 ---

    @property
    def total(self) -> int:
        return len(self.states)

    @property
    def last_index(self) -> int:
        return max(0, self.total - 1)

    def clamp(self, index: int) -> int:
        return max(0, min(index, self.last_index))

    def get_heap_state(self, index: int) -> HeapState:
        if not self.states:
            return EMPTY_STATE
        return self.states[self.clamp(index)]

    def get_metrics(self, index: int) -> Metrics:
        return analysis.compute_metrics(self.get_heap_state(index))

    def get_layout(self, index: int, viewport: Viewport) -> Layout:
        return compute_layout(self.get_heap_state(index), viewport, self.layout_config)

    def get_bucket_histogram(self, index: int) -> list[int]:
        """
        空闲块大小桶统计。位于最后一个事件且存在快照时，使用第一个快照中权威的 free_lists。
        """
        index = self.clamp(index)
        snapshot = self.document.snapshots[0] if self.document.snapshots else None
        if snapshot is not None and snapshot.free_lists and self.states and index == self.last_index:
            counts = list(snapshot.free_lists[:analysis.BUCKET_COUNT])
            return counts + [0] * (analysis.BUCKET_COUNT - len(counts))
        return analysis.bucket_histogram(self.get_heap_state(index).blocks)

    def event_indices_for_trace_op(self, op: int) -> list[int]:
        return Reconstructor.event_indices_for_trace_op(self.op_index, op)

    def trace_op_at(self, index: int) -> TraceOp | None:
        event = self.get_heap_state(index).event
        if event is None or event.trace_op < 0 or event.trace_op >= len(self.document.trace_ops):
            return None
        return self.document.trace_ops[event.trace_op]

    # --- 导航 ---

    def seek(self, index: int) -> RenderFrame:
        self.position = self.clamp(index)
        return self.render()

    def step(self, delta: int) -> RenderFrame:
        return self.seek(self.position + delta)

    def goto_trace_op(self, op: int) -> RenderFrame | None:
        """跳转到第 op 个 TraceOp 产生的第一个事件，没有对应事件时不做任何事。"""
        indices = self.event_indices_for_trace_op(op)
        if not indices:
            return None
        return self.seek(indices[0])

    def play(self) -> None:
        if self.mode is PlaybackMode.PLAYING:
            return
        if self.position >= self.last_index:
            logger.debug("已位于最后一个事件，忽略播放请求")
            return
        self.mode = PlaybackMode.PLAYING
        self._pending = self.scheduler.call_later(self.frame_interval_ms, self._tick)

    def pause(self) -> None:
        self.mode = PlaybackMode.PAUSED
        self._cancel_pending()

    def toggle_play(self) -> None:
        if self.mode is PlaybackMode.PLAYING:
            self.pause()
        else:
            self.play()

    def _tick(self) -> None:
        self._pending = None
        if self.mode is not PlaybackMode.PLAYING:
            return

        self.seek(self.position + self.stride)

        # 到达末尾后自动暂停，否则在本次渲染完成后才调度下一帧
        if self.position >= self.last_index:
            self.mode = PlaybackMode.PAUSED
            logger.info(f"回放到达末尾: {self.position + 1}/{self.total}")
            return
        self._pending = self.scheduler.call_later(self.frame_interval_ms, self._tick)

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self.scheduler.cancel(self._pending)
            self._pending = None

    # --- 渲染 ---

    def add_listener(self, listener: Callable[[RenderFrame], None]) -> None:
        self._listeners.append(listener)

    def resize(self, viewport: Viewport) -> RenderFrame:
        """视口变化只重新渲染当前位置，不触及重建结果。"""
        self.viewport = viewport
        return self.render()

    def render(self) -> RenderFrame:
        state = self.get_heap_state(self.position)
        event = state.event
        highlighted = event.trace_op if event is not None and event.trace_op >= 0 else None
        frame = RenderFrame(
            position=self.position,
            total=self.total,
            state=state,
            metrics=analysis.compute_metrics(state),
            buckets=tuple(self.get_bucket_histogram(self.position)),
            highlighted_op=highlighted,
            trace_op=self.trace_op_at(self.position),
            layout=compute_layout(state, self.viewport, self.layout_config) if self.viewport else None,
        )
        self.last_frame = frame
        for listener in self._listeners:
            listener(frame)
        return frame
