"""
Copyright (c) 2026, Chen Jie, Joungtao, Xuzheng Jiang
All rights reserved.
This source code is licensed under the BSD-2-Clause license found in the
LICENSE file in the root directory of this source tree.
"""

# common_types.py
from dataclasses import dataclass
from enum import Enum
from typing import Any


class TraceLoadError(Exception):
    """轨迹文档缺失、损坏或字段不合法时抛出。"""


class EventType(str, Enum):
    """分配器事件类型（封闭集合）。"""
    MALLOC = "malloc"
    FREE = "free"
    COALESCE = "coalesce"
    EXTEND_HEAP = "extend_heap"
    SPLIT = "split"


class TraceOpType(str, Enum):
    """工作负载层面的调用类型。"""
    ALLOC = "alloc"
    FREE = "free"
    REALLOC = "realloc"


# 录制的轨迹中 trace_ops 使用单字母编码
TRACE_OP_CODES = {"a": TraceOpType.ALLOC, "f": TraceOpType.FREE, "r": TraceOpType.REALLOC}


def _as_int(data: dict[str, Any], key: str, default: int | None = None) -> int:
    value = data.get(key)
    if value is None:
        # 显式的 null 与缺失字段同等对待
        value = default
    if value is None:
        raise KeyError(key)
    # bool 是 int 的子类，需要单独排除
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"字段 '{key}' 应为整数，实际为 {value!r}")
    return value


def _entries(data: dict[str, Any], key: str, required: bool = False) -> list[dict[str, Any]]:
    """取出对象列表字段，列表本身或其中的元素类型不对时抛出 TypeError。"""
    if required:
        value = data[key]
    else:
        value = data.get(key)
        if value is None:
            return []
    if not isinstance(value, list):
        raise TypeError(f"'{key}' 必须是列表")
    for entry in value:
        if not isinstance(entry, dict):
            raise TypeError(f"'{key}' 中的元素必须是对象，实际为 {entry!r}")
    return value


@dataclass(frozen=True)
class Event:
    """
    一条被录制的分配器事件。事件在序列中的位置即其身份，创建后不可修改。
    """
    type: EventType
    offset: int # 相对堆起始的字节偏移
    size: int # 字节长度
    heap_size: int # 事件发生时的堆大小
    request_size: int | None = None
    """用户请求的大小（对齐前），可能缺失"""
    trace_op: int = -1
    """产生该事件的 TraceOp 下标，-1 表示无法归属到单个调用"""

    @property
    def end(self) -> int:
        return self.offset + self.size

    def to_dict(self) -> dict[str, Any]:
        result = {
            "type": self.type.value,
            "offset": self.offset,
            "size": self.size,
            "heap_size": self.heap_size,
            "trace_op": self.trace_op,
        }
        if self.request_size is not None:
            result["request_size"] = self.request_size
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'Event':
        """从字典创建 Event，字段类型不对时抛出 KeyError/TypeError/ValueError。"""
        request_size = data.get("request_size")
        if request_size is not None:
            request_size = _as_int(data, "request_size")
        return cls(
            type=EventType(data["type"]),
            offset=_as_int(data, "offset"),
            size=_as_int(data, "size"),
            heap_size=_as_int(data, "heap_size", 0),
            request_size=request_size,
            trace_op=_as_int(data, "trace_op", -1),
        )


@dataclass(frozen=True)
class Block:
    """某一时刻一段状态一致的连续字节区间。"""
    offset: int
    size: int
    allocated: bool

    @property
    def end(self) -> int:
        return self.offset + self.size

    def to_dict(self) -> dict[str, Any]:
        return {"offset": self.offset, "size": self.size, "allocated": self.allocated}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'Block':
        return cls(
            offset=_as_int(data, "offset"),
            size=_as_int(data, "size"),
            allocated=bool(data.get("allocated", False)),
        )


@dataclass(frozen=True)
class HeapState:
    """
    第 i 个事件之后重建出的完整堆状态。
    blocks 按 offset 升序排列；空轨迹时 event 为 None。
    """
    blocks: tuple[Block, ...]
    heap_size: int
    event: Event | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "heap_size": self.heap_size,
            "event": self.event.to_dict() if self.event else None,
            "blocks": [b.to_dict() for b in self.blocks],
        }


EMPTY_STATE = HeapState(blocks=(), heap_size=0, event=None)


@dataclass(frozen=True)
class Snapshot:
    """可选的权威快照，free_lists 为 13 个桶的空闲块计数。"""
    blocks: tuple[Block, ...] = ()
    free_lists: tuple[int, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'Snapshot':
        free_lists = data.get("free_lists") or []
        if not isinstance(free_lists, list) or not all(
            isinstance(c, int) and not isinstance(c, bool) for c in free_lists
        ):
            raise TypeError("free_lists 只能包含整数")
        return cls(
            blocks=tuple(Block.from_dict(b) for b in _entries(data, "blocks")),
            free_lists=tuple(free_lists),
        )


@dataclass(frozen=True)
class TraceOp:
    """原始工作负载中的一次调用，可展开为零个或多个 Event。"""
    type: TraceOpType
    index: int # 逻辑对象 id
    size: int | None = None

    def describe(self, position: int | None = None) -> str:
        """生成形如 alloc(3, 128) #7 的描述文本。"""
        args = f"{self.index}, {self.size}" if self.size is not None else f"{self.index}"
        text = f"{self.type.value}({args})"
        if position is not None:
            text += f" #{position}"
        return text

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'TraceOp':
        raw_type = data["type"]
        op_type = TRACE_OP_CODES.get(raw_type) or TraceOpType(raw_type)
        size = data.get("size")
        return cls(
            type=op_type,
            index=_as_int(data, "index"),
            size=_as_int(data, "size") if size is not None else None,
        )


@dataclass(frozen=True)
class TraceDocument:
    """加载后只读的轨迹文档。"""
    name: str
    events: tuple[Event, ...] = ()
    trace_ops: tuple[TraceOp, ...] = ()
    snapshots: tuple[Snapshot, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any], name: str = "trace") -> 'TraceDocument':
        if not isinstance(data, dict):
            raise TypeError("轨迹文档顶层必须是对象")
        return cls(
            name=name,
            events=tuple(Event.from_dict(e) for e in _entries(data, "events", required=True)),
            trace_ops=tuple(TraceOp.from_dict(op) for op in _entries(data, "trace_ops")),
            snapshots=tuple(Snapshot.from_dict(s) for s in _entries(data, "snapshots")),
        )


@dataclass
class Metrics:
    """单个 HeapState 的统计指标。"""
    total_alloc: int = 0
    total_free: int = 0
    largest_free: int = 0
    free_count: int = 0
    alloc_count: int = 0
    util: float = 0.0
    frag: float = 0.0
    heap_size: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_alloc": self.total_alloc,
            "total_free": self.total_free,
            "largest_free": self.largest_free,
            "free_count": self.free_count,
            "alloc_count": self.alloc_count,
            "util": self.util,
            "frag": self.frag,
            "heap_size": self.heap_size,
        }
