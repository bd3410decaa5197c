"""
Copyright (c) 2026, Chen Jie, Joungtao, Xuzheng Jiang
All rights reserved.
This source code is licensed under the BSD-2-Clause license found in the
LICENSE file in the root directory of this source tree.
"""

# analysis.py
import bisect
import logging
from typing import Any, Iterable, Sequence

from common_types import Block, HeapState, Metrics

logger = logging.getLogger(__name__)

# 13 个空闲块大小桶的上界，最后一个桶没有上界
BUCKET_BOUNDS = (64, 128, 512, 1024, 4096, 8192, 16384,
                 32768, 65536, 131072, 262144, 524288)
BUCKET_COUNT = len(BUCKET_BOUNDS) + 1
BUCKET_LABELS = (
    '≤64', '≤128', '≤512', '≤1K', '≤4K', '≤8K', '≤16K',
    '≤32K', '≤64K', '≤128K', '≤256K', '≤512K', '>512K',
)


def impact_score(frag_ratio: float, util: float) -> float:
    """
    计算内存影响分数：碎片率越高、利用率越高，影响越大。
    Args:
        frag_ratio (float): 碎片率
        util (float): 利用率，即 1 - 空闲率
    Returns:
        float: 影响分数
    """
    return frag_ratio * util


def compute_metrics(state: HeapState) -> Metrics:
    """
    计算单个堆状态的统计指标。纯函数，可用于任意 HeapState。
    - util = 已分配 / (已分配 + 空闲)，两者都为 0 时为 0
    - frag = 1 - 最大空闲块 / 空闲总量，没有空闲内存时为 0
    """
    total_alloc = total_free = largest_free = 0
    free_count = alloc_count = 0

    for block in state.blocks:
        if block.allocated:
            total_alloc += block.size
            alloc_count += 1
        else:
            total_free += block.size
            free_count += 1
            largest_free = max(largest_free, block.size)

    total = total_alloc + total_free
    util = total_alloc / total if total > 0 else 0.0
    frag = 1.0 - (largest_free / total_free) if total_free > 0 else 0.0

    return Metrics(
        total_alloc=total_alloc,
        total_free=total_free,
        largest_free=largest_free,
        free_count=free_count,
        alloc_count=alloc_count,
        util=util,
        frag=frag,
        heap_size=state.heap_size,
    )


def bucket_index(size: int) -> int:
    """返回上界 >= size 的最小桶的下标。"""
    return bisect.bisect_left(BUCKET_BOUNDS, size)


def bucket_histogram(blocks: Iterable[Block]) -> list[int]:
    """按大小桶统计空闲块数量，返回长度为 13 的计数列表。"""
    buckets = [0] * BUCKET_COUNT
    for block in blocks:
        if not block.allocated:
            buckets[bucket_index(block.size)] += 1
    return buckets


def fragmentation_series(states: Sequence[HeapState]) -> list[dict[str, Any]]:
    """
    为每个事件生成一条碎片数据记录，用于报告输出和峰值检测。
    """
    series = []
    for idx, state in enumerate(states):
        metrics = compute_metrics(state)
        series.append({
            "index": idx,
            "type": state.event.type.value if state.event else None,
            "util": round(metrics.util, 4),
            "frag": round(metrics.frag, 4),
            "impact_score": round(impact_score(metrics.frag, metrics.util), 4),
        })
    return series


def find_peaks(series: list[dict[str, Any]], window: int = 500) -> list[int]:
    """
    从 fragmentation_series 的结果中找到 impact_score 的局部极大值下标。
    数据点不足以进行窗口检测，或者没有检测到峰值时，返回全局最大值点。
    Args:
        series (list): fragmentation_series 的输出。
        window (int): 左右各比较的数据点数量。
    Returns:
        list: 峰值所在的事件下标。
    """
    if not series:
        return []

    n = len(series)
    scores = [entry["impact_score"] for entry in series]
    if n < 2 * window + 1:
        logger.debug(f"数据点 ({n}) 过少，无法使用窗口 ({window}) 检测局部峰值，返回全局最高点。")
        return [_global_max_index(series)]

    peaks = []
    for i in range(n):
        curr = scores[i]
        left = scores[max(0, i - window):i]
        right = scores[i + 1:min(n, i + window + 1)]
        # 严格大于左侧、不小于右侧，相同的平台只记录第一个点
        if all(curr > s for s in left) and all(curr >= s for s in right):
            peaks.append(series[i]["index"])

    if not peaks:
        logger.debug(f"使用窗口 ({window}) 未检测到局部峰值，返回全局最高点。")
        return [_global_max_index(series)]
    return peaks


def _global_max_index(series: list[dict[str, Any]]) -> int:
    # max 在相同值时返回第一个
    return max(series, key=lambda entry: entry["impact_score"])["index"]
