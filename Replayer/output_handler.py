# output_handler.py
import os
import shutil
import json
import logging
from typing import Any

from common_types import HeapState, Metrics
from layout_engine import Layout

logger = logging.getLogger(__name__)

# 全局配置：默认启用美观输出
PRETTY_PRINT = True

def set_pretty_print(enable: bool):
    """设置JSON输出格式
    Args:
        enable: True=美观输出(带缩进), False=紧凑输出(无缩进)
    """
    global PRETTY_PRINT
    PRETTY_PRINT = enable

def _dump(data: Any, output_path: str):
    with open(output_path, "w", encoding="utf-8") as f:
        if PRETTY_PRINT:
            json.dump(data, f, indent=2, ensure_ascii=False)
        else:
            json.dump(data, f, separators=(',', ':'), ensure_ascii=False)

def remove_output_dir(output_dir: str = "output"):
    """
    删除指定的输出文件夹及其所有内容。

    Args:
        output_dir (str): 要删除的文件夹路径，默认为 "output"。
    """
    if os.path.exists(output_dir) and os.path.isdir(output_dir):
        shutil.rmtree(output_dir)
        logger.info(f"已删除文件夹: {output_dir}")
    else:
        logger.info(f"文件夹不存在: {output_dir}")

def write_fragmentation(series: list[dict[str, Any]], output_path: str):
    """将逐事件的碎片率数据写入JSON文件。"""
    if output_path:
        _dump(series, output_path)

def write_state(index: int, state: HeapState, metrics: Metrics, buckets: list[int], output_path: str):
    """写入单个事件的堆状态、指标和空闲桶统计。"""
    if not output_path:
        return
    _dump({
        "index": index,
        "state": state.to_dict(),
        "metrics": metrics.to_dict(),
        "buckets": buckets,
    }, output_path)

def write_layout(index: int, layout: Layout, output_path: str):
    """
    写入布局结果。每个片段为 [x, y, w, h, byte_start, byte_end, allocated, label]，
    与渲染层的矩形一一对应。
    """
    if not output_path:
        return
    segments = [
        [round(r.x, 3), round(r.y, 3), round(r.width, 3), round(r.height, 3),
         r.byte_start, r.byte_end, int(r.block.allocated), r.label]
        for r in layout.rects
    ]
    _dump({
        "index": index,
        "bytes_per_row": layout.bytes_per_row,
        "rows": layout.rows,
        "row_width": layout.row_width,
        "segments": segments,
    }, output_path)
