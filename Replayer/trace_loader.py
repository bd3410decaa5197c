# trace_loader.py
import json
import logging
from pathlib import Path
from typing import Any

import zstandard as zstd

from common_types import TraceDocument, TraceLoadError

logger = logging.getLogger(__name__)

ZSTD_SUFFIX = ".zst"


def decompress_zst(path: Path) -> bytes:
    """解压一个 zstd 格式的压缩文件。"""
    dctx = zstd.ZstdDecompressor()
    with open(path, "rb") as f:
        reader = dctx.stream_reader(f)
        return reader.read()


def trace_name_from_path(path: Path) -> str:
    """traces/amptjp.json.zst -> amptjp"""
    name = path.name
    if name.endswith(ZSTD_SUFFIX):
        name = name[:-len(ZSTD_SUFFIX)]
    if name.endswith(".json"):
        name = name[:-len(".json")]
    return name


def read_trace_bytes(path: str | Path) -> bytes:
    """读取轨迹文件的原始内容，.zst 结尾的文件会先解压。"""
    path = Path(path)
    try:
        if path.suffix == ZSTD_SUFFIX:
            return decompress_zst(path)
        return path.read_bytes()
    except FileNotFoundError as e:
        raise TraceLoadError(f"找不到轨迹文件: {path}") from e
    except zstd.ZstdError as e:
        raise TraceLoadError(f"解压轨迹文件失败 {path}: {e}") from e
    except OSError as e:
        raise TraceLoadError(f"读取轨迹文件失败 {path}: {e}") from e


def parse_trace(raw: bytes | str | dict[str, Any], name: str = "trace") -> TraceDocument:
    """
    将原始 JSON（字节、字符串或已解析的字典）转换为 TraceDocument。
    任何结构或类型错误都统一转换为 TraceLoadError，不会返回部分结果。
    """
    try:
        data = raw if isinstance(raw, dict) else json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise TraceLoadError(f"轨迹 '{name}' 不是合法的 JSON: {e}") from e

    try:
        document = TraceDocument.from_dict(data, name=name)
    except KeyError as e:
        raise TraceLoadError(f"轨迹 '{name}' 缺少字段: {e}") from e
    except (TypeError, ValueError) as e:
        raise TraceLoadError(f"轨迹 '{name}' 字段不合法: {e}") from e

    logger.info(
        f"已加载轨迹 '{name}': {len(document.events)} 个事件, "
        f"{len(document.trace_ops)} 个 trace op, {len(document.snapshots)} 个快照"
    )
    return document


def load_trace(path: str | Path) -> TraceDocument:
    """从磁盘加载轨迹文档（.json 或 .json.zst）。"""
    path = Path(path)
    logger.info(f"正在加载轨迹: {path}")
    return parse_trace(read_trace_bytes(path), name=trace_name_from_path(path))
