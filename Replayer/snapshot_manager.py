# snapshot_manager.py
import os
import pickle
import hashlib
import logging

from common_types import HeapState, TraceDocument

logger = logging.getLogger(__name__)

CACHE_VERSION = 1

def cache_key(document: TraceDocument) -> str:
    """
    根据轨迹名称和事件内容生成缓存键，事件内容变化时缓存自动失效。
    """
    digest = hashlib.sha1()
    for event in document.events:
        digest.update(repr(event.to_dict()).encode("utf-8"))
    return f"{document.name}_{digest.hexdigest()[:16]}"

def _cache_path(key: str, output_dir: str) -> str:
    return os.path.join(output_dir, f"cache_{key}.pkl")

def save_state_cache(states: list[HeapState], key: str, output_dir: str):
    """
    将重建出的 HeapState 序列保存到 Pickle 文件中。
    文件名格式: cache_<trace>_<digest>.pkl
    Args:
        states (list[HeapState]): 要缓存的堆状态序列。
        key (str): cache_key 生成的缓存键。
        output_dir (str): 缓存文件保存的目录。
    """
    os.makedirs(output_dir, exist_ok=True)
    cache_file = _cache_path(key, output_dir)
    with open(cache_file, "wb") as f:
        pickle.dump({"version": CACHE_VERSION, "states": states}, f)
    logger.info(f"堆状态已缓存至: {cache_file}")

def load_state_cache(key: str, output_dir: str) -> list[HeapState] | None:
    """
    加载缓存的 HeapState 序列。找不到、版本不符或文件损坏时返回 None。
    Args:
        key (str): cache_key 生成的缓存键。
        output_dir (str): 缓存文件所在的目录。
    Returns:
        list[HeapState] | None: 缓存的堆状态序列。
    """
    cache_file = _cache_path(key, output_dir)
    if not os.path.exists(cache_file):
        return None

    logger.info(f"发现缓存，正在加载: {cache_file}")
    try:
        with open(cache_file, "rb") as f:
            data = pickle.load(f)
    except (pickle.UnpicklingError, EOFError, AttributeError, ImportError) as e:
        logger.warning(f"加载缓存失败 {cache_file}: {e}。该缓存将被忽略。")
        return None

    if not isinstance(data, dict) or data.get("version") != CACHE_VERSION:
        logger.warning(f"缓存版本不匹配 {cache_file}，该缓存将被忽略。")
        return None
    return data["states"]

def clear_all_cache(output_dir: str) -> int:
    """
    删除输出文件夹中所有的缓存文件（cache_*.pkl）。

    Args:
        output_dir (str): 缓存文件所在的目录。

    Returns:
        int: 成功删除的文件数量。
    """
    if not os.path.exists(output_dir):
        logger.warning(f"目录 {output_dir} 不存在。")
        return 0

    cache_files = [f for f in os.listdir(output_dir) if f.startswith("cache_") and f.endswith(".pkl")]

    deleted_count = 0
    for cache_file in cache_files:
        cache_path = os.path.join(output_dir, cache_file)
        try:
            os.remove(cache_path)
            deleted_count += 1
        except OSError as e:
            logger.warning(f"无法删除缓存文件 {cache_path}: {e}")

    return deleted_count
