# utils.py
import logging

def setup_logging(level: int = logging.INFO):
    """配置全局日志记录器"""
    # 创建根日志记录器
    root_logger = logging.getLogger()
    # 避免重复添加处理器
    if root_logger.hasHandlers():
        return

    root_logger.setLevel(level)

    # 创建控制台处理器
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)

    # 定义日志格式
    formatter = logging.Formatter(
        '[%(asctime)s]-%(levelname)s- %(message)s',
        datefmt='%H:%M:%S'
    )
    console_handler.setFormatter(formatter)

    root_logger.addHandler(console_handler)

def format_size(size: int) -> str:
    """将字节数格式化为 B / KB / MB，保留一位小数。"""
    if size >= 1048576:
        return f"{size / 1048576:.1f} MB"
    if size >= 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size} B"
