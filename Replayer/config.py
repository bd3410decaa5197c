"""
Copyright (c) 2026, Chen Jie, Joungtao, Xuzheng Jiang
All rights reserved.
This source code is licensed under the BSD-2-Clause license found in the
LICENSE file in the root directory of this source tree.
"""

# config.py
from tap import Tap

class Config(Tap):
    """应用程序的配置模型"""

    # --- Input & Output ---
    input: str  # 轨迹文件路径 (.json 或 .json.zst)
    output_dir: str = "output"  # 输出目录
    clear_output_dir: bool = False  # 是否清空输出目录
    compact_json: bool = False  # 是否生成紧凑的JSON格式

    # --- Report Generation ---
    metrics: bool = False  # 是否生成逐事件的指标报告
    layout: bool = False  # 是否为选定事件生成布局报告
    render: bool = False  # 是否为选定事件渲染PNG图片

    # --- View ---
    events: list[int] = []  # 需要输出布局或图片的事件下标，为空时使用最后一个事件
    trace_ops: list[int] = []  # 额外输出这些 trace op 产生的第一个事件
    width: int = 1200  # 视口宽度 (像素)
    height: int = 600  # 视口高度 (像素)
    dpi: int = 100  # 渲染分辨率

    # --- Playback ---
    play: bool = False  # 是否在命令行中完整回放一遍
    speed: int = 10  # 播放速度，每帧前进 max(1, speed // 5) 个事件

    # --- Cache Management ---
    no_cache: bool = False  # 是否禁用缓存
    clear_cache: bool = False  # 是否清空缓存

    # --- Advanced Settings ---
    log_interval: int = 2000  # 日志间隔
    peak_window: int = 500  # 峰值检测窗口


# 全局配置实例
settings: Config = None


def initialize_config(args: list[str] | None = None) -> None:
    """解析命令行参数并初始化全局的 `settings` 对象"""
    global settings
    if settings is not None:
        return
    settings = Config(underscores_to_dashes=True).parse_args(args)
