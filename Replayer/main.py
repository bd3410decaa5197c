"""
Copyright (c) 2026, Chen Jie, Joungtao, Xuzheng Jiang
All rights reserved.
This source code is licensed under the BSD-2-Clause license found in the
LICENSE file in the root directory of this source tree.
"""

# main.py
import os
import sys
import logging

import analysis
import heap_renderer
import heap_reconstructor as Reconstructor
import output_handler as Output
import snapshot_manager as SnapshotMngr
import trace_loader
import utils
import config
from common_types import TraceLoadError
from layout_engine import Viewport
from playback import ManualScheduler, PlaybackSession, stride_for_speed

logger = logging.getLogger(__name__)


class MainProcessor:
    def __init__(self, settings: config.Config):
        self.settings = settings
        self.output_dir = settings.output_dir
        self.scheduler = ManualScheduler()
        self.session = PlaybackSession(
            scheduler=self.scheduler,
            stride=stride_for_speed(settings.speed),
            viewport=Viewport(settings.width, settings.height),
            log_interval=settings.log_interval,
        )

    def run(self):
        """执行完整的处理流程"""
        self._prepare()

        # 加载轨迹并重建堆状态
        self._load()

        # 逐事件指标与碎片峰值
        if self.settings.metrics:
            self._write_metrics()

        # 选定事件的布局与图片
        self._process_selected_events()

        # 命令行回放
        if self.settings.play:
            self._play()

        logger.info("所有处理完成。")

    def _prepare(self):
        """准备阶段：清空目录、清理缓存、设置输出格式"""
        if self.settings.clear_output_dir:
            Output.remove_output_dir(self.output_dir)
        os.makedirs(self.output_dir, exist_ok=True)

        if self.settings.clear_cache:
            deleted = SnapshotMngr.clear_all_cache(self.output_dir)
            logger.info(f"已清除 {deleted} 个缓存文件。")

        if self.settings.compact_json:
            Output.set_pretty_print(False)

    def _load(self):
        """加载轨迹文档，优先从缓存恢复重建结果"""
        logger.info("--- 阶段 1: 加载轨迹并重建堆状态 ---")
        document = trace_loader.load_trace(self.settings.input)

        states = None
        key = SnapshotMngr.cache_key(document)
        if not self.settings.no_cache:
            states = SnapshotMngr.load_state_cache(key, self.output_dir)
            if states is not None:
                logger.info("成功从缓存加载堆状态，跳过重建。")

        if states is None:
            states = Reconstructor.build_heap_states(document.events, self.settings.log_interval)
            if not self.settings.no_cache:
                SnapshotMngr.save_state_cache(states, key, self.output_dir)

        self.session.load(document, states)

    def _write_metrics(self):
        logger.info("--- 阶段 2: 计算逐事件指标 ---")
        series = analysis.fragmentation_series(self.session.states)
        frag_file = os.path.join(self.output_dir, f"{self.session.document.name}_fragmentation.json")
        Output.write_fragmentation(series, frag_file)
        logger.info(f"碎片数据 -> {frag_file}")

        peaks = analysis.find_peaks(series, self.settings.peak_window)
        if peaks:
            logger.info(f"碎片影响分数峰值位于事件: {peaks}")

    def _selected_indices(self) -> list[int]:
        """命令行指定的事件下标，加上指定 trace op 的第一个事件；都没有时使用最后一个事件"""
        indices = list(self.settings.events)
        for op in self.settings.trace_ops:
            op_events = self.session.event_indices_for_trace_op(op)
            if op_events:
                indices.append(op_events[0])
            else:
                logger.warning(f"trace op {op} 没有对应的事件，已跳过。")
        if not indices:
            indices = [self.session.last_index]
        # 越界下标会被夹紧，去重并保持顺序
        return list(dict.fromkeys(self.session.clamp(i) for i in indices))

    def _process_selected_events(self):
        if not (self.settings.layout or self.settings.render):
            return
        logger.info("--- 阶段 3: 生成选定事件的布局 ---")
        name = self.session.document.name

        for index in self._selected_indices():
            frame = self.session.seek(index)
            state_file = os.path.join(self.output_dir, f"{name}_{index}_state.json")
            Output.write_state(index, frame.state, frame.metrics, list(frame.buckets), state_file)

            if self.settings.layout:
                layout_file = os.path.join(self.output_dir, f"{name}_{index}_layout.json")
                Output.write_layout(index, frame.layout, layout_file)
                logger.info(f"事件 {index}: 布局 -> {layout_file}")

            if self.settings.render:
                image_file = os.path.join(self.output_dir, f"{name}_{index}.png")
                heap_renderer.render_frame(frame, self.session.document.events, image_file, self.settings.dpi)

    def _play(self):
        logger.info("--- 阶段 4: 回放 ---")
        self.session.seek(0)
        self.session.play()
        ticks = self.scheduler.run_pending()
        metrics = self.session.last_frame.metrics if self.session.last_frame else None
        logger.info(f"回放结束: {ticks} 帧, 位置 {self.session.position + 1}/{self.session.total}")
        if metrics is not None:
            logger.info(f"最终指标: 利用率 {metrics.util:.1%}, 碎片率 {metrics.frag:.1%}")


def main(args: list[str] | None = None) -> int:
    config.initialize_config(args)
    utils.setup_logging()
    try:
        MainProcessor(config.settings).run()
    except TraceLoadError as e:
        logger.error(f"加载轨迹失败: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
