#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
帧渲染指标

从atrace文本中配对 tracing_mark_write 的 B/E 记录，统计 Choreographer#doFrame
的耗时，计算总帧数、平均帧耗时、平均帧率和卡顿帧比例。
"""

import re
import statistics

FRAME_SLICE_PREFIX = 'Choreographer#doFrame'
# 60Hz下一帧的预算
JANK_THRESHOLD_MS = 16.67
SEVERE_JANK_THRESHOLD_MS = 33.33

FRAME_METRIC_KEYS = ('totalFrames', 'avgFrameDuration', 'avgFps', 'jankyFrames', 'jankyFramesPercentage',
                     'severeJankyFrames', 'severeJankyFramesPercentage')

TRACE_LINE = re.compile(
    r'^\s*(?P<task>.+?)-(?P<tid>\d+)\s+(?:\(\s*[\d-]+\)\s+)?\[\d+\]\s+(?:\S{4}\s+)?'
    r'(?P<ts>\d+(?:\.\d+)?):\s+tracing_mark_write:\s*(?P<kind>[BE])'
    r'(?:\|(?P<pid>\d+)(?:\|(?P<name>[^\n]*))?)?'
)


def parse_trace_slices(trace_text, slice_name_prefix, pid=None):
    """按线程配对B/E记录，产出名称以指定前缀开头的slice耗时

    Args:
        trace_text: atrace文本
        slice_name_prefix: slice名称前缀
        pid: 只统计该进程的slice（None表示不过滤）

    Yields:
        slice耗时（毫秒）
    """
    stacks = {}
    for line in (trace_text or '').splitlines():
        match = TRACE_LINE.match(line)
        if not match:
            continue
        stack = stacks.setdefault(match.group('tid'), [])
        timestamp = float(match.group('ts'))
        if match.group('kind') == 'B':
            stack.append((match.group('name') or '', match.group('pid'), timestamp))
            continue
        # 没有对应B的E记录直接忽略
        if not stack:
            continue
        name, begin_pid, begin_ts = stack.pop()
        if not name.startswith(slice_name_prefix):
            continue
        if pid is not None and begin_pid != str(pid):
            continue
        yield (timestamp - begin_ts) * 1000


def extract_frame_metrics(trace_text, app_pid=None):
    """统计帧渲染指标

    Returns:
        指标字典；没有任何帧时返回空字典
    """
    durations = list(parse_trace_slices(trace_text, FRAME_SLICE_PREFIX, app_pid))
    if not durations:
        return {}

    total_frames = len(durations)
    avg_duration = statistics.mean(durations)
    janky = sum(1 for d in durations if d > JANK_THRESHOLD_MS)
    severe = sum(1 for d in durations if d > SEVERE_JANK_THRESHOLD_MS)

    metrics = {
        'totalFrames': total_frames,
        'avgFrameDuration': round(avg_duration, 3),
        'jankyFrames': janky,
        'jankyFramesPercentage': round(janky / total_frames * 100, 2),
        'severeJankyFrames': severe,
        'severeJankyFramesPercentage': round(severe / total_frames * 100, 2),
    }
    if avg_duration > 0:
        metrics['avgFps'] = round(1000 / avg_duration, 2)
    return metrics
