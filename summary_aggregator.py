#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
多次测试结果汇总

把每次迭代得到的指标字典（内存中的MetricSet）按指标名分组，计算 min/max/avg/median。
某个指标在所有迭代中都没有出现时，结果为None（“无数据”），而不是0。
"""

import statistics
from dataclasses import dataclass, asdict

from trace_metrics import LIFECYCLE_EVENTS

LIFECYCLE_LABELS = {
    'appStartTimestamp': 'Activity start intent time',
    'activityCreateTimestamp': 'Activity performCreate time',
    'activityStartTimestamp': 'Activity performStart time',
    'activityResumeTimestamp': 'Activity performResume time',
    'activityDrawnTimestamp': 'Activity fully drawn time',
    'timeToCreate': 'Time from intent to performCreate',
    'timeToStart': 'Time from intent to performStart',
    'timeToResume': 'Time from intent to performResume',
    'timeToFullyDrawn': 'Total time to fully drawn',
}

FRAME_METRIC_LABELS = {
    'totalFrames': 'Total frames captured',
    'avgFrameDuration': 'Average frame duration (ms)',
    'avgFps': 'Average FPS',
    'jankyFrames': 'Janky frames (>16.67ms)',
    'jankyFramesPercentage': 'Janky frames (%)',
    'severeJankyFrames': 'Severe janky frames (>33.33ms)',
    'severeJankyFramesPercentage': 'Severe janky frames (%)',
}


@dataclass(frozen=True)
class AggregateStats:
    min: float
    max: float
    avg: float
    median: float
    count: int

    def to_dict(self):
        return asdict(self)


def compute_stats(values):
    """计算一组数值的统计数据，空列表返回None"""
    if not values:
        return None
    return AggregateStats(
        min=min(values),
        max=max(values),
        avg=statistics.mean(values),
        median=statistics.median(values),
        count=len(values),
    )


def collect_metric_values(metric_sets):
    """按指标名收集所有迭代中出现过的数值，保持首次出现的顺序"""
    values = {}
    for metrics in metric_sets:
        for key, value in (metrics or {}).items():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                continue
            values.setdefault(key, []).append(value)
    return values


def _lifecycle_keys():
    keys = ['appStartTimestamp']
    keys.extend(f'{event}Timestamp' for event, _, _ in LIFECYCLE_EVENTS)
    keys.extend(relative_key for _, relative_key, _ in LIFECYCLE_EVENTS)
    return keys


def _marker_keys(name):
    return [f'{name}Timestamp', f'timeTo{name}']


def declared_metric_keys(config):
    """根据配置列出所有应当汇报的指标名"""
    keys = _lifecycle_keys()
    for marker in config.custom_markers:
        keys.extend(_marker_keys(marker))
    for pair in config.paired_markers:
        keys.extend(_marker_keys(pair.start))
        keys.extend(_marker_keys(pair.end))
        keys.append(f'{pair.name}Duration')

    unique = []
    for key in keys:
        if key not in unique:
            unique.append(key)
    return unique


def summarize_metric_sets(metric_sets, config):
    """汇总多次迭代的指标

    Args:
        metric_sets: 每次成功迭代的指标字典列表
        config: TraceConfig，决定哪些指标需要显式标记为“无数据”

    Returns:
        {指标名: AggregateStats 或 None}
    """
    values = collect_metric_values(metric_sets)
    summary = {}
    for key in declared_metric_keys(config):
        summary[key] = compute_stats(values.get(key, []))
    for key, key_values in values.items():
        if key not in summary:
            summary[key] = compute_stats(key_values)
    return summary


def group_summary(summary, config):
    """把汇总结果按类别分组，仅用于报告展示

    Returns:
        [(分组标题, [(标签, 指标名), ...]), ...]
    """
    used = set()

    def take(key):
        used.add(key)
        return key

    sections = [('Android Activity Lifecycle Events',
                 [(label, take(key)) for key, label in LIFECYCLE_LABELS.items()])]

    marker_rows = []
    for marker in config.custom_markers:
        marker_rows.append((f'{marker} marker time', take(f'{marker}Timestamp')))
        marker_rows.append((f'Time from app start to {marker}', take(f'timeTo{marker}')))
    sections.append(('Custom Performance Markers', marker_rows))

    for pair in config.paired_markers:
        sections.append((f'Paired Marker: {pair.name}', [
            (f'{pair.start} time', take(f'{pair.start}Timestamp')),
            (f'Time from app start to {pair.start}', take(f'timeTo{pair.start}')),
            (f'{pair.end} time', take(f'{pair.end}Timestamp')),
            (f'Time from app start to {pair.end}', take(f'timeTo{pair.end}')),
            (f'Duration of {pair.name}', take(f'{pair.name}Duration')),
        ]))

    frame_rows = [(label, take(key)) for key, label in FRAME_METRIC_LABELS.items() if key in summary]
    if frame_rows:
        sections.append(('Frame Rendering Performance', frame_rows))

    other_rows = [(key, key) for key in summary if key not in used]
    if other_rows:
        sections.append(('Other Metrics', other_rows))
    return sections
