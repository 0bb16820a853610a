#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
生成性能测试报告

单次迭代报告：metrics_<n>.txt / metrics_<n>.json
汇总报告：summary_report.txt / summary_report.json
"""

import json
import os
from datetime import datetime

from summary_aggregator import LIFECYCLE_LABELS, group_summary
from trace_metrics import LIFECYCLE_EVENTS

NOT_FOUND = 'Not found in trace'
NO_DATA = 'No data available'

REFERENCE_POINT_TEXT = [
    'All timing measurements use the resolved app-start anchor as the reference start time (t=0).',
    'The anchor is the first available of: the Startup trace mark, APPLICATION_START, '
    'the ActivityManager launch/START events, the first line mentioning the package, the first timestamped line.',
    'All relative times are measured from this point.',
]


def _now():
    return datetime.now().isoformat(timespec='seconds')


def _absolute_line(label, value, missing_label=None):
    if value:
        return f'{label}: {value:.3f} seconds (absolute time)'
    return f'{missing_label or label}: {NOT_FOUND}'


def render_iteration_report(metrics, config, device_model=None, date=None):
    """生成单次迭代的文本报告

    Args:
        metrics: extract_trace_metrics / extract_frame_metrics 合并后的字典
        config: TraceConfig
        device_model: 设备型号
        date: 报告时间，默认当前时间

    Returns:
        报告文本
    """
    lines = [
        '===== App Performance Metrics =====',
        f'Date: {date or _now()}',
        f'Device: {device_model or "Unknown"}',
        f'App Package: {config.app_package}',
        '',
        '== Measurement Reference Point ==',
        *REFERENCE_POINT_TEXT,
        '',
        '== Android Activity Lifecycle Events ==',
    ]

    app_start = metrics.get('appStartTimestamp')
    lines.append(_absolute_line(LIFECYCLE_LABELS['appStartTimestamp'], app_start))
    if app_start:
        lines.append('This is our t=0 reference point for all relative measurements.')
    for event, _, _ in LIFECYCLE_EVENTS:
        key = f'{event}Timestamp'
        lines.append(_absolute_line(LIFECYCLE_LABELS[key], metrics.get(key)))

    lines.extend(['', '== Time from App Launch to Activity Lifecycle Events =='])
    for _, relative_key, _ in LIFECYCLE_EVENTS:
        value = metrics.get(relative_key)
        if value is not None:
            lines.append(f'{LIFECYCLE_LABELS[relative_key]}: {value:.3f} seconds')

    lines.extend(['', '== Custom Performance Markers =='])
    for marker in config.custom_markers:
        lines.append(_absolute_line(f'{marker} marker time', metrics.get(f'{marker}Timestamp'),
                                    f'{marker} marker'))

    lines.extend(['', '== Time from App Launch to Custom Markers =='])
    for marker in config.custom_markers:
        value = metrics.get(f'timeTo{marker}')
        if value is not None:
            lines.append(f'Time from app start to {marker}: {value:.3f} seconds')

    if config.paired_markers:
        lines.extend(['', '== Paired Markers (Start/End) =='])
        for pair in config.paired_markers:
            lines.append(f'=== {pair.name} ===')
            for name in (pair.start, pair.end):
                lines.append(_absolute_line(f'{name} time', metrics.get(f'{name}Timestamp'), name))
                relative = metrics.get(f'timeTo{name}')
                if relative is not None:
                    lines.append(f'Time from app start to {name}: {relative:.3f} seconds')
            duration = metrics.get(f'{pair.name}Duration')
            if duration is not None:
                lines.append(f'Duration of {pair.name}: {duration:.3f} seconds')
            else:
                lines.append(f'Duration of {pair.name}: Could not be calculated')
            lines.append('')
    else:
        lines.append('')

    lines.append('== Frame Rendering Performance ==')
    lines.append(f"Total frames captured: {metrics.get('totalFrames', 0)}")
    if metrics.get('avgFrameDuration'):
        lines.append(f"Average frame duration: {metrics['avgFrameDuration']:.2f} ms")
    if metrics.get('avgFps'):
        lines.append(f"Average FPS: {metrics['avgFps']:.1f}")
    if metrics.get('jankyFrames'):
        lines.append(f"Janky frames (>16.67ms): {metrics['jankyFrames']} "
                     f"({metrics['jankyFramesPercentage']:.1f}%)")
    if metrics.get('severeJankyFrames'):
        lines.append(f"Severe janky frames (>33.33ms): {metrics['severeJankyFrames']} "
                     f"({metrics['severeJankyFramesPercentage']:.1f}%)")

    return '\n'.join(lines) + '\n'


def _stats_lines(stats):
    if stats is None:
        return [f'  {NO_DATA}']
    return [
        f'  Min: {stats.min:.3f}',
        f'  Max: {stats.max:.3f}',
        f'  Avg: {stats.avg:.3f}',
        f'  Median: {stats.median:.3f}',
        f'  Runs: {stats.count}',
    ]


def render_summary_report(summary, config, run_info=None, date=None):
    """生成汇总文本报告，某个指标在所有迭代中都没有数据时输出 No data available"""
    run_info = run_info or {}
    lines = [
        '===== Performance Summary Report =====',
        f'Date: {date or _now()}',
        f'App Package: {config.app_package}',
        f"App Activity: {run_info.get('app_activity') or config.app_package + '.MainActivity'}",
        f"Test Iterations: {run_info.get('iterations', 0)}",
        f"Successful Iterations: {run_info.get('successful_iterations', 0)}",
        '',
        f"Device Model: {run_info.get('device_model') or 'Unknown'}",
        f"Android Version: {run_info.get('android_version') or 'Unknown'}",
    ]

    for title, rows in group_summary(summary, config):
        lines.extend(['', f'== {title} =='])
        if not rows:
            lines.append(NO_DATA)
            continue
        for label, key in rows:
            lines.append(f'{label}:')
            lines.extend(_stats_lines(summary.get(key)))

    return '\n'.join(lines) + '\n'


def _write_json(path, data):
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f, ensure_ascii=False, indent=2)


def _write_text(path, content):
    with open(path, 'w', encoding='utf-8') as f:
        f.write(content)


def write_iteration_report(output_dir, iteration, metrics, config, device_model=None):
    """保存单次迭代的报告，返回文本报告路径"""
    os.makedirs(output_dir, exist_ok=True)
    date = _now()
    text_path = os.path.join(output_dir, f'metrics_{iteration}.txt')
    json_path = os.path.join(output_dir, f'metrics_{iteration}.json')

    _write_text(text_path, render_iteration_report(metrics, config, device_model, date))
    _write_json(json_path, {
        'iteration': iteration,
        'date': date,
        'device': device_model or 'Unknown',
        'appPackage': config.app_package,
        'metrics': metrics,
    })
    print(f"指标已保存到 {text_path}")
    return text_path


def write_summary_report(output_dir, summary, config, run_info=None):
    """保存汇总报告，返回文本报告路径"""
    os.makedirs(output_dir, exist_ok=True)
    date = _now()
    text_path = os.path.join(output_dir, 'summary_report.txt')
    json_path = os.path.join(output_dir, 'summary_report.json')

    _write_text(text_path, render_summary_report(summary, config, run_info, date))
    _write_json(json_path, {
        'date': date,
        'appPackage': config.app_package,
        'runInfo': run_info or {},
        'summary': {key: stats.to_dict() if stats is not None else None
                    for key, stats in summary.items()},
    })
    print(f"汇总报告已保存到 {text_path}")
    return text_path
