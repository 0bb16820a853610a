#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Trace指标提取

从一次 atrace / logcat 文本转储中提取应用启动相关的时间点：
1. 启动锚点（t=0）：按优先级依次尝试 Startup 标记、APPLICATION_START、
   ActivityManager/ActivityTaskManager 的启动事件，最后退化为第一条提到包名的行、
   第一条带时间戳的行
2. Activity 生命周期：performCreate / performStart / performResume / reportFullyDrawn
3. 自定义标记和成对标记（start/end）

所有查找都是“按顺序尝试，第一个匹配的模式生效，且只取该模式的第一次出现”。
找不到的指标不会出现在结果中，不会抛出异常。
已知限制：时间戳为0等同于未找到；同一标记多次出现时只取第一次；
成对标记的end如果匹配到start之前的文本，时长会是负数，这里不做修正。
"""

import re
from dataclasses import dataclass

from frame_metrics import FRAME_METRIC_KEYS

# 超过该值的时间戳视为微秒
MICROSECOND_THRESHOLD = 1000000

# atrace: "123.456789: tracing_mark_write: ..."
# logcat -v monotonic: "123.456  1234  1234 I Tag: ..."
TIMESTAMP = r'(?<![\w.:])(?P<ts>\d+(?:\.\d+)?)(?::\s+|\s+\d+\s+\d+\s+[VDIWEFA]\s+)'
TRACE_MARK = r'tracing_mark_write:\s*[BSFIC]\|\d+\|'
NAME_END = r'(?=[|\s]|$)'

# 生命周期事件: (指标名, 相对时间指标名, 在trace中查找的关键字)
LIFECYCLE_EVENTS = [
    ('activityCreate', 'timeToCreate', ['performCreate']),
    ('activityStart', 'timeToStart', ['performStart']),
    ('activityResume', 'timeToResume', ['performResume']),
    ('activityDrawn', 'timeToFullyDrawn', ['reportFullyDrawn', 'Fully drawn']),
]

# 锚点、生命周期和帧指标占用的key，标记派生出的key不能与之重名
RESERVED_METRIC_KEYS = frozenset(
    ['appStartTimestamp']
    + [f'{event}Timestamp' for event, _, _ in LIFECYCLE_EVENTS]
    + [relative_key for _, relative_key, _ in LIFECYCLE_EVENTS]
    + list(FRAME_METRIC_KEYS))

ANCHOR = 'anchor'
LIFECYCLE = 'lifecycle'
MARKER = 'marker'


@dataclass(frozen=True)
class TracePattern:
    """一个候选模式；needles 是匹配成功所必需的子串，文本中缺少任意一个就不必执行正则"""
    label: str
    regex: object
    needles: tuple = ()


@dataclass(frozen=True)
class TimestampedEvent:
    kind: str
    name: str
    timestamp: float


class MarkerConfigError(ValueError):
    """标记配置错误（例如成对标记缺少start或end）"""


@dataclass(frozen=True)
class PairedMarker:
    start: str
    end: str
    name: str

    def __post_init__(self):
        for field_name in ('start', 'end', 'name'):
            value = getattr(self, field_name)
            if not isinstance(value, str) or not value.strip():
                raise MarkerConfigError(
                    f"成对标记的 {field_name} 不能为空: {self.start!r} -> {self.end!r} ({self.name!r})")


def marker_metric_keys(name):
    """标记在结果中对应的key"""
    return [f'{name}Timestamp', f'timeTo{name}']


@dataclass(frozen=True)
class TraceConfig:
    """一次提取所需的全部配置，显式传给每个提取/汇总函数"""
    app_package: str
    custom_markers: tuple = ()
    paired_markers: tuple = ()

    def __post_init__(self):
        if not isinstance(self.app_package, str) or not self.app_package.strip():
            raise MarkerConfigError("应用包名不能为空")
        # 允许传入list，统一转成tuple保持不可变
        object.__setattr__(self, 'custom_markers', tuple(self.custom_markers))
        object.__setattr__(self, 'paired_markers', tuple(self.paired_markers))
        for marker in self.custom_markers:
            if not isinstance(marker, str) or not marker.strip():
                raise MarkerConfigError(f"自定义标记名称不能为空: {marker!r}")
        for pair in self.paired_markers:
            if not isinstance(pair, PairedMarker):
                raise MarkerConfigError(f"成对标记必须是PairedMarker: {pair!r}")

        for name in _marker_names(self):
            clashes = RESERVED_METRIC_KEYS.intersection(marker_metric_keys(name))
            if clashes:
                raise MarkerConfigError(f"标记名称 {name!r} 与内置指标重名: {', '.join(sorted(clashes))}")
        for pair in self.paired_markers:
            if f'{pair.name}Duration' in RESERVED_METRIC_KEYS:
                raise MarkerConfigError(f"成对标记名称 {pair.name!r} 与内置指标重名: {pair.name}Duration")


def _compile(label, pattern, *needles):
    return TracePattern(label, re.compile(pattern, re.MULTILINE), needles)


def _scoped(package):
    """只匹配包含包名的行"""
    return r'^(?=[^\n]*' + re.escape(package) + r')[^\n]*?'


def app_start_patterns(package):
    """启动锚点的候选模式，越具体越靠前"""
    pkg = re.escape(package)
    return [
        _compile('startup-mark', TIMESTAMP + TRACE_MARK + r'Startup' + NAME_END, 'Startup'),
        _compile('application-start', TIMESTAMP + r'[^\n]*?\bAPPLICATION_START\b', 'APPLICATION_START'),
        _compile('am-launching', TIMESTAMP + TRACE_MARK + r'launching:\s*' + pkg, 'launching', package),
        _compile('am-start-intent',
                 TIMESTAMP + r'[^\n]*?\b(?:ActivityManager|ActivityTaskManager)\b[^\n]*?\bSTART\b[^\n]*?' + pkg,
                 'START', package),
        _compile('am-proc-start', TIMESTAMP + r'[^\n]*?(?:Start proc \d+:|\bam_proc_start\b[^\n]*?)' + pkg,
                 package),
        _compile('am-displayed', TIMESTAMP + r'[^\n]*?\bDisplayed\s+' + pkg, 'Displayed', package),
        _compile('first-package-line', _scoped(package) + TIMESTAMP, package),
        _compile('first-timestamp', TIMESTAMP),
    ]


def lifecycle_patterns(package, keywords):
    """生命周期事件的候选模式，限定在提到包名的行"""
    patterns = []
    for keyword in keywords:
        needle = re.escape(keyword)
        patterns.append(_compile(f'{keyword}-slice',
                                 _scoped(package) + TIMESTAMP + r'tracing_mark_write:\s*B\|\d+\|[^\n]*?\b' + needle,
                                 keyword, package))
    for keyword in keywords:
        needle = re.escape(keyword)
        patterns.append(_compile(f'{keyword}-line', _scoped(package) + TIMESTAMP + r'[^\n]*?\b' + needle,
                                 keyword, package))
    return patterns


def marker_patterns(name):
    """自定义标记的候选模式：先结构化的trace标记，再逐步放宽"""
    needle = re.escape(name)
    return [
        _compile('trace-mark', TIMESTAMP + TRACE_MARK + needle + NAME_END, name),
        _compile('trace-mark-substring', TIMESTAMP + r'tracing_mark_write:[^\n]*?' + needle, name),
        _compile('line-substring', TIMESTAMP + r'[^\n]*?' + needle, name),
    ]


def resolve_first_match(patterns, text):
    """按顺序尝试模式，返回第一个匹配模式中第一次出现的时间戳

    Args:
        patterns: TracePattern列表
        text: trace文本

    Returns:
        原始时间戳（未做单位换算），找不到时返回None
    """
    if not text:
        return None
    for pattern in patterns:
        if not all(needle in text for needle in pattern.needles):
            continue
        match = pattern.regex.search(text)
        if match:
            return float(match.group('ts'))
    return None


def normalize_timestamp(value):
    """超过阈值的时间戳按微秒处理，换算成秒并保留3位小数"""
    if value > MICROSECOND_THRESHOLD:
        return round(value / 1000000, 3)
    return value


def _resolve_timestamp(patterns, text):
    raw = resolve_first_match(patterns, text)
    if raw is None:
        return None
    value = normalize_timestamp(raw)
    # 0 与“未找到”无法区分
    return value or None


def _marker_names(config):
    names = list(config.custom_markers)
    for pair in config.paired_markers:
        for name in (pair.start, pair.end):
            if name not in names:
                names.append(name)
    return names


def scan_events(trace_text, config):
    """扫描trace，依次产出找到的事件（锚点、生命周期、标记）"""
    text = trace_text or ''
    if isinstance(text, bytes):
        text = text.decode('utf-8', errors='replace')

    app_start = _resolve_timestamp(app_start_patterns(config.app_package), text)
    if app_start is not None:
        yield TimestampedEvent(ANCHOR, 'appStart', app_start)

    for event, _, keywords in LIFECYCLE_EVENTS:
        timestamp = _resolve_timestamp(lifecycle_patterns(config.app_package, keywords), text)
        if timestamp is not None:
            yield TimestampedEvent(LIFECYCLE, event, timestamp)

    for name in _marker_names(config):
        timestamp = _resolve_timestamp(marker_patterns(name), text)
        if timestamp is not None:
            yield TimestampedEvent(MARKER, name, timestamp)


def extract_trace_metrics(trace_text, config):
    """从一次trace转储中提取指标

    Args:
        trace_text: trace文本（可以为空或格式混乱）
        config: TraceConfig

    Returns:
        指标字典，key 为指标名，value 为秒数；找不到的指标不会出现
    """
    found = {ANCHOR: {}, LIFECYCLE: {}, MARKER: {}}
    for event in scan_events(trace_text, config):
        found[event.kind][event.name] = event.timestamp
    markers = found[MARKER]
    metrics = {}

    app_start = found[ANCHOR].get('appStart')
    if app_start:
        metrics['appStartTimestamp'] = app_start

    for event, relative_key, _ in LIFECYCLE_EVENTS:
        timestamp = found[LIFECYCLE].get(event)
        if not timestamp:
            continue
        metrics[f'{event}Timestamp'] = timestamp
        if app_start:
            metrics[relative_key] = round(timestamp - app_start, 3)

    for name in _marker_names(config):
        timestamp = markers.get(name)
        if not timestamp:
            continue
        metrics[f'{name}Timestamp'] = timestamp
        if app_start:
            metrics[f'timeTo{name}'] = round(timestamp - app_start, 3)

    for pair in config.paired_markers:
        start = markers.get(pair.start)
        end = markers.get(pair.end)
        if start and end:
            metrics[f'{pair.name}Duration'] = end - start

    return metrics
