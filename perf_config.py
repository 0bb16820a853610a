#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
性能测试配置

配置来源优先级：命令行参数 > .env 文件 > markers.json > 默认值。
最终生成不可变的 PerformanceConfig，显式传给各个函数。
"""

import json
from dataclasses import dataclass
from pathlib import Path

from dotenv import dotenv_values

from trace_metrics import PairedMarker, TraceConfig, MarkerConfigError

DEFAULT_PACKAGE = 'com.example.app'
DEFAULT_TRACE_CATEGORIES = 'sched,gfx,view,wm,am,app,input'
DEFAULT_DEVICE_TRACE_PATH = '/data/local/tmp/trace.txt'
DEFAULT_OUTPUT_DIR = './performance_traces'
DEFAULT_ITERATIONS = 3
DEFAULT_TRACE_DURATION = 30

# markers.json 读取失败时使用的默认标记
DEFAULT_CUSTOM_MARKERS = ['TEST_EVENT_MANUAL', 'app_js_initialized', 'first_screen_mounted']
DEFAULT_PAIRED_MARKERS = [
    PairedMarker('trace_watchlist_tap_start', 'trace_watchlist_fully_loaded_end', 'watchlist_load'),
    PairedMarker('trace_article_tap_start', 'trace_article_fully_loaded_end', 'article_load'),
]


class ConfigError(ValueError):
    """配置值无效"""


def load_env_config(env_path='.env'):
    """读取 .env 文件

    Returns:
        配置字典；文件不存在时返回空字典
    """
    path = Path(env_path)
    if not path.is_file():
        print(f"未找到 {env_path} 文件，使用默认值和命令行参数")
        return {}

    values = dotenv_values(path)
    print(f"已从 {env_path} 加载配置")
    return {key: value for key, value in values.items() if value is not None}


def paired_marker_from_value(value):
    """把JSON中的一项（对象或三元列表）转换为PairedMarker"""
    if isinstance(value, PairedMarker):
        return value
    if isinstance(value, dict):
        start = value.get('start', '')
        end = value.get('end', '')
        return PairedMarker(start, end, value.get('name') or f'{start}_to_{end}')
    if isinstance(value, (list, tuple)) and len(value) == 3:
        return PairedMarker(*value)
    raise MarkerConfigError(f"无法识别的成对标记配置: {value!r}")


def load_markers_config(config_path='markers.json'):
    """读取标记配置文件

    Returns:
        (自定义标记列表, 成对标记列表)；文件无法读取时返回默认配置
    """
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        print(f"警告: 无法从 {config_path} 加载标记配置: {e}")
        print("使用默认标记配置")
        return list(DEFAULT_CUSTOM_MARKERS), list(DEFAULT_PAIRED_MARKERS)

    if not isinstance(data, dict):
        print(f"警告: {config_path} 的内容不是JSON对象，使用默认标记配置")
        return list(DEFAULT_CUSTOM_MARKERS), list(DEFAULT_PAIRED_MARKERS)

    custom = data.get('customMarkers') or DEFAULT_CUSTOM_MARKERS
    paired = data.get('pairedMarkers')
    if paired:
        paired = [paired_marker_from_value(item) for item in paired]
    else:
        paired = list(DEFAULT_PAIRED_MARKERS)
    return parse_custom_markers(custom), paired


def parse_custom_markers(value):
    """解析逗号分隔的自定义标记，空项会被忽略"""
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(',')
    return [str(item).strip() for item in value if str(item).strip()]


def parse_paired_markers(value):
    """解析成对标记

    先按JSON解析，失败时按 "start:end:name" 的逗号分隔列表解析，name可省略。
    """
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [paired_marker_from_value(item) for item in value]

    try:
        data = json.loads(value)
    except json.JSONDecodeError:
        data = None
    if isinstance(data, list):
        return [paired_marker_from_value(item) for item in data]

    pairs = []
    for item in value.split(','):
        item = item.strip()
        if not item:
            continue
        parts = [part.strip() for part in item.split(':')]
        start = parts[0]
        end = parts[1] if len(parts) > 1 else ''
        name = parts[2] if len(parts) > 2 and parts[2] else f'{start}_to_{end}'
        pairs.append(PairedMarker(start, end, name))
    return pairs


def _parse_int(value, name, minimum=1):
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} 必须是整数: {value!r}")
    if number < minimum:
        raise ConfigError(f"{name} 不能小于 {minimum}: {number}")
    return number


def _first_given(*values):
    """返回第一个真正给出的值；0 也算给出，None 和空字符串不算"""
    for value in values:
        if value is not None and value != '':
            return value
    return None


@dataclass(frozen=True)
class PerformanceConfig:
    app_package: str
    app_activity: str = ''
    iterations: int = DEFAULT_ITERATIONS
    trace_duration: int = DEFAULT_TRACE_DURATION
    output_dir: str = DEFAULT_OUTPUT_DIR
    device_trace_path: str = DEFAULT_DEVICE_TRACE_PATH
    trace_categories: str = DEFAULT_TRACE_CATEGORIES
    device_id: str = None
    custom_markers: tuple = ()
    paired_markers: tuple = ()

    def __post_init__(self):
        object.__setattr__(self, 'custom_markers', tuple(self.custom_markers))
        object.__setattr__(self, 'paired_markers', tuple(self.paired_markers))
        _parse_int(self.iterations, 'iterations')
        _parse_int(self.trace_duration, 'trace_duration')
        # 提前校验标记配置
        self.trace_config

    @property
    def trace_config(self):
        return TraceConfig(self.app_package, self.custom_markers, self.paired_markers)

    @property
    def launch_component(self):
        activity = self.app_activity or f'{self.app_package}.MainActivity'
        if activity.startswith('.'):
            activity = self.app_package + activity
        return f'{self.app_package}/{activity}'

    @property
    def category_list(self):
        return [c for c in self.trace_categories.replace(',', ' ').split() if c]


def build_performance_config(args, env=None, markers_config=None):
    """合并命令行参数、.env 配置和标记配置文件

    Args:
        args: argparse 解析结果
        env: load_env_config 的返回值
        markers_config: load_markers_config 的返回值，None表示没有标记配置文件

    Returns:
        PerformanceConfig
    """
    env = env or {}
    if markers_config is None:
        markers_config = (['TEST_EVENT_MANUAL'], [])
    default_custom, default_paired = markers_config

    markers_value = getattr(args, 'markers', None) or env.get('CUSTOM_MARKERS')
    custom_markers = parse_custom_markers(markers_value) if markers_value else list(default_custom)

    paired_value = getattr(args, 'paired_markers', None) or env.get('PAIRED_MARKERS')
    paired_markers = parse_paired_markers(paired_value) if paired_value else list(default_paired)

    return PerformanceConfig(
        app_package=getattr(args, 'package', None) or env.get('APP_PACKAGE') or DEFAULT_PACKAGE,
        app_activity=getattr(args, 'activity', None) or env.get('APP_ACTIVITY') or '',
        iterations=_parse_int(_first_given(getattr(args, 'iterations', None), env.get('ITERATIONS'),
                                           DEFAULT_ITERATIONS), 'iterations'),
        trace_duration=_parse_int(_first_given(getattr(args, 'trace_duration', None), env.get('TRACE_DURATION'),
                                               DEFAULT_TRACE_DURATION), 'trace_duration'),
        output_dir=getattr(args, 'output', None) or env.get('OUTPUT_DIR') or DEFAULT_OUTPUT_DIR,
        device_trace_path=env.get('DEVICE_TRACE_PATH') or DEFAULT_DEVICE_TRACE_PATH,
        trace_categories=getattr(args, 'categories', None) or env.get('TRACE_CATEGORIES')
        or DEFAULT_TRACE_CATEGORIES,
        device_id=getattr(args, 'device', None) or env.get('DEVICE_ID'),
        custom_markers=custom_markers,
        paired_markers=paired_markers,
    )
