#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
React Native 性能日志采集

安装APK并启动应用，在指定时长内收集 logcat 中的 [Perf] 日志：
    [Perf] bundleLoad: 123.4 ms
    [Perf] firstRender = 456
"""

import argparse
import re
import sys
import time

from adb_utils import run_adb_command
from summary_aggregator import compute_stats

PERF_MS_PATTERN = re.compile(r'\[Perf\]\s+(\w+)\s*:\s*([\d.]+)\s*ms')
PERF_ASSIGN_PATTERN = re.compile(r'\[Perf\]\s+(\w+)\s*=\s*([\d.]+)')

DEFAULT_APK_PATH = '../app/android/app/build/outputs/apk/debug/app-debug.apk'
DEFAULT_COMPONENT = 'com.myrnapp/.MainActivity'


def parse_perf_line(line):
    """解析一行日志，两种格式都匹配时都会记录

    Returns:
        [(指标名, 数值), ...]
    """
    results = []
    for pattern in (PERF_MS_PATTERN, PERF_ASSIGN_PATTERN):
        match = pattern.search(line)
        if not match:
            continue
        try:
            results.append((match.group(1), float(match.group(2))))
        except ValueError:
            # 例如 "1.2.3" 这种无法转换的数值
            continue
    return results


def parse_perf_log(text):
    metrics = []
    for line in (text or '').splitlines():
        metrics.extend(parse_perf_line(line))
    return metrics


def summarize_perf_metrics(metrics):
    """按指标名分组计算 min/max/avg"""
    grouped = {}
    for name, value in metrics:
        grouped.setdefault(name, []).append(value)
    return {name: compute_stats(values) for name, values in grouped.items()}


def capture_logcat(duration, device_id=None):
    """等待指定秒数后导出 logcat，失败返回None"""
    print(f"采集 {duration} 秒内的日志...")
    time.sleep(duration)
    return run_adb_command(['logcat', '-d'], device_id)


def main(argv=None):
    parser = argparse.ArgumentParser(description='React Native [Perf] 日志指标采集')
    parser.add_argument('--apk', default=DEFAULT_APK_PATH, help='要安装的APK路径')
    parser.add_argument('-c', '--component', default=DEFAULT_COMPONENT, help='启动组件，例如 com.myrnapp/.MainActivity')
    parser.add_argument('-t', '--duration', type=int, default=10, help='日志采集时长（秒，默认：10）')
    parser.add_argument('-d', '--device', help='设备ID')
    parser.add_argument('--skip-install', action='store_true', help='跳过APK安装')
    args = parser.parse_args(argv)

    print("检查ADB连接...")
    if run_adb_command('devices') is None:
        print("错误：ADB不可用")
        return 1

    if not args.skip_install:
        print(f"安装APK {args.apk}...")
        if run_adb_command(['install', '-r', args.apk], args.device) is None:
            print("错误：APK安装失败")
            return 1

    # 清空旧日志，只保留本次启动后的输出
    run_adb_command(['logcat', '-c'], args.device)

    print(f"启动应用 {args.component}...")
    if run_adb_command(['shell', 'am', 'start', '-n', args.component], args.device) is None:
        print("错误：启动应用失败")
        return 1

    log_text = capture_logcat(args.duration, args.device)
    if log_text is None:
        print("日志采集失败")
        log_text = ''

    metrics = parse_perf_log(log_text)
    print("\n--- 采集到的性能指标 ---")
    for name, value in metrics:
        print(f"{name}: {value:.2f} ms")

    if metrics:
        print("\n--- 统计 ---")
        for name, stats in summarize_perf_metrics(metrics).items():
            print(f"{name}: 最小 {stats.min:.2f} ms, 最大 {stats.max:.2f} ms, "
                  f"平均 {stats.avg:.2f} ms ({stats.count} 次)")
    else:
        print("未找到 [Perf] 日志")

    print("\n测量完成！")
    return 0


if __name__ == "__main__":
    sys.exit(main())
