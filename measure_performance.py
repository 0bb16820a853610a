#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
应用启动性能测试工具

每次迭代：清除应用数据 -> 开启atrace -> 启动应用 -> 等待 -> 截屏 -> 停止atrace
-> 拉取trace -> 提取指标 -> 保存报告。全部迭代结束后生成汇总报告。

用法示例：
    python measure_performance.py -p com.example.app -a .MainActivity -i 5
    python measure_performance.py --all-devices --markers app_js_initialized,first_screen_mounted
"""

import argparse
import os
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime
from pathlib import Path

from adb_utils import (run_adb_command, check_device_connected, get_connected_devices, get_device_info,
                       clear_app_data, launch_app, get_app_pid, take_screenshot, pull_file)
from frame_metrics import extract_frame_metrics
from metrics_report import write_iteration_report, write_summary_report
from perf_config import (ConfigError, build_performance_config, load_env_config, load_markers_config)
from summary_aggregator import summarize_metric_sets
from trace_metrics import MarkerConfigError, extract_trace_metrics

# atrace 缓冲区大小（KB）
TRACE_BUFFER_KB = 16000


def start_trace(config):
    """开启异步atrace"""
    print("开始抓取trace...")
    command = ['shell', 'atrace', '--async_start', '-a', config.app_package,
               '-b', str(TRACE_BUFFER_KB)] + config.category_list
    return run_adb_command(command, config.device_id) is not None


def stop_trace(config):
    """停止atrace并把结果写到设备上的文件"""
    print("停止抓取trace...")
    command = ['shell', 'atrace', '--async_stop', '-o', config.device_trace_path]
    return run_adb_command(command, config.device_id) is not None


def read_trace_file(path):
    """读取trace文本，无法解码的字节会被替换"""
    with open(path, 'r', encoding='utf-8', errors='replace') as f:
        return f.read()


def run_iteration(config, iteration, device_model=None):
    """执行一次测试迭代

    Returns:
        指标字典；任一步骤失败时返回None
    """
    print(f"\n=== 第 {iteration} 次测试 ===")

    if not clear_app_data(config.app_package, config.device_id):
        print("清除应用数据失败，跳过本次迭代")
        return None

    if not start_trace(config):
        print("开启trace失败，跳过本次迭代")
        return None

    launch_output = launch_app(config.launch_component, config.device_id)
    if launch_output is None:
        print("启动应用失败，继续等待trace结束")
    else:
        print(launch_output)
    app_pid = get_app_pid(config.app_package, config.device_id)

    print(f"等待 {config.trace_duration} 秒...")
    time.sleep(config.trace_duration)

    screenshot_path = os.path.join(config.output_dir, f'screenshot_{iteration}.png')
    if not take_screenshot(screenshot_path, config.device_id):
        print("截屏失败")

    if not stop_trace(config):
        print("停止trace失败，跳过本次迭代")
        return None

    local_trace_path = os.path.join(config.output_dir, f'trace_iteration_{iteration}.txt')
    if not pull_file(config.device_trace_path, local_trace_path, config.device_id):
        print("拉取trace文件失败，跳过本次迭代")
        return None

    trace_text = read_trace_file(local_trace_path)
    metrics = extract_trace_metrics(trace_text, config.trace_config)
    metrics.update(extract_frame_metrics(trace_text, app_pid))

    print(f"找到 {len(metrics)} 个指标")
    write_iteration_report(config.output_dir, iteration, metrics, config.trace_config, device_model)
    return metrics


def run_performance_tests(config):
    """在一台设备上执行所有迭代并生成汇总报告

    Returns:
        成功迭代的指标字典列表；设备未连接时返回None
    """
    print(f"开始性能测试 (设备: {config.device_id or '默认设备'})...")

    if not check_device_connected(config.device_id):
        print("错误：未连接Android设备，请连接设备后重试")
        return None

    os.makedirs(config.output_dir, exist_ok=True)
    device_info = get_device_info(config.device_id)

    metric_sets = []
    for iteration in range(1, config.iterations + 1):
        metrics = run_iteration(config, iteration, device_info.get('model'))
        if metrics is not None:
            metric_sets.append(metrics)

    print("生成汇总报告...")
    summary = summarize_metric_sets(metric_sets, config.trace_config)
    run_info = {
        'date': datetime.now().isoformat(timespec='seconds'),
        'app_activity': config.launch_component.split('/', 1)[1],
        'iterations': config.iterations,
        'successful_iterations': len(metric_sets),
        'device_id': config.device_id,
        'device_model': device_info.get('model'),
        'android_version': device_info.get('android_version'),
    }
    write_summary_report(config.output_dir, summary, config.trace_config, run_info)

    print("\n===== 性能测试完成 =====")
    print(f"结果已保存到 {config.output_dir}")
    return metric_sets


def run_on_all_devices(config):
    """在所有已连接设备上并行测试，每台设备的结果保存到 <output>/<serial>/

    Returns:
        {设备ID: 指标字典列表或None}
    """
    devices = get_connected_devices()
    if not devices:
        print("错误：未找到已连接的设备")
        return {}

    print(f"\n开始在 {len(devices)} 个设备上并行测试...")
    results = {}
    with ThreadPoolExecutor(max_workers=len(devices)) as executor:
        futures = {}
        for device_id in devices:
            device_config = replace(config, device_id=device_id,
                                    output_dir=os.path.join(config.output_dir, device_id))
            futures[device_id] = executor.submit(run_performance_tests, device_config)

        # 等待所有设备处理完成
        for device_id, future in futures.items():
            results[device_id] = future.result()

    print("\n所有设备的性能测试已完成！")
    return results


def print_config(config):
    print("配置:")
    print(f"  应用包名: {config.app_package}")
    print(f"  启动组件: {config.launch_component}")
    print(f"  迭代次数: {config.iterations}")
    print(f"  Trace时长: {config.trace_duration} 秒")
    print(f"  输出目录: {config.output_dir}")
    print(f"  Trace类别: {', '.join(config.category_list)}")
    print(f"  自定义标记: {', '.join(config.custom_markers) or '无'}")
    if config.paired_markers:
        print("  成对标记:")
        for pair in config.paired_markers:
            print(f"    {pair.name}: {pair.start} -> {pair.end}")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Android应用启动性能测试（atrace）')
    parser.add_argument('-p', '--package', help='应用包名，例如：com.example.app')
    parser.add_argument('-a', '--activity', help='活动名称，例如：.MainActivity（默认：<包名>.MainActivity）')
    parser.add_argument('-i', '--iterations', type=int, help='测试迭代次数（默认：3）')
    parser.add_argument('-t', '--trace-duration', type=int, help='每次抓取trace的时长，单位秒（默认：30）')
    parser.add_argument('-o', '--output', help='输出目录（默认：./performance_traces）')
    parser.add_argument('-m', '--markers', help='逗号分隔的自定义标记')
    parser.add_argument('--paired-markers', help='成对标记，JSON或 start:end:name 的逗号分隔列表')
    parser.add_argument('--categories', help='atrace类别，逗号分隔')
    parser.add_argument('-d', '--device', help='设备ID（如果省略，将使用第一个连接的设备）')
    parser.add_argument('--all-devices', action='store_true', help='在所有已连接设备上并行测试')
    parser.add_argument('--env', default='.env', help='.env 配置文件路径')
    parser.add_argument('--markers-config', help='标记配置文件路径（默认：存在时读取 markers.json）')
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    env = load_env_config(args.env)

    markers_path = args.markers_config or 'markers.json'
    markers_config = None
    if args.markers_config or Path(markers_path).is_file():
        markers_config = load_markers_config(markers_path)

    try:
        config = build_performance_config(args, env, markers_config)
    except (ConfigError, MarkerConfigError) as e:
        print(f"配置错误: {e}")
        return 1

    print_config(config)

    if args.all_devices:
        results = run_on_all_devices(config)
        return 0 if any(results.values()) else 1

    metric_sets = run_performance_tests(config)
    return 0 if metric_sets else 1


if __name__ == "__main__":
    sys.exit(main())
