#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Android应用体积分析

统计下载体积（所有APK分包大小之和）、安装后体积，并拉取主APK解包分析
JavaScript bundle、Hermes字节码和原生库的构成。
"""

import argparse
import json
import math
import os
import re
import sys
import tempfile
import zipfile
from datetime import datetime

from adb_utils import run_adb_command, run_command, check_device_connected, is_app_installed, pull_file

DEFAULT_PACKAGE = 'com.example.app'
DEFAULT_OUTPUT_DIR = './app_size_reports'

# (文件名模式, 类型)，按顺序匹配，loader 要排在 .js 前面
BUNDLE_PATTERNS = [
    (re.compile(r'(js_receiver|bridge|loader)\.js$', re.I), 'loader'),
    (re.compile(r'\.(bundle|jsbundle)$', re.I), 'bundle'),
    (re.compile(r'\.js$', re.I), 'js'),
    (re.compile(r'\.hbc$', re.I), 'hbc'),
    (re.compile(r'index\.(android|ios)', re.I), 'bundle'),
    (re.compile(r'main\.(jsbundle|bundle)', re.I), 'bundle'),
]

HERMES_MAGIC = bytes([0xc6, 0x1f, 0xbc, 0x03])
GZIP_MAGIC = bytes([0x1f, 0x8b])
# 熵超过该值（最大8）视为加密
ENTROPY_THRESHOLD = 7.5
# 计算熵时读取的字节数
ENTROPY_SAMPLE_SIZE = 4096

HERMES_LIB_PATTERN = re.compile(r'hermes', re.I)
REACT_LIB_PATTERN = re.compile(r'react', re.I)


def format_size(size):
    units = ['B', 'KB', 'MB', 'GB']
    size = float(size)
    unit_index = 0
    while size >= 1024 and unit_index < len(units) - 1:
        size /= 1024
        unit_index += 1
    return f'{size:.2f} {units[unit_index]}'


def calculate_entropy(data):
    """计算字节序列的香农熵（bit/字节）"""
    if not data:
        return 0.0
    counts = [0] * 256
    for byte in data:
        counts[byte] += 1
    entropy = 0.0
    for count in counts:
        if count:
            p = count / len(data)
            entropy -= p * math.log2(p)
    return entropy


def calculate_dir_size(dir_path):
    total = 0
    for root, _, files in os.walk(dir_path):
        for name in files:
            try:
                total += os.path.getsize(os.path.join(root, name))
            except OSError as e:
                print(f"计算文件大小出错: {e}")
    return total


def detect_file_type(path):
    """根据文件内容判断bundle类型

    Returns:
        (类型, 是否加密)，类型为 hbc / bundle / loader / unknown
    """
    try:
        with open(path, 'rb') as f:
            sample = f.read(ENTROPY_SAMPLE_SIZE)
            if sample.startswith(HERMES_MAGIC):
                return 'hbc', False
            if sample.startswith(GZIP_MAGIC):
                return 'bundle', False
            content = (sample + f.read()).decode('utf-8', errors='ignore')
    except OSError:
        return 'unknown', False

    if '__d(function' in content:
        return 'bundle', False
    if 'handleEvent' in content and 'window.addEventListener' in content:
        return 'loader', False
    return 'unknown', calculate_entropy(sample) > ENTROPY_THRESHOLD


def find_bundle_files(root_dir, metrics):
    """在解包目录中查找JS bundle，并判断bundle的加载方式"""
    mechanism = metrics.setdefault('bundleLoadingMechanism',
                                   {'type': 'unknown', 'loaderFiles': [], 'encryptedFiles': []})
    bundle_files = metrics.setdefault('bundleFiles', {})

    for root, _, files in os.walk(root_dir):
        for name in sorted(files):
            pattern_type = next((t for pattern, t in BUNDLE_PATTERNS if pattern.search(name)), None)
            if pattern_type is None:
                continue
            path = os.path.join(root, name)
            size = os.path.getsize(path)
            detected_type, is_encrypted = detect_file_type(path)
            is_loader = detected_type == 'loader' or pattern_type == 'loader'

            bundle_files[name] = {
                'size': size,
                'path': os.path.relpath(path, root_dir),
                'type': detected_type if detected_type != 'unknown' else pattern_type,
                'isEncrypted': is_encrypted,
                'isLoader': is_loader,
            }
            metrics['bundleSize'] = metrics.get('bundleSize', 0) + size

            if is_encrypted:
                mechanism['type'] = 'encrypted'
                mechanism['encryptedFiles'].append(name)
            if is_loader:
                mechanism['type'] = 'custom'
                mechanism['loaderFiles'].append(name)

    bundle_count = sum(1 for info in bundle_files.values() if info['type'] in ('bundle', 'hbc'))
    if bundle_count > 1:
        mechanism['type'] = 'split'
    elif bundle_count == 1 and mechanism['type'] == 'unknown':
        mechanism['type'] = 'direct'
    return metrics


def get_hermes_version(lib_path):
    """从 libhermes.so 的字符串中读取版本号"""
    result = run_command(['strings', lib_path])
    if result is None or result.returncode != 0:
        return None
    for line in result.stdout.splitlines():
        if 'hermes version' not in line.lower():
            continue
        match = re.search(r'version\s*[:\s]\s*(.+)', line, re.I)
        if match:
            return match.group(1).strip()
    return None


def analyze_native_libraries(extract_dir, metrics):
    """统计 lib/<abi>/ 下的原生库大小"""
    lib_dir = os.path.join(extract_dir, 'lib')
    total_size = calculate_dir_size(lib_dir) if os.path.isdir(lib_dir) else 0
    if total_size == 0:
        return metrics

    hermes = {'present': False, 'version': None, 'architectures': [], 'totalSize': 0}
    architectures = {}
    react_size = 0

    for arch in sorted(os.listdir(lib_dir)):
        arch_path = os.path.join(lib_dir, arch)
        if not os.path.isdir(arch_path):
            continue
        arch_size = 0
        for name in sorted(os.listdir(arch_path)):
            lib_path = os.path.join(arch_path, name)
            if not os.path.isfile(lib_path):
                continue
            size = os.path.getsize(lib_path)
            arch_size += size
            if HERMES_LIB_PATTERN.search(name):
                hermes['present'] = True
                hermes['totalSize'] += size
                if arch not in hermes['architectures']:
                    hermes['architectures'].append(arch)
                if name == 'libhermes.so' and not hermes['version']:
                    hermes['version'] = get_hermes_version(lib_path)
            elif REACT_LIB_PATTERN.search(name):
                react_size += size
        if arch_size:
            architectures[arch] = arch_size

    components = {'Native Libraries': total_size}
    if hermes['totalSize']:
        components['Hermes Runtime'] = hermes['totalSize']
    if react_size:
        components['React Native Libraries'] = react_size
    components['Other Native Libraries'] = total_size - hermes['totalSize'] - react_size

    metrics.update({
        'nativeLibrariesSize': total_size,
        'reactNativeLibsSize': react_size,
        'architectureBreakdown': architectures,
        'componentsBreakdown': components,
        'hermesRuntime': hermes,
    })
    return metrics


def analyze_apk(apk_path, metrics):
    """解包APK并分析bundle和原生库"""
    with tempfile.TemporaryDirectory() as extract_dir:
        try:
            with zipfile.ZipFile(apk_path) as apk:
                apk.extractall(extract_dir)
        except (zipfile.BadZipFile, OSError) as e:
            print(f"解包APK失败: {e}")
            return metrics
        find_bundle_files(extract_dir, metrics)
        analyze_native_libraries(extract_dir, metrics)
    return metrics


def get_app_paths(dumpsys_text):
    """从 dumpsys package 输出中提取应用目录"""
    paths = {}
    for key in ('dataDir', 'codePath', 'resourcePath'):
        match = re.search(rf'{key}=(\S+)', dumpsys_text or '')
        if match:
            paths[key] = match.group(1)
    return paths


def parse_du_size(output):
    """解析 du -s 输出（KB），返回字节数"""
    if not output:
        return None
    first = output.split()[0]
    return int(first) * 1024 if first.isdigit() else None


def parse_apk_paths(pm_path_output):
    paths = []
    for line in (pm_path_output or '').splitlines():
        path = line.replace('package:', '', 1).strip()
        if path:
            paths.append(path)
    return paths


def get_download_size(apk_paths, device_id=None):
    total = 0
    for path in apk_paths:
        output = run_adb_command(['shell', 'wc', '-c', path], device_id)
        if output and output.split()[0].isdigit():
            total += int(output.split()[0])
    return total


def get_installed_size(package_name, metrics, device_id=None):
    """依次尝试多种方法获取安装后体积，全部失败时标记 permissionDenied"""

    def from_data_dir():
        return parse_du_size(run_adb_command(['shell', 'du', '-s', f'/data/data/{package_name}'], device_id))

    def from_pm():
        output = run_adb_command(['shell', 'pm', 'get-app-size', package_name], device_id)
        match = re.search(r'Total size:\s+(\d+)', output or '')
        return int(match.group(1)) if match else None

    def from_dumpsys():
        paths = get_app_paths(run_adb_command(['shell', 'dumpsys', 'package', package_name], device_id))
        metrics['appPaths'] = paths
        if not paths.get('dataDir'):
            return None
        return parse_du_size(run_adb_command(['shell', 'du', '-s', paths['dataDir']], device_id))

    for method in (from_data_dir, from_pm, from_dumpsys):
        size = method()
        if size:
            metrics['installedAppSize'] = size
            return size

    metrics['permissionDenied'] = True
    return None


def get_app_size(package_name, device_id=None):
    """收集应用体积指标

    Returns:
        指标字典；应用未安装时返回None
    """
    if not is_app_installed(package_name, device_id):
        print(f"应用 {package_name} 未安装")
        return None

    metrics = {
        'installedAppSize': 0,
        'downloadSize': 0,
        'timestamp': datetime.now().isoformat(timespec='seconds'),
        'permissionDenied': False,
    }

    apk_paths = parse_apk_paths(run_adb_command(['shell', 'pm', 'path', package_name], device_id))
    if not apk_paths:
        print("获取APK路径失败")
        return metrics

    metrics['downloadSize'] = get_download_size(apk_paths, device_id)

    with tempfile.TemporaryDirectory() as temp_dir:
        local_apk = os.path.join(temp_dir, 'app.apk')
        if pull_file(apk_paths[0], local_apk, device_id):
            analyze_apk(local_apk, metrics)

    get_installed_size(package_name, metrics, device_id)
    return metrics


def _section(title, lines):
    return ['', title, '-' * len(title)] + [line for line in lines if line]


def render_app_size_report(package_name, metrics):
    lines = [
        f"Android App Size Report ({metrics.get('timestamp')})",
        f'Package: {package_name}',
        '',
        f"Download Size: {format_size(metrics.get('downloadSize', 0))}",
        f"Installed Size: {format_size(metrics['installedAppSize'])}" if metrics.get('installedAppSize')
        else 'Installed Size: Permission denied',
    ]

    if metrics.get('bundleFiles'):
        bundle_lines = ['JavaScript Bundle Analysis:']
        for name, info in metrics['bundleFiles'].items():
            bundle_lines.append(f'  - {name}:')
            bundle_lines.append(f"    Size: {format_size(info['size'])}")
            bundle_lines.append(f"    Type: {info['type']}")
            if info.get('isEncrypted'):
                bundle_lines.append('    Status: Encrypted')
            if info.get('isLoader'):
                bundle_lines.append('    Role: Bundle Loader')
        lines += _section('Bundle Files', bundle_lines)

    mechanism = metrics.get('bundleLoadingMechanism')
    if mechanism:
        loading_lines = [f"Bundle Loading Type: {mechanism['type']}"]
        if mechanism.get('loaderFiles'):
            loading_lines.append('Loader Files:\n  - ' + '\n  - '.join(mechanism['loaderFiles']))
        if mechanism.get('encryptedFiles'):
            loading_lines.append('Encrypted Files:\n  - ' + '\n  - '.join(mechanism['encryptedFiles']))
        lines += _section('Bundle Loading Mechanism', loading_lines)

    hermes = metrics.get('hermesRuntime')
    if hermes:
        lines += _section('Hermes Runtime', [
            f"Hermes Runtime: {'Present' if hermes['present'] else 'Not Found'}",
            f"Version: {hermes['version']}" if hermes.get('version') else '',
            f"Total Size: {format_size(hermes['totalSize'])}",
            f"Architectures: {', '.join(hermes['architectures'])}",
        ])

    if metrics.get('architectureBreakdown'):
        lines += _section('Architecture Breakdown', ['Size by Architecture:'] + [
            f'  - {arch}: {format_size(size)}' for arch, size in metrics['architectureBreakdown'].items()])

    if metrics.get('componentsBreakdown'):
        lines += _section('Component Breakdown', ['Size by Component:'] + [
            f'  - {name}: {format_size(size)}' for name, size in metrics['componentsBreakdown'].items()])

    paths = metrics.get('appPaths')
    if paths:
        lines += _section('App Paths', [
            f"Data Directory: {paths['dataDir']}" if paths.get('dataDir') else '',
            f"Code Path: {paths['codePath']}" if paths.get('codePath') else '',
            f"Resource Path: {paths['resourcePath']}" if paths.get('resourcePath') else '',
        ])

    return '\n'.join(lines) + '\n'


def write_app_size_report(output_dir, package_name, metrics):
    os.makedirs(output_dir, exist_ok=True)
    text = render_app_size_report(package_name, metrics)
    with open(os.path.join(output_dir, 'app_size_report.txt'), 'w', encoding='utf-8') as f:
        f.write(text)
    with open(os.path.join(output_dir, 'app_size_report.json'), 'w', encoding='utf-8') as f:
        json.dump(metrics, f, ensure_ascii=False, indent=2)
    return text


def main(argv=None):
    parser = argparse.ArgumentParser(description='Android应用体积分析')
    parser.add_argument('-p', '--package', default=DEFAULT_PACKAGE, help='应用包名')
    parser.add_argument('-o', '--output', default=DEFAULT_OUTPUT_DIR, help='报告输出目录')
    parser.add_argument('-d', '--device', help='设备ID')
    parser.add_argument('-v', '--verbose', action='store_true', help='在控制台输出报告')
    args = parser.parse_args(argv)

    if not check_device_connected(args.device):
        print("错误：未连接Android设备，请连接设备后重试")
        return 1

    metrics = get_app_size(args.package, args.device)
    if metrics is None:
        print("错误：获取应用体积失败")
        return 1

    text = write_app_size_report(args.output, args.package, metrics)
    if args.verbose:
        print(text)
    print(f"报告已保存到 {args.output}/")
    return 0


if __name__ == "__main__":
    sys.exit(main())
