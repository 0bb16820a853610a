#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
根据 avd_config.json 批量创建Android模拟器

配置示例：
{
  "devices": [
    {"avd_name": "pixel_api34", "package": "system-images;android-34;google_apis;x86_64",
     "device": "pixel_6", "api_level": "34", "ram": "4096", "screen_resolution": "1080x2400"}
  ]
}
"""

import argparse
import json
import os
import re
import shutil
import sys
from pathlib import Path

from adb_utils import run_command

CONFIG_FILE = 'avd_config.json'
BUILD_TOOLS = 'build-tools;34.0.0'
REQUIRED_FIELDS = ('avd_name', 'package', 'device')

# 设备配置字段 -> config.ini 中的键
CONFIG_INI_KEYS = [
    ('ram', 'hw.ramSize'),
    ('internal_storage', 'disk.dataPartition.size'),
    ('sd_card_size', 'sdcard.size'),
    ('network_type', 'hw.network'),
    ('signal_strength', 'hw.network.signalStrength'),
    ('battery_level', 'battery.level'),
    ('battery_health', 'battery.health'),
]


class AvdError(RuntimeError):
    """创建或配置模拟器失败"""


def run_sdk_tool(cmd_list):
    """执行SDK工具命令，失败时抛出AvdError"""
    result = run_command(cmd_list)
    if result is None:
        raise AvdError(f"无法执行命令: {' '.join(cmd_list)}")
    if result.returncode != 0:
        raise AvdError(f"命令执行失败 ({result.returncode}): {result.stderr.strip()}")
    return result.stdout


class SdkPackages:
    """记录已安装的SDK包，避免重复调用 sdkmanager"""

    def __init__(self):
        self.installed = set()

    def is_installed(self, package):
        if package in self.installed:
            return True
        return package in run_sdk_tool(['sdkmanager', '--list_installed'])

    def install(self, package, description):
        print(f"检查 {description} {package} 是否已安装...")
        if self.is_installed(package):
            print(f"{description} {package} 已安装")
            self.installed.add(package)
            return

        print(f"未找到 {package}，开始安装...")
        run_sdk_tool(['sdkmanager', package])
        if not self.is_installed(package):
            raise AvdError(f"安装 {package} 后校验失败")
        self.installed.add(package)
        print(f"已安装 {package}")


def required_packages(devices):
    """返回 (平台列表, 系统镜像列表)，保持配置中的顺序"""
    platforms = []
    images = []
    for device in devices:
        platform = f"platforms;android-{device.get('api_level')}"
        if device.get('api_level') and platform not in platforms:
            platforms.append(platform)
        if device.get('package') and device['package'] not in images:
            images.append(device['package'])
    return platforms, images


def install_required_packages(devices, sdk=None):
    sdk = sdk or SdkPackages()
    platforms, images = required_packages(devices)
    for platform in platforms:
        sdk.install(platform, '平台SDK')
    for image in images:
        sdk.install(image, '系统镜像')
    sdk.install('platform-tools', '平台工具')
    sdk.install(BUILD_TOOLS, '构建工具')
    return sdk


def replace_or_append(content, pattern, new_line):
    """替换第一个匹配pattern的行，没有匹配时追加到末尾"""
    regex = re.compile(pattern)
    lines = content.split('\n')
    for i, line in enumerate(lines):
        if regex.search(line):
            lines[i] = new_line
            return '\n'.join(lines)
    lines.append(new_line)
    return '\n'.join(lines)


def customize_avd_config(content, device_cfg):
    """按设备配置修改 config.ini 的内容"""
    for field, key in CONFIG_INI_KEYS:
        value = device_cfg.get(field)
        if value:
            content = replace_or_append(content, '^' + re.escape(key) + '=', f'{key}={value}')

    resolution = device_cfg.get('screen_resolution')
    if resolution:
        width, _, height = str(resolution).partition('x')
        if width and height:
            content = replace_or_append(content, r'^hw\.lcd\.width=', f'hw.lcd.width={width}')
            content = replace_or_append(content, r'^hw\.lcd\.height=', f'hw.lcd.height={height}')
    return content


def build_avdmanager_args(device_cfg):
    args = ['avdmanager', 'create', 'avd', '-n', device_cfg['avd_name'], '-k', device_cfg['package'],
            '-d', device_cfg['device'], '--force']
    for field in ('tag', 'abi'):
        value = device_cfg.get(field)
        if value and value != 'null':
            args.extend([f'--{field}', value])
    return args


def avd_config_path(avd_name, home=None):
    return Path(home or Path.home()) / '.android' / 'avd' / f'{avd_name}.avd' / 'config.ini'


def create_avd(device_cfg, home=None):
    """创建一个模拟器并修改它的 config.ini"""
    missing = [field for field in REQUIRED_FIELDS if not device_cfg.get(field)]
    if missing:
        raise AvdError(f"缺少必填字段: {', '.join(missing)}")

    avd_name = device_cfg['avd_name']
    if device_cfg['package'] not in run_sdk_tool(['sdkmanager', '--list_installed']):
        raise AvdError(f"系统镜像 {device_cfg['package']} 未安装")

    if f'"{device_cfg["device"]}"' not in run_sdk_tool(['avdmanager', 'list', 'device']):
        raise AvdError(f"设备类型 \"{device_cfg['device']}\" 不存在，请检查设备名称")

    print(f"创建模拟器 \"{avd_name}\"...")
    run_sdk_tool(build_avdmanager_args(device_cfg))

    config_path = avd_config_path(avd_name, home)
    if not config_path.is_file():
        raise AvdError(f"未找到文件: {config_path}")

    print(f"修改 \"{avd_name}\" 的配置...")
    content = config_path.read_text(encoding='utf-8')
    config_path.write_text(customize_avd_config(content, device_cfg), encoding='utf-8')
    return avd_name


def load_avd_config(config_file):
    """读取配置文件，返回设备列表"""
    if not os.path.exists(config_file):
        raise AvdError(f"配置文件不存在: {config_file}")
    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            config = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise AvdError(f"解析 {config_file} 失败: {e}")

    devices = config.get('devices') if isinstance(config, dict) else None
    if not isinstance(devices, list):
        raise AvdError(f"{config_file} 中缺少 devices 数组")
    return devices


def main(argv=None):
    parser = argparse.ArgumentParser(description='根据配置文件批量创建Android模拟器')
    parser.add_argument('-c', '--config', default=CONFIG_FILE, help='配置文件路径（默认：avd_config.json）')
    args = parser.parse_args(argv)

    for tool in ('sdkmanager', 'avdmanager'):
        if not shutil.which(tool):
            print(f"错误：在PATH中未找到 {tool}")
            return 1

    try:
        devices = load_avd_config(args.config)
        install_required_packages(devices)
    except AvdError as e:
        print(f"错误：{e}")
        return 1

    print(f"在 {args.config} 中找到 {len(devices)} 个设备")
    created = []
    for index, device_cfg in enumerate(devices, 1):
        print(f"\n处理第 {index}/{len(devices)} 个设备: {device_cfg.get('avd_name')}")
        try:
            created.append(create_avd(device_cfg))
        except AvdError as e:
            print(f"创建第 {index} 个设备失败: {e}")
            return 1

    print("\n成功创建的模拟器:")
    for name in created:
        print(f"  ✓ {name}")
    print(f"共创建 {len(created)}/{len(devices)} 个模拟器")
    return 0


if __name__ == "__main__":
    sys.exit(main())
