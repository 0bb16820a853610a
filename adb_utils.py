#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
ADB 公共工具函数，供各个测试脚本共用
"""

import subprocess
import sys


def run_command(cmd_list, timeout=None, **kwargs):
    """执行命令并返回 CompletedProcess，命令不存在或超时时返回 None"""
    print(f"--- 执行: {' '.join(cmd_list)}")
    try:
        result = subprocess.run(cmd_list, capture_output=True, text=True, encoding='utf-8',
                                errors='replace', timeout=timeout, **kwargs)
    except FileNotFoundError:
        print(f"--- 错误: 未找到命令 {cmd_list[0]}，请确认已添加到PATH", file=sys.stderr)
        return None
    except subprocess.TimeoutExpired:
        print(f"--- 错误: 命令执行超时 ({timeout}秒): {' '.join(cmd_list)}", file=sys.stderr)
        return None

    if result.returncode != 0:
        print(f"--- 警告: 命令返回非零退出码 {result.returncode}", file=sys.stderr)
        if result.stderr:
            print(f"--- 错误输出:\n{result.stderr}", file=sys.stderr)
    return result


def run_adb_command(command, device_id=None, timeout=None):
    """执行adb命令并返回结果

    Args:
        command: 要执行的adb命令（不包含'adb'前缀），字符串或参数列表
        device_id: 设备ID，如果提供则针对特定设备执行命令
        timeout: 超时时间（秒）

    Returns:
        命令的标准输出（去掉首尾空白）；执行失败时返回 None
    """
    cmd = ['adb']
    if device_id:
        cmd.extend(['-s', device_id])

    # 处理管道命令
    if isinstance(command, str) and '|' in command:
        # 对于包含管道的命令，需要使用shell=True
        full_cmd = ' '.join(cmd) + ' ' + command
        print(f"--- 执行: {full_cmd}")
        try:
            result = subprocess.run(full_cmd, shell=True, capture_output=True, text=True,
                                    encoding='utf-8', errors='replace', timeout=timeout)
        except subprocess.TimeoutExpired:
            print(f"执行命令超时: {full_cmd}")
            return None
        if result.returncode != 0:
            print(f"执行命令失败: {full_cmd}")
            return None
        return result.stdout.strip()

    cmd.extend(command.split() if isinstance(command, str) else command)
    result = run_command(cmd, timeout=timeout)
    if result is None or result.returncode != 0:
        return None
    return result.stdout.strip()


def get_connected_devices():
    """获取所有已连接且已授权的设备ID

    Returns:
        设备ID列表
    """
    output = run_adb_command('devices')
    if output is None:
        print("错误：执行adb devices命令失败")
        return []

    devices = []
    for line in output.split('\n')[1:]:  # 跳过第一行的"List of devices attached"
        parts = line.split()
        if len(parts) >= 2 and parts[1] == 'device':
            devices.append(parts[0])

    if not devices:
        print("警告：未检测到任何已连接的Android设备")
    else:
        print(f"检测到 {len(devices)} 个设备：{', '.join(devices)}")
    return devices


def check_device_connected(device_id=None):
    """检查设备是否已连接；指定device_id时检查该设备"""
    devices = get_connected_devices()
    if device_id:
        return device_id in devices
    return bool(devices)


def get_device_info(device_id=None):
    """获取设备型号和Android版本"""
    info = {'device_id': device_id}
    model = run_adb_command('shell getprop ro.product.model', device_id)
    if model:
        info['model'] = model
    version = run_adb_command('shell getprop ro.build.version.release', device_id)
    if version:
        info['android_version'] = version
    return info


def clear_app_data(package_name, device_id=None):
    """清除应用数据，保证每次都是冷启动"""
    print(f"清除应用数据 {package_name}...")
    return run_adb_command(['shell', 'pm', 'clear', package_name], device_id) is not None


def is_app_installed(package_name, device_id=None):
    """检查应用是否已安装"""
    output = run_adb_command(['shell', 'pm', 'list', 'packages', package_name], device_id)
    if not output:
        return False
    return f'package:{package_name}' in output.split()


def launch_app(component, device_id=None):
    """用 am start-activity -W 启动应用，返回命令输出，失败返回None"""
    print(f"启动活动 {component}...")
    return run_adb_command(['shell', 'am', 'start-activity', '-W', component], device_id)


def get_app_pid(package_name, device_id=None):
    """获取应用进程ID，应用未运行时返回None"""
    output = run_adb_command(['shell', 'pidof', package_name], device_id)
    if not output:
        return None
    first = output.split()[0]
    return int(first) if first.isdigit() else None


def pull_file(remote_path, local_path, device_id=None):
    """从设备拉取文件"""
    print(f"拉取文件 {remote_path} -> {local_path}")
    return run_adb_command(['pull', remote_path, str(local_path)], device_id) is not None


def take_screenshot(output_path, device_id=None):
    """截屏并拉取到本地"""
    temp_path = '/sdcard/screen_temp.png'
    if run_adb_command(['shell', 'screencap', '-p', temp_path], device_id) is None:
        return False
    if not pull_file(temp_path, output_path, device_id):
        return False
    run_adb_command(['shell', 'rm', temp_path], device_id)
    return True
