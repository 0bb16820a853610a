import json
from pathlib import Path

SUMMARY_FILE = 'summary_report.json'
ITERATION_GLOB = 'metrics_*.json'


class DataProcessor:
    def __init__(self, base_dir):
        """
        初始化数据处理器
        :param base_dir: 性能测试结果的输出目录（measure_performance.py 的 --output）
        """
        self.base_dir = Path(base_dir)

    def _is_run_folder(self, folder):
        return (folder / SUMMARY_FILE).is_file() or any(folder.glob(ITERATION_GLOB))

    def get_run_folders(self):
        """
        获取所有测试结果目录（输出目录本身及 --all-devices 生成的 <设备ID>/ 子目录）
        :return: {运行名称: 目录路径}
        """
        runs = {}
        if not self.base_dir.is_dir():
            return runs
        candidates = [self.base_dir] + sorted(p for p in self.base_dir.iterdir() if p.is_dir())
        for folder in candidates:
            if self._is_run_folder(folder):
                name = folder.resolve().name if folder == self.base_dir else folder.name
                runs.setdefault(name, folder)
        return runs

    def get_run_folder(self, run_name):
        return self.get_run_folders().get(run_name)

    @staticmethod
    def _load_json(path):
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            print(f"读取 {path} 失败: {e}")
            return None

    def get_iterations(self, run_folder):
        """
        获取每次迭代的指标
        :param run_folder: 测试结果目录
        :return: 按迭代序号排序的列表
        """
        iterations = []
        for path in run_folder.glob(ITERATION_GLOB):
            data = self._load_json(path)
            if not isinstance(data, dict):
                continue
            iterations.append(data)
        return sorted(iterations, key=lambda item: item.get('iteration') or 0)

    def get_summary(self, run_folder):
        """
        获取汇总报告
        :param run_folder: 测试结果目录
        :return: 汇总字典，不存在时返回None
        """
        path = run_folder / SUMMARY_FILE
        if not path.is_file():
            return None
        return self._load_json(path)

    def get_metric_series(self, iterations, metric):
        """
        提取某个指标在各次迭代中的取值，缺失的迭代取值为None
        """
        return [{'iteration': item.get('iteration'), 'value': (item.get('metrics') or {}).get(metric)}
                for item in iterations]

    def get_all_runs(self):
        """
        获取所有运行的概要信息
        :return: 列表，每项包含名称、设备、迭代次数等
        """
        runs = []
        for name, folder in self.get_run_folders().items():
            summary = self.get_summary(folder) or {}
            run_info = summary.get('runInfo') or {}
            runs.append({
                'name': name,
                'app_package': summary.get('appPackage'),
                'date': summary.get('date'),
                'device_model': run_info.get('device_model'),
                'device_id': run_info.get('device_id'),
                'iterations': run_info.get('iterations'),
                'successful_iterations': run_info.get('successful_iterations'),
                'has_summary': bool(summary),
            })
        return runs

    def get_metric_keys(self):
        """
        获取所有运行中出现过的指标名，保持首次出现的顺序
        """
        keys = []
        for folder in self.get_run_folders().values():
            for item in self.get_iterations(folder):
                for key in item.get('metrics') or {}:
                    if key not in keys:
                        keys.append(key)
            summary = self.get_summary(folder) or {}
            for key in summary.get('summary') or {}:
                if key not in keys:
                    keys.append(key)
        return keys
