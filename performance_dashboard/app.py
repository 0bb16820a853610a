import os

from flask import Flask, render_template, jsonify, request

from .data_processor import DataProcessor

DEFAULT_RESULTS_DIR = './performance_traces'


def _metric_category(key):
    if key.endswith('Duration'):
        return '成对标记'
    if key in ('totalFrames', 'avgFrameDuration', 'avgFps', 'jankyFrames', 'jankyFramesPercentage',
               'severeJankyFrames', 'severeJankyFramesPercentage'):
        return '流畅度'
    if key.startswith(('app', 'activity')) or key in ('timeToCreate', 'timeToStart', 'timeToResume',
                                                      'timeToFullyDrawn'):
        return '启动'
    return '自定义标记'


def create_app(results_dir=None):
    app = Flask(__name__)

    # 初始化数据处理器
    results_dir = results_dir or os.environ.get('PERF_RESULTS_DIR', DEFAULT_RESULTS_DIR)
    data_processor = DataProcessor(results_dir)

    @app.route('/')
    def index():
        """主页面"""
        return render_template('index.html')

    @app.route('/api/runs')
    def get_runs():
        """获取所有测试结果"""
        return jsonify(data_processor.get_all_runs())

    @app.route('/api/run/<run_name>/iterations')
    def get_run_iterations(run_name):
        """获取指定运行的每次迭代指标，传入 metric 参数时只返回该指标的序列"""
        run_folder = data_processor.get_run_folder(run_name)
        if run_folder is None:
            return jsonify({'error': '测试结果不存在'}), 404

        iterations = data_processor.get_iterations(run_folder)
        metric = request.args.get('metric')
        if metric:
            return jsonify(data_processor.get_metric_series(iterations, metric))
        return jsonify(iterations)

    @app.route('/api/run/<run_name>/summary')
    def get_run_summary(run_name):
        """获取指定运行的汇总报告"""
        run_folder = data_processor.get_run_folder(run_name)
        summary = data_processor.get_summary(run_folder) if run_folder is not None else None
        if summary is None:
            return jsonify({'error': '汇总报告不存在'}), 404
        return jsonify(summary)

    @app.route('/api/metrics')
    def get_metrics():
        """获取可用的性能指标"""
        metrics = [{'id': key, 'name': key, 'category': _metric_category(key)}
                   for key in data_processor.get_metric_keys()]
        return jsonify(metrics)

    return app


def main():
    app = create_app()
    app.run(debug=True, host='0.0.0.0', port=5002)


if __name__ == '__main__':
    main()
