import json
import os
import tempfile
import unittest

from metrics_report import (render_iteration_report, render_summary_report, write_iteration_report,
                            write_summary_report)
from summary_aggregator import summarize_metric_sets
from trace_metrics import PairedMarker, TraceConfig

CONFIG = TraceConfig('com.example.app', ['app_js_initialized', 'first_screen_mounted'],
                     [PairedMarker('tap_start', 'loaded_end', 'load')])

METRICS = {
    'appStartTimestamp': 123.456,
    'activityResumeTimestamp': 125.5,
    'timeToResume': 2.044,
    'app_js_initializedTimestamp': 124.1,
    'timeToapp_js_initialized': 0.644,
    'tap_startTimestamp': 130.0,
    'timeTotap_start': 6.544,
}


class TestRenderIterationReport(unittest.TestCase):
    def setUp(self):
        self.report = render_iteration_report(METRICS, CONFIG, 'Pixel 7', '2024-01-01T00:00:00')

    def test_header(self):
        self.assertTrue(self.report.startswith('===== App Performance Metrics =====\n'))
        self.assertIn('Date: 2024-01-01T00:00:00\n', self.report)
        self.assertIn('Device: Pixel 7\n', self.report)
        self.assertIn('App Package: com.example.app\n', self.report)

    def test_sections_in_order(self):
        headers = ['== Measurement Reference Point ==', '== Android Activity Lifecycle Events ==',
                   '== Time from App Launch to Activity Lifecycle Events ==', '== Custom Performance Markers ==',
                   '== Time from App Launch to Custom Markers ==', '== Paired Markers (Start/End) ==',
                   '== Frame Rendering Performance ==']
        positions = [self.report.index(header) for header in headers]
        self.assertEqual(positions, sorted(positions))

    def test_reference_point_describes_resolved_anchor(self):
        self.assertIn('use the resolved app-start anchor as the reference start time (t=0)', self.report)
        self.assertIn('the Startup trace mark, APPLICATION_START', self.report)
        self.assertNotIn('Activity Manager START intent as the reference', self.report)

    def test_found_and_missing_values(self):
        self.assertIn('Activity start intent time: 123.456 seconds (absolute time)', self.report)
        self.assertIn('This is our t=0 reference point for all relative measurements.', self.report)
        self.assertIn('Activity performCreate time: Not found in trace', self.report)
        self.assertIn('Activity performResume time: 125.500 seconds (absolute time)', self.report)
        self.assertIn('Time from intent to performResume: 2.044 seconds', self.report)
        self.assertNotIn('Time from intent to performCreate', self.report)

    def test_markers(self):
        self.assertIn('app_js_initialized marker time: 124.100 seconds (absolute time)', self.report)
        self.assertIn('first_screen_mounted marker: Not found in trace', self.report)
        self.assertIn('Time from app start to app_js_initialized: 0.644 seconds', self.report)

    def test_paired_marker(self):
        self.assertIn('=== load ===', self.report)
        self.assertIn('tap_start time: 130.000 seconds (absolute time)', self.report)
        self.assertIn('loaded_end: Not found in trace', self.report)
        self.assertIn('Duration of load: Could not be calculated', self.report)

    def test_frames(self):
        self.assertIn('Total frames captured: 0', self.report)
        report = render_iteration_report({'totalFrames': 120, 'avgFrameDuration': 12.5, 'avgFps': 81.0,
                                          'jankyFrames': 6, 'jankyFramesPercentage': 5.0},
                                         CONFIG, None, 'now')
        self.assertIn('Device: Unknown', report)
        self.assertIn('Total frames captured: 120', report)
        self.assertIn('Average frame duration: 12.50 ms', report)
        self.assertIn('Average FPS: 81.0', report)
        self.assertIn('Janky frames (>16.67ms): 6 (5.0%)', report)
        self.assertNotIn('Severe janky frames', report)


class TestRenderSummaryReport(unittest.TestCase):
    def test_stats_and_no_data(self):
        summary = summarize_metric_sets([{'timeToResume': 1.0}, {'timeToResume': 1.2}, {'timeToResume': 0.8}],
                                        CONFIG)
        run_info = {'iterations': 3, 'successful_iterations': 3, 'device_model': 'Pixel 7'}

        report = render_summary_report(summary, CONFIG, run_info, 'now')

        self.assertIn('===== Performance Summary Report =====', report)
        self.assertIn('App Activity: com.example.app.MainActivity', report)
        self.assertIn('Successful Iterations: 3', report)
        self.assertIn('Android Version: Unknown', report)
        self.assertIn('Time from intent to performResume:\n  Min: 0.800\n  Max: 1.200\n  Avg: 1.000\n'
                      '  Median: 1.000\n  Runs: 3', report)
        self.assertIn('Duration of load:\n  No data available', report)
        self.assertIn('== Paired Marker: load ==', report)


class TestWriteReports(unittest.TestCase):
    def test_iteration_files(self):
        with tempfile.TemporaryDirectory() as output_dir:
            path = write_iteration_report(output_dir, 2, METRICS, CONFIG, 'Pixel 7')

            self.assertEqual(path, os.path.join(output_dir, 'metrics_2.txt'))
            with open(os.path.join(output_dir, 'metrics_2.json'), encoding='utf-8') as f:
                data = json.load(f)
            self.assertEqual(data['iteration'], 2)
            self.assertEqual(data['metrics'], METRICS)
            self.assertEqual(data['device'], 'Pixel 7')

    def test_summary_files(self):
        summary = summarize_metric_sets([{'loadDuration': 1.5}], CONFIG)
        with tempfile.TemporaryDirectory() as output_dir:
            write_summary_report(output_dir, summary, CONFIG, {'iterations': 1, 'successful_iterations': 1})

            with open(os.path.join(output_dir, 'summary_report.json'), encoding='utf-8') as f:
                data = json.load(f)
            self.assertTrue(os.path.isfile(os.path.join(output_dir, 'summary_report.txt')))

        self.assertEqual(data['summary']['loadDuration']['avg'], 1.5)
        self.assertIsNone(data['summary']['timeToFullyDrawn'])
        self.assertEqual(data['runInfo']['iterations'], 1)


if __name__ == '__main__':
    unittest.main()
