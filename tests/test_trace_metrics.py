import re
import unittest
from unittest import mock

from trace_metrics import (PairedMarker, TraceConfig, TracePattern, MarkerConfigError, ANCHOR, MARKER,
                           resolve_first_match, normalize_timestamp, app_start_patterns, extract_trace_metrics,
                           scan_events)

PACKAGE = 'com.example.app'


def atrace_line(ts, payload, task='main', tid=1234):
    return f'          {task}-{tid}  ({tid}) [002] ...1  {ts}: tracing_mark_write: {payload}'


class TestResolveFirstMatch(unittest.TestCase):
    def test_first_pattern_wins_even_if_it_matches_later_in_text(self):
        patterns = [
            TracePattern('second', re.compile(r'(?P<ts>\d+): second')),
            TracePattern('first', re.compile(r'(?P<ts>\d+): first')),
        ]
        self.assertEqual(resolve_first_match(patterns, '1: first\n2: second'), 2.0)

    def test_only_first_occurrence_is_used(self):
        patterns = [TracePattern('mark', re.compile(r'(?P<ts>\d+): mark'))]
        self.assertEqual(resolve_first_match(patterns, '5: mark\n7: mark'), 5.0)

    def test_no_match_returns_none(self):
        patterns = [TracePattern('mark', re.compile(r'(?P<ts>\d+): mark'))]
        self.assertIsNone(resolve_first_match(patterns, 'nothing here'))
        self.assertIsNone(resolve_first_match(patterns, ''))

    def test_pattern_is_skipped_when_required_text_is_missing(self):
        regex = mock.Mock()
        patterns = [TracePattern('mark', regex, ('tap_start',)),
                    TracePattern('fallback', re.compile(r'(?P<ts>\d+): other'))]

        self.assertEqual(resolve_first_match(patterns, '3: other'), 3.0)
        regex.search.assert_not_called()


class TestNormalizeTimestamp(unittest.TestCase):
    def test_microseconds_are_converted_to_seconds(self):
        self.assertEqual(normalize_timestamp(1500000), 1.5)

    def test_values_below_threshold_are_unchanged(self):
        self.assertEqual(normalize_timestamp(123.456), 123.456)
        self.assertEqual(normalize_timestamp(1000000), 1000000)


class TestConfigValidation(unittest.TestCase):
    def test_paired_marker_requires_both_sides(self):
        with self.assertRaises(MarkerConfigError):
            PairedMarker('tap_start', '', 'load')
        with self.assertRaises(MarkerConfigError):
            PairedMarker('', 'loaded_end', 'load')

    def test_trace_config_requires_package(self):
        with self.assertRaises(MarkerConfigError):
            TraceConfig('')

    def test_trace_config_rejects_blank_marker(self):
        with self.assertRaises(MarkerConfigError):
            TraceConfig(PACKAGE, custom_markers=['ok', ' '])

    def test_lists_become_tuples(self):
        config = TraceConfig(PACKAGE, ['a'], [PairedMarker('s', 'e', 'n')])
        self.assertEqual(config.custom_markers, ('a',))
        self.assertIsInstance(config.paired_markers, tuple)


class TestExtractTraceMetrics(unittest.TestCase):
    def test_startup_and_custom_marker(self):
        text = ('... 123.456: tracing_mark_write: B|100|Startup ...\n'
                '... 124.100: tracing_mark_write: B|100|app_js_initialized ...')
        config = TraceConfig(PACKAGE, ['app_js_initialized'])

        metrics = extract_trace_metrics(text, config)

        self.assertEqual(metrics['appStartTimestamp'], 123.456)
        self.assertEqual(metrics['app_js_initializedTimestamp'], 124.1)
        self.assertAlmostEqual(metrics['timeToapp_js_initialized'], 0.644, places=6)

    def test_microsecond_anchor_is_normalized(self):
        text = atrace_line('1500000', 'B|1234|Startup')
        metrics = extract_trace_metrics(text, TraceConfig(PACKAGE))
        self.assertEqual(metrics['appStartTimestamp'], 1.5)

    def test_lifecycle_events_are_relative_to_anchor(self):
        text = '\n'.join([
            atrace_line('123.456000', 'B|1234|Startup'),
            atrace_line('125.000000', f'B|1234|performCreate:{PACKAGE}.MainActivity', task=PACKAGE),
            atrace_line('125.500000', f'B|1234|performResume:{PACKAGE}.MainActivity', task=PACKAGE),
        ])

        metrics = extract_trace_metrics(text, TraceConfig(PACKAGE))

        self.assertEqual(metrics['activityCreateTimestamp'], 125.0)
        self.assertAlmostEqual(metrics['timeToCreate'], 1.544, places=6)
        self.assertAlmostEqual(metrics['timeToResume'], 2.044, places=6)
        self.assertNotIn('activityStartTimestamp', metrics)
        self.assertNotIn('timeToStart', metrics)

    def test_startup_mark_is_preferred_over_activity_manager(self):
        text = '\n'.join([
            f'   100.000  1000  1000 I ActivityTaskManager: START u0 {{cmp={PACKAGE}/.MainActivity}}',
            atrace_line('101.000000', 'B|1234|Startup'),
        ])
        metrics = extract_trace_metrics(text, TraceConfig(PACKAGE))
        self.assertEqual(metrics['appStartTimestamp'], 101.0)

    def test_logcat_activity_manager_anchor(self):
        text = '\n'.join([
            '    99.000  1000  1000 I SomeService: unrelated',
            f'   100.250  1000  1000 I ActivityTaskManager: START u0 {{cmp={PACKAGE}/.MainActivity}}',
        ])
        metrics = extract_trace_metrics(text, TraceConfig(PACKAGE))
        self.assertEqual(metrics['appStartTimestamp'], 100.25)

    def test_threadtime_clock_is_not_taken_as_timestamp(self):
        text = f'01-01 12:34:56.789  1000  1000 I ActivityTaskManager: START u0 {{cmp={PACKAGE}/.MainActivity}}'
        self.assertEqual(extract_trace_metrics(text, TraceConfig(PACKAGE)), {})

    def test_text_without_timestamps_has_no_relative_keys(self):
        text = f'performCreate {PACKAGE}\napp_js_initialized\nStartup'
        config = TraceConfig(PACKAGE, ['app_js_initialized'])
        metrics = extract_trace_metrics(text, config)
        self.assertEqual(metrics, {})

    def test_zero_timestamp_is_treated_as_absent(self):
        text = atrace_line('0.000000', 'B|1234|Startup')
        self.assertEqual(extract_trace_metrics(text, TraceConfig(PACKAGE)), {})

    def test_paired_marker_duration(self):
        text = '\n'.join([
            atrace_line('100.000000', 'B|1234|Startup'),
            atrace_line('110.500000', 'I|1234|tap_start'),
            atrace_line('112.250000', 'I|1234|loaded_end'),
        ])
        config = TraceConfig(PACKAGE, paired_markers=[PairedMarker('tap_start', 'loaded_end', 'load')])

        metrics = extract_trace_metrics(text, config)

        self.assertEqual(metrics['loadDuration'], 112.25 - 110.5)
        self.assertAlmostEqual(metrics['timeTotap_start'], 10.5, places=6)
        self.assertAlmostEqual(metrics['timeToloaded_end'], 12.25, places=6)

    def test_one_sided_pair_has_no_duration(self):
        text = '\n'.join([
            atrace_line('100.000000', 'B|1234|Startup'),
            atrace_line('110.500000', 'I|1234|tap_start'),
        ])
        config = TraceConfig(PACKAGE, paired_markers=[PairedMarker('tap_start', 'loaded_end', 'load')])

        metrics = extract_trace_metrics(text, config)

        self.assertIn('tap_startTimestamp', metrics)
        self.assertNotIn('loaded_endTimestamp', metrics)
        self.assertNotIn('loadDuration', metrics)

    def test_exact_marker_name_is_preferred_over_substring(self):
        text = '\n'.join([
            atrace_line('100.000000', 'B|1234|Startup'),
            atrace_line('101.000000', 'B|1234|first_screen_mounted_late'),
            atrace_line('102.000000', 'B|1234|first_screen_mounted'),
        ])
        metrics = extract_trace_metrics(text, TraceConfig(PACKAGE, ['first_screen_mounted']))
        self.assertEqual(metrics['first_screen_mountedTimestamp'], 102.0)

    def test_undecodable_bytes_do_not_raise(self):
        text = b'\xff\xfe garbage\n' + atrace_line('123.456000', 'B|1234|Startup').encode('utf-8')
        metrics = extract_trace_metrics(text, TraceConfig(PACKAGE))
        self.assertEqual(metrics['appStartTimestamp'], 123.456)

    def test_empty_text(self):
        config = TraceConfig(PACKAGE, ['m'], [PairedMarker('s', 'e', 'n')])
        self.assertEqual(extract_trace_metrics('', config), {})
        self.assertEqual(extract_trace_metrics(None, config), {})

    def test_extraction_is_repeatable(self):
        text = ('... 123.456: tracing_mark_write: B|100|Startup ...\n'
                '... 124.100: tracing_mark_write: B|100|app_js_initialized ...')
        config = TraceConfig(PACKAGE, ['app_js_initialized'])
        self.assertEqual(extract_trace_metrics(text, config), extract_trace_metrics(text, config))

    def test_marker_names_cannot_shadow_builtin_keys(self):
        for name in ('appStart', 'activityCreate', 'Resume', 'FullyDrawn'):
            with self.assertRaises(MarkerConfigError):
                TraceConfig(PACKAGE, [name])
        with self.assertRaises(MarkerConfigError):
            TraceConfig(PACKAGE, paired_markers=[PairedMarker('tap_start', 'activityStart', 'load')])
        with self.assertRaises(MarkerConfigError):
            TraceConfig(PACKAGE, paired_markers=[PairedMarker('tap_start', 'loaded_end', 'avgFrame')])

    def test_similar_marker_keeps_lifecycle_values(self):
        text = '\n'.join([
            atrace_line('100.000000', 'B|1234|Startup'),
            atrace_line('101.000000', f'B|1234|performCreate:{PACKAGE}.MainActivity', task=PACKAGE),
            atrace_line('105.000000', 'I|1234|activityCreated'),
        ])

        metrics = extract_trace_metrics(text, TraceConfig(PACKAGE, ['activityCreated']))

        self.assertEqual(metrics['appStartTimestamp'], 100.0)
        self.assertEqual(metrics['activityCreateTimestamp'], 101.0)
        self.assertAlmostEqual(metrics['timeToCreate'], 1.0, places=6)
        self.assertEqual(metrics['activityCreatedTimestamp'], 105.0)
        self.assertAlmostEqual(metrics['timeToactivityCreated'], 5.0, places=6)

    def test_lifecycle_and_marker_events_keep_their_kind(self):
        text = '\n'.join([
            atrace_line('100.000000', 'B|1234|Startup'),
            atrace_line('101.000000', 'I|1234|performCreate_js'),
        ])
        events = list(scan_events(text, TraceConfig(PACKAGE, ['performCreate_js'])))
        self.assertEqual([(e.kind, e.name) for e in events], [(ANCHOR, 'appStart'), (MARKER, 'performCreate_js')])

    def test_negative_paired_duration_is_kept(self):
        text = '\n'.join([
            atrace_line('100.000000', 'B|1234|Startup'),
            atrace_line('110.500000', 'I|1234|loaded_end'),
            atrace_line('112.000000', 'I|1234|tap_start'),
        ])
        config = TraceConfig(PACKAGE, paired_markers=[PairedMarker('tap_start', 'loaded_end', 'load')])

        metrics = extract_trace_metrics(text, config)

        self.assertLess(metrics['loadDuration'], 0)
        self.assertEqual(metrics['loadDuration'], -1.5)

    def test_microsecond_marker_is_normalized(self):
        text = '\n'.join([
            atrace_line('100.000000', 'B|1234|Startup'),
            atrace_line('102500000', 'I|1234|app_js_initialized'),
        ])

        metrics = extract_trace_metrics(text, TraceConfig(PACKAGE, ['app_js_initialized']))

        self.assertEqual(metrics['appStartTimestamp'], 100.0)
        self.assertEqual(metrics['app_js_initializedTimestamp'], 102.5)
        self.assertAlmostEqual(metrics['timeToapp_js_initialized'], 2.5, places=6)


class TestAppStartPatterns(unittest.TestCase):
    def test_chain_ends_with_generic_fallbacks(self):
        labels = [pattern.label for pattern in app_start_patterns(PACKAGE)]
        self.assertEqual(labels[0], 'startup-mark')
        self.assertEqual(labels[-2:], ['first-package-line', 'first-timestamp'])


if __name__ == '__main__':
    unittest.main()
