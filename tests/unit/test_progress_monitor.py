"""Unit tests for progress estimation, ETA blending and the monitor loop."""

import queue
import unittest

from adaptive_encoder.core.modules.processing.progress_monitor import (
    ProgressMonitor, ProgressParser, ProgressSample, calculate_update_interval,
    estimate_eta, estimate_progress, project_final_size, resolution_class,
)


class FakeClock:
    def __init__(self, start=0.0):
        self.now = start

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.now += seconds


class TestUpdateInterval(unittest.TestCase):

    def test_resolution_classes(self):
        self.assertEqual(resolution_class(3840, 2160), "4k")
        self.assertEqual(resolution_class(2560, 1440), "1440p")
        self.assertEqual(resolution_class(1920, 1080), "1080p")

    def test_baseline(self):
        self.assertEqual(calculate_update_interval(1920, 1080, 50, "abr"), 1)

    def test_additive_terms(self):
        self.assertEqual(calculate_update_interval(2560, 1440, 60, "abr"), 3)
        self.assertEqual(calculate_update_interval(1920, 1080, 75, "cbr"), 4)

    def test_clamped_to_five(self):
        self.assertEqual(calculate_update_interval(3840, 2160, 90, "cbr"), 5)


class TestEstimation(unittest.TestCase):

    def test_frame_based_preferred(self):
        sample = ProgressSample(0, out_time_us=10_000_000, frame=500)
        self.assertEqual(estimate_progress(sample, 100, 1000), ("frame", 0.5))

    def test_time_based_when_frame_estimate_overshoots(self):
        sample = ProgressSample(0, out_time_us=50_000_000, frame=2000)
        self.assertEqual(estimate_progress(sample, 100, 1000), ("time", 0.5))

    def test_time_based_is_capped(self):
        sample = ProgressSample(0, out_time_us=120_000_000)
        self.assertEqual(estimate_progress(sample, 100, 0), ("time", 1.0))

    def test_unknown_without_data(self):
        self.assertEqual(estimate_progress(ProgressSample(0), 100, 1000), ("unknown", 0.0))

    def test_eta_from_progress(self):
        self.assertEqual(estimate_eta(0.5, 100, 0, 0, 0), 100)

    def test_eta_prefers_frame_rate_when_plausible(self):
        self.assertEqual(estimate_eta(0.5, 100, 10, 1000, 0), 50)

    def test_eta_speed_correction(self):
        self.assertEqual(estimate_eta(0.5, 100, 0, 0, 2.0), 50)

    def test_eta_over_a_day_discarded(self):
        self.assertIsNone(estimate_eta(0.02, 2000, 0, 0, 0))

    def test_eta_unavailable_early(self):
        self.assertIsNone(estimate_eta(0.005, 10, 0, 0, 0))

    def test_size_projection(self):
        self.assertEqual(project_final_size(1000, 0.5), 2000)
        self.assertIsNone(project_final_size(1000, 0.01))
        self.assertIsNone(project_final_size(0, 0.5))


class TestProgressParser(unittest.TestCase):

    def test_block_yields_sample(self):
        parser = ProgressParser(clock=lambda: 42.0)
        lines = ["frame=100\n", "fps=25.0\n", "out_time_us=4000000\n", "total_size=1024\n",
                 "speed=1.5x\n"]
        for line in lines:
            self.assertIsNone(parser.feed(line))
        sample = parser.feed("progress=continue\n")
        self.assertEqual(sample, ProgressSample(42.0, 4_000_000, 100, 25.0, 1.5, 1024, False))

    def test_not_available_values(self):
        parser = ProgressParser(clock=lambda: 0.0)
        for line in ("frame=0", "out_time_us=N/A", "speed=N/A", "total_size=N/A"):
            parser.feed(line)
        sample = parser.feed("progress=end")
        self.assertEqual((sample.out_time_us, sample.speed, sample.total_size), (0, 0.0, 0))
        self.assertTrue(sample.finished)

    def test_blocks_do_not_leak(self):
        parser = ProgressParser(clock=lambda: 0.0)
        parser.feed("frame=10")
        parser.feed("progress=continue")
        self.assertEqual(parser.feed("progress=continue").frame, 0)


class TestProgressMonitor(unittest.TestCase):

    def _monitor(self, clock, **kwargs):
        return ProgressMonitor("pass", 100, 1000, clock=clock, sleep=clock.sleep,
                               show_bar=False, **kwargs)

    def test_stall_suppresses_eta_but_keeps_going(self):
        clock = FakeClock()
        monitor = self._monitor(clock, interval=1, stall_seconds=10)
        sample = ProgressSample(0, frame=500)

        for _ in range(11):
            estimate = monitor.estimate(sample, 100)
            self.assertFalse(estimate.stalled)
            self.assertEqual(estimate.eta_seconds, 100)

        estimate = monitor.estimate(sample, 100)
        self.assertTrue(estimate.stalled)
        self.assertIsNone(estimate.eta_seconds)

        estimate = monitor.estimate(ProgressSample(0, frame=600), 100)
        self.assertFalse(estimate.stalled)

    def test_stall_window_scales_with_interval(self):
        monitor = self._monitor(FakeClock(), interval=5, stall_seconds=10)
        self.assertEqual(monitor.stall_ticks, 2)

    def test_size_projection_from_encoder_bytes(self):
        monitor = self._monitor(FakeClock())
        estimate = monitor.estimate(ProgressSample(0, frame=250, total_size=1_000_000), 10)
        self.assertEqual(estimate.estimated_final_size, 4_000_000)

    def test_run_returns_exit_code_after_process_exits(self):
        clock = FakeClock()
        monitor = self._monitor(clock, interval=2)
        samples = queue.Queue()
        samples.put(ProgressSample(0, frame=100))
        samples.put(ProgressSample(1, frame=300))
        polls = iter([None, None, 0])

        exit_code = monitor.run(lambda: next(polls), samples)

        self.assertEqual(exit_code, 0)
        self.assertEqual(clock.now, 4)
        # Latest sample only, re-estimated on every tick
        self.assertEqual(len(monitor.estimates), 3)
        self.assertTrue(all(e.fraction == 0.3 for e in monitor.estimates))

    def test_silent_encoder_is_marked_stalled(self):
        clock = FakeClock()
        monitor = self._monitor(clock, interval=1, stall_seconds=10)
        samples = queue.Queue()
        samples.put(ProgressSample(0, frame=500, fps=10.0))
        polls = iter([None] * 30 + [0])

        self.assertEqual(monitor.run(lambda: next(polls), samples), 0)

        self.assertEqual(clock.now, 30)
        self.assertFalse(monitor.estimates[0].stalled)
        self.assertIsNotNone(monitor.estimates[0].eta_seconds)
        self.assertFalse(monitor.estimates[10].stalled)
        self.assertTrue(monitor.estimates[11].stalled)
        self.assertIsNone(monitor.estimates[-1].eta_seconds)

    def test_run_passes_failure_code_through(self):
        monitor = self._monitor(FakeClock())
        self.assertEqual(monitor.run(lambda: 3, queue.Queue()), 3)


if __name__ == '__main__':
    unittest.main()
