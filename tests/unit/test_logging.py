"""Unit tests for the tagged logger and its global switches."""

import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from adaptive_encoder.utils.logging import (
    format_duration, format_size, get_logger, set_debug_mode, set_log_level, set_quiet_mode,
)

WRITE_TARGET = 'adaptive_encoder.utils.logging.tqdm.write'


class TestLogLevels(unittest.TestCase):

    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())
        set_debug_mode(False)

    def tearDown(self):
        set_log_level("INFO")
        set_quiet_mode(False)
        set_debug_mode(False)
        shutil.rmtree(self.test_dir, ignore_errors=True)

    @patch(WRITE_TARGET)
    def test_default_level_shows_info(self, mock_write):
        get_logger("crop_detector").crop("Crop detected")
        mock_write.assert_called_once_with("[CROP] [crop_detector] Crop detected")

    @patch(WRITE_TARGET)
    def test_warn_level_hides_info(self, mock_write):
        set_log_level("warn")
        log = get_logger("main")
        log.info("starting")
        log.warn("careful")
        mock_write.assert_called_once_with("[WARN] [main] careful")

    @patch(WRITE_TARGET)
    def test_run_log_keeps_lines_hidden_from_console(self, mock_write):
        set_log_level("ERROR")
        log_file = self.test_dir / "run.log"
        get_logger("main", log_file=log_file).info("hidden on console")
        mock_write.assert_not_called()
        self.assertIn("[INFO]", log_file.read_text())
        self.assertIn("hidden on console", log_file.read_text())

    @patch(WRITE_TARGET)
    def test_quiet_mode_suppresses_info(self, mock_write):
        set_quiet_mode(True)
        log = get_logger()
        log.info("chatty")
        log.error("broken")
        mock_write.assert_called_once_with("[ERROR] broken")

    @patch(WRITE_TARGET)
    def test_debug_only_in_debug_mode(self, mock_write):
        log = get_logger()
        log.debug("hidden")
        mock_write.assert_not_called()
        set_debug_mode(True)
        log.debug("shown")
        mock_write.assert_called_once_with("[DEBUG] shown")

    def test_unknown_level_rejected(self):
        with self.assertRaises(ValueError):
            set_log_level("verbose")


class TestFormatting(unittest.TestCase):

    def test_format_duration(self):
        self.assertEqual(format_duration(59), "00:59")
        self.assertEqual(format_duration(3725), "01:02:05")
        self.assertEqual(format_duration(0), "calculating...")

    def test_format_size(self):
        self.assertEqual(format_size(512), "512.0B")
        self.assertEqual(format_size(1536), "1.5KB")
        self.assertEqual(format_size(3 * 1024 ** 3), "3.0GB")


if __name__ == '__main__':
    unittest.main()
