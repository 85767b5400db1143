"""Tests for .env configuration loading and the per-run context."""

import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from adaptive_encoder.config import get_config, load_env_file
from adaptive_encoder.core.context import RunContext


class TestGetConfig(unittest.TestCase):

    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())
        self.env_file = self.test_dir / ".env"

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def test_load_env_file_skips_comments(self):
        self.env_file.write_text("# comment\nENCODE_MODE = crf\n\nnot a setting\n")
        self.assertEqual(load_env_file(self.env_file), {"ENCODE_MODE": "crf"})

    @patch.dict('os.environ', {}, clear=True)
    def test_defaults(self):
        config = get_config(self.test_dir / "missing.env")
        self.assertEqual(config['mode'], 'abr')
        self.assertEqual(config['oracle_mode'], 'on')
        self.assertEqual(config['first_pass_preset'], 'fast')
        self.assertEqual(config['crop_min_threshold'], 20)
        self.assertEqual(config['stall_seconds'], 10.0)
        self.assertFalse(config['debug'])
        self.assertFalse(config['use_complexity'])

    @patch.dict('os.environ', {}, clear=True)
    def test_env_file_values(self):
        self.env_file.write_text(
            "ENCODE_MODE=CBR\nDEBUG=yes\nTEMP_DIR=/scratch\nCROP_MIN_THRESHOLD=32\nORACLE_MODE=force\n")
        config = get_config(self.env_file)
        self.assertEqual(config['mode'], 'cbr')
        self.assertTrue(config['debug'])
        self.assertEqual(config['temp_dir'], Path("/scratch"))
        self.assertEqual(config['crop_min_threshold'], 32)
        self.assertEqual(config['oracle_mode'], 'force')

    @patch.dict('os.environ', {'ENCODE_MODE': 'vbr', 'ORACLE_MODE': 'sometimes'}, clear=True)
    def test_invalid_values_fall_back(self):
        config = get_config(self.test_dir / "missing.env")
        self.assertEqual(config['mode'], 'abr')
        self.assertEqual(config['oracle_mode'], 'on')

    @patch.dict('os.environ', {'CROP_MIN_THRESHOLD': 'twenty', 'PROGRESS_STALL_SECONDS': '-5'},
                clear=True)
    def test_bad_numbers_fall_back(self):
        config = get_config(self.test_dir / "missing.env")
        self.assertEqual(config['crop_min_threshold'], 20)
        self.assertEqual(config['stall_seconds'], 10.0)


class TestRunContext(unittest.TestCase):

    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def test_concurrent_runs_get_separate_directories(self):
        a = RunContext(self.test_dir)
        b = RunContext(self.test_dir)
        self.assertNotEqual(a.temp_dir, b.temp_dir)
        self.assertTrue(a.temp_dir.is_dir())
        self.assertEqual(a.stats_prefix().parent, a.temp_dir)

    def test_cleanup_keeps_external_log(self):
        log_file = self.test_dir / "movie.log"
        ctx = RunContext(self.test_dir, log_file=log_file)
        ctx.logger("test").info("hello")
        (ctx.temp_dir / "stats").write_text("x")

        ctx.cleanup()
        self.assertFalse(ctx.temp_dir.exists())
        self.assertIn("hello", log_file.read_text())

    def test_cleanup_keeps_internal_log(self):
        ctx = RunContext(self.test_dir)
        ctx.logger("test").info("hello")
        (ctx.temp_dir / "stats").write_text("x")

        ctx.cleanup()
        self.assertTrue(ctx.log_file.exists())
        self.assertFalse((ctx.temp_dir / "stats").exists())


if __name__ == '__main__':
    unittest.main()
