"""
Unit tests for system_utils module.

Tests temp-file tracking, file removal, command execution and encoder
process-tree termination.
"""

import subprocess
import tempfile
import shutil
import unittest
from pathlib import Path
from unittest.mock import MagicMock, Mock, patch

import psutil

from adaptive_encoder.core.modules.system.system_utils import (
    TEMP_FILES, cleanup_temp_files, format_command, remove_files, run_command,
    terminate_process_tree,
)


class TestTempFiles(unittest.TestCase):

    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())
        TEMP_FILES.clear()

    def tearDown(self):
        TEMP_FILES.clear()
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def test_registry_is_unique_by_path(self):
        TEMP_FILES.add(self.test_dir / "a")
        TEMP_FILES.add(str(self.test_dir / "a"))
        self.assertEqual(len(TEMP_FILES), 1)
        TEMP_FILES.discard(str(self.test_dir / "a"))
        self.assertEqual(len(TEMP_FILES), 0)

    def test_remove_files_counts_existing(self):
        present = self.test_dir / "stats"
        present.write_text("x")
        missing = self.test_dir / "stats.cutree"
        TEMP_FILES.add(str(present))

        self.assertEqual(remove_files([present, missing]), 1)
        self.assertFalse(present.exists())
        self.assertNotIn(str(present), TEMP_FILES)

    def test_cleanup_removes_registered_files(self):
        leftover = self.test_dir / "frame.raw"
        leftover.write_text("x")
        TEMP_FILES.add(str(leftover))
        cleanup_temp_files()
        self.assertFalse(leftover.exists())
        self.assertEqual(len(TEMP_FILES), 0)


class TestRunCommand(unittest.TestCase):

    @patch('adaptive_encoder.core.modules.system.system_utils.subprocess.run')
    def test_passes_options(self, mock_run):
        mock_run.return_value = Mock(returncode=0, stdout="ok", stderr="")
        result = run_command(["ffprobe", "-v", "error"], timeout=60)
        self.assertEqual(result.stdout, "ok")
        mock_run.assert_called_once_with(["ffprobe", "-v", "error"], capture_output=True,
                                         text=True, timeout=60, check=False)

    @patch('adaptive_encoder.core.modules.system.system_utils.subprocess.run')
    def test_timeout_propagates(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(["ffmpeg"], 5)
        with self.assertRaises(subprocess.TimeoutExpired):
            run_command(["ffmpeg"], timeout=5)

    def test_format_command_quotes(self):
        self.assertEqual(format_command(["ffmpeg", "-i", "my file.mkv"]), "ffmpeg -i 'my file.mkv'")


class TestTerminateProcessTree(unittest.TestCase):

    @patch('adaptive_encoder.core.modules.system.system_utils.psutil')
    def test_children_terminated_then_stragglers_killed(self, mock_psutil):
        mock_psutil.NoSuchProcess = psutil.NoSuchProcess
        child, parent = MagicMock(), MagicMock()
        parent.children.return_value = [child]
        mock_psutil.Process.return_value = parent
        mock_psutil.wait_procs.return_value = ([parent], [child])

        terminate_process_tree(1234, timeout=1)

        child.terminate.assert_called_once()
        parent.terminate.assert_called_once()
        child.kill.assert_called_once()
        parent.kill.assert_not_called()

    @patch('adaptive_encoder.core.modules.system.system_utils.psutil')
    def test_missing_process_ignored(self, mock_psutil):
        mock_psutil.NoSuchProcess = psutil.NoSuchProcess
        mock_psutil.Process.side_effect = psutil.NoSuchProcess(1234)
        terminate_process_tree(1234)
        mock_psutil.wait_procs.assert_not_called()


if __name__ == '__main__':
    unittest.main()
