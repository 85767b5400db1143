"""Tests for input discovery and output naming."""

import shutil
import tempfile
import unittest
from pathlib import Path

from adaptive_encoder.core.modules.processing.file_manager import (
    discover_video_files, unique_output_path,
)


class TestDiscoverVideoFiles(unittest.TestCase):

    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())
        (self.test_dir / "season1").mkdir()
        for name in ("a.mkv", "b.MP4", "notes.txt", "._a.mkv", "season1/e01.mkv"):
            (self.test_dir / name).write_bytes(b"\x00")

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def test_recursive_with_hidden_skipped(self):
        result = discover_video_files(self.test_dir)
        names = sorted(p.name for p in result.files)
        self.assertEqual(names, ["a.mkv", "b.MP4", "e01.mkv"])
        self.assertEqual(result.hidden_files_skipped, 1)
        self.assertEqual(result.total_files_found, 4)

    def test_extension_filter(self):
        result = discover_video_files(self.test_dir, extensions=["mp4"])
        self.assertEqual([p.name for p in result.files], ["b.MP4"])

    def test_single_file(self):
        result = discover_video_files(self.test_dir / "a.mkv")
        self.assertEqual(result.files, [self.test_dir / "a.mkv"])

    def test_missing_path(self):
        with self.assertRaises(ValueError):
            discover_video_files(self.test_dir / "nowhere")


class TestUniqueOutputPath(unittest.TestCase):

    def test_never_the_input(self):
        src = Path("/media/movie.mkv")
        first, second = unique_output_path(src), unique_output_path(src)
        self.assertNotEqual(first, src)
        self.assertNotEqual(first, second)
        self.assertEqual(first.parent, src.parent)
        self.assertTrue(first.name.startswith("movie_"))
        self.assertEqual(first.suffix, ".mkv")

    def test_suffix_override(self):
        self.assertEqual(unique_output_path(Path("clip.mov"), ".mkv").suffix, ".mkv")


if __name__ == '__main__':
    unittest.main()
