"""Unit tests for the ffprobe adapter."""

import json
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import Mock, patch

from adaptive_encoder.core.errors import ProbeFailure
from adaptive_encoder.core.modules.analysis.media_utils import (
    is_hdr, parse_frame_rate, probe, sample_frame_types,
)

PATCH_TARGET = 'adaptive_encoder.core.modules.analysis.media_utils.run_command'


def _ffprobe_json(**video_overrides):
    video = {
        "codec_type": "video", "codec_name": "HEVC", "width": 3840, "height": 2160,
        "avg_frame_rate": "24000/1001", "pix_fmt": "yuv420p10le",
        "color_primaries": "bt2020", "color_transfer": "smpte2084", "color_space": "bt2020nc",
        "nb_frames": "172800",
    }
    video.update(video_overrides)
    return json.dumps({
        "streams": [video,
                    {"codec_type": "audio"}, {"codec_type": "audio"},
                    {"codec_type": "subtitle"}],
        "format": {"duration": "7200.5", "bit_rate": "40000000"},
    })


class TestProbe(unittest.TestCase):

    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())
        self.input = self.test_dir / "movie.mkv"
        self.input.write_bytes(b"\x00")

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    @patch(PATCH_TARGET)
    def test_probe_fields(self, mock_run):
        mock_run.return_value = Mock(returncode=0, stdout=_ffprobe_json(), stderr="")
        media = probe(self.input, sample_frames=False)

        self.assertEqual((media.width, media.height), (3840, 2160))
        self.assertEqual(media.duration_seconds, 7200.5)
        self.assertAlmostEqual(media.fps, 23.976, places=3)
        self.assertEqual(media.codec_name, "hevc")
        self.assertEqual(media.bitrate_bps, 40_000_000)
        self.assertEqual((media.audio_streams, media.subtitle_streams), (2, 1))
        self.assertTrue(media.is_hdr)
        self.assertTrue(media.is_ten_bit)
        self.assertEqual(media.total_frames, 172800)

    @patch(PATCH_TARGET)
    def test_frame_count_falls_back_to_duration_times_fps(self, mock_run):
        mock_run.return_value = Mock(returncode=0, stdout=_ffprobe_json(nb_frames=None,
                                                                        avg_frame_rate="25/1"),
                                     stderr="")
        media = probe(self.input, sample_frames=False)
        self.assertEqual(media.total_frames, int(7200.5 * 25))

    def test_missing_file(self):
        with self.assertRaises(ProbeFailure):
            probe(self.test_dir / "nope.mkv")

    @patch(PATCH_TARGET)
    def test_ffprobe_error_carries_diagnostics(self, mock_run):
        mock_run.return_value = Mock(returncode=1, stdout="", stderr="moov atom not found\n")
        with self.assertRaises(ProbeFailure) as ctx:
            probe(self.input, sample_frames=False)
        self.assertEqual(ctx.exception.diagnostics, ["moov atom not found"])
        self.assertEqual(ctx.exception.kind, "probe_failure")

    @patch(PATCH_TARGET)
    def test_no_video_stream(self, mock_run):
        mock_run.return_value = Mock(returncode=0, stdout=json.dumps(
            {"streams": [{"codec_type": "audio"}], "format": {}}), stderr="")
        with self.assertRaises(ProbeFailure):
            probe(self.input, sample_frames=False)

    @patch(PATCH_TARGET)
    def test_frame_type_sampling(self, mock_run):
        mock_run.return_value = Mock(returncode=0, stdout="I\nP,\nB\n\nX\n", stderr="")
        self.assertEqual(sample_frame_types(self.input), ("I", "P", "B"))


class TestHelpers(unittest.TestCase):

    def test_hdr_detection(self):
        self.assertTrue(is_hdr("bt2020", "arib-std-b67"))
        self.assertFalse(is_hdr("bt2020", "bt709"))
        self.assertFalse(is_hdr(None, "smpte2084"))

    def test_parse_frame_rate(self):
        self.assertEqual(parse_frame_rate("25"), 25.0)
        self.assertEqual(parse_frame_rate("30000/0"), 0.0)
        self.assertEqual(parse_frame_rate(None), 0.0)


if __name__ == '__main__':
    unittest.main()
