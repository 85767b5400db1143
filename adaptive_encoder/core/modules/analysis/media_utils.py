"""
Media utilities for adaptive_encoder.

This module wraps ffprobe behind a single typed call:
- Stream metadata (dimensions, duration, frame rate, codec, bitrate)
- Color metadata and HDR detection
- Audio / subtitle stream counts for pass-through mapping
- A sampled frame-type sequence used by the complexity engine
"""

import json
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from ....utils.logging import get_logger
from ...errors import ProbeFailure
from ..system.system_utils import run_command

logger = get_logger("media_utils")

FRAME_TYPE_SAMPLE = 1800

HDR_TRANSFERS = ("smpte2084", "arib-std-b67")


@dataclass(frozen=True)
class MediaProbe:
    path: Path
    width: int
    height: int
    duration_seconds: float
    fps: float
    codec_name: str
    bitrate_bps: int = 0
    color_primaries: str = ""
    color_transfer: str = ""
    color_space: str = ""
    pix_fmt: str = ""
    frame_count: int = 0
    audio_streams: int = 0
    subtitle_streams: int = 0
    sampled_frame_types: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_hdr(self) -> bool:
        return is_hdr(self.color_primaries, self.color_transfer)

    @property
    def total_frames(self) -> int:
        """Exact frame count when the container reports one, else duration x fps."""
        if self.frame_count > 0:
            return self.frame_count
        return int(self.duration_seconds * self.fps)

    @property
    def is_ten_bit(self) -> bool:
        return "10" in self.pix_fmt


def is_hdr(color_primaries: Optional[str], color_transfer: Optional[str]) -> bool:
    """BT.2020 primaries with a PQ or HLG transfer curve."""
    return (color_primaries or "").lower() == "bt2020" and \
        (color_transfer or "").lower() in HDR_TRANSFERS


def parse_frame_rate(rate: Optional[str]) -> float:
    """Parse ffprobe rates such as '24000/1001' or '25'."""
    if not rate:
        return 0.0
    try:
        if '/' in rate:
            num, den = rate.split('/', 1)
            den_f = float(den)
            return float(num) / den_f if den_f else 0.0
        return float(rate)
    except ValueError:
        return 0.0


def _int(value, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _float(value, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def sample_frame_types(path: Path, limit: int = FRAME_TYPE_SAMPLE) -> Tuple[str, ...]:
    """Picture types (I/P/B) of the first ``limit`` frames; empty on failure."""
    cmd = [
        "ffprobe", "-v", "error",
        "-select_streams", "v:0",
        "-read_intervals", f"%+#{limit}",
        "-show_entries", "frame=pict_type",
        "-of", "csv=p=0",
        str(path),
    ]
    try:
        result = run_command(cmd, timeout=120)
    except (subprocess.TimeoutExpired, OSError) as e:
        logger.debug(f"Frame type sampling failed for {path.name}: {e}")
        return ()
    if result.returncode != 0:
        return ()
    types = [line.strip().rstrip(',') for line in (result.stdout or "").splitlines()]
    return tuple(t for t in types if t in ("I", "P", "B"))[:limit]


def probe(path: Path, sample_frames: bool = True) -> MediaProbe:
    """
    Probe an input with ffprobe.

    Raises:
        ProbeFailure: when the file is unreadable or carries no video stream.
    """
    path = Path(path)
    if not path.is_file():
        raise ProbeFailure(f"Input not found: {path}")

    cmd = [
        "ffprobe", "-v", "error",
        "-print_format", "json",
        "-show_streams", "-show_format",
        str(path),
    ]
    try:
        result = run_command(cmd, timeout=60)
    except (subprocess.TimeoutExpired, OSError) as e:
        raise ProbeFailure(f"ffprobe could not run on {path}: {e}")

    if result.returncode != 0:
        tail = (result.stderr or "").strip().splitlines()[-20:]
        raise ProbeFailure(f"ffprobe failed on {path}", diagnostics=tail)

    try:
        data = json.loads(result.stdout or "{}")
    except json.JSONDecodeError as e:
        raise ProbeFailure(f"Unparseable ffprobe output for {path}: {e}")

    streams = data.get("streams", [])
    video = next((s for s in streams if s.get("codec_type") == "video"), None)
    if video is None:
        raise ProbeFailure(f"No video stream in {path}")

    fmt = data.get("format", {})
    duration = _float(fmt.get("duration")) or _float(video.get("duration"))
    fps = parse_frame_rate(video.get("avg_frame_rate")) or parse_frame_rate(video.get("r_frame_rate"))
    bitrate = _int(fmt.get("bit_rate")) or _int(video.get("bit_rate"))

    media = MediaProbe(
        path=path,
        width=_int(video.get("width")),
        height=_int(video.get("height")),
        duration_seconds=duration,
        fps=fps,
        codec_name=(video.get("codec_name") or "").lower(),
        bitrate_bps=bitrate,
        color_primaries=video.get("color_primaries") or "",
        color_transfer=video.get("color_transfer") or "",
        color_space=video.get("color_space") or "",
        pix_fmt=video.get("pix_fmt") or "",
        frame_count=_int(video.get("nb_frames")),
        audio_streams=sum(1 for s in streams if s.get("codec_type") == "audio"),
        subtitle_streams=sum(1 for s in streams if s.get("codec_type") == "subtitle"),
        sampled_frame_types=sample_frame_types(path) if sample_frames else (),
    )
    if media.width <= 0 or media.height <= 0:
        raise ProbeFailure(f"Video stream in {path} has no dimensions")

    logger.debug(f"{path.name}: {media.width}x{media.height} {media.fps:.3f}fps "
                 f"{media.duration_seconds:.1f}s {media.codec_name}")
    if media.is_hdr:
        logger.hdr(f"HDR source detected ({media.color_primaries}/{media.color_transfer})")
    return media
