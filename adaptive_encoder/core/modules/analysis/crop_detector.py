"""
Automatic black-bar detection.

Three 30 second windows (start, middle, end) are run through ffmpeg's
cropdetect filter. Each window contributes at most one candidate rectangle
and the most frequent exact rectangle wins the vote.
"""

import re
import subprocess
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from ....utils.logging import get_logger
from ...errors import CropDetectionFailure
from ..system.system_utils import run_command
from .media_utils import MediaProbe

logger = get_logger("crop_detector")

SDR_CROP_LIMIT = 24
# Black under PQ/HLG transfer curves is not pure black
HDR_CROP_LIMIT = 64
SAMPLE_OFFSET = 60
SAMPLE_LENGTH = 30
DEFAULT_MIN_THRESHOLD = 20

_CROP_RE = re.compile(r"crop=(\d+):(\d+):(\d+):(\d+)")


@dataclass(frozen=True)
class CropRegion:
    width: int
    height: int
    x: int
    y: int

    @classmethod
    def parse(cls, value: str) -> "CropRegion":
        """Parse ``w:h:x:y`` (optionally prefixed with ``crop=``)."""
        text = value.strip()
        if text.startswith("crop="):
            text = text[5:]
        parts = text.split(":")
        if len(parts) != 4:
            raise ValueError(f"Invalid crop '{value}', expected w:h:x:y")
        try:
            w, h, x, y = (int(p) for p in parts)
        except ValueError:
            raise ValueError(f"Invalid crop '{value}', values must be integers")
        if w <= 0 or h <= 0 or x < 0 or y < 0:
            raise ValueError(f"Invalid crop '{value}', size must be positive")
        return cls(w, h, x, y)

    def filter(self) -> str:
        return f"crop={self.width}:{self.height}:{self.x}:{self.y}"

    def __str__(self):
        return f"{self.width}:{self.height}:{self.x}:{self.y}"


def crop_limit(hdr: bool) -> int:
    return HDR_CROP_LIMIT if hdr else SDR_CROP_LIMIT


def sample_start_times(duration: float) -> List[int]:
    """
    Window start times: 60s in, the midpoint, and 60s before the end.

    Sources shorter than four minutes pull the outer windows in to a quarter
    of the duration so all three stay inside the file and apart.
    """
    whole = int(duration)
    offset = min(SAMPLE_OFFSET, whole // 4)
    start = offset
    middle = whole // 2
    end = max(whole - offset, start)
    return [start, middle, end]


def crop_delta(orig_w: int, orig_h: int, region: CropRegion) -> int:
    return (orig_w - region.width) + (orig_h - region.height)


def is_significant_crop(orig_w: int, orig_h: int, region: CropRegion,
                        min_threshold: int = DEFAULT_MIN_THRESHOLD) -> bool:
    """Accept when the pixel delta reaches the threshold or exceeds 1% of w+h."""
    total_diff = crop_delta(orig_w, orig_h, region)
    percent = total_diff * 100.0 / (orig_w + orig_h) if (orig_w + orig_h) else 0.0
    return total_diff >= min_threshold or percent > 1.0


def vote(candidates: List[Optional[CropRegion]]) -> Optional[CropRegion]:
    """Most frequent exact rectangle; ties go to the earliest sample."""
    counts = Counter(c for c in candidates if c is not None)
    if not counts:
        return None
    region, _ = counts.most_common(1)[0]
    return region


def last_crop_in_output(output: str) -> Optional[CropRegion]:
    matches = _CROP_RE.findall(output or "")
    if not matches:
        return None
    w, h, x, y = (int(v) for v in matches[-1])
    return CropRegion(w, h, x, y)


def sample_window(path: Path, start: int, limit: int) -> Optional[CropRegion]:
    cmd = [
        "ffmpeg", "-hide_banner", "-loglevel", "info",
        "-ss", str(start), "-i", str(path),
        "-t", str(SAMPLE_LENGTH),
        "-vsync", "vfr",
        "-vf", f"fps=1/4,cropdetect=limit={limit}:round=2:reset=1",
        "-f", "null", "-",
    ]
    try:
        result = run_command(cmd, timeout=300)
    except (subprocess.TimeoutExpired, OSError) as e:
        logger.debug(f"Crop sample at {start}s failed: {e}")
        return None
    return last_crop_in_output(result.stderr)


class CropDetector:
    """Runs the three-window vote. ``sampler`` is swappable for tests."""

    def __init__(self, min_threshold: int = DEFAULT_MIN_THRESHOLD,
                 sampler: Optional[Callable[[Path, int, int], Optional[CropRegion]]] = None):
        self.min_threshold = min_threshold
        self.sampler = sampler or sample_window

    def _detect(self, media: MediaProbe) -> Optional[CropRegion]:
        limit = crop_limit(media.is_hdr)
        if media.is_hdr:
            logger.crop(f"HDR content detected - using adjusted crop limit: {limit}")
        else:
            logger.crop(f"SDR content - using standard crop limit: {limit}")

        candidates = [self.sampler(media.path, start, limit)
                      for start in sample_start_times(media.duration_seconds)]
        winner = vote(candidates)
        if winner is None:
            raise CropDetectionFailure("no crop reported in any sample window")

        total_diff = crop_delta(media.width, media.height, winner)
        percent = total_diff * 100.0 / (media.width + media.height)
        if is_significant_crop(media.width, media.height, winner, self.min_threshold):
            logger.crop(f"Crop detected: {media.width}x{media.height} -> "
                        f"{winner.width}x{winner.height} ({total_diff} pixels, {percent:.2f}%)")
            return winner
        logger.crop(f"No significant crop required ({total_diff} pixels, {percent:.2f}%)")
        return None

    def detect(self, media: MediaProbe, manual: Optional[CropRegion] = None) -> Optional[CropRegion]:
        """Return the crop to apply, or None for the full frame."""
        if manual is not None:
            logger.crop(f"Using manual crop: {manual}")
            return manual
        logger.crop("Starting automatic crop detection...")
        try:
            return self._detect(media)
        except CropDetectionFailure as e:
            logger.warn(f"Crop detection unusable ({e}), encoding full frame")
            return None
