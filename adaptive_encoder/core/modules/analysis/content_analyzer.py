"""
Content complexity analysis.

Builds a single complexity score in [10, 100] from sampled signals:
- SI: standard deviation of the Sobel gradient magnitude, averaged over frames
- TI: share of predicted (P/B) pictures in the first 900 sampled frames
- Scene rate: scene cuts (difference metric > 0.3) detected in the first 60s
- Frame-type complexity: I-frame ratio over the first 1800 sampled frames
- Grain: high-frequency residual, local variance and edge density, measured
  on frames taken at 10/25/50/75/90% of the duration
- Texture: strong-edge pixel count on a 320x240 downscale

Pixel statistics run on grayscale frames piped out of ffmpeg as raw bytes
and reshaped into numpy arrays; nothing is written to disk.
"""

import re
import subprocess
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from ....utils.logging import get_logger
from ..system.system_utils import run_command
from .media_utils import MediaProbe

logger = get_logger("content_analyzer")

NEUTRAL_SCORE = 50.0
SCORE_MIN = 10.0
SCORE_MAX = 100.0

SCORE_WEIGHTS = {
    "spatial_info": 0.25,
    "temporal_info": 0.35,
    "scene_change_rate": 1.5,
    "grain_level": 8.0,
    "texture_score": 0.3,
    "frame_type_complexity": 0.25,
}

DEFAULT_SI = 50.0
DEFAULT_TI = 50.0
DEFAULT_SCENE_RATE = 10.0
DEFAULT_FRAME_COMPLEXITY = 4.0

GRAIN_SAMPLE_PERCENTAGES = (10, 25, 50, 75, 90)
DARK_SCENE_POSITION = 0.30
LOW_GRAIN_THRESHOLD = 5
TEXTURE_SIZE = (320, 240)

FrameExtractor = Callable[[Path, float, int, int, Optional[Tuple[int, int]]], Optional[np.ndarray]]


@dataclass(frozen=True)
class ComplexitySignals:
    spatial_info: float = DEFAULT_SI
    temporal_info: float = DEFAULT_TI
    scene_change_rate: float = DEFAULT_SCENE_RATE
    frame_type_complexity: float = DEFAULT_FRAME_COMPLEXITY
    # None when no frame could be sampled
    grain_level: Optional[float] = 0.0
    texture_score: float = 0.0
    is_hdr: bool = False


def compute_complexity_score(signals: ComplexitySignals) -> float:
    """Weighted composite of the signals, clamped to [10, 100]."""
    values = asdict(signals)
    raw = sum(weight * float(values[name] or 0.0) for name, weight in SCORE_WEIGHTS.items())
    if not np.isfinite(raw):
        return NEUTRAL_SCORE
    return round(min(SCORE_MAX, max(SCORE_MIN, raw)), 2)


# -- pixel metrics -----------------------------------------------------------

def _center_crop(frame: np.ndarray, size: int) -> np.ndarray:
    h, w = frame.shape
    ch, cw = min(size, h), min(size, w)
    top = (h - ch) // 2
    left = (w - cw) // 2
    return frame[top:top + ch, left:left + cw]


def _box_blur(frame: np.ndarray) -> np.ndarray:
    padded = np.pad(frame, 1, mode="edge")
    h, w = frame.shape
    acc = np.zeros((h, w), dtype=np.float64)
    for dy in range(3):
        for dx in range(3):
            acc += padded[dy:dy + h, dx:dx + w]
    return acc / 9.0


def sobel_magnitude(frame: np.ndarray) -> np.ndarray:
    """Gradient magnitude of a 2-D array (border pixels dropped)."""
    f = frame.astype(np.float64)
    gx = (f[:-2, 2:] + 2 * f[1:-1, 2:] + f[2:, 2:]) - (f[:-2, :-2] + 2 * f[1:-1, :-2] + f[2:, :-2])
    gy = (f[2:, :-2] + 2 * f[2:, 1:-1] + f[2:, 2:]) - (f[:-2, :-2] + 2 * f[:-2, 1:-1] + f[:-2, 2:])
    return np.hypot(gx, gy)


def spatial_information(frame: np.ndarray) -> float:
    if frame.shape[0] < 3 or frame.shape[1] < 3:
        return 0.0
    return float(np.std(sobel_magnitude(frame)))


def high_frequency_noise(frame: np.ndarray) -> float:
    """Mean absolute residual after a 3x3 blur on the 400x400 center."""
    region = _center_crop(frame, 400).astype(np.float64)
    if region.size == 0:
        return 0.0
    return float(np.mean(np.abs(region - _box_blur(region))))


def local_variance(frame: np.ndarray, block: int = 10) -> float:
    """Mean per-block standard deviation on the 300x300 center."""
    region = _center_crop(frame, 300).astype(np.float64)
    h = (region.shape[0] // block) * block
    w = (region.shape[1] // block) * block
    if h == 0 or w == 0:
        return 0.0
    blocks = region[:h, :w].reshape(h // block, block, w // block, block)
    return float(blocks.std(axis=(1, 3)).mean())


def edge_density(frame: np.ndarray, high: float = 0.15) -> float:
    """Percentage of strong-edge pixels on the 200x200 center."""
    region = _center_crop(frame, 200)
    if region.shape[0] < 3 or region.shape[1] < 3:
        return 0.0
    # 4*255 is the largest magnitude either Sobel kernel can produce
    magnitude = sobel_magnitude(region) / (4 * 255.0)
    return float(np.mean(magnitude > high) * 100.0)


def grain_composite(frame: np.ndarray) -> float:
    return 0.4 * high_frequency_noise(frame) + 0.1 * local_variance(frame) + 0.5 * edge_density(frame)


def texture_score(small_frame: np.ndarray, threshold: int = 50) -> float:
    """Strong gradient pixel count / 100 on a downscaled frame."""
    if small_frame.shape[0] < 3 or small_frame.shape[1] < 3:
        return 0.0
    magnitude = np.clip(sobel_magnitude(small_frame), 0, 255)
    return float(np.count_nonzero(magnitude > threshold)) / 100.0


def dark_scene_grain(frame: np.ndarray) -> float:
    """Grain estimate after sharpening, so noise hidden in shadows is lifted."""
    region = _center_crop(frame, 400).astype(np.float64)
    if region.size == 0:
        return 0.0
    sharpened = region + 2.0 * (region - _box_blur(region))
    return float(np.mean(np.abs(sharpened - _box_blur(sharpened))))


# -- sampling plan -----------------------------------------------------------

def grain_sample_times(duration: float) -> List[float]:
    """Timestamps for grain sampling, clamped to [2, duration-5] and deduplicated."""
    times: List[float] = []
    for pct in GRAIN_SAMPLE_PERCENTAGES:
        t = float(int(duration * pct / 100))
        if t < 2:
            t = 2.0
        elif t > duration - 5:
            t = float(int(duration - 5))
        if 2 <= t <= duration and t not in times:
            times.append(t)

    if not times:
        if duration > 8:
            times = [2.0, 5.0, 8.0]
        elif duration > 4:
            times = [2.0, float(int(duration / 2))]
        else:
            times = [1.0]
    return times


def dark_scene_time(duration: float) -> float:
    t = duration * DARK_SCENE_POSITION
    return max(0.0, min(max(2.0, t), duration - 5)) if duration > 7 else max(0.0, duration / 2)


def temporal_information(frame_types: Tuple[str, ...], window: int = 900) -> float:
    sample = frame_types[:window]
    if not sample:
        return DEFAULT_TI
    predicted = sum(1 for t in sample if t in ("P", "B"))
    return predicted * 100.0 / len(sample)


def frame_type_complexity(frame_types: Tuple[str, ...], window: int = 1800) -> float:
    sample = frame_types[:window]
    if not sample:
        return DEFAULT_FRAME_COMPLEXITY
    intra = sum(1 for t in sample if t == "I")
    return intra * 200.0 / len(sample)


# -- ffmpeg access -----------------------------------------------------------

def extract_gray_frame(path: Path, timestamp: float, width: int, height: int,
                       scale: Optional[Tuple[int, int]] = None) -> Optional[np.ndarray]:
    """Decode one frame at ``timestamp`` as an 8-bit grayscale array."""
    out_w, out_h = scale if scale else (width, height)
    vf = f"scale={out_w}:{out_h},format=gray" if scale else "format=gray"
    cmd = [
        "ffmpeg", "-v", "error",
        "-ss", f"{timestamp:.3f}", "-i", str(path),
        "-frames:v", "1", "-vf", vf,
        "-f", "rawvideo", "-pix_fmt", "gray", "-",
    ]
    try:
        result = run_command(cmd, timeout=60, text=False)
    except (subprocess.TimeoutExpired, OSError) as e:
        logger.debug(f"Frame extraction at {timestamp}s failed: {e}")
        return None
    expected = out_w * out_h
    if result.returncode != 0 or not result.stdout or len(result.stdout) < expected:
        return None
    return np.frombuffer(result.stdout[:expected], dtype=np.uint8).reshape(out_h, out_w)


_SHOWINFO_RE = re.compile(r"Parsed_showinfo.*\bn:\s*\d+")


def count_scene_changes(path: Path, window_seconds: int = 60) -> float:
    cmd = [
        "ffmpeg", "-hide_banner", "-i", str(path),
        "-t", str(window_seconds),
        "-vf", "select='gt(scene,0.3)',showinfo",
        "-f", "null", "-",
    ]
    try:
        result = run_command(cmd, timeout=300)
    except (subprocess.TimeoutExpired, OSError) as e:
        logger.debug(f"Scene detection failed: {e}")
        return DEFAULT_SCENE_RATE
    if result.returncode != 0:
        return DEFAULT_SCENE_RATE
    return float(len(_SHOWINFO_RE.findall(result.stderr or "")))


class ComplexityEngine:
    """
    Samples a source and produces ComplexitySignals plus the composite score.

    Frame extraction and scene counting are injectable so the engine can run
    against synthetic frames in tests.
    """

    def __init__(self, frame_extractor: Optional[FrameExtractor] = None,
                 scene_counter: Optional[Callable[[Path], float]] = None):
        self.frame_extractor = frame_extractor or extract_gray_frame
        self.scene_counter = scene_counter or count_scene_changes
        self.analysis_cache: Dict[str, Tuple[ComplexitySignals, float]] = {}

    def _grain_and_texture(self, media: MediaProbe) -> Tuple[Optional[float], float, float]:
        total_grain = total_texture = total_si = 0.0
        valid = 0
        for t in grain_sample_times(media.duration_seconds):
            frame = self.frame_extractor(media.path, t, media.width, media.height, None)
            if frame is None:
                continue
            small = self.frame_extractor(media.path, t, media.width, media.height, TEXTURE_SIZE)
            grain = grain_composite(frame)
            texture = texture_score(small) if small is not None else 0.0
            total_grain += grain
            total_texture += texture
            total_si += spatial_information(frame)
            valid += 1
            logger.analysis(f"Sample at {t:.0f}s: grain={grain:.2f}, texture={texture:.1f}")

        if valid == 0:
            logger.warn("No frames could be sampled, grain level unknown")
            return None, 0.0, DEFAULT_SI

        grain_level = float(int(total_grain / valid + 0.5))
        texture = round(total_texture / valid, 1)
        si = total_si / valid

        if grain_level < LOW_GRAIN_THRESHOLD:
            logger.analysis("Low grain detected, analyzing a darker scene for hidden grain...")
            t = dark_scene_time(media.duration_seconds)
            dark = self.frame_extractor(media.path, t, media.width, media.height, None)
            if dark is not None:
                dark_grain = dark_scene_grain(dark)
                if dark_grain > grain_level:
                    grain_level = float(int(dark_grain))
                    logger.analysis(f"Dark scene analysis boosted grain level to: {grain_level:.0f}")

        return grain_level, texture, si

    def analyze(self, media: MediaProbe) -> Tuple[ComplexitySignals, float]:
        """Return (signals, score) for a probed source; cached per path."""
        cache_key = str(media.path)
        if cache_key in self.analysis_cache:
            logger.debug(f"Using cached complexity analysis for {media.path.name}")
            return self.analysis_cache[cache_key]

        logger.analysis(f"Starting complexity analysis for: {media.path.name}")
        grain, texture, si = self._grain_and_texture(media)
        signals = ComplexitySignals(
            spatial_info=si,
            temporal_info=temporal_information(media.sampled_frame_types),
            scene_change_rate=self.scene_counter(media.path),
            frame_type_complexity=frame_type_complexity(media.sampled_frame_types),
            grain_level=grain,
            texture_score=texture,
            is_hdr=media.is_hdr,
        )
        score = compute_complexity_score(signals)

        logger.analysis(f"SI: {signals.spatial_info:.1f}, TI: {signals.temporal_info:.1f}, "
                        f"Scenes/min: {signals.scene_change_rate:.0f}, "
                        f"Frame-Complexity: {signals.frame_type_complexity:.1f}")
        grain_text = "unknown" if signals.grain_level is None else f"{signals.grain_level:.0f}"
        logger.analysis(f"Grain Level: {grain_text}, Texture Score: {signals.texture_score}")
        logger.analysis(f"Total complexity score: {score}")

        self.analysis_cache[cache_key] = (signals, score)
        return signals, score
