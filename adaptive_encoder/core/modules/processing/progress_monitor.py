"""
Progress monitoring for a running encoder pass.

ffmpeg is started with ``-progress pipe:1`` and emits ``key=value`` blocks,
each terminated by a ``progress=continue|end`` line. A reader thread turns
those blocks into ProgressSample objects on a queue; the monitor loop drains
the queue every tick, derives a ProgressEstimate and renders a tqdm bar.

Estimation rules:
- progress prefers frames/total_frames when it lies in (0, 1], else
  out_time/duration; never above 1
- ETA blends progress extrapolation, remaining frames / fps and the speed
  multiplier; anything above 24h is discarded
- projected size is bytes_written / progress once progress passes 1%
- a progress value unchanged for ~10s marks the pass stalled: the ETA is
  suppressed but polling continues until the encoder exits
"""

import queue
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from ....utils.logging import get_logger, create_progress_bar, format_duration, format_size

logger = get_logger("progress_monitor")

MAX_ETA_SECONDS = 24 * 3600
MIN_INTERVAL = 1
MAX_INTERVAL = 5


@dataclass(frozen=True)
class ProgressSample:
    wall_clock: float
    out_time_us: int = 0
    frame: int = 0
    fps: float = 0.0
    speed: float = 0.0
    total_size: int = 0
    finished: bool = False


@dataclass(frozen=True)
class ProgressEstimate:
    fraction: float
    eta_seconds: Optional[int]
    estimated_final_size: Optional[int]
    method: str
    stalled: bool = False


def resolution_class(width: int, height: int) -> str:
    if width >= 3000 or height >= 2000:
        return "4k"
    if width >= 2500 or height >= 1440:
        return "1440p"
    return "1080p"


def calculate_update_interval(width: int, height: int, complexity_score: float = 50,
                              mode: str = "abr") -> int:
    """Polling interval in whole seconds, clamped to [1, 5]."""
    res = resolution_class(width, height)
    interval = 3 if res == "4k" else 2 if res == "1440p" else 1
    if complexity_score > 70:
        interval += 2
    elif complexity_score > 50:
        interval += 1
    if mode == "cbr":
        interval += 1
    return max(MIN_INTERVAL, min(MAX_INTERVAL, interval))


def estimate_progress(sample: ProgressSample, total_duration: float,
                      total_frames: int) -> Tuple[str, float]:
    """Return (method, fraction) where method is frame, time or unknown."""
    method, fraction = "unknown", 0.0
    if sample.out_time_us > 0 and total_duration > 0:
        method, fraction = "time", sample.out_time_us / (total_duration * 1_000_000)
    if sample.frame > 0 and total_frames > 0:
        frame_fraction = sample.frame / total_frames
        if 0 < frame_fraction <= 1:
            method, fraction = "frame", frame_fraction
    return method, min(fraction, 1.0)


def estimate_eta(progress: float, elapsed: float, fps: float, total_frames: int,
                 speed: float) -> Optional[int]:
    """Blend progress, frame-rate and speed based ETAs; None when unreliable."""
    eta = 0.0
    if progress > 0.01:
        by_progress = elapsed / progress - elapsed
        if by_progress > 0:
            eta = by_progress

    if fps > 0 and total_frames > 0 and progress > 0:
        remaining = total_frames * (1 - progress)
        if remaining > 0:
            by_frames = remaining / fps
            if by_frames > 0 and (by_frames < eta * 2 or eta == 0):
                eta = by_frames

    if speed > 0 and eta > 0:
        eta = eta / speed

    if eta <= 0 or eta > MAX_ETA_SECONDS:
        return None
    return int(eta)


def project_final_size(bytes_written: int, progress: float) -> Optional[int]:
    if progress <= 0.01 or bytes_written <= 0:
        return None
    return int(bytes_written / progress)


def _to_int(value: str) -> int:
    try:
        return int(float(value))
    except ValueError:
        return 0


def _to_float(value: str) -> float:
    try:
        return float(value.rstrip("x"))
    except ValueError:
        return 0.0


class ProgressParser:
    """Accumulates ``key=value`` lines and yields one sample per block."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._fields: Dict[str, str] = {}

    def feed(self, line: str) -> Optional[ProgressSample]:
        line = line.strip()
        if "=" not in line:
            return None
        key, value = line.split("=", 1)
        key, value = key.strip(), value.strip()
        if key != "progress":
            self._fields[key] = value
            return None

        f = self._fields
        # out_time_us is N/A until the first frame is muxed
        out_time = f.get("out_time_us") or f.get("out_time_ms") or "0"
        sample = ProgressSample(
            wall_clock=self.clock(),
            out_time_us=_to_int(out_time) if out_time != "N/A" else 0,
            frame=_to_int(f.get("frame", "0")),
            fps=_to_float(f.get("fps", "0")),
            speed=_to_float(f.get("speed", "0")) if f.get("speed") != "N/A" else 0.0,
            total_size=_to_int(f.get("total_size", "0")) if f.get("total_size") != "N/A" else 0,
            finished=value == "end",
        )
        self._fields = {}
        return sample


class ProgressMonitor:
    """
    Poll loop for one pass. ``run`` returns the encoder exit code.

    The clock and sleep functions are injectable so the loop can be driven
    deterministically in tests.
    """

    def __init__(self, description: str, total_duration: float, total_frames: int,
                 interval: int = 1, stall_seconds: float = 10,
                 output_path: Optional[Path] = None,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep,
                 show_bar: bool = True):
        self.description = description
        self.total_duration = total_duration
        self.total_frames = total_frames
        self.interval = max(MIN_INTERVAL, int(interval))
        self.stall_ticks = max(1, int(stall_seconds // self.interval))
        self.output_path = Path(output_path) if output_path else None
        self.clock = clock
        self.sleep = sleep
        self.show_bar = show_bar
        self.estimates: List[ProgressEstimate] = []
        self._last_fraction: Optional[float] = None
        self._stall_count = 0

    def _bytes_written(self, sample: ProgressSample) -> int:
        if sample.total_size > 0:
            return sample.total_size
        if self.output_path is not None:
            try:
                return self.output_path.stat().st_size
            except OSError:
                return 0
        return 0

    def _update_stall(self, method: str, fraction: float) -> bool:
        if method == "unknown":
            return False
        if fraction == self._last_fraction:
            self._stall_count += 1
        else:
            self._stall_count = 0
        self._last_fraction = fraction
        return self._stall_count > self.stall_ticks

    def estimate(self, sample: ProgressSample, elapsed: float) -> ProgressEstimate:
        method, fraction = estimate_progress(sample, self.total_duration, self.total_frames)
        stalled = self._update_stall(method, fraction)
        eta = None if stalled else estimate_eta(fraction, elapsed, sample.fps,
                                                self.total_frames, sample.speed)
        size = project_final_size(self._bytes_written(sample), fraction)
        return ProgressEstimate(fraction, eta, size, method, stalled)

    def _drain(self, samples: "queue.Queue[ProgressSample]") -> Optional[ProgressSample]:
        latest = None
        while True:
            try:
                latest = samples.get_nowait()
            except queue.Empty:
                return latest

    def _render(self, bar, estimate: ProgressEstimate):
        if bar is None:
            return
        bar.n = round(estimate.fraction * 100, 1)
        eta = format_duration(estimate.eta_seconds) if estimate.eta_seconds else "calculating..."
        size = format_size(estimate.estimated_final_size) if estimate.estimated_final_size else "calculating..."
        bar.set_postfix_str(f"ETA: {eta} | Estimated size: {size}", refresh=False)
        bar.refresh()

    def run(self, poll: Callable[[], Optional[int]],
            samples: "queue.Queue[ProgressSample]") -> int:
        start = self.clock()
        bar = create_progress_bar(total=100, desc=self.description, unit="%") if self.show_bar else None
        logger.debug(f"{self.description}: update interval {self.interval}s")
        last_sample: Optional[ProgressSample] = None
        try:
            while True:
                exit_code = poll()
                # Silent ticks re-estimate the last sample so a stall is still noticed
                last_sample = self._drain(samples) or last_sample
                if last_sample is not None:
                    estimate = self.estimate(last_sample, self.clock() - start)
                    self.estimates.append(estimate)
                    logger.progress(f"{estimate.method} {estimate.fraction:.4f} "
                                    f"eta={estimate.eta_seconds} stalled={estimate.stalled}")
                    self._render(bar, estimate)
                if exit_code is not None:
                    if exit_code == 0 and bar is not None:
                        bar.n = 100
                        bar.refresh()
                    return exit_code
                self.sleep(self.interval)
        finally:
            if bar is not None:
                bar.close()
