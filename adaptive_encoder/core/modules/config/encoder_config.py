"""
EncoderCommandBuilder: ffmpeg/libx265 command construction for every pass.

CRF, ABR and CBR passes share one builder so the input, filter graph,
stream mapping and x265 parameter handling stay identical across modes;
only the rate-control block differs.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from ..analysis.crop_detector import CropRegion
from .profiles import format_x265_params

DENOISE_FILTER = "hqdn3d=1:1:2:2"
NULL_OUTPUT = "-"
MATROSKA_SUFFIXES = (".mkv", ".mka", ".webm")

# x265 keys that carry a rate target; removed where ffmpeg flags own rate control
_RATE_KEYS = ("bitrate",)
_VBV_KEYS = ("vbv-maxrate", "vbv-bufsize")


def parse_scale(value: str) -> Tuple[int, int]:
    """Parse ``w:h``; -1/-2 keep aspect ratio as in ffmpeg's scale filter."""
    parts = value.strip().split(":")
    if len(parts) != 2:
        raise ValueError(f"Invalid scale '{value}', expected w:h")
    try:
        w, h = int(parts[0]), int(parts[1])
    except ValueError:
        raise ValueError(f"Invalid scale '{value}', values must be integers")
    if w == 0 or h == 0 or w < -2 or h < -2:
        raise ValueError(f"Invalid scale '{value}'")
    return w, h


@dataclass(frozen=True)
class FilterGraph:
    """A single linear chain ``[0:v]stage,stage,...[v]``."""

    stages: Tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.stages

    def render(self) -> str:
        return f"[0:v]{','.join(self.stages)}[v]" if self.stages else ""

    def map_args(self) -> List[str]:
        if self.is_empty:
            return ["-map", "0:v:0"]
        return ["-filter_complex", self.render(), "-map", "[v]"]

    def __str__(self):
        return self.render() or "none"


def build_filter_graph(denoise: bool = False, crop: Optional[CropRegion] = None,
                       scale: Optional[Tuple[int, int]] = None, hw_decode: bool = False,
                       hw_download_format: str = "nv12") -> FilterGraph:
    """
    Fixed stage order: denoise, crop, scale.

    With hardware decode the frames live in GPU memory, so the chain starts by
    downloading them before any CPU filter runs.
    """
    stages: List[str] = []
    if hw_decode and (denoise or crop or scale):
        stages.append(f"hwdownload,format={hw_download_format}")
    if denoise:
        stages.append(DENOISE_FILTER)
    if crop is not None:
        stages.append(crop.filter())
    if scale is not None:
        stages.append(f"scale={scale[0]}:{scale[1]}")
    return FilterGraph(tuple(stages))


def build_stream_mapping(audio_streams: int, subtitle_streams: int) -> List[str]:
    """Copy every audio and subtitle stream, plus chapters and container metadata."""
    args: List[str] = []
    for i in range(audio_streams):
        args.extend(["-map", f"0:a:{i}", f"-c:a:{i}", "copy"])
    for i in range(subtitle_streams):
        args.extend(["-map", f"0:s:{i}", f"-c:s:{i}", "copy"])
    args.extend(["-map_chapters", "0", "-map_metadata", "0"])
    return args


def cbr_rate_args(bitrate: int) -> List[str]:
    """Pin min = max = target and a 1.5x VBV buffer."""
    bufsize = int(round(1.5 * bitrate))
    return ["-b:v", f"{bitrate}k", "-minrate", f"{bitrate}k",
            "-maxrate", f"{bitrate}k", "-bufsize", f"{bufsize}k"]


@dataclass
class _RateControl:
    mode: str = "crf"
    crf: Optional[float] = None
    bitrate: Optional[int] = None
    pass_index: Optional[int] = None
    stats_path: Optional[Path] = None


class EncoderCommandBuilder:
    """Builds ffmpeg commands for libx265 passes with consistent configuration."""

    def __init__(self):
        self.reset()

    def reset(self) -> 'EncoderCommandBuilder':
        """Reset builder state for a new command."""
        self.input_file: Optional[Path] = None
        self.output_file: Optional[str] = None
        self.title: Optional[str] = None
        self.hw_decode = False
        self.filter_graph = FilterGraph()
        self.stream_map: List[str] = []
        self.preset = "medium"
        self.pix_fmt = "yuv420p10le"
        self.codec_profile = "main10"
        self.x265_params: Dict[str, str] = {}
        self.rate = _RateControl()
        self.analysis_only = False
        self.progress_pipe = True
        return self

    def set_io(self, input_file: Path, output_file: Optional[Path]) -> 'EncoderCommandBuilder':
        self.input_file = Path(input_file)
        self.output_file = str(output_file) if output_file else NULL_OUTPUT
        return self

    def set_title(self, title: Optional[str]) -> 'EncoderCommandBuilder':
        self.title = title
        return self

    def set_hardware_decode(self, enabled: bool) -> 'EncoderCommandBuilder':
        self.hw_decode = enabled
        return self

    def set_filter_graph(self, graph: FilterGraph) -> 'EncoderCommandBuilder':
        self.filter_graph = graph
        return self

    def set_stream_map(self, args: List[str]) -> 'EncoderCommandBuilder':
        self.stream_map = list(args)
        return self

    def set_encoder(self, preset: str, pix_fmt: str, codec_profile: str,
                    x265_params: Mapping[str, str]) -> 'EncoderCommandBuilder':
        self.preset = preset
        self.pix_fmt = pix_fmt
        self.codec_profile = codec_profile
        self.x265_params = dict(x265_params)
        return self

    def set_crf(self, crf: float) -> 'EncoderCommandBuilder':
        self.rate = _RateControl(mode="crf", crf=crf)
        self.analysis_only = False
        return self

    def set_two_pass(self, mode: str, bitrate: int, pass_index: int,
                     stats_path: Path) -> 'EncoderCommandBuilder':
        self.rate = _RateControl(mode=mode, bitrate=bitrate, pass_index=pass_index,
                                 stats_path=Path(stats_path))
        # Pass 1 only gathers statistics: no audio, subtitles or data, no file
        self.analysis_only = pass_index == 1
        return self

    def _x265_params(self) -> str:
        params = dict(self.x265_params)
        for key in _RATE_KEYS:
            params.pop(key, None)
        # CRF is pure quality mode; in CBR -maxrate/-bufsize own the VBV
        if self.rate.mode in ("crf", "cbr"):
            for key in _VBV_KEYS:
                params.pop(key, None)

        text = format_x265_params(params)
        if self.rate.pass_index == 1:
            extra = f"pass=1:no-slow-firstpass=1:stats={self.rate.stats_path}"
        elif self.rate.pass_index == 2:
            extra = f"pass=2:stats={self.rate.stats_path}"
        else:
            extra = ""
        return ":".join(p for p in (text, extra) if p)

    def _rate_args(self) -> List[str]:
        if self.rate.mode == "crf":
            return ["-crf", f"{self.rate.crf:g}"]
        if self.rate.mode == "cbr":
            return cbr_rate_args(self.rate.bitrate)
        return ["-b:v", f"{self.rate.bitrate}k"]

    def build_command(self) -> List[str]:
        """Build the complete ffmpeg command."""
        if self.input_file is None:
            raise ValueError("input file not set")

        cmd = ["ffmpeg", "-y", "-hide_banner"]
        if self.hw_decode:
            cmd.extend(["-hwaccel", "cuda"])
            # Frames stay on the GPU only when the graph downloads them itself
            if self.filter_graph.stages and self.filter_graph.stages[0].startswith("hwdownload"):
                cmd.extend(["-hwaccel_output_format", "cuda"])
        cmd.extend(["-i", str(self.input_file), "-max_muxing_queue_size", "1024"])
        if self.title:
            cmd.extend(["-metadata", f"title={self.title}"])

        cmd.extend(self.filter_graph.map_args())
        cmd.extend(["-c:v", "libx265", "-pix_fmt", self.pix_fmt, "-profile:v", self.codec_profile])
        cmd.extend(self._rate_args())
        cmd.extend(["-preset:v", self.preset])

        x265 = self._x265_params()
        if x265:
            cmd.extend(["-x265-params", x265])

        if self.analysis_only:
            cmd.extend(["-an", "-sn", "-dn"])
        else:
            cmd.extend(self.stream_map)
            if Path(self.output_file).suffix.lower() in MATROSKA_SUFFIXES:
                cmd.extend(["-default_mode", "infer_no_subs"])

        cmd.extend(["-loglevel", "warning"])
        if self.progress_pipe:
            cmd.extend(["-progress", "pipe:1", "-nostats"])

        if self.analysis_only:
            cmd.extend(["-f", "null", NULL_OUTPUT])
        else:
            cmd.append(self.output_file)
        return cmd
