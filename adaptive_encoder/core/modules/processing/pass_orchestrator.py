"""
Pass orchestration for CRF / ABR / CBR encodes.

A PassPlan is derived from the encoding mode:
- CRF: one final pass, no statistics file, no bitrate anywhere
- ABR: analysis pass (fast preset, writes stats) then final pass (profile
  preset, reads stats), both at the adapted bitrate
- CBR: ABR's shape with min = max = bitrate and a 1.5x buffer on both passes

The orchestrator walks the plan through an explicit state machine. A failed
pass aborts the plan: later passes never start and there is no retry. The
statistics files belong to the plan and are removed once it ends, whether
it succeeded or not.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ....utils.logging import Logger, get_logger
from ...errors import InvalidModeError, PassFailure
from ..config.encoder_config import EncoderCommandBuilder, FilterGraph
from ..config.parameter_adaptation import AdaptedParameters
from ..system.system_utils import TEMP_FILES, format_command, remove_files
from .transcoding_engine import PassResult, TranscodingEngine

logger = get_logger("pass_orchestrator")


class EncodingMode(str, Enum):
    CRF = "crf"
    ABR = "abr"
    CBR = "cbr"

    @classmethod
    def parse(cls, value) -> "EncodingMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise InvalidModeError(f"Invalid encoding mode '{value}' (expected crf, abr or cbr)")


class PassState(str, Enum):
    IDLE = "idle"
    SINGLE_PASS_RUNNING = "single_pass_running"
    PASS1_RUNNING = "pass1_running"
    PASS1_COMPLETE = "pass1_complete"
    PASS2_RUNNING = "pass2_running"
    COMPLETE = "complete"
    FAILED = "failed"


_TRANSITIONS: Dict[PassState, Tuple[PassState, ...]] = {
    PassState.IDLE: (PassState.SINGLE_PASS_RUNNING, PassState.PASS1_RUNNING),
    PassState.SINGLE_PASS_RUNNING: (PassState.COMPLETE, PassState.FAILED),
    PassState.PASS1_RUNNING: (PassState.PASS1_COMPLETE, PassState.FAILED),
    PassState.PASS1_COMPLETE: (PassState.PASS2_RUNNING,),
    PassState.PASS2_RUNNING: (PassState.COMPLETE, PassState.FAILED),
    PassState.COMPLETE: (),
    PassState.FAILED: (),
}


class InvalidTransition(RuntimeError):
    pass


class PassStateMachine:
    def __init__(self):
        self.state = PassState.IDLE
        self.history: List[PassState] = [PassState.IDLE]

    def advance(self, new_state: PassState):
        if new_state not in _TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.state.value} -> {new_state.value}")
        logger.debug(f"state {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)

    @property
    def finished(self) -> bool:
        return self.state in (PassState.COMPLETE, PassState.FAILED)


@dataclass(frozen=True)
class Pass:
    index: int
    purpose: str  # "analysis" or "final"
    label: str
    preset: str
    mode: EncodingMode
    crf: Optional[float] = None
    bitrate: Optional[int] = None
    stats_path: Optional[Path] = None


@dataclass(frozen=True)
class PassPlan:
    mode: EncodingMode
    passes: Tuple[Pass, ...]
    stats_path: Optional[Path] = None

    def stats_artifacts(self) -> List[Path]:
        """Every file the encoder derives from the stats prefix (stats, stats.cutree, ...)."""
        if self.stats_path is None:
            return []
        parent = self.stats_path.parent
        if not parent.exists():
            return []
        return sorted(parent.glob(f"{self.stats_path.name}*"))


def build_pass_plan(mode, params: AdaptedParameters, stats_path: Optional[Path] = None,
                    first_pass_preset: str = "fast") -> PassPlan:
    mode = EncodingMode.parse(mode)
    name = mode.value.upper()
    if mode is EncodingMode.CRF:
        only = Pass(1, "final", "CRF Encoding (Single Pass)", params.preset, mode, crf=params.crf)
        return PassPlan(mode, (only,))

    if stats_path is None:
        raise ValueError(f"{name} needs a statistics path")
    first = Pass(1, "analysis", f"{name} First Pass (Analysis)", first_pass_preset, mode,
                 bitrate=params.bitrate, stats_path=stats_path)
    second = Pass(2, "final", f"{name} Second Pass (Final Encoding)", params.preset, mode,
                  bitrate=params.bitrate, stats_path=stats_path)
    return PassPlan(mode, (first, second), stats_path)


@dataclass
class EncodeJob:
    """Everything a pass command needs that is fixed for the whole plan."""

    input_file: Path
    output_file: Path
    params: AdaptedParameters
    filter_graph: FilterGraph
    stream_map: List[str]
    total_duration: float
    total_frames: int
    update_interval: int = 1
    stall_seconds: float = 10
    title: Optional[str] = None
    hw_decode: bool = False


@dataclass
class OrchestrationResult:
    state: PassState
    results: List[PassResult] = field(default_factory=list)
    commands: List[List[str]] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state is PassState.COMPLETE


def build_pass_command(job: EncodeJob, p: Pass) -> List[str]:
    builder = EncoderCommandBuilder()
    builder.set_io(job.input_file, None if p.purpose == "analysis" else job.output_file)
    builder.set_title(job.title)
    builder.set_hardware_decode(job.hw_decode)
    builder.set_filter_graph(job.filter_graph)
    builder.set_stream_map(job.stream_map)
    builder.set_encoder(p.preset, job.params.pix_fmt, job.params.codec_profile, job.params.x265_params)
    if p.mode is EncodingMode.CRF:
        builder.set_crf(p.crf)
    else:
        builder.set_two_pass(p.mode.value, p.bitrate, p.index, p.stats_path)
    return builder.build_command()


class PassOrchestrator:
    """Runs a PassPlan pass by pass and reports the terminal state."""

    def __init__(self, engine: Optional[TranscodingEngine] = None,
                 run_logger: Optional[Logger] = None):
        self.engine = engine or TranscodingEngine()
        self.log = run_logger or logger
        self.machine = PassStateMachine()

    def _running_state(self, plan: PassPlan, p: Pass) -> PassState:
        if len(plan.passes) == 1:
            return PassState.SINGLE_PASS_RUNNING
        return PassState.PASS1_RUNNING if p.index == 1 else PassState.PASS2_RUNNING

    def _log_plan(self, plan: PassPlan, job: EncodeJob):
        details = {
            "Pass Type": "Single-pass CRF" if plan.mode is EncodingMode.CRF
            else f"Two-pass {plan.mode.value.upper()}",
            "Preset": job.params.preset,
            "Pixel Format": job.params.pix_fmt,
            "Codec Profile": job.params.codec_profile,
            "Filter Chain": str(job.filter_graph),
            "Stream Mapping": " ".join(job.stream_map),
        }
        if plan.mode is EncodingMode.CRF:
            details["CRF Value"] = f"{job.params.crf:g}"
        else:
            details["Target Bitrate"] = f"{job.params.bitrate}k"
            details["Stats File"] = str(plan.stats_path)
        if plan.mode is EncodingMode.CBR:
            details["Min Rate"] = details["Max Rate"] = f"{job.params.bitrate}k"
            details["Buffer Size"] = f"{int(round(1.5 * job.params.bitrate))}k"
        self.log.section(f"{plan.mode.value.upper()} ENCODING PASSES", details)

    def execute(self, plan: PassPlan, job: EncodeJob) -> OrchestrationResult:
        """
        Run every pass of ``plan``.

        Raises:
            PassFailure: when any pass exits non-zero; carries the stderr tail.
        """
        outcome = OrchestrationResult(PassState.IDLE)
        if plan.stats_path is not None:
            TEMP_FILES.add(str(plan.stats_path))
        self._log_plan(plan, job)
        self.log.encode(f"Starting {plan.mode.value.upper()} encode: {len(plan.passes)} pass(es)")

        try:
            for p in plan.passes:
                cmd = build_pass_command(job, p)
                outcome.commands.append(cmd)
                self.log.section(p.label.upper(), {"Command": format_command(cmd)})

                self.machine.advance(self._running_state(plan, p))
                result = self.engine.run_pass(
                    p.label, cmd, job.total_duration, job.total_frames,
                    interval=job.update_interval, stall_seconds=job.stall_seconds,
                    output_path=None if p.purpose == "analysis" else job.output_file,
                    run_logger=self.log,
                )
                outcome.results.append(result)

                if not result.succeeded:
                    self.machine.advance(PassState.FAILED)
                    outcome.state = self.machine.state
                    self.log.error(f"{p.label} failed")
                    raise PassFailure(p.label, result.exit_code, result.diagnostics)

                if p.index == 1 and len(plan.passes) > 1:
                    self.machine.advance(PassState.PASS1_COMPLETE)
                else:
                    self.machine.advance(PassState.COMPLETE)
            outcome.state = self.machine.state
            return outcome
        finally:
            self._cleanup_stats(plan)

    def _cleanup_stats(self, plan: PassPlan):
        artifacts = plan.stats_artifacts()
        if artifacts:
            removed = remove_files(artifacts)
            self.log.cleanup(f"Removed {removed} statistics file(s)")
        if plan.stats_path is not None:
            TEMP_FILES.discard(str(plan.stats_path))
