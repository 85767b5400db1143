"""
Main encoding orchestration module for adaptive_encoder.

This module coordinates one run end to end:
- Probe the source
- Complexity analysis and content classification
- Profile selection and parameter adaptation
- Crop detection and filter graph assembly
- Pass plan execution with live progress

``decide_and_encode`` is the programmatic entry point; ``main`` and
``select_main`` wrap it for the command line.
"""

import argparse
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from ..config import VALID_MODES, VALID_ORACLE_MODES, get_config
from ..utils.logging import (Logger, format_size, get_logger, print_section_header,
                             print_separator, set_debug_mode, set_quiet_mode,
                             set_log_level)
from .context import RunContext
from .errors import EncodeError, PassFailure
from .modules.analysis.content_analyzer import NEUTRAL_SCORE, ComplexityEngine
from .modules.analysis.content_classifier import (Classification, ContentOracle, ContentType,
                                                  KeywordContentOracle, recommend_profile,
                                                  resolve_content_type)
from .modules.analysis.crop_detector import CropDetector, CropRegion
from .modules.analysis.media_utils import MediaProbe, probe
from .modules.config.encoder_config import (build_filter_graph, build_stream_mapping,
                                            parse_scale)
from .modules.config.parameter_adaptation import (AdaptedParameters, adapt,
                                                  refine_content_type)
from .modules.config.profiles import format_x265_params, get_profile, list_profiles
from .modules.processing.file_manager import discover_video_files, unique_output_path
from .modules.processing.pass_orchestrator import (EncodeJob, EncodingMode, PassOrchestrator,
                                                   build_pass_plan)
from .modules.processing.progress_monitor import calculate_update_interval
from .modules.processing.transcoding_engine import TranscodingEngine
from .modules.system.system_utils import install_signal_handlers

logger = get_logger("main")

AUTO_PROFILE = "auto"


@dataclass
class EncodeOverrides:
    """Caller-supplied knobs; ``None`` means "use the configured default"."""
    output: Optional[Path] = None
    crop: Optional[str] = None
    scale: Optional[str] = None
    denoise: bool = False
    hw_decode: bool = False
    title: Optional[str] = None
    use_complexity: Optional[bool] = None
    oracle_mode: Optional[str] = None
    first_pass_preset: Optional[str] = None


@dataclass
class EncodeResult:
    output_path: Path
    parameters: AdaptedParameters
    exit_status: int
    mode: EncodingMode
    crop: Optional[CropRegion] = None
    classification: Optional[Classification] = None
    pass_labels: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.exit_status == 0


@dataclass
class ProfileDecision:
    profile_name: str
    content_type: ContentType
    score: float
    analyzed: bool
    classification: Optional[Classification] = None


def _oracle_for(mode: str, oracle: Optional[ContentOracle]) -> Optional[ContentOracle]:
    if mode == "off":
        return None
    return oracle or KeywordContentOracle()


def decide_profile(media: MediaProbe, profile: Optional[str], use_complexity: bool,
                   oracle_mode: str = "on", oracle: Optional[ContentOracle] = None,
                   complexity_engine: Optional[ComplexityEngine] = None,
                   log: Logger = logger) -> ProfileDecision:
    """
    Pick the profile and content type for a probed source.

    An explicit profile's declared content type is authoritative. ``auto``
    always runs complexity analysis, classifies the source and maps the
    label to a profile. The complexity score is neutral (50) when no
    analysis ran.
    """
    auto = profile in (None, "", AUTO_PROFILE)
    signals, score, analyzed = None, NEUTRAL_SCORE, False
    if auto or use_complexity:
        engine = complexity_engine or ComplexityEngine()
        signals, score = engine.analyze(media)
        analyzed = True

    classification = None
    if auto:
        log.profile("Automatic profile selection requested...")
        classification = resolve_content_type(media, signals, _oracle_for(oracle_mode, oracle),
                                              oracle_mode)
        profile = recommend_profile(classification.content_type, media)
        log.profile(f"Automatically selected profile: {profile}")

    encoding_profile = get_profile(profile)
    content_type = encoding_profile.content_type
    if auto:
        content_type = classification.content_type
    if analyzed:
        refined = refine_content_type(content_type, score)
        if refined is not content_type:
            log.profile(f"Complexity {score} refined content type: {content_type.value} -> {refined.value}")
        content_type = refined
    return ProfileDecision(encoding_profile.name, content_type, score, analyzed, classification)


def _log_final_statistics(log: Logger, input_file: Path, output_file: Path) -> dict:
    stats = {"Status": "SUCCESS"}
    try:
        input_size = input_file.stat().st_size
        output_size = output_file.stat().st_size
    except OSError as e:
        log.warn(f"Could not read file sizes for final statistics: {e}")
        return stats
    ratio = input_size / output_size if output_size else 0.0
    stats.update({
        "Input Size": format_size(input_size),
        "Output Size": format_size(output_size),
        "Compression Ratio": f"{ratio:.2f}:1",
    })
    log.result(f"Input: {stats['Input Size']}  Output: {stats['Output Size']}  "
               f"Ratio: {stats['Compression Ratio']}")
    return stats


def decide_and_encode(input_file: Path, profile: Optional[str] = AUTO_PROFILE,
                      mode="abr", overrides: Optional[EncodeOverrides] = None,
                      context: Optional[RunContext] = None,
                      config: Optional[dict] = None,
                      engine: Optional[TranscodingEngine] = None,
                      prober: Callable[[Path], MediaProbe] = probe,
                      complexity_engine: Optional[ComplexityEngine] = None,
                      crop_detector: Optional[CropDetector] = None,
                      oracle: Optional[ContentOracle] = None) -> EncodeResult:
    """
    Analyze ``input_file``, decide the encode and run every pass.

    Raises:
        ProbeFailure: the input is unreadable or has no video stream.
        ProfileNotFound: ``profile`` names no known profile.
        InvalidModeError: ``mode`` is not crf, abr or cbr.
        PassFailure: an encoder pass exited non-zero.
        ValueError: a manual crop or scale override is malformed.
    """
    overrides = overrides or EncodeOverrides()
    config = config or get_config()
    input_file = Path(input_file)
    mode = EncodingMode.parse(mode)

    # Malformed overrides fail before any work starts
    manual_crop = CropRegion.parse(overrides.crop) if overrides.crop else None
    scale = parse_scale(overrides.scale) if overrides.scale else None

    output_file = Path(overrides.output) if overrides.output else unique_output_path(input_file)
    owns_context = context is None
    if owns_context:
        context = RunContext(config["temp_dir"], debug=config["debug"],
                             log_file=output_file.with_suffix(".log"))
    log = context.logger("main")
    use_complexity = config["use_complexity"] if overrides.use_complexity is None else overrides.use_complexity
    oracle_mode = overrides.oracle_mode or config["oracle_mode"]

    try:
        media = prober(input_file)
        decision = decide_profile(media, profile, use_complexity, oracle_mode, oracle,
                                  complexity_engine, log)
        encoding_profile = get_profile(decision.profile_name)

        params = adapt(encoding_profile, decision.score, decision.content_type,
                       media.is_hdr, media.color_transfer)
        if media.is_hdr:
            log.hdr(f"HDR encode: base bitrate {encoding_profile.bitrate_hdr}k, "
                    f"base CRF {encoding_profile.crf + 2:g}")
        log.profile(f"Profile '{params.profile_name}' ({params.content_type.value}): "
                    f"CRF {params.crf:g}, bitrate {params.bitrate}k, preset {params.preset}")

        detector = crop_detector or CropDetector(config["crop_min_threshold"])
        crop = detector.detect(media, manual_crop)

        graph = build_filter_graph(overrides.denoise, crop, scale, overrides.hw_decode,
                                   "p010le" if media.is_ten_bit else "nv12")
        stream_map = build_stream_mapping(media.audio_streams, media.subtitle_streams)
        stats_path = None if mode is EncodingMode.CRF else context.stats_prefix()
        plan = build_pass_plan(mode, params, stats_path,
                               overrides.first_pass_preset or config["first_pass_preset"])

        job = EncodeJob(
            input_file=input_file,
            output_file=output_file,
            params=params,
            filter_graph=graph,
            stream_map=stream_map,
            total_duration=media.duration_seconds,
            total_frames=media.total_frames,
            update_interval=calculate_update_interval(media.width, media.height,
                                                      decision.score, mode.value),
            stall_seconds=config["stall_seconds"],
            title=overrides.title,
            hw_decode=overrides.hw_decode,
        )

        log.section("ENCODING SESSION DETAILS", {
            "Run ID": context.run_id,
            "Input File": input_file,
            "Output File": output_file,
            "Profile": params.profile_name,
            "Mode": mode.value.upper(),
            "Resolution": f"{media.width}x{media.height}",
            "HDR": "yes" if media.is_hdr else "no",
            "Complexity Score": decision.score if decision.analyzed else "not analyzed (50)",
            "Content Type": params.content_type.value,
            "Final CRF": f"{params.crf:g}",
            "Final Bitrate": f"{params.bitrate}k",
            "Encoder Params": format_x265_params(params.x265_params),
            "Crop": crop or "none",
            "Filter Graph": graph,
            "Stream Mapping": " ".join(stream_map),
        })

        orchestrator = PassOrchestrator(engine or TranscodingEngine(), log)
        try:
            orchestrator.execute(plan, job)
        except PassFailure as e:
            log.section("ENCODING RESULTS", {
                "Status": "FAILED",
                "Failed Pass": e.pass_label,
                "Exit Code": e.exit_code,
            })
            raise

        log.section("ENCODING RESULTS", _log_final_statistics(log, input_file, output_file))
        log.result(f"Encoding completed: {output_file}")
        return EncodeResult(
            output_path=output_file,
            parameters=params,
            exit_status=0,
            mode=mode,
            crop=crop,
            classification=decision.classification,
            pass_labels=[p.label for p in plan.passes],
        )
    finally:
        if owns_context:
            context.cleanup()


def _build_overrides(args, output: Optional[Path]) -> EncodeOverrides:
    return EncodeOverrides(
        output=output,
        crop=args.crop,
        scale=args.scale,
        denoise=args.denoise,
        hw_decode=args.hardware,
        title=args.title,
        use_complexity=args.use_complexity or None,
        oracle_mode=args.oracle,
        first_pass_preset=args.first_pass_preset,
    )


def _collect_jobs(inputs: List[str], output: Optional[str]) -> List[tuple]:
    """(input, explicit output or None) pairs; -o only applies to a single file input."""
    if len(inputs) > 1 and output:
        logger.warn("Output parameter (-o) is ignored when processing multiple inputs. "
                    "Files will be saved with UUID-based names.")
        output = None

    jobs = []
    for raw in inputs:
        path = Path(raw)
        if not path.exists():
            logger.error(f"Input path does not exist: {path}")
            continue
        if path.is_dir():
            discovery = discover_video_files(path)
            if not discovery.files:
                logger.warn(f"No video files found in: {path}")
            jobs.extend((f, None) for f in discovery.files)
        else:
            jobs.append((path, Path(output) if output else None))
    return jobs


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the encoding application."""
    config = get_config()
    parser = argparse.ArgumentParser(
        description="Adaptive Encoder - content-adaptive x265 encoding with auto-crop and HDR detection")

    parser.add_argument("inputs", nargs="*", help="Input file(s) or directories")
    parser.add_argument("-o", "--output", help="Output file (single input only; default: <name>_<uuid>.<ext>)")
    parser.add_argument("-p", "--profile", default=AUTO_PROFILE,
                        help="Encoding profile name or 'auto' (default: auto)")
    parser.add_argument("-m", "--mode", choices=VALID_MODES, default=config["mode"],
                        help=f"Rate control mode (default: {config['mode']})")
    parser.add_argument("-t", "--title", help="Title metadata for the output")
    parser.add_argument("-c", "--crop", help="Manual crop w:h:x:y (skips detection)")
    parser.add_argument("-s", "--scale", help="Scale to w:h (-1/-2 keep aspect ratio)")
    parser.add_argument("--denoise", action="store_true", help="Apply light hqdn3d denoising")
    parser.add_argument("--hardware", action="store_true", help="Use CUDA hardware decoding")
    parser.add_argument("--use-complexity", action="store_true",
                        help="Adapt CRF/bitrate to measured complexity for explicit profiles")
    parser.add_argument("--oracle", choices=VALID_ORACLE_MODES, default=None,
                        help=f"Content oracle lookup for auto profiles (default: {config['oracle_mode']})")
    parser.add_argument("--first-pass-preset", default=None,
                        help=f"Preset for the analysis pass (default: {config['first_pass_preset']})")
    parser.add_argument("--list-profiles", action="store_true", help="List profiles and exit")
    parser.add_argument("--debug", action="store_true", help="Enable debug output")
    parser.add_argument("--quiet", action="store_true", help="Only show warnings and errors")
    parser.add_argument("--log-level", choices=("debug", "info", "warn", "error"), default=None,
                        help="Console log level (default: info)")

    args = parser.parse_args(argv)

    if args.list_profiles:
        for name in list_profiles():
            print(f"  {name:<16} {get_profile(name).title}")
        return 0
    if not args.inputs:
        parser.error("at least one input is required")

    if args.debug or config["debug"]:
        set_debug_mode(True)
    if args.quiet:
        set_quiet_mode(True)
    if args.log_level:
        set_log_level(args.log_level)

    try:
        if args.crop:
            CropRegion.parse(args.crop)
        if args.scale:
            parse_scale(args.scale)
        if args.profile != AUTO_PROFILE:
            get_profile(args.profile)
    except (ValueError, EncodeError) as e:
        logger.error(str(e))
        return 1

    install_signal_handlers()

    jobs = _collect_jobs(args.inputs, args.output)
    if not jobs:
        logger.error("No video files to process")
        return 1

    logger.info(f"Processing {len(jobs)} file(s)...")
    succeeded, failed = [], []
    for index, (input_file, output) in enumerate(jobs, 1):
        print_section_header(f"[{index}/{len(jobs)}] {input_file.name}")
        try:
            result = decide_and_encode(input_file, args.profile, args.mode,
                                       _build_overrides(args, output), config=config)
            succeeded.append(result.output_path)
        except EncodeError as e:
            logger.error(f"{input_file.name}: {e}")
            if e.diagnostics:
                logger.error(f"Diagnostic output:\n{e.diagnostic_tail}")
            failed.append(input_file)

    if len(jobs) > 1:
        print_separator()
        logger.result(f"Batch complete: {len(succeeded)} succeeded, {len(failed)} failed")
        for f in failed:
            logger.result(f"  FAILED: {f}")
    return 1 if failed else 0


def select_main(argv: Optional[List[str]] = None) -> int:
    """Print the automatically selected profile for one input."""
    config = get_config()
    parser = argparse.ArgumentParser(description="Select an encoding profile for a video file")
    parser.add_argument("input", help="Input video file")
    parser.add_argument("--oracle", choices=VALID_ORACLE_MODES, default=config["oracle_mode"],
                        help="Content oracle lookup mode")
    parser.add_argument("--debug", action="store_true", help="Enable debug output")
    args = parser.parse_args(argv)

    if args.debug or config["debug"]:
        set_debug_mode(True)

    try:
        media = probe(Path(args.input))
        decision = decide_profile(media, AUTO_PROFILE, True, args.oracle)
    except EncodeError as e:
        logger.error(str(e))
        return 1

    logger.result(f"Content type: {decision.content_type.value}, complexity: {decision.score}")
    print(decision.profile_name)
    return 0


if __name__ == "__main__":
    sys.exit(main())
