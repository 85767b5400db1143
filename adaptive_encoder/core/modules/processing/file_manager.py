"""
File Processing Workflows Module

Input discovery and output naming for single-file and batch runs:
- Recursive discovery with extension filtering
- Hidden file and macOS resource-fork filtering
- Collision-free output naming
"""

import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List

from ....utils.logging import get_logger

logger = get_logger("file_manager")

VIDEO_EXTENSIONS = ("mkv", "mp4", "mov", "m4v")


@dataclass
class FileDiscoveryResult:
    """Result of file discovery operation."""
    files: List[Path]
    hidden_files_skipped: int
    total_files_found: int


def _is_hidden(path: Path) -> bool:
    return path.name.startswith('.')


def discover_video_files(base_path: Path,
                         extensions: Iterable[str] = VIDEO_EXTENSIONS) -> FileDiscoveryResult:
    """
    Discover video files below ``base_path``.

    A file path is returned as-is when it has a matching extension.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise ValueError(f"Path not found: {base_path}")

    suffixes = {f".{ext.strip().lower().lstrip('.')}" for ext in extensions if ext.strip()}
    if base_path.is_file():
        found = [base_path] if base_path.suffix.lower() in suffixes else []
    else:
        found = sorted(p for p in base_path.rglob("*")
                       if p.is_file() and p.suffix.lower() in suffixes)

    files = [f for f in found if not _is_hidden(f)]
    result = FileDiscoveryResult(files, len(found) - len(files), len(found))
    logger.debug(f"Found {result.total_files_found} file(s) under {base_path}, "
                 f"{result.hidden_files_skipped} hidden skipped")
    return result


def unique_output_path(input_file: Path, suffix: str = None) -> Path:
    """``<input dir>/<stem>_<uuid4>.<ext>``; never the input itself."""
    input_file = Path(input_file)
    ext = suffix or input_file.suffix or ".mkv"
    return input_file.with_name(f"{input_file.stem}_{uuid.uuid4()}{ext}")
