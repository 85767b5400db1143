"""
System utilities for adaptive_encoder.

This module provides system-level utilities including:
- Subprocess execution with consistent error handling
- Temporary file tracking and cleanup
- Encoder process-tree termination
- Signal handling for interrupted runs
"""

import os
import sys
import shlex
import signal
import atexit
import subprocess
from pathlib import Path
from typing import Iterable, List, Optional

import psutil

from ....utils.logging import get_logger

logger = get_logger("system_utils")


class _TempFilesList(list):
    """Ordered registry of temp paths with uniqueness by string form."""

    def __init__(self):
        super().__init__()
        self._membership = set()

    def append(self, item):  # type: ignore[override]
        key = str(item)
        if key not in self._membership:
            self._membership.add(key)
            super().append(item)

    def add(self, item):
        self.append(item)

    def discard(self, item):
        key = str(item)
        self._membership.discard(key)
        for i, existing in enumerate(list(self)):
            if str(existing) == key:
                del self[i]
                break

    def clear(self):  # type: ignore[override]
        self._membership.clear()
        super().clear()


TEMP_FILES = _TempFilesList()

# Encoder processes that must die with us on SIGINT/SIGTERM
_ACTIVE_PROCESSES: List[subprocess.Popen] = []


def file_exists(path) -> bool:
    """Path(path).exists() that returns False on OSError."""
    try:
        return Path(path).exists()
    except OSError:
        return False


def _cleanup():
    """Cleanup temporary files on exit"""
    for f in list(TEMP_FILES):
        path_str = str(f)
        try:
            if file_exists(path_str):
                os.remove(path_str)
                logger.cleanup(f"removed {path_str}")
        except OSError as e:
            logger.debug(f"Failed to remove {path_str}: {e}")
        finally:
            TEMP_FILES.discard(f)


atexit.register(_cleanup)


def cleanup_temp_files():
    """Remove every registered temp file now."""
    _cleanup()


def remove_files(paths: Iterable[Path]) -> int:
    """Delete the given files, ignoring ones already gone. Returns count removed."""
    removed = 0
    for p in paths:
        try:
            if file_exists(p):
                Path(p).unlink()
                removed += 1
                logger.cleanup(f"removed {p}")
        except OSError as e:
            logger.warn(f"Could not remove {p}: {e}")
        finally:
            TEMP_FILES.discard(p)
    return removed


def format_command(cmd: List[str]) -> str:
    return " ".join(shlex.quote(str(c)) for c in cmd)


def run_command(cmd: List[str], timeout: Optional[int] = 30, capture_output: bool = True,
                text: bool = True, check: bool = False) -> subprocess.CompletedProcess:
    """
    Standardized subprocess command runner with consistent error handling.

    Args:
        cmd: Command as list of strings
        timeout: Timeout in seconds (default: 30, None for no limit)
        capture_output: Whether to capture stdout/stderr (default: True)
        text: Whether to use text mode (default: True)
        check: Whether to raise exception on non-zero exit (default: False)

    Returns:
        CompletedProcess object
    """
    logger.cmd(format_command(cmd))
    try:
        return subprocess.run(
            cmd,
            capture_output=capture_output,
            text=text,
            timeout=timeout,
            check=check
        )
    except subprocess.TimeoutExpired:
        logger.error(f"Command timed out after {timeout}s: {' '.join(cmd[:3])}...")
        raise
    except subprocess.CalledProcessError as e:
        logger.debug(f"Command failed: {' '.join(cmd[:3])}... (exit code: {e.returncode})")
        raise


def register_process(proc: subprocess.Popen):
    _ACTIVE_PROCESSES.append(proc)


def unregister_process(proc: subprocess.Popen):
    if proc in _ACTIVE_PROCESSES:
        _ACTIVE_PROCESSES.remove(proc)


def terminate_process_tree(pid: int, timeout: float = 5.0) -> None:
    """Terminate a process and all of its children, killing stragglers."""
    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return
    procs = parent.children(recursive=True) + [parent]
    for p in procs:
        try:
            p.terminate()
        except psutil.NoSuchProcess:
            pass
    _, alive = psutil.wait_procs(procs, timeout=timeout)
    for p in alive:
        try:
            p.kill()
        except psutil.NoSuchProcess:
            pass


def _handle_signal(signum, frame):
    logger.warn(f"Received signal {signum}, stopping encoder")
    for proc in list(_ACTIVE_PROCESSES):
        terminate_process_tree(proc.pid)
    sys.exit(1)


def install_signal_handlers():
    """Route SIGINT/SIGTERM to encoder teardown. Called by the CLI only."""
    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _handle_signal)
