"""
Centralized logging utilities for adaptive_encoder

Provides consistent logging patterns with configurable debug levels:
- [INFO] for general information
- [WARN] for warnings
- [ERROR] for errors
- [RESULT] for final results
- [DEBUG] for debug information
- [ANALYSIS] for complexity / classification messages
- [CROP] for crop detection messages
- [PROFILE] for profile selection messages
- [ENCODE] for pass orchestration messages
- [CLEANUP] for cleanup operations

Usage:
    from adaptive_encoder.utils.logging import get_logger, set_debug_mode

    set_debug_mode(True)

    logger = get_logger("crop_detector")
    logger.crop("Crop detected: 1920x800")
    logger.debug("Only shown in debug mode")

A logger created with ``log_file`` additionally appends plain, timestamped
lines to that file. The orchestrator passes the per-run log file from its
RunContext; there is no process-wide "current log file".
"""

import os
import time
from enum import Enum
from pathlib import Path
from typing import Optional

from tqdm import tqdm

# Global console configuration
_DEBUG_ENABLED = False
_QUIET_MODE = False
_LOG_LEVEL = "INFO"


class LogLevel(Enum):
    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3


def _init_debug_mode():
    global _DEBUG_ENABLED
    if os.getenv('DEBUG', '').lower() in ('1', 'true', 'yes'):
        _DEBUG_ENABLED = True


_init_debug_mode()


def set_debug_mode(enabled: bool):
    """Enable or disable debug mode globally"""
    global _DEBUG_ENABLED
    _DEBUG_ENABLED = enabled


def set_quiet_mode(enabled: bool):
    """Enable or disable quiet mode (suppress INFO and DEBUG messages)"""
    global _QUIET_MODE
    _QUIET_MODE = enabled


_LEVELS = {
    "DEBUG": LogLevel.DEBUG,
    "INFO": LogLevel.INFO,
    "WARN": LogLevel.WARN,
    "ERROR": LogLevel.ERROR,
}


def set_log_level(level: str):
    """Set the global console log level: DEBUG, INFO, WARN, ERROR"""
    global _LOG_LEVEL
    name = level.upper()
    if name not in _LEVELS:
        raise ValueError(f"Unknown log level '{level}' (expected one of {', '.join(_LEVELS)})")
    _LOG_LEVEL = name


class Logger:
    """Centralized logger with consistent formatting and configurable output"""

    def __init__(self, module_name: str = "", log_file: Optional[Path] = None):
        self.module_name = module_name
        self.prefix = f"[{module_name}] " if module_name else ""
        self.log_file = Path(log_file) if log_file else None

    def _should_log(self, level: LogLevel) -> bool:
        if _QUIET_MODE and level in (LogLevel.DEBUG, LogLevel.INFO):
            return False
        if level is LogLevel.DEBUG and _DEBUG_ENABLED:
            return True
        current_level = _LEVELS.get(_LOG_LEVEL, LogLevel.INFO)
        return level.value >= current_level.value

    def _write_file(self, tag: str, message: str):
        if not self.log_file:
            return
        ts = time.strftime('%Y-%m-%d %H:%M:%S')
        try:
            with open(self.log_file, 'a', encoding='utf-8') as f:
                f.write(f"[{tag}] {ts} - {message}\n")
        except OSError:
            # Run log is best effort; the console line still goes out
            pass

    def _emit(self, tag: str, level: LogLevel, message: str, debug_only: bool = False):
        if debug_only and not _DEBUG_ENABLED:
            return
        self._write_file(tag, message)
        if not self._should_log(level):
            return
        # tqdm.write keeps an active progress bar intact
        tqdm.write(f"[{tag}] {self.prefix}{message}")

    def debug(self, message: str):
        """Log debug message (only if debug mode enabled)"""
        self._emit("DEBUG", LogLevel.DEBUG, message, debug_only=True)

    def info(self, message: str):
        """Log informational message"""
        self._emit("INFO", LogLevel.INFO, message)

    def warn(self, message: str):
        """Log warning message"""
        self._emit("WARN", LogLevel.WARN, message)

    def error(self, message: str):
        """Log error message"""
        self._emit("ERROR", LogLevel.ERROR, message)

    def result(self, message: str):
        """Log result message"""
        self._emit("RESULT", LogLevel.INFO, message)

    # Domain-specific logging methods
    def analysis(self, message: str):
        """Log complexity / classification message"""
        self._emit("ANALYSIS", LogLevel.INFO, message)

    def crop(self, message: str):
        """Log crop detection message"""
        self._emit("CROP", LogLevel.INFO, message)

    def profile(self, message: str):
        """Log profile selection message"""
        self._emit("PROFILE", LogLevel.INFO, message)

    def encode(self, message: str):
        """Log pass orchestration message"""
        self._emit("ENCODE", LogLevel.INFO, message)

    def hdr(self, message: str):
        """Log HDR processing message"""
        self._emit("HDR", LogLevel.INFO, message)

    def cleanup(self, message: str):
        """Log cleanup operation"""
        self._emit("CLEANUP", LogLevel.INFO, message)

    def cmd(self, message: str):
        """Log command execution message"""
        self._emit("CMD", LogLevel.DEBUG, message, debug_only=True)

    def progress(self, message: str):
        """Log progress sample message"""
        self._emit("PROGRESS", LogLevel.DEBUG, message, debug_only=True)

    def section(self, title: str, lines: dict):
        """Append a titled key/value block to the log file only."""
        if not self.log_file:
            return
        try:
            with open(self.log_file, 'a', encoding='utf-8') as f:
                f.write(f"\n=== {title} ===\n")
                for key, value in lines.items():
                    f.write(f"{key}: {value}\n")
        except OSError:
            pass


def get_logger(module_name: str = "", log_file: Optional[Path] = None) -> Logger:
    """Get a logger instance for a module"""
    return Logger(module_name, log_file=log_file)


def create_progress_bar(total: Optional[int] = None, desc: str = "", unit: str = "it",
                        position: Optional[int] = None, leave: bool = True):
    """Create a progress bar with consistent styling"""
    return tqdm(total=total, desc=desc, unit=unit, position=position, leave=leave,
                disable=_QUIET_MODE)


def print_section_header(title: str, width: int = 90):
    """Print a section header with consistent formatting"""
    if _QUIET_MODE:
        return
    print("=" * width)
    print(title)
    print("=" * width)


def print_separator(width: int = 90):
    """Print a separator line"""
    if not _QUIET_MODE:
        print("-" * width)


def format_duration(seconds: float) -> str:
    """Format duration in seconds as HH:MM:SS or MM:SS"""
    if seconds is None or seconds <= 0:
        return "calculating..."
    total = int(seconds)
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def format_size(bytes_size: int) -> str:
    """Format file size in bytes to human-readable string"""
    size = float(bytes_size)
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if size < 1024.0:
            return f"{size:.1f}{unit}"
        size /= 1024.0
    return f"{size:.1f}PB"
