"""Configuration management for adaptive-encoder."""

import os
import tempfile
from pathlib import Path
from typing import Optional, Dict, Any

VALID_MODES = ("crf", "abr", "cbr")
VALID_ORACLE_MODES = ("on", "off", "force")


def load_env_file(env_path: Optional[Path] = None) -> Dict[str, str]:
    """Load environment variables from .env file."""
    if env_path is None:
        # Look for .env in current directory, then in package directory
        candidates = [
            Path.cwd() / ".env",
            Path(__file__).parent.parent / ".env",
        ]

        for candidate in candidates:
            if candidate.exists():
                env_path = candidate
                break

    env_vars = {}

    if env_path and env_path.exists():
        with open(env_path, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#'):
                    if '=' in line:
                        key, value = line.split('=', 1)
                        env_vars[key.strip()] = value.strip()

    return env_vars


def _setting(env_vars: Dict[str, str], key: str, default: str) -> str:
    # .env keys may be written lower-case, environment variables upper-case
    return env_vars.get(key.lower(), env_vars.get(key, os.getenv(key, default)))


def _as_bool(value: str) -> bool:
    return str(value).lower() in ('true', '1', 'yes')


def _as_number(value: str, cast, default):
    try:
        number = cast(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def get_config(env_path: Optional[Path] = None) -> Dict[str, Any]:
    """Get configuration from environment variables and .env file."""
    env_vars = load_env_file(env_path)

    mode = _setting(env_vars, 'ENCODE_MODE', 'abr').lower()
    if mode not in VALID_MODES:
        mode = 'abr'
    oracle_mode = _setting(env_vars, 'ORACLE_MODE', 'on').lower()
    if oracle_mode not in VALID_ORACLE_MODES:
        oracle_mode = 'on'

    config = {
        'temp_dir': Path(_setting(env_vars, 'TEMP_DIR', tempfile.gettempdir())),
        'debug': _as_bool(_setting(env_vars, 'DEBUG', 'false')),
        'mode': mode,
        'first_pass_preset': _setting(env_vars, 'FIRST_PASS_PRESET', 'fast'),
        'oracle_mode': oracle_mode,
        'use_complexity': _as_bool(_setting(env_vars, 'USE_COMPLEXITY', 'false')),
        'crop_min_threshold': _as_number(_setting(env_vars, 'CROP_MIN_THRESHOLD', '20'), int, 20),
        'stall_seconds': _as_number(_setting(env_vars, 'PROGRESS_STALL_SECONDS', '10'), float, 10.0),
    }

    return config
