"""
Adaptive Encoder - content-adaptive x265 encoding with auto-crop and HDR detection.
"""

__version__ = "1.0.0"

from .config import get_config, load_env_file

__all__ = [
    "get_config",
    "load_env_file",
]
