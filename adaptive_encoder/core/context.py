"""Per-run context: identifier, scratch directory, log file and debug flag.

Every temp path a run creates lives under ``RunContext.temp_dir`` so that
concurrent runs never collide.
"""

import os
import shutil
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ..utils.logging import Logger, get_logger


def new_run_id() -> str:
    return f"{os.getpid()}-{uuid.uuid4().hex[:8]}"


@dataclass
class RunContext:
    base_temp_dir: Path
    debug: bool = False
    run_id: str = field(default_factory=new_run_id)
    log_file: Optional[Path] = None

    def __post_init__(self):
        self.base_temp_dir = Path(self.base_temp_dir)
        self.temp_dir = self.base_temp_dir / f"adaptive_encoder_{self.run_id}"
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        if self.log_file is None:
            self.log_file = self.temp_dir / "encode.log"

    def stats_prefix(self) -> Path:
        """Prefix the encoder uses for its two-pass statistics files."""
        return self.temp_dir / "stats"

    def logger(self, module_name: str) -> Logger:
        return get_logger(module_name, log_file=self.log_file)

    def cleanup(self, keep_log: bool = True):
        """Remove the scratch directory; the log survives when it lives elsewhere."""
        if not self.temp_dir.exists():
            return
        if keep_log and self.log_file and self.temp_dir in self.log_file.parents:
            for child in self.temp_dir.iterdir():
                if child != self.log_file:
                    if child.is_dir():
                        shutil.rmtree(child, ignore_errors=True)
                    else:
                        child.unlink(missing_ok=True)
            return
        shutil.rmtree(self.temp_dir, ignore_errors=True)
