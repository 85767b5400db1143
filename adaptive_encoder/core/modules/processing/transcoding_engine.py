"""
Encoder subprocess execution with concurrent progress monitoring.

One pass = one ffmpeg process. Two reader threads drain its stdout
(progress blocks) and stderr (diagnostics, last 20 lines kept) while a
ProgressMonitor runs on a worker thread; the caller blocks on the monitor's
future and receives the exit code from it.
"""

import queue
import subprocess
import threading
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Deque, List, Optional

from ....utils.logging import Logger, get_logger
from ..system.system_utils import (format_command, register_process, terminate_process_tree,
                                   unregister_process)
from .progress_monitor import ProgressMonitor, ProgressParser, ProgressSample

logger = get_logger("transcoding_engine")

DIAGNOSTIC_TAIL = 20


@dataclass
class PassResult:
    label: str
    exit_code: int
    diagnostics: List[str] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


def launch_encoder(cmd: List[str]) -> subprocess.Popen:
    return subprocess.Popen(
        cmd,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        stdin=subprocess.DEVNULL,
        text=True,
        bufsize=1,
    )


def _read_progress(stream, parser: ProgressParser, samples: "queue.Queue[ProgressSample]"):
    for line in stream:
        sample = parser.feed(line)
        if sample is not None:
            samples.put(sample)


def _read_diagnostics(stream, tail: Deque[str]):
    for line in stream:
        line = line.rstrip()
        if line:
            tail.append(line)


class TranscodingEngine:
    """Runs encoder passes; the process launcher, clock and sleep are injectable."""

    def __init__(self, launcher: Callable[[List[str]], subprocess.Popen] = launch_encoder,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep,
                 show_progress: bool = True):
        self.launcher = launcher
        self.clock = clock
        self.sleep = sleep
        self.show_progress = show_progress

    def run_pass(self, label: str, cmd: List[str], total_duration: float, total_frames: int,
                 interval: int = 1, stall_seconds: float = 10,
                 output_path: Optional[Path] = None,
                 run_logger: Optional[Logger] = None) -> PassResult:
        log = run_logger or logger
        log.info(label)
        log.cmd(format_command(cmd))

        start = self.clock()
        try:
            proc = self.launcher(cmd)
        except OSError as e:
            log.error(f"Could not start encoder: {e}")
            return PassResult(label, 127, [str(e)])

        register_process(proc)
        samples: "queue.Queue[ProgressSample]" = queue.Queue()
        tail: Deque[str] = deque(maxlen=DIAGNOSTIC_TAIL)
        readers = [
            threading.Thread(target=_read_progress, args=(proc.stdout, ProgressParser(self.clock), samples),
                             name=f"progress-{label}", daemon=True),
            threading.Thread(target=_read_diagnostics, args=(proc.stderr, tail),
                             name=f"stderr-{label}", daemon=True),
        ]
        for t in readers:
            t.start()

        monitor = ProgressMonitor(
            label, total_duration, total_frames,
            interval=interval, stall_seconds=stall_seconds, output_path=output_path,
            clock=self.clock, sleep=self.sleep, show_bar=self.show_progress,
        )
        try:
            with ThreadPoolExecutor(max_workers=1, thread_name_prefix="monitor") as executor:
                future = executor.submit(monitor.run, proc.poll, samples)
                exit_code = future.result()
        finally:
            if proc.poll() is None:
                terminate_process_tree(proc.pid)
            for t in readers:
                t.join(timeout=5)
            proc.wait()
            unregister_process(proc)

        result = PassResult(label, exit_code, list(tail), self.clock() - start)
        if not result.succeeded:
            log.error(f"ffmpeg failed with exit code {exit_code}. Error output:")
            for line in result.diagnostics:
                log.error(f"  {line}")
        return result
