"""Failure kinds raised by the decision engine and the pass orchestrator."""

from typing import List, Optional


class EncodeError(Exception):
    """Base class for every fatal run failure."""

    kind = "encode_error"

    def __init__(self, message: str, diagnostics: Optional[List[str]] = None):
        super().__init__(message)
        self.diagnostics = list(diagnostics or [])

    @property
    def diagnostic_tail(self) -> str:
        return "\n".join(self.diagnostics)


class ProbeFailure(EncodeError):
    """Input is unreadable or carries no video stream."""

    kind = "probe_failure"


class PassFailure(EncodeError):
    """An encoder pass exited with a non-zero status."""

    kind = "pass_failure"

    def __init__(self, pass_label: str, exit_code: int, diagnostics: Optional[List[str]] = None):
        super().__init__(f"{pass_label} failed with exit code {exit_code}", diagnostics)
        self.pass_label = pass_label
        self.exit_code = exit_code


class ProfileNotFound(EncodeError):
    kind = "profile_not_found"


class InvalidModeError(EncodeError):
    kind = "invalid_mode"


class ClassificationFailure(Exception):
    """Recovered locally: oracle unreachable or no technical signal."""


class CropDetectionFailure(Exception):
    """Recovered locally: no usable crop signal across samples."""
