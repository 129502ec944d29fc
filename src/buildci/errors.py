# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence


class BuildCIError(Exception):
    """Base class for every error raised by buildci."""


@dataclass
class UnknownJobError(BuildCIError):
    """Requested job name is not in the registry."""
    name: str
    known: Sequence[str] = field(default_factory=tuple)

    def __str__(self) -> str:
        msg = f"Unknown job: {self.name!r}"
        if self.known:
            msg += f" (known jobs: {', '.join(self.known)})"
        return msg


@dataclass
class DuplicateJobError(BuildCIError):
    name: str

    def __str__(self) -> str:
        return f"Duplicate job name: {self.name!r}"


class EmptyJobError(BuildCIError, ValueError):
    """A recipe with zero steps was registered without opting in."""


@dataclass
class StepExecutionError(BuildCIError):
    """The step's process could not be started at all."""
    step: str
    cmd: str
    reason: str

    def __str__(self) -> str:
        return f"step '{self.step}' could not start: {self.reason}: {self.cmd}"


@dataclass
class StepFailure(BuildCIError):
    """The step ran and exited non-zero, or its expected artifacts are missing."""
    job: str
    step: str | None
    cmd: str
    exit_code: int | None
    reason: str | None = None

    def __str__(self) -> str:
        where = f"step '{self.step}'" if self.step else "job"
        msg = f"[{self.job}] {where} failed (exit={self.exit_code})"
        if self.cmd:
            msg += f": {self.cmd}"
        if self.reason:
            msg += f" ({self.reason})"
        return msg


@dataclass
class CancelledError(BuildCIError):
    """The run was cancelled externally or a step exceeded its timeout."""
    job: str
    step: str | None = None
    timed_out: bool = False

    def __str__(self) -> str:
        what = "timed out" if self.timed_out else "cancelled"
        if self.step:
            return f"[{self.job}] {what} during step '{self.step}'"
        return f"[{self.job}] {what}"


@dataclass
class WorkspaceError(BuildCIError):
    """The job's build directory could not be cleaned or created."""
    job: str
    path: str
    reason: str

    def __str__(self) -> str:
        return f"[{self.job}] cannot prepare build directory {self.path}: {self.reason}"


class ConfigError(BuildCIError, ValueError):
    """Invalid BUILDCI_* setting or workflow definition."""
