# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple


def _frozen_env(env: Mapping[str, object]) -> Mapping[str, str]:
    """Read-only copy of an environment overlay, values coerced to str."""
    return MappingProxyType({str(k): str(v) for k, v in dict(env).items()})


class Importance(str, Enum):
    INFORMATIONAL = "informational"
    BLOCKING = "blocking"


class StepOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class JobOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    UNKNOWN_JOB = "unknownJob"


class Severity(str, Enum):
    INFO = "info"
    SECTION = "section"
    FAILURE = "failure"


@dataclass(frozen=True)
class StepSpec:
    """A single command (step) inside a job recipe."""
    label: str
    command: Tuple[str, ...]
    importance: Importance = Importance.BLOCKING

    # relative to the job's build directory
    cwd: str | None = None

    # relative to the step's working directory; all must exist after exit 0
    artifacts: Tuple[str, ...] = ()

    env: Mapping[str, str] = field(default_factory=dict, hash=False)
    timeout: float | None = None

    # render as a phase marker ("+++") instead of routine progress ("---")
    section: bool = False

    def __post_init__(self) -> None:
        if not self.command:
            raise ValueError(f"step {self.label!r} has an empty command")
        # accept lists from callers
        object.__setattr__(self, "command", tuple(str(c) for c in self.command))
        object.__setattr__(self, "artifacts", tuple(str(a) for a in self.artifacts))
        object.__setattr__(self, "env", _frozen_env(self.env))

    @property
    def blocking(self) -> bool:
        return self.importance is Importance.BLOCKING

    @property
    def severity(self) -> Severity:
        return Severity.SECTION if self.section else Severity.INFO

    @property
    def display_command(self) -> str:
        return " ".join(self.command)


@dataclass(frozen=True)
class JobRecipe:
    """
    A named, immutable build/test configuration.

    `env` is overlaid onto the ambient process environment for every step;
    `clean` purges the job's build directory before the first step runs.
    """
    name: str
    steps: Tuple[StepSpec, ...]
    env: Mapping[str, str] = field(default_factory=dict, hash=False)
    clean: bool = False
    description: str = ""

    # a zero-step recipe is refused by the registry unless this is set
    allow_empty: bool = False

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("job name must be a non-empty string")
        object.__setattr__(self, "steps", tuple(self.steps))
        object.__setattr__(self, "env", _frozen_env(self.env))


@dataclass(frozen=True)
class RunOverrides:
    """Caller-supplied values layered on top of a recipe for one run."""
    root: str | None = None
    build_dir: str | None = None
    env: Mapping[str, str] = field(default_factory=dict, hash=False)

    # None keeps the recipe's own clean flag
    clean: Optional[bool] = None

    # default per-step timeout for steps that don't declare one
    timeout: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "env", _frozen_env(self.env))


@dataclass(frozen=True)
class StepResult:
    label: str
    importance: Importance
    command: Tuple[str, ...]
    outcome: StepOutcome
    exit_code: int | None = None
    duration_ms: int = 0
    stdout: bytes = b""
    stderr: bytes = b""
    error: str | None = None
    cancelled: bool = False
    timed_out: bool = False
    missing_artifacts: Tuple[str, ...] = ()

    @property
    def blocking(self) -> bool:
        return self.importance is Importance.BLOCKING

    @property
    def succeeded(self) -> bool:
        return self.outcome is StepOutcome.SUCCEEDED

    @property
    def failed(self) -> bool:
        return self.outcome is StepOutcome.FAILED

    @classmethod
    def skipped(cls, step: StepSpec) -> "StepResult":
        return cls(
            label=step.label,
            importance=step.importance,
            command=step.command,
            outcome=StepOutcome.SKIPPED,
        )

    def to_dict(self) -> Dict:
        return {
            "label": self.label,
            "importance": self.importance.value,
            "command": list(self.command),
            "outcome": self.outcome.value,
            "exit_code": self.exit_code,
            "duration_ms": self.duration_ms,
            "stdout": self.stdout.decode("utf-8", errors="replace"),
            "stderr": self.stderr.decode("utf-8", errors="replace"),
            "error": self.error,
            "cancelled": self.cancelled,
            "timed_out": self.timed_out,
            "missing_artifacts": list(self.missing_artifacts),
        }


@dataclass(frozen=True)
class JobResult:
    job_name: str
    outcome: JobOutcome
    step_results: Tuple[StepResult, ...] = ()
    total_duration_ms: int = 0
    cancelled: bool = False
    build_dir: str | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is JobOutcome.SUCCEEDED

    @property
    def exit_code(self) -> int:
        """Process exit code for automation: 0 on success, 1 otherwise."""
        return 0 if self.succeeded else 1

    @property
    def failed_step(self) -> StepResult | None:
        """The blocking step that stopped the job, if any."""
        for r in self.step_results:
            if r.failed and r.blocking:
                return r
        return None

    def raise_for_outcome(self) -> None:
        """Raise the matching error for a non-successful result."""
        from .errors import CancelledError, StepFailure, UnknownJobError

        if self.outcome is JobOutcome.UNKNOWN_JOB:
            raise UnknownJobError(self.job_name)
        if self.cancelled:
            raise CancelledError(job=self.job_name, step=self._last_ran_label())
        failed = self.failed_step
        if failed is not None:
            raise StepFailure(
                job=self.job_name,
                step=failed.label,
                cmd=" ".join(failed.command),
                exit_code=failed.exit_code,
                reason=failed.error,
            )
        if not self.succeeded:
            raise StepFailure(job=self.job_name, step=None, cmd="", exit_code=None, reason=self.error)

    def _last_ran_label(self) -> str | None:
        ran = [r for r in self.step_results if r.outcome is not StepOutcome.SKIPPED]
        return ran[-1].label if ran else None

    def to_dict(self) -> Dict:
        return {
            "job_name": self.job_name,
            "outcome": self.outcome.value,
            "exit_code": self.exit_code,
            "total_duration_ms": self.total_duration_ms,
            "cancelled": self.cancelled,
            "build_dir": self.build_dir,
            "error": self.error,
            "steps": [r.to_dict() for r in self.step_results],
        }
