from .dsl import job, step, section, info, sh, matrix, wf
from .errors import (
    BuildCIError,
    CancelledError,
    DuplicateJobError,
    StepExecutionError,
    StepFailure,
    UnknownJobError,
)
from .executor import CancelToken, StepExecutor
from .model import Importance, JobOutcome, JobRecipe, JobResult, RunOverrides, StepOutcome, StepResult, StepSpec
from .registry import JobRegistry, load_workflow
from .runner import JobRunner

__all__ = [
    "job", "step", "section", "info", "sh", "matrix", "wf",
    "BuildCIError", "CancelledError", "DuplicateJobError", "StepExecutionError", "StepFailure", "UnknownJobError",
    "CancelToken", "StepExecutor",
    "Importance", "JobOutcome", "JobRecipe", "JobResult", "RunOverrides", "StepOutcome", "StepResult", "StepSpec",
    "JobRegistry", "load_workflow", "JobRunner",
]
