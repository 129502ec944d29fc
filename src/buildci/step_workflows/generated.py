# step_workflows/generated.py
from __future__ import annotations

from typing import List, Optional

from ..dsl import Command, sh, step
from ..model import StepSpec


def regenerate_and_diff(
    name: str,
    regenerate: Command,
    *paths: str,
    cwd: Optional[str] = None,
) -> List[StepSpec]:
    """
    Check that checked-in generated files are up to date.

    Two ordinary blocking steps: the first rewrites the files in place, the
    second fails if that changed anything under `paths`. The working tree is
    left regenerated, so the diff printed on failure is the fix to commit.
    """
    diff_argv = ["git", "diff", "--exit-code", "--"] + (list(paths) or ["."])
    return [
        step(f"Regenerating {name}", regenerate, cwd=cwd),
        step(f"Checking {name} is up to date", diff_argv, cwd=cwd),
    ]


def format_check(tool: str = "clang-format", *files: str, cwd: Optional[str] = None) -> StepSpec:
    """Blocking check that `tool --dry-run --Werror` reports no changes."""
    if not files:
        # let git pick the tracked sources
        script = f"git ls-files '*.cpp' '*.h' | xargs -r {tool} --dry-run --Werror"
        return sh("Checking formatting", script, cwd=cwd)
    return step("Checking formatting", [tool, "--dry-run", "--Werror", *files], cwd=cwd)
