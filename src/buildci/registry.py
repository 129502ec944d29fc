# registry.py
from __future__ import annotations

import logging
import runpy
from pathlib import Path
from typing import Dict, Iterable, Iterator, List

from .errors import DuplicateJobError, EmptyJobError, UnknownJobError
from .model import JobRecipe

logger = logging.getLogger(__name__)


class JobRegistry:
    """
    Name -> recipe lookup table.

    Jobs are only ever added; there is no way to replace or remove one, so a
    registry handed to a runner is effectively read-only. Unknown names are
    always rejected with UnknownJobError, never resolved to a default.
    """

    def __init__(self, recipes: Iterable[JobRecipe] = ()):
        # dicts keep insertion order, which is the listing order
        self._jobs: Dict[str, JobRecipe] = {}
        self.register_all(recipes)

    def register(self, recipe: JobRecipe) -> None:
        if not isinstance(recipe, JobRecipe):
            raise TypeError(f"expected JobRecipe, got {type(recipe).__name__}")
        if recipe.name in self._jobs:
            raise DuplicateJobError(recipe.name)
        if not recipe.steps and not recipe.allow_empty:
            raise EmptyJobError(
                f"Job '{recipe.name}' has no steps "
                "(pass allow_empty=True for an intentionally empty job)"
            )
        self._jobs[recipe.name] = recipe
        logger.debug("registered job %s (%d steps)", recipe.name, len(recipe.steps))

    def register_all(self, recipes: Iterable[JobRecipe]) -> None:
        for r in recipes:
            self.register(r)

    def resolve(self, name: str) -> JobRecipe:
        try:
            return self._jobs[name]
        except KeyError:
            raise UnknownJobError(name, tuple(self._jobs)) from None

    def list(self) -> List[str]:
        return list(self._jobs)

    def __contains__(self, name: object) -> bool:
        return name in self._jobs

    def __len__(self) -> int:
        return len(self._jobs)

    def __iter__(self) -> Iterator[JobRecipe]:
        return iter(list(self._jobs.values()))

    @classmethod
    def from_workflow(cls, path: str | Path) -> "JobRegistry":
        return cls(load_workflow(path))


# ----------------------------------------------------------------------
# Workflow loading (local file)
# ----------------------------------------------------------------------

def load_workflow(path: str | Path) -> List[JobRecipe]:
    """
    Load job recipes from a python file.

    The file must define either:
      - workflow() -> List[JobRecipe]
      - JOBS = [JobRecipe, ...]
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")
    if wf_path.suffix != ".py":
        raise ValueError(f"Workflow must be a .py file, got: {wf_path.name}")

    module_name = f"buildci_workflow_{wf_path.stem}"
    globals_dict = runpy.run_path(str(wf_path), run_name=module_name)

    jobs = None
    if "workflow" in globals_dict and callable(globals_dict["workflow"]):
        try:
            jobs = globals_dict["workflow"]()
        except TypeError as e:
            if "positional argument" in str(e):
                raise TypeError(
                    "Your workflow() is being called with arguments (name collision with the helper). "
                    "Use the 'wf' helper instead: `from buildci.dsl import wf, job, step` then "
                    "`def workflow(): return wf(job(...), job(...))`"
                ) from e
            raise
    elif "JOBS" in globals_dict:
        jobs = globals_dict["JOBS"]

    if not isinstance(jobs, list) or not all(isinstance(j, JobRecipe) for j in jobs):
        raise TypeError(
            "Workflow must return/define a List[JobRecipe]. "
            "Define workflow() -> List[JobRecipe] or JOBS = [JobRecipe, ...]."
        )

    logger.debug("loaded %d job(s) from %s", len(jobs), wf_path)
    return jobs
