# src/buildci/dsl.py
from __future__ import annotations

import shlex
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union

from .model import Importance, JobRecipe, StepSpec

Command = Union[str, Sequence[str]]


def _argv(cmd: Command, extra: Sequence[str]) -> tuple:
    # "cmake -G Ninja" and ["cmake", "-G", "Ninja"] are equivalent
    if isinstance(cmd, str):
        argv = shlex.split(cmd)
    else:
        argv = list(cmd)
    return tuple(argv) + tuple(extra)


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def step(
    label: str,
    cmd: Command,
    *args: str,
    cwd: str | None = None,
    artifacts: Optional[List[str]] = None,
    env: Optional[Dict[str, str]] = None,
    timeout: float | None = None,
    importance: Importance = Importance.BLOCKING,
    section: bool = False,
) -> StepSpec:
    """Create a blocking step: step("Build", "ninja", "-C", "build")."""
    return StepSpec(
        label=label,
        command=_argv(cmd, args),
        importance=importance,
        cwd=cwd,
        artifacts=tuple(artifacts or ()),
        env=env or {},
        timeout=timeout,
        section=section,
    )


def section(label: str, cmd: Command, *args: str, **kw: Any) -> StepSpec:
    """A blocking step rendered as a highlighted phase marker."""
    kw["section"] = True
    return step(label, cmd, *args, **kw)


def info(label: str, cmd: Command, *args: str, **kw: Any) -> StepSpec:
    """An informational step: its failure is recorded but never stops the job."""
    kw["importance"] = Importance.INFORMATIONAL
    return step(label, cmd, *args, **kw)


def sh(label: str, script: str, **kw: Any) -> StepSpec:
    """Run a shell snippet through `sh -c` (pipes, redirects, &&)."""
    return step(label, ["sh", "-c", script], **kw)


# ---------------------------------------------------------------------
# Job helper
# ---------------------------------------------------------------------

def job(
    name: str,
    *steps: StepSpec,  # allow: job("x", step(...), step(...))
    steps_list: Optional[List[StepSpec]] = None,  # allow: job("x", steps_list=[...])
    env: Optional[Dict[str, Any]] = None,
    clean: bool = False,
    description: str = "",
    cwd: str | None = None,  # default cwd applied to steps missing cwd
    allow_empty: bool = False,
) -> JobRecipe:
    steps_final: List[StepSpec] = []
    if steps_list:
        steps_final.extend(list(steps_list))
    steps_final.extend(list(steps))

    if not steps_final and not allow_empty:
        raise ValueError(f"job({name!r}) must have at least one step")

    if cwd is not None:
        steps_final = [s if s.cwd is not None else replace(s, cwd=cwd) for s in steps_final]

    return JobRecipe(
        name=name,
        steps=tuple(steps_final),
        # force values to str for env compatibility
        env={k: str(v) for k, v in (env or {}).items()},
        clean=clean,
        description=description,
        allow_empty=allow_empty,
    )


# ---------------------------------------------------------------------
# Matrix
# ---------------------------------------------------------------------

class Matrix:
    """
    Minimal matrix expander.

    Example:
        matrix("std", ["c++17", "c++20"]).jobs(
            lambda v: job(f"generic-{v}", ...)
        )
    """
    def __init__(self, key: str, values: Iterable[Any]):
        self.key = key
        self.values = list(values)

    def jobs(self, builder: Callable[[Any], JobRecipe]) -> List[JobRecipe]:
        return [builder(v) for v in self.values]


def matrix(key: str, values: Iterable[Any]) -> Matrix:
    return Matrix(key, values)


# ---------------------------------------------------------------------
# Workflow helper (single-file story)
# ---------------------------------------------------------------------

def wf(*jobs: Union[JobRecipe, List[JobRecipe]]) -> List[JobRecipe]:
    """
    Workflow definition helper. Matrix expansions may be passed directly.

        from buildci.dsl import wf, job, step

        def workflow():
            return wf(
                job(...),
                matrix(...).jobs(...),
            )
    """
    out: List[JobRecipe] = []
    for j in jobs:
        if isinstance(j, list):
            out.extend(j)
        else:
            out.append(j)
    return out
