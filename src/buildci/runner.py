# runner.py
from __future__ import annotations

import logging
import os
import shutil
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from .config import DEFAULT_BUILD_SUBDIR, Settings
from .errors import UnknownJobError, WorkspaceError
from .executor import CancelToken, StepExecutor
from .git_facts.git import detect_root
from .model import (
    JobOutcome,
    JobRecipe,
    JobResult,
    RunOverrides,
    StepResult,
)
from .registry import JobRegistry
from .reporting import ReportSink, SinkGroup

logger = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class JobRunner:
    """
    Resolves a job from the registry and runs its steps in declared order.

    The runner holds no per-run state, so concurrent run() calls for different
    jobs (each with its own build directory) are safe.
    """

    def __init__(
        self,
        registry: JobRegistry,
        sinks: Iterable[ReportSink] = (),
        executor: Optional[StepExecutor] = None,
        settings: Optional[Settings] = None,
    ):
        self.registry = registry
        self.settings = settings or Settings()
        self.executor = executor or StepExecutor(
            capture_limit=self.settings.capture_limit,
            kill_grace=self.settings.kill_grace,
        )
        self.sinks = SinkGroup(sinks)

    # ------------------------------------------------------------------
    # paths & environment
    # ------------------------------------------------------------------

    def root_for(self, overrides: RunOverrides) -> Path:
        root = overrides.root or self.settings.root
        if root:
            return Path(root).expanduser().resolve()
        return detect_root()

    def build_dir_for(self, name: str, overrides: RunOverrides, root: Path) -> Path:
        if overrides.build_dir:
            return Path(overrides.build_dir).expanduser().resolve()
        return (root / DEFAULT_BUILD_SUBDIR / name).resolve()

    @staticmethod
    def job_env(recipe: JobRecipe, overrides: RunOverrides, root: Path, build_dir: Path) -> Dict[str, str]:
        """Recipe env, then caller overrides; later keys win."""
        env = {
            "BUILDCI_JOB": recipe.name,
            "BUILDCI_ROOT": str(root),
            "BUILDCI_BUILD_DIR": str(build_dir),
        }
        env.update(recipe.env)
        env.update({k: str(v) for k, v in overrides.env.items()})
        return env

    @staticmethod
    def prepare_build_dir(recipe: JobRecipe, build_dir: Path, root: Path, clean: bool) -> None:
        """Optionally purge, then create, the job's build directory."""
        if clean:
            # never purge the workspace (or anything containing it)
            if build_dir == root or build_dir in root.parents or build_dir == Path(build_dir.anchor):
                raise WorkspaceError(recipe.name, str(build_dir), "refusing to clean the workspace root")
            try:
                shutil.rmtree(build_dir)
                logger.debug("[%s] cleaned %s", recipe.name, build_dir)
            except FileNotFoundError:
                pass
            except OSError as e:
                raise WorkspaceError(recipe.name, str(build_dir), str(e)) from e
        try:
            build_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WorkspaceError(recipe.name, str(build_dir), str(e)) from e

    # ------------------------------------------------------------------
    # running
    # ------------------------------------------------------------------

    def run(
        self,
        job_name: str,
        overrides: Optional[RunOverrides] = None,
        cancel: Optional[CancelToken] = None,
    ) -> JobResult:
        overrides = overrides or RunOverrides()
        start = time.monotonic()
        sinks = self.sinks.for_run()

        try:
            recipe = self.registry.resolve(job_name)
        except UnknownJobError as e:
            logger.debug("%s", e)
            result = JobResult(job_name=job_name, outcome=JobOutcome.UNKNOWN_JOB, error=str(e))
            sinks.on_job_end(result)
            return result

        root = self.root_for(overrides)
        build_dir = self.build_dir_for(recipe.name, overrides, root)
        clean = recipe.clean if overrides.clean is None else overrides.clean

        try:
            self.prepare_build_dir(recipe, build_dir, root, clean)
        except WorkspaceError as e:
            logger.error("%s", e)
            result = JobResult(
                job_name=recipe.name,
                outcome=JobOutcome.FAILED,
                total_duration_ms=_elapsed_ms(start),
                build_dir=str(build_dir),
                error=str(e),
            )
            sinks.on_job_end(result)
            return result

        sinks.on_job_start(recipe, str(build_dir))
        env = self.job_env(recipe, overrides, root, build_dir)
        timeout = overrides.timeout if overrides.timeout is not None else self.settings.step_timeout

        results: List[StepResult] = []
        stopped = False
        cancelled = False
        total = len(recipe.steps)

        for index, step in enumerate(recipe.steps, start=1):
            if not stopped and cancel is not None and cancel.cancelled:
                cancelled = stopped = True

            if stopped:
                skipped = StepResult.skipped(step)
                results.append(skipped)
                sinks.on_step_end(skipped, index, total)
                continue

            sinks.on_step_start(step, index, total)
            result = self.executor.execute(step, env, build_dir, cancel=cancel, timeout=timeout)
            results.append(result)
            sinks.on_step_end(result, index, total)

            if result.cancelled:
                cancelled = stopped = True
            elif result.failed and result.blocking:
                logger.debug("[%s] blocking step '%s' failed, stopping", recipe.name, step.label)
                stopped = True

        blocking_failed = any(r.failed and r.blocking for r in results)
        outcome = JobOutcome.FAILED if (cancelled or blocking_failed) else JobOutcome.SUCCEEDED

        job_result = JobResult(
            job_name=recipe.name,
            outcome=outcome,
            step_results=tuple(results),
            total_duration_ms=_elapsed_ms(start),
            cancelled=cancelled,
            build_dir=str(build_dir),
            error="cancelled" if cancelled else None,
        )
        sinks.on_job_end(job_result)
        return job_result

    def run_many(
        self,
        names: Sequence[str],
        overrides: Optional[RunOverrides] = None,
        cancel: Optional[CancelToken] = None,
        max_workers: int | None = None,
    ) -> List[JobResult]:
        """
        Run independent jobs in parallel, each in its own build directory.

        Results come back in the order the names were given.
        """
        overrides = overrides or RunOverrides()
        names = list(names)
        if len(set(names)) != len(names):
            dupes = sorted({n for n in names if names.count(n) > 1})
            raise ValueError(f"Job requested more than once (would share a build dir): {dupes}")
        if overrides.build_dir and len(names) > 1:
            raise ValueError("--build-dir cannot be shared by several jobs running in parallel")

        if max_workers is None:
            c = os.cpu_count() or 2
            max_workers = max(1, c - 1)

        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = [pool.submit(self.run, name, overrides, cancel) for name in names]
            return [f.result() for f in futures]

    def close(self) -> None:
        self.sinks.close()
