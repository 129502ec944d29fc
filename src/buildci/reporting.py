# reporting.py
from __future__ import annotations

import json
import logging
import queue
import threading
import time
from pathlib import Path
from typing import Any, Iterable, List, Optional, Tuple

from .model import JobOutcome, JobRecipe, JobResult, Severity, StepOutcome, StepResult, StepSpec
from .ui.console import FAILURE_MARKER, INFO_MARKER, SECTION_MARKER, Console, get_console

logger = logging.getLogger(__name__)


class ReportSink:
    """
    Passive observer of a job run.

    Hooks return nothing and cannot influence the run; subclasses override
    only what they need.
    """

    def on_job_start(self, recipe: JobRecipe, build_dir: str) -> None:
        pass

    def on_step_start(self, step: StepSpec, index: int, total: int) -> None:
        pass

    def on_step_end(self, result: StepResult, index: int, total: int) -> None:
        pass

    def on_job_end(self, result: JobResult) -> None:
        pass

    def close(self) -> None:
        pass


class SinkGroup(ReportSink):
    """
    Fans every event out to each attached sink independently.

    A sink that raises is logged and detached for the rest of the run; the
    remaining sinks keep receiving events and the run is unaffected.
    """

    def __init__(self, sinks: Iterable[ReportSink] = ()):
        self.sinks: List[ReportSink] = list(sinks)
        self._broken: set[int] = set()

    def add(self, sink: ReportSink) -> None:
        self.sinks.append(sink)

    def for_run(self) -> SinkGroup:
        """A view over the same sinks with its own detach set, for one run."""
        return SinkGroup(self.sinks)

    def _emit(self, hook: str, *args: Any) -> None:
        for sink in self.sinks:
            if id(sink) in self._broken:
                continue
            try:
                getattr(sink, hook)(*args)
            except Exception:
                logger.exception("report sink %s failed in %s; detaching it", type(sink).__name__, hook)
                self._broken.add(id(sink))

    def on_job_start(self, recipe: JobRecipe, build_dir: str) -> None:
        self._emit("on_job_start", recipe, build_dir)

    def on_step_start(self, step: StepSpec, index: int, total: int) -> None:
        self._emit("on_step_start", step, index, total)

    def on_step_end(self, result: StepResult, index: int, total: int) -> None:
        self._emit("on_step_end", result, index, total)

    def on_job_end(self, result: JobResult) -> None:
        self._emit("on_job_end", result)

    def close(self) -> None:
        self._emit("close")


def _step_name(job: str, label: str) -> str:
    return f"{job}/{label}"


class ConsoleSink(ReportSink):
    """Operator-facing progress via the shared Console."""

    def __init__(self, console: Optional[Console] = None):
        self._console = console
        # per-thread, so parallel runs keep their own job name
        self._local = threading.local()

    @property
    def _current_job(self) -> str:
        return getattr(self._local, "job", "")

    @property
    def console(self) -> Console:
        return self._console or get_console()

    def on_job_start(self, recipe: JobRecipe, build_dir: str) -> None:
        self._local.job = recipe.name
        self.console.print_job_started(recipe.name, build_dir, len(recipe.steps))

    def on_step_start(self, step: StepSpec, index: int, total: int) -> None:
        self.console.print_step(step.label, index, total, section=step.severity is Severity.SECTION)

    def on_step_end(self, result: StepResult, index: int, total: int) -> None:
        c = self.console
        if result.outcome is StepOutcome.SKIPPED:
            c.print_step_skipped(result.label)
            return
        if result.succeeded:
            c.print_step_ok(result.label, result.duration_ms)
            return

        reason = result.error or "failed"
        if not result.blocking:
            reason += " (informational, continuing)"
        c.print_failure(_step_name(self._current_job, result.label), reason, exit_code=result.exit_code)
        c.print_output_tail("stdout", result.stdout)
        c.print_output_tail("stderr", result.stderr)

    def on_job_end(self, result: JobResult) -> None:
        c = self.console
        if result.outcome is JobOutcome.UNKNOWN_JOB:
            c.print_error("Unknown job", result.error or f"Unknown job: {result.job_name}")
            return
        if not result.succeeded:
            failed = result.failed_step
            if failed is not None:
                reason = f"blocking step '{failed.label}' failed"
                code = failed.exit_code
            else:
                reason = result.error or ("cancelled" if result.cancelled else "failed")
                code = None
            c.print_failure(result.job_name, reason, exit_code=code, is_job=True)
        c.print_job_result(result.job_name, result.outcome.value, result.total_duration_ms, result.cancelled)


class LogFileSink(ReportSink):
    """Appends timestamped plain-text progress lines to a file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = self.path.open("a", encoding="utf-8")
        # per-thread, so parallel runs keep their own job name
        self._local = threading.local()

    @property
    def _current_job(self) -> str:
        return getattr(self._local, "job", "")

    def _write(self, line: str) -> None:
        stamp = time.strftime("%Y-%m-%dT%H:%M:%S")
        self._fh.write(f"{stamp} {line}\n")
        self._fh.flush()

    def on_job_start(self, recipe: JobRecipe, build_dir: str) -> None:
        self._local.job = recipe.name
        self._write(f"{SECTION_MARKER} job {recipe.name} started (build_dir={build_dir})")

    def on_step_start(self, step: StepSpec, index: int, total: int) -> None:
        marker = SECTION_MARKER if step.section else INFO_MARKER
        self._write(f"{marker} [{index}/{total}] {step.label}: {step.display_command}")

    def on_step_end(self, result: StepResult, index: int, total: int) -> None:
        if result.failed:
            self._write(
                f"{FAILURE_MARKER} step {_step_name(self._current_job, result.label)} failed "
                f"(exit={result.exit_code}): {result.error}"
            )
        else:
            self._write(f"{INFO_MARKER} step {result.label} {result.outcome.value} ({result.duration_ms}ms)")

    def on_job_end(self, result: JobResult) -> None:
        self._write(f"{SECTION_MARKER} job {result.job_name} {result.outcome.value} ({result.total_duration_ms}ms)")

    def close(self) -> None:
        if not self._fh.closed:
            self._fh.close()


class JsonReportSink(ReportSink):
    """Writes the finalized JobResult as a machine-readable JSON report."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def on_job_end(self, result: JobResult) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(result.to_dict(), indent=2, sort_keys=True), encoding="utf-8")


class BackgroundSink(ReportSink):
    """
    Delivers events to a wrapped sink from a worker thread.

    The run only pays for a queue put; a slow sink (network, slow disk) falls
    behind instead of stalling steps. close() waits up to `flush_timeout` for
    the backlog, then abandons it.
    """

    _STOP = object()

    def __init__(self, sink: ReportSink, flush_timeout: float = 10.0):
        self.sink = sink
        self.flush_timeout = flush_timeout
        self._queue: queue.Queue = queue.Queue()
        self._worker = threading.Thread(target=self._drain, name=f"sink-{type(sink).__name__}", daemon=True)
        self._worker.start()

    def _drain(self) -> None:
        while True:
            item = self._queue.get()
            if item is self._STOP:
                return
            hook, args = item
            try:
                getattr(self.sink, hook)(*args)
            except Exception:
                logger.exception("background sink %s failed in %s", type(self.sink).__name__, hook)

    def on_job_start(self, recipe: JobRecipe, build_dir: str) -> None:
        self._queue.put(("on_job_start", (recipe, build_dir)))

    def on_step_start(self, step: StepSpec, index: int, total: int) -> None:
        self._queue.put(("on_step_start", (step, index, total)))

    def on_step_end(self, result: StepResult, index: int, total: int) -> None:
        self._queue.put(("on_step_end", (result, index, total)))

    def on_job_end(self, result: JobResult) -> None:
        self._queue.put(("on_job_end", (result,)))

    def close(self) -> None:
        self._queue.put(("close", ()))
        self._queue.put(self._STOP)
        self._worker.join(self.flush_timeout)
        if self._worker.is_alive():
            logger.warning("sink %s did not flush within %.1fs", type(self.sink).__name__, self.flush_timeout)


class RecordingSink(ReportSink):
    """Keeps every event in memory, in order."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, Any]] = []

    def on_job_start(self, recipe: JobRecipe, build_dir: str) -> None:
        self.events.append(("job_start", recipe.name))

    def on_step_start(self, step: StepSpec, index: int, total: int) -> None:
        self.events.append(("step_start", step.label))

    def on_step_end(self, result: StepResult, index: int, total: int) -> None:
        self.events.append(("step_end", result))

    def on_job_end(self, result: JobResult) -> None:
        self.events.append(("job_end", result))

    @property
    def step_results(self) -> List[StepResult]:
        return [payload for kind, payload in self.events if kind == "step_end"]
