# executor.py
from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
import time
from pathlib import Path
from typing import IO, List, Mapping, Optional

from .config import DEFAULT_CAPTURE_LIMIT, DEFAULT_KILL_GRACE
from .errors import StepExecutionError
from .model import StepOutcome, StepResult, StepSpec

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.05
_READ_CHUNK = 64 * 1024


class CancelToken:
    """
    External cancellation request shared between a caller and a run.

    Setting it terminates the currently executing step's process group and
    prevents any further step from starting.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)


class _BoundedBuffer:
    """Keeps the last `limit` bytes of a stream and counts what was dropped."""

    def __init__(self, limit: int):
        self.limit = limit
        self._data = bytearray()
        self.dropped = 0

    def write(self, chunk: bytes) -> None:
        self._data += chunk
        excess = len(self._data) - self.limit
        if excess > 0:
            del self._data[:excess]
            self.dropped += excess

    def getvalue(self) -> bytes:
        if not self.dropped:
            return bytes(self._data)
        marker = f"[... {self.dropped} bytes truncated ...]\n".encode()
        return marker + bytes(self._data)


def _drain(stream: IO[bytes], buf: _BoundedBuffer) -> None:
    try:
        for chunk in iter(lambda: stream.read1(_READ_CHUNK), b""):
            buf.write(chunk)
    except (OSError, ValueError):
        # pipe torn down while the process group was being killed
        pass
    finally:
        stream.close()


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class StepExecutor:
    """
    Runs one StepSpec as an external process and classifies the outcome.

    Never raises for a step that ran: non-zero exits, start failures, missing
    artifacts, timeouts and cancellation all come back as a failed StepResult.
    """

    def __init__(
        self,
        capture_limit: int = DEFAULT_CAPTURE_LIMIT,
        kill_grace: float = DEFAULT_KILL_GRACE,
    ):
        self.capture_limit = capture_limit
        self.kill_grace = kill_grace

    # ------------------------------------------------------------------
    # public
    # ------------------------------------------------------------------

    def execute(
        self,
        step: StepSpec,
        env: Mapping[str, str] | None = None,
        cwd: str | Path | None = None,
        *,
        cancel: Optional[CancelToken] = None,
        timeout: float | None = None,
    ) -> StepResult:
        start = time.monotonic()
        workdir = self.resolve_cwd(step, cwd)
        limit = step.timeout if step.timeout is not None else timeout

        full_env = os.environ.copy()
        full_env.update(env or {})
        full_env.update(step.env)

        if cancel is not None and cancel.cancelled:
            return self._result(step, start, StepOutcome.FAILED, error="cancelled before start", cancelled=True)

        try:
            proc = self._spawn(step, workdir, full_env)
        except StepExecutionError as e:
            logger.debug("%s", e)
            return self._result(step, start, StepOutcome.FAILED, error=str(e))

        logger.debug("started pid=%s cwd=%s: %s", proc.pid, workdir, step.display_command)

        out_buf = _BoundedBuffer(self.capture_limit)
        err_buf = _BoundedBuffer(self.capture_limit)
        readers = [
            threading.Thread(target=_drain, args=(proc.stdout, out_buf), daemon=True),
            threading.Thread(target=_drain, args=(proc.stderr, err_buf), daemon=True),
        ]
        for t in readers:
            t.start()

        cancelled, timed_out = self._wait(proc, start, limit, cancel)

        for t in readers:
            # a backgrounded grandchild may hold the pipe open; don't wait forever
            t.join(timeout=self.kill_grace)

        exit_code = proc.returncode
        common = dict(exit_code=exit_code, stdout=out_buf.getvalue(), stderr=err_buf.getvalue())

        if cancelled:
            return self._result(step, start, StepOutcome.FAILED, error="cancelled", cancelled=True, **common)
        if timed_out:
            return self._result(
                step, start, StepOutcome.FAILED,
                error=f"timed out after {limit:g}s", timed_out=True, **common,
            )
        if exit_code != 0:
            return self._result(step, start, StepOutcome.FAILED, error=f"exit code {exit_code}", **common)

        missing = self.missing_artifacts(step, workdir)
        if missing:
            return self._result(
                step, start, StepOutcome.FAILED,
                error=f"missing expected artifacts: {', '.join(missing)}",
                missing_artifacts=tuple(missing), **common,
            )

        return self._result(step, start, StepOutcome.SUCCEEDED, **common)

    @staticmethod
    def resolve_cwd(step: StepSpec, default: str | Path | None) -> Path:
        base = Path(default) if default is not None else Path.cwd()
        if step.cwd is None:
            return base
        return (base / step.cwd).resolve()

    @staticmethod
    def missing_artifacts(step: StepSpec, workdir: Path) -> List[str]:
        return [a for a in step.artifacts if not (workdir / a).exists()]

    # ------------------------------------------------------------------
    # process handling
    # ------------------------------------------------------------------

    def _spawn(self, step: StepSpec, workdir: Path, env: Mapping[str, str]) -> subprocess.Popen:
        if not workdir.is_dir():
            raise StepExecutionError(step.label, step.display_command, f"working directory not found: {workdir}")
        try:
            return subprocess.Popen(
                list(step.command),
                cwd=str(workdir),
                env=dict(env),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                # own process group, so cancel/timeout can take down the whole tree
                start_new_session=True,
            )
        except FileNotFoundError:
            raise StepExecutionError(step.label, step.display_command, f"executable not found: {step.command[0]}") from None
        except PermissionError:
            raise StepExecutionError(step.label, step.display_command, f"permission denied: {step.command[0]}") from None
        except OSError as e:
            raise StepExecutionError(step.label, step.display_command, str(e)) from e

    def _wait(
        self,
        proc: subprocess.Popen,
        start: float,
        limit: float | None,
        cancel: Optional[CancelToken],
    ) -> tuple[bool, bool]:
        """Block until exit; returns (cancelled, timed_out)."""
        deadline = start + limit if limit is not None else None
        while True:
            try:
                proc.wait(timeout=_POLL_INTERVAL)
                return False, False
            except subprocess.TimeoutExpired:
                pass
            if cancel is not None and cancel.cancelled:
                logger.debug("cancel requested, terminating pid=%s", proc.pid)
                self._terminate(proc)
                return True, False
            if deadline is not None and time.monotonic() >= deadline:
                logger.debug("timeout reached, terminating pid=%s", proc.pid)
                self._terminate(proc)
                return False, True

    def _terminate(self, proc: subprocess.Popen) -> None:
        """SIGTERM the process group, SIGKILL it after the grace period."""
        self._signal(proc, signal.SIGTERM)
        try:
            proc.wait(timeout=self.kill_grace)
        except subprocess.TimeoutExpired:
            self._signal(proc, getattr(signal, "SIGKILL", signal.SIGTERM))
            proc.wait()

    @staticmethod
    def _signal(proc: subprocess.Popen, sig: int) -> None:
        if hasattr(os, "killpg"):
            try:
                os.killpg(proc.pid, sig)
            except ProcessLookupError:
                pass
        elif sig == signal.SIGTERM:
            proc.terminate()
        else:
            proc.kill()

    @staticmethod
    def _result(step: StepSpec, start: float, outcome: StepOutcome, **kw) -> StepResult:
        return StepResult(
            label=step.label,
            importance=step.importance,
            command=step.command,
            outcome=outcome,
            duration_ms=_elapsed_ms(start),
            **kw,
        )
