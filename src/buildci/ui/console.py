"""Console output formatting utilities for buildci."""

from __future__ import annotations

import sys
from typing import IO, Optional

# step markers, as a CI log viewer folds them
INFO_MARKER = "---"
SECTION_MARKER = "+++"
FAILURE_MARKER = "!!!"


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False, quiet: bool = False, stream: Optional[IO[str]] = None):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            quiet: If True, don't echo captured step output on failure
            stream: Output stream; defaults to sys.stdout at write time
        """
        self.debug = debug
        self.quiet = quiet
        self._stream = stream

    @property
    def out(self) -> IO[str]:
        return self._stream if self._stream is not None else sys.stdout

    def _print(self, line: str = "") -> None:
        print(line, file=self.out)

    def print_job_started(self, name: str, build_dir: str, step_count: int) -> None:
        """Print run start information."""
        self._print(f"\nJOB STARTED: {name}")
        self._print(f"Build dir: {build_dir}")
        self._print(f"Steps: {step_count}")

    def print_step(self, label: str, index: int, total: int, section: bool = False) -> None:
        """Print step start message; section steps get the highlighted marker."""
        marker = SECTION_MARKER if section else INFO_MARKER
        self._print(f"{marker} [{index}/{total}] {label}")

    def print_step_ok(self, label: str, duration_ms: int) -> None:
        self._print(f"    ok: {label} ({duration_ms / 1000:.1f}s)")

    def print_step_skipped(self, label: str) -> None:
        self._print(f"    skipped: {label}")

    def print_failure(
        self,
        name: str,
        reason: str,
        exit_code: Optional[int] = None,
        hint: Optional[str] = None,
        is_job: bool = False,
    ) -> None:
        """
        Print failure message.

        The first line is the whole diagnostic; details follow only in debug mode.

        Args:
            name: Job or job/step name
            reason: Failure reason/error message
            exit_code: Optional exit code
            hint: Optional hint for user
            is_job: If True, print "JOB FAILED", otherwise "STEP FAILED"
        """
        prefix = "JOB FAILED" if is_job else "STEP FAILED"
        code = f" (exit={exit_code})" if exit_code is not None else ""
        first = reason.split("\n")[0] if reason else "Unknown error"
        self._print(f"{FAILURE_MARKER} {prefix}: {name}{code}: {first}")
        if hint:
            self._print(f"Hint: {hint}")
        if self.debug and reason and first != reason:
            self._print(f"Error details: {reason}")

    def print_output_tail(self, label: str, data: bytes, max_lines: int = 40) -> None:
        """Echo the tail of a step's captured output."""
        if self.quiet or not data:
            return
        text = data.decode("utf-8", errors="replace").rstrip("\n")
        lines = text.splitlines()
        if len(lines) > max_lines:
            self._print(f"    ... ({len(lines) - max_lines} earlier lines of {label} omitted)")
            lines = lines[-max_lines:]
        for line in lines:
            self._print(f"    | {line}")

    def print_job_result(self, name: str, outcome: str, duration_ms: int, cancelled: bool = False) -> None:
        """Print final result line."""
        suffix = " (cancelled)" if cancelled else ""
        self._print(f"\nJOB {name}: {outcome.upper()}{suffix} in {duration_ms / 1000:.1f}s")

    def print_jobs(self, names: list[str], descriptions: dict[str, str] | None = None) -> None:
        """Print registered job names, one per line."""
        descriptions = descriptions or {}
        for name in names:
            desc = descriptions.get(name)
            self._print(f"{name}  - {desc}" if desc else name)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._print(message)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
