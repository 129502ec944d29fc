"""Tests for StepExecutor (spawns real POSIX processes)."""

import os
import threading

from buildci.dsl import info, sh, step
from buildci.executor import CancelToken, StepExecutor
from buildci.model import StepOutcome


def test_success_captures_output(executor, tmp_path):
    r = executor.execute(sh("hello", "echo hello; echo oops >&2"), cwd=tmp_path)

    assert r.outcome is StepOutcome.SUCCEEDED
    assert r.exit_code == 0
    assert r.stdout == b"hello\n"
    assert r.stderr == b"oops\n"
    assert r.duration_ms >= 0


def test_nonzero_exit_is_data_not_exception(executor, tmp_path):
    r = executor.execute(sh("fail", "exit 3"), cwd=tmp_path)

    assert r.outcome is StepOutcome.FAILED
    assert r.exit_code == 3
    assert not r.cancelled and not r.timed_out


def test_start_failure_is_distinct_from_nonzero_exit(executor, tmp_path):
    r = executor.execute(step("ghost", ["buildci-definitely-not-a-real-binary"]), cwd=tmp_path)

    assert r.outcome is StepOutcome.FAILED
    assert r.exit_code is None
    assert "executable not found" in r.error


def test_missing_working_directory(executor, tmp_path):
    r = executor.execute(step("s", "true", cwd="does-not-exist"), cwd=tmp_path)

    assert r.outcome is StepOutcome.FAILED
    assert r.exit_code is None
    assert "working directory not found" in r.error


def test_step_cwd_is_relative_to_default(executor, tmp_path):
    (tmp_path / "sub").mkdir()
    r = executor.execute(step("where", "pwd -P", cwd="sub"), cwd=tmp_path)

    assert os.path.realpath(r.stdout.decode().strip()) == os.path.realpath(tmp_path / "sub")


def test_missing_artifact_forces_failure(executor, tmp_path):
    r = executor.execute(step("claims success", "true", artifacts=["out.bin"]), cwd=tmp_path)

    assert r.exit_code == 0
    assert r.outcome is StepOutcome.FAILED
    assert r.missing_artifacts == ("out.bin",)


def test_present_artifact_succeeds(executor, tmp_path):
    r = executor.execute(sh("produce", "touch out.bin", artifacts=["out.bin"]), cwd=tmp_path)

    assert r.outcome is StepOutcome.SUCCEEDED
    assert r.missing_artifacts == ()


def test_env_layering_later_wins(executor, tmp_path, monkeypatch):
    monkeypatch.setenv("BUILDCI_TEST_AMBIENT", "ambient")
    monkeypatch.setenv("BUILDCI_TEST_SHADOWED", "ambient")
    s = sh(
        "env",
        'echo "$BUILDCI_TEST_AMBIENT $BUILDCI_TEST_SHADOWED $BUILDCI_TEST_STEP"',
        env={"BUILDCI_TEST_STEP": "step"},
    )

    r = executor.execute(s, env={"BUILDCI_TEST_SHADOWED": "job", "BUILDCI_TEST_STEP": "job"}, cwd=tmp_path)

    assert r.stdout.decode().split() == ["ambient", "job", "step"]
    # overlays never leak into this process
    assert "BUILDCI_TEST_STEP" not in os.environ
    assert os.environ["BUILDCI_TEST_SHADOWED"] == "ambient"


def test_output_is_bounded_with_marker(tmp_path):
    small = StepExecutor(capture_limit=10, kill_grace=1.0)
    r = small.execute(sh("noisy", "printf 0123456789abcdef"), cwd=tmp_path)

    assert r.stdout == b"[... 6 bytes truncated ...]\n6789abcdef"


def test_timeout_terminates_step(executor, tmp_path):
    r = executor.execute(step("slow", "sleep 30", timeout=0.3), cwd=tmp_path)

    assert r.outcome is StepOutcome.FAILED
    assert r.timed_out
    assert not r.cancelled
    assert r.duration_ms < 10_000


def test_default_timeout_applies_when_step_has_none(executor, tmp_path):
    r = executor.execute(step("slow", "sleep 30"), cwd=tmp_path, timeout=0.3)
    assert r.timed_out


def test_cancel_terminates_process_group(executor, tmp_path):
    token = CancelToken()
    timer = threading.Timer(0.3, token.cancel)
    timer.start()
    try:
        # the grandchild sleep shares the process group and must die too
        r = executor.execute(sh("tree", "sleep 30 & wait"), cwd=tmp_path, cancel=token)
    finally:
        timer.cancel()

    assert r.outcome is StepOutcome.FAILED
    assert r.cancelled
    assert r.duration_ms < 10_000


def test_already_cancelled_does_not_start(executor, tmp_path):
    token = CancelToken()
    token.cancel()
    marker = tmp_path / "ran"

    r = executor.execute(sh("never", f"touch {marker}"), cwd=tmp_path, cancel=token)

    assert r.cancelled
    assert r.exit_code is None
    assert not marker.exists()


def test_informational_importance_is_carried(executor, tmp_path):
    r = executor.execute(info("diag", "false"), cwd=tmp_path)
    assert r.failed and not r.blocking
