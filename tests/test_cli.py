"""Tests for the buildci command line."""
import json
import os
import signal
import threading
import textwrap

import pytest
from click.testing import CliRunner

from buildci.cli import main

WORKFLOW = """
from buildci.dsl import wf, job, step, sh, info

def workflow():
    return wf(
        job("lint-only", step("format-check", ["true"]), description="smoke"),
        job("needs-define", sh("check", 'test "$FOO" = bar')),
        job("broken", step("A", "true"), step("B", "false"), info("C", "true")),
        job("slow", step("long", "sleep 30"), step("after", "true")),
    )
"""


@pytest.fixture
def workspace(tmp_path):
    (tmp_path / "buildci_workflow.py").write_text(textwrap.dedent(WORKFLOW))
    return tmp_path


def _invoke(workspace, *args):
    runner = CliRunner()
    return runner.invoke(main, ["--root", str(workspace), *args])


def test_help_exits_zero():
    result = CliRunner().invoke(main, ["--help"])
    assert result.exit_code == 0
    assert "--build-dir" in result.output


def test_runs_known_job(workspace):
    result = _invoke(workspace, "lint-only")

    assert result.exit_code == 0, result.output
    assert "JOB lint-only: SUCCEEDED" in result.output
    assert (workspace / "build" / "lint-only").is_dir()


def test_unknown_job_exits_one(workspace):
    result = _invoke(workspace, "unknown-xyz")

    assert result.exit_code == 1
    assert "Unknown job" in result.output
    assert not (workspace / "build" / "unknown-xyz").exists()


def test_blocking_failure_exits_one_not_child_code(workspace):
    result = _invoke(workspace, "broken")

    assert result.exit_code == 1
    assert "STEP FAILED: broken/B (exit=1)" in result.output
    assert "skipped: C" in result.output


def test_list_in_registration_order(workspace):
    result = _invoke(workspace, "--list")

    assert result.exit_code == 0
    names = [line.split()[0] for line in result.output.splitlines() if line.strip()]
    assert names == ["lint-only", "needs-define", "broken", "slow"]


def test_missing_job_argument(workspace):
    result = _invoke(workspace)
    assert result.exit_code == 1
    assert "No job specified" in result.output


def test_define_forwards_environment(workspace):
    assert _invoke(workspace, "needs-define").exit_code == 1
    assert _invoke(workspace, "-D", "FOO=bar", "needs-define").exit_code == 0


def test_bad_define_is_usage_error(workspace):
    result = _invoke(workspace, "-D", "FOO", "lint-only")
    assert result.exit_code != 0
    assert "KEY=VALUE" in result.output


def test_build_dir_override(workspace, tmp_path_factory):
    target = tmp_path_factory.mktemp("elsewhere") / "out"
    result = _invoke(workspace, "--build-dir", str(target), "lint-only")

    assert result.exit_code == 0
    assert target.is_dir()


def test_report_and_log_file(workspace):
    report = workspace / "out" / "report.json"
    log = workspace / "out" / "run.log"

    result = _invoke(workspace, "--report", str(report), "--log-file", str(log), "broken")

    assert result.exit_code == 1
    data = json.loads(report.read_text())
    assert data["outcome"] == "failed"
    assert [s["outcome"] for s in data["steps"]] == ["succeeded", "failed", "skipped"]
    assert "!!! step broken/B failed" in log.read_text()


def test_workflow_from_env(workspace, tmp_path_factory, monkeypatch):
    other = tmp_path_factory.mktemp("root")
    monkeypatch.setenv("BUILDCI_WORKFLOW", str(workspace / "buildci_workflow.py"))

    result = CliRunner().invoke(main, ["--root", str(other), "lint-only"])

    assert result.exit_code == 0, result.output
    assert (other / "build" / "lint-only").is_dir()


def test_missing_workflow(tmp_path):
    result = CliRunner().invoke(main, ["--root", str(tmp_path), "lint-only"])
    assert result.exit_code == 1
    assert "Workflow file not found" in result.output


def test_broken_workflow(tmp_path):
    (tmp_path / "buildci_workflow.py").write_text("JOBS = 42\n")
    result = CliRunner().invoke(main, ["--root", str(tmp_path), "lint-only"])
    assert result.exit_code == 1
    assert "Failed to load workflow" in result.output


def test_invalid_setting(workspace, monkeypatch):
    monkeypatch.setenv("BUILDCI_CAPTURE_LIMIT", "many")
    result = _invoke(workspace, "lint-only")
    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


@pytest.mark.parametrize("value", ["-1", "0"])
def test_non_positive_timeout_is_usage_error(workspace, value):
    result = _invoke(workspace, "--timeout", value, "lint-only")

    assert result.exit_code == 2
    assert not (workspace / "build" / "lint-only").exists()


def test_timeout_option_applies_to_steps(workspace):
    result = _invoke(workspace, "--timeout", "0.3", "slow")

    assert result.exit_code == 1
    assert "timed out after 0.3s" in result.output


@pytest.mark.parametrize("sig", [signal.SIGINT, signal.SIGTERM])
def test_signal_cancels_running_job(workspace, sig):
    report = workspace / "report.json"
    before = signal.getsignal(sig)
    timer = threading.Timer(0.5, os.kill, args=(os.getpid(), sig))
    timer.start()
    try:
        result = _invoke(workspace, "--report", str(report), "slow")
    finally:
        timer.cancel()

    assert result.exit_code == 1
    data = json.loads(report.read_text())
    assert data["cancelled"] is True
    assert [s["outcome"] for s in data["steps"]] == ["failed", "skipped"]
    assert signal.getsignal(sig) is before
