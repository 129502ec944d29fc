# cli.py
from __future__ import annotations

import logging
import signal
import sys
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple

import click

from buildci.config import DEFAULT_WORKFLOW, Settings
from buildci.errors import BuildCIError, ConfigError
from buildci.executor import CancelToken
from buildci.git_facts.git import detect_root
from buildci.model import RunOverrides
from buildci.registry import JobRegistry
from buildci.reporting import BackgroundSink, ConsoleSink, JsonReportSink, LogFileSink, ReportSink
from buildci.runner import JobRunner
from buildci.ui.console import Console, get_console, set_console


def _parse_defines(ctx, param, values: Tuple[str, ...]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for raw in values:
        key, sep, value = raw.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {raw!r}")
        out[key] = value
    return out


def discover_workflow(workflow_arg: str | None, settings: Settings, root: Path) -> Path:
    """
    Find the recipe file: --workflow, then BUILDCI_WORKFLOW, then
    <root>/buildci_workflow.py.

    Raises:
        SystemExit: If the workflow file cannot be found
    """
    console = get_console()
    candidate = workflow_arg or settings.workflow
    if candidate:
        workflow_path = Path(candidate)
        if not workflow_path.exists() and workflow_path.suffix != ".py":
            workflow_path = Path(str(workflow_path) + ".py")
    else:
        workflow_path = root / DEFAULT_WORKFLOW

    if not workflow_path.exists():
        console.print_error(
            "Workflow file not found",
            f"Could not find workflow file: {workflow_path}",
            suggestion=f"Create {DEFAULT_WORKFLOW} in the workspace root or specify one:\n  buildci --workflow my_jobs.py <job>",
        )
        sys.exit(1)
    return workflow_path


@contextmanager
def _cancel_on_signals(token: CancelToken) -> Iterator[None]:
    """Route SIGINT/SIGTERM to the cancel token for the duration of a run."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def handler(signum, frame):
        get_console().print_info(f"\nReceived signal {signum}, cancelling...")
        token.cancel()

    previous = {sig: signal.signal(sig, handler) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield
    finally:
        for sig, old in previous.items():
            signal.signal(sig, old)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.argument("job_name", required=False, metavar="JOB")
@click.option("--root", default=None, type=click.Path(file_okay=False), help="Workspace root (default: git toplevel, else cwd)")
@click.option("--build-dir", default=None, type=click.Path(file_okay=False), help="Build directory (default: <root>/build/<job>)")
@click.option("--workflow", default=None, help=f"Recipe file (default: <root>/{DEFAULT_WORKFLOW})")
@click.option(
    "-D", "--define", "defines",
    multiple=True, metavar="KEY=VALUE", callback=_parse_defines,
    help="Extra environment variable forwarded to every step (repeatable)",
)
@click.option("--clean/--no-clean", default=None, help="Force or suppress purging the build directory first")
@click.option("--timeout", default=None, type=click.FloatRange(min=0, min_open=True), help="Default per-step timeout in seconds")
@click.option("--list", "list_jobs", is_flag=True, default=False, help="List known jobs and exit")
@click.option("--report", default=None, type=click.Path(dir_okay=False), help="Write a JSON report of the run")
@click.option("--log-file", default=None, type=click.Path(dir_okay=False), help="Append a plain-text log of the run")
@click.option("--quiet", is_flag=True, default=False, help="Don't echo captured output of failed steps")
@click.option("--debug", is_flag=True, default=False, help="Enable debug mode (show stack traces and detailed output)")
def main(
    job_name: Optional[str],
    root: Optional[str],
    build_dir: Optional[str],
    workflow: Optional[str],
    defines: Dict[str, str],
    clean: Optional[bool],
    timeout: Optional[float],
    list_jobs: bool,
    report: Optional[str],
    log_file: Optional[str],
    quiet: bool,
    debug: bool,
):
    """buildci: run a named build/test job from a recipe file."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    console = Console(debug=debug, quiet=quiet)
    set_console(console)

    try:
        settings = Settings.from_env()
    except ConfigError as e:
        console.print_error("Invalid configuration", str(e))
        sys.exit(1)

    root_path = Path(root or settings.root or detect_root()).expanduser().resolve()
    workflow_path = discover_workflow(workflow, settings, root_path)

    try:
        registry = JobRegistry.from_workflow(workflow_path)
    except Exception as e:
        console.print_error(
            "Failed to load workflow",
            f"Could not load workflow from {workflow_path}",
            details=[str(e)],
        )
        if debug:
            import traceback
            traceback.print_exc()
        sys.exit(1)

    if list_jobs:
        console.print_jobs(registry.list(), {r.name: r.description for r in registry})
        sys.exit(0)

    if not job_name:
        console.print_error(
            "No job specified",
            "Usage: buildci [OPTIONS] JOB",
            details=["Known jobs:", *registry.list()],
        )
        sys.exit(1)

    sinks: list[ReportSink] = [ConsoleSink(console)]
    if log_file:
        sinks.append(BackgroundSink(LogFileSink(log_file)))
    if report:
        sinks.append(JsonReportSink(report))

    overrides = RunOverrides(
        root=str(root_path),
        build_dir=build_dir,
        env=defines,
        clean=clean,
        timeout=timeout,
    )

    runner = JobRunner(registry, sinks=sinks, settings=settings)
    cancel = CancelToken()
    try:
        with _cancel_on_signals(cancel):
            result = runner.run(job_name, overrides, cancel=cancel)
    except BuildCIError as e:
        console.print_exception(e)
        sys.exit(1)
    finally:
        runner.close()

    sys.exit(result.exit_code)


if __name__ == "__main__":
    main()
