import pytest

from buildci.executor import StepExecutor
from buildci.model import RunOverrides
from buildci.registry import JobRegistry
from buildci.reporting import RecordingSink
from buildci.runner import JobRunner


@pytest.fixture
def recorder():
    return RecordingSink()


@pytest.fixture
def executor():
    # short grace so cancel/timeout tests finish quickly
    return StepExecutor(capture_limit=64 * 1024, kill_grace=1.0)


@pytest.fixture
def overrides(tmp_path):
    return RunOverrides(root=str(tmp_path))


@pytest.fixture
def make_runner(recorder, executor):
    def _make(*recipes, sinks=None):
        registry = JobRegistry(recipes)
        return JobRunner(registry, sinks=sinks if sinks is not None else [recorder], executor=executor)
    return _make


@pytest.fixture(autouse=True)
def clean_buildci_env(monkeypatch):
    # don't let the developer's shell leak into tests
    for key in ("BUILDCI_ROOT", "BUILDCI_WORKFLOW", "BUILDCI_CAPTURE_LIMIT", "BUILDCI_KILL_GRACE", "BUILDCI_STEP_TIMEOUT"):
        monkeypatch.delenv(key, raising=False)
