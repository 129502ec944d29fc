"""The shipped buildci_workflow.py must always load."""
from pathlib import Path

from buildci.model import Importance
from buildci.registry import JobRegistry

WORKFLOW = Path(__file__).resolve().parent.parent / "buildci_workflow.py"


def test_shipped_workflow_loads():
    reg = JobRegistry.from_workflow(WORKFLOW)

    names = reg.list()
    assert "lint-only" in names
    assert "generic-cxx17" in names
    assert names.index("check-format") < names.index("generic-cxx03")


def test_generic_jobs_clean_and_end_with_diagnostic():
    reg = JobRegistry.from_workflow(WORKFLOW)

    gen = reg.resolve("generic-cxx20")
    assert gen.clean
    assert gen.env["CXX"] == "clang++"
    assert gen.steps[-1].importance is Importance.INFORMATIONAL
    assert all(s.blocking for s in gen.steps[:-1])
