"""Tests for JobRegistry and workflow loading."""

import textwrap

import pytest

from buildci.dsl import job, step
from buildci.errors import DuplicateJobError, EmptyJobError, UnknownJobError
from buildci.model import JobRecipe
from buildci.registry import JobRegistry, load_workflow


def test_resolve_returns_exact_registered_recipe():
    a = job("a", step("s", "true"))
    b = job("b", step("s", "true"))
    reg = JobRegistry([a, b])

    assert reg.resolve("a") is a
    assert reg.resolve("b") is b


@pytest.mark.parametrize("name", ["missing", "", "A", "a "])
def test_resolve_unknown_name_raises(name):
    reg = JobRegistry([job("a", step("s", "true"))])

    with pytest.raises(UnknownJobError) as exc:
        reg.resolve(name)

    assert exc.value.name == name
    assert "a" in exc.value.known


def test_duplicate_registration_keeps_original():
    original = job("a", step("first", "true"))
    reg = JobRegistry([original])

    with pytest.raises(DuplicateJobError):
        reg.register(job("a", step("second", "false")))

    assert reg.resolve("a") is original
    assert len(reg) == 1


def test_list_is_registration_order():
    names = ["zeta", "alpha", "mid"]
    reg = JobRegistry(job(n, step("s", "true")) for n in names)

    assert reg.list() == names
    assert [r.name for r in reg] == names
    assert "alpha" in reg
    assert "nope" not in reg


def test_zero_step_job_refused_unless_explicit():
    reg = JobRegistry()

    with pytest.raises(EmptyJobError):
        reg.register(JobRecipe(name="empty", steps=()))

    reg.register(JobRecipe(name="empty", steps=(), allow_empty=True))
    assert reg.resolve("empty").steps == ()


def test_register_rejects_non_recipe():
    with pytest.raises(TypeError):
        JobRegistry().register({"name": "x"})


def _write(tmp_path, body, name="jobs.py"):
    path = tmp_path / name
    path.write_text(textwrap.dedent(body))
    return path


def test_load_workflow_function(tmp_path):
    path = _write(tmp_path, """
        from buildci.dsl import wf, job, step

        def workflow():
            return wf(job("one", step("s", "true")), job("two", step("s", "true")))
    """)

    reg = JobRegistry.from_workflow(path)
    assert reg.list() == ["one", "two"]


def test_load_workflow_jobs_constant(tmp_path):
    path = _write(tmp_path, """
        from buildci.dsl import job, step
        JOBS = [job("only", step("s", "true"))]
    """)

    assert [j.name for j in load_workflow(path)] == ["only"]


def test_load_workflow_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_workflow(tmp_path / "nope.py")


def test_load_workflow_rejects_non_python(tmp_path):
    path = tmp_path / "jobs.yaml"
    path.write_text("jobs: []\n")
    with pytest.raises(ValueError):
        load_workflow(path)


def test_load_workflow_wrong_shape(tmp_path):
    path = _write(tmp_path, "JOBS = ['not', 'recipes']\n")
    with pytest.raises(TypeError):
        load_workflow(path)


def test_load_workflow_duplicate_names(tmp_path):
    path = _write(tmp_path, """
        from buildci.dsl import job, step
        JOBS = [job("x", step("s", "true")), job("x", step("s", "true"))]
    """)
    with pytest.raises(DuplicateJobError):
        JobRegistry.from_workflow(path)


def test_resolved_recipe_env_is_read_only():
    reg = JobRegistry([job("a", step("s", "true", env={"X": "1"}), env={"CC": "clang"})])
    recipe = reg.resolve("a")

    with pytest.raises(TypeError):
        recipe.env["CC"] = "gcc"
    with pytest.raises(TypeError):
        recipe.steps[0].env["X"] = "2"
    assert reg.resolve("a").env == {"CC": "clang"}


def test_steps_and_recipes_are_hashable():
    s1 = step("s", "true", env={"X": "1"})
    s2 = step("s", "true", env={"X": "1"})

    assert s1 == s2
    assert hash(s1) == hash(s2)
    assert len({job("a", s1), job("a", s2)}) == 1
