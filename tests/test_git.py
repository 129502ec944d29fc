import shutil
import subprocess

import pytest

from buildci.git_facts.git import detect_root, repo_root

needs_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


@needs_git
def test_detect_root_finds_toplevel_from_subdir(tmp_path):
    subprocess.run(["git", "init", "-q", str(tmp_path)], check=True)
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)

    assert detect_root(nested).resolve() == tmp_path.resolve()
    assert repo_root(nested).resolve() == tmp_path.resolve()


def test_detect_root_falls_back_to_start_dir(tmp_path, monkeypatch):
    # GIT_CEILING_DIRECTORIES stops git from finding a repo above tmp_path
    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path.parent))
    assert detect_root(tmp_path) == tmp_path.resolve()
