# step_workflows/cmake.py
from __future__ import annotations

from typing import Dict, List, Optional

from ..dsl import info, section, step
from ..model import StepSpec


# ---------------------------------------------------------------------
# CMake / Ninja step helpers
# ---------------------------------------------------------------------
# Steps run in the job's build directory, so build_dir defaults to ".".

def _define_args(defines: Optional[Dict[str, object]]) -> List[str]:
    out: List[str] = []
    for key, value in (defines or {}).items():
        if isinstance(value, bool):
            value = "ON" if value else "OFF"
        out.append(f"-D{key}={value}")
    return out


def cmake_configure(
    source: str,
    *,
    generator: str = "Ninja",
    build_dir: str = ".",
    cache_file: Optional[str] = None,
    defines: Optional[Dict[str, object]] = None,
    extra_args: Optional[List[str]] = None,
    label: str = "Generating CMake",
) -> StepSpec:
    """Configure step: `cmake -S <source> -B <build_dir> -G <generator> ...`."""
    argv = ["cmake", "-S", source, "-B", build_dir, "-G", generator]
    if cache_file:
        argv += ["-C", cache_file]
    argv += _define_args(defines)
    argv += list(extra_args or [])
    # the generated build file is the proof that configuring worked
    marker = "build.ninja" if generator == "Ninja" else "CMakeCache.txt"
    return section(label, argv, artifacts=[f"{build_dir}/{marker}"])


def cmake_build(
    *targets: str,
    build_dir: str = ".",
    verbose: bool = False,
    label: Optional[str] = None,
) -> StepSpec:
    """Build step: `cmake --build <build_dir> [--target t ...]`."""
    argv = ["cmake", "--build", build_dir]
    if targets:
        argv += ["--target", *targets]
    if verbose:
        argv.append("-v")
    return section(label or f"Building {' '.join(targets) or 'all'}", argv)


def check_targets(
    *targets: str,
    build_dir: str = ".",
    env: Optional[Dict[str, str]] = None,
) -> List[StepSpec]:
    """One section step per test target (e.g. check-cxx, check-cxxabi)."""
    return [
        section(f"Running {t}", ["cmake", "--build", build_dir, "--target", t], env=env)
        for t in targets
    ]


def install_step(build_dir: str = ".", prefix: Optional[str] = None) -> StepSpec:
    argv = ["cmake", "--install", build_dir]
    if prefix:
        argv += ["--prefix", prefix]
    return step("Installing", argv)


def ninja_log_dump(build_dir: str = ".") -> StepSpec:
    """
    Informational diagnostic: print the per-target build timings.

    A missing .ninja_log never fails the job.
    """
    return info("Dumping ninja build log", ["cat", f"{build_dir}/.ninja_log"])
