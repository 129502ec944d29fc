# buildci_workflow.py
# Build configurations for a CMake/Ninja C++ runtime library.
# Adding a configuration is a data change: append a job here.
from __future__ import annotations

from buildci.dsl import info, job, matrix, step, wf
from buildci.step_workflows.cmake import check_targets, cmake_build, cmake_configure, ninja_log_dump
from buildci.step_workflows.generated import format_check, regenerate_and_diff

RUNTIMES_SOURCE = "../../runtimes"
CACHES = "../../cmake/caches"


def generic_job(name: str, cache: str, *, env=None, defines=None, targets=("check-cxx", "check-cxxabi")):
    """Configure from a cache file, build, run the test targets, dump timings."""
    return job(
        name,
        cmake_configure(RUNTIMES_SOURCE, cache_file=f"{CACHES}/{cache}", defines=defines),
        cmake_build(),
        *check_targets(*targets),
        ninja_log_dump(),
        env=env,
        clean=True,
        description=f"configure with {cache} and run {', '.join(targets)}",
    )


def workflow():
    return wf(
        job(
            "check-format",
            format_check("clang-format", cwd="../.."),
            description="fail if any tracked source needs reformatting",
        ),
        job(
            "check-generated-output",
            *regenerate_and_diff(
                "generated headers",
                ["python3", "utils/generate_headers.py"],
                "include/",
                cwd="../..",
            ),
            info("Listing untracked files", ["git", "status", "--short"], cwd="../.."),
            description="regenerate checked-in files and fail on any diff",
        ),
        matrix("std", ["cxx03", "cxx11", "cxx14", "cxx17", "cxx20", "cxx23", "cxx26"]).jobs(
            lambda std: generic_job(f"generic-{std}", f"Generic-{std}.cmake", env={"CC": "clang", "CXX": "clang++"})
        ),
        generic_job("generic-gcc", "Generic-cxx26.cmake", env={"CC": "gcc", "CXX": "g++"}),
        generic_job("generic-asan", "Generic-asan.cmake"),
        generic_job("generic-ubsan", "Generic-ubsan.cmake"),
        generic_job("generic-no-exceptions", "Generic-no-exceptions.cmake"),
        generic_job(
            "generic-modules",
            "Generic-modules.cmake",
            defines={"LIBCXX_INSTALL_MODULES": True},
        ),
        job(
            "documentation",
            cmake_configure(RUNTIMES_SOURCE, defines={"LLVM_ENABLE_SPHINX": True}),
            cmake_build("docs-libcxx-html"),
            clean=True,
        ),
        job(
            "lint-only",
            step("format-check", ["true"]),
            description="smoke test for the runner itself",
        ),
    )
