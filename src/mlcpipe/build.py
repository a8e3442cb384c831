# build.py
"""
Build driver for MLC-LLM.

Runs the phases clean → dependency check → submodules → configure →
compile → install → smoke test. Configure, compile and install abort the
build on failure. Smoke-test problems are reported as warnings only.
"""
from __future__ import annotations

import os
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from . import settings, tools
from .errors import BuildError
from .git_facts.git import has_submodules
from .ui.console import get_console

BUILD_TYPES = ("Debug", "Release", "RelWithDebInfo")

DEFAULT_CMAKE_OPTIONS = (
    "-DUSE_CUDA=ON",
    "-DUSE_VULKAN=ON",
    "-DUSE_METAL=ON",
    "-DUSE_OPENCL=ON",
)

PYTHON = "python"

# One of each must be present in the build dir after a successful build.
LIBRARY_FILES: Dict[str, Sequence[str]] = {
    "MLC-LLM": ("libmlc_llm.so", "libmlc_llm.dylib", "mlc_llm.dll"),
    "TVM runtime": ("libtvm_runtime.so", "libtvm_runtime.dylib", "tvm_runtime.dll"),
}


def default_jobs() -> int:
    return os.cpu_count() or 4


@dataclass
class BuildConfig:
    build_type: str = "Release"
    jobs: int = field(default_factory=default_jobs)
    source_dir: str = field(default_factory=settings.source_dir)
    build_dir: Optional[str] = None            # defaults to <source_dir>/build
    install_prefix: str = field(default_factory=lambda: settings.INSTALL_PREFIX)
    skip_deps: bool = False
    skip_submodules: bool = False
    skip_tests: bool = False
    clean: bool = False
    cmake_options: List[str] = field(default_factory=lambda: list(DEFAULT_CMAKE_OPTIONS))

    def __post_init__(self) -> None:
        if self.build_type not in BUILD_TYPES:
            raise ValueError(
                f"Invalid build type {self.build_type!r}; expected one of {', '.join(BUILD_TYPES)}"
            )
        if int(self.jobs) < 1:
            raise ValueError(f"jobs must be >= 1, got {self.jobs}")
        self.jobs = int(self.jobs)
        self.source_dir = str(Path(self.source_dir).expanduser().resolve())
        if self.build_dir is None:
            self.build_dir = str(Path(self.source_dir) / "build")
        else:
            self.build_dir = str(Path(self.build_dir).expanduser().resolve())

    @property
    def source(self) -> Path:
        return Path(self.source_dir)

    @property
    def build(self) -> Path:
        return Path(self.build_dir)


@dataclass
class BuildResult:
    phases: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


# ----------------------------------------------------------------------
# Phases
# ----------------------------------------------------------------------

def _run(cmd: List[str], *, cwd: Path, phase: str, env: Optional[Dict[str, str]] = None) -> None:
    console = get_console()
    console.print_debug(f"$ {' '.join(cmd)}  (cwd={cwd})")
    try:
        proc = subprocess.run(cmd, cwd=str(cwd), env=env)
    except FileNotFoundError as e:
        raise BuildError(phase, f"{cmd[0]} not found: {e}") from e
    if proc.returncode != 0:
        raise BuildError(phase, f"{' '.join(cmd)} exited with {proc.returncode}", exit_code=proc.returncode)


def clean_build_dir(config: BuildConfig) -> None:
    console = get_console()
    console.print_info("Cleaning build directory...")
    if config.build.exists():
        shutil.rmtree(config.build)


def check_dependencies(config: BuildConfig) -> None:
    console = get_console()
    console.print_info("Checking build dependencies...")
    tools.check_required(tools.REQUIRED_TOOLS, tools.MIN_VERSIONS)
    console.print_success("All dependencies satisfied")


def init_submodules(config: BuildConfig) -> None:
    console = get_console()
    console.print_info("Initializing git submodules...")
    if has_submodules(config.source):
        _run(["git", "submodule", "update", "--init", "--recursive"], cwd=config.source, phase="submodules")
        console.print_success("Submodules initialized")
    else:
        console.print_warning("No .gitmodules found, skipping submodule initialization")


def configure_build(config: BuildConfig) -> None:
    console = get_console()
    console.print_info("Configuring build...")
    config.build.mkdir(parents=True, exist_ok=True)

    gen = config.source / "cmake" / "gen_cmake_config.py"
    if gen.is_file():
        console.print_info("Generating CMake configuration...")
        _run([PYTHON, str(gen)], cwd=config.build, phase="configure")

    _run(
        [
            "cmake",
            f"-DCMAKE_BUILD_TYPE={config.build_type}",
            f"-DCMAKE_INSTALL_PREFIX={config.install_prefix}",
            *config.cmake_options,
            str(config.source),
        ],
        cwd=config.build,
        phase="configure",
    )
    console.print_success("Build configured")


def compile_project(config: BuildConfig) -> None:
    console = get_console()
    console.print_info(f"Building MLC-LLM with {config.jobs} cores...")
    _run(
        ["cmake", "--build", ".", "--parallel", str(config.jobs), "--config", config.build_type],
        cwd=config.build,
        phase="compile",
    )
    console.print_success("Build completed")


def install_python_package(config: BuildConfig) -> None:
    console = get_console()
    console.print_info("Installing Python package...")
    env = settings.source_env(config.source_dir)
    try:
        _run([PYTHON, "-m", "pip", "install", "-e", "."], cwd=config.source, phase="install", env=env)
    except BuildError:
        console.print_warning("Development install failed, trying regular install...")
        _run([PYTHON, "-m", "pip", "install", "."], cwd=config.source, phase="install", env=env)
    console.print_success("Python package installed")


def find_library(build_dir: Path, candidates: Sequence[str]) -> Optional[str]:
    for name in candidates:
        if (build_dir / name).is_file():
            return name
    return None


def smoke_test(config: BuildConfig) -> List[str]:
    """Post-build validation. Never raises; returns the warnings it reported."""
    console = get_console()
    console.print_info("Running basic validation tests...")
    warnings: List[str] = []

    code = "import mlc_llm; print(getattr(mlc_llm, '__version__', 'unknown'))"
    try:
        proc = subprocess.run(
            [PYTHON, "-c", code],
            cwd=str(config.source),
            env=settings.source_env(config.source_dir),
            capture_output=True,
            text=True,
            timeout=settings.SMOKE_TIMEOUT,
        )
        if proc.returncode == 0:
            console.print_success(f"MLC-LLM version: {proc.stdout.strip() or 'unknown'}")
        else:
            warnings.append("Failed to import mlc_llm")
    except subprocess.TimeoutExpired:
        warnings.append(f"Importing mlc_llm timed out after {settings.SMOKE_TIMEOUT}s")
    except OSError as e:
        warnings.append(f"Could not run {PYTHON}: {e}")

    for label, candidates in LIBRARY_FILES.items():
        if find_library(config.build, candidates):
            console.print_success(f"{label} libraries found")
        else:
            warnings.append(f"{label} libraries not found in expected location")

    for w in warnings:
        console.print_warning(w)
    if not warnings:
        console.print_success("Basic validation completed")
    return warnings


# ----------------------------------------------------------------------
# Driver
# ----------------------------------------------------------------------

def run_build(config: BuildConfig) -> BuildResult:
    """Run every enabled phase in order. Raises ToolError / BuildError on fatal failure."""
    console = get_console()
    result = BuildResult()

    console.print_info("Starting MLC-LLM build process...")
    console.print_info(f"Source directory: {config.source_dir}")
    console.print_info(f"Build directory: {config.build_dir}")
    console.print_info(f"Build type: {config.build_type}")
    console.print_info(f"Parallel jobs: {config.jobs}")

    if config.clean:
        clean_build_dir(config)
        result.phases.append("clean")

    if not config.skip_deps:
        check_dependencies(config)
        result.phases.append("deps")

    if not config.skip_submodules:
        init_submodules(config)
        result.phases.append("submodules")

    configure_build(config)
    result.phases.append("configure")
    compile_project(config)
    result.phases.append("compile")
    install_python_package(config)
    result.phases.append("install")

    if not config.skip_tests:
        result.warnings = smoke_test(config)
        result.phases.append("smoke")

    console.print_success("MLC-LLM build completed successfully!")
    console.print_info("You can now use MLC-LLM:")
    console.print_info("  - Python: python -c 'import mlc_llm'")
    console.print_info("  - CLI: python -m mlc_llm --help")
    return result
