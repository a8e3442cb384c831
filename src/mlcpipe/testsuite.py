# testsuite.py
"""
Test-suite driver for MLC-LLM.

Each category is a function ``(config, tally) -> tally``. A Tally is an
immutable accumulator: every check returns a new one, so categories share
no hidden counters. Absent optional capabilities (a GPU driver, a compiled
library, the build directory) are skips, not failures.
"""
from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from . import settings, tools
from .build import LIBRARY_FILES, PYTHON, find_library
from .ui.console import get_console

PASSED = "passed"
FAILED = "failed"
SKIPPED = "skipped"


@dataclass(frozen=True)
class Tally:
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    records: Tuple[Tuple[str, str], ...] = ()

    @property
    def total(self) -> int:
        return self.passed + self.failed + self.skipped

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def passed_(self, message: str) -> "Tally":
        get_console().print_success(message)
        return replace(self, passed=self.passed + 1, records=self.records + ((PASSED, message),))

    def failed_(self, message: str) -> "Tally":
        get_console().print_error(message)
        return replace(self, failed=self.failed + 1, records=self.records + ((FAILED, message),))

    def skipped_(self, message: str) -> "Tally":
        get_console().print_warning(message)
        return replace(self, skipped=self.skipped + 1, records=self.records + ((SKIPPED, message),))


@dataclass
class SuiteConfig:
    source_dir: str = field(default_factory=settings.source_dir)
    coverage: bool = False
    verbose: bool = False
    fail_fast: bool = False

    def __post_init__(self) -> None:
        self.source_dir = str(Path(self.source_dir).expanduser().resolve())

    @property
    def source(self) -> Path:
        return Path(self.source_dir)

    @property
    def test_dir(self) -> Path:
        return self.source / "tests"

    @property
    def coverage_dir(self) -> Path:
        return self.source / "coverage"

    @property
    def report_dir(self) -> Path:
        return self.source / "test-reports"

    @property
    def build_dir(self) -> Path:
        return self.source / "build"


Category = Callable[[SuiteConfig, Tally], Tally]


def _python(config: SuiteConfig, code: str, timeout: float | None = None) -> Optional[subprocess.CompletedProcess]:
    """Run a snippet with the target interpreter; None if it could not be started or timed out."""
    try:
        return subprocess.run(
            [PYTHON, "-c", code],
            cwd=str(config.source),
            env=settings.source_env(config.source_dir),
            capture_output=True,
            text=True,
            timeout=timeout or settings.SMOKE_TIMEOUT,
        )
    except (OSError, subprocess.TimeoutExpired):
        return None


def _succeeded(proc: Optional[subprocess.CompletedProcess]) -> bool:
    return proc is not None and proc.returncode == 0


def mlc_llm_importable(config: SuiteConfig) -> bool:
    return _succeeded(_python(config, "import mlc_llm"))


# ----------------------------------------------------------------------
# Categories
# ----------------------------------------------------------------------

def run_import_tests(config: SuiteConfig, tally: Tally) -> Tally:
    get_console().print_test("Running import tests...")

    if not _succeeded(_python(config, "import sys; print(sys.version)")):
        return tally.failed_("Python is not available")
    tally = tally.passed_("Python is available")

    if not mlc_llm_importable(config):
        return tally.failed_("Failed to import MLC-LLM")
    tally = tally.passed_("MLC-LLM can be imported")

    proc = _python(config, "import mlc_llm; print(getattr(mlc_llm, '__version__', 'unknown'))")
    version = proc.stdout.strip() if _succeeded(proc) else "unknown"
    if version and version != "unknown":
        tally = tally.passed_(f"MLC-LLM version: {version}")
    else:
        tally = tally.skipped_("MLC-LLM version information not available")

    env_source = os.environ.get(settings.SOURCE_DIR_ENV)
    if not env_source:
        tally = tally.skipped_(f"{settings.SOURCE_DIR_ENV} is not set")
    elif Path(env_source).exists():
        tally = tally.passed_(f"{settings.SOURCE_DIR_ENV} exists: {env_source}")
    else:
        tally = tally.failed_(f"{settings.SOURCE_DIR_ENV} {env_source} does not exist")
    return tally


def run_dependency_tests(config: SuiteConfig, tally: Tally) -> Tally:
    get_console().print_test("Running dependency tests...")

    for name, exe in tools.REQUIRED_TOOLS.items():
        if tools.which(exe) is None:
            tally = tally.failed_(f"{name} is not available")
            continue
        line = tools.tool_version_line(exe) or "version unknown"
        tally = tally.passed_(f"{name} is available: {line}")

        required = tools.MIN_VERSIONS.get(name)
        if required:
            found = tools.parse_version(line)
            if found is None:
                tally = tally.failed_(f"Could not parse {name} version from {line!r}")
            elif tools.version_at_least(found, required):
                tally = tally.passed_(f"{name} meets minimum version {required}")
            else:
                tally = tally.failed_(f"{name} {required}+ required, got {'.'.join(map(str, found))}")

    # optional accelerator driver
    if tools.which("nvidia-smi") is None:
        tally = tally.skipped_("NVIDIA drivers not available")
    else:
        try:
            proc = subprocess.run(["nvidia-smi"], capture_output=True, text=True, timeout=settings.SMOKE_TIMEOUT)
        except (OSError, subprocess.TimeoutExpired):
            proc = None
        if proc is not None and proc.returncode == 0:
            tally = tally.passed_("NVIDIA driver is available")
        else:
            tally = tally.skipped_("nvidia-smi present but no usable GPU found")
    return tally


def run_library_tests(config: SuiteConfig, tally: Tally) -> Tally:
    get_console().print_test("Running library tests...")

    if not config.build_dir.is_dir():
        return tally.skipped_("Build directory not found, skipping library tests")

    for label, candidates in LIBRARY_FILES.items():
        found = find_library(config.build_dir, candidates)
        if found:
            tally = tally.passed_(f"Found {label} library: {found}")
        else:
            tally = tally.skipped_(f"No {label} libraries found in build directory")
    return tally


def pytest_command(config: SuiteConfig, with_coverage: bool) -> List[str]:
    cmd = [
        PYTHON, "-m", "pytest",
        str(config.test_dir),
        "-v" if config.verbose else "-q",
        "--tb=short",
        f"--junitxml={config.report_dir / 'junit.xml'}",
    ]
    if config.fail_fast:
        cmd.append("-x")
    if with_coverage:
        cmd.extend([
            "--cov=mlc_llm",
            f"--cov-report=xml:{config.coverage_dir / 'coverage.xml'}",
            f"--cov-report=html:{config.coverage_dir / 'html'}",
            "--cov-report=term",
        ])
    return cmd


def run_pytest_tests(config: SuiteConfig, tally: Tally) -> Tally:
    console = get_console()
    console.print_test("Running pytest tests...")

    if not config.test_dir.is_dir():
        return tally.skipped_("Test directory not found, skipping pytest tests")

    if not _succeeded(_python(config, "import pytest")):
        console.print_warning("pytest not available, installing...")
        packages = ["pytest", "pytest-cov", "pytest-xdist"]
        try:
            proc = subprocess.run([PYTHON, "-m", "pip", "install", *packages])
        except OSError:
            proc = None
        if proc is None or proc.returncode != 0:
            return tally.failed_("Failed to install pytest")

    with_coverage = config.coverage and mlc_llm_importable(config)
    try:
        proc = subprocess.run(
            pytest_command(config, with_coverage),
            cwd=str(config.source),
            env=settings.source_env(config.source_dir),
        )
    except OSError as e:
        return tally.failed_(f"Could not run pytest: {e}")

    if proc.returncode == 0:
        return tally.passed_("Pytest tests passed")
    return tally.failed_("Some pytest tests failed")


_IMPORT_TIMER = """
import time
start = time.time()
import mlc_llm
print(f'{time.time() - start:.3f}')
"""


def run_performance_tests(config: SuiteConfig, tally: Tally) -> Tally:
    get_console().print_test("Running basic performance tests...")

    proc = _python(config, _IMPORT_TIMER)
    if _succeeded(proc) and proc.stdout.strip():
        return tally.passed_(f"MLC-LLM import time: {proc.stdout.strip()}s")
    return tally.failed_("Failed to measure import time")


CATEGORIES: Dict[str, Category] = {
    "import": run_import_tests,
    "deps": run_dependency_tests,
    "library": run_library_tests,
    "pytest": run_pytest_tests,
    "performance": run_performance_tests,
}

SELECTORS = ("all", *CATEGORIES)


def select(selector: str) -> List[Tuple[str, Category]]:
    if selector == "all":
        return list(CATEGORIES.items())
    if selector not in CATEGORIES:
        raise ValueError(f"Unknown test type: {selector!r}; expected one of {', '.join(SELECTORS)}")
    return [(selector, CATEGORIES[selector])]


# ----------------------------------------------------------------------
# Driver
# ----------------------------------------------------------------------

def setup_environment(config: SuiteConfig) -> None:
    get_console().print_info("Setting up test environment...")
    config.report_dir.mkdir(parents=True, exist_ok=True)
    config.coverage_dir.mkdir(parents=True, exist_ok=True)


def run_suite(
    categories: Sequence[Tuple[str, Category]],
    config: SuiteConfig,
    tally: Optional[Tally] = None,
    on_category: Optional[Callable[[str, Tally], None]] = None,
) -> Tally:
    """
    Run categories in order; with fail_fast, stop after the first one that records a failure.

    on_category(name, tally) is called after each finished category, so a caller
    still holds the latest counts if a later category raises.
    """
    console = get_console()
    tally = tally or Tally()
    for name, category in categories:
        before = tally.failed
        tally = category(config, tally)
        if on_category is not None:
            on_category(name, tally)
        if config.fail_fast and tally.failed > before:
            console.print_warning(f"Stopping after failed category '{name}' (--fail-fast)")
            break
    return tally


def render_report(
    tally: Tally,
    config: SuiteConfig,
    now: Optional[datetime] = None,
    aborted: Optional[str] = None,
) -> str:
    now = now or datetime.now()
    python_version = tools.tool_version_line(PYTHON) or "unknown"
    status = "PASS" if tally.ok and aborted is None else "FAIL"
    return (
        "MLC-LLM Test Summary\n"
        "===================\n"
        "\n"
        "Test Results:\n"
        f"- Passed: {tally.passed}\n"
        f"- Failed: {tally.failed}\n"
        f"- Skipped: {tally.skipped}\n"
        f"- Total: {tally.total}\n"
        + (f"- Aborted: {aborted}\n" if aborted else "")
        + "\n"
        "Test Environment:\n"
        f"- Source Directory: {config.source_dir}\n"
        f"- Test Directory: {config.test_dir}\n"
        f"- Python Version: {python_version}\n"
        f"- Date: {now.isoformat(timespec='seconds')}\n"
        "\n"
        f"Test Status: {status}\n"
    )


def write_report(tally: Tally, config: SuiteConfig, aborted: Optional[str] = None) -> Path:
    console = get_console()
    console.print_info("Generating test report...")
    config.report_dir.mkdir(parents=True, exist_ok=True)
    report_file = config.report_dir / "test_summary.txt"
    text = render_report(tally, config, aborted=aborted)
    report_file.write_text(text, encoding="utf-8")
    console.print_plain(text)
    console.print_info(f"Test report generated: {report_file}")
    return report_file


def run_tests(selector: str, config: SuiteConfig) -> Tally:
    """
    Select, run, and always report. Returns the final tally.

    If a category raises (KeyboardInterrupt included), the report is written
    from the categories finished so far, marked FAIL, and the error propagates.
    """
    console = get_console()
    categories = select(selector)

    console.print_info("Starting MLC-LLM test suite...")
    console.print_info(f"Test type: {selector}")
    console.print_info(f"Source directory: {config.source_dir}")

    setup_environment(config)
    latest = {"tally": Tally(), "category": None}

    def record(name: str, tally: Tally) -> None:
        latest["tally"] = tally
        latest["category"] = name

    try:
        tally = run_suite(categories, config, on_category=record)
    except BaseException as e:
        done = latest["category"]
        where = f"after category '{done}'" if done else "before any category finished"
        write_report(latest["tally"], config, aborted=f"{type(e).__name__} {where}")
        raise
    write_report(tally, config)

    if tally.ok:
        console.print_success("All tests completed successfully!")
    else:
        console.print_error("Some tests failed. Check the test report for details.")
    return tally
