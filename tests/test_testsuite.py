import subprocess

import pytest
from click.testing import CliRunner

from mlcpipe import cli as cli_mod
from mlcpipe import testsuite
from mlcpipe.testsuite import SuiteConfig, Tally, run_suite, run_tests


def _proc(rc=0, stdout=""):
    return subprocess.CompletedProcess([], rc, stdout=stdout, stderr="")


@pytest.fixture
def suite_config(tmp_path):
    return SuiteConfig(source_dir=str(tmp_path))


@pytest.fixture
def fake_python(monkeypatch):
    """Answer `_python` snippets from a table of substring -> CompletedProcess."""
    answers = {}

    def run(config, code, timeout=None):
        for needle, proc in answers.items():
            if needle in code:
                return proc
        return _proc(1)

    monkeypatch.setattr(testsuite, "_python", run)
    return answers


def test_tally_is_immutable_accumulator():
    t0 = Tally()
    t1 = t0.passed_("a").skipped_("b").failed_("c")
    assert (t0.total, t1.total) == (0, 3)
    assert (t1.passed, t1.failed, t1.skipped) == (1, 1, 1)
    assert not t1.ok


def test_import_tests_count(fake_python, suite_config, monkeypatch):
    monkeypatch.delenv("MLC_LLM_SOURCE_DIR", raising=False)
    fake_python["sys.version"] = _proc(0, "3.11.6")
    fake_python["__version__"] = _proc(0, "0.1.dev0\n")
    fake_python["import mlc_llm"] = _proc(0)

    tally = testsuite.run_import_tests(suite_config, Tally())
    assert (tally.passed, tally.failed, tally.skipped, tally.total) == (3, 0, 1, 4)


def test_import_failure_stops_category(fake_python, suite_config):
    fake_python["sys.version"] = _proc(0)
    tally = testsuite.run_import_tests(suite_config, Tally())
    assert (tally.passed, tally.failed) == (1, 1)


def test_library_tests_skip_without_build_dir(suite_config):
    tally = testsuite.run_library_tests(suite_config, Tally())
    assert (tally.skipped, tally.failed) == (1, 0)


def test_library_tests_find_libraries(suite_config):
    suite_config.build_dir.mkdir()
    (suite_config.build_dir / "libtvm_runtime.so").write_text("")
    tally = testsuite.run_library_tests(suite_config, Tally())
    assert (tally.passed, tally.skipped) == (1, 1)


def test_dependency_tests_skip_missing_gpu(monkeypatch, suite_config):
    present = {"cmake", "git", "python", "rustc"}
    monkeypatch.setattr(testsuite.tools, "which", lambda exe: exe if exe in present else None)
    monkeypatch.setattr(testsuite.tools, "tool_version_line", lambda exe, timeout=30: f"{exe} version 3.27.0")
    tally = testsuite.run_dependency_tests(suite_config, Tally())
    # four tools available, cmake meets its minimum, no nvidia-smi
    assert (tally.passed, tally.failed, tally.skipped) == (5, 0, 1)


def test_pytest_command_flags(suite_config):
    suite_config.fail_fast = True
    cmd = testsuite.pytest_command(suite_config, with_coverage=True)
    assert "-x" in cmd
    assert "--cov=mlc_llm" in cmd
    assert any(a.startswith("--junitxml=") for a in cmd)


def test_unknown_selector():
    with pytest.raises(ValueError, match="Unknown test type"):
        testsuite.select("everything")


# -------------------------------------------------------------------------
# Driver
# -------------------------------------------------------------------------

def _category(outcome, ran):
    def category(config, tally):
        ran.append(outcome)
        return getattr(tally, outcome + "_")(outcome)
    return category


def test_fail_fast_stops_after_failed_category(suite_config):
    ran = []
    cats = [("a", _category("passed", ran)), ("b", _category("failed", ran)), ("c", _category("passed", ran))]
    suite_config.fail_fast = True
    tally = run_suite(cats, suite_config)
    assert ran == ["passed", "failed"]
    assert tally.failed == 1


def test_without_fail_fast_every_category_runs(suite_config):
    ran = []
    cats = [("a", _category("failed", ran)), ("b", _category("passed", ran))]
    run_suite(cats, suite_config)
    assert ran == ["failed", "passed"]


def test_report_written(monkeypatch, suite_config):
    monkeypatch.setitem(testsuite.CATEGORIES, "library", lambda c, t: t.failed_("boom"))
    tally = run_tests("library", suite_config)
    report = (suite_config.report_dir / "test_summary.txt").read_text()
    assert not tally.ok
    assert "- Failed: 1" in report
    assert "Test Status: FAIL" in report
    assert suite_config.coverage_dir.is_dir()


def test_cli_exit_code_follows_tally(monkeypatch, tmp_path):
    monkeypatch.setattr(cli_mod, "run_tests", lambda sel, cfg: Tally().passed_("ok"))
    ok = CliRunner().invoke(cli_mod.test_cmd, ["import", "--source-dir", str(tmp_path)])
    assert ok.exit_code == 0

    monkeypatch.setattr(cli_mod, "run_tests", lambda sel, cfg: Tally().failed_("no"))
    bad = CliRunner().invoke(cli_mod.test_cmd, ["import", "--source-dir", str(tmp_path)])
    assert bad.exit_code == 1


def test_cli_rejects_unknown_test_type(tmp_path):
    result = CliRunner().invoke(cli_mod.test_cmd, ["everything", "--source-dir", str(tmp_path)])
    assert result.exit_code == 2


def test_report_keeps_counts_when_a_category_is_interrupted(monkeypatch, suite_config):
    def interrupted(config, tally):
        tally.failed_("half done")
        raise KeyboardInterrupt

    monkeypatch.setitem(testsuite.CATEGORIES, "import", lambda c, t: t.passed_("ok").failed_("broken"))
    monkeypatch.setitem(testsuite.CATEGORIES, "deps", interrupted)
    monkeypatch.setattr(testsuite, "select", lambda sel: [(n, testsuite.CATEGORIES[n]) for n in ("import", "deps")])

    with pytest.raises(KeyboardInterrupt):
        run_tests("all", suite_config)

    report = (suite_config.report_dir / "test_summary.txt").read_text()
    assert "- Passed: 1" in report
    assert "- Failed: 1" in report
    assert "- Aborted: KeyboardInterrupt after category 'import'" in report
    assert "Test Status: FAIL" in report


def test_report_is_fail_when_first_category_raises(monkeypatch, suite_config):
    def crash(config, tally):
        raise RuntimeError("boom")

    monkeypatch.setitem(testsuite.CATEGORIES, "library", crash)
    with pytest.raises(RuntimeError):
        run_tests("library", suite_config)

    report = (suite_config.report_dir / "test_summary.txt").read_text()
    assert "- Total: 0" in report
    assert "before any category finished" in report
    assert "Test Status: FAIL" in report


# -------------------------------------------------------------------------
# pytest and performance categories
# -------------------------------------------------------------------------

@pytest.fixture
def fake_subprocess(monkeypatch):
    """Record subprocess.run argv lists; return codes come from `codes[argv[2]]`."""
    calls = []
    codes = {}

    def run(cmd, **kwargs):
        calls.append(list(cmd))
        return _proc(codes.get(cmd[2] if len(cmd) > 2 else None, 0))

    monkeypatch.setattr(testsuite.subprocess, "run", run)
    return calls, codes


def test_pytest_skips_without_test_dir(fake_python, fake_subprocess, suite_config):
    calls, _ = fake_subprocess
    tally = testsuite.run_pytest_tests(suite_config, Tally())
    assert (tally.skipped, tally.failed) == (1, 0)
    assert calls == []


def test_pytest_install_failure_is_a_failure(fake_python, fake_subprocess, suite_config):
    suite_config.test_dir.mkdir()
    calls, codes = fake_subprocess
    codes["pip"] = 1
    tally = testsuite.run_pytest_tests(suite_config, Tally())
    assert tally.failed == 1
    assert calls[0][1:4] == ["-m", "pip", "install"]
    assert len(calls) == 1


@pytest.mark.parametrize("importable, expect_cov", [(True, True), (False, False)])
def test_pytest_coverage_needs_importable_package(
    fake_python, fake_subprocess, suite_config, importable, expect_cov,
):
    suite_config.test_dir.mkdir()
    suite_config.coverage = True
    fake_python["import pytest"] = _proc(0)
    if importable:
        fake_python["import mlc_llm"] = _proc(0)
    calls, _ = fake_subprocess

    testsuite.run_pytest_tests(suite_config, Tally())
    pytest_cmd = calls[-1]
    assert pytest_cmd[1:3] == ["-m", "pytest"]
    assert ("--cov=mlc_llm" in pytest_cmd) is expect_cov


@pytest.mark.parametrize("rc, passed, failed", [(0, 1, 0), (1, 0, 1)])
def test_pytest_exit_code_decides_result(fake_python, fake_subprocess, suite_config, rc, passed, failed):
    suite_config.test_dir.mkdir()
    fake_python["import pytest"] = _proc(0)
    _, codes = fake_subprocess
    codes["pytest"] = rc
    tally = testsuite.run_pytest_tests(suite_config, Tally())
    assert (tally.passed, tally.failed) == (passed, failed)


def test_performance_reports_import_time(fake_python, suite_config):
    fake_python["import mlc_llm"] = _proc(0, "0.512\n")
    tally = testsuite.run_performance_tests(suite_config, Tally())
    assert tally.passed == 1
    assert tally.records[-1] == ("passed", "MLC-LLM import time: 0.512s")


def test_performance_failure_when_import_fails(fake_python, suite_config):
    tally = testsuite.run_performance_tests(suite_config, Tally())
    assert tally.failed == 1
