"""Tests for the mlcpipe command group."""

import textwrap

import pytest
from click.testing import CliRunner

from mlcpipe import cli as cli_mod


def _write(path, body):
    path.write_text(textwrap.dedent(body))
    return path


@pytest.fixture
def runner(monkeypatch):
    # the group must not pick up the real runner's environment
    for var in ("GITHUB_REF", "GITHUB_SHA", "GITHUB_EVENT_NAME", "MLCPIPE_FORCE_BUILD"):
        monkeypatch.delenv(var, raising=False)
    return CliRunner()


@pytest.fixture
def workflow_dir(tmp_path, monkeypatch):
    _write(
        tmp_path / "mlcpipe_workflow.py",
        """
        from mlcpipe.dsl import wf, job, sh
        from mlcpipe.gating import succeeded_or_forced, on_version_tag

        def workflow(trigger):
            return wf(
                job("lint", sh("ok", "true")),
                job("image", sh("ok", "true"), needs=["lint"], gate=succeeded_or_forced("lint")),
                job("release", sh("ok", "true"), needs=["image"], gate=on_version_tag),
            )
        """,
    )
    monkeypatch.chdir(tmp_path)
    return tmp_path


def test_plan_prints_gate_decisions(runner, workflow_dir):
    result = runner.invoke(cli_mod.cli, ["plan", "--ref", "refs/heads/main"])
    assert result.exit_code == 0, result.output
    assert "lint: SUCCESS" in result.output
    assert "release: SKIPPED" in result.output


def test_plan_with_assumed_failure_and_force(runner, workflow_dir):
    result = runner.invoke(
        cli_mod.cli,
        ["plan", "--ref", "refs/heads/main", "--assume", "lint=failure", "--force-build"],
    )
    assert result.exit_code == 0, result.output
    assert "image: SUCCESS" in result.output


def test_plan_rejects_bad_assumption(runner, workflow_dir):
    result = runner.invoke(cli_mod.cli, ["plan", "--ref", "refs/heads/main", "--assume", "lint=green"])
    assert result.exit_code == 2


def test_run_exits_nonzero_on_failed_job(runner, tmp_path, monkeypatch):
    _write(
        tmp_path / "broken_workflow.py",
        """
        from mlcpipe.dsl import wf, job, sh

        def workflow():
            return wf(job("boom", sh("fail", "exit 1")))
        """,
    )
    monkeypatch.chdir(tmp_path)
    result = runner.invoke(cli_mod.cli, ["run", "--ref", "refs/heads/main", "--workflow", "broken_workflow.py"])
    assert result.exit_code == 1
    assert "boom: FAILED" in result.output


def test_missing_workflow_exits_1(runner, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    result = runner.invoke(cli_mod.cli, ["plan", "--ref", "refs/heads/main"])
    assert result.exit_code == 1


def test_blank_ref_is_usage_error(runner, workflow_dir):
    result = runner.invoke(cli_mod.cli, ["plan", "--ref", " "])
    assert result.exit_code == 2


def test_tags(runner):
    result = runner.invoke(
        cli_mod.cli,
        ["tags", "--ref", "refs/tags/v1.2.3", "--image", "r/mlc", "--production"],
    )
    assert result.exit_code == 0
    assert result.output.split() == ["r/mlc:1.2.3-prod"]


def test_group_lists_every_command(runner):
    result = runner.invoke(cli_mod.cli, ["--help"])
    for name in ("run", "plan", "tags", "build", "test", "entrypoint"):
        assert name in result.output


# -------------------------------------------------------------------------
# Workflow discovery
# -------------------------------------------------------------------------

@pytest.mark.parametrize("other", ["demo_workflow.py", "zz_workflow.py"])
def test_default_workflow_wins_regardless_of_name_order(tmp_path, monkeypatch, other):
    (tmp_path / "mlcpipe_workflow.py").write_text("JOBS = []\n")
    (tmp_path / other).write_text("JOBS = []\n")
    monkeypatch.chdir(tmp_path)
    assert cli_mod.discover_workflow(None).name == "mlcpipe_workflow.py"


def test_single_custom_workflow_is_used(tmp_path, monkeypatch):
    (tmp_path / "demo_workflow.py").write_text("JOBS = []\n")
    monkeypatch.chdir(tmp_path)
    assert cli_mod.discover_workflow(None).name == "demo_workflow.py"


def test_several_custom_workflows_are_ambiguous(tmp_path, monkeypatch):
    (tmp_path / "a_workflow.py").write_text("JOBS = []\n")
    (tmp_path / "b_workflow.py").write_text("JOBS = []\n")
    monkeypatch.chdir(tmp_path)
    with pytest.raises(SystemExit) as exc:
        cli_mod.discover_workflow(None)
    assert exc.value.code == 1


def test_plan_marks_jobs_about_to_run_as_running(plain_console, capsys):
    plain_console.print_plan_job("lint", "run", "gate passed")
    plain_console.print_plan_job("image", "failure", "assumed")
    out = capsys.readouterr().out.splitlines()
    assert out[0] == "  ▶ lint: run (gate passed)"
    assert out[1] == "  ✗ image: failure (assumed)"
