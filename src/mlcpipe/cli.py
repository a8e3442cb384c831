# cli.py
from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError

from mlcpipe import settings
from mlcpipe.build import BUILD_TYPES, BuildConfig, run_build
from mlcpipe.entrypoint import dispatch
from mlcpipe.errors import CIError
from mlcpipe.model import JobResult
from mlcpipe.runner import load_workflow, plan_pipeline, run_pipeline
from mlcpipe.tags import image_tags, production_tags
from mlcpipe.testsuite import SELECTORS, SuiteConfig, run_tests
from mlcpipe.trigger import Trigger
from mlcpipe.ui.console import Console, get_console, set_console

DEFAULT_WORKFLOW = "mlcpipe_workflow.py"


def _init_console(debug: bool) -> Console:
    current = get_console()
    if debug and not current.debug:
        current = Console(debug=True)
        set_console(current)
    return current


def find_workflow_files() -> list[Path]:
    """
    Find all workflow files in the current directory.

    Returns:
        List of Path objects for workflow files
    """
    workflow_files = []
    current_dir = Path(".")

    default_workflow = current_dir / DEFAULT_WORKFLOW
    if default_workflow.exists():
        workflow_files.append(default_workflow)

    for path in current_dir.glob("*_workflow.py"):
        if path != default_workflow:
            workflow_files.append(path)

    return sorted(workflow_files)


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    Discover workflow file from argument or default.

    Raises:
        SystemExit: If workflow cannot be found or multiple workflows exist
    """
    console = get_console()

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists() and workflow_path.suffix != ".py":
            workflow_path = Path(str(workflow_path) + ".py")
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create a workflow file or specify a different path:\n  mlcpipe run --workflow my_workflow.py",
            )
            sys.exit(1)
        return workflow_path

    workflow_files = find_workflow_files()

    # the default file wins over any other *_workflow.py next to it
    default_workflow = Path(".") / DEFAULT_WORKFLOW
    if default_workflow.exists():
        return default_workflow

    if len(workflow_files) == 0:
        console.print_error(
            "No workflow file found",
            "Could not find any workflow files.",
            details=["Looked for:", f"  {DEFAULT_WORKFLOW}", "  *_workflow.py"],
            suggestion=f"Create a workflow file:\n  {DEFAULT_WORKFLOW}\n\nOr specify a workflow explicitly:\n  mlcpipe run --workflow my_workflow.py",
        )
        sys.exit(1)

    if len(workflow_files) > 1:
        file_list = "\n".join(f"  {f}" for f in workflow_files)
        console.print_error(
            "Multiple workflow files found",
            "Found multiple workflow files. Please specify which one to use:",
            details=[file_list],
            suggestion=f"Specify a workflow explicitly:\n  mlcpipe run --workflow {workflow_files[0]}",
        )
        sys.exit(1)

    return workflow_files[0]


def _trigger(ref: Optional[str], sha: Optional[str], event: Optional[str], force_build: bool) -> Trigger:
    try:
        return Trigger.from_env(
            ref=ref,
            sha=sha,
            event=event,
            force_build=True if force_build else None,
        )
    except ValidationError as e:
        get_console().print_error("Invalid trigger", str(e))
        sys.exit(2)


def _parse_assume(values: tuple[str, ...]) -> dict[str, str]:
    out: dict[str, str] = {}
    for item in values:
        name, sep, result = item.rpartition("=")
        if not sep or not name:
            raise click.BadParameter(f"expected JOB=RESULT, got {item!r}", param_hint="--assume")
        if result not in JobResult.ALL:
            raise click.BadParameter(
                f"result must be one of {', '.join(JobResult.ALL)}, got {result!r}",
                param_hint="--assume",
            )
        out[name] = result
    return out


trigger_options = [
    click.option("--ref", default=None, help="Git ref to evaluate (defaults to $GITHUB_REF or the local checkout)"),
    click.option("--sha", default=None, help="Commit SHA (defaults to $GITHUB_SHA or HEAD)"),
    click.option("--event", default=None, help="Triggering event name (push, pull_request, ...)"),
    click.option("--force-build", is_flag=True, default=False, help="Manual override: run gated jobs even if predecessors failed"),
]


def with_trigger_options(fn):
    for opt in reversed(trigger_options):
        fn = opt(fn)
    return fn


# ----------------------------------------------------------------------
# Group
# ----------------------------------------------------------------------

@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """mlcpipe: MLC-LLM build, test and release pipeline tooling."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option("--workflow", default=None, help=f"Workflow file path (defaults to {DEFAULT_WORKFLOW} if present)")
@with_trigger_options
@click.option("--workers", default=None, type=click.IntRange(min=1), help="Number of parallel workers per stage")
@click.option("--fail-fast/--no-fail-fast", default=False, show_default=True, help="Cancel remaining jobs after the first failure")
@click.option("--print-plan/--no-print-plan", default=True, show_default=True, help="Print gate decisions")
def run(workflow, ref, sha, event, force_build, workers, fail_fast, print_plan):
    """Run the pipeline locally, honouring every job's gate."""
    console = get_console()
    workflow_path = discover_workflow(workflow)
    trigger = _trigger(ref, sha, event, force_build)

    try:
        jobs = load_workflow(workflow_path, trigger)
        console.print_run_started(workflow=workflow_path.name, ref=trigger.ref, job_count=len(jobs))
        results = run_pipeline(
            jobs,
            trigger,
            repo_root=".",
            max_workers=workers,
            fail_fast=fail_fast,
            print_plan=print_plan,
        )
        console.print_results(results)
        if any(v == JobResult.FAILURE for v in results.values()):
            sys.exit(1)
    except KeyboardInterrupt:
        console.print_info("Interrupted by user")
        sys.exit(130)
    except (OSError, ValueError, TypeError, CIError) as e:
        console.print_exception(e)
        sys.exit(1)


@cli.command()
@click.option("--workflow", default=None, help=f"Workflow file path (defaults to {DEFAULT_WORKFLOW} if present)")
@with_trigger_options
@click.option("--assume", multiple=True, metavar="JOB=RESULT", help="Pretend a job ended with RESULT (repeatable)")
@click.option("--platform", default=None, type=click.Choice(["linux", "windows", "darwin"]), help="Host platform to plan for")
def plan(workflow, ref, sha, event, force_build, assume, platform):
    """Show which jobs would run for a trigger, without executing anything."""
    console = get_console()
    workflow_path = discover_workflow(workflow)
    trigger = _trigger(ref, sha, event, force_build)
    assumed = _parse_assume(assume)

    try:
        jobs = load_workflow(workflow_path, trigger)
        console.print_header(f"Plan for {trigger.ref}" + (" (force build)" if trigger.force_build else ""))
        results = plan_pipeline(jobs, trigger, assume=assumed, platform=platform)
        console.print_results(results)
    except (OSError, ValueError, TypeError) as e:
        console.print_exception(e)
        sys.exit(1)


@cli.command()
@with_trigger_options
@click.option("--image", default=None, help="Image name (defaults to $MLCPIPE_REGISTRY/$MLCPIPE_IMAGE_NAME)")
@click.option("--production", is_flag=True, default=False, help="Production image tags instead of development ones")
def tags(ref, sha, event, force_build, image, production):
    """Print the container image tags for a trigger."""
    trigger = _trigger(ref, sha, event, force_build)
    image = image or f"{settings.REGISTRY}/{settings.IMAGE_NAME}"
    for tag in (production_tags if production else image_tags)(trigger, image):
        click.echo(tag)


# ----------------------------------------------------------------------
# Standalone commands (also registered on the group)
# ----------------------------------------------------------------------

@click.command("build")
@click.option("--build-type", default="Release", show_default=True, type=click.Choice(BUILD_TYPES), help="Build type")
@click.option("--jobs", default=None, type=click.IntRange(min=1), help="Number of parallel jobs [default: CPU count]")
@click.option("--source-dir", default=None, type=click.Path(file_okay=False), help=f"Source directory [default: ${settings.SOURCE_DIR_ENV} or current directory]")
@click.option("--build-dir", default=None, type=click.Path(file_okay=False), help="Build directory [default: SOURCE_DIR/build]")
@click.option("--install-prefix", default=None, help="Install prefix [default: $INSTALL_PREFIX or /usr/local]")
@click.option("--skip-deps", is_flag=True, help="Skip dependency checks")
@click.option("--skip-submodules", is_flag=True, help="Skip submodule initialization")
@click.option("--skip-tests", is_flag=True, help="Skip validation tests")
@click.option("--clean", is_flag=True, help="Clean build directory before building")
@click.option("--debug", is_flag=True, default=False, help="Show commands and stack traces")
def build_cmd(build_type, jobs, source_dir, build_dir, install_prefix, skip_deps, skip_submodules, skip_tests, clean, debug):
    """Configure, compile and install MLC-LLM from source."""
    console = _init_console(debug)
    kwargs = dict(
        build_type=build_type,
        build_dir=build_dir,
        skip_deps=skip_deps,
        skip_submodules=skip_submodules,
        skip_tests=skip_tests,
        clean=clean,
    )
    if jobs is not None:
        kwargs["jobs"] = jobs
    if source_dir is not None:
        kwargs["source_dir"] = source_dir
    if install_prefix is not None:
        kwargs["install_prefix"] = install_prefix

    try:
        config = BuildConfig(**kwargs)
    except ValueError as e:
        raise click.UsageError(str(e))

    try:
        run_build(config)
    except KeyboardInterrupt:
        console.print_info("Interrupted by user")
        sys.exit(130)
    except CIError as e:
        console.print_error(e.message, details=[f"{k}={v}" for k, v in e.details.items()])
        sys.exit(1)
    except OSError as e:
        console.print_exception(e)
        sys.exit(1)


@click.command("test")
@click.argument("test_type", default="all", type=click.Choice(SELECTORS))
@click.option("--source-dir", default=None, type=click.Path(file_okay=False), help=f"Source directory [default: ${settings.SOURCE_DIR_ENV} or current directory]")
@click.option("--coverage", is_flag=True, help="Generate coverage reports")
@click.option("--verbose", is_flag=True, help="Verbose output")
@click.option("--fail-fast", is_flag=True, help="Stop on first failing category")
@click.option("--debug", is_flag=True, default=False, help="Show stack traces")
def test_cmd(test_type, source_dir, coverage, verbose, fail_fast, debug):
    """Run MLC-LLM test categories: all, import, deps, library, pytest, performance."""
    console = _init_console(debug)
    kwargs = dict(coverage=coverage, verbose=verbose, fail_fast=fail_fast)
    if source_dir is not None:
        kwargs["source_dir"] = source_dir
    config = SuiteConfig(**kwargs)

    try:
        tally = run_tests(test_type, config)
    except KeyboardInterrupt:
        console.print_info("Interrupted by user")
        sys.exit(130)
    sys.exit(0 if tally.ok else 1)


@click.command(
    "entrypoint",
    context_settings={
        "ignore_unknown_options": True,
        "allow_interspersed_args": False,
        "help_option_names": [],
    },
)
@click.argument("argv", nargs=-1, type=click.UNPROCESSED)
def entrypoint_cmd(argv):
    """Container entrypoint: help, bash, build, test, lint, format, package, serve, chat, or any command."""
    console = get_console()
    try:
        code = dispatch(list(argv))
    except KeyboardInterrupt:
        sys.exit(130)
    except CIError as e:
        console.print_error(e.message, details=[f"{k}={v}" for k, v in e.details.items()])
        sys.exit(1)
    sys.exit(code)


cli.add_command(build_cmd)
cli.add_command(test_cmd)
cli.add_command(entrypoint_cmd)


if __name__ == "__main__":
    cli()
