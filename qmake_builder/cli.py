"""Command line interface for the qmake builder."""
from __future__ import annotations

from argparse import ArgumentParser, Namespace
from pathlib import Path
from typing import Iterable, List
import os
import sys

from .build import BuildEngine, BuildStatus
from .command_runner import RecordingCommandRunner, SubprocessCommandRunner
from .config_loader import BuildConfiguration, ConfigurationStore
from .console import Console
from .errors import ConfigurationError
from .validation import Severity, check_project_file, validate_job


EXIT_INTERRUPTED = 130


def _emit_dry_run_output(runner: RecordingCommandRunner, *, workspace: Path) -> None:
    for line in runner.iter_formatted(workspace=workspace):
        print(line)


def _parse_arguments(argv: Iterable[str]) -> Namespace:
    parser = ArgumentParser(prog="qmake-builder", description="Run qmake and make for a Qt project")
    subparsers = parser.add_subparsers(dest="command", required=True)

    build_parser = subparsers.add_parser("build", help="Run qmake, make and extra make targets")
    build_parser.add_argument("job", nargs="?", help="Configured job name (config/jobs/<job>.toml)")
    build_parser.add_argument("--project-file", help="Project file, relative to the workspace")
    build_parser.add_argument("--extra-args", dest="extra_arguments", help="Extra arguments passed to qmake")
    build_parser.add_argument(
        "--target",
        dest="targets",
        action="append",
        default=[],
        help="Extra make target to build after the main build (repeatable)",
    )
    build_parser.add_argument("--shadow-dir", dest="shadow_build_dir", help="Shadow build directory name")
    build_parser.add_argument(
        "--shadow-build",
        dest="use_shadow_build",
        action="store_true",
        default=None,
        help="Create the shadow build directory and build there",
    )
    build_parser.add_argument("--dry-run", action="store_true", help="Print commands without executing them")
    build_parser.add_argument("--verbose", action="store_true", help="Enable verbose output")

    validate_parser = subparsers.add_parser("validate", help="Validate a job's project file setting")
    validate_parser.add_argument("job", nargs="?", help="Configured job name; omit to validate every job")
    validate_parser.add_argument("--project-file", help="Validate a project file path directly")

    configure_parser = subparsers.add_parser("configure", help="Update the global tool settings")
    configure_parser.add_argument("--qmake-path", help="Path to the qmake executable")
    configure_parser.add_argument("--make-cmd-unix", help="Make command used on Unix hosts")
    configure_parser.add_argument("--make-cmd-windows", help="Make command used on Windows hosts")
    configure_parser.add_argument("--show", action="store_true", help="Print the current tool settings")

    subparsers.add_parser("list", help="List configured jobs")

    return parser.parse_args(list(argv))


def main(argv: Iterable[str] | None = None) -> int:
    args = _parse_arguments(argv if argv is not None else sys.argv[1:])
    workspace = Path.cwd()

    if args.command == "build":
        return _handle_build(args, workspace)
    if args.command == "validate":
        return _handle_validate(args, workspace)
    if args.command == "configure":
        return _handle_configure(args, workspace)
    if args.command == "list":
        return _handle_list(args, workspace)
    raise ValueError(f"Unknown command: {args.command}")


def _job_from_args(args: Namespace, store: ConfigurationStore) -> BuildConfiguration:
    overrides = {
        "project_file": args.project_file,
        "extra_arguments": args.extra_arguments,
        "extra_targets": tuple(args.targets) if args.targets else None,
        "shadow_build_dir": args.shadow_build_dir,
        "use_shadow_build": args.use_shadow_build,
    }
    if args.job:
        return store.get_job(args.job).with_overrides(**overrides)
    if not args.project_file:
        raise ConfigurationError("Either a job name or --project-file is required")
    return BuildConfiguration(
        project_file=args.project_file,
        extra_arguments=args.extra_arguments or "",
        extra_targets=tuple(args.targets),
        shadow_build_dir=args.shadow_build_dir or "",
        use_shadow_build=bool(args.use_shadow_build),
    )


def _handle_build(args: Namespace, workspace: Path) -> int:
    store = ConfigurationStore.from_directory(workspace)
    job = _job_from_args(args, store)
    # One sink for messages and child output keeps the build log in order.
    console = Console("debug" if args.verbose else "info", stream=sys.stdout)

    runner: SubprocessCommandRunner | RecordingCommandRunner
    if args.dry_run:
        runner = RecordingCommandRunner()
    else:
        runner = SubprocessCommandRunner()

    engine = BuildEngine(tools=store.tools, command_runner=runner, workspace=workspace, console=console)
    outcome = engine.perform(job, dict(os.environ))

    if args.dry_run and isinstance(runner, RecordingCommandRunner):
        _emit_dry_run_output(runner, workspace=workspace)

    if outcome.status is BuildStatus.INTERRUPTED:
        return EXIT_INTERRUPTED
    return 0 if outcome.succeeded else 1


def _handle_validate(args: Namespace, workspace: Path) -> int:
    if args.project_file is not None:
        result = check_project_file(args.project_file, workspace=workspace)
        _print_verdict(args.project_file, result.severity, result.message)
        return 1 if result.is_error else 0

    store = ConfigurationStore.from_directory(workspace)
    names: List[str] = [args.job] if args.job else sorted(store.list_jobs())
    failed = False
    for name in names:
        report = validate_job(store.get_job(name), workspace=workspace, environment=dict(os.environ))
        _print_verdict(name, report.project_file.severity, report.project_file.message)
        for note in report.notes:
            print(f"  note: {note}")
        failed = failed or report.has_errors
    if failed:
        return 1
    print("Validation successful")
    return 0


def _print_verdict(label: str, severity: Severity, message: str) -> None:
    if severity is Severity.OK:
        print(f"{label}: ok")
    else:
        print(f"{label}: {severity.value}: {message}")


def _handle_configure(args: Namespace, workspace: Path) -> int:
    store = ConfigurationStore.from_directory(workspace)
    changes = {
        "qmake_path": args.qmake_path,
        "make_cmd_unix": args.make_cmd_unix,
        "make_cmd_windows": args.make_cmd_windows,
    }
    if any(value is not None for value in changes.values()):
        store.update_tools(**changes)
        print(f"Tool settings written to {store.tools_path}")
    if args.show:
        tools = store.tools
        print(f"qmake_path = {tools.qmake_path or '<unset>'}")
        print(f"make_cmd_unix = {tools.make_cmd_unix}")
        print(f"make_cmd_windows = {tools.make_cmd_windows}")
    return 0


def _handle_list(args: Namespace, workspace: Path) -> int:
    store = ConfigurationStore.from_directory(workspace)
    for name in sorted(store.list_jobs()):
        job = store.get_job(name)
        print(f"{name}: {job.project_file}")
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
