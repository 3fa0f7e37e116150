"""Core qmake build planning and execution logic."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Mapping, Sequence
import json
import os
import threading
import traceback

from .build_dir import resolve_build_directory
from .command_runner import CommandInterrupted, CommandResult, CommandRunner, tokenize
from .config_loader import BuildConfiguration, ToolConfiguration
from .console import Console
from .errors import BuildDirectoryError, ConfigurationError, ToolResolutionError
from .substitution import expand
from .toolchains import PathExists, local_path_exists, resolve_qmake_binary


class BuildStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    INTERRUPTED = "interrupted"


class StepKind(str, Enum):
    GENERATOR = "generator"
    BUILD = "build"
    TARGET = "target"


@dataclass(slots=True)
class BuildStep:
    kind: StepKind
    description: str
    line: str
    command: Sequence[str]


@dataclass(slots=True)
class ResolvedPlan:
    qmake_binary: str
    project_file: Path
    source_dir: Path
    build_dir: Path
    steps: List[BuildStep]
    environment: Dict[str, str]


@dataclass(slots=True)
class BuildOutcome:
    status: BuildStatus
    results: List[CommandResult] = field(default_factory=list)
    failed_step: BuildStep | None = None
    message: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is BuildStatus.SUCCESS

    def __bool__(self) -> bool:
        return self.succeeded


def qmake_call(qmake_binary: str, project_file: Path | str, extra_arguments: str) -> str:
    call = f'{qmake_binary} -r "{project_file}"'
    if extra_arguments:
        call = f"{call} {extra_arguments}"
    return call


class BuildEngine:
    """Runs qmake, make and any extra make targets for one job.

    The tool configuration is read-only for the lifetime of the engine.
    Engines hold no per-build state, so one instance may serve concurrent
    invocations.
    """

    def __init__(
        self,
        *,
        tools: ToolConfiguration,
        command_runner: CommandRunner,
        workspace: Path,
        console: Console | None = None,
        is_windows: bool | None = None,
        path_exists: PathExists = local_path_exists,
    ) -> None:
        self._tools = tools
        self._command_runner = command_runner
        self._workspace = workspace
        self._console = console or Console()
        self._is_windows = (os.name == "nt") if is_windows is None else is_windows
        self._path_exists = path_exists

    @property
    def console(self) -> Console:
        return self._console

    def plan(self, job: BuildConfiguration, environment: Mapping[str, str]) -> ResolvedPlan:
        """Resolve tool paths and directories and assemble the command lines.

        Creates the shadow build directory when the job asks for one.
        """

        env = dict(environment)
        is_windows = self._is_windows

        qmake_binary = resolve_qmake_binary(
            env,
            self._tools.qmake_path,
            is_windows,
            exists=self._path_exists,
        )

        project_file = self._workspace / expand(job.project_file, env).strip()
        source_dir = project_file.parent
        self._console.info(f"Source directory: {source_dir}")

        build_dir = resolve_build_directory(
            source_dir,
            expand(job.shadow_build_dir, env),
            job.use_shadow_build,
        )
        if job.use_shadow_build:
            self._console.info(f"Using shadow build: {build_dir}")

        call = qmake_call(qmake_binary, project_file, expand(job.extra_arguments, env))
        self._console.info(f"qmake call: {call}")

        make_command = expand(self._tools.make_command(is_windows=is_windows), env).strip()
        if not make_command:
            platform_name = "Windows" if is_windows else "Unix"
            raise ConfigurationError(f"No make command configured for {platform_name}")

        steps = [
            self._step(StepKind.GENERATOR, "Generate makefiles", call),
            self._step(StepKind.BUILD, "Build project", make_command),
        ]
        for target in job.extra_targets:
            steps.append(
                self._step(StepKind.TARGET, f"Build target '{target}'", f"{make_command} {target}")
            )

        return ResolvedPlan(
            qmake_binary=qmake_binary,
            project_file=project_file,
            source_dir=source_dir,
            build_dir=build_dir,
            steps=steps,
            environment=env,
        )

    def execute(self, plan: ResolvedPlan, *, cancel_event: threading.Event | None = None) -> BuildOutcome:
        """Run the plan's steps in order, stopping at the first failure."""

        results: List[CommandResult] = []
        for step in plan.steps:
            self._console.debug(f"{step.description}: {step.line}")
            result = self._command_runner.run(
                step.command,
                cwd=plan.build_dir,
                env=plan.environment,
                note=step.description,
                output=self._console.stream,
                cancel_event=cancel_event,
            )
            results.append(result)
            if not result.succeeded:
                self._console.error(f"{step.description} failed with exit code {result.returncode}")
                return BuildOutcome(
                    status=BuildStatus.FAILED,
                    results=results,
                    failed_step=step,
                    message=f"exit code {result.returncode}",
                )
        return BuildOutcome(status=BuildStatus.SUCCESS, results=results)

    def perform(
        self,
        job: BuildConfiguration,
        environment: Mapping[str, str] | None = None,
        *,
        cancel_event: threading.Event | None = None,
    ) -> BuildOutcome:
        """Plan and execute *job*, converting every failure into an outcome."""

        env = dict(os.environ) if environment is None else dict(environment)
        try:
            plan = self.plan(job, env)
        except ToolResolutionError as exc:
            self._console.error(f"Exception while processing qmake path: {exc.configured_path or '<unset>'}")
            self._console.error(str(exc))
            return BuildOutcome(status=BuildStatus.FAILED, message=str(exc))
        except BuildDirectoryError as exc:
            self._console.error(f"IO error with build directory: {exc.path}")
            self._console.error(str(exc))
            return BuildOutcome(status=BuildStatus.FAILED, message=str(exc))
        except ConfigurationError as exc:
            self._console.error(str(exc))
            return BuildOutcome(status=BuildStatus.FAILED, message=str(exc))
        except ValueError as exc:
            # Unbalanced quotes in a command line.
            self._console.error(f"Invalid command line: {exc}")
            return BuildOutcome(status=BuildStatus.FAILED, message=str(exc))

        try:
            return self.execute(plan, cancel_event=cancel_event)
        except CommandInterrupted as exc:
            self._console.error(str(exc))
            return BuildOutcome(status=BuildStatus.INTERRUPTED, message=str(exc))
        except OSError as exc:
            self._console.error(f"Failed to launch command: {exc}")
            self._console.error(traceback.format_exc().rstrip())
            return BuildOutcome(status=BuildStatus.FAILED, message=str(exc))

    def serialize_plan(self, plan: ResolvedPlan) -> str:
        data = {
            "qmake": plan.qmake_binary,
            "project_file": str(plan.project_file),
            "source_dir": str(plan.source_dir),
            "build_dir": str(plan.build_dir),
            "steps": [
                {
                    "kind": step.kind.value,
                    "description": step.description,
                    "command": list(step.command),
                }
                for step in plan.steps
            ],
        }
        return json.dumps(data, indent=2)

    @staticmethod
    def _step(kind: StepKind, description: str, line: str) -> BuildStep:
        return BuildStep(kind=kind, description=description, line=line, command=tokenize(line))
