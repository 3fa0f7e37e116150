from __future__ import annotations

from pathlib import Path
import io
import tempfile
import threading
import unittest

from qmake_builder.build import BuildEngine, BuildStatus, StepKind, qmake_call
from qmake_builder.command_runner import (
    CommandInterrupted,
    CommandResult,
    CommandRunner,
    RecordingCommandRunner,
)
from qmake_builder.config_loader import BuildConfiguration, ToolConfiguration
from qmake_builder.console import Console


class _InterruptingRunner(CommandRunner):
    def __init__(self) -> None:
        self.commands: list[list[str]] = []

    def run(self, command, **kwargs) -> CommandResult:  # type: ignore[override]
        self.commands.append(list(command))
        raise CommandInterrupted(command)


class _MissingExecutableRunner(CommandRunner):
    def run(self, command, **kwargs) -> CommandResult:  # type: ignore[override]
        raise FileNotFoundError(2, "No such file or directory", command[0])


class BuildEngineTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.workspace = Path(self.temp_dir.name)
        self.source_dir = self.workspace / "src"
        self.source_dir.mkdir()
        (self.source_dir / "app.pro").write_text("TEMPLATE = app\n")
        self.tools = ToolConfiguration(qmake_path="", make_cmd_unix="make", make_cmd_windows="nmake")
        self.log = io.StringIO()
        self.console = Console("debug", stream=self.log)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _engine(self, runner: CommandRunner, *, is_windows: bool = False, tools: ToolConfiguration | None = None) -> BuildEngine:
        return BuildEngine(
            tools=tools or self.tools,
            command_runner=runner,
            workspace=self.workspace,
            console=self.console,
            is_windows=is_windows,
        )

    def test_generator_command_line(self) -> None:
        runner = RecordingCommandRunner()
        job = BuildConfiguration(project_file="src/app.pro", extra_arguments="CONFIG+=debug")
        engine = self._engine(runner)

        plan = engine.plan(job, {})

        project_path = self.workspace / "src" / "app.pro"
        self.assertEqual(plan.steps[0].kind, StepKind.GENERATOR)
        self.assertEqual(plan.steps[0].line, f'qmake -r "{project_path}" CONFIG+=debug')
        self.assertEqual(plan.steps[0].command, ["qmake", "-r", str(project_path), "CONFIG+=debug"])
        self.assertEqual(plan.build_dir, self.source_dir)

    def test_empty_extra_arguments_are_omitted(self) -> None:
        self.assertEqual(qmake_call("qmake", "/p/app.pro", ""), 'qmake -r "/p/app.pro"')

    def test_successful_sequence_without_targets(self) -> None:
        runner = RecordingCommandRunner()
        job = BuildConfiguration(project_file="src/app.pro")
        outcome = self._engine(runner).perform(job, {"HOME": "/home/ci"})

        self.assertTrue(outcome)
        self.assertEqual(outcome.status, BuildStatus.SUCCESS)
        commands = [record.command for record in runner.iter_commands()]
        self.assertEqual(len(commands), 2)
        self.assertEqual(commands[1], ["make"])
        for record in runner.iter_commands():
            self.assertEqual(record.cwd, str(self.source_dir))
            self.assertEqual(record.env, {"HOME": "/home/ci"})

    def test_generator_failure_stops_everything(self) -> None:
        project_path = self.workspace / "src" / "app.pro"
        runner = RecordingCommandRunner(returncodes={f"qmake -r {project_path}": 1})
        job = BuildConfiguration(project_file="src/app.pro", extra_targets=("clean", "install"))

        outcome = self._engine(runner).perform(job, {})

        self.assertFalse(outcome)
        self.assertEqual(outcome.status, BuildStatus.FAILED)
        self.assertEqual(outcome.failed_step.kind, StepKind.GENERATOR)
        self.assertEqual(len(runner.commands), 1)

    def test_failing_target_aborts_remaining_targets(self) -> None:
        runner = RecordingCommandRunner(returncodes={"make clean": 2})
        job = BuildConfiguration(project_file="src/app.pro", extra_targets=("clean", "install"))

        outcome = self._engine(runner).perform(job, {})

        self.assertEqual(outcome.status, BuildStatus.FAILED)
        self.assertEqual(outcome.failed_step.command, ["make", "clean"])
        commands = [record.command for record in runner.iter_commands()]
        self.assertEqual(commands[1:], [["make"], ["make", "clean"]])
        self.assertNotIn(["make", "install"], commands)
        self.assertIn("exit code 2", self.log.getvalue())

    def test_negative_exit_codes_are_failures(self) -> None:
        runner = RecordingCommandRunner(returncodes={"make": -9})
        outcome = self._engine(runner).perform(BuildConfiguration(project_file="src/app.pro"), {})
        self.assertEqual(outcome.status, BuildStatus.FAILED)
        self.assertEqual(outcome.failed_step.kind, StepKind.BUILD)

    def test_targets_run_in_order(self) -> None:
        runner = RecordingCommandRunner()
        job = BuildConfiguration(project_file="src/app.pro", extra_targets=["check", "install"])
        self.assertTrue(self._engine(runner).perform(job, {}))
        commands = [record.command for record in runner.iter_commands()]
        self.assertEqual(commands[2:], [["make", "check"], ["make", "install"]])

    def test_windows_uses_windows_make_command(self) -> None:
        runner = RecordingCommandRunner()
        tools = ToolConfiguration(make_cmd_unix="make", make_cmd_windows="%MAKE_TOOL% /nologo")
        job = BuildConfiguration(project_file="src/app.pro", extra_targets=("install",))
        outcome = self._engine(runner, is_windows=True, tools=tools).perform(job, {"MAKE_TOOL": "jom"})
        self.assertTrue(outcome)
        commands = [record.command for record in runner.iter_commands()]
        self.assertEqual(commands[1], ["jom", "/nologo"])
        self.assertEqual(commands[2], ["jom", "/nologo", "install"])

    def test_variables_are_expanded_in_job_fields(self) -> None:
        runner = RecordingCommandRunner()
        job = BuildConfiguration(
            project_file="$SRC/app.pro",
            extra_arguments="CONFIG+=${MODE}",
            shadow_build_dir="build-%MODE%",
            use_shadow_build=True,
        )
        engine = self._engine(runner)

        plan = engine.plan(job, {"SRC": "src", "MODE": "release"})

        self.assertEqual(plan.build_dir, self.source_dir / "build-release")
        self.assertTrue(plan.build_dir.is_dir())
        self.assertEqual(plan.steps[0].command[-1], "CONFIG+=release")
        self.assertIn("Using shadow build", self.log.getvalue())

    def test_project_path_with_spaces_is_one_argument(self) -> None:
        spaced = self.workspace / "my project"
        spaced.mkdir()
        runner = RecordingCommandRunner()
        job = BuildConfiguration(project_file="my project/app.pro")
        plan = self._engine(runner).plan(job, {})
        self.assertEqual(plan.steps[0].command[2], str(spaced / "app.pro"))

    def test_qtdir_binary_is_used(self) -> None:
        qtdir = self.workspace / "qt"
        (qtdir / "bin").mkdir(parents=True)
        (qtdir / "bin" / "qmake").write_text("")
        runner = RecordingCommandRunner()
        plan = self._engine(runner).plan(BuildConfiguration(project_file="src/app.pro"), {"QTDIR": str(qtdir)})
        self.assertEqual(plan.qmake_binary, f"{qtdir}/bin/qmake")
        self.assertEqual(plan.steps[0].command[0], f"{qtdir}/bin/qmake")

    def test_shadow_directory_failure_runs_nothing(self) -> None:
        (self.source_dir / "blocker").write_text("")
        runner = RecordingCommandRunner()
        job = BuildConfiguration(project_file="src/app.pro", shadow_build_dir="blocker/out", use_shadow_build=True)

        outcome = self._engine(runner).perform(job, {})

        self.assertEqual(outcome.status, BuildStatus.FAILED)
        self.assertEqual(runner.commands, [])
        self.assertIn("build directory", self.log.getvalue())

    def test_non_shadow_build_does_not_create_directory(self) -> None:
        runner = RecordingCommandRunner()
        job = BuildConfiguration(project_file="src/app.pro", shadow_build_dir="build", use_shadow_build=False)
        self.assertTrue(self._engine(runner).perform(job, {}))
        self.assertFalse((self.source_dir / "build").exists())
        self.assertEqual(runner.commands[0].cwd, str(self.source_dir / "build"))

    def test_resolution_error_is_reported_as_failure(self) -> None:
        def exists(path: str) -> bool:
            raise PermissionError("denied")

        runner = RecordingCommandRunner()
        engine = BuildEngine(
            tools=ToolConfiguration(qmake_path="/restricted/qmake"),
            command_runner=runner,
            workspace=self.workspace,
            console=self.console,
            is_windows=False,
            path_exists=exists,
        )
        outcome = engine.perform(BuildConfiguration(project_file="src/app.pro"), {})
        self.assertEqual(outcome.status, BuildStatus.FAILED)
        self.assertIn("/restricted/qmake", self.log.getvalue())
        self.assertEqual(runner.commands, [])

    def test_missing_make_command_is_a_configuration_failure(self) -> None:
        runner = RecordingCommandRunner()
        outcome = self._engine(runner, tools=ToolConfiguration(make_cmd_unix="")).perform(
            BuildConfiguration(project_file="src/app.pro"), {}
        )
        self.assertEqual(outcome.status, BuildStatus.FAILED)
        self.assertEqual(runner.commands, [])

    def test_unbalanced_quotes_fail_without_running(self) -> None:
        runner = RecordingCommandRunner()
        job = BuildConfiguration(project_file="src/app.pro", extra_arguments='DEFINES+="oops')
        outcome = self._engine(runner).perform(job, {})
        self.assertEqual(outcome.status, BuildStatus.FAILED)
        self.assertEqual(runner.commands, [])

    def test_interruption_is_distinct_from_failure(self) -> None:
        runner = _InterruptingRunner()
        job = BuildConfiguration(project_file="src/app.pro", extra_targets=("install",))
        outcome = self._engine(runner).perform(job, {}, cancel_event=threading.Event())
        self.assertEqual(outcome.status, BuildStatus.INTERRUPTED)
        self.assertFalse(outcome)
        self.assertEqual(len(runner.commands), 1)

    def test_launch_errors_are_reported_as_failure(self) -> None:
        outcome = self._engine(_MissingExecutableRunner()).perform(BuildConfiguration(project_file="src/app.pro"), {})
        self.assertEqual(outcome.status, BuildStatus.FAILED)
        self.assertIn("Traceback", self.log.getvalue())

    def test_configuration_is_not_mutated(self) -> None:
        job = BuildConfiguration(project_file="$SRC/app.pro", extra_arguments="CONFIG+=$MODE")
        self._engine(RecordingCommandRunner()).perform(job, {"SRC": "src", "MODE": "debug"})
        self.assertEqual(job.project_file, "$SRC/app.pro")
        self.assertEqual(job.extra_arguments, "CONFIG+=$MODE")

    def test_serialize_plan(self) -> None:
        engine = self._engine(RecordingCommandRunner())
        plan = engine.plan(BuildConfiguration(project_file="src/app.pro", extra_targets=("install",)), {})
        text = engine.serialize_plan(plan)
        self.assertIn('"kind": "target"', text)
        self.assertIn('"qmake": "qmake"', text)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
