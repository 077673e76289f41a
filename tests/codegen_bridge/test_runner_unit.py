"""Unit tests for the delegated build runner.

Tests command derivation, log preparation, exit code handling, timeout
enforcement and error reporting of the DelegatedBuildRunner with a
mocked child process.
"""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.codegen_bridge.events.emitter import EventEmitter
from src.codegen_bridge.events.models import EventType
from src.codegen_bridge.host.context import StaticHostContext
from src.codegen_bridge.provisioner.workspace import WorkspaceConfig
from src.codegen_bridge.runner.gradle import (
    DelegatedBuildError,
    DelegatedBuildRunner,
    ExecutionResult,
    build_arguments,
    prepare_logs,
)


def run_async(coro):
    return asyncio.run(coro)


@pytest.fixture
def workspace_dir(tmp_path):
    ws = tmp_path / "build" / "codegen-workspace"
    ws.mkdir(parents=True)
    return ws


@pytest.fixture
def config(workspace_dir, tmp_path, artifact):
    return WorkspaceConfig(
        workspace_dir=workspace_dir,
        source_module_dir=tmp_path / "module",
        target_artifact=artifact,
    )


@pytest.fixture
def runner():
    return DelegatedBuildRunner(host=StaticHostContext(), windows=False)


def _make_mock_process(returncode: int = 0, pid: int = 4242):
    """Build a mock child process that exits immediately."""
    process = AsyncMock()
    process.pid = pid
    process.returncode = returncode
    process.wait = AsyncMock(return_value=returncode)
    process.terminate = MagicMock()
    process.kill = MagicMock()
    return process


def _make_hanging_process(exit_on: str = "terminate"):
    """Build a mock child process that only exits once signalled.

    Args:
        exit_on: "terminate" or "kill", the call that ends the process.
    """
    process = _make_mock_process(returncode=-15)

    async def wait():
        if not getattr(process, exit_on).called:
            await asyncio.sleep(100)
        return -15

    process.wait = wait
    return process


class RecordingEmitter(EventEmitter):
    def __init__(self):
        self.events = []

    async def emit(self, event):
        self.events.append(event)


class TestCommandArguments:
    """The wrapper arguments follow the fixed order."""

    def test_default_arguments(self, config):
        arguments = build_arguments(config, StaticHostContext())

        assert arguments == [
            "build",
            "--console=plain",
            "--stacktrace",
            "--no-daemon",
            f"-PsourceModuleDir={config.source_module_dir}",
            f"-PcodegenPluginsArtifact={config.target_artifact}",
        ]

    def test_clean_prepended_when_host_runs_clean(self, config):
        host = StaticHostContext(task_names=["clean", "build"])

        arguments = build_arguments(config, host)

        assert arguments[:2] == ["clean", "build"]

    def test_clean_not_added_for_other_host_tasks(self, config):
        host = StaticHostContext(task_names=["build", "cleanAll"])

        arguments = build_arguments(config, host)

        assert "clean" not in arguments

    def test_multiple_tasks_keep_their_order(self, config):
        config.task_names = ["generateProto", "launchProtoData"]

        arguments = build_arguments(config, StaticHostContext())

        assert arguments[:2] == ["generateProto", "launchProtoData"]

    def test_dependency_items_joined_with_semicolon(self, config):
        config.extra_dependencies = ["io.spine:spine-money:1.5.0", "org.example:extra-lib:1.0.0"]

        arguments = build_arguments(config, StaticHostContext())

        assert (
            "-PdependencyItems=io.spine:spine-money:1.5.0;org.example:extra-lib:1.0.0"
            in arguments
        )

    def test_dependency_items_omitted_without_dependencies(self, config):
        arguments = build_arguments(config, StaticHostContext())

        assert not any(a.startswith("-PdependencyItems=") for a in arguments)

    def test_forwarded_properties_present_on_host(self, config):
        config.forwarded_properties = ["spineVersion", "missingProperty"]
        host = StaticHostContext(properties={"spineVersion": "1.9.0"})

        arguments = build_arguments(config, host)

        assert "-PspineVersion=1.9.0" in arguments
        assert not any("missingProperty" in a for a in arguments)

    def test_forwarded_properties_precede_bridge_properties(self, config):
        config.forwarded_properties = ["spineVersion"]
        config.extra_dependencies = ["org.example:extra-lib:1.0.0"]
        host = StaticHostContext(properties={"spineVersion": "1.9.0"})

        properties = [a for a in build_arguments(config, host) if a.startswith("-P")]

        assert [p.split("=")[0] for p in properties] == [
            "-PspineVersion",
            "-PsourceModuleDir",
            "-PdependencyItems",
            "-PcodegenPluginsArtifact",
        ]


class TestLauncherSelection:
    """The launcher depends only on the platform flag."""

    def test_posix_launcher(self, config, workspace_dir):
        runner = DelegatedBuildRunner(host=StaticHostContext(), windows=False)
        debug_log, error_log = prepare_logs(workspace_dir)

        spec = runner.build_spec(config, debug_log, error_log)

        assert spec.executable == workspace_dir / "gradlew"
        assert spec.command[0] == str(workspace_dir / "gradlew")

    def test_windows_launcher(self, config, workspace_dir):
        runner = DelegatedBuildRunner(host=StaticHostContext(), windows=True)
        debug_log, error_log = prepare_logs(workspace_dir)

        spec = runner.build_spec(config, debug_log, error_log)

        assert spec.executable == workspace_dir / "gradlew.bat"
        assert spec.working_dir == workspace_dir


class TestLogPreparation:
    """Log files are created or truncated before each run."""

    def test_creates_log_directory_and_files(self, workspace_dir):
        debug_log, error_log = prepare_logs(workspace_dir)

        assert debug_log == workspace_dir / "_out" / "debug-out.txt"
        assert error_log == workspace_dir / "_out" / "error-out.txt"
        assert debug_log.read_bytes() == b""
        assert error_log.read_bytes() == b""

    def test_truncates_previous_content(self, workspace_dir):
        debug_log, error_log = prepare_logs(workspace_dir)
        debug_log.write_text("old output")
        error_log.write_text("old error")

        prepare_logs(workspace_dir)

        assert debug_log.read_text() == ""
        assert error_log.read_text() == ""


class TestSuccessfulExecution:
    """Exit code 0 within the timeout is a success."""

    def test_zero_exit_code_returns_result(self, runner, config):
        process = _make_mock_process(returncode=0)
        with patch(
            "asyncio.create_subprocess_exec", return_value=process
        ) as create:
            result = run_async(runner.run(config))

        assert result.succeeded is True
        assert result.completed is True
        assert result.exit_code == 0
        assert result.duration_seconds >= 0
        create.assert_called_once()

    def test_process_started_in_workspace(self, runner, config):
        process = _make_mock_process(returncode=0)
        with patch(
            "asyncio.create_subprocess_exec", return_value=process
        ) as create:
            run_async(runner.run(config))

        args, kwargs = create.call_args
        assert args[0] == str(config.workspace_dir / "gradlew")
        assert "--no-daemon" in args
        assert kwargs["cwd"] == str(config.workspace_dir)

    def test_log_paths_reported(self, runner, config):
        process = _make_mock_process(returncode=0)
        with patch("asyncio.create_subprocess_exec", return_value=process):
            result = run_async(runner.run(config))

        assert result.debug_log == config.workspace_dir / "_out" / "debug-out.txt"
        assert result.error_log == config.workspace_dir / "_out" / "error-out.txt"


class TestFailedExecution:
    """A non-zero exit code is a failure."""

    def test_nonzero_exit_code_raises(self, runner, config):
        process = _make_mock_process(returncode=1)
        with patch("asyncio.create_subprocess_exec", return_value=process):
            with pytest.raises(DelegatedBuildError) as exc_info:
                run_async(runner.run(config))

        error = exc_info.value
        assert error.exit_code == 1
        assert error.completed is True
        assert error.result.succeeded is False
        assert "Exit code: 1" in str(error)

    def test_exit_code_preserved_for_various_codes(self, runner, config):
        for code in [2, 127, 137, 255]:
            process = _make_mock_process(returncode=code)
            with patch("asyncio.create_subprocess_exec", return_value=process):
                with pytest.raises(DelegatedBuildError) as exc_info:
                    run_async(runner.run(config))

            assert exc_info.value.exit_code == code

    def test_message_points_to_error_log(self, runner, config):
        process = _make_mock_process(returncode=1)
        with patch("asyncio.create_subprocess_exec", return_value=process):
            with pytest.raises(DelegatedBuildError) as exc_info:
                run_async(runner.run(config))

        assert f"See {config.workspace_dir / '_out' / 'error-out.txt'}" in str(
            exc_info.value
        )
        assert exc_info.value.error_output == ""

    def test_message_reports_missing_error_log(self, runner, config):
        process = _make_mock_process(returncode=1)

        async def wait():
            (config.workspace_dir / "_out" / "error-out.txt").unlink()
            return 1

        process.wait = wait
        with patch("asyncio.create_subprocess_exec", return_value=process):
            with pytest.raises(DelegatedBuildError) as exc_info:
                run_async(runner.run(config))

        assert "file was not created" in str(exc_info.value)
        assert exc_info.value.error_output is None


class TestTimeoutEnforcement:
    """A run exceeding the timeout is stopped and reported."""

    def test_timeout_terminates_process(self, runner, config):
        config.max_duration_minutes = 0.001
        process = _make_hanging_process(exit_on="terminate")

        with patch("asyncio.create_subprocess_exec", return_value=process):
            with pytest.raises(DelegatedBuildError) as exc_info:
                run_async(runner.run(config))

        error = exc_info.value
        assert error.completed is False
        assert error.exit_code == -1
        assert "did not complete" in str(error)
        process.terminate.assert_called_once()
        process.kill.assert_not_called()

    def test_timeout_kills_process_ignoring_terminate(self, runner, config):
        config.max_duration_minutes = 0.001
        process = _make_hanging_process(exit_on="kill")

        with patch("asyncio.create_subprocess_exec", return_value=process):
            with patch(
                "src.codegen_bridge.runner.gradle.TERMINATE_GRACE_SECONDS", 0.05
            ):
                with pytest.raises(DelegatedBuildError) as exc_info:
                    run_async(runner.run(config))

        assert exc_info.value.exit_code == -1
        process.terminate.assert_called_once()
        process.kill.assert_called_once()

    def test_process_already_gone_on_terminate(self, runner, config):
        config.max_duration_minutes = 0.001
        process = _make_hanging_process()
        process.terminate = MagicMock(side_effect=ProcessLookupError)

        with patch("asyncio.create_subprocess_exec", return_value=process):
            with pytest.raises(DelegatedBuildError) as exc_info:
                run_async(runner.run(config))

        assert exc_info.value.completed is False
        process.kill.assert_not_called()


class TestOSErrorHandling:
    """A launcher that cannot be started is a failure."""

    def test_missing_launcher_raises(self, runner, config):
        with patch(
            "asyncio.create_subprocess_exec",
            side_effect=FileNotFoundError("gradlew not found"),
        ):
            with pytest.raises(DelegatedBuildError) as exc_info:
                run_async(runner.run(config))

        error = exc_info.value
        assert error.result is None
        assert error.exit_code == -1
        assert "Failed to start" in str(error)
        assert isinstance(error.__cause__, FileNotFoundError)

    def test_permission_denied_raises(self, runner, config):
        with patch(
            "asyncio.create_subprocess_exec",
            side_effect=PermissionError("Permission denied"),
        ):
            with pytest.raises(DelegatedBuildError):
                run_async(runner.run(config))


class TestStageEvents:
    """Every run stage transition is emitted."""

    def test_success_emits_full_stage_sequence(self, config):
        emitter = RecordingEmitter()
        runner = DelegatedBuildRunner(
            host=StaticHostContext(), windows=False, event_emitter=emitter
        )
        process = _make_mock_process(returncode=0)

        with patch("asyncio.create_subprocess_exec", return_value=process):
            run_async(runner.run(config))

        assert all(e.event_type == EventType.STATE_TRANSITION for e in emitter.events)
        assert [e.details["to_stage"] for e in emitter.events] == [
            "logs_prepared",
            "child_launched",
            "completed",
        ]
        assert emitter.events[1].details["pid"] == 4242

    def test_launch_failure_goes_to_failed(self, config):
        emitter = RecordingEmitter()
        runner = DelegatedBuildRunner(
            host=StaticHostContext(), windows=False, event_emitter=emitter
        )

        with patch(
            "asyncio.create_subprocess_exec", side_effect=FileNotFoundError()
        ):
            with pytest.raises(DelegatedBuildError):
                run_async(runner.run(config))

        assert [e.details["to_stage"] for e in emitter.events] == [
            "logs_prepared",
            "failed",
        ]

    def test_timeout_goes_to_timed_out(self, config):
        emitter = RecordingEmitter()
        runner = DelegatedBuildRunner(
            host=StaticHostContext(), windows=False, event_emitter=emitter
        )
        config.max_duration_minutes = 0.001
        process = _make_hanging_process()

        with patch("asyncio.create_subprocess_exec", return_value=process):
            with pytest.raises(DelegatedBuildError):
                run_async(runner.run(config))

        assert emitter.events[-1].details["to_stage"] == "timed_out"

    def test_emitter_failure_does_not_break_run(self, config):
        emitter = RecordingEmitter()
        emitter.emit = AsyncMock(side_effect=RuntimeError("sink down"))
        runner = DelegatedBuildRunner(
            host=StaticHostContext(), windows=False, event_emitter=emitter
        )
        process = _make_mock_process(returncode=0)

        with patch("asyncio.create_subprocess_exec", return_value=process):
            result = run_async(runner.run(config))

        assert result.succeeded is True


class TestExecutionResultDataclass:
    """ExecutionResult fields and success rule."""

    def test_success_requires_completion_and_zero_exit(self):
        logs = (Path("debug-out.txt"), Path("error-out.txt"))

        assert ExecutionResult(0, True, *logs).succeeded is True
        assert ExecutionResult(1, True, *logs).succeeded is False
        assert ExecutionResult(0, False, *logs).succeeded is False
        assert ExecutionResult(-1, False, *logs).succeeded is False

    def test_result_is_immutable(self):
        result = ExecutionResult(0, True, Path("d"), Path("e"))

        with pytest.raises(AttributeError):
            result.exit_code = 1
