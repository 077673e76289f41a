"""Delegated Gradle build execution.

Runs the workspace Gradle wrapper as a child process with the
configured tasks, waits for it within the timeout and maps its exit
status to success or a DelegatedBuildError.

Requirements:
- Truncate `_out/debug-out.txt` and `_out/error-out.txt` before each run
- Prepend `clean` when the host build runs its own `clean` task
- Run without a daemon, with plain console and full stack traces
- Forward root project properties that exist; skip the missing ones
- Pass `sourceModuleDir`, `dependencyItems` and `codegenPluginsArtifact`
- Stop the child process when the timeout elapses
- Echo the error log into the host log on failure
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from src.codegen_bridge.events.emitter import EventEmitter
from src.codegen_bridge.events.models import BuildEvent, EventType
from src.codegen_bridge.host.context import HostContext
from src.codegen_bridge.provisioner.workspace import WorkspaceConfig
from src.codegen_bridge.runner.process import (
    ChildProcessSpec,
    is_windows,
    launcher_path,
)
from src.codegen_bridge.state.machine import RunStateMachine
from src.codegen_bridge.state.models import RunStage

logger = logging.getLogger(__name__)

LOG_DIR_NAME = "_out"
DEBUG_LOG_NAME = "debug-out.txt"
ERROR_LOG_NAME = "error-out.txt"

CLEAN_TASK = "clean"
FIXED_FLAGS = ("--console=plain", "--stacktrace", "--no-daemon")
DEPENDENCY_DELIMITER = ";"

SOURCE_MODULE_DIR_PROPERTY = "sourceModuleDir"
DEPENDENCY_ITEMS_PROPERTY = "dependencyItems"
PLUGINS_ARTIFACT_PROPERTY = "codegenPluginsArtifact"

TIMEOUT_EXIT_CODE = -1
TERMINATE_GRACE_SECONDS = 10
RUN_TASK = "applyCodegenPlugins"


@dataclass(frozen=True)
class ExecutionResult:
    """Result of a delegated build execution.

    Attributes:
        exit_code: Process exit code (-1 when the wait timed out).
        completed: False if the timeout elapsed before the process exited.
        debug_log: File holding the process standard output.
        error_log: File holding the process standard error.
        duration_seconds: Wall-clock execution time.
    """

    exit_code: int
    completed: bool
    debug_log: Path
    error_log: Path
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.completed and self.exit_code == 0


class DelegatedBuildError(Exception):
    """Raised when the delegated build fails or times out.

    Attributes:
        result: The execution result, when the process was started.
        exit_code: Process exit code (-1 for timeout and launch errors).
        completed: Whether the wait completed within the timeout.
        error_log: Path of the captured error log.
        error_output: Content of the error log, if it exists.
    """

    def __init__(
        self,
        message: str,
        error_log: Path,
        result: Optional[ExecutionResult] = None,
        error_output: Optional[str] = None,
    ):
        self.result = result
        self.exit_code = result.exit_code if result else TIMEOUT_EXIT_CODE
        self.completed = result.completed if result else False
        self.error_log = error_log
        self.error_output = error_output
        super().__init__(message)


def prepare_logs(workspace_dir: Path) -> Tuple[Path, Path]:
    """Create the log directory and truncate both log files.

    The logs live in `_out` rather than `build` because the child's own
    `clean` would otherwise try to delete files this process holds open.

    Returns:
        Tuple of (debug_log, error_log).
    """
    log_dir = workspace_dir / LOG_DIR_NAME
    log_dir.mkdir(parents=True, exist_ok=True)
    debug_log = log_dir / DEBUG_LOG_NAME
    error_log = log_dir / ERROR_LOG_NAME
    for log_file in (debug_log, error_log):
        log_file.write_bytes(b"")
    return debug_log, error_log


def build_arguments(config: WorkspaceConfig, host: HostContext) -> List[str]:
    """Build the wrapper arguments: tasks, fixed flags and properties.

    Args:
        config: Configuration of the run.
        host: Read-only view of the host build.

    Returns:
        Arguments following the launcher path.
    """
    arguments: List[str] = []
    if host.has_task_named(CLEAN_TASK):
        arguments.append(CLEAN_TASK)
    arguments.extend(config.task_names)
    arguments.extend(FIXED_FLAGS)

    for name in config.forwarded_properties:
        value = host.property(name)
        if value is not None:
            arguments.append(f"-P{name}={value}")

    arguments.append(
        f"-P{SOURCE_MODULE_DIR_PROPERTY}={config.source_module_dir}"
    )
    if config.extra_dependencies:
        items = DEPENDENCY_DELIMITER.join(config.extra_dependencies)
        arguments.append(f"-P{DEPENDENCY_ITEMS_PROPERTY}={items}")
    arguments.append(f"-P{PLUGINS_ARTIFACT_PROPERTY}={config.target_artifact}")
    return arguments


class DelegatedBuildRunner:
    """Runs the workspace Gradle wrapper in a child process.

    Attributes:
        host: Read-only view of the host build.
        windows: Platform flag selecting the launcher script.
        event_emitter: Optional sink for run stage transitions.
    """

    def __init__(
        self,
        host: HostContext,
        windows: Optional[bool] = None,
        event_emitter: Optional[EventEmitter] = None,
    ):
        self.host = host
        self.windows = is_windows() if windows is None else windows
        self.event_emitter = event_emitter

    def build_spec(
        self, config: WorkspaceConfig, debug_log: Path, error_log: Path
    ) -> ChildProcessSpec:
        """Derive the child process specification for a run."""
        return ChildProcessSpec(
            executable=launcher_path(config.workspace_dir, self.windows),
            arguments=tuple(build_arguments(config, self.host)),
            working_dir=config.workspace_dir,
            stdout_path=debug_log,
            stderr_path=error_log,
        )

    async def run(self, config: WorkspaceConfig) -> ExecutionResult:
        """Execute the delegated build.

        Args:
            config: Configuration of the run.

        Returns:
            ExecutionResult of a run that exited with code 0 in time.

        Raises:
            DelegatedBuildError: If the process could not start, exited
                with a non-zero code or did not finish within the timeout.
        """
        machine = RunStateMachine(workspace=str(config.workspace_dir))

        debug_log, error_log = prepare_logs(config.workspace_dir)
        spec = self.build_spec(config, debug_log, error_log)
        await self._advance(machine, RunStage.LOGS_PREPARED)

        start_time = time.monotonic()
        with debug_log.open("wb") as stdout, error_log.open("wb") as stderr:
            try:
                process = await self._start_process(spec, stdout, stderr)
            except OSError as exc:
                await self._advance(machine, RunStage.FAILED, error=str(exc))
                raise DelegatedBuildError(
                    f"Failed to start child build process "
                    f"{spec.executable}: {exc}",
                    error_log=error_log,
                ) from exc

            await self._advance(machine, RunStage.CHILD_LAUNCHED, pid=process.pid)
            completed, exit_code = await self._wait(process, config.timeout_seconds)

        result = ExecutionResult(
            exit_code=exit_code,
            completed=completed,
            debug_log=debug_log,
            error_log=error_log,
            duration_seconds=time.monotonic() - start_time,
        )

        if result.succeeded:
            await self._advance(machine, RunStage.COMPLETED, exit_code=exit_code)
            logger.info(
                "Child build completed successfully in %.1fs",
                result.duration_seconds,
            )
            return result

        final_stage = RunStage.FAILED if completed else RunStage.TIMED_OUT
        await self._advance(machine, final_stage, exit_code=exit_code)
        raise self._failure(result, config)

    async def _start_process(
        self, spec: ChildProcessSpec, stdout, stderr
    ) -> asyncio.subprocess.Process:
        """Launch the wrapper with output redirected to the log files.

        Raises:
            OSError: If the launcher cannot be found or started.
        """
        logger.info(
            "Starting child build",
            extra={
                "workspace": str(spec.working_dir),
                "command": " ".join(spec.command),
            },
        )
        return await asyncio.create_subprocess_exec(
            *spec.command,
            cwd=str(spec.working_dir),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=stdout,
            stderr=stderr,
        )

    async def _wait(
        self, process: asyncio.subprocess.Process, timeout_seconds: float
    ) -> Tuple[bool, int]:
        """Wait for the process within the timeout.

        Returns:
            Tuple of (completed, exit_code). A timed out process is
            stopped and reported with TIMEOUT_EXIT_CODE.
        """
        try:
            exit_code = await asyncio.wait_for(
                process.wait(), timeout=timeout_seconds
            )
        except asyncio.TimeoutError:
            await self._stop(process)
            return False, TIMEOUT_EXIT_CODE
        return True, exit_code

    async def _stop(self, process: asyncio.subprocess.Process) -> None:
        """Terminate the process, kill it after a grace period, reap it."""
        logger.error("Child build timed out, stopping process %s", process.pid)
        try:
            process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=TERMINATE_GRACE_SECONDS)
        except asyncio.TimeoutError:
            try:
                process.kill()
            except ProcessLookupError:
                return
            await process.wait()

    def _failure(
        self, result: ExecutionResult, config: WorkspaceConfig
    ) -> DelegatedBuildError:
        """Build the error for a failed run and echo the error log."""
        error_log = result.error_log
        error_output: Optional[str] = None
        if error_log.exists():
            error_output = error_log.read_text(encoding="utf-8", errors="replace")
            if error_output.strip():
                logger.error(error_output)

        if result.completed:
            message = f"Child build process FAILED. Exit code: {result.exit_code}."
        else:
            message = (
                f"Child build process did not complete within "
                f"{config.max_duration_minutes:g} minutes and was stopped."
            )
        if error_output is not None:
            message += f" See {error_log} for details."
            if error_output.strip():
                message += "\n" + error_output.strip()
        else:
            message += f" {error_log} file was not created."

        return DelegatedBuildError(
            message,
            error_log=error_log,
            result=result,
            error_output=error_output,
        )

    async def _advance(
        self, machine: RunStateMachine, stage: RunStage, **details
    ) -> None:
        record = machine.transition(stage, **details)
        if self.event_emitter is None:
            return
        event = BuildEvent(
            event_type=EventType.STATE_TRANSITION,
            task=RUN_TASK,
            workspace=machine.workspace,
            details={
                "from_stage": record.from_stage.value,
                "to_stage": record.to_stage.value,
                **details,
            },
        )
        try:
            await self.event_emitter.emit(event)
        except Exception:
            logger.exception(
                "Failed to emit run stage event",
                extra={"to_stage": stage.value},
            )
