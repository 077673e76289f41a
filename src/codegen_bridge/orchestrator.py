"""Bridge orchestrator connecting the code generation tasks.

Registers the three bridge tasks and runs them in dependency order:
createCodegenWorkspace → addGradleWrapperRunPermission → applyCodegenPlugins.

Each task is a separate method. A failing task emits an error event
and re-raises, so the tasks after it do not run. The orchestrator
delegates all work to injected dependencies and uses the event emitter
for observability.

Source:
- src/codegen_bridge/provisioner/workspace.py (WorkspaceProvisioner)
- src/codegen_bridge/relay/copier.py (SourceRelay)
- src/codegen_bridge/runner/gradle.py (DelegatedBuildRunner)
- src/codegen_bridge/events/emitter.py (EventEmitter)
"""

import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional

from src.codegen_bridge.events.emitter import EventEmitter, NullEventEmitter
from src.codegen_bridge.events.models import BuildEvent, EventType
from src.codegen_bridge.provisioner.workspace import (
    ProvisionedWorkspace,
    WorkspaceConfig,
    WorkspaceProvisioner,
)
from src.codegen_bridge.relay.copier import CopyReport, SourceRelay
from src.codegen_bridge.runner.gradle import (
    DelegatedBuildError,
    DelegatedBuildRunner,
    ExecutionResult,
)

logger = logging.getLogger(__name__)

CREATE_WORKSPACE_TASK = "createCodegenWorkspace"
ADD_PERMISSION_TASK = "addGradleWrapperRunPermission"
APPLY_PLUGINS_TASK = "applyCodegenPlugins"


@dataclass
class BridgeTask:
    """A registered bridge task.

    Attributes:
        name: Task name.
        action: Coroutine function performing the task.
        depends_on: Name of the task that must run first, if any.
    """

    name: str
    action: Callable[[], Awaitable[None]]
    depends_on: Optional[str] = None


class CodegenOrchestrator:
    """Runs the code generation tasks for one host module.

    Accepts all dependencies via constructor injection. Every task runs
    at most once per orchestrator, mirroring a single build invocation.

    Attributes:
        config: Configuration of the delegated run.
        provisioner: Creates the workspace and adds the run permission.
        runner: Executes the workspace Gradle wrapper.
        relay: Copies sources between the module and the workspace.
        event_emitter: Emits build events for observability.
        workspace: The provisioned workspace, once created.
        result: Result of the delegated build, once it succeeded.
        copy_out_report: Files copied back into the module.
    """

    def __init__(
        self,
        config: WorkspaceConfig,
        provisioner: WorkspaceProvisioner,
        runner: DelegatedBuildRunner,
        relay: Optional[SourceRelay] = None,
        event_emitter: Optional[EventEmitter] = None,
    ):
        self.config = config
        self.provisioner = provisioner
        self.runner = runner
        self.relay = relay or SourceRelay()
        self.event_emitter = event_emitter or NullEventEmitter()

        self.workspace: Optional[ProvisionedWorkspace] = None
        self.result: Optional[ExecutionResult] = None
        self.copy_out_report: Optional[CopyReport] = None
        self._executed: List[str] = []

        self.tasks: Dict[str, BridgeTask] = {}
        self._register(BridgeTask(CREATE_WORKSPACE_TASK, self._create_workspace))
        self._register(
            BridgeTask(
                ADD_PERMISSION_TASK,
                self._add_wrapper_run_permission,
                depends_on=CREATE_WORKSPACE_TASK,
            )
        )
        self._register(
            BridgeTask(
                APPLY_PLUGINS_TASK,
                self._apply_codegen_plugins,
                depends_on=ADD_PERMISSION_TASK,
            )
        )

    @property
    def executed_tasks(self) -> List[str]:
        return list(self._executed)

    def task_chain(self, task_name: str) -> List[str]:
        """Names of the tasks to run for the named task, in order.

        Raises:
            ValueError: If no task with this name is registered.
        """
        if task_name not in self.tasks:
            raise ValueError(
                f"Unknown task '{task_name}', expected one of "
                f"{', '.join(self.tasks)}"
            )
        chain: List[str] = []
        current: Optional[str] = task_name
        while current is not None:
            chain.append(current)
            current = self.tasks[current].depends_on
        return list(reversed(chain))

    async def execute(self, task_name: str = APPLY_PLUGINS_TASK) -> List[str]:
        """Run the named task and the tasks it depends on.

        Tasks that already ran are not repeated.

        Args:
            task_name: Task to run.

        Returns:
            Names of the tasks run by this call.

        Raises:
            ValueError: If the task is unknown.
            ProvisioningError: If the workspace cannot be created or the
                wrapper cannot be made executable.
            RelayError: If sources cannot be copied.
            DelegatedBuildError: If the delegated build fails or times out.
        """
        ran: List[str] = []
        for name in self.task_chain(task_name):
            if name in self._executed:
                continue
            await self._run_task(self.tasks[name])
            ran.append(name)
        return ran

    def clean(self) -> bool:
        """Remove the workspace of this module.

        Returns:
            True if a workspace was removed.
        """
        self._executed.clear()
        self.workspace = None
        self.result = None
        self.copy_out_report = None
        return self.provisioner.clean(self.config.workspace_dir)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def _create_workspace(self) -> None:
        """Copy the workspace template into the build directory."""
        self.workspace = await self.provisioner.provision(self.config)

    async def _add_wrapper_run_permission(self) -> None:
        """Make the workspace wrapper launcher executable."""
        await self.provisioner.add_wrapper_run_permission(
            self.config.workspace_dir
        )

    async def _apply_codegen_plugins(self) -> None:
        """Relay the Proto sources, run the delegated build, relay back."""
        workspace_dir = self.config.workspace_dir
        module_dir = self.config.source_module_dir

        self.relay.copy_in(module_dir, workspace_dir)
        self.result = await self.runner.run(self.config)

        report = CopyReport()
        for source_set in self.relay.source_sets:
            report = report.merge(
                self.relay.copy_out(workspace_dir, module_dir, source_set)
            )
        self.copy_out_report = report

        logger.info(
            "Code generation completed",
            extra={
                "module": str(module_dir),
                "generated_files": len(report.copied),
                "kept_files": len(report.skipped),
            },
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _register(self, task: BridgeTask) -> None:
        self.tasks[task.name] = task

    async def _run_task(self, task: BridgeTask) -> None:
        """Run one task, emitting start, completion and failure events."""
        logger.info("Running task %s", task.name)
        await self._emit(
            EventType.STATE_TRANSITION,
            task.name,
            {"from_stage": "pending", "to_stage": "running"},
        )

        start_time = time.monotonic()
        try:
            await task.action()
        except Exception as exc:
            await self._emit_failure(task.name, exc)
            raise

        self._executed.append(task.name)
        await self._emit(
            EventType.COMPLETION,
            task.name,
            {"duration_seconds": time.monotonic() - start_time},
        )

    async def _emit_failure(self, task_name: str, exc: Exception) -> None:
        """Emit TIMEOUT for a timed out delegated build, then ERROR."""
        timed_out = isinstance(exc, DelegatedBuildError) and (
            exc.result is not None and not exc.completed
        )
        if timed_out:
            await self._emit(
                EventType.TIMEOUT,
                task_name,
                {"timeout_seconds": self.config.timeout_seconds},
            )

        details = {
            "error_message": str(exc),
            "error_type": type(exc).__name__,
        }
        if timed_out:
            details["timed_out"] = True
        await self._emit(EventType.ERROR, task_name, details)

    async def _emit(self, event_type: EventType, task_name: str, details: dict) -> None:
        """Emit an event, logging failures to avoid disrupting the build."""
        event = BuildEvent(
            event_type=event_type,
            task=task_name,
            workspace=str(self.config.workspace_dir),
            details=details,
        )
        try:
            await self.event_emitter.emit(event)
        except Exception:
            logger.exception(
                "Failed to emit build event",
                extra={"event_type": event_type.value, "task": task_name},
            )
