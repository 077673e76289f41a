"""Workspace provisioning for delegated code generation.

Creates the `codegen-workspace` Gradle build under the host build
directory. The workspace is copied from the bundled template, or
extracted from the codegen plugins artifact in bundle mode. Handles the
workspace lifecycle including the wrapper run permission and cleanup.

Requirements:
- Copy the workspace template byte-for-byte into the build directory
- Extract the workspace sub-tree from a resolved artifact bundle
- Restore the Gradle wrapper JAR carried as a renamed asset
- Add run permission to the wrapper launcher on non-Windows hosts
- Remove the workspace on clean
"""

import asyncio
import logging
import shutil
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from src.codegen_bridge.provisioner.artifacts import (
    ArtifactCoordinate,
    ArtifactResolver,
    WrapperJarDownloader,
)
from src.codegen_bridge.provisioner.errors import (
    PermissionStepError,
    ProvisioningError,
)
from src.codegen_bridge.provisioner.resources import (
    PackageResourceLister,
    ResourceLister,
    ZipResourceLister,
)
from src.codegen_bridge.runner.process import LAUNCHER_SCRIPT, is_windows

logger = logging.getLogger(__name__)

WORKSPACE_MODULE_NAME = "codegen-workspace"
GRADLE_WRAPPER_JAR = "gradle/wrapper/gradle-wrapper.jar"
GRADLE_WRAPPER_ASSET = "gradle-wrapper.zip"
DEFAULT_TASK_NAMES = ("build",)
BUILD_TIMEOUT_MINUTES = 10
PERMISSION_TIMEOUT_SECONDS = 30


def _unique(items) -> List[str]:
    return list(dict.fromkeys(items))


@dataclass
class WorkspaceConfig:
    """Configuration of one delegated code generation run.

    Attributes:
        workspace_dir: Workspace directory under the host build directory.
        source_module_dir: Host module to generate the code for.
        target_artifact: Coordinate of the codegen plugins artifact.
        extra_dependencies: Dependencies providing required Proto sources.
        task_names: Tasks passed to the workspace Gradle wrapper.
        max_duration_minutes: How long to wait for the delegated build.
        forwarded_properties: Root project properties to pass through.
    """

    workspace_dir: Path
    source_module_dir: Path
    target_artifact: str
    extra_dependencies: List[str] = field(default_factory=list)
    task_names: List[str] = field(
        default_factory=lambda: list(DEFAULT_TASK_NAMES)
    )
    max_duration_minutes: float = BUILD_TIMEOUT_MINUTES
    forwarded_properties: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.workspace_dir = Path(self.workspace_dir)
        self.source_module_dir = Path(self.source_module_dir)
        self.extra_dependencies = _unique(self.extra_dependencies)
        self.forwarded_properties = _unique(self.forwarded_properties)
        self.task_names = list(self.task_names) or list(DEFAULT_TASK_NAMES)
        if self.max_duration_minutes <= 0:
            raise ValueError("max_duration_minutes must be positive")
        ArtifactCoordinate.parse(self.target_artifact)

    @classmethod
    def for_module(
        cls,
        build_dir: Path,
        source_module_dir: Path,
        target_artifact: str,
        workspace_module_name: str = WORKSPACE_MODULE_NAME,
        **options,
    ) -> "WorkspaceConfig":
        """Create a config whose workspace lives under the build directory.

        Args:
            build_dir: Output directory of the host build.
            source_module_dir: Host module to generate the code for.
            target_artifact: Coordinate of the codegen plugins artifact.
            workspace_module_name: Name of the workspace directory.
            **options: Remaining WorkspaceConfig fields.

        Returns:
            WorkspaceConfig with workspace_dir = build_dir / name.
        """
        return cls(
            workspace_dir=Path(build_dir) / workspace_module_name,
            source_module_dir=Path(source_module_dir),
            target_artifact=target_artifact,
            **options,
        )

    @property
    def timeout_seconds(self) -> float:
        return self.max_duration_minutes * 60


@dataclass
class ProvisionedWorkspace:
    """Result of a successful workspace provisioning.

    Attributes:
        path: Absolute path to the workspace directory.
        files: Workspace-relative paths of the files written.
        wrapper_jar: Path to the Gradle wrapper JAR.
    """

    path: Path
    files: List[str] = field(default_factory=list)
    wrapper_jar: Path = field(default_factory=lambda: Path())

    @property
    def launcher(self) -> Path:
        return self.path / LAUNCHER_SCRIPT


class WorkspaceProvisioner:
    """Creates and removes the codegen workspace.

    Without a resolver the workspace is copied from the resources
    listed under the `codegen-workspace` prefix. With a resolver the
    target artifact is resolved and the sub-tree named after the
    workspace directory is extracted from it.

    Attributes:
        resources: Lister of the bundled workspace template.
        resolver: Optional artifact resolver enabling bundle mode.
        wrapper_source: Optional file to restore the wrapper JAR from.
        wrapper_downloader: Optional download used when no wrapper JAR
            is bundled.
        windows: Platform flag; the run permission is skipped on Windows.
    """

    def __init__(
        self,
        resources: Optional[ResourceLister] = None,
        resolver: Optional[ArtifactResolver] = None,
        wrapper_source: Optional[Path] = None,
        wrapper_downloader: Optional[WrapperJarDownloader] = None,
        windows: Optional[bool] = None,
    ):
        self.resources = resources or PackageResourceLister()
        self.resolver = resolver
        self.wrapper_source = wrapper_source
        self.wrapper_downloader = wrapper_downloader
        self.windows = is_windows() if windows is None else windows

    async def provision(self, config: WorkspaceConfig) -> ProvisionedWorkspace:
        """Provision the workspace described by the config.

        Args:
            config: Configuration naming the workspace and target artifact.

        Returns:
            ProvisionedWorkspace with the files written.

        Raises:
            ProvisioningError: If the template or bundle content is missing
                or the workspace cannot be written, or a resource
                path points outside the workspace.
            ArtifactResolutionError: If the target artifact is unresolvable.
        """
        workspace_dir = config.workspace_dir
        source, prefix = await self._select_source(config)

        files = self._list_resources(source, prefix)
        if not files:
            raise ProvisioningError(
                f"No workspace resources found under '{prefix}'"
            )

        targets = {
            relative_path: self._target_path(workspace_dir, relative_path)
            for relative_path in files
        }
        for relative_path, target in targets.items():
            self._copy_resource(source, f"{prefix}/{relative_path}", target)

        wrapper_jar = await self._restore_wrapper_jar(workspace_dir, source)

        logger.info(
            "Provisioned codegen workspace",
            extra={
                "workspace": str(workspace_dir),
                "file_count": len(files),
                "bundle_mode": self.resolver is not None,
            },
        )
        return ProvisionedWorkspace(
            path=workspace_dir,
            files=files,
            wrapper_jar=wrapper_jar,
        )

    async def add_wrapper_run_permission(self, workspace_dir: Path) -> None:
        """Make the Gradle wrapper launcher executable.

        Runs `chmod +x ./gradlew` in the workspace. Skipped on Windows,
        where the `.bat` launcher needs no permission.

        Args:
            workspace_dir: Provisioned workspace directory.

        Raises:
            PermissionStepError: If the command fails, times out or
                cannot be started.
        """
        if self.windows:
            logger.debug("Skipping wrapper run permission on Windows")
            return

        try:
            process = await asyncio.create_subprocess_exec(
                "chmod",
                "+x",
                f"./{LAUNCHER_SCRIPT}",
                cwd=str(workspace_dir),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            _, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=PERMISSION_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError as exc:
            raise PermissionStepError(
                workspace_dir,
                f"chmod timed out after {PERMISSION_TIMEOUT_SECONDS}s",
            ) from exc
        except OSError as exc:
            raise PermissionStepError(
                workspace_dir, f"failed to execute chmod: {exc}"
            ) from exc

        if process.returncode != 0:
            raise PermissionStepError(
                workspace_dir,
                stderr.decode(errors="replace").strip(),
                exit_code=process.returncode,
            )

        logger.info(
            "Added run permission to Gradle wrapper",
            extra={"workspace": str(workspace_dir)},
        )

    def clean(self, workspace_dir: Path) -> bool:
        """Remove the workspace directory and all its contents.

        Args:
            workspace_dir: Workspace directory to remove.

        Returns:
            True if a workspace was removed.

        Raises:
            ProvisioningError: If the directory cannot be removed.
        """
        if not workspace_dir.exists():
            return False
        try:
            shutil.rmtree(workspace_dir)
        except OSError as exc:
            raise ProvisioningError(
                f"Failed to remove workspace at {workspace_dir}: {exc}"
            ) from exc
        logger.info(
            "Removed codegen workspace",
            extra={"workspace": str(workspace_dir)},
        )
        return True

    def _list_resources(self, source: ResourceLister, prefix: str) -> List[str]:
        try:
            return sorted(source.list(prefix))
        except (OSError, zipfile.BadZipFile) as exc:
            raise ProvisioningError(
                f"Cannot read workspace resources under '{prefix}': {exc}"
            ) from exc

    async def _select_source(self, config: WorkspaceConfig):
        """Pick the resource lister and prefix to provision from.

        Returns:
            Tuple of (lister, prefix).
        """
        if self.resolver is None:
            return self.resources, WORKSPACE_MODULE_NAME

        coordinate = ArtifactCoordinate.parse(config.target_artifact)
        bundle_path = await self.resolver.resolve(coordinate)
        logger.info(
            "Extracting workspace from artifact bundle",
            extra={"coordinate": str(coordinate), "bundle": str(bundle_path)},
        )
        return ZipResourceLister(bundle_path), config.workspace_dir.name

    def _copy_resource(
        self, source: ResourceLister, resource_path: str, target: Path
    ) -> None:
        """Copy one resource to the target file, creating parents.

        Raises:
            ProvisioningError: If the resource cannot be read or written.
        """
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with source.open(resource_path) as stream:
                target.write_bytes(stream.read())
        except OSError as exc:
            raise ProvisioningError(
                f"Failed to write {target}: {exc}"
            ) from exc

    def _target_path(self, workspace_dir: Path, relative_path: str) -> Path:
        """Map a resource path into the workspace.

        Raises:
            ProvisioningError: If the path would land outside the workspace.
        """
        root = workspace_dir.resolve()
        target = (workspace_dir / relative_path).resolve()
        if target != root and root not in target.parents:
            raise ProvisioningError(
                f"Resource '{relative_path}' points outside the workspace {workspace_dir}"
            )
        return workspace_dir / relative_path

    async def _restore_wrapper_jar(
        self, workspace_dir: Path, source: ResourceLister
    ) -> Path:
        """Put the wrapper JAR in place if the copied tree lacks it.

        Packaging tools merge the content of nested jars, so the wrapper
        JAR travels as `gradle-wrapper.zip` at the resources root. The
        sources are tried in order: the configured file, that asset, then
        the download.

        Returns:
            Path to the wrapper JAR in the workspace.

        Raises:
            ProvisioningError: If no wrapper JAR is available.
        """
        wrapper_jar = workspace_dir / GRADLE_WRAPPER_JAR
        if wrapper_jar.exists():
            return wrapper_jar

        if self.wrapper_source is not None:
            self._copy_file(self.wrapper_source, wrapper_jar)
            return wrapper_jar

        try:
            with source.open(GRADLE_WRAPPER_ASSET) as stream:
                content = stream.read()
        except FileNotFoundError:
            content = None
        except OSError as exc:
            raise ProvisioningError(
                f"Cannot read the {GRADLE_WRAPPER_ASSET} asset: {exc}"
            ) from exc

        if content is not None:
            self._write_file(wrapper_jar, content)
            return wrapper_jar

        if self.wrapper_downloader is not None:
            downloaded = await self.wrapper_downloader.fetch()
            self._copy_file(downloaded, wrapper_jar)
            return wrapper_jar

        raise ProvisioningError(
            f"Gradle wrapper JAR is not available: the {GRADLE_WRAPPER_ASSET} "
            "asset is missing and neither a wrapper JAR path nor a download "
            "URL is configured"
        )

    def _copy_file(self, source: Path, target: Path) -> None:
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, target)
        except OSError as exc:
            raise ProvisioningError(
                f"Failed to copy wrapper JAR from {source}: {exc}"
            ) from exc

    def _write_file(self, target: Path, content: bytes) -> None:
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except OSError as exc:
            raise ProvisioningError(f"Failed to write {target}: {exc}") from exc
