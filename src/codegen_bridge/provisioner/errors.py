"""Errors raised while provisioning the codegen workspace."""

from pathlib import Path
from typing import Optional


class ProvisioningError(Exception):
    """Raised when workspace provisioning fails."""

    pass


class ArtifactResolutionError(ProvisioningError):
    """Raised when an artifact cannot be resolved to a local file."""

    def __init__(self, coordinate: str, message: str):
        self.coordinate = coordinate
        super().__init__(f"Failed to resolve {coordinate}: {message}")


class PermissionStepError(ProvisioningError):
    """Raised when the wrapper launcher cannot be made executable.

    Attributes:
        workspace_dir: Workspace containing the launcher.
        exit_code: Exit code of the permission command, if it ran.
    """

    def __init__(
        self,
        workspace_dir: Path,
        message: str,
        exit_code: Optional[int] = None,
    ):
        self.workspace_dir = workspace_dir
        self.exit_code = exit_code
        super().__init__(
            f"Failed to add run permission to the Gradle wrapper "
            f"in {workspace_dir}: {message}"
        )
