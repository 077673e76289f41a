"""Child process specification for the workspace Gradle wrapper.

The launcher script is selected from the platform flag alone, so the
whole command can be derived and inspected before anything is started.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple

LAUNCHER_SCRIPT = "gradlew"
WINDOWS_LAUNCHER_SCRIPT = "gradlew.bat"


def is_windows() -> bool:
    """Tell whether the host runs on Windows."""
    return os.name == "nt"


def launcher_path(workspace_dir: Path, windows: bool) -> Path:
    """Path of the wrapper launcher for the given platform."""
    script = WINDOWS_LAUNCHER_SCRIPT if windows else LAUNCHER_SCRIPT
    return workspace_dir / script


@dataclass(frozen=True)
class ChildProcessSpec:
    """Everything needed to start the delegated build process.

    Attributes:
        executable: Wrapper launcher to run.
        arguments: Task names, flags and `-P` properties.
        working_dir: Directory the process runs in.
        stdout_path: File receiving standard output.
        stderr_path: File receiving standard error.
    """

    executable: Path
    arguments: Tuple[str, ...]
    working_dir: Path
    stdout_path: Path
    stderr_path: Path

    @property
    def command(self) -> List[str]:
        return [str(self.executable), *self.arguments]
