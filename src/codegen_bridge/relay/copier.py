"""Source relay between the host module and the codegen workspace.

Moves the Proto sources of the host module into the workspace before
the delegated build and the generated Kotlin sources back afterwards.

Requirements:
- copy_in: delete `src/<set>/proto` in the workspace, then copy it from
  the module, for the `main` and `test` source sets
- copy_out: copy `generated/<set>/kotlin` from the workspace into the
  module without replacing files the module already has
- A missing source directory copies nothing
"""

import logging
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)

SOURCE_SETS = ("main", "test")
SCHEMA_DIR = "proto"
GENERATED_LANGUAGE = "kotlin"


class RelayError(Exception):
    """Raised when sources cannot be copied or deleted."""

    pass


class DuplicateFileError(RelayError):
    """Raised when a destination file exists and the policy is FAIL.

    Attributes:
        path: The destination file that already exists.
    """

    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"Destination file already exists: {path}")


class DuplicatePolicy(str, Enum):
    """What to do when a destination file already exists.

    Attributes:
        FAIL: Raise DuplicateFileError.
        OVERWRITE: Replace the destination file.
        SKIP_EXISTING: Keep the destination file untouched.
    """

    FAIL = "fail"
    OVERWRITE = "overwrite"
    SKIP_EXISTING = "skip_existing"


@dataclass
class CopySpec:
    """A recursive directory copy.

    Attributes:
        source_dir: Directory to copy from.
        destination_dir: Directory to copy into.
        duplicate_policy: Handling of files present in both.
    """

    source_dir: Path
    destination_dir: Path
    duplicate_policy: DuplicatePolicy = DuplicatePolicy.FAIL


@dataclass
class CopyReport:
    """Relative paths of the files copied and skipped."""

    copied: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    def merge(self, other: "CopyReport") -> "CopyReport":
        return CopyReport(
            copied=self.copied + other.copied,
            skipped=self.skipped + other.skipped,
        )


def copy_tree(spec: CopySpec) -> CopyReport:
    """Copy a directory tree, preserving relative paths and content.

    Args:
        spec: Source, destination and duplicate policy.

    Returns:
        CopyReport of the files copied and skipped.

    Raises:
        DuplicateFileError: If a destination file exists under FAIL.
        RelayError: If a file cannot be copied.
    """
    report = CopyReport()
    if not spec.source_dir.is_dir():
        logger.debug("Nothing to copy from %s", spec.source_dir)
        return report

    for source in sorted(spec.source_dir.rglob("*")):
        if not source.is_file():
            continue
        relative = source.relative_to(spec.source_dir)
        target = spec.destination_dir / relative

        if target.exists():
            if spec.duplicate_policy == DuplicatePolicy.FAIL:
                raise DuplicateFileError(target)
            if spec.duplicate_policy == DuplicatePolicy.SKIP_EXISTING:
                report.skipped.append(relative.as_posix())
                continue

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, target)
        except OSError as exc:
            raise RelayError(f"Failed to copy {source} to {target}: {exc}") from exc
        report.copied.append(relative.as_posix())

    return report


def delete_tree(path: Path) -> bool:
    """Delete a directory tree if it exists.

    Returns:
        True if something was deleted.

    Raises:
        RelayError: If the tree cannot be removed.
    """
    if not path.exists():
        return False
    try:
        shutil.rmtree(path)
    except OSError as exc:
        raise RelayError(f"Failed to delete {path}: {exc}") from exc
    return True


class SourceRelay:
    """Copies sources between the host module and the workspace.

    Attributes:
        schema_dir: Name of the Proto source directory in a source set.
        generated_language: Name of the generated sources directory.
        source_sets: Source sets to relay.
    """

    def __init__(
        self,
        schema_dir: str = SCHEMA_DIR,
        generated_language: str = GENERATED_LANGUAGE,
        source_sets: Sequence[str] = SOURCE_SETS,
    ):
        self.schema_dir = schema_dir
        self.generated_language = generated_language
        self.source_sets = tuple(source_sets)

    def schema_path(self, root: Path, source_set: str) -> Path:
        return root / "src" / source_set / self.schema_dir

    def generated_path(self, root: Path, source_set: str) -> Path:
        return root / "generated" / source_set / self.generated_language

    def copy_in(self, source_module_dir: Path, workspace_dir: Path) -> CopyReport:
        """Replace the workspace Proto sources with the module ones.

        Args:
            source_module_dir: Host module owning the Proto sources.
            workspace_dir: Provisioned codegen workspace.

        Returns:
            CopyReport of the files copied.

        Raises:
            RelayError: If the sources cannot be deleted or copied.
        """
        report = CopyReport()
        for source_set in self.source_sets:
            destination = self.schema_path(workspace_dir, source_set)
            delete_tree(destination)
            report = report.merge(
                copy_tree(
                    CopySpec(
                        source_dir=self.schema_path(source_module_dir, source_set),
                        destination_dir=destination,
                        duplicate_policy=DuplicatePolicy.OVERWRITE,
                    )
                )
            )

        logger.info(
            "Copied Proto sources into workspace",
            extra={
                "module": str(source_module_dir),
                "workspace": str(workspace_dir),
                "file_count": len(report.copied),
            },
        )
        return report

    def copy_out(
        self,
        workspace_dir: Path,
        source_module_dir: Path,
        source_set: Optional[str] = None,
    ) -> CopyReport:
        """Copy the generated sources back into the module.

        Files the module already has are left untouched.

        Args:
            workspace_dir: Workspace holding the generated sources.
            source_module_dir: Host module receiving them.
            source_set: Source set to copy, or None for all of them.

        Returns:
            CopyReport of the files copied and skipped.

        Raises:
            RelayError: If a file cannot be copied.
        """
        source_sets = self.source_sets if source_set is None else (source_set,)
        report = CopyReport()
        for name in source_sets:
            report = report.merge(
                copy_tree(
                    CopySpec(
                        source_dir=self.generated_path(workspace_dir, name),
                        destination_dir=self.generated_path(source_module_dir, name),
                        duplicate_policy=DuplicatePolicy.SKIP_EXISTING,
                    )
                )
            )

        logger.info(
            "Copied generated sources into module",
            extra={
                "module": str(source_module_dir),
                "source_sets": ",".join(source_sets),
                "copied": len(report.copied),
                "skipped": len(report.skipped),
            },
        )
        return report
