"""Enumeration of bundled workspace resources.

A ResourceLister lists the files found under a path prefix and opens
them as binary streams. The listing is recursive, relative to the
prefix, and never contains directory entries.

Implementations:
- DirectoryResourceLister: resources laid out in a plain directory
- ZipResourceLister: entries of a zip or jar archive
- PackageResourceLister: resources shipped inside an installed package
"""

import io
import zipfile
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Iterator, Protocol, Set, runtime_checkable

PACKAGE_RESOURCES_ANCHOR = "src.codegen_bridge"
PACKAGE_RESOURCES_ROOT = "resources"


def _normalize_prefix(prefix: str) -> str:
    return prefix.strip("/")


@runtime_checkable
class ResourceLister(Protocol):
    """Lists and opens resources by path."""

    def list(self, prefix: str) -> Set[str]:
        """List files under the prefix, relative to it, in POSIX form."""
        ...

    def open(self, path: str) -> BinaryIO:
        """Open the resource at the given root-relative path."""
        ...


class DirectoryResourceLister:
    """Lists resources stored in a directory on disk."""

    def __init__(self, root: Path):
        self.root = root

    def list(self, prefix: str) -> Set[str]:
        base = self.root / _normalize_prefix(prefix)
        if not base.is_dir():
            return set()
        return {
            entry.relative_to(base).as_posix()
            for entry in base.rglob("*")
            if entry.is_file()
        }

    def open(self, path: str) -> BinaryIO:
        return (self.root / _normalize_prefix(path)).open("rb")


class ZipResourceLister:
    """Lists entries of a zip archive (jar files included)."""

    def __init__(self, archive_path: Path):
        self.archive_path = archive_path

    def list(self, prefix: str) -> Set[str]:
        entry_prefix = _normalize_prefix(prefix) + "/"
        with zipfile.ZipFile(self.archive_path) as archive:
            return {
                name[len(entry_prefix):]
                for name in archive.namelist()
                if name.startswith(entry_prefix) and not name.endswith("/")
            }

    def open(self, path: str) -> BinaryIO:
        archive = zipfile.ZipFile(self.archive_path)
        try:
            with archive.open(_normalize_prefix(path)) as entry:
                data = entry.read()
        except KeyError as exc:
            raise FileNotFoundError(
                f"{path} not found in {self.archive_path}"
            ) from exc
        finally:
            archive.close()
        return io.BytesIO(data)


class PackageResourceLister:
    """Lists resources shipped with an installed Python package."""

    def __init__(
        self,
        anchor: str = PACKAGE_RESOURCES_ANCHOR,
        root: str = PACKAGE_RESOURCES_ROOT,
    ):
        self.anchor = anchor
        self.root = root

    def _traversable(self, path: str) -> Traversable:
        node = resources.files(self.anchor).joinpath(self.root)
        for part in PurePosixPath(_normalize_prefix(path)).parts:
            node = node.joinpath(part)
        return node

    def list(self, prefix: str) -> Set[str]:
        base = self._traversable(prefix)
        if not base.is_dir():
            return set()
        return set(self._walk(base, PurePosixPath()))

    def _walk(self, node: Traversable, relative: PurePosixPath) -> Iterator[str]:
        for child in node.iterdir():
            child_path = relative / child.name
            if child.is_dir():
                yield from self._walk(child, child_path)
            elif child.is_file():
                yield child_path.as_posix()

    def open(self, path: str) -> BinaryIO:
        node = self._traversable(path)
        if not node.is_file():
            raise FileNotFoundError(f"Resource not found in package: {path}")
        return node.open("rb")
