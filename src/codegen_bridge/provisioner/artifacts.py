"""Artifact coordinates and non-transitive artifact resolution.

Resolves a single named artifact (never its dependency closure) to a
local file. Used in bundle mode, where the workspace tree is extracted
from the codegen plugins artifact instead of the bundled template.

Resolvers:
- MavenLocalResolver: looks the artifact up in the local Maven repository
- RemoteMavenResolver: downloads the artifact from remote repositories
- ChainResolver: tries several resolvers in order

WrapperJarDownloader fetches the Gradle wrapper JAR when neither the
template nor a configured file provides it.
"""

import hashlib
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Protocol, runtime_checkable

import httpx

from src.codegen_bridge.provisioner.errors import ArtifactResolutionError

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = "jar"
DOWNLOAD_TIMEOUT_SECONDS = 120.0

_SEGMENT_PATTERN = re.compile(r"^[A-Za-z0-9_.\-+]+$")


@dataclass(frozen=True)
class ArtifactCoordinate:
    """A Maven artifact coordinate.

    Format: ``group:artifact:version[:classifier][@extension]``.

    Attributes:
        group: Group ID, e.g. "io.spine.chords".
        artifact: Artifact ID.
        version: Artifact version.
        classifier: Optional classifier.
        extension: File extension, "jar" by default.
    """

    group: str
    artifact: str
    version: str
    classifier: Optional[str] = None
    extension: str = DEFAULT_EXTENSION

    @classmethod
    def parse(cls, notation: str) -> "ArtifactCoordinate":
        """Parse a coordinate string.

        Args:
            notation: Coordinate in Gradle dependency notation.

        Returns:
            The parsed coordinate.

        Raises:
            ValueError: If the notation is malformed.
        """
        extension = DEFAULT_EXTENSION
        body = notation.strip()
        if "@" in body:
            body, extension = body.rsplit("@", 1)

        parts = body.split(":")
        if len(parts) not in (3, 4):
            raise ValueError(
                f"Artifact coordinate must be 'group:artifact:version"
                f"[:classifier][@extension]', got '{notation}'"
            )
        for segment in parts + [extension]:
            if not _SEGMENT_PATTERN.match(segment):
                raise ValueError(
                    f"Invalid segment '{segment}' in artifact coordinate '{notation}'"
                )

        classifier = parts[3] if len(parts) == 4 else None
        return cls(
            group=parts[0],
            artifact=parts[1],
            version=parts[2],
            classifier=classifier,
            extension=extension,
        )

    @property
    def file_name(self) -> str:
        """Name of the artifact file in a Maven repository."""
        suffix = f"-{self.classifier}" if self.classifier else ""
        return f"{self.artifact}-{self.version}{suffix}.{self.extension}"

    @property
    def repository_path(self) -> str:
        """Relative path of the artifact file in the Maven layout."""
        group_path = self.group.replace(".", "/")
        return f"{group_path}/{self.artifact}/{self.version}/{self.file_name}"

    def __str__(self) -> str:
        notation = f"{self.group}:{self.artifact}:{self.version}"
        if self.classifier:
            notation += f":{self.classifier}"
        if self.extension != DEFAULT_EXTENSION:
            notation += f"@{self.extension}"
        return notation


@runtime_checkable
class ArtifactResolver(Protocol):
    """Resolves an artifact coordinate to a single local file."""

    async def resolve(self, coordinate: ArtifactCoordinate) -> Path:
        """Return the local path of the artifact file.

        Raises:
            ArtifactResolutionError: If the artifact cannot be found.
        """
        ...


class MavenLocalResolver:
    """Resolves artifacts from a local Maven repository."""

    def __init__(self, repository_root: Optional[Path] = None):
        self.repository_root = repository_root or (
            Path.home() / ".m2" / "repository"
        )

    async def resolve(self, coordinate: ArtifactCoordinate) -> Path:
        artifact_path = self.repository_root / coordinate.repository_path
        if not artifact_path.is_file():
            raise ArtifactResolutionError(
                str(coordinate), f"not found in {self.repository_root}"
            )
        logger.debug(
            "Resolved artifact from local repository",
            extra={"coordinate": str(coordinate), "path": str(artifact_path)},
        )
        return artifact_path


class RemoteMavenResolver:
    """Downloads artifacts from remote Maven repositories.

    Repositories are tried in order; a 404 moves on to the next one,
    any other failure stops resolution. Downloaded files are kept in
    the cache directory under their Maven layout path and reused on
    subsequent calls.

    Attributes:
        repository_urls: Base URLs of the repositories.
        cache_dir: Directory for downloaded artifacts.
        timeout: HTTP timeout in seconds.
    """

    def __init__(
        self,
        repository_urls: List[str],
        cache_dir: Path,
        timeout: float = DOWNLOAD_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.repository_urls = [url.rstrip("/") for url in repository_urls]
        self.cache_dir = cache_dir
        self.timeout = timeout
        self._transport = transport

    async def resolve(self, coordinate: ArtifactCoordinate) -> Path:
        target = self.cache_dir / coordinate.repository_path
        if target.is_file():
            return target

        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            for base_url in self.repository_urls:
                url = f"{base_url}/{coordinate.repository_path}"
                content = await self._download(client, url, coordinate)
                if content is None:
                    continue
                self._store(target, content, coordinate)
                logger.info(
                    "Downloaded artifact",
                    extra={"coordinate": str(coordinate), "url": url},
                )
                return target

        raise ArtifactResolutionError(
            str(coordinate),
            f"not found in any of {len(self.repository_urls)} repositories",
        )

    async def _download(
        self,
        client: httpx.AsyncClient,
        url: str,
        coordinate: ArtifactCoordinate,
    ) -> Optional[bytes]:
        """Fetch the artifact bytes, or None when the repository lacks it."""
        try:
            response = await client.get(url)
        except httpx.HTTPError as exc:
            raise ArtifactResolutionError(
                str(coordinate), f"request to {url} failed: {exc}"
            ) from exc

        if response.status_code == 404:
            logger.debug("Artifact not found at %s", url)
            return None
        if response.status_code != 200:
            raise ArtifactResolutionError(
                str(coordinate),
                f"{url} responded with HTTP {response.status_code}",
            )
        return response.content

    def _store(
        self, target: Path, content: bytes, coordinate: ArtifactCoordinate
    ) -> None:
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except OSError as exc:
            raise ArtifactResolutionError(
                str(coordinate), f"cannot write {target}: {exc}"
            ) from exc


class ChainResolver:
    """Tries each resolver in order and returns the first success."""

    def __init__(self, resolvers: List[ArtifactResolver]):
        self.resolvers = list(resolvers)

    async def resolve(self, coordinate: ArtifactCoordinate) -> Path:
        failures: List[str] = []
        for resolver in self.resolvers:
            try:
                return await resolver.resolve(coordinate)
            except ArtifactResolutionError as exc:
                failures.append(str(exc))

        raise ArtifactResolutionError(
            str(coordinate),
            "; ".join(failures) if failures else "no resolvers configured",
        )


class WrapperJarDownloader:
    """Downloads the Gradle wrapper JAR when no copy is bundled.

    The file is kept in the cache directory and reused on later calls.

    Attributes:
        url: Location of the gradle-wrapper.jar to download.
        cache_dir: Directory for the downloaded file.
        timeout: HTTP timeout in seconds.
    """

    def __init__(
        self,
        url: str,
        cache_dir: Path,
        timeout: float = DOWNLOAD_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.cache_dir = cache_dir
        self.timeout = timeout
        self._transport = transport

    @property
    def cached_path(self) -> Path:
        digest = hashlib.sha256(self.url.encode("utf-8")).hexdigest()[:16]
        return self.cache_dir / "gradle-wrapper" / digest / "gradle-wrapper.jar"

    async def fetch(self) -> Path:
        """Return a local copy of the wrapper JAR, downloading it if needed.

        Raises:
            ArtifactResolutionError: If the download fails.
        """
        target = self.cached_path
        if target.is_file():
            return target

        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            try:
                response = await client.get(self.url)
            except httpx.HTTPError as exc:
                raise ArtifactResolutionError(
                    "gradle-wrapper.jar", f"request to {self.url} failed: {exc}"
                ) from exc

        if response.status_code != 200:
            raise ArtifactResolutionError(
                "gradle-wrapper.jar",
                f"{self.url} responded with HTTP {response.status_code}",
            )

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(response.content)
        except OSError as exc:
            raise ArtifactResolutionError(
                "gradle-wrapper.jar", f"cannot write {target}: {exc}"
            ) from exc

        logger.info("Downloaded Gradle wrapper JAR", extra={"url": self.url})
        return target
