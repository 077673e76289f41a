"""Read-only view of the host build.

The delegated build runner needs two things from the host: the value
of a root project property, to forward it to the child build, and
whether the host runs a task with a given name, to prepend `clean` to
the child command. HostContext captures exactly that.

Source:
- gradle.properties format: `key=value` or `key: value`, `#` and `!`
  start a comment line
"""

import logging
from pathlib import Path
from typing import (
    Dict,
    Iterable,
    Mapping,
    Optional,
    Protocol,
    Tuple,
    runtime_checkable,
)

logger = logging.getLogger(__name__)

GRADLE_PROPERTIES_FILE = "gradle.properties"
COMMENT_PREFIXES = ("#", "!")


@runtime_checkable
class HostContext(Protocol):
    """Capability of the host build the runner depends on."""

    def property(self, name: str) -> Optional[str]:
        """Return the root project property, or None if it is not set."""
        ...

    def has_task_named(self, name: str) -> bool:
        """Tell whether the host build executes a task with this name."""
        ...


class StaticHostContext:
    """HostContext backed by fixed properties and task names.

    Attributes:
        properties: Root project properties.
        task_names: Names of the tasks the host build executes.
    """

    def __init__(
        self,
        properties: Optional[Mapping[str, str]] = None,
        task_names: Optional[Iterable[str]] = None,
    ):
        self.properties: Dict[str, str] = dict(properties or {})
        self.task_names = frozenset(task_names or ())

    def property(self, name: str) -> Optional[str]:
        return self.properties.get(name)

    def has_task_named(self, name: str) -> bool:
        return name in self.task_names

    @classmethod
    def from_gradle_properties(
        cls,
        root: Path,
        overrides: Optional[Mapping[str, str]] = None,
        task_names: Optional[Iterable[str]] = None,
    ) -> "StaticHostContext":
        """Build a context from the root project's gradle.properties.

        Args:
            root: Root project directory of the host build.
            overrides: Properties passed with `-P`, they take precedence.
            task_names: Names of the tasks the host build executes.

        Returns:
            StaticHostContext with the merged properties.
        """
        properties = parse_gradle_properties(root / GRADLE_PROPERTIES_FILE)
        properties.update(overrides or {})
        return cls(properties=properties, task_names=task_names)


def parse_gradle_properties(path: Path) -> Dict[str, str]:
    """Parse a gradle.properties file.

    A missing file yields no properties. Line continuations and escape
    sequences are not supported.

    Args:
        path: Path to the properties file.

    Returns:
        Dict of property names to values.
    """
    if not path.is_file():
        logger.debug("No properties file at %s", path)
        return {}

    properties: Dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith(COMMENT_PREFIXES):
            continue
        name, value = _split_property(stripped)
        if name:
            properties[name] = value
    return properties


def parse_property_assignment(assignment: str) -> Tuple[str, str]:
    """Parse a `NAME=VALUE` command line assignment.

    Raises:
        ValueError: If the assignment has no `=` or an empty name.
    """
    name, separator, value = assignment.partition("=")
    if not separator or not name.strip():
        raise ValueError(
            f"Invalid property '{assignment}', expected NAME=VALUE"
        )
    return name.strip(), value


def _split_property(line: str) -> Tuple[str, str]:
    positions = [p for p in (line.find("="), line.find(":")) if p >= 0]
    if not positions:
        return line, ""
    position = min(positions)
    return line[:position].strip(), line[position + 1:].strip()
