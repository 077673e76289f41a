"""The `chordsGradlePlugin` configuration block.

Holds the parameters a host build gives the bridge: the codegen plugins
artifact, which is required, and the dependencies providing Proto
sources needed for code generation.
"""

import logging
from typing import List, Optional

logger = logging.getLogger(__name__)

EXTENSION_NAME = "chordsGradlePlugin"


class ExtensionConfigurationError(Exception):
    """Raised when a required extension parameter is missing.

    Attributes:
        parameter: Name of the missing parameter.
    """

    def __init__(self, parameter: str, message: Optional[str] = None):
        self.parameter = parameter
        super().__init__(
            message
            or f"`{EXTENSION_NAME}.{parameter}` must be configured"
        )


class ParametersExtension:
    """Parameters of the code generation bridge.

    Example:
        extension = ParametersExtension()
        extension.codegen_plugins_artifact = (
            "io.spine.chords:spine-chords-codegen-plugins:2.0.0-SNAPSHOT.27"
        )
        extension.proto_dependencies("io.spine:spine-money:1.5.0")
    """

    def __init__(self):
        self._codegen_plugins_artifact: Optional[str] = None
        self._dependencies: List[str] = []

    @property
    def codegen_plugins_artifact(self) -> str:
        """Full Maven coordinate of the codegen plugins artifact.

        Raises:
            ExtensionConfigurationError: If the artifact was never set.
        """
        if not self._codegen_plugins_artifact:
            raise ExtensionConfigurationError("codegenPluginsArtifact")
        return self._codegen_plugins_artifact

    @codegen_plugins_artifact.setter
    def codegen_plugins_artifact(self, value: str) -> None:
        self._codegen_plugins_artifact = value

    @property
    def is_configured(self) -> bool:
        return bool(self._codegen_plugins_artifact)

    @property
    def dependencies(self) -> List[str]:
        """Dependencies given by the last `proto_dependencies` call."""
        return list(self._dependencies)

    def proto_dependencies(self, *dependencies: str) -> None:
        """Set the dependencies that provide the Proto sources.

        Each call replaces the previously configured dependencies.

        Args:
            *dependencies: Maven coordinates of the dependencies.
        """
        if self._dependencies:
            logger.debug(
                "Replacing Proto dependencies %s",
                ", ".join(self._dependencies),
            )
        self._dependencies = list(dependencies)
