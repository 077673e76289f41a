"""Bridge configuration using pydantic-settings.

This module defines the BridgeSettings class that reads configuration
from environment variables with the CODEGEN_ prefix. Command line flags
of the CLI take precedence over the values read here.

Requirements:
- Codegen plugins artifact coordinate and Proto dependencies
- Host build directory and workspace module name
- Delegated build timeout, task names and forwarded Gradle properties
- Artifact repositories used in bundle mode
"""

from pathlib import Path
from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.codegen_bridge.provisioner.artifacts import ArtifactCoordinate

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class BridgeSettings(BaseSettings):
    """Code generation bridge configuration from environment variables.

    All environment variables are prefixed with CODEGEN_ (e.g.,
    CODEGEN_PLUGINS_ARTIFACT). List values are given as JSON arrays.

    None of the fields is required here: the codegen plugins artifact may
    also come from the command line, and its absence is reported when
    the workspace configuration is assembled.
    """

    model_config = SettingsConfigDict(
        env_prefix="CODEGEN_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # Code Generation
    # -------------------------------------------------------------------------
    # Full coordinate of the codegen plugins artifact,
    # e.g. "io.spine.chords:spine-chords-codegen-plugins:2.0.0-SNAPSHOT.27"
    plugins_artifact: Optional[str] = None

    # Dependencies providing Proto sources required for code generation
    proto_dependencies: List[str] = []

    # -------------------------------------------------------------------------
    # Workspace Configuration
    # -------------------------------------------------------------------------
    # Output directory of the host build, relative to the module directory
    build_dir: str = "build"

    # Name of the workspace directory created under the build directory
    workspace_module_name: str = "codegen-workspace"

    # Path to a gradle-wrapper.jar to use when the template does not carry one
    wrapper_jar_path: Optional[str] = None

    # Where to download the wrapper JAR from when no local copy is available
    wrapper_jar_url: Optional[str] = (
        "https://raw.githubusercontent.com/gradle/gradle/v7.6.4/"
        "gradle/wrapper/gradle-wrapper.jar"
    )

    # -------------------------------------------------------------------------
    # Delegated Build Configuration
    # -------------------------------------------------------------------------
    # For how many minutes to wait for the delegated build to complete
    build_timeout_minutes: float = 10

    # Tasks passed to the workspace Gradle wrapper
    task_names: List[str] = ["build"]

    # Root project properties copied into the delegated build if present
    include_properties: List[str] = []

    # -------------------------------------------------------------------------
    # Bundle Mode Configuration
    # -------------------------------------------------------------------------
    # Extract the workspace from the resolved plugins artifact
    bundle_mode: bool = False

    # Remote Maven repositories searched in order
    artifact_repositories: List[str] = ["https://repo1.maven.org/maven2"]

    # Look up artifacts in the local Maven repository first
    use_maven_local: bool = True

    # Directory where downloaded artifacts are cached
    artifact_cache_dir: str = str(Path.home() / ".cache" / "codegen-bridge")

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------
    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("plugins_artifact")
    @classmethod
    def validate_plugins_artifact(cls, v: Optional[str]) -> Optional[str]:
        """Validate that the artifact is a parsable Maven coordinate."""
        if v is None:
            return v
        ArtifactCoordinate.parse(v)
        return v

    @field_validator("proto_dependencies")
    @classmethod
    def validate_proto_dependencies(cls, v: List[str]) -> List[str]:
        """Validate that no dependency contains the list delimiter."""
        for dependency in v:
            if not dependency.strip():
                raise ValueError("proto_dependencies cannot contain empty items")
            if ";" in dependency:
                raise ValueError(
                    f"proto dependency cannot contain ';': {dependency}"
                )
        return v

    @field_validator("workspace_module_name")
    @classmethod
    def validate_workspace_module_name(cls, v: str) -> str:
        """Validate that the workspace name is a single path segment."""
        if not v or not v.strip():
            raise ValueError("workspace_module_name cannot be empty")
        if "/" in v or "\\" in v or v in (".", ".."):
            raise ValueError(
                "workspace_module_name must be a single directory name"
            )
        return v

    @field_validator("build_timeout_minutes")
    @classmethod
    def validate_build_timeout(cls, v: float) -> float:
        """Validate that the build timeout is positive."""
        if v <= 0:
            raise ValueError("build_timeout_minutes must be positive")
        return v

    @field_validator("task_names")
    @classmethod
    def validate_task_names(cls, v: List[str]) -> List[str]:
        """Validate that at least one task is configured."""
        if not v:
            raise ValueError("task_names must contain at least one task")
        return v

    @field_validator("artifact_repositories")
    @classmethod
    def validate_artifact_repositories(cls, v: List[str]) -> List[str]:
        """Validate that repository URLs use HTTP(S)."""
        for url in v:
            if not url.startswith(("http://", "https://")):
                raise ValueError(
                    f"artifact repository must start with http:// or https://: {url}"
                )
        return v

    @field_validator("wrapper_jar_url")
    @classmethod
    def validate_wrapper_jar_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate that the wrapper JAR URL uses HTTP(S); empty disables it."""
        if not v:
            return None
        if not v.startswith(("http://", "https://")):
            raise ValueError(
                f"wrapper_jar_url must start with http:// or https://: {v}"
            )
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize the log level name."""
        level = v.upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(
                f"log_level must be one of {', '.join(VALID_LOG_LEVELS)}"
            )
        return level


def get_settings() -> BridgeSettings:
    """Create and return BridgeSettings instance.

    Returns:
        BridgeSettings: Configured settings instance.

    Raises:
        pydantic.ValidationError: If a configured value is invalid.
    """
    return BridgeSettings()
