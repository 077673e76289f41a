"""Pytest configuration and shared fixtures for all tests."""

import os
from pathlib import Path

import pytest

from src.codegen_bridge.provisioner.resources import DirectoryResourceLister
from src.codegen_bridge.provisioner.workspace import WorkspaceProvisioner

ARTIFACT = "io.spine.chords:spine-chords-codegen-plugins:2.0.0-SNAPSHOT.27"
WRAPPER_JAR_BYTES = b"PK\x03\x04fake-gradle-wrapper"

COMMANDS_PROTO = """\
syntax = "proto3";

package chords;

option java_package = "io.chords.command";

message TestCommand {
    string id = 1;
}
"""

# Stands in for the Gradle wrapper: records its arguments, then
# generates a Kotlin file for every command proto found in the workspace.
GENERATING_LAUNCHER = """\
#!/bin/sh
printf '%s\\n' "$@" > args.txt
echo "Fake Gradle running $*"
if [ -f src/main/proto/chords/commands.proto ]; then
    mkdir -p generated/main/kotlin/io/chords/command
    echo "class TestCommandDef" > generated/main/kotlin/io/chords/command/TestCommandDef.kt
fi
if [ -f src/test/proto/chords/test_commands.proto ]; then
    mkdir -p generated/test/kotlin/io/chords/command
    echo "class TestOnlyCommandDef" > generated/test/kotlin/io/chords/command/TestOnlyCommandDef.kt
fi
exit 0
"""

FAILING_LAUNCHER = """\
#!/bin/sh
echo "Fake Gradle starting"
echo "Plugin io.spine.protodata not found" >&2
exit 1
"""

HANGING_LAUNCHER = """\
#!/bin/sh
echo "Fake Gradle hanging"
exec sleep 30
"""

LAUNCHERS = {
    "generating": GENERATING_LAUNCHER,
    "failing": FAILING_LAUNCHER,
    "hanging": HANGING_LAUNCHER,
}


def write_template(root: Path, launcher: str = GENERATING_LAUNCHER) -> Path:
    """Lay out a workspace template with the wrapper JAR asset at its root."""
    template = root / "codegen-workspace"
    (template / "gradle" / "wrapper").mkdir(parents=True)
    (template / "gradlew").write_text(launcher)
    (template / "gradlew.bat").write_text("@echo off\r\nexit /b 0\r\n")
    (template / "build.gradle.kts").write_text('plugins { id("io.spine.protodata") }\n')
    (template / "settings.gradle.kts").write_text('rootProject.name = "codegen-workspace"\n')
    (template / "gradle" / "wrapper" / "gradle-wrapper.properties").write_text(
        "distributionUrl=https\\://services.gradle.org/distributions/gradle-7.6.4-bin.zip\n"
    )
    (root / "gradle-wrapper.zip").write_bytes(WRAPPER_JAR_BYTES)
    return root


@pytest.fixture
def clean_env(monkeypatch):
    """Keep CODEGEN_* variables of the environment out of the tests."""
    for name in list(os.environ):
        if name.upper().startswith("CODEGEN_"):
            monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def artifact():
    return ARTIFACT


@pytest.fixture
def wrapper_jar_bytes():
    return WRAPPER_JAR_BYTES


@pytest.fixture
def template_root(tmp_path):
    return write_template(tmp_path / "templates")


@pytest.fixture
def provisioner(template_root):
    return WorkspaceProvisioner(resources=DirectoryResourceLister(template_root))


@pytest.fixture
def make_provisioner(tmp_path):
    """Factory of provisioners whose template carries the named launcher."""

    def _make(launcher: str = "generating") -> WorkspaceProvisioner:
        root = write_template(tmp_path / f"templates-{launcher}", LAUNCHERS[launcher])
        return WorkspaceProvisioner(resources=DirectoryResourceLister(root))

    return _make


@pytest.fixture
def module_dir(tmp_path):
    """Host module with one command proto in the main source set."""
    module = tmp_path / "module"
    proto_dir = module / "src" / "main" / "proto" / "chords"
    proto_dir.mkdir(parents=True)
    (proto_dir / "commands.proto").write_text(COMMANDS_PROTO)
    return module
