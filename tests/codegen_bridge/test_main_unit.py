"""Unit tests for the codegen-bridge command line."""

from unittest.mock import AsyncMock, patch

import pytest

from src.codegen_bridge.main import build_parser, main
from src.codegen_bridge.orchestrator import APPLY_PLUGINS_TASK, CREATE_WORKSPACE_TASK
from src.codegen_bridge.relay.copier import CopyReport
from src.codegen_bridge.runner.gradle import DelegatedBuildError


@pytest.fixture
def wrapper_jar(tmp_path, wrapper_jar_bytes):
    jar = tmp_path / "gradle-wrapper.jar"
    jar.write_bytes(wrapper_jar_bytes)
    return jar


@pytest.fixture
def mock_orchestrator():
    """Replace the orchestrator wired by the CLI, keeping its config."""
    created = []

    def factory(config, provisioner, runner, event_emitter=None):
        instance = AsyncMock()
        instance.config = config
        instance.provisioner = provisioner
        instance.runner = runner
        instance.copy_out_report = CopyReport(copied=["A.kt"])
        instance.execute = AsyncMock(return_value=[])
        created.append(instance)
        return instance

    with patch("src.codegen_bridge.main.CodegenOrchestrator", side_effect=factory):
        yield created


class TestParser:
    def test_module_dir_required(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["generate"])

        assert exc_info.value.code == 2

    def test_command_required(self, capsys):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_repeatable_flags(self):
        args = build_parser().parse_args([
            "generate", "--module-dir", "m",
            "--task", "generateProto", "--task", "launchProtoData",
            "-P", "a=1", "-P", "b=2",
            "--proto-dependency", "x:y:1",
        ])

        assert args.task == ["generateProto", "launchProtoData"]
        assert args.properties == ["a=1", "b=2"]
        assert args.proto_dependency == ["x:y:1"]


class TestGenerate:
    def test_flags_build_the_workspace_config(
        self, clean_env, mock_orchestrator, module_dir, artifact
    ):
        status = main([
            "generate",
            "--module-dir", str(module_dir),
            "--artifact", artifact,
            "--proto-dependency", "org.example:extra-lib:1.0.0",
            "--timeout-minutes", "3",
            "--include-property", "spineVersion",
        ])

        assert status == 0
        orchestrator = mock_orchestrator[0]
        orchestrator.execute.assert_awaited_once_with(APPLY_PLUGINS_TASK)
        config = orchestrator.config
        assert config.workspace_dir == module_dir / "build" / "codegen-workspace"
        assert config.target_artifact == artifact
        assert config.extra_dependencies == ["org.example:extra-lib:1.0.0"]
        assert config.max_duration_minutes == 3
        assert config.task_names == ["build"]
        assert config.forwarded_properties == ["spineVersion"]

    def test_settings_used_without_flags(
        self, clean_env, mock_orchestrator, module_dir, artifact, tmp_path
    ):
        clean_env.setenv("CODEGEN_PLUGINS_ARTIFACT", artifact)
        clean_env.setenv("CODEGEN_PROTO_DEPENDENCIES", '["io.spine:spine-money:1.5.0"]')
        clean_env.setenv("CODEGEN_TASK_NAMES", '["launchProtoData"]')

        status = main([
            "generate",
            "--module-dir", str(module_dir),
            "--build-dir", str(tmp_path / "out"),
        ])

        assert status == 0
        config = mock_orchestrator[0].config
        assert config.workspace_dir == tmp_path / "out" / "codegen-workspace"
        assert config.extra_dependencies == ["io.spine:spine-money:1.5.0"]
        assert config.task_names == ["launchProtoData"]

    def test_host_properties_and_clean(
        self, clean_env, mock_orchestrator, module_dir, artifact
    ):
        (module_dir / "gradle.properties").write_text("spineVersion=1.9.0\nother=x\n")

        main([
            "generate", "--module-dir", str(module_dir), "--artifact", artifact,
            "-P", "other=y", "--clean",
        ])

        host = mock_orchestrator[0].runner.host
        assert host.property("spineVersion") == "1.9.0"
        assert host.property("other") == "y"
        assert host.has_task_named("clean")

    def test_missing_artifact_is_usage_error(self, clean_env, mock_orchestrator, module_dir):
        status = main(["generate", "--module-dir", str(module_dir)])

        assert status == 2
        assert mock_orchestrator == []

    def test_malformed_property_is_usage_error(
        self, clean_env, mock_orchestrator, module_dir, artifact
    ):
        status = main([
            "generate", "--module-dir", str(module_dir), "--artifact", artifact,
            "-P", "novalue",
        ])

        assert status == 2

    def test_zero_timeout_is_usage_error(
        self, clean_env, mock_orchestrator, module_dir, artifact
    ):
        status = main([
            "generate", "--module-dir", str(module_dir), "--artifact", artifact,
            "--timeout-minutes", "0",
        ])

        assert status == 2
        assert mock_orchestrator == []

    def test_platform_flag_shared_by_provisioner_and_runner(
        self, clean_env, mock_orchestrator, module_dir, artifact
    ):
        with patch("src.codegen_bridge.main.is_windows", return_value=True):
            main(["generate", "--module-dir", str(module_dir), "--artifact", artifact])

        orchestrator = mock_orchestrator[0]
        assert orchestrator.provisioner.windows is True
        assert orchestrator.runner.windows is True

    def test_invalid_settings_are_usage_error(self, clean_env, module_dir):
        clean_env.setenv("CODEGEN_BUILD_TIMEOUT_MINUTES", "-5")

        assert main(["generate", "--module-dir", str(module_dir)]) == 2

    def test_build_failure_exit_status(self, clean_env, module_dir, artifact, tmp_path):
        with patch(
            "src.codegen_bridge.main.CodegenOrchestrator"
        ) as orchestrator_class:
            orchestrator_class.return_value.execute = AsyncMock(
                side_effect=DelegatedBuildError(
                    "Child build process FAILED. Exit code: 1.",
                    error_log=tmp_path / "error-out.txt",
                )
            )

            status = main([
                "generate", "--module-dir", str(module_dir), "--artifact", artifact,
            ])

        assert status == 1

    def test_metrics_file_written(
        self, clean_env, mock_orchestrator, module_dir, artifact, tmp_path
    ):
        metrics_file = tmp_path / "metrics" / "codegen.prom"

        status = main([
            "generate", "--module-dir", str(module_dir), "--artifact", artifact,
            "--metrics-file", str(metrics_file),
        ])

        assert status == 0
        assert "codegen_delegated_builds_total" in metrics_file.read_text()

    def test_bundle_mode_configures_resolver(
        self, clean_env, mock_orchestrator, module_dir, artifact
    ):
        main([
            "generate", "--module-dir", str(module_dir), "--artifact", artifact,
            "--bundle-mode",
        ])

        assert mock_orchestrator[0].provisioner.resolver is not None


class TestProvision:
    def test_provisions_packaged_template(
        self, clean_env, module_dir, artifact, wrapper_jar, wrapper_jar_bytes
    ):
        clean_env.setenv("CODEGEN_WRAPPER_JAR_PATH", str(wrapper_jar))

        status = main([
            "provision", "--module-dir", str(module_dir), "--artifact", artifact,
        ])

        workspace_dir = module_dir / "build" / "codegen-workspace"
        assert status == 0
        assert (workspace_dir / "build.gradle.kts").exists()
        assert (workspace_dir / "gradlew").exists()
        assert (
            workspace_dir / "gradle" / "wrapper" / "gradle-wrapper.jar"
        ).read_bytes() == wrapper_jar_bytes

    def test_provision_runs_only_workspace_task(
        self, clean_env, mock_orchestrator, module_dir, artifact
    ):
        main(["provision", "--module-dir", str(module_dir), "--artifact", artifact])

        mock_orchestrator[0].execute.assert_awaited_once_with(CREATE_WORKSPACE_TASK)

    def test_missing_wrapper_jar_is_failure(self, clean_env, module_dir, artifact, tmp_path):
        clean_env.setenv("CODEGEN_WRAPPER_JAR_PATH", str(tmp_path / "absent.jar"))

        status = main([
            "provision", "--module-dir", str(module_dir), "--artifact", artifact,
        ])

        assert status == 1


class TestClean:
    def test_removes_workspace(self, clean_env, module_dir):
        workspace_dir = module_dir / "build" / "codegen-workspace"
        (workspace_dir / "_out").mkdir(parents=True)

        assert main(["clean", "--module-dir", str(module_dir)]) == 0
        assert not workspace_dir.exists()
        assert (module_dir / "build").exists()

    def test_nothing_to_clean(self, clean_env, module_dir):
        assert main(["clean", "--module-dir", str(module_dir)]) == 0
