"""Command line entry point for the code generation bridge.

Provides the `codegen-bridge` command with three subcommands:
- generate: provision the workspace and run the code generation
- provision: only create the workspace
- clean: remove the workspace

Configuration is read from CODEGEN_* environment variables; command
line flags take precedence.

Requirements:
- Log configuration values on startup
- Exit with 0 on success, 1 on a bridge failure, 2 on invalid usage
"""

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from pydantic import ValidationError

from src.codegen_bridge.config import BridgeSettings, get_settings
from src.codegen_bridge.events.emitter import (
    EventEmitter,
    EventSinkType,
    create_event_emitter,
)
from src.codegen_bridge.events.metrics import write_metrics_file
from src.codegen_bridge.host.context import (
    StaticHostContext,
    parse_property_assignment,
)
from src.codegen_bridge.host.extension import (
    ExtensionConfigurationError,
    ParametersExtension,
)
from src.codegen_bridge.orchestrator import (
    APPLY_PLUGINS_TASK,
    CREATE_WORKSPACE_TASK,
    CodegenOrchestrator,
)
from src.codegen_bridge.provisioner.artifacts import (
    ArtifactResolver,
    ChainResolver,
    MavenLocalResolver,
    RemoteMavenResolver,
    WrapperJarDownloader,
)
from src.codegen_bridge.provisioner.errors import ProvisioningError
from src.codegen_bridge.provisioner.workspace import (
    WorkspaceConfig,
    WorkspaceProvisioner,
)
from src.codegen_bridge.relay.copier import RelayError
from src.codegen_bridge.runner.gradle import (
    DelegatedBuildError,
    DelegatedBuildRunner,
)
from src.codegen_bridge.runner.process import is_windows

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2

BRIDGE_ERRORS = (ProvisioningError, RelayError, DelegatedBuildError)


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router."""
    parser = argparse.ArgumentParser(
        prog="codegen-bridge",
        description=(
            "Generate code for a module with codegen plugins that need a "
            "newer Gradle version than the module's own build."
        ),
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--module-dir",
        required=True,
        help="Directory of the module to generate the code for.",
    )
    common.add_argument(
        "--build-dir",
        default=None,
        help="Build output directory (default: <module-dir>/build).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    generate_parser = subparsers.add_parser(
        "generate",
        parents=[common],
        help="Provision the workspace and run the code generation.",
    )
    _add_artifact_arguments(generate_parser)
    generate_parser.add_argument(
        "--proto-dependency",
        action="append",
        default=None,
        metavar="COORDINATE",
        help="Dependency providing required Proto sources (repeatable).",
    )
    generate_parser.add_argument(
        "--task",
        action="append",
        default=None,
        metavar="NAME",
        help="Task to run in the workspace (repeatable, default: build).",
    )
    generate_parser.add_argument(
        "--timeout-minutes",
        type=float,
        default=None,
        help="Minutes to wait for the delegated build (default: 10).",
    )
    generate_parser.add_argument(
        "-P",
        dest="properties",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Root project property, as given to Gradle with -P (repeatable).",
    )
    generate_parser.add_argument(
        "--root-dir",
        default=None,
        help="Root project directory holding gradle.properties "
        "(default: <module-dir>).",
    )
    generate_parser.add_argument(
        "--include-property",
        action="append",
        default=None,
        metavar="NAME",
        help="Root project property to forward to the workspace (repeatable).",
    )
    generate_parser.add_argument(
        "--clean",
        action="store_true",
        default=False,
        help="Run `clean` in the workspace before the tasks.",
    )
    generate_parser.add_argument(
        "--metrics-file",
        default=None,
        help="Write Prometheus metrics to this file after the run.",
    )
    generate_parser.set_defaults(handler=_cmd_generate)

    provision_parser = subparsers.add_parser(
        "provision",
        parents=[common],
        help="Only create the codegen workspace.",
    )
    _add_artifact_arguments(provision_parser)
    provision_parser.set_defaults(handler=_cmd_provision)

    clean_parser = subparsers.add_parser(
        "clean",
        parents=[common],
        help="Remove the codegen workspace.",
    )
    clean_parser.set_defaults(handler=_cmd_clean)

    return parser


def _add_artifact_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--artifact",
        default=None,
        metavar="COORDINATE",
        help="Codegen plugins artifact, e.g. group:artifact:version.",
    )
    parser.add_argument(
        "--bundle-mode",
        action="store_true",
        default=None,
        help="Extract the workspace from the codegen plugins artifact.",
    )


def _log_configuration(settings: BridgeSettings) -> None:
    """Log configuration values on startup.

    Args:
        settings: The bridge settings to log.
    """
    logger.info("Bridge configuration:")
    logger.info(f"  Plugins Artifact: {settings.plugins_artifact}")
    logger.info(f"  Proto Dependencies: {settings.proto_dependencies}")
    logger.info(f"  Build Dir: {settings.build_dir}")
    logger.info(f"  Workspace Module Name: {settings.workspace_module_name}")
    logger.info(f"  Wrapper JAR Path: {settings.wrapper_jar_path}")
    logger.info(f"  Wrapper JAR URL: {settings.wrapper_jar_url}")
    logger.info(f"  Build Timeout Minutes: {settings.build_timeout_minutes}")
    logger.info(f"  Task Names: {settings.task_names}")
    logger.info(f"  Include Properties: {settings.include_properties}")
    logger.info(f"  Bundle Mode: {settings.bundle_mode}")
    logger.info(f"  Artifact Repositories: {settings.artifact_repositories}")
    logger.info(f"  Use Maven Local: {settings.use_maven_local}")
    logger.info(f"  Artifact Cache Dir: {settings.artifact_cache_dir}")


def _build_dir(args: argparse.Namespace, settings: BridgeSettings) -> Path:
    if args.build_dir:
        return Path(args.build_dir)
    return Path(args.module_dir) / settings.build_dir


def _workspace_dir(args: argparse.Namespace, settings: BridgeSettings) -> Path:
    return _build_dir(args, settings) / settings.workspace_module_name


def _extension(
    args: argparse.Namespace, settings: BridgeSettings
) -> ParametersExtension:
    """Fill the configuration block from flags, then settings."""
    extension = ParametersExtension()
    artifact = args.artifact or settings.plugins_artifact
    if artifact:
        extension.codegen_plugins_artifact = artifact
    dependencies = getattr(args, "proto_dependency", None)
    extension.proto_dependencies(
        *(dependencies if dependencies is not None else settings.proto_dependencies)
    )
    return extension


def _workspace_config(
    args: argparse.Namespace, settings: BridgeSettings
) -> WorkspaceConfig:
    """Assemble the run configuration.

    Raises:
        ExtensionConfigurationError: If no plugins artifact is configured.
        ValueError: If a value is invalid.
    """
    extension = _extension(args, settings)
    timeout_minutes = getattr(args, "timeout_minutes", None)
    options = {
        "extra_dependencies": extension.dependencies,
        "task_names": getattr(args, "task", None) or settings.task_names,
        "max_duration_minutes": (
            timeout_minutes
            if timeout_minutes is not None
            else settings.build_timeout_minutes
        ),
        "forwarded_properties": (
            getattr(args, "include_property", None)
            or settings.include_properties
        ),
    }
    return WorkspaceConfig.for_module(
        build_dir=_build_dir(args, settings),
        source_module_dir=Path(args.module_dir),
        target_artifact=extension.codegen_plugins_artifact,
        workspace_module_name=settings.workspace_module_name,
        **options,
    )


def _build_resolver(settings: BridgeSettings) -> ArtifactResolver:
    resolvers: List[ArtifactResolver] = []
    if settings.use_maven_local:
        resolvers.append(MavenLocalResolver())
    if settings.artifact_repositories:
        resolvers.append(
            RemoteMavenResolver(
                repository_urls=settings.artifact_repositories,
                cache_dir=Path(settings.artifact_cache_dir),
            )
        )
    return ChainResolver(resolvers)


def _build_provisioner(
    args: argparse.Namespace, settings: BridgeSettings, windows: bool
) -> WorkspaceProvisioner:
    bundle_mode = args.bundle_mode if args.bundle_mode is not None else settings.bundle_mode
    downloader = None
    if settings.wrapper_jar_url:
        downloader = WrapperJarDownloader(
            url=settings.wrapper_jar_url,
            cache_dir=Path(settings.artifact_cache_dir),
        )
    return WorkspaceProvisioner(
        resolver=_build_resolver(settings) if bundle_mode else None,
        wrapper_source=(
            Path(settings.wrapper_jar_path) if settings.wrapper_jar_path else None
        ),
        wrapper_downloader=downloader,
        windows=windows,
    )


def _host_properties(args: argparse.Namespace) -> Dict[str, str]:
    """Parse the -P assignments.

    Raises:
        ValueError: If an assignment is malformed.
    """
    properties: Dict[str, str] = {}
    for assignment in args.properties:
        name, value = parse_property_assignment(assignment)
        properties[name] = value
    return properties


def _build_orchestrator(
    args: argparse.Namespace,
    settings: BridgeSettings,
    config: WorkspaceConfig,
    event_emitter: Optional[EventEmitter] = None,
) -> CodegenOrchestrator:
    """Wire the orchestrator and its dependencies."""
    host_task_names = ["clean"] if getattr(args, "clean", False) else []
    root_dir = getattr(args, "root_dir", None) or args.module_dir
    host = StaticHostContext.from_gradle_properties(
        Path(root_dir),
        overrides=_host_properties(args) if hasattr(args, "properties") else None,
        task_names=host_task_names,
    )
    windows = is_windows()
    return CodegenOrchestrator(
        config=config,
        provisioner=_build_provisioner(args, settings, windows),
        runner=DelegatedBuildRunner(
            host=host, windows=windows, event_emitter=event_emitter
        ),
        event_emitter=event_emitter,
    )


async def _cmd_generate(args: argparse.Namespace, settings: BridgeSettings) -> int:
    config = _workspace_config(args, settings)
    sinks = [EventSinkType.LOGGING]
    if args.metrics_file:
        sinks.append(EventSinkType.METRICS)
    event_emitter = create_event_emitter(sinks)

    orchestrator = _build_orchestrator(args, settings, config, event_emitter)
    try:
        await orchestrator.execute(APPLY_PLUGINS_TASK)
    finally:
        await event_emitter.close()
        if args.metrics_file:
            write_metrics_file(Path(args.metrics_file))

    report = orchestrator.copy_out_report
    logger.info(
        "Generated sources are in %s (%d new, %d kept)",
        config.source_module_dir / "generated",
        len(report.copied) if report else 0,
        len(report.skipped) if report else 0,
    )
    return EXIT_OK


async def _cmd_provision(args: argparse.Namespace, settings: BridgeSettings) -> int:
    config = _workspace_config(args, settings)
    orchestrator = _build_orchestrator(args, settings, config)
    await orchestrator.execute(CREATE_WORKSPACE_TASK)
    logger.info("Workspace is ready at %s", config.workspace_dir)
    return EXIT_OK


async def _cmd_clean(args: argparse.Namespace, settings: BridgeSettings) -> int:
    workspace_dir = _workspace_dir(args, settings)
    if WorkspaceProvisioner().clean(workspace_dir):
        logger.info("Removed %s", workspace_dir)
    else:
        logger.info("No workspace at %s", workspace_dir)
    return EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the CLI and return its exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = get_settings()
    except ValidationError as exc:
        logging.basicConfig(level=logging.INFO)
        logger.error("Invalid configuration: %s", exc)
        return EXIT_USAGE

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    _log_configuration(settings)

    try:
        return asyncio.run(args.handler(args, settings))
    except (ExtensionConfigurationError, ValueError) as exc:
        logger.error("Invalid usage: %s", exc)
        return EXIT_USAGE
    except BRIDGE_ERRORS as exc:
        logger.error("%s failed: %s", args.command, exc)
        return EXIT_FAILURE


def cli_entrypoint() -> None:
    """Console-script entrypoint."""
    raise SystemExit(main())


if __name__ == "__main__":
    cli_entrypoint()
