"""
Command-line management script for the dflow demo.

This script builds the demo images and runs the demo locally with docker-compose.

Commands:
    build [service...]      - Build all images (compose images, proxy, frontend builder, application).
    build-dev               - Build the development variant of the application image.
    up|start [service...]   - Start the demo, or only the named services.
    start-dev [service...]  - Build and start the demo with the development application image.
    logs [service...]       - Follow the service logs.
    stop                    - Stop all services, keeping their containers.
    down|rm                 - Remove all containers and volumes.
    lint                    - Lint the frontend sources inside the build-tool image.
    health                  - Probe the health endpoint of every issuer agent.

Any argument of the form KEY=VALUE overrides the matching setting from `.env`.

Usage:
    dflow-manage <command> [service...] [KEY=VALUE...]

Example:
    dflow-manage build
    dflow-manage start LOG_LEVEL=DEBUG
    dflow-manage logs bcreg-agent
"""

import sys
from typing import List, Optional
from pydantic import ValidationError
from dflow.app.config import Settings, resolve_settings
from dflow.app.core.command_line import CommandLine, split_tokens
from dflow.app.core.logger import get_logger, setup_logging
from dflow.app.core.shell import PlatformError, PreconditionError
from dflow.app.core.controller.build_orchestrator import BuildError
from dflow.deployment.controller_factory import (
    create_build_orchestrator, create_compose_platform, registry)

logger = get_logger("manage")

USAGE = """Usage: dflow-manage <command> [service...] [KEY=VALUE...]

Commands:
  build [service...]      Build all images
  build-dev               Build the development application image
  up|start [service...]   Start the demo
  start-dev [service...]  Build and start the demo in development mode
  logs [service...]       Follow the service logs
  stop                    Stop all services
  down|rm                 Remove all containers and volumes
  lint                    Lint the frontend sources
  health                  Probe the issuer agents' health endpoints
"""

ENV_FILES = (".env",)


def usage() -> None:
    print(USAGE)
    sys.exit(1)


def build(settings: Settings, command_line: CommandLine) -> None:
    create_build_orchestrator(settings).build(command_line.targets)


def build_dev(settings: Settings, command_line: CommandLine) -> None:
    create_build_orchestrator(settings).build_dev()


def start(settings: Settings, command_line: CommandLine) -> None:
    create_compose_platform(settings).up(command_line.targets)


def start_dev(settings: Settings, command_line: CommandLine) -> None:
    create_build_orchestrator(settings).build_dev()
    platform = create_compose_platform(settings)
    platform.environment.update({"RUN_MODE": "development", "APP_IMAGE": settings.app_dev_image})
    platform.up(command_line.targets)


def logs(settings: Settings, command_line: CommandLine) -> None:
    create_compose_platform(settings).logs(command_line.targets)


def stop(settings: Settings, command_line: CommandLine) -> None:
    create_compose_platform(settings).stop()


def down(settings: Settings, command_line: CommandLine) -> None:
    create_compose_platform(settings).down()


def lint(settings: Settings, command_line: CommandLine) -> None:
    print(create_build_orchestrator(settings).lint())


def health(settings: Settings, command_line: CommandLine) -> None:
    platform = create_compose_platform(settings)
    unhealthy = []
    for service in registry.issuer_services():
        if command_line.targets and service.name not in command_line.targets:
            continue
        url = f"{settings.service_url(service)}{settings.health_path}"
        ready, message = platform.check_service_ready(service.name, url)
        if ready:
            logger.info(f"  ✅ {message}")
        else:
            logger.warning(f"  ⚠️ {service.name}: {message}")
            unhealthy.append(service.name)
    if unhealthy:
        raise PlatformError(f"Not ready: {', '.join(unhealthy)}")


COMMANDS = {
    "build": build,
    "build-dev": build_dev,
    "up": start,
    "start": start,
    "start-dev": start_dev,
    "logs": logs,
    "stop": stop,
    "down": down,
    "rm": down,
    "lint": lint,
    "health": health,
}


def main(argv: Optional[List[str]] = None) -> None:
    """
    Main entrypoint for the manage CLI.

    Parses the first command-line argument and dispatches to the matching command.

    Raises:
        SystemExit: With status 1 if no command or an unknown command is provided,
                    or if the command fails.
    """
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        usage()

    command = argv[0].lower()
    handler = COMMANDS.get(command)
    if handler is None:
        print(f"Unknown command: {argv[0]}")
        usage()

    command_line = split_tokens(argv[1:])
    try:
        settings = resolve_settings(env_files=ENV_FILES, overrides=command_line.overrides)
    except ValidationError as e:
        print(f"Invalid configuration: {e}")
        sys.exit(1)

    setup_logging(settings.log_level)
    try:
        handler(settings, command_line)
    except PreconditionError as e:
        logger.error(str(e))
        sys.exit(1)
    except (BuildError, PlatformError) as e:
        logger.error(f"❌ {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
