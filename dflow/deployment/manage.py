"""
Lifecycle management script for a dflow deployment.

This script scales, recycles and resets the services deployed in one OpenShift
environment, or in the local compose project when LIFECYCLE_PLATFORM=compose.

Options:
    -e <env>        Deployment environment (dev, test, prod, tools). Required.
    -p <profile>    Load settings.<profile>.env on top of settings.env.
    -P              Use the default settings profile only (ignore -p).
    -l              Apply local overrides from settings.local.env.
    -x              Debug: trace every external command.
    -h              Show usage.

Commands:
    scaleup [service...]    - Scale services up (all services by default).
    scaledown [service...]  - Scale services down (all services by default).
    recycle [service...]    - Scale services down, wait, and scale them back up.
    reset [service...]      - Delete the wallets of issuer services and restart them
                              (all issuer services by default).
    getpods                 - List the pods of the environment.

Usage:
    dflow-lifecycle -e <env> [-p <profile>] [-P] [-l] [-x] <command> [service...] [KEY=VALUE...]

Example:
    dflow-lifecycle -e dev recycle bcreg-agent
    dflow-lifecycle -e test reset
"""

import argparse
import sys
from typing import List, Optional
from pydantic import ValidationError
from dflow.app.config import resolve_settings
from dflow.app.core.command_line import split_tokens
from dflow.app.core.logger import get_logger, setup_logging
from dflow.app.core.shell import PlatformError, PreconditionError
from dflow.app.core.controller.lifecycle_controller import BatchResult
from dflow.app.core.controller.service_registry import TargetContext
from dflow.deployment.controller_factory import create_lifecycle_controller, registry

logger = get_logger("lifecycle")

USAGE = """Usage: dflow-lifecycle -e <env> [-p <profile>] [-P] [-l] [-x] [-h] <command> [service...] [KEY=VALUE...]

Options:
  -e <env>      Deployment environment: dev, test, prod or tools (required)
  -p <profile>  Load settings.<profile>.env
  -P            Use the default settings profile only
  -l            Apply settings.local.env
  -x            Trace external commands
  -h            Show this help

Commands:
  scaleup [service...]    Scale services up
  scaledown [service...]  Scale services down
  recycle [service...]    Scale services down and back up
  reset [service...]      Delete issuer wallets and restart the issuers
  getpods                 List the pods of the environment
"""

COMMANDS = ("scaleup", "scaledown", "recycle", "reset", "getpods")


def usage() -> None:
    print(USAGE)
    sys.exit(1)


class ArgumentParser(argparse.ArgumentParser):
    """ Parser that reports bad options with the usage text and exit status 1. """

    def error(self, message):
        print(f"Error: {message}")
        usage()


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(prog="dflow-lifecycle", add_help=False)
    parser.add_argument("-e", dest="environment")
    parser.add_argument("-p", dest="profile")
    parser.add_argument("-P", dest="default_profile", action="store_true")
    parser.add_argument("-l", dest="local", action="store_true")
    parser.add_argument("-x", dest="debug", action="store_true")
    parser.add_argument("-h", dest="help", action="store_true")
    parser.add_argument("command", nargs="?")
    parser.add_argument("args", nargs=argparse.REMAINDER)
    return parser


def settings_files(args: argparse.Namespace) -> List[str]:
    """ Settings files for the selected profile, lowest precedence first. """
    files = ["settings.env"]
    if args.profile and not args.default_profile:
        files.append(f"settings.{args.profile}.env")
    if args.local:
        files.append("settings.local.env")
    return files


def report(result: BatchResult) -> None:
    for failure in result.failures:
        logger.error(f"  ❌ {failure.operation} '{failure.service}': {failure.message}")
    if not result.ok:
        logger.error(f"{result.operation} finished with {len(result.failures)} failure(s)")
        sys.exit(1)


def main(argv: Optional[List[str]] = None) -> None:
    """
    Main entrypoint for the lifecycle CLI.

    Raises:
        SystemExit: With status 1 on usage errors, a missing `-e` option, an unknown
                    command, or when any service of the batch failed.
    """
    argv = sys.argv[1:] if argv is None else argv
    args = build_parser().parse_args(argv)

    if args.help:
        usage()
    if not args.environment:
        print("Error: you must specify an environment with -e.")
        usage()
    if not args.command:
        usage()

    command = args.command.lower()
    if command not in COMMANDS:
        print(f"Warning: unrecognized command '{args.command}'.")
        usage()

    command_line = split_tokens(args.args)
    overrides = dict(command_line.overrides, DEPLOYMENT_ENV=args.environment)
    if args.debug:
        overrides["LOG_LEVEL"] = "DEBUG"
    try:
        settings = resolve_settings(env_files=settings_files(args), overrides=overrides)
    except ValidationError as e:
        print(f"Invalid configuration: {e}")
        sys.exit(1)

    setup_logging(settings.log_level)
    if settings.lifecycle_platform == "openshift":
        logger.info(f"Using namespace {settings.namespace}")
    else:
        logger.info(f"Using compose project {settings.project_name}")
    controller = create_lifecycle_controller(settings)

    try:
        if command == "getpods":
            for line in controller.get_pods():
                print(line)
            return
        if command == "reset":
            targets = registry.resolve_targets(command_line.targets, TargetContext.ISSUER)
            result = controller.reset(targets)
        else:
            targets = registry.resolve_targets(command_line.targets, TargetContext.ALL)
            operation = {"scaleup": controller.scale_up,
                         "scaledown": controller.scale_down,
                         "recycle": controller.recycle}[command]
            result = operation(targets)
    except PreconditionError as e:
        logger.error(str(e))
        sys.exit(1)
    except PlatformError as e:
        logger.error(f"❌ {e}")
        sys.exit(1)
    report(result)


if __name__ == "__main__":
    main()
