"""
Command line interface for the 7 Days to Die entrypoint.

With no arguments the full startup runs. ``health`` probes the console,
``console --exec`` sends one console command, and any other argument vector
is executed as a plain command.
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

from .console import ServerConsole
from .constants import Directories, ExitCodes, RuntimeSettings
from .entrypoint import run_entrypoint
from .errors import (
    ArchiveError,
    ConfigError,
    ConsoleClosedError,
    ConsoleConnectError,
    ConsoleStateError,
    ConsoleTimeoutError,
    DownloadError,
    ProcessStartError,
    SdtdRuntimeError,
    SettingsParseError,
    SettingsReadError,
    SettingsWriteError,
)
from .health import check_health
from .logging_utils import configure_runtime_logging
from .permissions import ensure_permissions_and_drop_privileges

COMMANDS = ("entrypoint", "health", "console")


def map_exception_to_exit_code(exc: Exception) -> int:
    """Translate known exceptions to entrypoint exit codes."""
    if isinstance(exc, ConfigError):
        return ExitCodes.CONFIG_INVALID
    if isinstance(exc, (DownloadError, ArchiveError)):
        return ExitCodes.DOWNLOAD_FAILED
    if isinstance(exc, (SettingsReadError, SettingsParseError, SettingsWriteError)):
        return ExitCodes.SETTINGS_INVALID
    if isinstance(exc, ProcessStartError):
        return ExitCodes.PROCESS_START_FAILED
    if isinstance(exc, (ConsoleConnectError, ConsoleClosedError, ConsoleStateError)):
        return ExitCodes.CONSOLE_CONNECTION_FAILED
    if isinstance(exc, ConsoleTimeoutError):
        return ExitCodes.CONSOLE_TIMEOUT
    return ExitCodes.FAILURE


def normalize_exit_code(code: int) -> int:
    """Map a child's negative (signal) return code to the shell convention."""
    if code < 0:
        return 128 - code
    return code


def _run_entrypoint(args, logger: logging.Logger) -> int:
    directories = Directories.from_env()
    ensure_permissions_and_drop_privileges(logger, directories)
    return normalize_exit_code(run_entrypoint(logger, directories, RuntimeSettings.from_env()))


def _run_health(args, logger: logging.Logger) -> int:
    check_health(logger)
    return ExitCodes.OK


def _run_console(args, logger: logging.Logger) -> int:
    response = ServerConsole(logger).execute(args.console_command, response_wait=args.wait)
    if response:
        print(response, end="" if response.endswith("\n") else "\n")
    return ExitCodes.OK


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser."""
    parser = argparse.ArgumentParser(
        prog='sdtd-entrypoint',
        description='7 Days to Die dedicated server entrypoint',
    )
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    entry = subparsers.add_parser('entrypoint', help='Provision and run the server (default)')
    entry.set_defaults(func=_run_entrypoint)

    health = subparsers.add_parser('health', help='Check whether the server console accepts commands')
    health.set_defaults(func=_run_health)

    console = subparsers.add_parser('console', help='Send one command to the server console')
    console.add_argument('--exec', dest='console_command', required=True, help='The console command to send')
    console.add_argument('--wait', type=float, default=1.0,
                         help='Seconds of console silence to wait for before returning output')
    console.set_defaults(func=_run_console)

    return parser


def main(args: Optional[List[str]] = None) -> None:
    """
    Main entry point for the CLI.

    Args:
        args: Command line arguments (uses sys.argv if None)
    """
    logger = configure_runtime_logging()
    if args is None:
        args = sys.argv[1:]

    if args and args[0] not in COMMANDS and not args[0].startswith('-'):
        logger.info("Executing command: %s", " ".join(args))
        os.execvp(args[0], args)

    parser = create_parser()
    parsed_args = parser.parse_args(args or ['entrypoint'])

    try:
        code = parsed_args.func(parsed_args, logger)
    except SdtdRuntimeError as exc:
        logger.error("%s failed: %s", parsed_args.command, exc)
        code = map_exception_to_exit_code(exc)
    except Exception as exc:  # noqa: BLE001
        logger.exception("%s failed with an unexpected error: %s", parsed_args.command, exc)
        code = ExitCodes.FAILURE
    sys.exit(code)


if __name__ == '__main__':
    main()
