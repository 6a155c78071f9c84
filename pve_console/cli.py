"""Command line entry point: ``pve-console vm 100``."""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import getpass
import logging
import sys
from enum import IntEnum

from .config import ConsoleSettings
from .errors import (
    ConsoleAuthenticationError,
    ConsoleClientError,
    ConsoleConfigError,
    ConsoleConnectionError,
    ConsoleHandshakeError,
    ConsoleTimeout,
    ResourceNotFoundError,
)
from .service import open_console
from .terminal import LocalTerminal

_LOGGER = logging.getLogger(__name__)

RESOURCE_KINDS = ("vm", "ct", "container")


class ExitCode(IntEnum):
    """Process exit codes, following BSD sysexits loosely."""

    SUCCESS = 0
    GENERAL_ERROR = 1
    USAGE_ERROR = 2
    CONFIG_ERROR = 3
    CONNECTION_ERROR = 4
    NOT_FOUND = 5
    PERMISSION_DENIED = 6
    INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pve-console",
        description="Open an interactive terminal console to a Proxmox VM or container",
    )
    parser.add_argument("kind", choices=RESOURCE_KINDS, help="Resource type")
    parser.add_argument("vmid", type=int, help="VM or container id")
    parser.add_argument("--node", "-n", help="Node the guest runs on (default: looked up)")
    parser.add_argument("--server", help="Proxmox server URL (env: PVE_SERVER)")
    parser.add_argument("--user", help="Username for session authentication (env: PVE_USER)")
    parser.add_argument(
        "--password", help="Password for session authentication (env: PVE_PASSWORD)"
    )
    parser.add_argument(
        "--insecure",
        "-k",
        action="store_true",
        help="Skip TLS certificate verification",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser


def prompt_credentials(settings: ConsoleSettings) -> ConsoleSettings | None:
    """Ask for whatever credentials are still missing.

    Returns:
        Settings with username and password, or None if the user cancelled
    """
    if settings.username and settings.password:
        return settings

    username = settings.username
    try:
        if not username:
            sys.stderr.write("Username: ")
            sys.stderr.flush()
            username = sys.stdin.readline().strip()
        password = settings.password or getpass.getpass("Password: ")
    except (EOFError, KeyboardInterrupt):
        return None

    if not username or not password:
        return None
    return dataclasses.replace(settings, username=username, password=password)


def announce(message: str) -> None:
    print(f"{message} (press Ctrl+] to disconnect)", file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    terminal = LocalTerminal()
    if not terminal.is_tty():
        _LOGGER.error("Console requires an interactive terminal (TTY)")
        return ExitCode.USAGE_ERROR

    try:
        settings = ConsoleSettings.from_env(
            server=args.server,
            username=args.user,
            password=args.password,
            node=args.node,
            verify_ssl=False if args.insecure else None,
        )
    except ConsoleConfigError as err:
        _LOGGER.error("%s", err)
        return ExitCode.CONFIG_ERROR

    resolved = prompt_credentials(settings)
    if resolved is None:
        _LOGGER.error("Credentials are required")
        return ExitCode.GENERAL_ERROR

    try:
        asyncio.run(
            open_console(
                resolved,
                args.kind,
                args.vmid,
                terminal=terminal,
                announce=announce,
            )
        )
    except KeyboardInterrupt:
        return ExitCode.INTERRUPTED
    except ResourceNotFoundError as err:
        _LOGGER.error("%s", err)
        return ExitCode.NOT_FOUND
    except ConsoleAuthenticationError as err:
        _LOGGER.error("%s", err)
        return ExitCode.PERMISSION_DENIED
    except ConsoleConfigError as err:
        _LOGGER.error("%s", err)
        return ExitCode.CONFIG_ERROR
    except (ConsoleConnectionError, ConsoleTimeout, ConsoleHandshakeError) as err:
        _LOGGER.error("Cannot connect to console: %s", err)
        return ExitCode.CONNECTION_ERROR
    except ConsoleClientError as err:
        _LOGGER.error("%s", err)
        return ExitCode.GENERAL_ERROR

    return ExitCode.SUCCESS
