"""End-to-end console orchestration: ticket issuance, then the session."""

from __future__ import annotations

import logging
from collections.abc import Callable
from urllib.parse import quote, urlsplit

import aiohttp

from .config import ConsoleSettings
from .errors import (
    ConsoleConfigError,
    ResourceNotFoundError,
    ResourceNotRunningError,
)
from .http import ProxmoxHttpClient, ResourceInfo
from .session import ConsoleSession, SessionConfig
from .terminal import LocalTerminal

_LOGGER = logging.getLogger(__name__)

SCHEME_PORTS = {"https": 443, "http": 80}

RESOURCE_PATHS = {
    "vm": "qemu",
    "qemu": "qemu",
    "ct": "lxc",
    "container": "lxc",
    "lxc": "lxc",
}

RESOURCE_LABELS = {"qemu": "VM", "lxc": "container"}


def resource_path(kind: str, vmid: int) -> str:
    """Return the API path segment for a guest, e.g. ``qemu/100``."""
    try:
        return f"{RESOURCE_PATHS[kind]}/{vmid}"
    except KeyError:
        raise ValueError(f"Unsupported resource type: {kind}") from None


def build_websocket_url(
    server: str,
    *,
    node: str,
    resource_path: str,
    port: int,
    ticket: str,
) -> str:
    """Build the ``vncwebsocket`` URL for a termproxy ticket.

    The proxy listens on the same host and port as the API; a server URL
    without a port uses its scheme's default.
    """
    parts = urlsplit(server)
    scheme = "wss" if parts.scheme == "https" else "ws"
    ws_port = parts.port or SCHEME_PORTS.get(parts.scheme, 443)
    return (
        f"{scheme}://{parts.hostname}:{ws_port}"
        f"/api2/json/nodes/{node}/{resource_path}/vncwebsocket"
        f"?port={port}&vncticket={quote(ticket, safe='')}"
    )


def validate_resource_running(resource: ResourceInfo) -> None:
    """Raise ResourceNotRunningError unless the guest is running."""
    if resource.status != "running":
        raise ResourceNotRunningError(
            f"Resource {resource.vmid} is not running (status: {resource.status})"
        )


async def open_console(
    settings: ConsoleSettings,
    kind: str,
    vmid: int,
    *,
    terminal: LocalTerminal | None = None,
    announce: Callable[[str], None] | None = None,
) -> None:
    """Issue a console ticket for a guest and run an interactive session.

    Args:
        settings: Server, credentials and session tuning
        kind: Resource type as given on the command line (``vm``, ``ct``)
        vmid: Guest id
        terminal: Local terminal to bridge (default: process stdin/stdout)
        announce: Called with a status line once the guest has been found

    Raises:
        ConsoleConfigError: Credentials missing from settings
        ResourceNotFoundError: No guest of this type with this id
        ResourceNotRunningError: Guest is not running
        ConsoleClientError: Any API, connection or handshake failure
    """
    path = resource_path(kind, vmid)
    guest_type = RESOURCE_PATHS[kind]
    label = RESOURCE_LABELS[guest_type]
    if not settings.username or not settings.password:
        raise ConsoleConfigError("Username and password are required for a console")

    async with aiohttp.ClientSession() as http_session:
        client = ProxmoxHttpClient(
            http_session,
            settings.server,
            verify_ssl=settings.verify_ssl,
            timeout=settings.connect_timeout,
        )
        auth = await client.authenticate(settings.username, settings.password)

        resource = await client.find_resource(vmid, auth)
        if resource is None or resource.type != guest_type:
            raise ResourceNotFoundError(f"{label} {vmid} not found")
        validate_resource_running(resource)
        node = settings.node or resource.node

        message = (
            f"Connecting to {label} {vmid} ({resource.name or 'unnamed'}) "
            f"on node {node}..."
        )
        _LOGGER.info("%s", message)
        if announce is not None:
            announce(message)

        termproxy = await client.open_termproxy(auth, node=node, resource_path=path)
        _LOGGER.debug("Termproxy on %s port %d for %s", node, termproxy.port, path)

    config = SessionConfig(
        url=build_websocket_url(
            settings.server,
            node=node,
            resource_path=path,
            port=termproxy.port,
            ticket=termproxy.ticket,
        ),
        cookie=auth.cookie,
        user=termproxy.user,
        ticket=termproxy.ticket,
        verify_ssl=settings.verify_ssl,
    )
    session = ConsoleSession(
        config,
        terminal=terminal,
        connect_timeout=settings.connect_timeout,
        handshake_timeout=settings.handshake_timeout,
        keepalive_interval=settings.keepalive_interval,
    )
    await session.run()
