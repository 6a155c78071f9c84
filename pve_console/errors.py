"""Client error types for Proxmox console sessions."""

from __future__ import annotations


class ConsoleClientError(Exception):
    """Base error for console client failures."""


class ConsoleConfigError(ConsoleClientError):
    """Console settings are missing or invalid."""


class ConsoleTimeout(ConsoleClientError):
    """Timeout while communicating with the hypervisor."""


class ConsoleHandshakeTimeout(ConsoleTimeout):
    """WebSocket upgrade did not complete in time."""


class ConsoleAuthenticationTimeout(ConsoleTimeout):
    """Console proxy did not acknowledge the ticket in time."""


class ConsoleConnectionError(ConsoleClientError):
    """Network connection to the console proxy failed."""


class ConsoleHandshakeError(ConsoleClientError):
    """WebSocket handshake failed."""


class ConsoleResponseError(ConsoleClientError):
    """HTTP response error from the management API."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status


class ConsoleAuthenticationError(ConsoleResponseError):
    """Login or termproxy request was rejected."""


class ResourceNotFoundError(ConsoleClientError):
    """No guest with the requested id exists in the cluster."""


class ResourceNotRunningError(ConsoleClientError):
    """Target VM or container is not in the running state."""
