"""HTTP client for the Proxmox VE management API endpoints a console needs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import aiohttp

from .errors import (
    ConsoleAuthenticationError,
    ConsoleConnectionError,
    ConsoleResponseError,
    ConsoleTimeout,
)

AUTH_COOKIE = "PVEAuthCookie"
CSRF_HEADER = "CSRFPreventionToken"


@dataclass(frozen=True)
class AuthTicket:
    """Session ticket returned by ``access/ticket``."""

    ticket: str
    csrf_token: str

    @property
    def cookie(self) -> str:
        return f"{AUTH_COOKIE}={self.ticket}"


@dataclass(frozen=True)
class ResourceInfo:
    """Guest entry from ``cluster/resources``."""

    vmid: int
    node: str
    type: str
    status: str
    name: str | None = None


@dataclass(frozen=True)
class TermProxy:
    """One-time console ticket returned by ``termproxy``."""

    port: int
    ticket: str
    user: str


class ProxmoxHttpClient:
    """HTTP client wrapper for the Proxmox VE REST API.

    Every call after :meth:`authenticate` uses the session ticket rather than
    an API token: the console proxy only accepts a termproxy ticket whose
    identity matches the session cookie.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        server: str,
        *,
        verify_ssl: bool = True,
        timeout: float = 15.0,
    ) -> None:
        self._session = session
        self._server = server.rstrip("/")
        self._verify_ssl = verify_ssl
        self._timeout = timeout

    def _url(self, path: str) -> str:
        return f"{self._server}/api2/json/{path}"

    def _request_kwargs(self, auth: AuthTicket | None = None) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "timeout": aiohttp.ClientTimeout(total=self._timeout),
        }
        if not self._verify_ssl:
            kwargs["ssl"] = False
        if auth is not None:
            kwargs["headers"] = {
                "Cookie": auth.cookie,
                CSRF_HEADER: auth.csrf_token,
            }
        return kwargs

    async def authenticate(self, username: str, password: str) -> AuthTicket:
        """Log in with username and password."""
        url = self._url("access/ticket")
        try:
            async with self._session.post(
                url,
                data={"username": username, "password": password},
                **self._request_kwargs(),
            ) as resp:
                if resp.status in (401, 403):
                    raise ConsoleAuthenticationError(
                        resp.status, f"Authentication failed for {username}"
                    )
                if resp.status != 200:
                    raise ConsoleResponseError(
                        resp.status, "Authentication request failed with non-200 response"
                    )
                data = (await resp.json()).get("data") or {}
        except TimeoutError as err:
            raise ConsoleTimeout("Authentication request timed out") from err
        except aiohttp.ClientError as err:
            raise ConsoleConnectionError("Authentication request failed") from err

        if not data.get("ticket"):
            raise ConsoleAuthenticationError(200, f"Authentication failed for {username}")
        return AuthTicket(
            ticket=data["ticket"],
            csrf_token=data.get("CSRFPreventionToken", ""),
        )

    async def find_resource(self, vmid: int, auth: AuthTicket) -> ResourceInfo | None:
        """Locate a VM or container in the cluster by its id."""
        url = self._url("cluster/resources")
        try:
            async with self._session.get(
                url,
                params={"type": "vm"},
                **self._request_kwargs(auth),
            ) as resp:
                if resp.status != 200:
                    raise ConsoleResponseError(
                        resp.status, "Resource listing failed with non-200 response"
                    )
                entries = (await resp.json()).get("data") or []
        except TimeoutError as err:
            raise ConsoleTimeout("Resource listing timed out") from err
        except aiohttp.ClientError as err:
            raise ConsoleConnectionError("Resource listing failed") from err

        for entry in entries:
            if int(entry.get("vmid", -1)) == vmid:
                return ResourceInfo(
                    vmid=vmid,
                    node=entry.get("node", ""),
                    type=entry.get("type", ""),
                    status=entry.get("status", "unknown"),
                    name=entry.get("name"),
                )
        return None

    async def open_termproxy(
        self,
        auth: AuthTicket,
        *,
        node: str,
        resource_path: str,
    ) -> TermProxy:
        """Ask the node to start a terminal proxy for the guest."""
        url = self._url(f"nodes/{node}/{resource_path}/termproxy")
        try:
            async with self._session.post(url, **self._request_kwargs(auth)) as resp:
                if resp.status != 200:
                    raise ConsoleAuthenticationError(
                        resp.status, f"Termproxy failed with status {resp.status}"
                    )
                data = (await resp.json()).get("data") or {}
        except TimeoutError as err:
            raise ConsoleTimeout("Termproxy request timed out") from err
        except aiohttp.ClientError as err:
            raise ConsoleConnectionError("Termproxy request failed") from err

        try:
            return TermProxy(
                port=int(data["port"]),
                ticket=data["ticket"],
                user=data["user"],
            )
        except (KeyError, TypeError, ValueError) as err:
            raise ConsoleResponseError(200, "Malformed termproxy response") from err
