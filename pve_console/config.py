"""Settings for console sessions, from explicit values and the environment."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit, urlunsplit

from .errors import ConsoleConfigError
from .session import CONNECT_TIMEOUT, HANDSHAKE_TIMEOUT
from .state import KEEPALIVE_INTERVAL

TRUTHY = {"1", "true", "yes", "on"}
FALSY = {"0", "false", "no", "off"}

ENV_SERVER = "PVE_SERVER"
ENV_USER = "PVE_USER"
ENV_PASSWORD = "PVE_PASSWORD"
ENV_NODE = "PVE_NODE"
ENV_VERIFY_SSL = "PVE_VERIFY_SSL"
ENV_KEEPALIVE = "PVE_CONSOLE_KEEPALIVE"

API_PORT = 8006


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in TRUTHY:
        return True
    if value in FALSY:
        return False
    raise ConsoleConfigError(f"{name} must be a boolean, got '{raw}'")


def _parse_seconds(name: str, raw: str) -> float:
    try:
        value = float(raw)
    except ValueError as err:
        raise ConsoleConfigError(f"{name} must be a number, got '{raw}'") from err
    if value <= 0:
        raise ConsoleConfigError(f"{name} must be positive, got '{raw}'")
    return value


@dataclass(frozen=True)
class ConsoleSettings:
    """Resolved settings for one console invocation."""

    server: str
    username: str | None = None
    password: str | None = None
    node: str | None = None
    verify_ssl: bool = True
    connect_timeout: float = CONNECT_TIMEOUT
    handshake_timeout: float = HANDSHAKE_TIMEOUT
    keepalive_interval: float = KEEPALIVE_INTERVAL

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> ConsoleSettings:
        """Build settings, preferring explicit overrides over the environment.

        Overrides set to None are ignored, so unset CLI flags fall through to
        environment variables and then to defaults. A bare host becomes
        ``https://<host>:8006``; the API and console proxy share that port.

        Raises:
            ConsoleConfigError: If no server is configured or a value is invalid
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}

        if env.get(ENV_SERVER):
            values["server"] = env[ENV_SERVER]
        if env.get(ENV_USER):
            values["username"] = env[ENV_USER]
        if env.get(ENV_PASSWORD):
            values["password"] = env[ENV_PASSWORD]
        if env.get(ENV_NODE):
            values["node"] = env[ENV_NODE]
        if env.get(ENV_VERIFY_SSL):
            values["verify_ssl"] = _parse_bool(ENV_VERIFY_SSL, env[ENV_VERIFY_SSL])
        if env.get(ENV_KEEPALIVE):
            values["keepalive_interval"] = _parse_seconds(
                ENV_KEEPALIVE, env[ENV_KEEPALIVE]
            )

        values.update({key: value for key, value in overrides.items() if value is not None})

        server = values.get("server")
        if not server:
            raise ConsoleConfigError(
                f"No Proxmox server configured (use --server or {ENV_SERVER})"
            )
        if not server.startswith(("http://", "https://")):
            server = f"https://{server}"
        parts = urlsplit(server.rstrip("/"))
        try:
            port = parts.port
        except ValueError as err:
            raise ConsoleConfigError(f"Invalid server URL '{server}': {err}") from err
        if port is None:
            parts = parts._replace(netloc=f"{parts.netloc}:{API_PORT}")
        values["server"] = urlunsplit(parts)

        return cls(**values)
