"""Interactive Proxmox VE console client over the xtermjs WebSocket proxy."""

__version__ = "0.1.0"

from .config import ConsoleSettings
from .errors import (
    ConsoleAuthenticationError,
    ConsoleAuthenticationTimeout,
    ConsoleClientError,
    ConsoleConfigError,
    ConsoleConnectionError,
    ConsoleHandshakeError,
    ConsoleHandshakeTimeout,
    ConsoleResponseError,
    ConsoleTimeout,
    ResourceNotFoundError,
    ResourceNotRunningError,
)
from .http import AuthTicket, ProxmoxHttpClient, ResourceInfo, TermProxy
from .protocol import (
    build_referer,
    decode_input,
    encode_auth,
    encode_input,
    encode_ping,
    encode_resize,
    is_auth_ok,
    is_disconnect_key,
)
from .service import build_websocket_url, open_console, resource_path
from .session import ConsoleSession, SessionConfig
from .state import SessionState
from .terminal import LocalTerminal

__all__ = [
    "AuthTicket",
    "ConsoleAuthenticationError",
    "ConsoleAuthenticationTimeout",
    "ConsoleClientError",
    "ConsoleConfigError",
    "ConsoleConnectionError",
    "ConsoleHandshakeError",
    "ConsoleHandshakeTimeout",
    "ConsoleResponseError",
    "ConsoleSession",
    "ConsoleSettings",
    "ConsoleTimeout",
    "LocalTerminal",
    "ProxmoxHttpClient",
    "ResourceInfo",
    "ResourceNotFoundError",
    "ResourceNotRunningError",
    "SessionConfig",
    "SessionState",
    "TermProxy",
    "__version__",
    "build_referer",
    "build_websocket_url",
    "decode_input",
    "encode_auth",
    "encode_input",
    "encode_ping",
    "encode_resize",
    "is_auth_ok",
    "is_disconnect_key",
    "open_console",
    "resource_path",
]
