"""TCP/TLS stream setup for console proxy connections."""

from __future__ import annotations

import asyncio
import logging
import ssl

from websockets.exceptions import InvalidURI
from websockets.uri import parse_uri

from ..errors import ConsoleConnectionError, ConsoleTimeout

_LOGGER = logging.getLogger(__name__)


def create_ssl_context(verify_ssl: bool) -> ssl.SSLContext:
    """Build the client TLS context.

    With ``verify_ssl`` off, neither the chain nor the hostname is checked.
    """
    context = ssl.create_default_context()
    if not verify_ssl:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


async def open_stream(
    url: str,
    *,
    verify_ssl: bool = True,
    timeout: float = 15.0,
) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """Open the byte stream a console WebSocket runs over.

    ``wss://`` URLs are wrapped in TLS with the URL host used for SNI and
    certificate validation. Failures are not retried.

    Args:
        url: Console proxy WebSocket URL
        verify_ssl: Validate the server certificate chain and hostname
        timeout: Connection timeout covering TCP connect and TLS negotiation

    Raises:
        ConsoleConnectionError: Invalid URL, DNS, TCP or TLS failure
        ConsoleTimeout: Connection did not complete in time
    """
    try:
        uri = parse_uri(url)
    except InvalidURI as err:
        raise ConsoleConnectionError(f"Invalid console URL: {err}") from err

    context: ssl.SSLContext | None = None
    if uri.secure:
        context = create_ssl_context(verify_ssl)
        if not verify_ssl:
            _LOGGER.warning(
                "[%s] TLS certificate verification disabled", uri.host
            )

    _LOGGER.debug(
        "[%s] Opening %s connection to port %d",
        uri.host,
        "TLS" if context else "TCP",
        uri.port,
    )
    try:
        return await asyncio.wait_for(
            asyncio.open_connection(
                uri.host,
                uri.port,
                ssl=context,
                server_hostname=uri.host if context else None,
            ),
            timeout=timeout,
        )
    except TimeoutError as err:
        raise ConsoleTimeout("Console connection timed out") from err
    except OSError as err:
        raise ConsoleConnectionError(f"Console connection failed: {err}") from err
