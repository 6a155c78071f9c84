"""Frame builders for the Proxmox xtermjs console protocol.

The console proxy speaks a tiny text protocol inside WebSocket text frames.
Only the client numbers its messages; whatever the proxy sends back is raw
terminal output.

    0:<bytelength>:<data>   keyboard input
    1:<cols>:<rows>:        terminal resize
    2                       keepalive ping
"""

from __future__ import annotations

MSG_INPUT = "0"
MSG_RESIZE = "1"
MSG_PING = "2"

# Ctrl+], the same escape telnet uses.
DISCONNECT_KEY = b"\x1d"

AUTH_OK = b"OK"


def encode_input(data: bytes) -> bytes:
    """Wrap raw keystroke bytes in an input frame.

    The length field counts bytes, not characters, so multi-byte UTF-8
    sequences and arbitrary binary input survive intact.
    """
    return f"{MSG_INPUT}:{len(data)}:".encode("ascii") + data


def decode_input(frame: bytes) -> bytes:
    """Extract the payload of an input frame built by :func:`encode_input`.

    Raises:
        ValueError: If the envelope is malformed or the length does not match
    """
    kind, sep, rest = frame.partition(b":")
    if kind != MSG_INPUT.encode("ascii") or not sep:
        raise ValueError("Not an input frame")
    length_raw, sep, payload = rest.partition(b":")
    if not sep or not length_raw.isdigit():
        raise ValueError("Input frame has no length field")
    if int(length_raw) != len(payload):
        raise ValueError(
            f"Input frame length {int(length_raw)} does not match payload ({len(payload)})"
        )
    return payload


def encode_resize(cols: int, rows: int) -> bytes:
    """Build a resize frame for the given terminal dimensions."""
    return f"{MSG_RESIZE}:{int(cols)}:{int(rows)}:".encode("ascii")


def encode_ping() -> bytes:
    """Build a keepalive frame."""
    return MSG_PING.encode("ascii")


def encode_auth(user: str, ticket: str) -> bytes:
    """Build the first frame sent after the WebSocket opens."""
    return f"{user}:{ticket}\n".encode()


def is_disconnect_key(data: bytes) -> bool:
    """Return True when a read chunk is exactly the disconnect keystroke."""
    return data == DISCONNECT_KEY


def is_auth_ok(data: bytes | str | None) -> bool:
    """Return True for the proxy's authentication acknowledgement."""
    if isinstance(data, str):
        data = data.encode()
    return data == AUTH_OK


def build_referer(host: str, port: int) -> str:
    """Build the Referer header that selects the xtermjs text protocol.

    The proxy inspects the Referer query string to decide between xtermjs and
    the binary noVNC protocol, so every key below must be present.
    """
    return (
        f"https://{host}:{port}/"
        "?console=shell&xtermjs=1&vmid=0&vmname=&node=localhost&cmd="
    )
