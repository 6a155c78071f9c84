"""Test console orchestration: URL building, resource checks, open_console()."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from pve_console.config import ConsoleSettings
from pve_console.errors import (
    ConsoleAuthenticationError,
    ConsoleConfigError,
    ResourceNotFoundError,
    ResourceNotRunningError,
)
from pve_console.http import AuthTicket, ResourceInfo, TermProxy
from pve_console.service import (
    build_websocket_url,
    open_console,
    resource_path,
    validate_resource_running,
)

SETTINGS = ConsoleSettings(
    server="https://pve.example.com:8006",
    username="alice@pve",
    password="secret",
)


class TestResourcePath:
    @pytest.mark.parametrize(
        ("kind", "expected"),
        [("vm", "qemu/100"), ("ct", "lxc/100"), ("container", "lxc/100")],
    )
    def test_kinds(self, kind: str, expected: str) -> None:
        assert resource_path(kind, 100) == expected

    def test_unknown_kind(self) -> None:
        with pytest.raises(ValueError, match="Unsupported resource type"):
            resource_path("storage", 100)


class TestBuildWebsocketUrl:
    def test_https_becomes_wss(self) -> None:
        """Test the ticket is percent-encoded in the query string."""
        url = build_websocket_url(
            "https://pve.example.com:8006",
            node="pve1",
            resource_path="qemu/100",
            port=5900,
            ticket="PVEVNC:AB/C+D=",
        )

        assert url == (
            "wss://pve.example.com:8006/api2/json/nodes/pve1/qemu/100/vncwebsocket"
            "?port=5900&vncticket=PVEVNC%3AAB%2FC%2BD%3D"
        )

    def test_plain_http_uses_scheme_port(self) -> None:
        """Test a server without a port keeps the port the API calls use."""
        url = build_websocket_url(
            "http://10.0.0.5",
            node="pve1",
            resource_path="lxc/200",
            port=5901,
            ticket="T",
        )

        assert url.startswith("ws://10.0.0.5:80/api2/json/nodes/pve1/lxc/200/")

    def test_https_without_port(self) -> None:
        url = build_websocket_url(
            "https://pve1", node="pve1", resource_path="qemu/100", port=5900, ticket="T"
        )

        assert url.startswith("wss://pve1:443/")

    def test_bare_host_setting_matches_api_port(self) -> None:
        """Test a bare host resolves to one port for REST and WebSocket."""
        settings = ConsoleSettings.from_env({}, server="pve1")
        url = build_websocket_url(
            settings.server, node="pve1", resource_path="qemu/100", port=5900, ticket="T"
        )

        assert settings.server == "https://pve1:8006"
        assert url.startswith("wss://pve1:8006/")


class TestValidateResourceRunning:
    def test_running(self) -> None:
        validate_resource_running(ResourceInfo(100, "pve1", "qemu", "running"))

    def test_stopped(self) -> None:
        with pytest.raises(ResourceNotRunningError, match="status: stopped"):
            validate_resource_running(ResourceInfo(100, "pve1", "qemu", "stopped"))


class TestOpenConsole:
    """Test open_console() with the HTTP client and session mocked out."""

    @pytest.fixture
    def http_client(self):
        client = MagicMock()
        client.authenticate = AsyncMock(return_value=AuthTicket("PVE:alice@pve:ABC", "csrf"))
        client.find_resource = AsyncMock(
            return_value=ResourceInfo(100, "pve2", "qemu", "running")
        )
        client.open_termproxy = AsyncMock(
            return_value=TermProxy(port=5900, ticket="PVEVNC:XYZ", user="alice@pve")
        )
        return client

    @pytest.fixture
    def patched(self, http_client):
        session = MagicMock()
        session.run = AsyncMock()
        http_session = MagicMock()
        http_session.__aenter__ = AsyncMock(return_value=http_session)
        http_session.__aexit__ = AsyncMock(return_value=None)
        with (
            patch("pve_console.service.aiohttp.ClientSession", return_value=http_session),
            patch(
                "pve_console.service.ProxmoxHttpClient", return_value=http_client
            ) as client_cls,
            patch("pve_console.service.ConsoleSession", return_value=session) as session_cls,
        ):
            yield client_cls, session_cls, session

    async def test_ticket_flow(self, http_client, patched) -> None:
        """Test login, lookup and termproxy feed the session config."""
        client_cls, session_cls, session = patched

        await open_console(SETTINGS, "vm", 100)

        http_client.authenticate.assert_awaited_once_with("alice@pve", "secret")
        http_client.open_termproxy.assert_awaited_once()
        assert http_client.open_termproxy.call_args.kwargs == {
            "node": "pve2",
            "resource_path": "qemu/100",
        }
        config = session_cls.call_args.args[0]
        assert config.url == (
            "wss://pve.example.com:8006/api2/json/nodes/pve2/qemu/100/vncwebsocket"
            "?port=5900&vncticket=PVEVNC%3AXYZ"
        )
        assert config.cookie == "PVEAuthCookie=PVE:alice@pve:ABC"
        assert config.user == "alice@pve"
        assert config.ticket == "PVEVNC:XYZ"
        assert config.verify_ssl is True
        session.run.assert_awaited_once()

    async def test_explicit_node_wins(self, http_client, patched) -> None:
        settings = ConsoleSettings(
            server=SETTINGS.server, username="alice@pve", password="secret", node="pve9"
        )
        http_client.find_resource.return_value = ResourceInfo(100, "pve2", "lxc", "running")

        await open_console(settings, "ct", 100)

        assert http_client.open_termproxy.call_args.kwargs["node"] == "pve9"
        assert http_client.open_termproxy.call_args.kwargs["resource_path"] == "lxc/100"

    async def test_not_found(self, http_client, patched) -> None:
        _, _, session = patched
        http_client.find_resource.return_value = None

        with pytest.raises(ResourceNotFoundError, match="100"):
            await open_console(SETTINGS, "vm", 100)

        http_client.open_termproxy.assert_not_called()
        session.run.assert_not_called()

    async def test_kind_mismatch_is_not_found(self, http_client, patched) -> None:
        """Test a container id requested as a VM is reported as missing."""
        _, _, session = patched
        http_client.find_resource.return_value = ResourceInfo(200, "pve2", "lxc", "running")

        with pytest.raises(ResourceNotFoundError, match="VM 200 not found"):
            await open_console(SETTINGS, "vm", 200)

        http_client.open_termproxy.assert_not_called()
        session.run.assert_not_called()

    async def test_vm_id_requested_as_container(self, http_client, patched) -> None:
        with pytest.raises(ResourceNotFoundError, match="container 100 not found"):
            await open_console(SETTINGS, "ct", 100)

    async def test_announces_guest_after_lookup(self, http_client, patched) -> None:
        """Test the status line names the guest and its node."""
        http_client.find_resource.return_value = ResourceInfo(
            100, "pve2", "qemu", "running", name="web01"
        )
        announce = MagicMock()

        await open_console(SETTINGS, "vm", 100, announce=announce)

        announce.assert_called_once_with("Connecting to VM 100 (web01) on node pve2...")

    async def test_no_announcement_when_not_found(self, http_client, patched) -> None:
        http_client.find_resource.return_value = None
        announce = MagicMock()

        with pytest.raises(ResourceNotFoundError):
            await open_console(SETTINGS, "vm", 100, announce=announce)

        announce.assert_not_called()

    async def test_not_running(self, http_client, patched) -> None:
        http_client.find_resource.return_value = ResourceInfo(100, "pve2", "qemu", "stopped")

        with pytest.raises(ResourceNotRunningError):
            await open_console(SETTINGS, "vm", 100)

        http_client.open_termproxy.assert_not_called()

    async def test_login_failure_propagates(self, http_client, patched) -> None:
        http_client.authenticate.side_effect = ConsoleAuthenticationError(401, "denied")

        with pytest.raises(ConsoleAuthenticationError):
            await open_console(SETTINGS, "vm", 100)

    async def test_missing_credentials(self, patched) -> None:
        client_cls, _, _ = patched
        settings = ConsoleSettings(server=SETTINGS.server, username="alice@pve")

        with pytest.raises(ConsoleConfigError, match="password"):
            await open_console(settings, "vm", 100)

        client_cls.assert_not_called()
