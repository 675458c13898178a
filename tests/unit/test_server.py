"""
Unit tests for bridge server wiring and startup
"""

import asyncio
import socket
from unittest.mock import AsyncMock, patch

import pytest
from starlette.applications import Starlette

from bridge.server import BridgeServer, check_port_available, main, parse_args


class TestBridgeServer:

    @pytest.fixture
    def server(self, config):
        return BridgeServer(config)

    def test_server_initialization(self, server):
        assert server.connection.connected is False
        assert server.mcp_tools is None
        assert isinstance(server.app, Starlette)
        assert server.websocket_server is None

    def test_registers_default_tools(self, server):
        endpoints = {d.endpoint for d in server.registry.discover()}
        assert endpoints == {
            "/navigate", "/click", "/type", "/wait", "/evaluate",
            "/capture-screenshot", "/get-content", "/console-logs", "/console-errors",
            "/network-errors", "/clear-console-logs", "/clear-console-errors", "/audit",
        }

    def test_buffers_use_configured_size(self, server, config):
        assert server.connection.aggregators.console_logs.max_size == config.max_log_entries

    def test_mcp_app_carries_facade_routes(self, config):
        server = BridgeServer(config.model_copy(update={"enable_mcp": True}))
        paths = {getattr(route, "path", None) for route in server.app.routes}
        assert server.mcp_tools is not None
        assert {"/health", "/navigate", "/capture-screenshot", "/tools"} <= paths

    @pytest.mark.asyncio
    async def test_start_and_shutdown(self, server):
        server_task = asyncio.create_task(server.start_server())
        for _ in range(100):
            if server.websocket_server is not None and server.http_server is not None \
                    and server.http_server.started:
                break
            await asyncio.sleep(0.02)
        assert server.websocket_server is not None

        await server.shutdown(server_task)

        assert server.websocket_server is None
        assert server_task.done()


class TestPortCheck:

    def test_bound_port_is_fatal(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("127.0.0.1", 0))
            sock.listen(1)
            port = sock.getsockname()[1]
            with pytest.raises(RuntimeError, match=str(port)):
                check_port_available("127.0.0.1", port)

    def test_port_zero_is_skipped(self):
        check_port_available("127.0.0.1", 0)


class TestCommandLine:

    def test_parse_args(self):
        args = parse_args(["--port", "4000", "--ws-port", "9000", "--screenshot-dir", "/tmp/s",
                           "--no-mcp", "--debug"])
        assert args.http_port == 4000
        assert args.ws_port == 9000
        assert args.screenshot_dir == "/tmp/s"
        assert args.no_mcp is True
        assert args.debug is True

    def test_defaults_leave_config_alone(self):
        args = parse_args([])
        assert args.host is None
        assert args.http_port is None
        assert args.no_mcp is False

    def test_help_names_extension_endpoint(self, capsys):
        with pytest.raises(SystemExit):
            parse_args(["--help"])
        out = capsys.readouterr().out
        assert "--ws-port" in out
        assert "/extension-ws" in out

    @pytest.mark.asyncio
    async def test_main_forces_localhost(self):
        with patch("bridge.server.BridgeServer") as server_cls:
            server_cls.return_value.start_server = AsyncMock()
            await main(["--host", "0.0.0.0", "--no-mcp", "--port", "4001"])

        config = server_cls.call_args[0][0]
        assert config.host == "localhost"
        assert config.enable_mcp is False
        assert config.http_port == 4001
        server_cls.return_value.start_server.assert_awaited_once()
