#!/usr/bin/env python3
"""
Browser Bridge Server - WebSocket server for the browser extension plus the
HTTP/MCP surface that drives it

Copyright (c) 2024 Browser Bridge Project
Licensed under the MIT License - see LICENSE file for details
"""

import argparse
import asyncio
import logging
import socket
import sys
from typing import Optional

import uvicorn
import websockets
from starlette.applications import Starlette

from .buffers import StateAggregators
from .config import BridgeConfig
from .connection import ConnectionManager
from .http_facade import HttpFacade
from .mcp_tools import BrowserMCPTools
from .registry import ToolRegistry
from .tools.browser import default_tools

logger = logging.getLogger(__name__)


def check_port_available(host: str, port: int):
    """Raise RuntimeError if `port` is already bound"""
    if port == 0:
        return
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
    except OSError as e:
        raise RuntimeError(f"Port {port} on {host} is not available: {e}") from e


class BridgeServer:
    """Wires the connection manager, tool registry, HTTP facade and MCP tools"""

    def __init__(self, config: Optional[BridgeConfig] = None,
                 connection: Optional[ConnectionManager] = None):
        self.config = config or BridgeConfig()
        self.connection = connection or ConnectionManager(
            StateAggregators(self.config.max_log_entries, self.config.max_message_length))

        self.registry = ToolRegistry(health_check_timeout=self.config.health_check_timeout)
        for tool in default_tools(self.connection, self.config):
            self.registry.register(tool)

        self.facade = HttpFacade(self.registry, self.connection, self.config.http_port)
        self.mcp_tools = BrowserMCPTools(self.registry, self.connection) if self.config.enable_mcp else None
        self.app = self._build_app()

        self.websocket_server = None
        self.http_server: Optional[uvicorn.Server] = None
        self._http_task: Optional[asyncio.Task] = None
        self._health_task: Optional[asyncio.Task] = None

    def _build_app(self):
        if self.mcp_tools is None:
            return Starlette(routes=self.facade.routes())

        mcp = self.mcp_tools.get_mcp_app()
        for route in self.facade.routes():
            mcp.custom_route(route.path, methods=sorted(route.methods))(route.endpoint)
        return mcp.http_app()

    async def start_server(self):
        """Start the WebSocket and HTTP servers and run until closed"""
        host, config = self.config.host, self.config

        # Unrecoverable: a bound port means another bridge is already running
        check_port_available(host, config.ws_port)
        check_port_available(host, config.http_port)

        logger.info(f"Starting browser bridge WebSocket server on {host}:{config.ws_port}")
        self.websocket_server = await websockets.serve(
            self.connection.handle_connection,
            host,
            config.ws_port,
            reuse_address=True,
        )

        self.http_server = uvicorn.Server(uvicorn.Config(
            self.app, host=host, port=config.http_port, log_level="warning"))
        self._http_task = asyncio.create_task(self.http_server.serve())
        logger.info(f"HTTP bridge available at http://{host}:{config.http_port}/")
        if self.mcp_tools is not None:
            logger.info(f"MCP tools available at http://{host}:{config.http_port}/mcp")

        self._health_task = asyncio.create_task(
            self.registry.monitor_health(config.health_check_interval))

        logger.info("Waiting for browser extension connection...")
        await self.websocket_server.wait_closed()

    def _stop(self):
        """Stop all servers"""
        logger.info("Stopping browser bridge...")
        if self.http_server is not None:
            self.http_server.should_exit = True
        if self._health_task is not None:
            self._health_task.cancel()
        if self.websocket_server is not None:
            self.websocket_server.close()
            self.websocket_server = None

    async def shutdown(self, server_task: Optional[asyncio.Task] = None):
        """Gracefully shut down the servers and the task running start_server()"""
        self._stop()
        for task in (self._http_task, self._health_task, server_task):
            if task is None:
                continue
            if task is server_task:
                task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._http_task = None
        self._health_task = None
        logger.info("Browser bridge stopped")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Browser Bridge - drive a browser extension over WebSocket")
    parser.add_argument("--host", default=None, help="Host to bind to (default: localhost)")
    parser.add_argument("--port", dest="http_port", type=int, default=None,
                        help="HTTP/MCP port (default: 3025)")
    parser.add_argument("--ws-port", type=int, default=None,
                        help="WebSocket port for the extension (default: 8765). The extension "
                             "connects here, not to /extension-ws on the HTTP port; point "
                             "extensions configured for that endpoint at this port")
    parser.add_argument("--screenshot-dir", default=None,
                        help="Directory for saved screenshots (default: .screenshots)")
    parser.add_argument("--no-mcp", action="store_true", help="Disable the MCP endpoint")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


async def main(argv=None):
    """Main entry point"""
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO)

    config = BridgeConfig.from_env(
        host=args.host,
        http_port=args.http_port,
        ws_port=args.ws_port,
        screenshot_dir=args.screenshot_dir,
        enable_mcp=False if args.no_mcp else None,
    )

    # Ensure localhost-only binding for security
    if config.host not in ("localhost", "127.0.0.1"):
        logger.warning(f"Host '{config.host}' changed to 'localhost' for security")
        config = config.model_copy(update={"host": "localhost"})

    server = BridgeServer(config)
    await server.start_server()


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except RuntimeError as e:
        logger.error(f"Server error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()
