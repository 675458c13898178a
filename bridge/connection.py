"""
Connection manager - owns the single WebSocket link to the browser extension

Copyright (c) 2024 Browser Bridge Project
Licensed under the MIT License - see LICENSE file for details
"""

import asyncio
import enum
import json
import logging
import time
from typing import Any, Dict, List, Optional, Union

from .buffers import StateAggregators
from .correlation import CorrelationTable
from .errors import ConnectionLostError, ExtensionError, NotConnectedError
from .protocol import (
    ConsolePush,
    Ping,
    Pong,
    ProtocolError,
    Reply,
    TabUpdate,
    UrlUpdate,
    make_command,
    new_request_id,
    parse_incoming,
)

logger = logging.getLogger(__name__)


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


class ConnectionManager:
    """Single logical link to the extension

    SINGLE CONNECTION CONSTRAINT: a new extension connection supersedes the
    current one. Everything pending on the old socket is rejected with
    ConnectionLostError, because a reconnected browser has unknown state.

    Commands are never queued while disconnected.
    """

    def __init__(self, aggregators: Optional[StateAggregators] = None,
                 table: Optional[CorrelationTable] = None):
        self.aggregators = aggregators or StateAggregators()
        self.table = table or CorrelationTable()
        self.state = ConnectionState.DISCONNECTED
        self.websocket = None
        self.last_activity: Optional[float] = None
        self.current_url = ""
        self.current_tab_id: Optional[int] = None
        self._connection_waiters: List[asyncio.Future] = []

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED and self.websocket is not None

    async def attach(self, websocket):
        """Make `websocket` the authoritative connection"""
        previous = self.websocket
        # Swap before closing so nothing is sent on the old socket while it closes
        self.websocket = websocket
        self.state = ConnectionState.CONNECTED
        self.last_activity = time.time()

        if previous is not None and previous is not websocket:
            logger.info("Closing existing extension connection for new one")
            self.table.reject_all(ConnectionLostError("Superseded by a new extension connection"))
            try:
                await previous.close()
            except Exception as e:
                logger.warning(f"Error closing existing connection: {e}")

        self._notify_connection_waiters()

    def detach(self, websocket, reason: str = "Connection to browser extension lost") -> bool:
        """Forget `websocket` if it is still the current connection"""
        if self.websocket is not websocket:
            return False
        self.websocket = None
        self.state = ConnectionState.DISCONNECTED
        self.current_url = ""
        self.current_tab_id = None
        self.table.reject_all(ConnectionLostError(reason))
        logger.info("Extension disconnected")
        return True

    async def handle_connection(self, websocket):
        """websockets.serve() handler for one extension connection"""
        logger.info(f"Extension connected from {getattr(websocket, 'remote_address', None)}")
        await self.attach(websocket)

        try:
            await self.send({"type": "ping", "action": "ping"})
            async for message in websocket:
                await self.handle_message(message)
        except Exception as e:
            logger.error(f"Error handling extension connection: {e}")
        finally:
            self.detach(websocket)

    async def handle_message(self, raw: Union[str, bytes]):
        """Demultiplex one inbound frame"""
        self.last_activity = time.time()
        try:
            message = parse_incoming(raw)
        except ProtocolError as e:
            logger.error(f"Dropping extension message: {e}")
            return

        if isinstance(message, ConsolePush):
            self.aggregators.ingest(message)
        elif isinstance(message, UrlUpdate):
            self.current_url = message.url
            logger.info(f"Current URL: {self.current_url}")
        elif isinstance(message, TabUpdate):
            self.current_tab_id = message.tab_id
            logger.info(f"Current tab ID: {self.current_tab_id}")
        elif isinstance(message, Ping):
            await self.send({"type": "pong", "action": "pong"})
        elif isinstance(message, Pong):
            logger.debug("Received pong from extension")
        elif isinstance(message, Reply):
            self._dispatch_reply(message)
        else:
            logger.warning(f"Unhandled message type: {message.type}")

    def _dispatch_reply(self, reply: Reply):
        key = reply.request_id
        if key is None:
            if reply.is_error:
                key = self._sole_pending()
                if key is None:
                    logger.warning(f"Ignoring error reply without requestId "
                                   f"({len(self.table)} pending): {reply.payload}")
                    return
            else:
                self.table.resolve_by_type(reply.type, reply.payload)
                return

        if reply.is_error:
            payload = reply.payload
            detail = payload.get("data") if isinstance(payload.get("data"), dict) else payload
            self.table.reject(key, ExtensionError(
                str(detail.get("message") or detail.get("error") or "Unknown error"),
                detail.get("code"),
            ))
            return

        expected = self.table.expected_type(key)
        if expected is not None and expected != reply.type:
            logger.warning(f"Reply {key} has type '{reply.type}', expected '{expected}'; ignoring")
            return
        self.table.resolve(key, reply.payload)

    def _sole_pending(self) -> Optional[str]:
        """An error without an id can only be attributed when one request is in flight"""
        keys = self.table.keys()
        return keys[0] if len(keys) == 1 else None

    async def send(self, message: Dict[str, Any]) -> bool:
        """Fire-and-forget; returns False when there is nothing to send to"""
        if not self.connected:
            logger.warning("No extension connection available")
            return False
        try:
            await self.websocket.send(json.dumps(message))
            return True
        except Exception as e:
            logger.error(f"Error sending to extension: {e}")
            return False

    async def send_and_await(self, command: str, params: Optional[Dict[str, Any]] = None,
                             expected_type: Optional[str] = None,
                             timeout: float = 30.0) -> Dict[str, Any]:
        """Send a command and wait for its correlated reply

        Raises NotConnectedError, RequestTimeoutError, ConnectionLostError or
        ExtensionError.
        """
        if not self.connected:
            raise NotConnectedError()

        request_id = new_request_id()
        message = make_command(command, params, request_id)
        future = self.table.register(request_id, timeout, expected_type)
        websocket = self.websocket

        try:
            await websocket.send(json.dumps(message))
        except Exception as e:
            logger.error(f"Error sending {command} to extension: {e}")
            self.table.reject(request_id, ConnectionLostError(f"Failed to send request: {e}"))
            self.detach(websocket)
        else:
            logger.info(f"Sent {command} (ID: {request_id}), awaiting {expected_type or 'reply'}")

        return await future

    def _notify_connection_waiters(self):
        for future in self._connection_waiters:
            if not future.done():
                future.set_result(True)
        self._connection_waiters.clear()

    async def wait_for_connection(self, timeout: float = 30.0) -> bool:
        """Wait until an extension is attached; False on timeout"""
        if self.connected:
            return True

        future = asyncio.get_running_loop().create_future()
        self._connection_waiters.append(future)
        try:
            await asyncio.wait_for(future, timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False
        finally:
            if future in self._connection_waiters:
                self._connection_waiters.remove(future)

    def status(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "connected": self.connected,
            "currentUrl": self.current_url,
            "currentTabId": self.current_tab_id,
            "pendingRequests": len(self.table),
            "lastActivity": self.last_activity,
        }
