"""
WebSocket message model shared by the bridge and the browser extension

Outgoing commands are plain dicts built by make_command(). Incoming messages are
parsed into one of the tagged models below so the connection manager can
dispatch them from a single place.

Copyright (c) 2024 Browser Bridge Project
Licensed under the MIT License - see LICENSE file for details
"""

import json
import uuid
from datetime import datetime
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

# Command name -> reply type the extension sends back for it
REPLY_TYPES = {
    "navigate": "navigate-ack",
    "click": "click-ack",
    "type": "type-ack",
    "wait": "wait-ack",
    "evaluate": "evaluateResult",
    "screenshot": "screenshot",
    "getContent": "pageContent",
    "getConsoleLogs": "consoleLogs",
    "audit": "auditResult",
}

PUSH_TYPES = ("consoleLog", "consoleError", "networkError")
STATE_TYPES = ("url", "tabId", "ping", "pong")


def new_request_id() -> str:
    """Mint a request id unique for the life of the process"""
    return f"req_{uuid.uuid4().hex[:8]}_{int(datetime.now().timestamp() * 1000)}"


def make_command(command: str, params: Optional[Dict[str, Any]] = None,
                 request_id: Optional[str] = None) -> Dict[str, Any]:
    """Build an outgoing command message

    `action` repeats `type` because older extension builds dispatch on it.
    """
    message = dict(params or {})
    message["type"] = command
    message["action"] = command
    if request_id:
        message["requestId"] = request_id
    message["timestamp"] = datetime.now().isoformat()
    return message


class _Incoming(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class ConsolePush(_Incoming):
    """consoleLog / consoleError / networkError push events"""
    type: Literal["consoleLog", "consoleError", "networkError"]
    data: Dict[str, Any] = Field(default_factory=dict)


class UrlUpdate(_Incoming):
    type: Literal["url"]
    url: str = ""


class TabUpdate(_Incoming):
    type: Literal["tabId"]
    tab_id: Optional[int] = Field(default=None, alias="tabId")


class Ping(_Incoming):
    type: Literal["ping"]


class Pong(_Incoming):
    type: Literal["pong"]


class Reply(_Incoming):
    """Anything else: a reply to a command, correlated by requestId or by type"""
    type: str
    request_id: Optional[str] = Field(default=None, alias="requestId")

    @property
    def payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude={"request_id"})

    @property
    def is_error(self) -> bool:
        return self.type == "error"


KnownMessage = Annotated[
    Union[ConsolePush, UrlUpdate, TabUpdate, Ping, Pong],
    Field(discriminator="type"),
]
_known_adapter = TypeAdapter(KnownMessage)

IncomingMessage = Union[ConsolePush, UrlUpdate, TabUpdate, Ping, Pong, Reply]


class ProtocolError(ValueError):
    """Raised for frames that are not JSON objects with a string `type`"""


def parse_incoming(raw: Union[str, bytes]) -> IncomingMessage:
    """Parse a raw WebSocket frame into a tagged message model"""
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProtocolError(f"Invalid JSON received: {e}") from e

    if not isinstance(data, dict):
        raise ProtocolError("Message must be a JSON object")
    message_type = data.get("type")
    if not isinstance(message_type, str) or not message_type:
        raise ProtocolError("Message has no type")

    # The extension also uses `id` for the echoed request identifier
    if "requestId" not in data and isinstance(data.get("id"), str):
        data["requestId"] = data["id"]

    if message_type in PUSH_TYPES or message_type in STATE_TYPES:
        try:
            return _known_adapter.validate_python(data)
        except ValidationError as e:
            raise ProtocolError(f"Malformed {message_type} message: {e}") from e

    try:
        return Reply.model_validate(data)
    except ValidationError as e:
        raise ProtocolError(f"Malformed reply: {e}") from e
