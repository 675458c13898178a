"""
Error taxonomy for the bridge

Copyright (c) 2024 Browser Bridge Project
Licensed under the MIT License - see LICENSE file for details
"""

import asyncio
from typing import List, Optional


class BridgeError(Exception):
    """Base class for every error the bridge reports to callers"""

    http_status = 500
    error_type = "internal"


class NotConnectedError(BridgeError):
    """No extension is attached"""

    http_status = 503
    error_type = "not_connected"

    def __init__(self, message: str = "Browser extension not connected"):
        super().__init__(message)


class RequestTimeoutError(BridgeError, asyncio.TimeoutError):
    """A correlated reply never arrived within its budget"""

    http_status = 504
    error_type = "timeout"

    def __init__(self, key: str, timeout: float):
        self.key = key
        self.timeout = timeout
        super().__init__(f"Request {key} timed out after {timeout:g} seconds")


class ConnectionLostError(BridgeError):
    """The extension link dropped while a request was in flight"""

    http_status = 502
    error_type = "connection_lost"

    def __init__(self, message: str = "Connection to browser extension lost"):
        super().__init__(message)


class ToolValidationError(BridgeError):
    """Parameters rejected by a tool schema"""

    http_status = 400
    error_type = "validation"

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__(f"Invalid parameters: {'; '.join(self.errors)}")


class MalformedResponseError(BridgeError):
    """The extension answered, but with data that does not match the expected shape"""

    http_status = 502
    error_type = "malformed_response"

    def __init__(self, message: str, preview: Optional[str] = None):
        self.preview = preview
        super().__init__(message)


class ExtensionError(BridgeError):
    """The extension answered a request with an explicit error message"""

    http_status = 502
    error_type = "extension_error"

    def __init__(self, message: str, code: Optional[str] = None):
        self.code = code
        super().__init__(f"{code}: {message}" if code else message)


class DuplicateToolError(BridgeError):
    """A tool name or endpoint is already registered"""

    error_type = "duplicate_tool"


class UnknownEndpointError(BridgeError):
    """No tool is registered for the requested endpoint"""

    http_status = 404
    error_type = "unknown_endpoint"

    def __init__(self, endpoint: str):
        self.endpoint = endpoint
        super().__init__(f"No tool registered for endpoint: {endpoint}")


ERROR_STATUS = {
    cls.error_type: cls.http_status
    for cls in (
        BridgeError,
        NotConnectedError,
        RequestTimeoutError,
        ConnectionLostError,
        ToolValidationError,
        MalformedResponseError,
        ExtensionError,
        UnknownEndpointError,
    )
}
