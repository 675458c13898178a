"""
Browser tools - one class per capability exposed through the registry

Copyright (c) 2024 Browser Bridge Project
Licensed under the MIT License - see LICENSE file for details
"""

import asyncio
import json
import logging
import math
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import AfterValidator, Field, StringConstraints

from ..buffers import StateAggregators
from ..errors import BridgeError, ExtensionError, MalformedResponseError
from ..protocol import REPLY_TYPES
from ..screenshots import ScreenshotStore
from ..security import (
    MAX_SCRIPT_LENGTH,
    MAX_SELECTOR_LENGTH,
    MAX_TEXT_LENGTH,
    MAX_URL_LENGTH,
    check_safe_text,
    check_url,
)
from .base import BrowserTool, ToolCapabilities, ToolParams, ToolResult

logger = logging.getLogger(__name__)

Url = Annotated[str, StringConstraints(min_length=1, max_length=MAX_URL_LENGTH),
                AfterValidator(check_url)]
Selector = Annotated[str, StringConstraints(min_length=1, max_length=MAX_SELECTOR_LENGTH),
                     AfterValidator(check_safe_text)]
Text = Annotated[str, StringConstraints(max_length=MAX_TEXT_LENGTH),
                 AfterValidator(check_safe_text)]
Script = Annotated[str, StringConstraints(min_length=1, max_length=MAX_SCRIPT_LENGTH),
                   AfterValidator(check_safe_text)]

AuditCategory = Literal["performance", "accessibility", "seo", "best-practices", "pwa"]
LogLevel = Literal["all", "log", "info", "warn", "error", "debug"]


class ExtensionCommandTool(BrowserTool):
    """A tool backed by one command/reply pair on the extension link"""

    command: str = ""

    @property
    def reply_type(self) -> str:
        return REPLY_TYPES[self.command]

    async def request(self, params: Optional[Dict[str, Any]] = None,
                      timeout: Optional[float] = None) -> Dict[str, Any]:
        return await self.connection.send_and_await(
            self.command,
            params,
            expected_type=self.reply_type,
            timeout=timeout or self.capabilities.timeout,
        )

    async def health_check(self) -> Optional[bool]:
        return self.connection is not None and self.connection.connected


# Navigation and interaction

class NavigateParams(ToolParams):
    url: Url


class NavigateTool(ExtensionCommandTool):
    name = "navigate"
    endpoint = "/navigate"
    category = "navigation"
    description = "Navigate the current tab to a URL"
    command = "navigate"
    params_model = NavigateParams
    capabilities = ToolCapabilities(timeout=15.0, retryable=True)

    async def run(self, params: NavigateParams):
        reply = await self.request({"url": params.url})
        return {"url": reply.get("url") or params.url}


class ClickParams(ToolParams):
    selector: Selector


class ClickTool(ExtensionCommandTool):
    name = "click"
    endpoint = "/click"
    category = "interaction"
    description = "Click an element on the page using a CSS selector"
    command = "click"
    params_model = ClickParams
    capabilities = ToolCapabilities(timeout=5.0)

    async def run(self, params: ClickParams):
        await self.request({"selector": params.selector})
        return {"selector": params.selector}


class TypeParams(ToolParams):
    selector: Selector
    text: Text
    clear: bool = False


class TypeTool(ExtensionCommandTool):
    name = "type"
    endpoint = "/type"
    category = "interaction"
    description = "Type text into an input field or editable element"
    command = "type"
    params_model = TypeParams
    capabilities = ToolCapabilities(timeout=5.0)

    async def run(self, params: TypeParams):
        await self.request({"selector": params.selector, "text": params.text,
                            "clear": params.clear})
        return {"selector": params.selector, "length": len(params.text)}


class WaitParams(ToolParams):
    selector: Selector
    timeout: int = Field(default=30000, ge=0, le=60000, description="Milliseconds")


class WaitTool(ExtensionCommandTool):
    name = "wait"
    endpoint = "/wait"
    category = "interaction"
    description = "Wait for an element to appear on the page"
    command = "wait"
    params_model = WaitParams
    capabilities = ToolCapabilities(timeout=65.0, retryable=True)

    async def run(self, params: WaitParams):
        # The extension waits up to params.timeout; allow a little transport slack
        reply = await self.request({"selector": params.selector, "timeout": params.timeout},
                                   timeout=params.timeout / 1000 + 5.0)
        return {"selector": params.selector, "found": reply.get("found", True)}


# Script evaluation

def to_serializable(value: Any, depth: int = 0) -> Any:
    """Replace values that cannot round-trip through JSON with a placeholder"""
    if depth > 50:
        return "[Unserializable: maximum depth exceeded]"
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        if math.isnan(value):
            return "[Unserializable: NaN]"
        if math.isinf(value):
            return "[Unserializable: Infinity]" if value > 0 else "[Unserializable: -Infinity]"
        return value
    if isinstance(value, dict):
        # Extension-side marker for values such as functions, symbols, DOM nodes
        for marker in ("unserializableValue", "__unserializable__"):
            if marker in value and len(value) <= 2:
                return f"[Unserializable: {value[marker]}]"
        return {str(k): to_serializable(v, depth + 1) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_serializable(v, depth + 1) for v in value]
    return f"[Unserializable: {type(value).__name__}]"


class EvaluateParams(ToolParams):
    script: Script


class EvaluateTool(ExtensionCommandTool):
    name = "evaluate"
    endpoint = "/evaluate"
    category = "scripting"
    description = "Execute JavaScript in the page context"
    command = "evaluate"
    params_model = EvaluateParams
    # Scripts may have side effects; never re-run them automatically
    capabilities = ToolCapabilities(timeout=10.0, retryable=False)

    async def run(self, params: EvaluateParams):
        reply = await self.request({"script": params.script})
        if reply.get("error"):
            raise ExtensionError(str(reply["error"]), "SCRIPT_EXECUTION_FAILED")
        result = to_serializable(reply.get("result"))
        return {"result": result, "resultType": type(result).__name__}


# Screenshot

class ScreenshotParams(ToolParams):
    selector: Optional[Selector] = None
    full_page: bool = Field(default=False, alias="fullPage")


class ScreenshotTool(ExtensionCommandTool):
    name = "screenshot"
    endpoint = "/capture-screenshot"
    category = "capture"
    description = "Capture a screenshot of the page or an element and save it locally"
    command = "screenshot"
    params_model = ScreenshotParams
    capabilities = ToolCapabilities(timeout=30.0, retryable=True)

    def __init__(self, connection=None, store: Optional[ScreenshotStore] = None):
        super().__init__(connection)
        self.store = store or ScreenshotStore(".screenshots")

    async def run(self, params: ScreenshotParams):
        command = {"fullPage": params.full_page}
        if params.selector:
            command["selector"] = params.selector
        reply = await self.request(command)
        data = reply.get("data") or reply.get("dataUrl")
        saved = self.store.save(data, params.selector, params.full_page)
        return {"path": saved["path"], "filename": saved["filename"], "size": saved["size"]}


# Content extraction

async def cap_content(content: str, max_chars: int, chunk_size: int):
    """Copy `content` chunk by chunk up to `max_chars`, yielding between chunks

    Returns (text, truncated). The cut point is always exactly `max_chars`.
    """
    parts: List[str] = []
    total = 0
    truncated = False
    for start in range(0, len(content), chunk_size):
        chunk = content[start:start + chunk_size]
        remaining = max_chars - total
        if len(chunk) > remaining:
            chunk = chunk[:remaining]
            truncated = True
        parts.append(chunk)
        total += len(chunk)
        if truncated:
            break
        await asyncio.sleep(0)
    return "".join(parts), truncated


class GetContentParams(ToolParams):
    selector: Optional[Selector] = None
    format: Literal["html", "text"] = "html"


class GetContentTool(ExtensionCommandTool):
    name = "get_content"
    endpoint = "/get-content"
    category = "content"
    description = "Get the HTML or text content of the page or an element"
    methods = ("GET", "POST")
    command = "getContent"
    params_model = GetContentParams
    capabilities = ToolCapabilities(timeout=10.0, retryable=True)

    def __init__(self, connection=None, max_chars: int = 100_000, chunk_size: int = 16_384):
        super().__init__(connection)
        self.max_chars = max_chars
        self.chunk_size = chunk_size

    async def run(self, params: GetContentParams):
        command = {"format": params.format}
        if params.selector:
            command["selector"] = params.selector
        reply = await self.request(command)

        content = reply.get("content", "")
        if content is None:
            content = ""
        elif not isinstance(content, str):
            content = json.dumps(content)

        text, truncated = await cap_content(content, self.max_chars, self.chunk_size)
        if truncated:
            logger.info(f"Content truncated from {len(content)} to {self.max_chars} characters")
        return {
            "content": text,
            "format": params.format,
            "length": len(text),
            "originalLength": len(content),
            "truncated": truncated,
        }


# Console and network buffers

class LogQueryParams(ToolParams):
    limit: int = Field(default=100, ge=1, le=1000)
    level: LogLevel = "all"
    since: Optional[datetime] = None


class BufferReadTool(BrowserTool):
    """Read one of the aggregator ring buffers"""

    category = "console"
    methods = ("GET",)
    params_model = LogQueryParams
    capabilities = ToolCapabilities(timeout=5.0, retryable=True)
    buffer_name = ""
    # Ask the extension to flush undelivered entries before reading
    flush = False

    def __init__(self, connection=None, aggregators: Optional[StateAggregators] = None,
                 collect_timeout: float = 2.0):
        super().__init__(connection)
        self.aggregators = aggregators or (connection.aggregators if connection else StateAggregators())
        self.collect_timeout = collect_timeout

    async def _collect(self) -> Optional[str]:
        """Best-effort flush; returns a note when the flush did not complete"""
        if self.connection is None or not self.connection.connected:
            return "extension not connected; returning buffered entries"
        try:
            reply = await self.connection.send_and_await(
                "getConsoleLogs", None,
                expected_type=REPLY_TYPES["getConsoleLogs"],
                timeout=self.collect_timeout,
            )
        except BridgeError as e:
            logger.info(f"Console collection incomplete ({e.error_type}); using buffer")
            return f"collection incomplete: {e}"
        for key, reply_type in (("logs", "consoleLog"), ("errors", "consoleError")):
            items = reply.get(key)
            if isinstance(items, list):
                self.aggregators.ingest_batch(reply_type, items)
        return None

    async def run(self, params: LogQueryParams):
        note = await self._collect() if self.flush else None
        buffer = self.aggregators.buffer(self.buffer_name)
        entries = buffer.get(level=params.level, since=params.since, limit=params.limit)
        data = {
            "entries": [e.to_dict() for e in entries],
            "count": len(entries),
            "total": len(buffer),
            "partial": note is not None,
        }
        if note:
            return ToolResult.ok(data, note=note)
        return data


class ConsoleLogsTool(BufferReadTool):
    name = "console_logs"
    endpoint = "/console-logs"
    description = "Retrieve browser console logs"
    buffer_name = "console_logs"
    flush = True


class ConsoleErrorsTool(BufferReadTool):
    name = "console_errors"
    endpoint = "/console-errors"
    description = "Retrieve browser console errors"
    buffer_name = "console_errors"
    flush = True


class NetworkErrorsTool(BufferReadTool):
    name = "network_errors"
    endpoint = "/network-errors"
    category = "network"
    description = "Retrieve failed network requests observed by the extension"
    buffer_name = "network_errors"


class BufferClearTool(BrowserTool):
    category = "console"
    capabilities = ToolCapabilities(timeout=1.0, retryable=True)
    buffer_name = ""

    def __init__(self, connection=None, aggregators: Optional[StateAggregators] = None):
        super().__init__(connection)
        self.aggregators = aggregators or (connection.aggregators if connection else StateAggregators())

    async def run(self, params):
        return {"cleared": self.aggregators.buffer(self.buffer_name).clear()}


class ClearConsoleLogsTool(BufferClearTool):
    name = "clear_console_logs"
    endpoint = "/clear-console-logs"
    description = "Clear buffered console logs"
    buffer_name = "console_logs"


class ClearConsoleErrorsTool(BufferClearTool):
    name = "clear_console_errors"
    endpoint = "/clear-console-errors"
    description = "Clear buffered console errors"
    buffer_name = "console_errors"


# Audit

DEFAULT_AUDIT_CATEGORIES = ["performance", "accessibility", "seo", "best-practices"]


def parse_audit_report(reply: Dict[str, Any]) -> Dict[str, Any]:
    """Check that an audit reply is a structured report, not an error page"""
    report = reply.get("report", reply.get("data", reply))
    if isinstance(report, (str, bytes)):
        text = report.decode("utf-8", "replace") if isinstance(report, bytes) else report
        try:
            report = json.loads(text)
        except json.JSONDecodeError:
            kind = "HTML" if text.lstrip().startswith("<") else "non-JSON text"
            raise MalformedResponseError(f"Audit returned {kind} instead of a JSON report",
                                         preview=text[:200])
    if not isinstance(report, dict):
        raise MalformedResponseError(f"Audit report has unexpected type {type(report).__name__}")

    categories = report.get("categories")
    if not isinstance(categories, dict) or not categories:
        raise MalformedResponseError("Audit report has no categories")

    scores = {}
    for name, category in categories.items():
        score = category.get("score") if isinstance(category, dict) else category
        if score is not None and (isinstance(score, bool) or not isinstance(score, (int, float))):
            raise MalformedResponseError(f"Audit category '{name}' has a non-numeric score")
        scores[name] = score
    return {"scores": scores, "report": report}


class AuditParams(ToolParams):
    categories: List[AuditCategory] = Field(
        default_factory=lambda: list(DEFAULT_AUDIT_CATEGORIES), min_length=1, max_length=5)


class AuditTool(ExtensionCommandTool):
    name = "audit"
    endpoint = "/audit"
    category = "audit"
    description = "Run a Lighthouse audit on the current page"
    command = "audit"
    params_model = AuditParams
    capabilities = ToolCapabilities(timeout=60.0, retryable=True)

    async def run(self, params: AuditParams):
        reply = await self.request({"categories": params.categories})
        parsed = parse_audit_report(reply)
        return {"categories": params.categories, **parsed}


def default_tools(connection, config) -> List[BrowserTool]:
    """Instantiate the standard tool set for a connection and config"""
    aggregators = connection.aggregators
    return [
        NavigateTool(connection),
        ClickTool(connection),
        TypeTool(connection),
        WaitTool(connection),
        EvaluateTool(connection),
        ScreenshotTool(connection, ScreenshotStore(config.screenshot_dir)),
        GetContentTool(connection, config.content_max_chars, config.content_chunk_size),
        ConsoleLogsTool(connection, aggregators, config.console_collect_timeout),
        ConsoleErrorsTool(connection, aggregators, config.console_collect_timeout),
        NetworkErrorsTool(connection, aggregators),
        ClearConsoleLogsTool(connection, aggregators),
        ClearConsoleErrorsTool(connection, aggregators),
        AuditTool(connection),
    ]
