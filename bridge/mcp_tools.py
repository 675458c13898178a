#!/usr/bin/env python3
"""
MCP tool definitions for the browser bridge
Each tool is routed through the tool registry and rendered as text for MCP clients

Copyright (c) 2024 Browser Bridge Project
Licensed under the MIT License - see LICENSE file for details
"""

import json
from typing import List, Literal, Optional

from fastmcp import FastMCP

from .tools.base import ToolResult


def _failure(action: str, result: ToolResult) -> str:
    text = f"Error {action}: {result.error}"
    errors = result.metadata.get("errors")
    if errors:
        text += "\n" + "\n".join(f"- {e}" for e in errors)
    return text


class BrowserMCPTools:
    """MCP tools that reach the browser extension through the tool registry"""

    def __init__(self, registry, connection):
        self.registry = registry
        self.connection = connection
        self.mcp = FastMCP("BrowserBridge")
        self._setup_tools()

    async def _route(self, endpoint: str, params: dict) -> ToolResult:
        return await self.registry.route(endpoint, params)

    def _setup_tools(self):
        """Set up all MCP tool definitions"""
        self._setup_navigation_tools()
        self._setup_interaction_tools()
        self._setup_content_tools()
        self._setup_console_tools()
        self._setup_status_tools()

    def _setup_navigation_tools(self):
        """Setup navigation tools"""

        @self.mcp.tool()
        async def browser_navigate(url: str) -> str:
            """Navigate the current browser tab to a URL

            Args:
                url: The http(s) URL to navigate to
            """
            result = await self._route("/navigate", {"url": url})
            if not result.success:
                return _failure("navigating", result)
            return f"Navigated to {result.data['url']}"

        @self.mcp.tool()
        async def browser_wait(selector: str, timeout: int = 30000) -> str:
            """Wait for an element to appear on the page

            Args:
                selector: CSS selector of the element to wait for
                timeout: Maximum time to wait in milliseconds (0-60000)
            """
            result = await self._route("/wait", {"selector": selector, "timeout": timeout})
            if not result.success:
                return _failure("waiting for element", result)
            return f"Element {selector} is present"

    def _setup_interaction_tools(self):
        """Setup click/type/evaluate tools"""

        @self.mcp.tool()
        async def browser_click(selector: str) -> str:
            """Click an element on the page using a CSS selector

            Args:
                selector: CSS selector of the element to click
            """
            result = await self._route("/click", {"selector": selector})
            if not result.success:
                return _failure("clicking element", result)
            return f"Clicked {selector}"

        @self.mcp.tool()
        async def browser_type(selector: str, text: str, clear: bool = False) -> str:
            """Type text into an input field or editable element

            Args:
                selector: CSS selector of the input field
                text: Text to type into the field
                clear: Clear the field before typing
            """
            result = await self._route("/type", {"selector": selector, "text": text, "clear": clear})
            if not result.success:
                return _failure("typing text", result)
            return f"Typed {result.data['length']} characters into {selector}"

        @self.mcp.tool()
        async def browser_evaluate(script: str) -> str:
            """Execute JavaScript in the page context

            This executes arbitrary JavaScript. It is never retried automatically.

            Args:
                script: JavaScript code to execute
            """
            result = await self._route("/evaluate", {"script": script})
            if not result.success:
                return _failure("executing script", result)
            value = result.data["result"]
            if value is None:
                return "Script executed successfully - no return value"
            return f"Script result:\n{json.dumps(value, indent=2)}"

    def _setup_content_tools(self):
        """Setup screenshot, content and audit tools"""

        @self.mcp.tool()
        async def browser_screenshot(selector: Optional[str] = None, full_page: bool = False) -> str:
            """Capture a screenshot and save it to the screenshot directory

            Args:
                selector: Optional CSS selector to capture a specific element
                full_page: Capture the full scrollable page
            """
            params = {"fullPage": full_page}
            if selector:
                params["selector"] = selector
            result = await self._route("/capture-screenshot", params)
            if not result.success:
                return _failure("capturing screenshot", result)
            return f"Screenshot saved to '{result.data['path']}' ({result.data['size']} bytes)"

        @self.mcp.tool()
        async def browser_get_content(selector: Optional[str] = None,
                                      format: Literal["html", "text"] = "html") -> str:
            """Get the HTML or text content of the page or an element

            Args:
                selector: Optional CSS selector to read a specific element
                format: 'html' or 'text'
            """
            params = {"format": format}
            if selector:
                params["selector"] = selector
            result = await self._route("/get-content", params)
            if not result.success:
                return _failure("getting page content", result)
            data = result.data
            if not data["content"]:
                return "No content found"
            suffix = (f"\n\n[truncated: {data['length']} of {data['originalLength']} characters]"
                      if data["truncated"] else "")
            return f"{data['content']}{suffix}"

        @self.mcp.tool()
        async def browser_audit(categories: Optional[List[str]] = None) -> str:
            """Run a Lighthouse audit on the current page

            Args:
                categories: Any of performance, accessibility, seo, best-practices, pwa
            """
            result = await self._route("/audit", {"categories": categories} if categories else {})
            if not result.success:
                return _failure("running audit", result)
            lines = [f"Audit scores ({len(result.data['scores'])} categories):"]
            for name, score in result.data["scores"].items():
                shown = "n/a" if score is None else f"{round(score * 100)}"
                lines.append(f"- {name}: {shown}")
            return "\n".join(lines)

    def _setup_console_tools(self):
        """Setup console and network buffer tools"""

        @self.mcp.tool()
        async def browser_get_console(level: str = "all", limit: int = 100,
                                      errors_only: bool = False) -> str:
            """Retrieve browser console logs

            Args:
                level: Filter by level (all, log, info, warn, error, debug)
                limit: Maximum number of most recent entries (1-1000)
                errors_only: Read the console error buffer instead of all logs
            """
            endpoint = "/console-errors" if errors_only else "/console-logs"
            result = await self._route(endpoint, {"level": level, "limit": limit})
            if not result.success:
                return _failure("reading console", result)
            entries = result.data["entries"]
            header = f"Console entries ({len(entries)} of {result.data['total']} buffered)"
            if result.data["partial"]:
                header += f" - partial: {result.metadata.get('note')}"
            lines = [header + ":"]
            for entry in entries:
                lines.append(f"[{entry['timestamp']}] {entry['level'].upper()}: {entry['message']}")
            return "\n".join(lines)

        @self.mcp.tool()
        async def browser_get_network_errors(limit: int = 100) -> str:
            """Retrieve failed network requests observed by the extension

            Args:
                limit: Maximum number of most recent entries (1-1000)
            """
            result = await self._route("/network-errors", {"limit": limit})
            if not result.success:
                return _failure("reading network errors", result)
            entries = result.data["entries"]
            if not entries:
                return "No network errors recorded"
            lines = [f"Network errors ({len(entries)} found):"]
            for entry in entries:
                lines.append(f"[{entry['timestamp']}] {entry['message']}")
            return "\n".join(lines)

        @self.mcp.tool()
        async def browser_clear_console(errors: bool = False) -> str:
            """Clear buffered console logs (or console errors)

            Args:
                errors: Clear the console error buffer instead of the log buffer
            """
            endpoint = "/clear-console-errors" if errors else "/clear-console-logs"
            result = await self._route(endpoint, {})
            if not result.success:
                return _failure("clearing console", result)
            return f"Cleared {result.data['cleared']} entries"

    def _setup_status_tools(self):
        """Setup bridge status tools"""

        @self.mcp.tool()
        async def browser_health() -> str:
            """Report extension connection status and tool health"""
            await self.registry.health_check_all()
            health = self.registry.health()
            status = self.connection.status()
            connected = "connected" if status["connected"] else "not connected"
            return (f"Extension {connected}, current URL: {status['currentUrl'] or 'unknown'}\n"
                    f"Tools: {health['healthyTools']}/{health['totalTools']} healthy, "
                    f"{health['requestCount']} requests, error rate {health['errorRate']}%")

    def get_mcp_app(self):
        """Get the FastMCP application instance"""
        return self.mcp
