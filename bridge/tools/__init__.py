"""
Browser tools exposed through the tool registry
"""

from .base import (
    BrowserTool,
    EmptyParams,
    ToolCapabilities,
    ToolParams,
    ToolResult,
    ValidationResult,
)
from .browser import (
    AuditTool,
    ClearConsoleErrorsTool,
    ClearConsoleLogsTool,
    ClickTool,
    ConsoleErrorsTool,
    ConsoleLogsTool,
    EvaluateTool,
    GetContentTool,
    NavigateTool,
    NetworkErrorsTool,
    ScreenshotTool,
    TypeTool,
    WaitTool,
    default_tools,
)

__all__ = [
    "AuditTool",
    "BrowserTool",
    "ClearConsoleErrorsTool",
    "ClearConsoleLogsTool",
    "ClickTool",
    "ConsoleErrorsTool",
    "ConsoleLogsTool",
    "EmptyParams",
    "EvaluateTool",
    "GetContentTool",
    "NavigateTool",
    "NetworkErrorsTool",
    "ScreenshotTool",
    "ToolCapabilities",
    "ToolParams",
    "ToolResult",
    "TypeTool",
    "ValidationResult",
    "WaitTool",
    "default_tools",
]
