"""
Browser Bridge - correlates MCP/HTTP tool calls with a browser extension over WebSocket
"""

__version__ = "0.1.0"
