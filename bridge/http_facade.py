"""
HTTP facade - one route per tool endpoint plus bridge status routes

Copyright (c) 2024 Browser Bridge Project
Licensed under the MIT License - see LICENSE file for details
"""

import json
import logging
import re
from datetime import datetime
from typing import Any, Dict, List

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from .errors import ERROR_STATUS, UnknownEndpointError
from .tools.base import ToolResult

logger = logging.getLogger(__name__)

IDENTITY = "browser-tools-http-bridge"


def status_for(result: ToolResult) -> int:
    if result.success:
        return 200
    return ERROR_STATUS.get(result.error_type, 500)


def result_body(result: ToolResult) -> Dict[str, Any]:
    """Flatten a ToolResult into the JSON body callers expect"""
    if result.success:
        body = {"success": True}
        if isinstance(result.data, dict):
            body.update(result.data)
        elif result.data is not None:
            body["data"] = result.data
        if result.metadata.get("note"):
            body["note"] = result.metadata["note"]
        return body

    body = {"success": False, "error": result.error, "errorType": result.error_type}
    for key in ("errors", "preview"):
        if key in result.metadata:
            body[key] = result.metadata[key]
    return body


class HttpFacade:
    """Translates HTTP requests into registry calls"""

    def __init__(self, registry, connection, http_port: int = 3025):
        self.registry = registry
        self.connection = connection
        self.http_port = http_port

    async def _read_params(self, request: Request) -> Any:
        if request.method == "GET":
            return dict(request.query_params)
        body = await request.body()
        if not body.strip():
            return {}
        return json.loads(body)

    def tool_handler(self, endpoint: str):
        async def handle(request: Request) -> JSONResponse:
            try:
                params = await self._read_params(request)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                return JSONResponse({"success": False, "error": f"Invalid JSON body: {e}",
                                     "errorType": "validation"}, status_code=400)
            try:
                result = await self.registry.route(endpoint, params)
            except UnknownEndpointError as e:
                return JSONResponse({"success": False, "error": str(e),
                                     "errorType": e.error_type}, status_code=404)
            status = status_for(result)
            if status >= 500:
                logger.warning(f"{request.method} {endpoint} -> {status}: {result.error}")
            return JSONResponse(result_body(result), status_code=status)

        handle.__name__ = f"handle_{endpoint.strip('/').replace('-', '_') or 'root'}"
        return handle

    async def health(self, request: Request) -> JSONResponse:
        return JSONResponse({
            "status": "ok",
            "connected": self.connection.connected,
            "currentUrl": self.connection.current_url,
            "timestamp": datetime.now().isoformat(),
        })

    async def current_url(self, request: Request) -> JSONResponse:
        return JSONResponse({"url": self.connection.current_url})

    async def identity(self, request: Request) -> JSONResponse:
        return JSONResponse({"name": IDENTITY})

    async def port(self, request: Request) -> JSONResponse:
        return JSONResponse({"port": self.http_port})

    async def list_tools(self, request: Request) -> JSONResponse:
        query = request.query_params
        healthy = query.get("healthy")
        try:
            tools = self.registry.discover(
                category=query.get("category") or None,
                capability=query.get("capability") or None,
                healthy=None if healthy is None else healthy.lower() in ("1", "true", "yes"),
                name_pattern=query.get("name") or None,
            )
        except re.error as e:
            return JSONResponse({"success": False, "error": f"Invalid filter: {e}",
                                 "errorType": "validation"}, status_code=400)
        return JSONResponse({"tools": [t.to_dict() for t in tools], "count": len(tools)})

    async def tools_health(self, request: Request) -> JSONResponse:
        results = await self.registry.health_check_all()
        return JSONResponse({**self.registry.health(), "tools": results})

    def routes(self) -> List[Route]:
        routes = [
            Route("/health", self.health, methods=["GET"]),
            Route("/current-url", self.current_url, methods=["GET"]),
            Route("/.identity", self.identity, methods=["GET"]),
            Route("/.port", self.port, methods=["GET"]),
            Route("/tools", self.list_tools, methods=["GET"]),
            Route("/tools/health", self.tools_health, methods=["GET"]),
        ]
        for descriptor in self.registry.discover():
            routes.append(Route(descriptor.endpoint, self.tool_handler(descriptor.endpoint),
                                methods=list(descriptor.tool.methods)))
        return routes
