"""
Tool registry - owns the available tools, routes requests, aggregates health

Copyright (c) 2024 Browser Bridge Project
Licensed under the MIT License - see LICENSE file for details
"""

import asyncio
import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .errors import DuplicateToolError, UnknownEndpointError
from .tools.base import BrowserTool, ToolResult

logger = logging.getLogger(__name__)

REQUIRED_ATTRIBUTES = ("name", "endpoint", "execute", "validate", "capabilities")


class ToolDescriptor:
    """Registry entry: the tool plus health and execution counters

    Counters are written only by the registry.
    """

    def __init__(self, tool: BrowserTool):
        self.tool = tool
        self.healthy = True
        self.last_health_check: Optional[datetime] = None
        self.execution_count = 0
        self.error_count = 0
        self.last_executed_at: Optional[datetime] = None
        self.total_duration_ms = 0.0

    @property
    def name(self) -> str:
        return self.tool.name

    @property
    def endpoint(self) -> str:
        return self.tool.endpoint

    @property
    def category(self) -> str:
        return self.tool.category

    @property
    def capabilities(self):
        return self.tool.capabilities

    def to_dict(self) -> Dict[str, Any]:
        info = self.tool.describe()
        info.update({
            "healthy": self.healthy,
            "executionCount": self.execution_count,
            "errorCount": self.error_count,
            "lastExecutedAt": self.last_executed_at.isoformat() if self.last_executed_at else None,
            "totalDurationMs": round(self.total_duration_ms, 2),
            "averageDurationMs": (round(self.total_duration_ms / self.execution_count, 2)
                                  if self.execution_count else 0.0),
        })
        return info


class ToolRegistry:
    """Central registry for browser tools"""

    def __init__(self, health_check_timeout: float = 2.0):
        self.health_check_timeout = health_check_timeout
        self._tools: Dict[str, ToolDescriptor] = {}
        self._by_endpoint: Dict[str, ToolDescriptor] = {}
        self.request_count = 0
        self.error_count = 0
        self.total_duration_ms = 0.0
        self.last_health_check: Optional[datetime] = None

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def register(self, tool: BrowserTool, replace: bool = False) -> ToolDescriptor:
        """Add a tool; an existing name or endpoint is an error unless `replace`"""
        for attribute in REQUIRED_ATTRIBUTES:
            if not getattr(tool, attribute, None):
                raise ValueError(f"Tool missing required property: {attribute}")

        by_name = self._tools.get(tool.name)
        by_endpoint = self._by_endpoint.get(tool.endpoint)
        if (by_name or by_endpoint) and not replace:
            existing = by_name or by_endpoint
            raise DuplicateToolError(
                f"Tool '{tool.name}' ({tool.endpoint}) conflicts with registered "
                f"tool '{existing.name}' ({existing.endpoint})")
        for existing in (by_name, by_endpoint):
            if existing is not None:
                self.unregister(existing.name)

        descriptor = ToolDescriptor(tool)
        self._tools[tool.name] = descriptor
        self._by_endpoint[tool.endpoint] = descriptor
        logger.info(f"Tool registered: {tool.name} ({tool.endpoint})")
        return descriptor

    def unregister(self, name: str) -> bool:
        descriptor = self._tools.pop(name, None)
        if descriptor is None:
            return False
        self._by_endpoint.pop(descriptor.endpoint, None)
        logger.info(f"Tool unregistered: {name}")
        return True

    def get(self, name: str) -> Optional[ToolDescriptor]:
        return self._tools.get(name)

    def by_endpoint(self, endpoint: str) -> Optional[ToolDescriptor]:
        return self._by_endpoint.get(endpoint)

    def names(self) -> List[str]:
        return list(self._tools)

    def discover(self, category: Optional[str] = None, capability: Optional[str] = None,
                 healthy: Optional[bool] = None,
                 name_pattern: Optional[str] = None) -> List[ToolDescriptor]:
        """Tools matching every given criterion, in registration order

        `capability` is a flag name (async, retryable, batchable, requiresAuth);
        `name_pattern` is a regular expression searched in the tool name.
        """
        pattern = re.compile(name_pattern) if name_pattern else None
        matches = []
        for descriptor in self._tools.values():
            if category and descriptor.category != category:
                continue
            if capability and capability not in descriptor.capabilities.flags():
                continue
            if healthy is not None and descriptor.healthy != healthy:
                continue
            if pattern and not pattern.search(descriptor.name):
                continue
            matches.append(descriptor)
        return matches

    async def route(self, endpoint: str, params: Any) -> ToolResult:
        """Validate then execute the tool for `endpoint`

        Raises UnknownEndpointError; every other outcome is a ToolResult.
        """
        descriptor = self._by_endpoint.get(endpoint)
        if descriptor is None:
            raise UnknownEndpointError(endpoint)

        tool = descriptor.tool
        started = time.monotonic()
        self.request_count += 1

        validation = tool.validate(params)
        if not validation.valid:
            logger.info(f"Rejected {tool.name} parameters: {validation.errors}")
            result = ToolResult.fail(
                f"Invalid parameters: {'; '.join(validation.errors)}",
                "validation",
                errors=validation.errors,
                tool=tool.name,
            )
        else:
            result = await tool.execute(params)

        duration_ms = (time.monotonic() - started) * 1000
        self._record(descriptor, result, duration_ms)
        return result

    def _record(self, descriptor: ToolDescriptor, result: ToolResult, duration_ms: float):
        descriptor.execution_count += 1
        descriptor.last_executed_at = datetime.now(timezone.utc)
        descriptor.total_duration_ms += duration_ms
        self.total_duration_ms += duration_ms
        if not result.success:
            descriptor.error_count += 1
            self.error_count += 1
            logger.warning(f"Tool {descriptor.name} failed: {result.error}")

    async def _check_one(self, descriptor: ToolDescriptor):
        try:
            outcome = await asyncio.wait_for(descriptor.tool.health_check(),
                                             timeout=self.health_check_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Tool {descriptor.name} health check timed out")
            outcome = False
        except Exception as e:
            logger.warning(f"Tool {descriptor.name} failed health check: {e}")
            outcome = False
        # No health check of its own means healthy
        descriptor.healthy = True if outcome is None else bool(outcome)
        descriptor.last_health_check = datetime.now(timezone.utc)

    async def health_check_all(self) -> Dict[str, bool]:
        """Refresh every tool's health flag concurrently"""
        descriptors = list(self._tools.values())
        await asyncio.gather(*(self._check_one(d) for d in descriptors))
        self.last_health_check = datetime.now(timezone.utc)
        return {d.name: d.healthy for d in descriptors}

    def health(self) -> Dict[str, Any]:
        total = len(self._tools)
        healthy = sum(1 for d in self._tools.values() if d.healthy)
        error_rate = (self.error_count / self.request_count * 100) if self.request_count else 0.0
        return {
            "healthy": healthy == total and error_rate < 5,
            "totalTools": total,
            "healthyTools": healthy,
            "requestCount": self.request_count,
            "errorCount": self.error_count,
            "errorRate": round(error_rate, 2),
            "averageResponseTime": (round(self.total_duration_ms / self.request_count, 2)
                                    if self.request_count else 0.0),
            "lastHealthCheck": self.last_health_check.isoformat() if self.last_health_check else None,
        }

    async def monitor_health(self, interval: float):
        """Background sweep; runs until cancelled"""
        while True:
            await asyncio.sleep(interval)
            try:
                await self.health_check_all()
            except Exception as e:
                logger.error(f"Health sweep failed: {e}")
