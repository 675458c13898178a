"""
Unit tests for the tool registry
"""

import asyncio

import pytest

from bridge.errors import DuplicateToolError, UnknownEndpointError
from bridge.registry import ToolRegistry
from bridge.tools.base import BrowserTool, ToolCapabilities, ToolParams


class EchoParams(ToolParams):
    text: str


class EchoTool(BrowserTool):
    name = "echo"
    endpoint = "/echo"
    category = "testing"
    params_model = EchoParams
    capabilities = ToolCapabilities(retryable=True)

    def __init__(self, health=None):
        super().__init__()
        self.health = health
        self.calls = 0

    async def run(self, params):
        self.calls += 1
        if params.text == "explode":
            raise RuntimeError("exploded")
        return {"echo": params.text}

    async def health_check(self):
        if callable(self.health):
            return await self.health()
        return self.health


class PingTool(BrowserTool):
    name = "ping_tool"
    endpoint = "/ping-tool"
    category = "status"

    async def run(self, params):
        return {"pong": True}


class TestRegistration:

    @pytest.fixture
    def registry(self):
        registry = ToolRegistry(health_check_timeout=0.05)
        registry.register(EchoTool())
        registry.register(PingTool())
        return registry

    def test_lookup(self, registry):
        assert len(registry) == 2
        assert "echo" in registry
        assert registry.get("echo").endpoint == "/echo"
        assert registry.by_endpoint("/ping-tool").name == "ping_tool"
        assert registry.names() == ["echo", "ping_tool"]

    def test_duplicate_name(self, registry):
        duplicate = EchoTool()
        duplicate.endpoint = "/other"
        with pytest.raises(DuplicateToolError):
            registry.register(duplicate)

    def test_duplicate_endpoint(self, registry):
        duplicate = PingTool()
        duplicate.name = "another"
        duplicate.endpoint = "/echo"
        with pytest.raises(DuplicateToolError, match="conflicts"):
            registry.register(duplicate)

    def test_replace(self, registry):
        replacement = EchoTool()
        registry.register(replacement, replace=True)
        assert registry.get("echo").tool is replacement
        assert len(registry) == 2

    def test_missing_required_property(self, registry):
        nameless = PingTool()
        nameless.name = ""
        with pytest.raises(ValueError, match="name"):
            registry.register(nameless)

    def test_unregister(self, registry):
        assert registry.unregister("echo") is True
        assert registry.unregister("echo") is False
        assert registry.by_endpoint("/echo") is None

    def test_discover(self, registry):
        assert [d.name for d in registry.discover(category="testing")] == ["echo"]
        assert [d.name for d in registry.discover(capability="retryable")] == ["echo"]
        assert [d.name for d in registry.discover(name_pattern="^ping")] == ["ping_tool"]
        assert len(registry.discover()) == 2

    def test_discover_by_health(self, registry):
        registry.get("echo").healthy = False
        assert [d.name for d in registry.discover(healthy=True)] == ["ping_tool"]


class TestRouting:

    @pytest.fixture
    def echo(self):
        return EchoTool()

    @pytest.fixture
    def registry(self, echo):
        registry = ToolRegistry()
        registry.register(echo)
        return registry

    @pytest.mark.asyncio
    async def test_route_success(self, registry):
        result = await registry.route("/echo", {"text": "hi"})

        assert result.success is True
        assert result.data == {"echo": "hi"}
        descriptor = registry.get("echo")
        assert descriptor.execution_count == 1
        assert descriptor.error_count == 0
        assert descriptor.last_executed_at is not None

    @pytest.mark.asyncio
    async def test_route_unknown_endpoint(self, registry):
        with pytest.raises(UnknownEndpointError):
            await registry.route("/nope", {})

    @pytest.mark.asyncio
    async def test_invalid_parameters_never_reach_tool(self, registry, echo):
        result = await registry.route("/echo", {"text": "hi", "extra": 1})

        assert result.success is False
        assert result.error_type == "validation"
        assert result.metadata["errors"] == ["extra: unknown property"]
        assert echo.calls == 0
        assert registry.error_count == 1

    @pytest.mark.asyncio
    async def test_tool_failure_counts(self, registry):
        result = await registry.route("/echo", {"text": "explode"})

        assert result.error_type == "internal"
        assert registry.get("echo").error_count == 1
        health = registry.health()
        assert health["requestCount"] == 1
        assert health["errorRate"] == 100.0
        assert health["healthy"] is False


class TestHealth:

    @pytest.mark.asyncio
    async def test_health_outcomes(self):
        async def hang():
            await asyncio.sleep(10)

        async def broken():
            raise RuntimeError("down")

        registry = ToolRegistry(health_check_timeout=0.05)
        tools = {
            "ok": EchoTool(health=True),
            "none": EchoTool(health=None),
            "false": EchoTool(health=False),
            "hang": EchoTool(health=hang),
            "broken": EchoTool(health=broken),
        }
        for name, tool in tools.items():
            tool.name = name
            tool.endpoint = f"/{name}"
            registry.register(tool)

        results = await registry.health_check_all()

        assert results == {"ok": True, "none": True, "false": False,
                           "hang": False, "broken": False}
        summary = registry.health()
        assert summary["totalTools"] == 5
        assert summary["healthyTools"] == 2
        assert summary["lastHealthCheck"] is not None

    @pytest.mark.asyncio
    async def test_monitor_runs_until_cancelled(self):
        registry = ToolRegistry()
        registry.register(EchoTool(health=False))

        monitor = asyncio.create_task(registry.monitor_health(0.01))
        await asyncio.sleep(0.05)
        monitor.cancel()
        with pytest.raises(asyncio.CancelledError):
            await monitor

        assert registry.get("echo").healthy is False
        assert registry.get("echo").last_health_check is not None

    def test_empty_registry_is_healthy(self):
        health = ToolRegistry().health()
        assert health["healthy"] is True
        assert health["errorRate"] == 0.0

    def test_descriptor_to_dict(self):
        registry = ToolRegistry()
        descriptor = registry.register(EchoTool())
        info = descriptor.to_dict()
        assert info["healthy"] is True
        assert info["executionCount"] == 0
        assert info["capabilities"]["retryable"] is True
