"""
Pytest configuration and fixtures
"""

import pytest
from unittest.mock import AsyncMock

from bridge.buffers import StateAggregators
from bridge.config import BridgeConfig
from bridge.connection import ConnectionManager

from extension_harness import FakeExtension

# 1x1 transparent PNG
TEST_PNG_BASE64 = "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="


@pytest.fixture
def config(tmp_path):
    """Config writing screenshots under the test's tmp dir"""
    return BridgeConfig(
        http_port=0,
        ws_port=0,
        screenshot_dir=str(tmp_path / "screenshots"),
        enable_mcp=False,
        max_log_entries=50,
        console_collect_timeout=0.2,
    )


@pytest.fixture
def aggregators():
    return StateAggregators(max_size=50, max_message_length=200)


@pytest.fixture
def connection(aggregators):
    """Connection manager with no extension attached"""
    return ConnectionManager(aggregators)


@pytest.fixture
def extension(connection):
    """Scripted extension socket for `connection` (attach it with connect())"""
    return FakeExtension(connection)


@pytest.fixture
def mock_websocket():
    """Mock WebSocket connection"""
    mock_ws = AsyncMock()
    mock_ws.send = AsyncMock()
    mock_ws.close = AsyncMock()
    mock_ws.remote_address = ("127.0.0.1", 12345)
    return mock_ws


@pytest.fixture
def png_data_url():
    return f"data:image/png;base64,{TEST_PNG_BASE64}"


@pytest.fixture
def sample_console_push():
    """consoleLog push as the extension sends it"""
    return {
        "type": "consoleLog",
        "data": {
            "level": "info",
            "message": "Page loaded",
            "timestamp": 1736935200000,
        },
    }


@pytest.fixture
def sample_audit_report():
    return {
        "categories": {
            "performance": {"score": 0.92},
            "accessibility": {"score": 0.81},
            "seo": {"score": 1},
            "best-practices": {"score": None},
        },
        "audits": {},
    }
