"""
Unit tests for tool parameter validation and input screening
"""

import pytest

from bridge.security import check_url, find_threat
from bridge.tools.browser import (
    AuditTool,
    ClickTool,
    ConsoleLogsTool,
    EvaluateTool,
    GetContentTool,
    NavigateTool,
    ScreenshotTool,
    TypeTool,
    WaitTool,
)

MALICIOUS_INPUTS = [
    "<script>alert(1)</script>",
    "< SCRIPT src=//evil.example>",
    '<img src=x onerror="alert(1)">',
    "\" onmouseover=\"steal()",
    "javascript:alert(document.cookie)",
    "<iframe src=https://evil.example>",
    "<svg/onload=alert(1)>",
    "' OR '1'='1",
    "admin' or 1=1",
    "x'; DROP TABLE users; --",
    "1 UNION SELECT password FROM users",
    "name\" --",
    "../../etc/passwd",
    "..\\windows\\system32",
    "%2e%2e%2fsecret",
    "div\x00.hidden",
]

BENIGN_SELECTORS = [
    "#submit",
    "div.item > a",
    "input[name='email']",
    "ul li:nth-child(2)",
    "[data-test-id=\"login\"]",
    "button.primary:not(.disabled)",
]


class TestThreatScreening:

    @pytest.mark.parametrize("value", MALICIOUS_INPUTS)
    def test_malicious_inputs_detected(self, value):
        assert find_threat(value) is not None

    @pytest.mark.parametrize("value", BENIGN_SELECTORS)
    def test_benign_selectors_pass(self, value):
        assert find_threat(value) is None

    @pytest.mark.parametrize("value", MALICIOUS_INPUTS)
    def test_click_rejects_malicious_selector(self, value):
        result = ClickTool().validate({"selector": value})
        assert result.valid is False
        assert any("selector" in e for e in result.errors)

    @pytest.mark.parametrize("value", MALICIOUS_INPUTS)
    def test_type_rejects_malicious_text(self, value):
        result = TypeTool().validate({"selector": "#q", "text": value})
        assert result.valid is False

    def test_evaluate_rejects_markup(self):
        result = EvaluateTool().validate({"script": "document.body.innerHTML = '<script>x()</script>'"})
        assert result.valid is False

    def test_evaluate_accepts_plain_script(self):
        result = EvaluateTool().validate({"script": "return document.querySelectorAll('a').length"})
        assert result.valid is True


class TestUrlValidation:

    @pytest.mark.parametrize("url", [
        "https://example.com",
        "http://localhost:3000/path?q=1#frag",
        "  https://example.com/a/b  ",
    ])
    def test_valid_urls(self, url):
        assert NavigateTool().validate({"url": url}).valid is True

    @pytest.mark.parametrize("url", [
        "",
        "example.com",
        "javascript:alert(1)",
        "file:///etc/passwd",
        "ftp://example.com/file",
        "data:text/html,<h1>x</h1>",
        "https://",
        "https://example.com/../admin",
        "https://example.com/%2e%2e/admin",
        "https://example.com/?q=<script>alert(1)</script>",
        "https://example.com/" + "a" * 2100,
    ])
    def test_invalid_urls(self, url):
        assert NavigateTool().validate({"url": url}).valid is False

    def test_check_url_strips_whitespace(self):
        assert check_url(" https://example.com ") == "https://example.com"


class TestSchemaValidation:

    def test_extra_property_rejected(self):
        result = ClickTool().validate({"selector": "#a", "force": True})
        assert result.valid is False
        assert "force: unknown property" in result.errors

    def test_missing_required_property(self):
        result = TypeTool().validate({"selector": "#a"})
        assert result.valid is False
        assert any(e.startswith("text:") for e in result.errors)

    def test_non_object_parameters(self):
        result = ClickTool().validate(["#a"])
        assert result.valid is False
        assert result.errors == ["Parameters must be an object"]

    def test_none_means_no_parameters(self):
        assert ScreenshotTool().validate(None).valid is True

    def test_empty_selector_rejected(self):
        assert ClickTool().validate({"selector": ""}).valid is False

    def test_selector_length_limit(self):
        assert ClickTool().validate({"selector": "#" + "a" * 1000}).valid is False

    @pytest.mark.parametrize("timeout,valid", [(0, True), (60000, True), (-1, False), (60001, False)])
    def test_wait_timeout_range(self, timeout, valid):
        assert WaitTool().validate({"selector": "#a", "timeout": timeout}).valid is valid

    def test_screenshot_accepts_camel_case(self):
        tool = ScreenshotTool()
        assert tool.validate({"fullPage": True}).valid is True
        assert tool.parse({"fullPage": True}).full_page is True

    def test_content_format(self):
        tool = GetContentTool()
        assert tool.validate({"format": "text"}).valid is True
        assert tool.validate({"format": "markdown"}).valid is False

    def test_audit_categories(self):
        tool = AuditTool()
        assert tool.validate({}).valid is True
        assert tool.validate({"categories": ["seo", "pwa"]}).valid is True
        assert tool.validate({"categories": []}).valid is False
        assert tool.validate({"categories": ["speed"]}).valid is False

    def test_console_query_coerces_query_strings(self):
        params = ConsoleLogsTool().parse({"limit": "25", "level": "error"})
        assert params.limit == 25

    @pytest.mark.parametrize("limit", [0, 1001])
    def test_console_limit_range(self, limit):
        assert ConsoleLogsTool().validate({"limit": limit}).valid is False

    def test_schema_forbids_additional_properties(self):
        schema = ClickTool().schema
        assert schema["additionalProperties"] is False
        assert schema["required"] == ["selector"]
