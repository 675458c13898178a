"""
Shared contract for browser tools

Every tool declares a pydantic parameter model (extra properties forbidden),
static capabilities, and implements run(). execute() wraps run() so that
transport failures come back as a ToolResult instead of an exception.

Copyright (c) 2024 Browser Bridge Project
Licensed under the MIT License - see LICENSE file for details
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from ..errors import BridgeError, MalformedResponseError, ToolValidationError

logger = logging.getLogger(__name__)


class ToolParams(BaseModel):
    """Base for parameter models; unknown properties are a validation error"""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class EmptyParams(ToolParams):
    pass


class ToolCapabilities(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    is_async: bool = Field(default=True, alias="async")
    timeout: float = 10.0
    retryable: bool = False
    batchable: bool = False
    requires_auth: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "async": self.is_async,
            "timeoutMs": int(self.timeout * 1000),
            "retryable": self.retryable,
            "batchable": self.batchable,
            "requiresAuth": self.requires_auth,
        }

    def flags(self) -> List[str]:
        return [name for name, on in (("async", self.is_async), ("retryable", self.retryable),
                                      ("batchable", self.batchable),
                                      ("requiresAuth", self.requires_auth)) if on]


class ValidationResult(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)


class ToolResult(BaseModel):
    """Uniform envelope returned by every tool execution"""

    success: bool
    data: Any = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def _check_outcome(self):
        if self.success and self.error is not None:
            raise ValueError("successful result cannot carry an error")
        if not self.success and not self.error:
            raise ValueError("failed result must carry an error message")
        if not self.success:
            self.data = None
        return self

    @classmethod
    def ok(cls, data: Any = None, **metadata) -> "ToolResult":
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def fail(cls, error: str, error_type: str = "internal", **metadata) -> "ToolResult":
        metadata["errorType"] = error_type
        return cls(success=False, error=error, metadata=metadata)

    @property
    def error_type(self) -> Optional[str]:
        return self.metadata.get("errorType")


def format_validation_errors(error: ValidationError) -> List[str]:
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "params"
        if item.get("type") == "extra_forbidden":
            messages.append(f"{location}: unknown property")
        else:
            messages.append(f"{location}: {item.get('msg')}")
    return messages


class BrowserTool:
    """Base class for all browser tools"""

    name: str = ""
    endpoint: str = ""
    category: str = "general"
    description: str = ""
    methods: Tuple[str, ...] = ("POST",)
    params_model: Type[ToolParams] = EmptyParams
    capabilities = ToolCapabilities()

    def __init__(self, connection=None):
        self.connection = connection

    @property
    def schema(self) -> Dict[str, Any]:
        return self.params_model.model_json_schema()

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "endpoint": self.endpoint,
            "category": self.category,
            "description": self.description,
            "methods": list(self.methods),
            "schema": self.schema,
            "capabilities": self.capabilities.to_dict(),
        }

    def parse(self, params: Any) -> ToolParams:
        if params is None:
            params = {}
        if not isinstance(params, dict):
            raise ValueError("Parameters must be an object")
        return self.params_model.model_validate(params)

    def validate(self, params: Any) -> ValidationResult:
        """Schema check; never raises"""
        try:
            self.parse(params)
        except ValidationError as e:
            return ValidationResult(valid=False, errors=format_validation_errors(e))
        except ValueError as e:
            return ValidationResult(valid=False, errors=[str(e)])
        return ValidationResult(valid=True)

    async def run(self, params: ToolParams) -> Any:
        raise NotImplementedError(f"Tool {self.name} must implement run()")

    async def execute(self, params: Any) -> ToolResult:
        """Run the tool; assumes validate() passed"""
        started = time.monotonic()
        try:
            data = await self.run(self.parse(params))
        except BridgeError as e:
            logger.warning(f"[{self.name}] {e.error_type}: {e}")
            extra = {}
            if isinstance(e, ToolValidationError):
                extra["errors"] = e.errors
            elif isinstance(e, MalformedResponseError) and e.preview:
                extra["preview"] = e.preview
            result = ToolResult.fail(str(e), e.error_type, **extra)
        except ValidationError as e:
            result = ToolResult.fail("Invalid parameters", "validation",
                                     errors=format_validation_errors(e))
        except Exception as e:
            logger.exception(f"Tool {self.name} execution failed")
            result = ToolResult.fail(f"Tool execution failed: {e}", "internal")
        else:
            result = data if isinstance(data, ToolResult) else ToolResult.ok(data)

        result.metadata.setdefault("tool", self.name)
        result.metadata["durationMs"] = round((time.monotonic() - started) * 1000, 2)
        return result

    async def health_check(self) -> Optional[bool]:
        """Return None when the tool has no health check of its own"""
        return None
