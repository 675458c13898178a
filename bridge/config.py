"""
Bridge configuration

Copyright (c) 2024 Browser Bridge Project
Licensed under the MIT License - see LICENSE file for details
"""

import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field

ENV_PREFIX = "BRIDGE_"


class BridgeConfig(BaseModel):
    """Runtime settings for the bridge process"""

    host: str = "localhost"
    http_port: int = Field(default=3025, ge=0, le=65535)
    ws_port: int = Field(default=8765, ge=0, le=65535)
    screenshot_dir: str = ".screenshots"
    enable_mcp: bool = True

    max_log_entries: int = Field(default=1000, gt=0)
    max_message_length: int = Field(default=2000, gt=0)
    content_max_chars: int = Field(default=100_000, gt=0)
    content_chunk_size: int = Field(default=16_384, gt=0)

    # Seconds
    console_collect_timeout: float = Field(default=2.0, gt=0)
    health_check_interval: float = Field(default=300.0, gt=0)
    health_check_timeout: float = Field(default=2.0, gt=0)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "BridgeConfig":
        """Build a config from BRIDGE_* variables, then apply explicit overrides

        Overrides whose value is None are ignored so argparse defaults can be
        passed straight through.
        """
        environ = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            key = ENV_PREFIX + name.upper()
            if key in environ:
                values[name] = environ[key]
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(values)
