"""
Bounded log buffers fed by extension push messages

Copyright (c) 2024 Browser Bridge Project
Licensed under the MIT License - see LICENSE file for details
"""

import logging
from collections import OrderedDict, deque
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .protocol import ConsolePush

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "...[truncated]"


class LogEntry(BaseModel):
    """One observed browser-side event"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    timestamp: datetime
    level: str = "log"
    message: str = ""
    stack_trace: Optional[str] = Field(default=None, alias="stackTrace")
    extra: Dict[str, Any] = Field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level,
            "message": self.message,
        }
        if self.stack_trace:
            data["stackTrace"] = self.stack_trace
        data.update(self.extra)
        return data


def sanitize_message(value: Any, max_length: int) -> str:
    """Coerce to text, strip NUL/control characters and cap the length"""
    text = value if isinstance(value, str) else str(value)
    text = "".join(ch for ch in text if ch in "\n\t" or ch >= " ")
    if len(text) > max_length:
        keep = max(max_length - len(TRUNCATION_MARKER), 0)
        text = text[:keep] + TRUNCATION_MARKER
    return text


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return None


class LogBuffer:
    """Fixed-capacity ring buffer; the oldest entry is evicted when full

    Only the owning aggregator appends. Readers always get a copy.
    """

    def __init__(self, name: str, max_size: int = 1000):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.name = name
        self.max_size = max_size
        self._entries = deque(maxlen=max_size)
        self.evicted = 0

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, entry: LogEntry):
        if len(self._entries) == self.max_size:
            self.evicted += 1
        self._entries.append(entry)

    def snapshot(self) -> List[LogEntry]:
        return list(self._entries)

    def get(self, level: Optional[str] = None, since: Optional[datetime] = None,
            limit: Optional[int] = None) -> List[LogEntry]:
        """Filtered copy in arrival order; `limit` keeps the most recent entries"""
        entries = self.snapshot()
        if level and level != "all":
            entries = [e for e in entries if e.level == level]
        if since is not None:
            if since.tzinfo is None:
                since = since.replace(tzinfo=timezone.utc)
            entries = [e for e in entries if e.timestamp >= since]
        if limit is not None:
            entries = entries[-limit:] if limit > 0 else []
        return entries

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        logger.info(f"Cleared {count} entries from {self.name}")
        return count


class StateAggregators:
    """Console log, console error and network error buffers

    A console flush may return entries that were already delivered, either by
    an earlier flush or as push events. Flushed entries whose identity
    (source timestamp, level, message, stack) is in the recent-delivery window
    are skipped.
    """

    def __init__(self, max_size: int = 1000, max_message_length: int = 2000):
        self.max_message_length = max_message_length
        self.console_logs = LogBuffer("console_logs", max_size)
        self.console_errors = LogBuffer("console_errors", max_size)
        self.network_errors = LogBuffer("network_errors", max_size)
        self._by_type = {
            "consoleLog": self.console_logs,
            "consoleError": self.console_errors,
            "networkError": self.network_errors,
        }
        self._delivered: "OrderedDict[Tuple, None]" = OrderedDict()
        self._delivered_limit = max_size * len(self._by_type)

    def buffer(self, name: str) -> LogBuffer:
        for buffer in self._by_type.values():
            if buffer.name == name:
                return buffer
        raise KeyError(name)

    def make_entry(self, data: Dict[str, Any], default_level: str) -> LogEntry:
        fields = dict(data)
        timestamp = _parse_timestamp(fields.pop("timestamp", None))
        message = fields.pop("message", None)
        if message is None:
            args = fields.pop("args", None)
            message = " ".join(str(a) for a in args) if isinstance(args, list) else ""
        stack = fields.pop("stackTrace", None) or fields.pop("stack", None)
        level = fields.pop("level", None) or default_level
        return LogEntry(
            timestamp=timestamp or datetime.now(timezone.utc),
            level=str(level),
            message=sanitize_message(message, self.max_message_length),
            stack_trace=sanitize_message(stack, self.max_message_length) if stack else None,
            extra=fields,
        )

    def _remember(self, reply_type: str, data: Dict[str, Any], entry: LogEntry) -> bool:
        """Record a delivered entry; False if it was already delivered"""
        # The parsed timestamp falls back to now(), so key on the source value
        source_time = data.get("timestamp")
        key = (reply_type, None if source_time is None else str(source_time),
               entry.level, entry.message, entry.stack_trace)
        if key in self._delivered:
            self._delivered.move_to_end(key)
            return False
        self._delivered[key] = None
        if len(self._delivered) > self._delivered_limit:
            self._delivered.popitem(last=False)
        return True

    def ingest(self, push: ConsolePush):
        default_level = {"consoleLog": "log", "consoleError": "error",
                         "networkError": "network"}[push.type]
        entry = self.make_entry(push.data, default_level)
        # Pushes are distinct events even when identical; only record them
        self._remember(push.type, push.data, entry)
        self._by_type[push.type].append(entry)

    def ingest_batch(self, reply_type: str, items: List[Dict[str, Any]]) -> int:
        """Add entries returned by a console flush reply; returns how many were new"""
        default_level = "error" if reply_type == "consoleError" else "log"
        buffer = self._by_type[reply_type]
        count = 0
        for item in items:
            if not isinstance(item, dict):
                continue
            entry = self.make_entry(item, default_level)
            if not self._remember(reply_type, item, entry):
                continue
            buffer.append(entry)
            count += 1
        skipped = len(items) - count
        if skipped:
            logger.debug(f"Skipped {skipped} already delivered or invalid {reply_type} entries")
        return count
