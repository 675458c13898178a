"""
Correlation table - pairs in-flight requests with their asynchronous replies

Copyright (c) 2024 Browser Bridge Project
Licensed under the MIT License - see LICENSE file for details
"""

import asyncio
import logging
import time
from collections import deque
from typing import Any, Deque, Dict, List, Optional

from .errors import RequestTimeoutError

logger = logging.getLogger(__name__)


class PendingRequest:
    """One in-flight exchange: a future plus the timer that bounds it"""

    __slots__ = ("key", "expected_type", "created_at", "timeout", "future", "timer")

    def __init__(self, key: str, expected_type: Optional[str], timeout: float,
                 future: asyncio.Future, timer: asyncio.TimerHandle):
        self.key = key
        self.expected_type = expected_type
        self.created_at = time.time()
        self.timeout = timeout
        self.future = future
        self.timer = timer


class CorrelationTable:
    """Map of request id -> PendingRequest

    Entries are settled exactly once. A timer exists only while its entry does:
    settling cancels the timer, and a firing timer removes the entry before
    failing the future. Late or duplicate settles are logged and ignored.

    Replies that carry no request id are matched first-in-first-out against
    pending entries expecting that reply type.
    """

    def __init__(self):
        self._pending: Dict[str, PendingRequest] = {}
        self._by_type: Dict[str, Deque[str]] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, key: str) -> bool:
        return key in self._pending

    def keys(self) -> List[str]:
        return list(self._pending)

    def register(self, key: str, timeout: float,
                 expected_type: Optional[str] = None) -> asyncio.Future:
        """Insert an entry and arm its timer; returns the future to await"""
        if key in self._pending:
            raise ValueError(f"Request id already pending: {key}")

        loop = asyncio.get_running_loop()
        future = loop.create_future()
        timer = loop.call_later(timeout, self._expire, key)
        self._pending[key] = PendingRequest(key, expected_type, timeout, future, timer)
        if expected_type:
            self._by_type.setdefault(expected_type, deque()).append(key)

        # A caller that stops waiting (cancellation) must not leave the entry behind
        future.add_done_callback(lambda f, k=key: self._discard_cancelled(k, f))
        return future

    def resolve(self, key: str, payload: Any) -> bool:
        entry = self._pop(key)
        if entry is None:
            logger.warning(f"Ignoring reply for unknown or settled request: {key}")
            return False
        entry.future.set_result(payload)
        logger.debug(f"Resolved request {key}")
        return True

    def reject(self, key: str, error: BaseException) -> bool:
        entry = self._pop(key)
        if entry is None:
            logger.warning(f"Ignoring rejection for unknown or settled request: {key}")
            return False
        entry.future.set_exception(error)
        logger.debug(f"Rejected request {key}: {error}")
        return True

    def resolve_by_type(self, reply_type: str, payload: Any) -> bool:
        """Resolve the oldest pending entry that expects `reply_type`"""
        key = self.oldest_for_type(reply_type)
        if key is None:
            logger.warning(f"Ignoring unmatched reply of type '{reply_type}'")
            return False
        return self.resolve(key, payload)

    def oldest_for_type(self, reply_type: str) -> Optional[str]:
        queue = self._by_type.get(reply_type)
        while queue:
            if queue[0] in self._pending:
                return queue[0]
            queue.popleft()
        return None

    def expected_type(self, key: str) -> Optional[str]:
        entry = self._pending.get(key)
        return entry.expected_type if entry else None

    def reject_all(self, error: BaseException) -> int:
        """Drain every entry with `error`; returns how many were rejected"""
        keys = list(self._pending)
        for key in keys:
            self.reject(key, error)
        self._by_type.clear()
        if keys:
            logger.info(f"Rejected {len(keys)} pending request(s): {error}")
        return len(keys)

    def _pop(self, key: str) -> Optional[PendingRequest]:
        entry = self._pending.pop(key, None)
        if entry is None:
            return None
        entry.timer.cancel()
        if entry.expected_type:
            queue = self._by_type.get(entry.expected_type)
            if queue is not None:
                try:
                    queue.remove(key)
                except ValueError:
                    pass
                if not queue:
                    del self._by_type[entry.expected_type]
        if entry.future.done():
            return None
        return entry

    def _expire(self, key: str):
        entry = self._pending.get(key)
        if entry is None:
            return
        logger.warning(f"Request {key} timed out after {entry.timeout:g}s")
        self.reject(key, RequestTimeoutError(key, entry.timeout))

    def _discard_cancelled(self, key: str, future: asyncio.Future):
        if not future.cancelled():
            return
        entry = self._pending.get(key)
        if entry is not None and entry.future is future:
            self._pop(key)
            logger.debug(f"Discarded cancelled request {key}")
