"""Per-page console and network capture buffers.

Each registered page gets a ``PageCapture`` whose listeners are attached to
the page before the page is handed to any command.  Listeners are plain
synchronous callbacks invoked on the event loop, so an append (including the
eviction of the oldest entry) always completes before any reader sees the
buffer.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Generic, Iterator, TypeVar

logger = logging.getLogger("chrome_cli.capture")

DEFAULT_CAPACITY = 1000

# Status placeholder for a request whose response has not arrived.
PENDING = 0

T = TypeVar("T")


@dataclass
class ConsoleEntry:
    level: str
    text: str
    captured_at: int = field(default_factory=lambda: int(time.time() * 1000))

    def to_dict(self) -> dict[str, Any]:
        return {"level": self.level, "text": self.text, "capturedAt": self.captured_at}


@dataclass
class NetworkRecord:
    url: str
    method: str
    type: str
    status: int = PENDING

    @property
    def pending(self) -> bool:
        return self.status == PENDING

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "method": self.method,
            "status": self.status,
            "type": self.type,
        }


class CaptureBuffer(Generic[T]):
    """Bounded FIFO log; the oldest entry is evicted once *capacity* is reached."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._items: deque[T] = deque(maxlen=capacity)

    def append(self, item: T) -> T | None:
        """Append *item*, returning the entry it evicted (if any)."""
        evicted = self._items[0] if len(self._items) == self.capacity else None
        self._items.append(item)
        return evicted

    def snapshot(self) -> list[T]:
        return list(self._items)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self.snapshot())


class NetworkLog(CaptureBuffer[NetworkRecord]):
    """Request log that fills in response status codes as they arrive.

    A response is first correlated through its originating request object.
    When that request was never recorded (for example a response served for
    a request issued before the listeners were attached) the status goes to
    the earliest still-pending record with the same URL.  Responses with no
    candidate at all are dropped and the log is left untouched.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        super().__init__(capacity)
        # id(request) -> (request, record); holding the request keeps the id stable.
        self._by_request: dict[int, tuple[Any, NetworkRecord]] = {}
        self._request_keys: dict[int, int] = {}

    def record_request(self, request: Any) -> NetworkRecord:
        record = NetworkRecord(
            url=request.url,
            method=request.method,
            type=request.resource_type,
        )
        evicted = self.append(record)
        if evicted is not None:
            self._forget(evicted)
        key = id(request)
        self._by_request[key] = (request, record)
        self._request_keys[id(record)] = key
        return record

    def record_response(self, response: Any) -> NetworkRecord | None:
        record = self._match_request(getattr(response, "request", None))
        if record is None:
            record = self._match_url(response.url)
        if record is None:
            logger.debug(f"Unmatched response for {response.url}")
            return None
        record.status = response.status
        self._forget(record)
        return record

    def clear(self) -> None:
        super().clear()
        self._by_request.clear()
        self._request_keys.clear()

    def _match_request(self, request: Any) -> NetworkRecord | None:
        if request is None:
            return None
        entry = self._by_request.get(id(request))
        if entry is None or entry[0] is not request:
            return None
        record = entry[1]
        return record if record.pending else None

    def _match_url(self, url: str) -> NetworkRecord | None:
        for record in self._items:
            if record.url == url and record.pending:
                return record
        return None

    def _forget(self, record: NetworkRecord) -> None:
        key = self._request_keys.pop(id(record), None)
        if key is not None:
            self._by_request.pop(key, None)


class PageCapture:
    """Console and network buffers for a single page."""

    def __init__(
        self,
        console_capacity: int = DEFAULT_CAPACITY,
        network_capacity: int = DEFAULT_CAPACITY,
    ) -> None:
        self.console: CaptureBuffer[ConsoleEntry] = CaptureBuffer(console_capacity)
        self.network = NetworkLog(network_capacity)

    # -- Event callbacks -----------------------------------------------------

    def on_console(self, msg: Any) -> None:
        self.console.append(ConsoleEntry(level=msg.type, text=msg.text))

    def on_request(self, request: Any) -> None:
        self.network.record_request(request)

    def on_response(self, response: Any) -> None:
        self.network.record_response(response)

    def attach(self, page: Any) -> None:
        """Subscribe this capture to *page*'s console, request and response events."""
        page.on("console", self.on_console)
        page.on("request", self.on_request)
        page.on("response", self.on_response)

    # -- Readers -------------------------------------------------------------

    def console_messages(self) -> list[dict[str, Any]]:
        return [entry.to_dict() for entry in self.console.snapshot()]

    def network_requests(self) -> list[dict[str, Any]]:
        return [record.to_dict() for record in self.network.snapshot()]

    def clear(self) -> None:
        self.console.clear()
        self.network.clear()
