"""
Validation Window Monitor - Captures host validation messages after a commit.

The host's rule engine reports structural problems on a push-only channel;
there is no acknowledgement and no request/response. The monitor subscribes
for a bounded window around the commit, keeps messages that look like rule
validation failures, and unsubscribes when the window closes.

Known limits: messages emitted after the window are lost, and unrelated
diagnostics that happen to match a marker are captured too.

Channels that cannot correlate messages to a commit are shared by every
session, so the monitor holds a commit lock for the whole window.
"""

from __future__ import annotations
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Iterable, Protocol, runtime_checkable
import asyncio
import itertools
import logging

from ..rule_schema.models import ValidationSignal

logger = logging.getLogger(__name__)

SignalCallback = Callable[[str, "str | None"], None]

DEFAULT_MARKERS: tuple[str, ...] = (
    "validation",
    "invalid",
    "must be",
    "is required",
    "missing",
    "unrecognized",
    "not a valid",
    "rule element",
)


@runtime_checkable
class ValidationChannel(Protocol):
    """Push-only diagnostic stream owned by the host."""

    supports_correlation: bool

    def subscribe(self, callback: SignalCallback, correlation_id: str | None = None) -> Any:
        ...

    def unsubscribe(self, token: Any) -> None:
        ...


class InMemoryValidationChannel:
    """
    Pub/sub hub for hosts that publish diagnostics in-process.

    With correlation enabled, a message tagged with a correlation id only
    reaches subscribers with the same id (or none); untagged messages reach
    everyone.
    """

    def __init__(self, correlated: bool = True):
        self.supports_correlation = correlated
        self._subscribers: dict[int, tuple[SignalCallback, str | None]] = {}
        self._tokens = itertools.count(1)

    def subscribe(self, callback: SignalCallback, correlation_id: str | None = None) -> int:
        token = next(self._tokens)
        self._subscribers[token] = (callback, correlation_id)
        return token

    def unsubscribe(self, token: int) -> None:
        self._subscribers.pop(token, None)

    def publish(self, message: str, correlation_id: str | None = None):
        for callback, wanted in list(self._subscribers.values()):
            if self.supports_correlation and correlation_id and wanted and wanted != correlation_id:
                continue
            callback(message, correlation_id)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)


class _CaptureHandler(logging.Handler):
    """Forwards every record of the host logger to one subscriber."""

    def __init__(self, callback: SignalCallback, level: int):
        super().__init__(level)
        self.callback = callback

    def emit(self, record: logging.LogRecord):
        try:
            message = record.getMessage()
        except Exception:
            self.handleError(record)
            return
        self.callback(message, getattr(record, "correlation_id", None))


class LoggerValidationChannel:
    """
    Intercepts a host logger by attaching a handler for the window.

    Usage:
        channel = LoggerValidationChannel("host.rules")
        monitor = ValidationWindowMonitor(channel)
    """

    supports_correlation = False

    def __init__(self, logger_name: str = "host.validation", level: int = logging.WARNING):
        self.logger_name = logger_name
        self.level = level

    def subscribe(self, callback: SignalCallback, correlation_id: str | None = None) -> logging.Handler:
        handler = _CaptureHandler(callback, self.level)
        logging.getLogger(self.logger_name).addHandler(handler)
        return handler

    def unsubscribe(self, token: logging.Handler) -> None:
        logging.getLogger(self.logger_name).removeHandler(token)


class SignalCapture:
    """Signals collected during one window; closed once the window ends."""

    def __init__(self):
        self._signals: list[ValidationSignal] = []
        self.closed = False

    def add(self, message: str, correlation_id: str | None = None):
        if self.closed:
            return
        self._signals.append(ValidationSignal(message=message, correlation_id=correlation_id))

    def close(self):
        self.closed = True

    @property
    def signals(self) -> list[ValidationSignal]:
        return list(self._signals)

    def __len__(self) -> int:
        return len(self._signals)


class ValidationWindowMonitor:
    """
    Opens bounded observation windows over a ValidationChannel.

    Usage:
        async with monitor.watch(correlation_id) as capture:
            await store.update(doc_id, {"rules": rules})
        signals = capture.signals
    """

    def __init__(
        self,
        channel: ValidationChannel,
        window_seconds: float = 1.0,
        markers: Iterable[str] = DEFAULT_MARKERS,
    ):
        self.channel = channel
        self.window_seconds = window_seconds
        self.markers = tuple(m.lower() for m in markers)
        self._lock: asyncio.Lock | None = None

    @property
    def commit_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    def matches(self, message: str) -> bool:
        if not self.markers:
            return True
        lowered = message.lower()
        return any(marker in lowered for marker in self.markers)

    @asynccontextmanager
    async def watch(
        self,
        correlation_id: str | None = None,
        window_seconds: float | None = None,
    ) -> AsyncIterator[SignalCapture]:
        """
        Subscribe before the body runs and keep listening for the window after it.

        If the body raises, the window is not waited out.
        """
        window = self.window_seconds if window_seconds is None else window_seconds
        serialize = not self.channel.supports_correlation
        if serialize:
            await self.commit_lock.acquire()

        capture = SignalCapture()

        def on_message(message: str, message_correlation: str | None):
            if correlation_id and message_correlation and message_correlation != correlation_id:
                return
            if self.matches(message):
                capture.add(message, message_correlation or correlation_id)

        try:
            token = self.channel.subscribe(on_message, correlation_id)
            try:
                yield capture
                if window > 0:
                    await asyncio.sleep(window)
            finally:
                self.channel.unsubscribe(token)
                capture.close()
        finally:
            if serialize:
                self.commit_lock.release()

        if len(capture):
            logger.info("Captured %d validation signals", len(capture))

    async def observe(
        self,
        window_seconds: float | None = None,
        correlation_id: str | None = None,
    ) -> list[ValidationSignal]:
        """Listen for one window with nothing to wrap."""
        async with self.watch(correlation_id, window_seconds) as capture:
            pass
        return capture.signals
