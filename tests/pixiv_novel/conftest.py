"""Shared fixtures for PixivNovel tests: fake clock, mock transport, recording reporter."""

from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional, Tuple

import httpx
import pytest

from PixivNovel.networking import HttpFetcher

Handler = Callable[[httpx.Request], httpx.Response]


class FakeClock:
    """Sleep replacement that records requested delays instead of waiting."""

    def __init__(self) -> None:
        self.sleeps: List[float] = []
        self._lock = threading.Lock()

    def sleep(self, seconds: float) -> None:
        with self._lock:
            self.sleeps.append(seconds)

    @property
    def total(self) -> float:
        return sum(self.sleeps)


class RecordingReporter:
    """Collect reporter events emitted during a test."""

    def __init__(self) -> None:
        self.events: List[Tuple] = []
        self._lock = threading.Lock()

    def _record(self, *event: object) -> None:
        with self._lock:
            self.events.append(tuple(event))

    def named(self, name: str) -> List[Tuple]:
        return [event for event in self.events if event[0] == name]

    def retrying(self, url, attempt, delay_s, reason):
        self._record("retrying", url, attempt, delay_s, reason)

    def chapter_listed(self, index, chapter):
        self._record("chapter_listed", index, chapter)

    def chapter_succeeded(self, done, total, title):
        self._record("chapter_succeeded", done, total, title)

    def chapter_empty(self, done, total, chapter):
        self._record("chapter_empty", done, total, chapter)

    def chapter_failed(self, done, total, chapter, error):
        self._record("chapter_failed", done, total, chapter, error)

    def range_warning(self, message):
        self._record("range_warning", message)

    def file_written(self, path):
        self._record("file_written", path)

    def summary(self, summary):
        self._record("summary", summary)


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler: Handler) -> None:
        self.requests: List[httpx.Request] = []
        self._lock = threading.Lock()

        def _handler(request: httpx.Request) -> httpx.Response:
            with self._lock:
                self.requests.append(request)
            return handler(request)

        super().__init__(_handler)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def make_fetcher(clock: FakeClock, reporter: RecordingReporter):
    """Factory building an :class:`HttpFetcher` over a recording mock transport."""

    created: List[HttpFetcher] = []

    def _make(
        handler: Handler, *, cookie: Optional[str] = None
    ) -> Tuple[HttpFetcher, RecordingTransport]:
        transport = RecordingTransport(handler)
        fetcher = HttpFetcher(
            "TestAgent/1.0",
            timeout_s=5,
            cookie=cookie,
            transport=transport,
            sleep=clock.sleep,
            reporter=reporter,
        )
        created.append(fetcher)
        return fetcher, transport

    yield _make

    for fetcher in created:
        fetcher.close()


@pytest.fixture(autouse=True)
def _reset_package_logger():
    """Drop handlers installed by ``setup_logging`` during CLI tests."""

    yield
    logger = logging.getLogger("PixivNovel")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
