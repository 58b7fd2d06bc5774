"""Observer interface for fetch, resolve and download events.

Components never reach for a module-level logger to tell the user what is
happening. They receive a :class:`DownloadReporter` and call it. The CLI
passes a :class:`LoggingReporter`; tests pass a recorder.

**Usage:**

    reporter = LoggingReporter()
    fetcher = HttpFetcher(user_agent, timeout_s=15, reporter=reporter)
    downloader = Downloader(extractor, reporter=reporter)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from PixivNovel.download import DownloadSummary
    from PixivNovel.models import ChapterItem

__all__ = ["DownloadReporter", "LoggingReporter", "NullReporter"]


@runtime_checkable
class DownloadReporter(Protocol):
    """Receives progress and failure events from every component."""

    def retrying(
        self, url: str, attempt: int, delay_s: float, reason: str
    ) -> None: ...

    def chapter_listed(self, index: int, chapter: "ChapterItem") -> None: ...

    def chapter_succeeded(self, done: int, total: int, title: str) -> None: ...

    def chapter_empty(self, done: int, total: int, chapter: "ChapterItem") -> None: ...

    def chapter_failed(
        self,
        done: int,
        total: int,
        chapter: "ChapterItem",
        error: Optional[BaseException],
    ) -> None: ...

    def range_warning(self, message: str) -> None: ...

    def file_written(self, path: str) -> None: ...

    def summary(self, summary: "DownloadSummary") -> None: ...


class NullReporter:
    """Reporter that discards every event."""

    def retrying(self, url: str, attempt: int, delay_s: float, reason: str) -> None:
        pass

    def chapter_listed(self, index: int, chapter: "ChapterItem") -> None:
        pass

    def chapter_succeeded(self, done: int, total: int, title: str) -> None:
        pass

    def chapter_empty(self, done: int, total: int, chapter: "ChapterItem") -> None:
        pass

    def chapter_failed(
        self,
        done: int,
        total: int,
        chapter: "ChapterItem",
        error: Optional[BaseException],
    ) -> None:
        pass

    def range_warning(self, message: str) -> None:
        pass

    def file_written(self, path: str) -> None:
        pass

    def summary(self, summary: "DownloadSummary") -> None:
        pass


class LoggingReporter:
    """Reporter that forwards events to :mod:`logging`.

    Structured fields travel in ``extra={"extra_fields": ...}`` so the JSON
    formatter from :mod:`PixivNovel.logging_utils` can persist them.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger("PixivNovel")

    def retrying(self, url: str, attempt: int, delay_s: float, reason: str) -> None:
        self.logger.warning(
            "HTTP retry %d (%dms): %s",
            attempt,
            int(delay_s * 1000),
            reason,
            extra={"extra_fields": {"url": url, "attempt": attempt, "reason": reason}},
        )

    def chapter_listed(self, index: int, chapter: "ChapterItem") -> None:
        self.logger.info("Chapter %d: %s", index + 1, chapter.title)

    def chapter_succeeded(self, done: int, total: int, title: str) -> None:
        self.logger.info("%d/%d %s", done, total, title)

    def chapter_empty(self, done: int, total: int, chapter: "ChapterItem") -> None:
        self.logger.warning(
            "%d/%d %s has no content: %s",
            done,
            total,
            chapter.title,
            chapter.url,
            extra={"extra_fields": {"url": chapter.url, "reason": "empty_content"}},
        )

    def chapter_failed(
        self,
        done: int,
        total: int,
        chapter: "ChapterItem",
        error: Optional[BaseException],
    ) -> None:
        self.logger.error(
            "%d/%d %s failed: %s",
            done,
            total,
            chapter.title,
            error,
            exc_info=error,
            extra={"extra_fields": {"url": chapter.url, "reason": type(error).__name__}},
        )

    def range_warning(self, message: str) -> None:
        self.logger.warning(message)

    def file_written(self, path: str) -> None:
        self.logger.info("Written: %s", path)

    def summary(self, summary: "DownloadSummary") -> None:
        level = logging.INFO if summary.ok else logging.WARNING
        self.logger.log(
            level,
            "Download %s (%d/%d chapters)",
            summary.describe(),
            summary.succeeded,
            summary.total,
            extra={
                "extra_fields": {
                    "event": "summary",
                    "total": summary.total,
                    "succeeded": summary.succeeded,
                    "failed": len(summary.failures),
                }
            },
        )
