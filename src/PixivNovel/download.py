# === NAVMAP v1 ===
# {
#   "module": "PixivNovel.download",
#   "purpose": "Bounded-concurrency chapter download and ordered assembly",
#   "sections": [
#     {
#       "id": "chapteroutcome",
#       "name": "ChapterSuccess / ChapterFailure",
#       "anchor": "class-chaptersuccess",
#       "kind": "class"
#     },
#     {
#       "id": "downloadsummary",
#       "name": "DownloadSummary",
#       "anchor": "class-downloadsummary",
#       "kind": "class"
#     },
#     {
#       "id": "clamp-range",
#       "name": "clamp_range",
#       "anchor": "function-clamp-range",
#       "kind": "function"
#     },
#     {
#       "id": "safe-filename",
#       "name": "safe_filename",
#       "anchor": "function-safe-filename",
#       "kind": "function"
#     },
#     {
#       "id": "assemble-document",
#       "name": "assemble_document",
#       "anchor": "function-assemble-document",
#       "kind": "function"
#     },
#     {
#       "id": "downloader",
#       "name": "Downloader",
#       "anchor": "class-downloader",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Bounded-concurrency chapter downloader.

**Flow:**

    downloader = Downloader(extractor, reporter=LoggingReporter())
    summary = downloader.download_chapters(book, "data", concurrency=10)

1. The requested ``[start, end]`` range is clamped against the chapter list.
2. One task per selected chapter is submitted to a thread pool. Each task
   acquires the concurrency gate, sleeps the inter-request delay while
   holding it, calls the extractor and releases the gate.
3. Every task writes exactly one slot of an index-addressed outcome buffer,
   the slot of its own position in the selected range. No slot is shared, so
   the gate is the only synchronisation needed.
4. After every task reached a terminal state the buffer is rendered in list
   order, prefixed by a header for series books, and written as UTF-8.

**Failure semantics:**

A chapter that is empty, fails to fetch or raises anything at all becomes a
placeholder block with its listed title and URL. Sibling tasks are never
cancelled. The returned :class:`DownloadSummary` tells a full success apart
from a partial one.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

from PixivNovel.errors import RangeError, describe_failure
from PixivNovel.extraction import (
    ChapterContent,
    ChapterExtractor,
    EmptyContent,
    ExtractionFailure,
    beautify_content,
)
from PixivNovel.models import BookInfo, ChapterItem
from PixivNovel.reporting import DownloadReporter, NullReporter

__all__ = [
    "CHAPTER_SEPARATOR",
    "HEADER_SEPARATOR",
    "ChapterSuccess",
    "ChapterFailure",
    "ChapterOutcome",
    "DownloadSummary",
    "clamp_range",
    "format_chapter_block",
    "format_placeholder_block",
    "build_header",
    "assemble_document",
    "safe_filename",
    "Downloader",
]

LOGGER = logging.getLogger(__name__)

CHAPTER_SEPARATOR = "\n\n\n\n"
HEADER_SEPARATOR = "\n\n"
DEFAULT_FILENAME = "novel"

_ILLEGAL_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


@dataclass(frozen=True)
class ChapterSuccess:
    index: int
    title: str
    text: str


@dataclass(frozen=True)
class ChapterFailure:
    index: int
    chapter: ChapterItem
    text: str
    reason: str


ChapterOutcome = Union[ChapterSuccess, ChapterFailure]


@dataclass(frozen=True)
class DownloadSummary:
    """Result of one :meth:`Downloader.download_chapters` call."""

    output_path: Path
    total: int
    succeeded: int
    failures: Tuple[ChapterFailure, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def failed(self) -> int:
        return len(self.failures)

    def describe(self) -> str:
        """Return "completed successfully" or "completed with N failure(s)"."""

        if self.ok:
            return "completed successfully"
        noun = "failure" if self.failed == 1 else "failures"
        return f"completed with {self.failed} {noun}"


def clamp_range(start: int, end: Optional[int], count: int) -> Tuple[int, int]:
    """Clamp a requested inclusive chapter range against ``count`` chapters.

    ``start`` is floored at 0. ``end`` of ``None``, below zero or past the
    list becomes the last index; an ``end`` below ``start`` is raised to
    ``start``.

    Raises:
        RangeError: If the list is empty or ``start`` is past its end.
    """

    start = max(0, start)
    if count == 0 or start >= count:
        raise RangeError(start, count)
    if end is None or end < 0 or end >= count:
        end = count - 1
    elif end < start:
        end = start
    return start, end


def format_chapter_block(title: str, content: str) -> str:
    return f"【{title}】\n\n{content}\n"


def format_placeholder_block(chapter: ChapterItem) -> str:
    return f"【{chapter.title}】（抓取失敗）{chapter.url}\n"


def build_header(book: BookInfo) -> List[str]:
    """Return the header lines of a series document (empty for standalone chapters)."""

    if not book.is_series:
        return []
    header: List[str] = []
    if book.title.strip():
        header.append(f"書名：{book.title}")
    if book.author.strip():
        header.append(f"作者：{book.author}")
    if book.description.strip():
        header.append(f"簡介：{book.description}")
    if header:
        header.append("")
    return header


def assemble_document(book: BookInfo, blocks: Sequence[str]) -> str:
    return HEADER_SEPARATOR.join(build_header(book)) + CHAPTER_SEPARATOR.join(blocks)


def safe_filename(name: str, default: str = DEFAULT_FILENAME) -> str:
    """Replace characters that are illegal in file names with ``_``.

    Examples:
        >>> safe_filename('a/b:c?')
        'a_b_c_'
    """

    cleaned = _ILLEGAL_FILENAME_CHARS.sub("_", name.strip())
    return cleaned or default


class Downloader:
    """Download a range of chapters concurrently and write one text file.

    Attributes:
        extractor: Collaborator returning chapter content for a URL.
        reporter: Receives progress, failure and summary events.
    """

    def __init__(
        self,
        extractor: ChapterExtractor,
        *,
        reporter: Optional[DownloadReporter] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.extractor = extractor
        self.reporter = reporter or NullReporter()
        self._sleep = sleep

    def download_chapters(
        self,
        book: BookInfo,
        output_dir: Union[str, Path],
        start: int = 0,
        end: Optional[int] = None,
        concurrency: int = 10,
        request_delay_ms: int = 1000,
    ) -> DownloadSummary:
        """Download ``book.chapters[start:end + 1]`` into ``output_dir``.

        Args:
            book: Book whose chapter order is preserved in the output.
            output_dir: Directory receiving ``<safe title>.txt``; created if absent.
            start: First chapter index (inclusive, floored at 0).
            end: Last chapter index (inclusive); ``None`` means the last chapter.
            concurrency: Maximum chapters fetched at once (at least 1).
            request_delay_ms: Delay paid inside the concurrency slot before each fetch.

        Returns:
            DownloadSummary describing the written file and any failed chapters.

        Raises:
            RangeError: If the clamped range selects nothing. No file is written.
        """

        all_chapters = book.chapters
        try:
            start, end = clamp_range(start, end, len(all_chapters))
        except RangeError as exc:
            self.reporter.range_warning(str(exc))
            raise

        selected = all_chapters[start : end + 1]
        limit = max(1, concurrency)
        gate = threading.BoundedSemaphore(limit)
        # One slot per selected chapter; slot i is written only by task i.
        outcomes: List[Optional[ChapterOutcome]] = [None] * len(selected)

        def run(slot: int) -> None:
            outcomes[slot] = self._download_one(
                book, slot, start + slot, gate, request_delay_ms
            )

        with ThreadPoolExecutor(
            max_workers=min(limit, len(selected)), thread_name_prefix="chapter"
        ) as executor:
            futures = [executor.submit(run, slot) for slot in range(len(selected))]
            for future in futures:
                future.result()

        resolved: List[ChapterOutcome] = []
        for slot, outcome in enumerate(outcomes):
            if outcome is None:  # pragma: no cover - every task fills its slot
                raise RuntimeError(f"chapter slot {slot} was never filled")
            resolved.append(outcome)

        text = assemble_document(book, [outcome.text for outcome in resolved])
        out_path = self._write(book, resolved, Path(output_dir), text)

        failures = tuple(o for o in resolved if isinstance(o, ChapterFailure))
        summary = DownloadSummary(
            output_path=out_path,
            total=len(resolved),
            succeeded=len(resolved) - len(failures),
            failures=failures,
        )
        self.reporter.summary(summary)
        return summary

    def _download_one(
        self,
        book: BookInfo,
        slot: int,
        global_index: int,
        gate: threading.BoundedSemaphore,
        request_delay_ms: int,
    ) -> ChapterOutcome:
        chapters = book.chapters
        chapter = chapters[global_index]
        total = len(chapters)
        done = global_index + 1
        referer = book.read_url if global_index == 0 else chapters[global_index - 1].url

        with gate:
            try:
                if request_delay_ms > 0:
                    self._sleep(request_delay_ms / 1000.0)
                result = self.extractor.fetch_content(chapter.url, referer=referer)
            except Exception as exc:
                self.reporter.chapter_failed(done, total, chapter, exc)
                return ChapterFailure(
                    index=slot,
                    chapter=chapter,
                    text=format_placeholder_block(chapter),
                    reason=type(exc).__name__,
                )

        if isinstance(result, ChapterContent):
            title = result.title or chapter.title
            self.reporter.chapter_succeeded(done, total, title)
            return ChapterSuccess(
                index=slot,
                title=title,
                text=format_chapter_block(title, beautify_content(result.content)),
            )

        if isinstance(result, EmptyContent):
            self.reporter.chapter_empty(done, total, chapter)
            reason = "empty content"
        elif isinstance(result, ExtractionFailure):
            self.reporter.chapter_failed(done, total, chapter, result.error)
            reason = describe_failure(result.error)
        else:
            self.reporter.chapter_failed(done, total, chapter, None)
            reason = f"unexpected result {type(result).__name__}"
        return ChapterFailure(
            index=slot,
            chapter=chapter,
            text=format_placeholder_block(chapter),
            reason=reason,
        )

    def _write(
        self,
        book: BookInfo,
        outcomes: Sequence[ChapterOutcome],
        output_dir: Path,
        text: str,
    ) -> Path:
        if book.is_series:
            name = book.title
        else:
            fetched = [o.title for o in outcomes if isinstance(o, ChapterSuccess) and o.title]
            name = fetched[0] if fetched else book.title

        output_dir.mkdir(parents=True, exist_ok=True)
        out_path = output_dir / f"{safe_filename(name)}.txt"
        out_path.write_text(text, encoding="utf-8", newline="")
        self.reporter.file_written(str(out_path))
        return out_path
