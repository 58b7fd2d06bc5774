"""Fetch Pixiv novels and series into a single ordered text document.

The public surface covers the four pipeline stages:

- :class:`HttpFetcher`: resilient GET with a fixed retry table,
- :class:`BookScraper`: series metadata and paginated chapter list,
- :class:`ChapterExtractor`: chapter content as an explicit result value,
- :class:`Downloader`: bounded-concurrency download and ordered assembly.
"""

from __future__ import annotations

from PixivNovel.download import Downloader, DownloadSummary
from PixivNovel.errors import ExtractionError, FetchError, PixivNovelError, RangeError
from PixivNovel.extraction import (
    ChapterContent,
    ChapterExtractor,
    EmptyContent,
    ExtractionFailure,
    beautify_content,
)
from PixivNovel.models import BookInfo, ChapterItem
from PixivNovel.networking import HttpFetcher
from PixivNovel.reporting import DownloadReporter, LoggingReporter, NullReporter
from PixivNovel.resolvers import BookScraper

__all__ = [
    "BookInfo",
    "BookScraper",
    "ChapterContent",
    "ChapterExtractor",
    "ChapterItem",
    "DownloadReporter",
    "DownloadSummary",
    "Downloader",
    "EmptyContent",
    "ExtractionError",
    "ExtractionFailure",
    "FetchError",
    "HttpFetcher",
    "LoggingReporter",
    "NullReporter",
    "PixivNovelError",
    "RangeError",
    "beautify_content",
]

__version__ = "0.1.0"
