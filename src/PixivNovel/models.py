"""Value objects shared by the resolver, extractor and downloader.

``ChapterItem`` and ``BookInfo`` are frozen dataclasses. Their "unknown"
sentinels are ordinary field defaults, so a value built without a title or
author carries the literal fallback string from construction onwards.

The upstream JSON payloads are described with Pydantic models. Every level is
optional because the upstream service omits whole branches (``body`` or
``thumbnails``) when a resource is private or deleted.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import ClassVar, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator

__all__ = [
    "UNKNOWN_CHAPTER",
    "UNKNOWN_TITLE",
    "UNKNOWN_AUTHOR",
    "SERIES_PATH_MARKER",
    "SERIES_ID_RE",
    "DEFAULT_BASE_URL",
    "DEFAULT_LANG",
    "ChapterItem",
    "BookInfo",
    "NovelInfo",
    "ThumbnailCollection",
    "SeriesBody",
    "SeriesContentResponse",
    "NovelBody",
    "NovelResponse",
]

UNKNOWN_CHAPTER = "Unknown Chapter"
UNKNOWN_TITLE = "Unknown Title"
UNKNOWN_AUTHOR = "Unknown Author"
SERIES_PATH_MARKER = "/novel/series/"
SERIES_ID_RE = re.compile(r"series/(\d+)")

DEFAULT_BASE_URL = "https://www.pixiv.net"
DEFAULT_LANG = "zh_tw"


@dataclass(frozen=True)
class ChapterItem:
    """One entry of a chapter list. Identity is the URL."""

    url: str
    title: str = UNKNOWN_CHAPTER


@dataclass(frozen=True)
class BookInfo:
    """Book metadata plus the canonical, ordered chapter list."""

    title: str = UNKNOWN_TITLE
    author: str = UNKNOWN_AUTHOR
    description: str = ""
    read_url: Optional[str] = None
    chapters: Tuple[ChapterItem, ...] = field(default_factory=tuple)

    @property
    def is_series(self) -> bool:
        """Return ``True`` when the book was read from a series URL carrying a series id."""

        if not self.read_url or SERIES_PATH_MARKER not in self.read_url.lower():
            return False
        return SERIES_ID_RE.search(self.read_url) is not None

    @classmethod
    def single_chapter(cls, url: str) -> "BookInfo":
        """Build the book used when the entry URL points at one standalone chapter."""

        return cls(read_url=url, chapters=(ChapterItem(url=url),))


# ---------------------------------------------------------------------------
# Upstream response schemas
# ---------------------------------------------------------------------------


class _Payload(BaseModel):
    model_config: ClassVar[ConfigDict] = ConfigDict(extra="ignore")


class _Envelope(_Payload):
    @field_validator("body", mode="before", check_fields=False)
    @classmethod
    def _empty_body(cls, value: object) -> object:
        # error responses carry "body": []
        if isinstance(value, list):
            return None
        return value


class NovelInfo(_Payload):
    id: Optional[str] = None
    title: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: object) -> object:
        # ids arrive as strings, but numeric ids show up in older payloads
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class ThumbnailCollection(_Payload):
    novel: Optional[List[NovelInfo]] = None


class SeriesBody(_Payload):
    thumbnails: Optional[ThumbnailCollection] = None


class SeriesContentResponse(_Envelope):
    """``GET /ajax/novel/series_content/{id}`` payload."""

    body: Optional[SeriesBody] = None

    @property
    def novels(self) -> List[NovelInfo]:
        if self.body is None or self.body.thumbnails is None:
            return []
        return list(self.body.thumbnails.novel or [])


class NovelBody(_Payload):
    title: Optional[str] = None
    content: Optional[str] = None


class NovelResponse(_Envelope):
    """``GET /ajax/novel/{id}`` payload."""

    body: Optional[NovelBody] = None
