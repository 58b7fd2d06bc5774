# === NAVMAP v1 ===
# {
#   "module": "PixivNovel.resolvers",
#   "purpose": "Book metadata and paginated chapter list resolution",
#   "sections": [
#     {
#       "id": "extract-series-id",
#       "name": "extract_series_id",
#       "anchor": "function-extract-series-id",
#       "kind": "function"
#     },
#     {
#       "id": "is-series-url",
#       "name": "is_series_url",
#       "anchor": "function-is-series-url",
#       "kind": "function"
#     },
#     {
#       "id": "extract-author-from-title",
#       "name": "extract_author_from_title",
#       "anchor": "function-extract-author-from-title",
#       "kind": "function"
#     },
#     {
#       "id": "pick-meta",
#       "name": "pick_meta",
#       "anchor": "function-pick-meta",
#       "kind": "function"
#     },
#     {
#       "id": "bookscraper",
#       "name": "BookScraper",
#       "anchor": "class-bookscraper",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Resolve a series entry URL into :class:`~PixivNovel.models.BookInfo`.

The entry page supplies the book metadata through ``<meta>`` tags; the
chapter list comes from the paginated ``series_content`` JSON endpoint.

Pagination contract
-------------------
Pages hold :data:`SERIES_PAGE_LIMIT` items in ascending order starting at
offset 0. The loop stops on an empty page or on a short page (fewer items
than the limit). A series whose size is an exact multiple of the limit is
therefore confirmed with one trailing empty request; no further request is
issued and no item is dropped.

Errors raised here (``FetchError`` or a malformed payload) are fatal for the
run and are left to propagate.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional, Sequence

from bs4 import BeautifulSoup

from PixivNovel.models import (
    DEFAULT_BASE_URL,
    DEFAULT_LANG,
    SERIES_ID_RE,
    SERIES_PATH_MARKER,
    UNKNOWN_AUTHOR,
    UNKNOWN_CHAPTER,
    UNKNOWN_TITLE,
    BookInfo,
    ChapterItem,
    NovelInfo,
    SeriesContentResponse,
)
from PixivNovel.networking import HttpFetcher
from PixivNovel.reporting import DownloadReporter, NullReporter

__all__ = [
    "SERIES_PAGE_LIMIT",
    "TITLE_META_KEYS",
    "DESCRIPTION_META_KEYS",
    "extract_series_id",
    "is_series_url",
    "extract_author_from_title",
    "pick_meta",
    "BookScraper",
]

LOGGER = logging.getLogger(__name__)

SERIES_PAGE_LIMIT = 30

TITLE_META_KEYS = ("twitter:title", "og:title", "og:novel:book_name", "name")
DESCRIPTION_META_KEYS = ("description", "og:description")
AUTHOR_META_KEY = "og:title"

# "<series title>／「<author>」的系列作品"
_AUTHOR_RE = re.compile(r"[/／]\s*([^/／]+?)的系列作品")


def extract_series_id(url: str) -> Optional[str]:
    """Return the numeric series id embedded in ``url``, if any."""

    match = SERIES_ID_RE.search(url)
    return match.group(1) if match else None


def is_series_url(url: str) -> bool:
    """Return ``True`` when ``url`` points at a series (collection) page."""

    return SERIES_PATH_MARKER in url.lower()


def extract_author_from_title(title: Optional[str]) -> Optional[str]:
    """Parse the author out of a "<series>／<author>的系列作品" title.

    Examples:
        >>> extract_author_from_title("魔女の旅々／「白石定規」的系列作品")
        '白石定規'
        >>> extract_author_from_title("plain title") is None
        True
    """

    if not title or not title.strip():
        return None
    match = _AUTHOR_RE.search(title)
    if not match:
        return None
    author = match.group(1).strip().strip("「」")
    return author or None


def pick_meta(soup: BeautifulSoup, keys: Sequence[str]) -> Optional[str]:
    """Return the first non-blank ``<meta>`` content for ``keys``, in order.

    Each key is matched against the ``property`` attribute first, then
    ``name``.
    """

    for key in keys:
        for attr in ("property", "name"):
            tag = soup.find("meta", attrs={attr: key})
            if tag is None:
                continue
            content = tag.get("content")
            if isinstance(content, str) and content.strip():
                return content.strip()
    return None


def _dedupe(chapters: Iterable[ChapterItem]) -> List[ChapterItem]:
    seen: set[str] = set()
    unique: List[ChapterItem] = []
    for chapter in chapters:
        if chapter.url in seen:
            continue
        seen.add(chapter.url)
        unique.append(chapter)
    return unique


class BookScraper:
    """Build :class:`BookInfo` values from series entry pages."""

    def __init__(
        self,
        fetcher: HttpFetcher,
        *,
        base_url: str = DEFAULT_BASE_URL,
        lang: str = DEFAULT_LANG,
        page_limit: int = SERIES_PAGE_LIMIT,
        reporter: Optional[DownloadReporter] = None,
    ) -> None:
        self.fetcher = fetcher
        self.base_url = base_url.rstrip("/")
        self.lang = lang
        self.page_limit = page_limit
        self.reporter = reporter or NullReporter()

    def series_page_url(self, series_id: str, offset: int) -> str:
        return (
            f"{self.base_url}/ajax/novel/series_content/{series_id}"
            f"?limit={self.page_limit}&last_order={offset}&order_by=asc&lang={self.lang}"
        )

    def chapter_url(self, novel_id: str) -> str:
        return f"{self.base_url}/novel/show.php?id={novel_id}"

    def fetch_book_info(self, entry_url: str) -> BookInfo:
        """Fetch metadata and the full chapter list for ``entry_url``.

        Raises:
            FetchError: If the entry page or any listing page cannot be fetched.
            pydantic.ValidationError: If a listing page is not valid JSON.
        """

        html = self.fetcher.get_text(entry_url)
        soup = BeautifulSoup(html, "html.parser")

        title = pick_meta(soup, TITLE_META_KEYS) or UNKNOWN_TITLE
        author = extract_author_from_title(pick_meta(soup, (AUTHOR_META_KEY,))) or UNKNOWN_AUTHOR
        description = pick_meta(soup, DESCRIPTION_META_KEYS) or ""

        chapters = self.resolve_chapters(entry_url)
        for index, chapter in enumerate(chapters):
            self.reporter.chapter_listed(index, chapter)

        return BookInfo(
            title=title,
            author=author,
            description=description,
            read_url=entry_url,
            chapters=tuple(chapters),
        )

    def resolve_chapters(self, entry_url: str) -> List[ChapterItem]:
        """Return the ordered, de-duplicated chapter list of a series.

        An entry URL without a series id yields an empty list; the caller then
        treats the URL as a standalone chapter.
        """

        series_id = extract_series_id(entry_url)
        if not series_id:
            return []

        chapters: List[ChapterItem] = []
        offset = 0
        while True:
            payload = self.fetcher.get_text(
                self.series_page_url(series_id, offset), referer=entry_url
            )
            novels = SeriesContentResponse.model_validate_json(payload).novels
            LOGGER.debug("Series %s offset %d: %d items", series_id, offset, len(novels))

            if not novels:
                break

            chapters.extend(self._to_chapter(novel) for novel in novels if novel.id)

            if len(novels) < self.page_limit:
                break
            offset += self.page_limit

        return _dedupe(chapters)

    def _to_chapter(self, novel: NovelInfo) -> ChapterItem:
        title = (novel.title or "").strip() or UNKNOWN_CHAPTER
        return ChapterItem(url=self.chapter_url(str(novel.id)), title=title)
