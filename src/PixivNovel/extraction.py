"""Chapter content extraction.

:meth:`ChapterExtractor.fetch_content` returns one of three values instead of
raising for expected outcomes:

- :class:`ChapterContent` when the upstream returned text,
- :class:`EmptyContent` when the chapter exists but its content is blank,
- :class:`ExtractionFailure` when the id could not be parsed, the request
  failed after retries, or the payload was not the expected JSON.

:func:`beautify_content` is the pure text normalisation applied before a
chapter is written out.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional, Union
from urllib.parse import urlsplit

from pydantic import ValidationError

from PixivNovel.errors import ExtractionError, FetchError
from PixivNovel.models import DEFAULT_BASE_URL, DEFAULT_LANG, SERIES_ID_RE, NovelResponse
from PixivNovel.networking import HttpFetcher

__all__ = [
    "ChapterContent",
    "EmptyContent",
    "ExtractionFailure",
    "ExtractionResult",
    "beautify_content",
    "extract_novel_id",
    "chapter_id_from_read_url",
    "ChapterExtractor",
]

LOGGER = logging.getLogger(__name__)

_QUERY_ID_RE = re.compile(r"[?&]id=(\d+)")
_NON_DIGIT_RE = re.compile(r"\D")


@dataclass(frozen=True)
class ChapterContent:
    content: str
    title: str


@dataclass(frozen=True)
class EmptyContent:
    url: str
    title: str = ""


@dataclass(frozen=True)
class ExtractionFailure:
    url: str
    error: BaseException


ExtractionResult = Union[ChapterContent, EmptyContent, ExtractionFailure]


def beautify_content(content: Optional[str]) -> str:
    """Normalise chapter text: one non-blank line per paragraph, blank line between.

    The transform is idempotent.

    Examples:
        >>> beautify_content("  first\\n\\n\\n second  \\n")
        'first\\n\\nsecond'
    """

    if not content or not content.strip():
        return ""
    lines = (line.strip() for line in content.split("\n"))
    return "\n\n".join(line for line in lines if line).rstrip()


def extract_novel_id(url: str) -> str:
    """Return the numeric novel id of ``url``.

    Accepts ``.../series/<digits>`` and ``...?id=<digits>``.

    Raises:
        ExtractionError: If neither shape matches.
    """

    match = SERIES_ID_RE.search(url) or _QUERY_ID_RE.search(url)
    if match is None:
        raise ExtractionError(url)
    return match.group(1)


def chapter_id_from_read_url(read_url: str) -> int:
    """Return the chapter id encoded in the first ``_`` token of a query string.

    Examples:
        >>> chapter_id_from_read_url("https://example.org/read?123_4")
        123
    """

    query = urlsplit(read_url).query.lstrip("?")
    digits = _NON_DIGIT_RE.sub("", query.split("_")[0])
    if not digits:
        raise ExtractionError(read_url, f"Cannot parse chapter id from {read_url}")
    return int(digits)


class ChapterExtractor:
    """Fetch one chapter through the novel JSON endpoint."""

    def __init__(
        self,
        fetcher: HttpFetcher,
        *,
        base_url: str = DEFAULT_BASE_URL,
        lang: str = DEFAULT_LANG,
        encoding: str = "utf-8",
    ) -> None:
        self.fetcher = fetcher
        self.base_url = base_url.rstrip("/")
        self.lang = lang
        self.encoding = encoding

    def content_api_url(self, novel_id: str) -> str:
        return f"{self.base_url}/ajax/novel/{novel_id}?lang={self.lang}"

    def fetch_content(self, url: str, referer: Optional[str] = None) -> ExtractionResult:
        """Fetch the content and title of the chapter at ``url``."""

        try:
            novel_id = extract_novel_id(url)
            payload = self.fetcher.get_text(
                self.content_api_url(novel_id), referer=referer, encoding=self.encoding
            )
            response = NovelResponse.model_validate_json(payload)
        except (ExtractionError, FetchError, ValidationError) as exc:
            return ExtractionFailure(url=url, error=exc)

        body = response.body
        title = (body.title or "").strip() if body else ""
        content = body.content if body else None
        if not content or not content.strip():
            LOGGER.debug("Empty content for %s (%s)", url, title)
            return EmptyContent(url=url, title=title)
        return ChapterContent(content=content, title=title)
