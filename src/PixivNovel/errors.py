# === NAVMAP v1 ===
# {
#   "module": "PixivNovel.errors",
#   "purpose": "Error taxonomy for novel fetching, extraction and assembly.",
#   "sections": [
#     {
#       "id": "pixivnovelerror",
#       "name": "PixivNovelError",
#       "anchor": "class-pixivnovelerror",
#       "kind": "class"
#     },
#     {
#       "id": "fetcherror",
#       "name": "FetchError",
#       "anchor": "class-fetcherror",
#       "kind": "class"
#     },
#     {
#       "id": "extractionerror",
#       "name": "ExtractionError",
#       "anchor": "class-extractionerror",
#       "kind": "class"
#     },
#     {
#       "id": "rangeerror",
#       "name": "RangeError",
#       "anchor": "class-rangeerror",
#       "kind": "class"
#     },
#     {
#       "id": "configerror",
#       "name": "ConfigError",
#       "anchor": "class-configerror",
#       "kind": "class"
#     },
#     {
#       "id": "describe-failure",
#       "name": "describe_failure",
#       "anchor": "function-describe-failure",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Error taxonomy for novel downloads.

Responsibilities
----------------
- ``FetchError`` is raised by :class:`~PixivNovel.networking.HttpFetcher` once
  the retry table is exhausted. It keeps the last HTTP status and/or the last
  transport exception so callers can report the failure precisely.
- ``ExtractionError`` marks a chapter URL without a resolvable novel id.
- ``RangeError`` aborts a download call whose chapter range is empty after
  clamping. No output is written when it is raised.
- ``ConfigError`` wraps unreadable or invalid configuration files.

Design Notes
------------
- "No content" is not an exception. The extractor returns an explicit
  ``EmptyContent`` result instead (see :mod:`PixivNovel.extraction`).
- Errors raised while resolving the book abort the run. Errors raised for a
  single chapter are converted into placeholders by the downloader.
"""

from __future__ import annotations

__all__ = (
    "PixivNovelError",
    "FetchError",
    "ExtractionError",
    "RangeError",
    "ConfigError",
    "describe_failure",
)


class PixivNovelError(Exception):
    """Base class for all errors raised by PixivNovel."""


class FetchError(PixivNovelError):
    """Raised when a GET request fails after every retry has been spent."""

    def __init__(
        self,
        url: str,
        *,
        status: int | None = None,
        cause: BaseException | None = None,
        message: str | None = None,
    ) -> None:
        self.url = url
        self.status = status
        self.cause = cause
        if message is None:
            if status is not None:
                message = f"HTTP {status} for {url}"
            elif cause is not None:
                message = f"{type(cause).__name__} for {url}: {cause}"
            else:
                message = f"Request failed for {url}"
        super().__init__(message)


class ExtractionError(PixivNovelError):
    """Raised when no novel id can be parsed from a chapter URL."""

    def __init__(self, url: str, message: str | None = None) -> None:
        self.url = url
        super().__init__(message or f"Cannot resolve novel id from {url}")


class RangeError(PixivNovelError):
    """Raised when the requested chapter range selects nothing."""

    def __init__(self, start: int, count: int) -> None:
        self.start = start
        self.count = count
        if count == 0:
            message = "No chapters to download"
        else:
            message = f"start is past the last chapter ({start} >= {count})"
        super().__init__(message)


class ConfigError(PixivNovelError):
    """Raised when a configuration file cannot be read or validated."""


def describe_failure(error: BaseException) -> str:
    """Return a short, user-facing reason for ``error``.

    Examples:
        >>> describe_failure(FetchError("https://example.org", status=404))
        'HTTP 404'
        >>> describe_failure(ExtractionError("https://example.org"))
        'unresolvable chapter id'
    """

    if isinstance(error, FetchError):
        if error.status is not None:
            return f"HTTP {error.status}"
        if error.cause is not None:
            return type(error.cause).__name__
        return "request failed"
    if isinstance(error, ExtractionError):
        return "unresolvable chapter id"
    return type(error).__name__
