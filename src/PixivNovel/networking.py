# === NAVMAP v1 ===
# {
#   "module": "PixivNovel.networking",
#   "purpose": "Resilient HTTP GET with fixed headers and a fixed retry table",
#   "sections": [
#     {
#       "id": "is-success-status",
#       "name": "is_success_status",
#       "anchor": "function-is-success-status",
#       "kind": "function"
#     },
#     {
#       "id": "build-retrying",
#       "name": "build_retrying",
#       "anchor": "function-build-retrying",
#       "kind": "function"
#     },
#     {
#       "id": "httpfetcher",
#       "name": "HttpFetcher",
#       "anchor": "class-httpfetcher",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Resilient HTTP fetch layer.

:class:`HttpFetcher` wraps one :class:`httpx.Client` for the whole run and
issues logical GET requests through a Tenacity controller:

- an attempt is retried when the transport raises
  :class:`httpx.TransportError` (timeouts included) or when the status code
  falls outside ``[200, 400)``. 4xx and 5xx are treated alike.
- waits follow :data:`RETRY_DELAYS_S` exactly (500 ms, 1 s, 2 s), so a request
  makes at most four attempts.
- every retry is announced to the injected reporter before sleeping.
- when the table is exhausted a :class:`~PixivNovel.errors.FetchError` carries
  the last status or exception.

Response bodies are decoded with the caller's encoding because some upstream
endpoints are not UTF-8.
"""

from __future__ import annotations

import codecs
import logging
import time
from typing import Callable, Mapping, Optional

import httpx
import tenacity
from tenacity import RetryCallState, RetryError, retry_if_exception_type, retry_if_result

from PixivNovel.errors import FetchError
from PixivNovel.reporting import DownloadReporter, NullReporter

__all__ = [
    "RETRY_DELAYS_S",
    "DEFAULT_ACCEPT_LANGUAGE",
    "is_success_status",
    "build_retrying",
    "HttpFetcher",
]

LOGGER = logging.getLogger(__name__)

RETRY_DELAYS_S: tuple[float, ...] = (0.5, 1.0, 2.0)
DEFAULT_ACCEPT_LANGUAGE = "zh-TW,zh;q=0.9,en;q=0.8"


def is_success_status(status: int) -> bool:
    """Return ``True`` for statuses that end the retry loop successfully."""

    return 200 <= status < 400


def _describe_outcome(retry_state: RetryCallState) -> str:
    outcome = retry_state.outcome
    if outcome is None:
        return "unknown"
    if outcome.failed:
        exc = outcome.exception()
        return str(exc) or type(exc).__name__
    response = outcome.result()
    return f"HTTP {getattr(response, 'status_code', '?')}"


def build_retrying(
    *,
    delays: tuple[float, ...] = RETRY_DELAYS_S,
    sleep: Callable[[float], None] = time.sleep,
    before_sleep: Optional[Callable[[RetryCallState], None]] = None,
) -> tenacity.Retrying:
    """Build the Tenacity controller used for every logical GET.

    Args:
        delays: Wait before each retry, in seconds. ``len(delays)`` retries
            follow the initial attempt.
        sleep: Sleep function (swap in a fake clock for tests).
        before_sleep: Hook invoked before each wait.

    Returns:
        Configured :class:`tenacity.Retrying` that raises
        :class:`tenacity.RetryError` when the table is exhausted.
    """

    if delays:
        wait: tenacity.wait.wait_base = tenacity.wait_chain(
            *(tenacity.wait_fixed(delay) for delay in delays)
        )
    else:
        wait = tenacity.wait_none()

    return tenacity.Retrying(
        retry=retry_if_exception_type(httpx.TransportError)
        | retry_if_result(lambda response: not is_success_status(response.status_code)),
        stop=tenacity.stop_after_attempt(len(delays) + 1),
        wait=wait,
        sleep=sleep,
        before_sleep=before_sleep,
        reraise=False,
    )


class HttpFetcher:
    """Shared GET client with fixed headers and automatic retries.

    The underlying :class:`httpx.Client` is created once and released by
    :meth:`close` (or by leaving the ``with`` block). Calls are stateless and
    safe to issue from several worker threads at once.

    Attributes:
        timeout_s: Per-request timeout applied to connect, read, write and pool.
        delays: Retry table in seconds.
    """

    def __init__(
        self,
        user_agent: str,
        timeout_s: float = 15.0,
        cookie: Optional[str] = None,
        *,
        accept_language: str = DEFAULT_ACCEPT_LANGUAGE,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
        delays: tuple[float, ...] = RETRY_DELAYS_S,
        reporter: Optional[DownloadReporter] = None,
    ) -> None:
        self.timeout_s = timeout_s
        self.delays = tuple(delays)
        self._cookie = cookie.strip() if cookie else ""
        self._sleep = sleep
        self._reporter = reporter or NullReporter()
        # httpx negotiates gzip/deflate (and br when brotli is installed) and
        # decompresses transparently.
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout_s),
            headers={
                "User-Agent": user_agent,
                "Accept": "text/html",
                "Accept-Language": accept_language,
            },
            follow_redirects=True,
            transport=transport,
        )

    def __enter__(self) -> "HttpFetcher":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Release the underlying connection pool."""

        self._client.close()
        LOGGER.debug("HTTP client closed")

    def _request_headers(self, referer: Optional[str]) -> Mapping[str, str]:
        headers: dict[str, str] = {}
        if self._cookie:
            headers["Cookie"] = self._cookie
        if referer and referer.strip():
            headers["Referer"] = referer.strip()
        return headers

    def _send(self, url: str, headers: Mapping[str, str]) -> httpx.Response:
        return self._client.get(url, headers=headers)

    def _announce_retry(self, url: str) -> Callable[[RetryCallState], None]:
        def _hook(retry_state: RetryCallState) -> None:
            next_action = retry_state.next_action
            delay_s = next_action.sleep if next_action is not None else 0.0
            self._reporter.retrying(
                url, retry_state.attempt_number, delay_s, _describe_outcome(retry_state)
            )

        return _hook

    def get_text(self, url: str, referer: Optional[str] = None, encoding: str = "utf-8") -> str:
        """GET ``url`` and return its decoded body.

        Args:
            url: Absolute URL to fetch.
            referer: Optional Referer header for this request.
            encoding: Codec used to decode the response bytes.

        Returns:
            The decoded response body.

        Raises:
            FetchError: If every attempt failed or the encoding is unknown.
        """

        try:
            codecs.lookup(encoding)
        except LookupError as exc:
            raise FetchError(url, cause=exc, message=f"Unknown encoding {encoding!r}") from exc

        retrying = build_retrying(
            delays=self.delays,
            sleep=self._sleep,
            before_sleep=self._announce_retry(url),
        )
        headers = self._request_headers(referer)
        try:
            response = retrying(self._send, url, headers)
        except RetryError as exc:
            last = exc.last_attempt
            if last.failed:
                cause = last.exception()
                raise FetchError(url, cause=cause) from cause
            raise FetchError(url, status=last.result().status_code) from None
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            # Errors Tenacity does not retry (malformed URL, unsupported scheme)
            raise FetchError(url, cause=exc) from exc

        # Invalid byte sequences become U+FFFD rather than failing the chapter.
        return response.content.decode(encoding, errors="replace")
