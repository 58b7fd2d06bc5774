"""Tests for the bounded-concurrency downloader and document assembly."""

from __future__ import annotations

import random
import re
import threading
import time
from typing import Dict, List, Optional

import pytest

from PixivNovel import download as download_module
from PixivNovel.download import (
    CHAPTER_SEPARATOR,
    Downloader,
    assemble_document,
    build_header,
    clamp_range,
    safe_filename,
)
from PixivNovel.errors import FetchError, RangeError
from PixivNovel.extraction import ChapterContent, EmptyContent, ExtractionFailure
from PixivNovel.models import BookInfo, ChapterItem

SERIES_URL = "https://www.pixiv.net/novel/series/11713692"
BLOCK_TITLE_RE = re.compile(r"【(.+?)】")


def _chapter_url(index: int) -> str:
    return f"https://www.pixiv.net/novel/show.php?id={1000 + index}"


def _series(count: int, title: str = "魔女の旅々") -> BookInfo:
    chapters = tuple(ChapterItem(url=_chapter_url(i), title=f"第{i}話") for i in range(count))
    return BookInfo(
        title=title,
        author="白石定規",
        description="旅をする魔女の物語",
        read_url=SERIES_URL,
        chapters=chapters,
    )


class FakeExtractor:
    """Extractor double with per-URL results, latency and in-flight tracking."""

    def __init__(
        self,
        results: Optional[Dict[str, object]] = None,
        latencies: Optional[Dict[str, float]] = None,
    ) -> None:
        self.results = results or {}
        self.latencies = latencies or {}
        self.calls: List[tuple] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def fetch_content(self, url, referer=None):
        with self._lock:
            self.calls.append((url, referer))
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            time.sleep(self.latencies.get(url, 0.0))
            result = self.results.get(url)
            if isinstance(result, BaseException):
                raise result
            if result is None:
                index = int(url.rsplit("=", 1)[1]) - 1000
                result = ChapterContent(content=f"  body {index}  \n\n text ", title=f"第{index}話")
            return result
        finally:
            with self._lock:
                self.in_flight -= 1


class TrackingGate(threading.BoundedSemaphore):
    """Semaphore that remembers which threads currently hold a slot."""

    def __init__(self, value: int = 1) -> None:
        super().__init__(value)
        self.holders: set = set()

    def __enter__(self):
        self.acquire()
        self.holders.add(threading.get_ident())
        return True

    def __exit__(self, *exc_info):
        self.holders.discard(threading.get_ident())
        self.release()


def _block_titles(text: str) -> List[str]:
    return BLOCK_TITLE_RE.findall(text)


class TestOrdering:
    @pytest.mark.parametrize("concurrency", [1, 3, 5, 12])
    def test_output_order_matches_list_order(self, tmp_path, clock, concurrency):
        book = _series(12)
        rng = random.Random(concurrency)
        latencies = {c.url: rng.uniform(0.0, 0.02) for c in book.chapters}
        extractor = FakeExtractor(latencies=latencies)

        summary = Downloader(extractor, sleep=clock.sleep).download_chapters(
            book, tmp_path, concurrency=concurrency, request_delay_ms=0
        )

        text = summary.output_path.read_text(encoding="utf-8")
        assert _block_titles(text) == [c.title for c in book.chapters]
        assert extractor.max_in_flight <= concurrency
        assert summary.ok
        assert summary.total == summary.succeeded == 12

    def test_concurrency_below_one_behaves_as_one(self, tmp_path, clock):
        extractor = FakeExtractor()

        Downloader(extractor, sleep=clock.sleep).download_chapters(
            _series(4), tmp_path, concurrency=0, request_delay_ms=0
        )

        assert extractor.max_in_flight == 1
        assert len(extractor.calls) == 4


class TestRange:
    def test_negative_start_is_clamped_to_zero(self, tmp_path, clock):
        extractor = FakeExtractor()

        summary = Downloader(extractor, sleep=clock.sleep).download_chapters(
            _series(3), tmp_path, start=-5, request_delay_ms=0
        )

        assert summary.total == 3

    def test_sub_range_is_inclusive(self, tmp_path, clock):
        extractor = FakeExtractor()

        summary = Downloader(extractor, sleep=clock.sleep).download_chapters(
            _series(6), tmp_path, start=2, end=4, request_delay_ms=0
        )

        text = summary.output_path.read_text(encoding="utf-8")
        assert _block_titles(text) == ["第2話", "第3話", "第4話"]

    def test_start_past_end_raises_and_writes_nothing(self, tmp_path, clock, reporter):
        extractor = FakeExtractor()
        downloader = Downloader(extractor, reporter=reporter, sleep=clock.sleep)

        with pytest.raises(RangeError):
            downloader.download_chapters(_series(3), tmp_path / "out", start=3)

        assert extractor.calls == []
        assert not (tmp_path / "out").exists()
        assert len(reporter.named("range_warning")) == 1

    def test_empty_chapter_list_raises(self, tmp_path, clock):
        with pytest.raises(RangeError, match="No chapters"):
            Downloader(FakeExtractor(), sleep=clock.sleep).download_chapters(
                _series(0), tmp_path
            )

    @pytest.mark.parametrize(
        "start, end, count, expected",
        [
            (-5, None, 4, (0, 3)),
            (0, 99, 4, (0, 3)),
            (0, -1, 4, (0, 3)),
            (2, 1, 4, (2, 2)),
            (1, 2, 4, (1, 2)),
        ],
    )
    def test_clamp_range(self, start, end, count, expected):
        assert clamp_range(start, end, count) == expected


class TestFailures:
    def test_empty_chapter_becomes_placeholder(self, tmp_path, clock, reporter):
        book = _series(5)
        broken = book.chapters[2]
        extractor = FakeExtractor(results={broken.url: EmptyContent(url=broken.url)})

        summary = Downloader(extractor, reporter=reporter, sleep=clock.sleep).download_chapters(
            book, tmp_path, request_delay_ms=0
        )

        text = summary.output_path.read_text(encoding="utf-8")
        assert _block_titles(text) == [c.title for c in book.chapters]
        assert f"【{broken.title}】（抓取失敗）{broken.url}" in text
        assert summary.failed == 1
        assert summary.succeeded == 4
        assert summary.describe() == "completed with 1 failure"
        assert summary.failures[0].reason == "empty content"
        assert len(reporter.named("chapter_empty")) == 1

    def test_fetch_failure_and_exception_become_placeholders(self, tmp_path, clock, reporter):
        book = _series(4)
        first, last = book.chapters[0], book.chapters[3]
        extractor = FakeExtractor(
            results={
                first.url: ExtractionFailure(first.url, FetchError(first.url, status=404)),
                last.url: RuntimeError("boom"),
            }
        )

        summary = Downloader(extractor, reporter=reporter, sleep=clock.sleep).download_chapters(
            book, tmp_path, concurrency=2, request_delay_ms=0
        )

        text = summary.output_path.read_text(encoding="utf-8")
        assert f"（抓取失敗）{first.url}" in text
        assert f"（抓取失敗）{last.url}" in text
        assert sorted(f.reason for f in summary.failures) == ["HTTP 404", "RuntimeError"]
        assert summary.describe() == "completed with 2 failures"
        assert len(reporter.named("chapter_failed")) == 2
        assert reporter.named("summary")[0][1] is summary

    def test_full_success_is_described(self, tmp_path, clock):
        summary = Downloader(FakeExtractor(), sleep=clock.sleep).download_chapters(
            _series(2), tmp_path, request_delay_ms=0
        )

        assert summary.describe() == "completed successfully"


class TestRequests:
    def test_referer_chain_follows_full_list(self, tmp_path, clock):
        book = _series(5)
        extractor = FakeExtractor()

        Downloader(extractor, sleep=clock.sleep).download_chapters(
            book, tmp_path, start=2, end=4, concurrency=3, request_delay_ms=0
        )

        referers = dict(extractor.calls)
        assert referers == {
            _chapter_url(2): _chapter_url(1),
            _chapter_url(3): _chapter_url(2),
            _chapter_url(4): _chapter_url(3),
        }

    def test_first_chapter_uses_read_url_as_referer(self, tmp_path, clock):
        extractor = FakeExtractor()

        Downloader(extractor, sleep=clock.sleep).download_chapters(
            _series(2), tmp_path, request_delay_ms=0
        )

        assert dict(extractor.calls)[_chapter_url(0)] == SERIES_URL

    def test_delay_is_paid_once_per_chapter(self, tmp_path, clock):
        Downloader(FakeExtractor(), sleep=clock.sleep).download_chapters(
            _series(3), tmp_path, request_delay_ms=250
        )

        assert clock.sleeps == [0.25, 0.25, 0.25]

    def test_zero_delay_never_sleeps(self, tmp_path, clock):
        Downloader(FakeExtractor(), sleep=clock.sleep).download_chapters(
            _series(3), tmp_path, request_delay_ms=0
        )

        assert clock.sleeps == []

    def test_delay_is_paid_while_holding_the_slot(self, tmp_path, monkeypatch):
        gates: List[TrackingGate] = []

        def make_gate(value: int) -> TrackingGate:
            gate = TrackingGate(value)
            gates.append(gate)
            return gate

        monkeypatch.setattr(download_module.threading, "BoundedSemaphore", make_gate)
        events: List[tuple] = []
        lock = threading.Lock()

        def holding() -> bool:
            return threading.get_ident() in gates[0].holders

        def sleep(seconds: float) -> None:
            with lock:
                events.append(("sleep", holding()))
            time.sleep(0.005)

        class GateCheckingExtractor(FakeExtractor):
            def fetch_content(self, url, referer=None):
                with lock:
                    events.append(("fetch", holding()))
                return super().fetch_content(url, referer)

        Downloader(GateCheckingExtractor(), sleep=sleep).download_chapters(
            _series(4), tmp_path, concurrency=2, request_delay_ms=5
        )

        assert len(gates) == 1
        assert [kind for kind, _ in events].count("sleep") == 4
        assert all(held for _, held in events)

    def test_single_slot_serialises_delay_and_fetch(self, tmp_path):
        events: List[str] = []
        lock = threading.Lock()

        def sleep(seconds: float) -> None:
            with lock:
                events.append("sleep")
            time.sleep(0.005)

        class RecordingExtractor(FakeExtractor):
            def fetch_content(self, url, referer=None):
                with lock:
                    events.append("fetch")
                return super().fetch_content(url, referer)

        Downloader(RecordingExtractor(), sleep=sleep).download_chapters(
            _series(3), tmp_path, concurrency=1, request_delay_ms=5
        )

        assert events == ["sleep", "fetch"] * 3


class TestOutputFile:
    def test_series_document_layout(self, tmp_path, clock, reporter):
        book = _series(2)

        summary = Downloader(FakeExtractor(), reporter=reporter, sleep=clock.sleep).download_chapters(
            book, tmp_path, request_delay_ms=0
        )

        assert summary.output_path == tmp_path / "魔女の旅々.txt"
        text = summary.output_path.read_text(encoding="utf-8")
        expected = (
            "書名：魔女の旅々\n\n作者：白石定規\n\n簡介：旅をする魔女の物語\n\n"
            "【第0話】\n\nbody 0\n\ntext\n"
            + CHAPTER_SEPARATOR
            + "【第1話】\n\nbody 1\n\ntext\n"
        )
        assert text == expected
        assert reporter.named("file_written") == [("file_written", str(summary.output_path))]

    def test_standalone_chapter_has_no_header_and_uses_fetched_title(self, tmp_path, clock):
        url = _chapter_url(7)
        book = BookInfo.single_chapter(url)
        extractor = FakeExtractor(results={url: ChapterContent(content="正文", title="短編")})

        summary = Downloader(extractor, sleep=clock.sleep).download_chapters(
            book, tmp_path, request_delay_ms=0
        )

        assert summary.output_path.name == "短編.txt"
        assert summary.output_path.read_text(encoding="utf-8") == "【短編】\n\n正文\n"

    def test_failed_standalone_chapter_falls_back_to_book_title(self, tmp_path, clock):
        url = _chapter_url(7)
        book = BookInfo.single_chapter(url)
        extractor = FakeExtractor(results={url: EmptyContent(url=url)})

        summary = Downloader(extractor, sleep=clock.sleep).download_chapters(
            book, tmp_path, request_delay_ms=0
        )

        assert summary.output_path.name == "Unknown Title.txt"
        assert not summary.ok

    def test_title_is_sanitised_and_directory_created(self, tmp_path, clock):
        book = _series(1, title='a/b:c?"d"')
        out_dir = tmp_path / "nested" / "dir"

        summary = Downloader(FakeExtractor(), sleep=clock.sleep).download_chapters(
            book, out_dir, request_delay_ms=0
        )

        assert summary.output_path == out_dir / "a_b_c__d_.txt"
        assert summary.output_path.is_file()

    def test_written_as_utf8_without_bom(self, tmp_path, clock):
        summary = Downloader(FakeExtractor(), sleep=clock.sleep).download_chapters(
            _series(1), tmp_path, request_delay_ms=0
        )

        raw = summary.output_path.read_bytes()
        assert not raw.startswith(b"\xef\xbb\xbf")
        assert raw.decode("utf-8").startswith("書名：")


def test_header_omits_blank_fields():
    book = BookInfo(title="T", author="  ", description="", read_url=SERIES_URL)
    assert build_header(book) == ["書名：T", ""]
    assert assemble_document(book, ["x"]) == "書名：T\n\nx"


def test_header_absent_for_standalone_books():
    assert build_header(BookInfo.single_chapter(_chapter_url(1))) == []


def test_series_path_without_id_is_not_a_series():
    book = BookInfo.single_chapter("https://www.pixiv.net/novel/series/latest")

    assert not book.is_series
    assert build_header(book) == []


@pytest.mark.parametrize(
    "name, expected",
    [("a/b:c?", "a_b_c_"), ("  ", "novel"), ("魔女の旅々", "魔女の旅々")],
)
def test_safe_filename(name, expected):
    assert safe_filename(name) == expected
