"""Typer-based CLI for PixivNovel with Pydantic v2 configuration."""

import json
import logging
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

import typer
from fake_useragent import UserAgent
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from PixivNovel.config import NovelDownloadConfig, load_config
from PixivNovel.download import Downloader, DownloadSummary
from PixivNovel.errors import ConfigError, PixivNovelError, RangeError
from PixivNovel.extraction import ChapterExtractor
from PixivNovel.logging_utils import setup_logging
from PixivNovel.models import BookInfo
from PixivNovel.networking import HttpFetcher
from PixivNovel.reporting import DownloadReporter, LoggingReporter
from PixivNovel.resolvers import BookScraper, extract_series_id, is_series_url

console = Console()
app = typer.Typer(help="Download a Pixiv novel or series into one text file")
LOGGER = logging.getLogger("PixivNovel.cli")

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_PARTIAL = 2

# ============================================================================
# Helpers
# ============================================================================


def is_valid_entry_url(url: Optional[str]) -> bool:
    if not url or not url.strip():
        return False
    return urlsplit(url.strip()).scheme.lower() in ("http", "https")


def prompt_entry_url() -> str:
    """Ask for a novel URL until an http(s) one is entered."""

    while True:
        url = typer.prompt("Novel URL").strip()
        if is_valid_entry_url(url):
            return url
        LOGGER.error("Only novel URLs (http/https) are accepted")


def default_user_agent() -> str:
    return UserAgent(browsers=["Chrome"], platforms=["mobile"]).random


def build_fetcher(cfg: NovelDownloadConfig, reporter: DownloadReporter) -> HttpFetcher:
    return HttpFetcher(
        cfg.user_agent or default_user_agent(),
        timeout_s=cfg.timeout_s,
        cookie=cfg.cookie,
        accept_language=cfg.accept_language,
        reporter=reporter,
    )


def resolve_book(scraper: BookScraper, entry_url: str) -> BookInfo:
    """Series URLs with an id go through the listing API; anything else is one chapter."""

    if is_series_url(entry_url) and extract_series_id(entry_url):
        return scraper.fetch_book_info(entry_url)
    return BookInfo.single_chapter(entry_url)


def _summary_panel(summary: DownloadSummary) -> Panel:
    style = "green" if summary.ok else "yellow"
    lines = [
        f"[bold {style}]Download {summary.describe()}[/bold {style}]",
        f"Chapters: {summary.succeeded}/{summary.total}",
        f"Output: {escape(str(summary.output_path))}",
    ]
    for failure in summary.failures:
        lines.append(
            f"  ✗ {escape(failure.chapter.title)} ({escape(failure.reason)}) "
            f"{escape(failure.chapter.url)}"
        )
    return Panel("\n".join(lines), title="PixivNovel")


# ============================================================================
# Commands
# ============================================================================


@app.command()
def download(
    url: Optional[str] = typer.Argument(None, help="Novel or series URL"),
    config: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to config file", envvar="PIXIV_CONFIG"
    ),
    start: int = typer.Option(0, "--start", help="First chapter index (0-based, inclusive)"),
    end: Optional[int] = typer.Option(None, "--end", help="Last chapter index (inclusive)"),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", help="Parallel chapters"),
    delay_ms: Optional[int] = typer.Option(None, "--delay-ms", help="Delay before each fetch"),
    output_dir: Optional[str] = typer.Option(None, "--output-dir", "-o", help="Output directory"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Write JSON logs here"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose"),
) -> None:
    """Download every chapter of URL (or the single chapter it points at)."""
    setup_logging(level="DEBUG" if verbose else "INFO", log_file=log_file)

    try:
        cfg = load_config(
            path=config,
            cli_overrides={
                "concurrency": concurrency,
                "request_delay_ms": delay_ms,
                "output_dir": output_dir,
            },
        )
    except ConfigError as exc:
        LOGGER.critical("%s", exc)
        raise typer.Exit(code=EXIT_FATAL) from exc

    if url is not None and not is_valid_entry_url(url):
        LOGGER.error("Only novel URLs (http/https) are accepted: %s", url)
        raise typer.Exit(code=EXIT_FATAL)
    entry_url = url.strip() if url else prompt_entry_url()
    LOGGER.info("Fetching novel: %s", entry_url)

    reporter = LoggingReporter()
    with build_fetcher(cfg, reporter) as fetcher:
        scraper = BookScraper(fetcher, base_url=cfg.base_url, lang=cfg.lang, reporter=reporter)
        extractor = ChapterExtractor(fetcher, base_url=cfg.base_url, lang=cfg.lang)
        downloader = Downloader(extractor, reporter=reporter)

        try:
            book = resolve_book(scraper, entry_url)
        except (PixivNovelError, ValidationError) as exc:
            LOGGER.critical("Failed to fetch book info: %s", exc, exc_info=exc)
            raise typer.Exit(code=EXIT_FATAL) from exc

        if not book.is_series:
            LOGGER.info("Chapter: %s", book.read_url)

        LOGGER.info("Downloading %d chapter(s)...", len(book.chapters))
        try:
            summary = downloader.download_chapters(
                book,
                cfg.output_dir,
                start=start,
                end=end,
                concurrency=cfg.concurrency,
                request_delay_ms=cfg.request_delay_ms,
            )
        except RangeError as exc:
            raise typer.Exit(code=EXIT_FATAL) from exc
        except OSError as exc:
            LOGGER.critical("Failed to write output: %s", exc, exc_info=exc)
            raise typer.Exit(code=EXIT_FATAL) from exc

    console.print(_summary_panel(summary))
    raise typer.Exit(code=EXIT_OK if summary.ok else EXIT_PARTIAL)


@app.command("show-config")
def show_config(
    config: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to config file", envvar="PIXIV_CONFIG"
    ),
) -> None:
    """Print the effective configuration (file < env < CLI) as JSON."""
    try:
        cfg = load_config(path=config)
    except ConfigError as exc:
        console.print(f"[red]✗ {exc}[/red]")
        raise typer.Exit(code=EXIT_FATAL) from exc

    data = cfg.model_dump(mode="json")
    if data.get("cookie"):
        data["cookie"] = "***"
    console.print_json(json.dumps(data, ensure_ascii=False))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
