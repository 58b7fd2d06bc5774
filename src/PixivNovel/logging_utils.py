"""Logging setup for the PixivNovel command line."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

__all__ = ["JSONFormatter", "setup_logging"]

_MANAGED_ATTR = "_pixivnovel_managed"


class JSONFormatter(logging.Formatter):
    """Formatter emitting one JSON object per record, merging ``extra_fields``."""

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if hasattr(record, "extra_fields") and isinstance(record.extra_fields, dict):
            payload.update(record.extra_fields)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(
    *,
    level: str = "INFO",
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """Configure the ``PixivNovel`` logger with a console handler and optional JSONL file.

    Calling it twice replaces the handlers installed by the previous call.
    """

    logger = logging.getLogger("PixivNovel")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, _MANAGED_ATTR, False):
            logger.removeHandler(handler)
            handler.close()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(levelname)s - %(message)s", datefmt="%H:%M:%S")
    )
    setattr(stream_handler, _MANAGED_ATTR, True)
    logger.addHandler(stream_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        setattr(file_handler, _MANAGED_ATTR, True)
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger
