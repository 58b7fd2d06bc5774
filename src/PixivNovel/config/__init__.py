"""Configuration models and loader for PixivNovel."""

from __future__ import annotations

from .loader import discover_config, load_config, strip_jsonc
from .models import NovelDownloadConfig

__all__ = [
    "NovelDownloadConfig",
    "discover_config",
    "load_config",
    "strip_jsonc",
]
