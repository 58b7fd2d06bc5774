"""
Pydantic v2 configuration model for PixivNovel.

Field names are snake_case. The loader also accepts the PascalCase keys of
``appsettings.json`` (``DefaultTimeoutMs``, ``Concurrency``,
``OutputDir``, ``Cookie``, ``RequestDelayMs``). Unknown keys are rejected.
"""

from __future__ import annotations

import hashlib
import json
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from PixivNovel.models import DEFAULT_BASE_URL, DEFAULT_LANG
from PixivNovel.networking import DEFAULT_ACCEPT_LANGUAGE

__all__ = ["NovelDownloadConfig"]


class NovelDownloadConfig(BaseModel):
    """Single source of truth for a download run."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", validate_assignment=True)

    default_timeout_ms: int = Field(default=15000, gt=0, description="Per-request timeout (ms)")
    concurrency: int = Field(default=10, ge=1, description="Maximum chapters fetched at once")
    output_dir: str = Field(default="data", description="Directory receiving the text file")
    cookie: str = Field(default="", description="Raw Cookie header sent with every request")
    request_delay_ms: int = Field(
        default=500, ge=0, description="Delay before each chapter fetch (ms)"
    )
    user_agent: str = Field(
        default="", description="User-Agent header; blank picks a mobile Chrome agent"
    )
    accept_language: str = Field(
        default=DEFAULT_ACCEPT_LANGUAGE, description="Accept-Language header"
    )
    base_url: str = Field(default=DEFAULT_BASE_URL, description="Site root for API calls")
    lang: str = Field(default=DEFAULT_LANG, description="Upstream ``lang`` query parameter")

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.lower().startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/")

    @property
    def timeout_s(self) -> float:
        return self.default_timeout_ms / 1000.0

    def config_hash(self) -> str:
        """Deterministic SHA256 of the config, with the cookie masked."""

        data = self.model_dump(mode="json")
        if data.get("cookie"):
            data["cookie"] = "***"
        normalized = json.dumps(data, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(normalized.encode()).hexdigest()
