"""Pydantic models for harvester settings and checkpoint state."""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# https://techblog.willshouse.com/2012/01/03/most-common-user-agents
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/118.0.0.0 Safari/537.36"
)
DEFAULT_TORRENT_TEMPLATE = (
    r"^https://d\.ptorrents\.com/(?P<path>.+)/\[[^\]]+\]\.(?P<name>.+)\.torrent$"
)


class Stage(str, Enum):
    """Pipeline phases in execution order."""

    INDEX = "index"
    PAGES = "pages"
    ENTRIES = "entries"
    TORRENTS = "torrents"


class Checkpoint(BaseModel):
    """Durable record of pipeline progress."""

    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    max_pages: int = Field(default=0, ge=0, alias="maxPages")
    entries: list[str] = Field(default_factory=list)
    torrents: list[str] = Field(default_factory=list)

    @field_validator("entries", "torrents", mode="after")
    @classmethod
    def _sorted_unique(cls, value: list[str]) -> list[str]:
        return sorted(set(value))

    def advance_pages(self, candidate: int) -> bool:
        """Raise ``max_pages`` to ``candidate``; never lowers it."""

        if candidate <= self.max_pages:
            return False
        self.max_pages = candidate
        return True


class HarvestConfig(BaseModel):
    """Site, network and tuning settings for one harvest."""

    base_url: str = "http://www.ptorrents.com"
    echo_url: str = "https://api.seeip.org"
    user_agent: str = DEFAULT_USER_AGENT
    request_timeout: float = 30.0
    max_attempts: int = 10
    backoff_base: float = 0.1
    backoff_max: float = 30.0
    max_job_rounds: int = 3
    pagination_selector: str = "a.page-numbers"
    entry_pattern: str = r"\.html$"
    torrent_pattern: str = r"\.torrent$"
    torrent_template: str = DEFAULT_TORRENT_TEMPLATE
    validation_workers: int = 32
    extraction_workers: int = 8
    progress: bool = True

    @field_validator("base_url", mode="before")
    @classmethod
    def _strip_trailing_slash(cls, value: Any) -> str:
        return str(value).rstrip("/")

    @field_validator(
        "max_attempts", "max_job_rounds", "validation_workers", "extraction_workers"
    )
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be >= 1")
        return value

    @field_validator("backoff_base", "backoff_max", "request_timeout")
    @classmethod
    def _non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("must be non-negative")
        return value

    @field_validator("torrent_template")
    @classmethod
    def _template_groups(cls, value: str) -> str:
        try:
            compiled = re.compile(value)
        except re.error as exc:
            raise ValueError(f"invalid torrent_template: {exc}") from exc
        missing = {"path", "name"} - set(compiled.groupindex)
        if missing:
            raise ValueError(f"torrent_template lacks groups: {sorted(missing)}")
        return value

    @model_validator(mode="after")
    def _backoff_bounds(self) -> "HarvestConfig":
        if self.backoff_max < self.backoff_base:
            raise ValueError("backoff_max must be >= backoff_base")
        return self


__all__ = [
    "Checkpoint",
    "DEFAULT_TORRENT_TEMPLATE",
    "DEFAULT_USER_AGENT",
    "HarvestConfig",
    "Stage",
]
