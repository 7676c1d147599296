"""Link and pagination extraction from listing markup."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable, Iterator, Protocol

import structlog
from selectolax.parser import HTMLParser

from ..errors import ParseError
from .thread_pool import ThreadPoolManager


class Extractor(Protocol):
    """Contract between the pipeline and any markup-specific extractor."""

    def page_count(self, content: str) -> int:
        """Return the total number of index pages advertised by ``content``."""

    def links(self, content: str, pattern: str) -> Iterator[str]:
        """Yield links in ``content`` matching ``pattern``."""


def compile_pattern(pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise ParseError(f"Invalid link pattern {pattern!r}: {exc}") from exc


class LinkExtractor:
    """selectolax implementation of :class:`Extractor`."""

    def __init__(
        self,
        base_url: str,
        pagination_selector: str = "a.page-numbers",
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.pagination_selector = pagination_selector
        self.logger = logger or structlog.get_logger("torrent_harvester.extractor")

    def page_count(self, content: str) -> int:
        """Read the second-to-last pagination link; the last one is "next"."""

        nodes = HTMLParser(content).css(self.pagination_selector)
        if len(nodes) < 2:
            raise ParseError(
                f"Expected at least two '{self.pagination_selector}' elements, found {len(nodes)}"
            )
        text = nodes[-2].text(strip=True).replace(",", "")
        try:
            return int(text)
        except ValueError as exc:
            raise ParseError(f"Pagination text is not a number: {text!r}") from exc

    def links(self, content: str, pattern: str) -> Iterator[str]:
        """Lazily yield matching hrefs with the site prefix removed.

        Compiles ``pattern`` up front so a bad pattern fails before iteration.
        """

        compiled = compile_pattern(pattern)
        return self._iter_links(content, compiled)

    def _iter_links(self, content: str, compiled: re.Pattern[str]) -> Iterator[str]:
        for node in HTMLParser(content).css("a[href]"):
            href = (node.attributes.get("href") or "").strip()
            if not href or not compiled.search(href):
                continue
            yield self._relative(href)

    def _relative(self, href: str) -> str:
        if href.startswith(self.base_url):
            href = href[len(self.base_url):]
        return href.lstrip("/")


def links_from_files(
    extractor: Extractor,
    paths: Iterable[Path],
    pattern: str,
    thread_pool: ThreadPoolManager,
    max_workers: int | None = None,
    logger: structlog.BoundLogger | None = None,
) -> list[str]:
    """Extract from every file concurrently; return sorted unique links.

    Unreadable or missing files are logged and skipped.
    """

    compile_pattern(pattern)
    logger = logger or structlog.get_logger("torrent_harvester.extractor")
    collected: set[str] = set()
    for path, future in thread_pool.fan_out(
        "extract",
        lambda item: list(extractor.links(item.read_text(encoding="utf-8", errors="replace"), pattern)),
        paths,
        max_workers=max_workers,
    ):
        try:
            collected.update(future.result())
        except OSError as exc:
            logger.warning("extract_skipped", path=str(path), error=str(exc))
    return sorted(collected)


__all__ = ["Extractor", "LinkExtractor", "compile_pattern", "links_from_files"]
