"""Pipeline orchestrator wiring proxies, downloads, extraction and checkpoints."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Sequence

import structlog

from .config import Checkpoint, CheckpointStore, ConfigLocator, HarvestConfig, Stage
from .engine import DownloadJob, DownloadReport, Downloader, Fetcher, LinkExtractor, ThreadPoolManager
from .engine.parser import Extractor, compile_pattern, links_from_files
from .errors import FetchError, ProxyPoolError
from .infra import (
    ArtifactLayout,
    ProxyClient,
    ProxyPool,
    TemplateTorrentMapper,
    TorrentPathMapper,
    is_within,
)
from .ui import ProgressActivity, ProgressReporter


@dataclass
class PipelineSummary:
    """Counters describing what one run did."""

    max_pages: int = 0
    pages_fetched: int = 0
    entries: int = 0
    entries_fetched: int = 0
    torrents: int = 0
    torrents_fetched: int = 0
    unmapped: int = 0
    rejected: int = 0
    failed: int = 0
    skipped: list[Stage] = field(default_factory=list)

    def record(self, report: DownloadReport) -> int:
        self.failed += len(report.failed)
        return len(report.contents)

    def as_dict(self) -> dict[str, object]:
        return {
            "max_pages": self.max_pages,
            "pages_fetched": self.pages_fetched,
            "entries": self.entries,
            "entries_fetched": self.entries_fetched,
            "torrents": self.torrents,
            "torrents_fetched": self.torrents_fetched,
            "unmapped": self.unmapped,
            "rejected": self.rejected,
            "failed": self.failed,
            "skipped": [stage.value for stage in self.skipped],
        }


class Orchestrator:
    """Run the index → pages → entries → torrents pipeline once.

    Every stage decides from checkpoint state and files on disk whether it has
    work, and the checkpoint is persisted right after each stage that changes
    it, so an interrupted run picks up where it stopped.
    """

    def __init__(
        self,
        config: HarvestConfig,
        locator: ConfigLocator,
        proxy_pool: ProxyPool,
        thread_pool: ThreadPoolManager | None = None,
        store: CheckpointStore | None = None,
        extractor: Extractor | None = None,
        mapper: TorrentPathMapper | None = None,
        fetcher: Fetcher | None = None,
        progress_enabled: bool = False,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.config = config
        self.locator = locator
        self.proxy_pool = proxy_pool
        self.thread_pool = thread_pool or ThreadPoolManager(config.extraction_workers)
        self.logger = logger or structlog.get_logger("torrent_harvester").bind(component="orchestrator")
        self.store = store or CheckpointStore(locator.checkpoint_path(), logger=self.logger)
        self.layout = ArtifactLayout(locator.base_path)
        self.extractor = extractor or LinkExtractor(
            config.base_url, config.pagination_selector, logger=self.logger
        )
        self.mapper = mapper or TemplateTorrentMapper(config.torrent_template, self.layout.torrent_dir)
        self.fetcher = fetcher or Fetcher.from_config(config, logger=self.logger)
        self.progress_enabled = progress_enabled

    # ------------------------------------------------------------------
    def run(self, candidates: Iterable[str]) -> PipelineSummary:
        """Validate proxies, then run every stage against the stored checkpoint."""

        # Fail on bad patterns before any network traffic.
        compile_pattern(self.config.entry_pattern)
        compile_pattern(self.config.torrent_pattern)
        checkpoint = self.store.load()
        baseline_ip = self.proxy_pool.baseline_ip()
        self.proxy_pool.require(candidates, baseline_ip)
        return self.run_stages(checkpoint, self.proxy_pool.clients)

    def run_stages(self, checkpoint: Checkpoint, clients: Sequence[ProxyClient]) -> PipelineSummary:
        if not clients:
            raise ProxyPoolError("No validated proxy clients available")
        downloader = self._build_downloader(clients)
        summary = PipelineSummary()

        candidate = self.stage_index(clients)
        if self.stage_pages(checkpoint, candidate, downloader, summary):
            self.stage_entries(checkpoint)
        else:
            summary.skipped.append(Stage.ENTRIES)
        self.stage_entry_fetch(checkpoint, downloader, summary)
        self.stage_torrents(checkpoint, downloader, summary)

        summary.max_pages = checkpoint.max_pages
        summary.entries = len(checkpoint.entries)
        summary.torrents = len(checkpoint.torrents)
        self.logger.info("pipeline_finished", **summary.as_dict())
        return summary

    # ------------------------------------------------------------------
    def stage_index(self, clients: Sequence[ProxyClient]) -> int:
        """Fetch the site root through the first client that works; return its page count."""

        last_error: FetchError | None = None
        for proxy in clients:
            try:
                response = self.fetcher.fetch(proxy, self.config.base_url)
            except FetchError as exc:
                self.logger.warning("index_fetch_failed", proxy=proxy.address, error=str(exc))
                last_error = exc
                continue
            self.layout.write(self.layout.index_path, response.content)
            max_pages = self.extractor.page_count(response.text)
            self.logger.info("index_scraped", max_pages=max_pages, proxy=proxy.address)
            return max_pages
        if last_error is None:
            raise ProxyPoolError("No proxy client available for the index fetch")
        raise last_error

    def stage_pages(
        self,
        checkpoint: Checkpoint,
        candidate: int,
        downloader: Downloader,
        summary: PipelineSummary,
    ) -> bool:
        """Refetch every page when the index grew; return whether anything ran."""

        if candidate <= checkpoint.max_pages:
            self.logger.info(
                "stage_skipped", stage=Stage.PAGES.value, max_pages=checkpoint.max_pages, scraped=candidate
            )
            summary.skipped.append(Stage.PAGES)
            return False
        jobs = [
            DownloadJob(f"{self.config.base_url}/page/{page}", self.layout.page_path(page))
            for page in range(1, candidate + 1)
        ]
        report = downloader.submit(jobs, label="pages")
        summary.pages_fetched = summary.record(report)
        checkpoint.advance_pages(candidate)
        self.store.save(checkpoint)
        return True

    def stage_entries(self, checkpoint: Checkpoint) -> None:
        # The final page is left out of entry derivation.
        paths = [self.layout.page_path(page) for page in range(1, checkpoint.max_pages)]
        with ProgressActivity(enabled=self.progress_enabled) as activity:
            activity.start(f"Scraping {len(paths)} pages for entries...")
            entries = self._extract(paths, self.config.entry_pattern)
        checkpoint.entries = entries
        self.store.save(checkpoint)
        self.logger.info("entries_derived", pages=len(paths), entries=len(checkpoint.entries))

    def stage_entry_fetch(
        self, checkpoint: Checkpoint, downloader: Downloader, summary: PipelineSummary
    ) -> None:
        entries = self._safe_entries(checkpoint, summary)
        jobs = self.layout.missing(
            DownloadJob(f"{self.config.base_url}/{entry}", self.layout.entry_path(entry))
            for entry in entries
        )
        if not jobs:
            self.logger.info("stage_skipped", stage=Stage.TORRENTS.value, reason="no_missing_entries")
            summary.skipped.append(Stage.TORRENTS)
            return
        report = downloader.submit(jobs, label="entries")
        summary.entries_fetched = summary.record(report)

        paths = [self.layout.entry_path(entry) for entry in entries]
        with ProgressActivity(enabled=self.progress_enabled) as activity:
            activity.start(f"Scraping {len(paths)} entries for torrents...")
            torrents = self._extract(paths, self.config.torrent_pattern)
        checkpoint.torrents = torrents
        self.store.save(checkpoint)
        self.logger.info("torrents_derived", entries=len(paths), torrents=len(checkpoint.torrents))

    def stage_torrents(
        self, checkpoint: Checkpoint, downloader: Downloader, summary: PipelineSummary
    ) -> None:
        mapped: list[DownloadJob] = []
        for locator in checkpoint.torrents:
            destination = self.mapper.map(locator)
            if destination is None:
                self.logger.warning("torrent_unmapped", locator=locator)
                summary.unmapped += 1
                continue
            mapped.append(DownloadJob(locator, destination))
        jobs = self.layout.missing(mapped)
        if not jobs:
            self.logger.info("stage_skipped", stage="torrent_files", known=len(mapped))
            return
        report = downloader.submit(jobs, label="torrents")
        summary.torrents_fetched = summary.record(report)

    # ------------------------------------------------------------------
    def _safe_entries(self, checkpoint: Checkpoint, summary: PipelineSummary) -> list[str]:
        """Entries whose local file stays inside the entries directory."""

        safe: list[str] = []
        for entry in checkpoint.entries:
            if is_within(self.layout.entry_path(entry), self.layout.entries_dir):
                safe.append(entry)
                continue
            self.logger.warning("entry_rejected", entry=entry)
            summary.rejected += 1
        return safe

    def _extract(self, paths: list[Path], pattern: str) -> list[str]:
        return links_from_files(
            self.extractor,
            paths,
            pattern,
            self.thread_pool,
            max_workers=self.config.extraction_workers,
            logger=self.logger,
        )

    def _build_downloader(self, clients: Sequence[ProxyClient]) -> Downloader:
        return Downloader(
            clients,
            self.fetcher,
            self.layout,
            max_job_rounds=self.config.max_job_rounds,
            progress_factory=lambda label: ProgressReporter(label, enabled=self.progress_enabled),
            logger=self.logger,
        )

    def close(self) -> None:
        self.proxy_pool.close()
        self.thread_pool.shutdown()


__all__ = ["Orchestrator", "PipelineSummary"]
