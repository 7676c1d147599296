"""Queue-based concurrent downloader with one worker per proxy client."""

from __future__ import annotations

from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from queue import Empty, Queue
from threading import Lock
from typing import TYPE_CHECKING, Callable, Iterable, Sequence

import structlog

from ..errors import FetchError, PersistenceError, ProxyPoolError
from .fetcher import Fetcher

if TYPE_CHECKING:
    from ..infra.proxy_pool import ProxyClient
    from ..infra.storage import ArtifactLayout
    from ..ui.progress import ProgressReporter


@dataclass(frozen=True, slots=True)
class DownloadJob:
    """One (source, destination) download unit."""

    source: str
    destination: Path


@dataclass
class DownloadReport:
    """Outcome of one ``submit`` call."""

    contents: dict[DownloadJob, bytes] = field(default_factory=dict)
    failed: dict[DownloadJob, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def total(self) -> int:
        return len(self.contents) + len(self.failed)


@dataclass
class _SubmitState:
    queue: Queue
    pending: int
    report: DownloadReport
    progress: "ProgressReporter | None"
    rounds: Counter = field(default_factory=Counter)
    fatal: list[Exception] = field(default_factory=list)
    lock: Lock = field(default_factory=Lock)


class Downloader:
    """Drain a bounded job queue with one worker per validated client.

    A job whose fetch exhausts its retry attempts goes back onto the queue so
    another worker (and proxy) can try it. After ``max_job_rounds`` such
    rounds the job is reported as failed instead of looping forever. Workers
    stop once no job is queued or in flight.
    """

    poll_interval = 0.05

    def __init__(
        self,
        clients: Sequence["ProxyClient"],
        fetcher: Fetcher,
        layout: "ArtifactLayout",
        max_job_rounds: int = 3,
        progress_factory: Callable[[str], "ProgressReporter"] | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.clients = list(clients)
        self.fetcher = fetcher
        self.layout = layout
        self.max_job_rounds = max(1, max_job_rounds)
        self.progress_factory = progress_factory
        self.logger = logger or structlog.get_logger("torrent_harvester.downloader")
        self._state: _SubmitState | None = None

    @property
    def remaining(self) -> int:
        state = self._state
        return state.queue.qsize() if state is not None else 0

    def submit(self, jobs: Iterable[DownloadJob], label: str = "download") -> DownloadReport:
        """Fetch every job and write it to its destination; block until all are settled."""

        unique = list({job.destination: job for job in jobs}.values())
        report = DownloadReport()
        if not unique:
            return report
        if not self.clients:
            raise ProxyPoolError("Downloader has no proxy clients")

        queue: Queue = Queue(maxsize=len(unique))
        for job in unique:
            queue.put_nowait(job)
        progress = self.progress_factory(label) if self.progress_factory else None
        state = _SubmitState(queue=queue, pending=len(unique), report=report, progress=progress)
        self._state = state
        if progress is not None:
            progress.start(len(unique))
        self.logger.info("download_started", label=label, jobs=len(unique), workers=len(self.clients))

        try:
            with ThreadPoolExecutor(
                max_workers=len(self.clients), thread_name_prefix="harvest-download"
            ) as executor:
                futures = [executor.submit(self._worker, client, state) for client in self.clients]
                for future in futures:
                    future.result()
        finally:
            self._state = None
            if progress is not None:
                progress.close()

        if state.fatal:
            raise state.fatal[0]
        self.logger.info(
            "download_finished",
            label=label,
            succeeded=len(report.contents),
            failed=len(report.failed),
        )
        return report

    # ------------------------------------------------------------------
    def _worker(self, proxy: "ProxyClient", state: _SubmitState) -> None:
        try:
            self._drain(proxy, state)
        except Exception as exc:
            with state.lock:
                state.fatal.append(exc)
            raise

    def _drain(self, proxy: "ProxyClient", state: _SubmitState) -> None:
        while True:
            with state.lock:
                if state.pending == 0 or state.fatal:
                    return
            try:
                job: DownloadJob = state.queue.get(timeout=self.poll_interval)
            except Empty:
                continue
            remaining = state.queue.qsize()
            with state.lock:
                state.rounds[job] += 1
                rounds = state.rounds[job]

            try:
                response = self.fetcher.fetch(proxy, job.source)
            except FetchError as exc:
                self._handle_failure(state, job, rounds, proxy, exc, remaining)
                continue

            try:
                self.layout.write(job.destination, response.content)
            except PersistenceError as exc:
                self.logger.error("job_write_failed", destination=str(job.destination), error=str(exc))
                with state.lock:
                    state.fatal.append(exc)
                    state.pending -= 1
                return

            with state.lock:
                state.report.contents[job] = response.content
                state.pending -= 1
            if state.progress is not None:
                state.progress.advance(success=True, remaining=remaining)

    def _handle_failure(
        self,
        state: _SubmitState,
        job: DownloadJob,
        rounds: int,
        proxy: "ProxyClient",
        error: FetchError,
        remaining: int,
    ) -> None:
        if rounds < self.max_job_rounds:
            self.logger.warning(
                "job_requeued", source=job.source, proxy=proxy.address, round=rounds, error=str(error)
            )
            state.queue.put_nowait(job)
            if state.progress is not None:
                state.progress.advance(requeued=True, remaining=remaining + 1)
            return
        self.logger.error("job_failed", source=job.source, rounds=rounds, error=str(error))
        with state.lock:
            state.report.failed[job] = str(error)
            state.pending -= 1
        if state.progress is not None:
            state.progress.advance(failed=True, remaining=remaining)


__all__ = ["DownloadJob", "DownloadReport", "Downloader"]
