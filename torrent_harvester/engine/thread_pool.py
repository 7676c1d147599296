"""Named thread pools for stateless fan-out work."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from threading import Lock
from typing import Callable, Dict, Iterable, Iterator, TypeVar

T = TypeVar("T")
R = TypeVar("R")


class ThreadPoolManager:
    """Hand out one executor per named fan-out region."""

    def __init__(self, default_workers: int = 8) -> None:
        self.default_workers = default_workers
        self._executors: Dict[str, ThreadPoolExecutor] = {}
        self._lock = Lock()

    def get(self, name: str, max_workers: int | None = None) -> ThreadPoolExecutor:
        with self._lock:
            if name not in self._executors:
                workers = max_workers or self.default_workers
                self._executors[name] = ThreadPoolExecutor(
                    max_workers=workers, thread_name_prefix=f"harvest-{name}"
                )
            return self._executors[name]

    def fan_out(
        self,
        name: str,
        func: Callable[[T], R],
        items: Iterable[T],
        max_workers: int | None = None,
    ) -> Iterator[tuple[T, Future[R]]]:
        """Submit ``func`` for every item and yield (item, future) as each completes."""

        executor = self.get(name, max_workers)
        futures = {executor.submit(func, item): item for item in items}
        for future in as_completed(futures):
            yield futures[future], future

    def shutdown(self) -> None:
        with self._lock:
            for executor in self._executors.values():
                executor.shutdown(wait=True)
            self._executors.clear()


__all__ = ["ThreadPoolManager"]
