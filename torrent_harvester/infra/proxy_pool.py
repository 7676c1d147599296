"""Proxy candidate loading and egress-IP validation."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List

import httpx
import structlog

from ..engine.thread_pool import ThreadPoolManager
from ..errors import BaselineError, ProxyPoolError, ProxyRejected

ClientFactory = Callable[[str | None], httpx.Client]


@dataclass(frozen=True, slots=True)
class ProxyClient:
    """HTTP client bound to one validated proxy endpoint."""

    address: str
    client: httpx.Client = field(compare=False, hash=False, repr=False)

    def close(self) -> None:
        self.client.close()


def build_client(proxy: str | None, user_agent: str, timeout: float) -> httpx.Client:
    return httpx.Client(
        proxy=proxy,
        headers={"User-Agent": user_agent},
        timeout=timeout,
        follow_redirects=True,
    )


def load_candidates(path: Path) -> list[str]:
    """Read newline-delimited proxy endpoints, skipping blanks and comments."""

    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError as exc:
        raise ProxyPoolError(f"Unreadable proxy list {path}: {exc}") from exc
    candidates: list[str] = []
    seen: set[str] = set()
    for line in lines:
        candidate = line.strip()
        if not candidate or candidate.startswith("#") or candidate in seen:
            continue
        seen.add(candidate)
        candidates.append(candidate)
    return candidates


def fetch_baseline_ip(client: httpx.Client, echo_url: str) -> str:
    """Return the direct (non-proxied) egress IP reported by the echo service."""

    try:
        response = client.get(echo_url)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        raise BaselineError(f"Baseline IP lookup failed via {echo_url}: {exc}") from exc
    address = response.text.strip()
    if not address:
        raise BaselineError(f"Echo service {echo_url} returned an empty body")
    return address


class ProxyPool:
    """Validate candidate proxies and own the resulting clients."""

    def __init__(
        self,
        echo_url: str,
        user_agent: str,
        timeout: float = 30.0,
        thread_pool: ThreadPoolManager | None = None,
        max_workers: int = 32,
        client_factory: ClientFactory | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.echo_url = echo_url
        self.user_agent = user_agent
        self.timeout = timeout
        self.thread_pool = thread_pool or ThreadPoolManager()
        self.max_workers = max_workers
        self._client_factory = client_factory or (
            lambda proxy: build_client(proxy, self.user_agent, self.timeout)
        )
        self.logger = logger or structlog.get_logger("torrent_harvester.proxy_pool")
        self._clients: set[ProxyClient] = set()

    @property
    def clients(self) -> List[ProxyClient]:
        return sorted(self._clients, key=lambda item: item.address)

    def baseline_ip(self) -> str:
        with self._client_factory(None) as direct:
            address = fetch_baseline_ip(direct, self.echo_url)
        self.logger.info("baseline_ip", address=address)
        return address

    def validate(self, candidates: Iterable[str], baseline_ip: str) -> set[ProxyClient]:
        """Keep every candidate that reaches the echo service with a different IP."""

        known = {client.address for client in self._clients}
        pending = [candidate for candidate in dict.fromkeys(candidates) if candidate not in known]
        accepted: set[ProxyClient] = set()
        for address, future in self.thread_pool.fan_out(
            "proxy-check",
            lambda candidate: self._check(candidate, baseline_ip),
            pending,
            max_workers=self.max_workers,
        ):
            try:
                accepted.add(future.result())
            except ProxyRejected as exc:
                self.logger.info("proxy_rejected", proxy=exc.address, reason=exc.reason)
        self._clients.update(accepted)
        self.logger.info("proxies_validated", accepted=len(accepted))
        return accepted

    def require(self, candidates: Iterable[str], baseline_ip: str) -> set[ProxyClient]:
        accepted = self.validate(candidates, baseline_ip)
        if not self._clients:
            raise ProxyPoolError("No proxy candidate passed validation")
        return accepted

    def close(self) -> None:
        for proxy_client in self._clients:
            proxy_client.close()
        self._clients.clear()

    def _check(self, address: str, baseline_ip: str) -> ProxyClient:
        try:
            client = self._client_factory(address)
        except (ValueError, ImportError, httpx.InvalidURL) as exc:
            raise ProxyRejected(address, f"invalid endpoint: {exc}") from exc
        try:
            response = client.get(self.echo_url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            client.close()
            raise ProxyRejected(address, f"unreachable: {exc}") from exc
        remote_ip = response.text.strip()
        if remote_ip == baseline_ip:
            client.close()
            raise ProxyRejected(address, "egress ip unchanged")
        self.logger.debug("proxy_accepted", proxy=address, egress_ip=remote_ip)
        return ProxyClient(address=address, client=client)


__all__ = [
    "ProxyClient",
    "ProxyPool",
    "build_client",
    "fetch_baseline_ip",
    "load_candidates",
]
