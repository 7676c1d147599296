"""Shared fixtures: a fake listing site served through httpx.MockTransport."""

from __future__ import annotations

from collections import Counter
from pathlib import Path
from threading import Lock
from typing import Callable

import httpx
import pytest

from torrent_harvester.config import ConfigLocator, HarvestConfig
from torrent_harvester.engine import Fetcher, ThreadPoolManager
from torrent_harvester.infra import ProxyClient

BASE_URL = "http://www.ptorrents.com"
ECHO_URL = "https://api.seeip.org"
DIRECT_IP = "10.0.0.1"


def index_html(total_pages: int) -> str:
    pages = "".join(
        f'<a class="page-numbers" href="{BASE_URL}/page/{n}">{n:,}</a>'
        for n in (1, 2, total_pages)
    )
    return f'<html><body><nav>{pages}<a class="page-numbers next" href="/page/2">Next</a></nav></body></html>'


def page_html(page: int) -> str:
    return (
        "<html><body>"
        f'<a href="{BASE_URL}/entry-{page}.html">Entry {page}</a>'
        f'<a href="/shared-entry.html">Shared</a>'
        f'<a href="{BASE_URL}/page/{page + 1}">next</a>'
        '<a href="https://elsewhere.example/style.css">css</a>'
        "</body></html>"
    )


def entry_html(slug: str) -> str:
    return (
        "<html><body>"
        f'<a href="https://d.ptorrents.com/Movies/2024/[ptorrents.com].{slug}.torrent">get</a>'
        f'<a href="https://d.ptorrents.com/Movies/2024/[ptorrents.com].{slug}.torrent">again</a>'
        "</body></html>"
    )


class FakeSite:
    """In-memory listing site; every response is keyed by URL."""

    def __init__(self, total_pages: int = 3) -> None:
        self.total_pages = total_pages
        self.requests: Counter[str] = Counter()
        self.extra_page_links: dict[int, str] = {}
        self.extra_entry_links: dict[str, str] = {}
        self.failures: dict[str, int] = {}
        self.always_fail: set[str] = set()
        self._lock = Lock()

    def handler(self, egress_ip: str) -> Callable[[httpx.Request], httpx.Response]:
        def _handle(request: httpx.Request) -> httpx.Response:
            url = str(request.url).rstrip("/")
            with self._lock:
                self.requests[url] += 1
                if url in self.always_fail:
                    return httpx.Response(503, text="unavailable")
                if self.failures.get(url, 0) > 0:
                    self.failures[url] -= 1
                    raise httpx.ConnectError("connection reset", request=request)
            return self.respond(url, egress_ip)

        return _handle

    def respond(self, url: str, egress_ip: str) -> httpx.Response:
        if url == ECHO_URL:
            return httpx.Response(200, text=f"{egress_ip}\n")
        if url == BASE_URL:
            return httpx.Response(200, text=index_html(self.total_pages))
        if url.startswith(f"{BASE_URL}/page/"):
            page = int(url.rsplit("/", 1)[1])
            body = page_html(page)
            extra = self.extra_page_links.get(page)
            if extra:
                body = body.replace("</body>", f'<a href="{extra}">x</a></body>')
            return httpx.Response(200, text=body)
        if url.startswith(f"{BASE_URL}/") and url.endswith(".html"):
            slug = url[len(BASE_URL) + 1 : -len(".html")]
            body = entry_html(slug.replace("-", ".").title())
            extra = self.extra_entry_links.get(slug)
            if extra:
                body = body.replace("</body>", f'<a href="{extra}">x</a></body>')
            return httpx.Response(200, text=body)
        if url.startswith("https://d.ptorrents.com/") and url.endswith(".torrent"):
            return httpx.Response(200, content=b"d8:announce0:e")
        return httpx.Response(404, text="not found")

    def client(self, egress_ip: str) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler(egress_ip)))

    def proxy(self, address: str, egress_ip: str = "10.9.9.9") -> ProxyClient:
        return ProxyClient(address=address, client=self.client(egress_ip))

    def download_requests(self) -> int:
        return sum(count for url, count in self.requests.items() if url not in (BASE_URL, ECHO_URL))


@pytest.fixture
def site() -> FakeSite:
    return FakeSite()


@pytest.fixture
def harvest_config() -> HarvestConfig:
    return HarvestConfig(
        base_url=BASE_URL,
        echo_url=ECHO_URL,
        max_attempts=2,
        backoff_base=0.0,
        max_job_rounds=2,
        validation_workers=4,
        extraction_workers=4,
        progress=False,
    )


@pytest.fixture
def fetcher(harvest_config: HarvestConfig) -> Fetcher:
    return Fetcher.from_config(harvest_config)


@pytest.fixture
def thread_pool():
    manager = ThreadPoolManager(default_workers=4)
    yield manager
    manager.shutdown()


@pytest.fixture
def locator(tmp_path: Path) -> ConfigLocator:
    return ConfigLocator(tmp_path / "out")


@pytest.fixture
def client_factory(site: FakeSite) -> Callable[[str | None], httpx.Client]:
    """Direct client sees DIRECT_IP; each proxy gets its own egress IP."""

    def _factory(proxy: str | None) -> httpx.Client:
        if proxy is None:
            return site.client(DIRECT_IP)
        if "transparent" in proxy:
            return site.client(DIRECT_IP)
        if "dead" in proxy:
            def _refuse(request: httpx.Request) -> httpx.Response:
                raise httpx.ConnectError("refused", request=request)

            return httpx.Client(transport=httpx.MockTransport(_refuse))
        return site.client(f"10.1.0.{abs(hash(proxy)) % 200 + 2}")

    return _factory
