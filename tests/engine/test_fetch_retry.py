from __future__ import annotations

import httpx
import pytest

from conftest import BASE_URL, FakeSite
from torrent_harvester.engine import Fetcher
from torrent_harvester.engine.retry import BackoffStrategy, build_chain
from torrent_harvester.errors import FetchError


def test_fetch_returns_response_bytes(site: FakeSite, fetcher: Fetcher) -> None:
    proxy = site.proxy("http://p:1")
    response = fetcher.fetch(proxy, f"{BASE_URL}/page/2")
    assert response.status_code == 200
    assert b"entry-2.html" in response.content
    assert "entry-2.html" in response.text


def test_fetch_retries_transport_errors(site: FakeSite) -> None:
    url = f"{BASE_URL}/page/1"
    site.failures[url] = 2
    fetcher = Fetcher(max_attempts=3, backoff_base=0.0)
    response = fetcher.fetch(site.proxy("http://p:1"), url)
    assert response.status_code == 200
    assert site.requests[url] == 3


def test_fetch_gives_up_after_max_attempts(site: FakeSite) -> None:
    url = f"{BASE_URL}/page/1"
    site.failures[url] = 10
    fetcher = Fetcher(max_attempts=4, backoff_base=0.0)
    with pytest.raises(FetchError) as excinfo:
        fetcher.fetch(site.proxy("http://p:1"), url)
    assert excinfo.value.url == url
    assert excinfo.value.attempts == 4
    assert isinstance(excinfo.value.cause, httpx.ConnectError)
    assert site.requests[url] == 4


def test_error_status_counts_as_failed_attempt(site: FakeSite) -> None:
    url = f"{BASE_URL}/page/9"
    site.always_fail.add(url)
    fetcher = Fetcher(max_attempts=3, backoff_base=0.0)
    with pytest.raises(FetchError):
        fetcher.fetch(site.proxy("http://p:1"), url)
    assert site.requests[url] == 3


def test_fetch_sleeps_between_attempts_only(site: FakeSite, monkeypatch: pytest.MonkeyPatch) -> None:
    delays: list[float] = []
    monkeypatch.setattr("torrent_harvester.engine.fetcher.time.sleep", delays.append)
    monkeypatch.setattr("torrent_harvester.engine.retry.strategies.random.uniform", lambda low, high: high)
    url = f"{BASE_URL}/page/1"
    site.failures[url] = 3
    Fetcher(max_attempts=5, backoff_base=0.1).fetch(site.proxy("http://p:1"), url)
    assert delays == pytest.approx([0.1, 0.2, 0.4])


def test_backoff_delay_is_bounded(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("torrent_harvester.engine.retry.strategies.random.uniform", lambda low, high: high)
    strategy = BackoffStrategy(base=0.1, maximum=1.0)
    assert strategy.delay_for(1) == 0.0
    assert strategy.delay_for(2) == pytest.approx(0.1)
    assert strategy.delay_for(3) == pytest.approx(0.2)
    assert strategy.delay_for(20) == pytest.approx(1.0)


def test_backoff_jitter_stays_within_ceiling() -> None:
    strategy = BackoffStrategy(base=0.1, maximum=30.0)
    for attempt in range(2, 12):
        ceiling = min(30.0, 0.1 * 2 ** (attempt - 2))
        assert 0.0 <= strategy.delay_for(attempt) <= ceiling


def test_chain_allows_exactly_max_attempts() -> None:
    context, chain = build_chain("http://x", max_attempts=2, backoff_base=0.0, backoff_max=0.0)
    chain.prepare(context)
    chain.notify_failure(context, None, RuntimeError("boom"))
    assert chain.should_retry(context)
    chain.prepare(context)
    chain.notify_failure(context, None, RuntimeError("boom"))
    assert not chain.should_retry(context)
