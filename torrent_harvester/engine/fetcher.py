"""HTTP fetching through a proxy client with retry strategy integration."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict

import httpx
import structlog

from ..errors import FetchError
from .retry import RetryChain, RetryContext, build_chain

if TYPE_CHECKING:
    from ..config import HarvestConfig
    from ..infra.proxy_pool import ProxyClient


@dataclass(slots=True)
class FetchResponse:
    """Standardised response wrapper."""

    url: str
    status_code: int
    content: bytes = field(repr=False)
    headers: Dict[str, str] = field(default_factory=dict, repr=False)

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")


class Fetcher:
    """Run one GET per attempt until success or the chain gives up."""

    def __init__(
        self,
        max_attempts: int = 10,
        backoff_base: float = 0.1,
        backoff_max: float = 30.0,
        timeout: float | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.timeout = timeout
        self.logger = logger or structlog.get_logger("torrent_harvester.fetcher")

    @classmethod
    def from_config(cls, config: "HarvestConfig", logger: structlog.BoundLogger | None = None) -> "Fetcher":
        return cls(
            max_attempts=config.max_attempts,
            backoff_base=config.backoff_base,
            backoff_max=config.backoff_max,
            timeout=config.request_timeout,
            logger=logger,
        )

    def fetch(self, proxy: "ProxyClient", url: str) -> FetchResponse:
        context, chain = self._build_chain(url)
        last_error: Exception | None = None
        while True:
            directive = chain.prepare(context)
            if directive.delay:
                time.sleep(directive.delay)

            request_kwargs: dict[str, Any] = {"headers": directive.headers or None}
            if directive.timeout:
                request_kwargs["timeout"] = directive.timeout
            try:
                response = proxy.client.get(url, **request_kwargs)
                if self._is_failure(response):
                    chain.notify_failure(context, response, None)
                    last_error = RuntimeError(f"Unexpected status {response.status_code}")
                else:
                    chain.notify_success(context, response)
                    return FetchResponse(
                        url=str(response.url),
                        status_code=response.status_code,
                        content=response.content,
                        headers=dict(response.headers),
                    )
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                chain.notify_failure(context, None, exc)
                last_error = exc
            self.logger.debug(
                "fetch_attempt_failed",
                url=url,
                proxy=proxy.address,
                attempt=context.attempt - 1,
                error=str(last_error),
            )

            if not chain.should_retry(context):
                break

        raise FetchError(url, context.max_attempts, last_error)

    # ------------------------------------------------------------------
    def _build_chain(self, url: str) -> tuple[RetryContext, RetryChain]:
        return build_chain(
            url,
            max_attempts=self.max_attempts,
            backoff_base=self.backoff_base,
            backoff_max=self.backoff_max,
            timeout=self.timeout,
        )

    @staticmethod
    def _is_failure(response: Any) -> bool:
        status_code = getattr(response, "status_code", 0)
        return status_code >= 400


__all__ = ["FetchResponse", "Fetcher"]
