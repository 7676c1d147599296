"""Strategy chain deciding whether and when a failed fetch is retried."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Protocol

import httpx


@dataclass
class RequestDirective:
    """Mutable set of options to apply to an outgoing request."""

    headers: dict[str, str] = field(default_factory=dict)
    timeout: float | None = None
    delay: float | None = None


@dataclass
class RetryContext:
    """Shared state for all strategies across the attempts of one fetch."""

    url: str
    attempt: int = 1
    max_attempts: int = 1


class Strategy(Protocol):
    """Strategy behaviour expected by the chain."""

    def before_request(self, context: RetryContext, directive: RequestDirective) -> None:
        """Mutate directive ahead of an HTTP request."""

    def after_success(self, context: RetryContext, response: httpx.Response) -> None:
        """Observe a successful response."""

    def after_failure(
        self,
        context: RetryContext,
        response: httpx.Response | None,
        error: Exception | None,
    ) -> None:
        """React when an attempt fails."""


class RetryChain:
    """Compose strategies and expose a simple API for the fetcher."""

    def __init__(self, strategies: Optional[List[Strategy]] = None) -> None:
        self.strategies = strategies or []

    # ------------------------------------------------------------------
    def prepare(self, context: RetryContext) -> RequestDirective:
        directive = RequestDirective()
        for strategy in self.strategies:
            strategy.before_request(context, directive)
        return directive

    def notify_success(self, context: RetryContext, response: httpx.Response) -> None:
        for strategy in self.strategies:
            strategy.after_success(context, response)

    def notify_failure(
        self,
        context: RetryContext,
        response: httpx.Response | None,
        error: Exception | None,
    ) -> None:
        for strategy in self.strategies:
            strategy.after_failure(context, response, error)

    def should_retry(self, context: RetryContext) -> bool:
        return context.attempt <= context.max_attempts


__all__ = ["RequestDirective", "RetryChain", "RetryContext", "Strategy"]
