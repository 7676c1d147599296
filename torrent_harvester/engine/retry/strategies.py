"""Concrete retry strategies used by the chain."""

from __future__ import annotations

import random

import httpx

from .chain import RequestDirective, RetryChain, RetryContext, Strategy


class AttemptLimitStrategy(Strategy):
    """Cap the number of attempts and count failures."""

    def __init__(self, max_attempts: int) -> None:
        self.max_attempts = max(1, max_attempts)

    def before_request(self, context: RetryContext, directive: RequestDirective) -> None:
        context.max_attempts = self.max_attempts

    def after_success(self, context: RetryContext, response: httpx.Response) -> None:
        return

    def after_failure(self, context: RetryContext, response: httpx.Response | None, error: Exception | None) -> None:
        context.attempt += 1


class BackoffStrategy(Strategy):
    """Exponential delay before every retry, jittered over [0, delay]."""

    def __init__(self, base: float = 0.1, factor: float = 2.0, maximum: float = 30.0) -> None:
        self.base = base
        self.factor = factor
        self.maximum = maximum

    def delay_for(self, attempt: int) -> float:
        if attempt <= 1 or self.base <= 0:
            return 0.0
        ceiling = min(self.maximum, self.base * self.factor ** (attempt - 2))
        return random.uniform(0, ceiling)

    def before_request(self, context: RetryContext, directive: RequestDirective) -> None:
        delay = self.delay_for(context.attempt)
        if delay > 0:
            directive.delay = delay

    def after_success(self, context: RetryContext, response: httpx.Response) -> None:
        return

    def after_failure(self, context: RetryContext, response: httpx.Response | None, error: Exception | None) -> None:
        return


class TimeoutStrategy(Strategy):
    """Apply a fixed per-request timeout."""

    def __init__(self, timeout: float | None) -> None:
        self.timeout = timeout

    def before_request(self, context: RetryContext, directive: RequestDirective) -> None:
        if self.timeout:
            directive.timeout = self.timeout

    def after_success(self, context: RetryContext, response: httpx.Response) -> None:
        return

    def after_failure(self, context: RetryContext, response: httpx.Response | None, error: Exception | None) -> None:
        return


def build_chain(
    url: str,
    max_attempts: int,
    backoff_base: float,
    backoff_max: float,
    timeout: float | None = None,
) -> tuple[RetryContext, RetryChain]:
    """Utility to build a ready-to-use chain for one fetch."""

    context = RetryContext(url=url, max_attempts=max_attempts)
    strategies: list[Strategy] = [
        AttemptLimitStrategy(max_attempts),
        BackoffStrategy(base=backoff_base, maximum=backoff_max),
        TimeoutStrategy(timeout),
    ]
    return context, RetryChain(strategies)


__all__ = [
    "AttemptLimitStrategy",
    "BackoffStrategy",
    "TimeoutStrategy",
    "build_chain",
]
