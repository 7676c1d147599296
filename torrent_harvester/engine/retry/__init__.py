"""Retry strategy chain."""

from .chain import RequestDirective, RetryChain, RetryContext, Strategy
from .strategies import AttemptLimitStrategy, BackoffStrategy, TimeoutStrategy, build_chain

__all__ = [
    "AttemptLimitStrategy",
    "BackoffStrategy",
    "RequestDirective",
    "RetryChain",
    "RetryContext",
    "Strategy",
    "TimeoutStrategy",
    "build_chain",
]
