"""Exception hierarchy shared across the harvester."""

from __future__ import annotations


class HarvestError(Exception):
    """Base class for every error raised by the harvester."""


class ConfigError(HarvestError):
    """Settings or checkpoint content could not be loaded."""


class FetchError(HarvestError):
    """A fetch exhausted its attempt budget."""

    def __init__(self, url: str, attempts: int, cause: Exception | None = None) -> None:
        self.url = url
        self.attempts = attempts
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Fetch failed after {attempts} attempts: {url}{detail}")


class BaselineError(HarvestError):
    """The direct egress IP lookup failed; no proxy can be validated."""


class ProxyRejected(HarvestError):
    """A candidate proxy is unreachable or does not change the egress IP."""

    def __init__(self, address: str, reason: str) -> None:
        self.address = address
        self.reason = reason
        super().__init__(f"{address}: {reason}")


class ProxyPoolError(HarvestError):
    """The proxy list is unreadable or no candidate survived validation."""


class ParseError(HarvestError):
    """Expected markup is missing or a link pattern is invalid."""


class PersistenceError(HarvestError):
    """A checkpoint or artifact write failed."""


__all__ = [
    "BaselineError",
    "ConfigError",
    "FetchError",
    "HarvestError",
    "ParseError",
    "PersistenceError",
    "ProxyPoolError",
    "ProxyRejected",
]
