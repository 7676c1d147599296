"""Infra layer utilities (proxy pool, artifact storage)."""

from .proxy_pool import ProxyClient, ProxyPool, load_candidates
from .storage import ArtifactLayout, TemplateTorrentMapper, TorrentPathMapper, is_within

__all__ = [
    "ArtifactLayout",
    "ProxyClient",
    "ProxyPool",
    "TemplateTorrentMapper",
    "TorrentPathMapper",
    "is_within",
    "load_candidates",
]
