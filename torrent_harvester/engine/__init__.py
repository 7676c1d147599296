"""Engine components: fetch with retry, concurrent download, link extraction."""

from .downloader import DownloadJob, DownloadReport, Downloader
from .fetcher import FetchResponse, Fetcher
from .parser import Extractor, LinkExtractor
from .thread_pool import ThreadPoolManager

__all__ = [
    "DownloadJob",
    "DownloadReport",
    "Downloader",
    "Extractor",
    "FetchResponse",
    "Fetcher",
    "LinkExtractor",
    "ThreadPoolManager",
]
