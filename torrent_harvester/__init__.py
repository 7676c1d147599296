"""Incremental, proxy-routed harvester for paginated torrent listings."""

__version__ = "0.1.0"
