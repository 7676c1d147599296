"""On-disk artifact layout and torrent locator mapping."""

from __future__ import annotations

import os
import re
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Protocol

from ..errors import PersistenceError

if TYPE_CHECKING:
    from ..engine.downloader import DownloadJob


def is_within(path: Path, root: Path) -> bool:
    """Return whether ``path`` stays under ``root`` once ``..`` and links are resolved."""

    return path.resolve().is_relative_to(root.resolve())


class TorrentPathMapper(Protocol):
    """Map a torrent locator to its local path, or ``None`` when it does not apply."""

    def map(self, locator: str) -> Path | None:
        """Return the destination path for ``locator``."""


class TemplateTorrentMapper:
    """Regex template with ``path`` and ``name`` groups."""

    def __init__(self, template: str, torrent_dir: Path) -> None:
        self.pattern = re.compile(template)
        self.torrent_dir = torrent_dir

    def map(self, locator: str) -> Path | None:
        match = self.pattern.match(locator)
        if match is None:
            return None
        path, name = match.group("path"), match.group("name")
        if not path or not name:
            return None
        destination = self.torrent_dir / path / f"{name}.TORRENT"
        if not is_within(destination, self.torrent_dir):
            return None
        return destination


class ArtifactLayout:
    """Paths of every artifact under the output base directory."""

    def __init__(self, base_path: Path) -> None:
        self.base_path = Path(base_path)
        self.html_dir = self.base_path / "HTML"
        self.pages_dir = self.html_dir / "PAGES"
        self.entries_dir = self.html_dir / "ENTRIES"
        self.torrent_dir = self.base_path / "TORRENT"

    @property
    def index_path(self) -> Path:
        return self.html_dir / "INDEX.HTML"

    def page_path(self, page: int) -> Path:
        return self.pages_dir / f"{page}.HTML"

    def entry_path(self, entry: str) -> Path:
        return self.entries_dir / f"{entry}.HTML"

    def contains(self, path: Path) -> bool:
        return is_within(path, self.base_path)

    def write(self, path: Path, content: bytes) -> None:
        """Create missing parents and replace ``path`` atomically.

        Paths resolving outside ``base_path`` are refused.
        """

        if not self.contains(path):
            raise PersistenceError(f"Refusing to write outside {self.base_path}: {path}")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
            try:
                with os.fdopen(fd, "wb") as stream:
                    stream.write(content)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise PersistenceError(f"Could not write {path}: {exc}") from exc

    @staticmethod
    def missing(jobs: Iterable[DownloadJob]) -> list[DownloadJob]:
        return [job for job in jobs if not job.destination.exists()]


__all__ = ["ArtifactLayout", "TemplateTorrentMapper", "TorrentPathMapper", "is_within"]
