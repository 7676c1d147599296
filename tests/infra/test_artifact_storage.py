from __future__ import annotations

from pathlib import Path

import pytest

from torrent_harvester.config.models import DEFAULT_TORRENT_TEMPLATE
from torrent_harvester.engine import DownloadJob
from torrent_harvester.errors import PersistenceError
from torrent_harvester.infra import ArtifactLayout, TemplateTorrentMapper, is_within


def test_layout_paths(tmp_path: Path) -> None:
    layout = ArtifactLayout(tmp_path)
    assert layout.index_path == tmp_path / "HTML" / "INDEX.HTML"
    assert layout.page_path(3) == tmp_path / "HTML" / "PAGES" / "3.HTML"
    assert layout.entry_path("some-title.html") == tmp_path / "HTML" / "ENTRIES" / "some-title.html.HTML"
    assert layout.torrent_dir == tmp_path / "TORRENT"


def test_template_maps_path_and_name(tmp_path: Path) -> None:
    mapper = TemplateTorrentMapper(DEFAULT_TORRENT_TEMPLATE, tmp_path / "TORRENT")
    destination = mapper.map("https://d.ptorrents.com/Movies/2024/[site].Example.Title.torrent")
    assert destination == tmp_path / "TORRENT" / "Movies" / "2024" / "Example.Title.TORRENT"


@pytest.mark.parametrize(
    "locator",
    [
        "https://elsewhere.example/Movies/[site].Example.torrent",
        "https://d.ptorrents.com/Movies/Example.torrent",
        "Movies/2024/[site].Example.Title.torrent",
    ],
)
def test_template_returns_none_when_not_matching(tmp_path: Path, locator: str) -> None:
    mapper = TemplateTorrentMapper(DEFAULT_TORRENT_TEMPLATE, tmp_path)
    assert mapper.map(locator) is None


def test_write_creates_parents_and_replaces(tmp_path: Path) -> None:
    layout = ArtifactLayout(tmp_path)
    target = layout.page_path(1)
    layout.write(target, b"first")
    layout.write(target, b"second")
    assert target.read_bytes() == b"second"
    assert [item.name for item in target.parent.iterdir()] == ["1.HTML"]


def test_write_failure_raises_persistence_error(tmp_path: Path) -> None:
    blocker = tmp_path / "HTML"
    blocker.write_text("not a directory", encoding="utf-8")
    layout = ArtifactLayout(tmp_path)
    with pytest.raises(PersistenceError):
        layout.write(layout.page_path(1), b"data")


def test_missing_keeps_only_absent_destinations(tmp_path: Path) -> None:
    present = tmp_path / "present.HTML"
    present.write_bytes(b"x")
    jobs = [
        DownloadJob("http://site/a", present),
        DownloadJob("http://site/b", tmp_path / "absent.HTML"),
    ]
    assert ArtifactLayout.missing(jobs) == [jobs[1]]


@pytest.mark.parametrize(
    "locator",
    [
        "https://d.ptorrents.com/../../[site].Escaped.torrent",
        "https://d.ptorrents.com/Movies/../../../[site].Escaped.torrent",
    ],
)
def test_template_rejects_paths_leaving_torrent_dir(tmp_path: Path, locator: str) -> None:
    mapper = TemplateTorrentMapper(DEFAULT_TORRENT_TEMPLATE, tmp_path / "out" / "TORRENT")
    assert mapper.map(locator) is None


def test_template_allows_dot_segments_that_stay_inside(tmp_path: Path) -> None:
    mapper = TemplateTorrentMapper(DEFAULT_TORRENT_TEMPLATE, tmp_path / "TORRENT")
    destination = mapper.map("https://d.ptorrents.com/Movies/../Shows/[site].Pilot.torrent")
    assert destination is not None
    assert is_within(destination, tmp_path / "TORRENT")


def test_write_refuses_paths_outside_base(tmp_path: Path) -> None:
    layout = ArtifactLayout(tmp_path / "out")
    target = layout.entry_path("../../../escaped.html")
    assert not layout.contains(target)
    with pytest.raises(PersistenceError):
        layout.write(target, b"data")
    assert not (tmp_path / "escaped.html.HTML").exists()
