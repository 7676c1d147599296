from __future__ import annotations

import io

import pytest
from rich.console import Console

from torrent_harvester.ui import ProgressActivity, ProgressReporter


def test_progress_reporter_counts() -> None:
    reporter = ProgressReporter("pages", enabled=False)
    reporter.start(total=3)
    reporter.advance(success=True, remaining=2)
    reporter.advance(requeued=True, remaining=2)
    reporter.advance(failed=True, remaining=1)
    reporter.close()
    state = reporter.state
    assert (state.success, state.failed, state.requeued) == (1, 1, 1)
    assert state.remaining == 1


def test_progress_requires_start() -> None:
    reporter = ProgressReporter(enabled=False)
    with pytest.raises(RuntimeError):
        reporter.advance()


def test_progress_disables_itself_off_terminal() -> None:
    console = Console(file=io.StringIO(), force_terminal=False)
    reporter = ProgressReporter("entries", enabled=True, console=console)
    reporter.start(total=1)
    reporter.advance(success=True)
    reporter.close()
    assert reporter.enabled is False
    assert reporter.state.success == 1


def test_activity_is_silent_when_disabled() -> None:
    stream = io.StringIO()
    with ProgressActivity(enabled=False, console=Console(file=stream)) as activity:
        activity.start("Scraping 3 pages for entries...")
    assert stream.getvalue() == ""
