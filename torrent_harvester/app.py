"""Typer CLI entrypoint for the torrent harvester."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from .config import CheckpointStore, ConfigLocator, ConfigRepository, HarvestConfig
from .engine import ThreadPoolManager
from .errors import HarvestError
from .infra import ArtifactLayout, ProxyPool, TemplateTorrentMapper, load_candidates
from .logging_conf import HARVEST_LOG, configure_logging, tail_log
from .orchestrator import Orchestrator, PipelineSummary

app = typer.Typer(
    help="Incrementally harvest listing pages, entries and torrent files through proxies.",
    no_args_is_help=True,
    rich_markup_mode=None,
)
log_app = typer.Typer(name="log", help="Log viewing commands.", no_args_is_help=True, rich_markup_mode=None)
app.add_typer(log_app, name="log")

console = Console()

BasePathOption = typer.Option(Path("."), "--base-path", "-b", help="Output base directory.")
ProxiesOption = typer.Option(
    Path("proxies.txt"), "--proxies-path", "-p", help="Newline-delimited proxy endpoints."
)
UserAgentOption = typer.Option(None, "--user-agent", "-u", help="User-Agent sent through every proxy.")


@dataclass
class AppState:
    locator: ConfigLocator
    repository: ConfigRepository
    config: HarvestConfig


def build_state(base_path: Path, verbose: bool, **overrides: object) -> AppState:
    locator = ConfigLocator(base_path)
    locator.base_path.mkdir(parents=True, exist_ok=True)
    configure_logging(verbose=verbose, log_dir=locator.logs_dir)
    repository = ConfigRepository(locator)
    config = repository.load(**overrides)
    return AppState(locator=locator, repository=repository, config=config)


def build_proxy_pool(state: AppState, thread_pool: ThreadPoolManager) -> ProxyPool:
    config = state.config
    return ProxyPool(
        echo_url=config.echo_url,
        user_agent=config.user_agent,
        timeout=config.request_timeout,
        thread_pool=thread_pool,
        max_workers=config.validation_workers,
    )


def build_orchestrator(state: AppState, progress: bool) -> Orchestrator:
    thread_pool = ThreadPoolManager(state.config.extraction_workers)
    return Orchestrator(
        config=state.config,
        locator=state.locator,
        proxy_pool=build_proxy_pool(state, thread_pool),
        thread_pool=thread_pool,
        progress_enabled=progress and state.config.progress and console.is_terminal,
    )


def _render_summary(summary: PipelineSummary) -> Table:
    table = Table(title="Harvest summary", box=box.SIMPLE_HEAVY)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    for key, value in summary.as_dict().items():
        if key == "skipped":
            value = ", ".join(value) or "-"  # type: ignore[arg-type]
        table.add_row(key.replace("_", " "), str(value))
    return table


def _fail(exc: Exception) -> None:
    console.print(f"[red]Error:[/red] {exc}")
    raise typer.Exit(code=1)


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging."),
) -> None:
    ctx.obj = {"verbose": verbose}


@app.command("run", help="Run the full incremental harvest.")
def run(
    ctx: typer.Context,
    base_path: Path = BasePathOption,
    proxies_path: Path = ProxiesOption,
    user_agent: Optional[str] = UserAgentOption,
    no_progress: bool = typer.Option(False, "--no-progress", help="Disable progress bars."),
    strict: bool = typer.Option(False, "--strict", help="Exit with code 2 if any download failed."),
) -> None:
    verbose = bool((ctx.obj or {}).get("verbose"))
    try:
        state = build_state(base_path, verbose, user_agent=user_agent)
        candidates = load_candidates(proxies_path)
        orchestrator = build_orchestrator(state, progress=not no_progress)
    except HarvestError as exc:
        _fail(exc)
        return
    try:
        summary = orchestrator.run(candidates)
    except HarvestError as exc:
        _fail(exc)
        return
    finally:
        orchestrator.close()
    console.print(_render_summary(summary))
    if strict and summary.failed:
        raise typer.Exit(code=2)


@app.command("status", help="Show checkpoint counters and artifacts on disk.")
def status(ctx: typer.Context, base_path: Path = BasePathOption) -> None:
    verbose = bool((ctx.obj or {}).get("verbose"))
    try:
        state = build_state(base_path, verbose)
    except HarvestError as exc:
        _fail(exc)
        return
    checkpoint = CheckpointStore(state.locator.checkpoint_path()).load()
    layout = ArtifactLayout(state.locator.base_path)
    mapper = TemplateTorrentMapper(state.config.torrent_template, layout.torrent_dir)
    pages_on_disk = sum(
        1 for page in range(1, checkpoint.max_pages + 1) if layout.page_path(page).exists()
    )
    entries_on_disk = sum(1 for entry in checkpoint.entries if layout.entry_path(entry).exists())
    mapped = [mapper.map(locator) for locator in checkpoint.torrents]
    torrents_on_disk = sum(1 for path in mapped if path is not None and path.exists())
    unmapped = sum(1 for path in mapped if path is None)

    table = Table(title=str(state.locator.checkpoint_path()), box=box.SIMPLE_HEAVY)
    table.add_column("Artifact", style="cyan")
    table.add_column("Known", justify="right")
    table.add_column("On disk", justify="right")
    table.add_row("pages", str(checkpoint.max_pages), str(pages_on_disk))
    table.add_row("entries", str(len(checkpoint.entries)), str(entries_on_disk))
    table.add_row("torrents", str(len(checkpoint.torrents)), str(torrents_on_disk))
    table.add_row("unmapped torrents", str(unmapped), "-")
    console.print(table)


@app.command("check-proxies", help="Validate the proxy list and print the usable endpoints.")
def check_proxies(
    ctx: typer.Context,
    base_path: Path = BasePathOption,
    proxies_path: Path = ProxiesOption,
    user_agent: Optional[str] = UserAgentOption,
) -> None:
    verbose = bool((ctx.obj or {}).get("verbose"))
    thread_pool: ThreadPoolManager | None = None
    pool: ProxyPool | None = None
    try:
        state = build_state(base_path, verbose, user_agent=user_agent)
        candidates = load_candidates(proxies_path)
        thread_pool = ThreadPoolManager(state.config.validation_workers)
        pool = build_proxy_pool(state, thread_pool)
        baseline_ip = pool.baseline_ip()
        accepted = pool.validate(candidates, baseline_ip)
    except HarvestError as exc:
        _fail(exc)
        return
    finally:
        if pool is not None:
            pool.close()
        if thread_pool is not None:
            thread_pool.shutdown()
    console.print(f"Baseline IP: {baseline_ip}")
    table = Table(title="Usable proxies", box=box.SIMPLE_HEAVY)
    table.add_column("Proxy", style="green")
    for address in sorted(client.address for client in accepted):
        table.add_row(address)
    console.print(table)
    console.print(f"{len(accepted)}/{len(candidates)} candidates accepted")
    if not accepted:
        raise typer.Exit(code=1)


@log_app.command("show", help="Show the tail of the harvest log.")
def log_show(
    base_path: Path = BasePathOption,
    lines: int = typer.Option(50, "--lines", "-n", min=1, help="Number of lines to show."),
) -> None:
    path = ConfigLocator(base_path).logs_dir / HARVEST_LOG
    content = tail_log(path, lines)
    if not content:
        console.print(f"[yellow]No log entries at {path}[/yellow]")
        return
    for line in content:
        console.print(line.rstrip("\n"), markup=False, highlight=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
