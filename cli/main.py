"""pagelint CLI: entry-point for the markup validation tasks.

Usage:
    python cli/main.py --help

Commands take no options; configuration comes from `pagelint.config`
(environment variables or a `.env` file):
    lint      → capture every page from a fresh server and run the checker
    start     → start the application server detached
    stop      → stop the recorded server (fails if none is recorded)
    try-stop  → stop the recorded server, ignoring every error
    restart   → try-stop followed by start
    pages     → list the pages `lint` captures
"""

from __future__ import annotations

import os
import sys
from dataclasses import replace
from pathlib import Path

# Ensure the project root is on sys.path so that `from pagelint.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import logging

import typer

from pagelint.config import PipelineConfig, settings
from pagelint.errors import PipelineError
from pagelint.pages import PAGES
from pagelint.process.server import ServerLifecycle

app = typer.Typer(
    name="pagelint",
    help="Capture rendered pages from a local server and lint their markup.",
    no_args_is_help=True,
)


@app.callback()
def _configure() -> None:
    """Capture rendered pages from a local server and lint their markup."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------
@app.command("lint")
def lint() -> None:
    """Start the server, capture every page, and run the markup checker."""
    from pagelint.pipeline import run_pipeline

    result = run_pipeline(PipelineConfig.from_settings(), PAGES, echo=typer.echo)
    if result.error is not None and result.diagnostic_output == "":
        typer.echo(f"[lint] {result.error}", err=True)
    if result.exit_code != 0:
        raise typer.Exit(result.exit_code)
    typer.echo(f"[lint] {len(result.captured_files)} page(s) passed.")


@app.command("pages")
def pages() -> None:
    """List the pages captured by `lint` and where each one is written."""
    for page in PAGES:
        typer.echo(f"  {page.url(settings.base_url):<48} {page.output_name}")


# ---------------------------------------------------------------------------
# Server control
# ---------------------------------------------------------------------------
def _manual_server_config() -> PipelineConfig:
    """Run config for a hand-started server.

    Unlike `lint`, which forces the development environment, a manual start
    keeps an inherited NODE_ENV and otherwise runs in production.
    """
    config = PipelineConfig.from_settings()
    name = settings.server_env_name
    env = {**config.base_env, name: os.environ.get(name, "production")}
    return replace(config, base_env=env)


@app.command("start")
def start() -> None:
    """Start the application server detached."""
    server = ServerLifecycle()
    if server.recorded_pid() is not None:
        typer.echo(f"[start] A server is already recorded in {server.pid_file}.", err=True)
        raise typer.Exit(1)
    try:
        handle = server.start(_manual_server_config())
    except PipelineError as exc:
        typer.echo(f"[start] {exc}", err=True)
        raise typer.Exit(exc.exit_code)
    typer.echo(f"[start] Server started (pid {handle.pid}) on {settings.base_url}")


@app.command("stop")
def stop() -> None:
    """Stop the recorded application server."""
    server = ServerLifecycle()
    pid = server.recorded_pid()
    if pid is None:
        typer.echo("[stop] No running server is recorded.", err=True)
        raise typer.Exit(1)
    if not server.stop():
        typer.echo(f"[stop] Server (pid {pid}) was not running.", err=True)
        raise typer.Exit(1)
    typer.echo(f"[stop] Server (pid {pid}) stopped.")


@app.command("try-stop")
def try_stop() -> None:
    """Stop the recorded application server, ignoring every error."""
    ServerLifecycle().stop()


@app.command("restart")
def restart() -> None:
    """Stop any recorded server, then start a fresh one."""
    try_stop()
    start()


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()
