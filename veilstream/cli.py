"""Veilstream command-line interface (Typer + Rich).

Commands: serve, config.
"""

from __future__ import annotations

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from veilstream import __version__
from veilstream.schemas.config import VeilstreamConfig
from veilstream.settings import load_config

console = Console()

app = typer.Typer(
    name="veilstream",
    help="Privacy-preserving LLM proxy with live reasoning status.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ───────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"veilstream {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Veilstream: privacy-preserving LLM proxy with live reasoning status."""


# ── Helpers ──────────────────────────────────────────────────────


def _load(config_path: str | None) -> VeilstreamConfig:
    """Load configuration, exit on error."""
    try:
        return load_config(Path(config_path) if config_path else None)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        raise typer.Exit(1) from None


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


# ── Commands ─────────────────────────────────────────────────────


@app.command()
def config(
    config_path: str = typer.Option(
        None, "--config", "-c",
        help="Path to a TOML config file (default: bundled defaults.toml)",
    ),
) -> None:
    """Show the effective proxy configuration."""
    cfg = _load(config_path)

    table = Table(title="Veilstream Configuration", show_lines=False)
    table.add_column("Section", style="bold cyan")
    table.add_column("Setting")
    table.add_column("Value", style="green")

    for section_name, section in (
        ("proxy", cfg.proxy),
        ("upstream", cfg.upstream),
        ("server", cfg.server),
    ):
        for key, value in section.model_dump().items():
            table.add_row(section_name, key, str(value))

    console.print(table)


@app.command()
def serve(
    config_path: str = typer.Option(
        None, "--config", "-c",
        help="Path to a TOML config file (default: bundled defaults.toml)",
    ),
    host: str = typer.Option(None, "--host", help="Bind address override"),
    port: int = typer.Option(None, "--port", "-p", help="Bind port override"),
    log_level: str = typer.Option(
        "info", "--log-level",
        help="Logging level (debug, info, warning, error)",
    ),
) -> None:
    """Start the proxy server."""
    cfg = _load(config_path)
    bind_host = host or cfg.server.host
    bind_port = port or cfg.server.port

    _configure_logging(log_level)

    console.print(Panel(
        f"[bold]URL:[/bold] http://{bind_host}:{bind_port}/v1/chat/completions\n"
        f"[bold]Upstream:[/bold] {cfg.upstream.model}\n"
        f"[bold]Reasoning status:[/bold] "
        f"{'on' if cfg.proxy.reasoning_enabled else 'off'}",
        title="[bold blue]Veilstream[/bold blue]",
        border_style="blue",
    ))

    import uvicorn

    from veilstream.server.app import create_app

    uvicorn.run(
        create_app(cfg),
        host=bind_host,
        port=bind_port,
        log_level=log_level.lower(),
    )


# ── Entry point ──────────────────────────────────────────────────

if __name__ == "__main__":
    app()
