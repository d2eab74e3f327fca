"""CLI entry point for cabin. Uses Click for argument parsing."""

from __future__ import annotations

import asyncio
import logging

import click

from cabin import __version__
from cabin.app import App
from cabin.config import Settings, load_settings
from cabin.tui import ProcessTerminal

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(log_file: str | None, level: str) -> None:
    """Send log records to *log_file*; the terminal belongs to the UI."""
    if log_file is None:
        logging.getLogger().addHandler(logging.NullHandler())
        return
    logging.basicConfig(
        filename=log_file,
        level=getattr(logging, level.upper(), logging.WARNING),
        format=LOG_FORMAT,
    )


def startup_lines(settings: Settings, cabals: tuple[str, ...], channels: tuple[str, ...]) -> list[str]:
    lines = [f"/cabal add {addr}" for addr in (*settings.cabals, *cabals)]
    lines.extend(f"/join {channel}" for channel in channels)
    return lines


@click.command()
@click.option("--cabal", "cabals", multiple=True, metavar="ADDR", help="Add a cabal at startup (hex address)")
@click.option("--join", "channels", multiple=True, metavar="CHANNEL", help="Join a channel at startup")
@click.option("--log-file", default=None, type=click.Path(dir_okay=False), help="Write logs to this file")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"]),
    default=None,
    help="Log level (default from settings, else warning)",
)
@click.version_option(__version__)
def main(cabals, channels, log_file, log_level):
    """Chat on cabal networks from the terminal."""
    settings = load_settings()
    configure_logging(log_file or settings.log_file, log_level or settings.log_level)
    logger.info("starting cabin %s", __version__)

    terminal = ProcessTerminal()
    app = App(terminal, settings=settings)
    asyncio.run(app.run(startup_lines(settings, cabals, channels)))
