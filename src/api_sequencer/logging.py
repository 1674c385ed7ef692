"""Logging configuration for the api-sequencer CLI."""

import logging
from typing import TextIO

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(verbosity: int = 0, quiet: bool = False, stream: TextIO | None = None) -> Console:
    """Install a Rich handler on the root logger.

    quiet wins over verbosity: quiet=WARNING, 0=INFO, 1+=DEBUG.
    """
    if quiet:
        level = logging.WARNING
    elif verbosity >= 1:
        level = logging.DEBUG
    else:
        level = logging.INFO

    console = Console(file=stream) if stream else Console(stderr=True)
    handler = RichHandler(console=console, show_time=verbosity >= 1, show_path=verbosity >= 1)

    logging.basicConfig(level=level, format="%(message)s", handlers=[handler], force=True)
    return console
