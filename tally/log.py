"""Logging setup shared by the CLI and the web app."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(name)s: %(message)s"

# Forbidden attempts (self-review, acting on another user's state) go here.
security_logger = logging.getLogger("tally.security")


def configure_logging(level: int | str = logging.INFO, console: Console | None = None) -> None:
    """Route ``tally`` loggers through a single rich console handler.

    Calling this more than once replaces the previous handler instead of
    stacking duplicates.
    """
    root = logging.getLogger("tally")
    for handler in list(root.handlers):
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(level)
