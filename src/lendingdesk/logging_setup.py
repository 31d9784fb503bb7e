"""Logging configuration.

Library modules log through ``logging.getLogger(__name__)`` and never
configure handlers themselves; the CLI calls :func:`configure_logging`.
"""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(level: str = "WARNING", console: Optional[Console] = None) -> None:
    """Route ``lendingdesk`` log records through a Rich handler.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ...)
        console: Console to write to (stderr if not provided)
    """
    logger = logging.getLogger("lendingdesk")
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
