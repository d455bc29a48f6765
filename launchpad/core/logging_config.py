"""structlog wiring for the CLI.

Events are routed through the standard library ``launchpad`` logger so that
they land on stderr next to the rich console output and never pollute JSON
written to stdout.
"""

from __future__ import annotations

import logging

import structlog
from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "launchpad"


def configure_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    package_logger = logging.getLogger(LOGGER_NAME)
    if not any(isinstance(h, RichHandler) for h in package_logger.handlers):
        package_logger.addHandler(
            RichHandler(
                console=Console(stderr=True),
                show_path=False,
                markup=False,
            )
        )
    package_logger.setLevel(level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
