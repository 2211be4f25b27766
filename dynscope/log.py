"""Log handler setup for the dynscope package logger."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "dynscope"
_HANDLER_MARKER = "_dynscope_handler"


def configure_logging(debug: bool = False, console: Console | None = None) -> logging.Logger:
    """Attach a :class:`RichHandler` to the package logger once and set its level.

    Records go to stderr so porcelain output on stdout stays parseable.
    """

    logger = logging.getLogger(LOGGER_NAME)
    level = logging.DEBUG if debug else logging.WARNING
    handler = next(
        (item for item in logger.handlers if getattr(item, _HANDLER_MARKER, False)),
        None,
    )
    if handler is None:
        handler = RichHandler(
            console=console or Console(stderr=True),
            show_time=False,
            show_path=False,
            markup=False,
            rich_tracebacks=True,
        )
        setattr(handler, _HANDLER_MARKER, True)
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        logger.addHandler(handler)
        logger.propagate = False
    handler.setLevel(level)
    logger.setLevel(level)
    return logger
