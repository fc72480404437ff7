"""
Structured logging setup for fetchgate.
"""

import logging
import typing as t
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

_NOISY_LOGGERS = ("httpx", "httpcore")


def setup_logging(level: str = "WARNING", *, json_output: bool = False) -> None:
    """
    Route structlog through stdlib logging and set the package level.

    Parameters
    ----------
    level : str, optional
        Level of the ``fetchgate`` logger.
    json_output : bool, optional
        Render one JSON object per line instead of the colored console format.
    """
    logging.basicConfig(format="%(message)s")
    logging.getLogger(name="fetchgate").setLevel(level=level.upper())
    for name in _NOISY_LOGGERS:
        logging.getLogger(name=name).setLevel(level=logging.WARNING)

    renderer: t.Any = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=True)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


@contextmanager
def logging_context(**context: t.Any) -> Iterator[None]:
    """
    Bind context variables for the duration of the block.

    Keys already bound by an outer scope keep their outer value.
    """
    bound = structlog.contextvars.get_contextvars()
    missing = {key: value for key, value in context.items() if key not in bound}
    if not missing:
        yield
        return
    with structlog.contextvars.bound_contextvars(**missing):
        yield
