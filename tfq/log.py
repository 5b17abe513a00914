"""Logging setup.

Modules log through ``logging.getLogger(__name__)``. The CLI calls
setup_logging() once; the level comes from --verbose or the TFQ_LOG
environment variable (trace, debug, info, warn, error, fatal). Default is
error so normal query output stays clean.
"""

import logging
import os

from rich.console import Console
from rich.logging import RichHandler

LOG_ENV = "TFQ_LOG"

_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
}


def resolve_level(verbose=False):
    if verbose:
        return logging.DEBUG
    name = os.environ.get(LOG_ENV, "").strip().lower()
    return _LEVELS.get(name, logging.ERROR)


def setup_logging(verbose=False):
    """Route all log records through a Rich handler on stderr."""
    handler = RichHandler(
        console=Console(stderr=True),
        show_time=True,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(resolve_level(verbose))

    # boto is chatty at debug
    for name in ("boto3", "botocore", "s3transfer", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)
