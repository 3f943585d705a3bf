"""
Logging configuration for ghsum.

Library code only creates loggers; the CLI decides where output goes.
"""

import logging
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path


def configure_quiet_mode(quiet: bool = True):
    """
    Keep console output to warnings and above.

    Args:
        quiet: If True, suppress info/debug output. If False, show everything.
    """
    logger = logging.getLogger("ghsum")
    if quiet:
        warnings.filterwarnings("ignore")
        logger.setLevel(logging.WARNING)
    else:
        warnings.filterwarnings("default")
        logger.setLevel(logging.INFO)


def enable_debug_mode():
    """Enable debug-level logging to stderr."""
    warnings.filterwarnings("default")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Add stderr handler if not already present
    if not any(isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) == sys.stderr
               for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S"
        ))
        root_logger.addHandler(handler)

    logging.getLogger("ghsum").setLevel(logging.DEBUG)


def configure_ops_log(store_path):
    """Configure a persistent operations log for a store.

    Writes to {store_path}/ghsum-ops.log using a rotating file handler
    (1MB max, 3 backups). Evictions, refused writes and purges end up here.
    Returns the handler so it can be removed on close.
    """
    log_path = Path(store_path) / "ghsum-ops.log"
    log_path.parent.mkdir(parents=True, exist_ok=True)
    ghsum_logger = logging.getLogger("ghsum")
    for existing in ghsum_logger.handlers:
        if isinstance(existing, RotatingFileHandler) and existing.baseFilename == str(log_path.resolve()):
            return existing

    handler = RotatingFileHandler(
        str(log_path),
        maxBytes=1_000_000,
        backupCount=3,
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    ghsum_logger.addHandler(handler)
    # INFO must reach the file even in quiet mode
    if ghsum_logger.level == logging.NOTSET or ghsum_logger.level > logging.INFO:
        ghsum_logger.setLevel(logging.INFO)

    return handler
