"""Logging setup for sitedeploy.

Every module obtains its logger through ``get_logger(__name__)`` so the whole
package hangs off the ``sitedeploy`` logger configured here.
"""

from __future__ import annotations

import logging
import sys

PACKAGE_LOGGER = "sitedeploy"
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are chatty at INFO/DEBUG
NOISY_LOGGERS = ("botocore", "boto3", "urllib3", "s3transfer", "docker")


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure package logging.

    Args:
        verbose: Log at DEBUG level, including third-party libraries
        quiet: Only log warnings and errors
    """
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.handlers.clear()
    package_logger.addHandler(handler)
    package_logger.setLevel(level)
    package_logger.propagate = False

    third_party_level = logging.DEBUG if verbose else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)


def get_logger(name: str) -> logging.Logger:
    """Return a logger for a sitedeploy module."""
    return logging.getLogger(name)
