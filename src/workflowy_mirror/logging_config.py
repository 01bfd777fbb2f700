"""Logging configuration for the outline mirror."""

import sys

from loguru import logger

# Short lines for sync progress; verbose runs add timing and origin.
_BRIEF_FORMAT = "{level.icon} {message}"
_VERBOSE_FORMAT = "<green>{time:HH:mm:ss.SSS}</green> {level.icon} <cyan>{name}</cyan>:{line} {message}"


def configure_logging(*, verbose: bool = False) -> None:
    """Route loguru to stderr, DEBUG with timestamps when ``verbose``."""
    logger.remove()
    if verbose:
        logger.add(sys.stderr, level="DEBUG", format=_VERBOSE_FORMAT)
    else:
        logger.add(sys.stderr, level="INFO", format=_BRIEF_FORMAT)
