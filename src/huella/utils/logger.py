"""Minimal logging utilities for Huella.

Provides a simple get_logger function that wraps the standard library logging.

Example:
    >>> from huella.utils.logger import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.debug("stillInCode check fired")
"""

from __future__ import annotations

import logging


def get_logger(name: str) -> logging.Logger:
    """Get a logger for the given name.

    Returns a standard library logger with the "huella." prefix.

    Args:
        name: Logger name (typically __name__)

    Returns:
        logging.Logger instance

    Example:
        >>> logger = get_logger("survival")
        >>> logger.name
        'huella.survival'
    """
    if not (name == "huella" or name.startswith("huella.")):
        name = f"huella.{name}"
    return logging.getLogger(name)
