"""Utility modules for Huella.

Provides:
- logger: get_logger for logging
"""

from huella.utils.logger import get_logger

__all__ = [
    "get_logger",
]
