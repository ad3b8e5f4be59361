"""Utility modules for shared functionality."""

from .retry import DEFAULT_MAX_RETRIES, retry_on_rate_limit
from .templates import render_markdown

__all__ = [
    "DEFAULT_MAX_RETRIES",
    "retry_on_rate_limit",
    "render_markdown",
]
