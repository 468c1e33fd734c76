"""
Utility functions for the trade alert bot.

This module provides shared helper utilities used across the codebase.
All functions are pure helpers with no domain logic.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

# Configure module logger
logger = logging.getLogger(__name__)


def current_utc_timestamp() -> str:
    """
    Get current UTC timestamp as ISO 8601 string.

    Returns:
        ISO 8601 formatted timestamp string (e.g., "2024-01-15T10:30:45.123456+00:00")
    """
    return datetime.now(timezone.utc).isoformat()


def safe_float(value: Any, default: float = 0.0) -> float:
    """
    Safely convert a value to float with a default fallback.

    Handles None, strings, integers, and floats. Returns default on failure.

    Args:
        value: Value to convert (string, int, float, or None)
        default: Default value if conversion fails (default: 0.0)

    Returns:
        Float value or default if conversion fails
    """
    if value is None:
        return default

    if isinstance(value, (int, float)):
        return float(value)

    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return default

    return default


def format_number(value: float) -> str:
    """Format with thousands separators and exactly two decimals (e.g. "1,234.50")."""
    return f"{value:,.2f}"


def format_cents(price: float) -> str:
    """Format a 0-1 price as whole cents (e.g. 0.655 -> "66¢")."""
    return f"{round(price * 100)}¢"


def format_percentage(value: float, decimals: int = 1) -> str:
    """
    Format a float value as a percentage string.

    Args:
        value: Percentage value (0.0 to 100.0)
        decimals: Number of decimal places (default: 1)

    Returns:
        Formatted percentage string (e.g., "65.5%")
    """
    return f"{value:.{decimals}f}%"


async def retry_async(
    func: Callable[..., Awaitable[bool]],
    *args: Any,
    max_attempts: int = 1,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
) -> bool:
    """
    Await a delivery function until it reports success.

    The function is expected to return True on success and False on a
    handled failure. Exceptions are not caught here.

    Args:
        func: Coroutine function returning a success flag
        *args: Positional arguments passed to func
        max_attempts: Total attempts including the first (default: 1, no retry)
        initial_delay: Delay in seconds before the second attempt (default: 1.0)
        max_delay: Maximum delay in seconds between attempts (default: 60.0)
        exponential_base: Base for exponential backoff calculation (default: 2.0)

    Returns:
        True if any attempt succeeded, False otherwise
    """
    delay = initial_delay

    for attempt in range(1, max_attempts + 1):
        if await func(*args):
            return True

        if attempt < max_attempts:
            logger.warning(
                f"{getattr(func, '__name__', 'call')} failed (attempt {attempt}/{max_attempts}). "
                f"Retrying in {delay:.2f}s..."
            )
            await asyncio.sleep(delay)
            delay = min(delay * exponential_base, max_delay)

    if max_attempts > 1:
        logger.error(f"{getattr(func, '__name__', 'call')} failed after {max_attempts} attempts")
    return False
