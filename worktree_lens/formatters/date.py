"""Date and time formatting utilities."""

from datetime import datetime


def format_timestamp(timestamp: int) -> str:
    """
    Format a Unix timestamp as local YYYY-MM-DD HH:MM.

    Args:
        timestamp: Seconds since the epoch

    Returns:
        Formatted date string, or "-" for a missing timestamp
    """
    if not timestamp or timestamp <= 0:
        return "-"
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M")


def format_age(seconds: int) -> str:
    """
    Format an age in seconds using the largest sensible unit.

    Args:
        seconds: Age in seconds

    Returns:
        Formatted age string such as "45s", "12m", "3h" or "2d"
    """
    seconds = max(0, int(seconds))
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m"
    if seconds < 86400:
        return f"{seconds // 3600}h"
    return f"{seconds // 86400}d"
