"""Formatting utilities for KymoButler."""


def format_elapsed(seconds: float) -> str:
    """
    Format elapsed seconds as mm:ss.

    Minutes wrap at 60, matching a clock-style status display.

    Args:
        seconds: Elapsed time in seconds

    Returns:
        Formatted string (e.g., "02:05")
    """
    total = max(0, int(seconds))
    minutes = (total // 60) % 60
    secs = total % 60
    return f"{minutes:02d}:{secs:02d}"


def format_count(count: int, noun: str) -> str:
    """Format a count with a naively pluralized noun (e.g., "3 images")."""
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"
