"""
Formatting utilities for the task driver.
"""

from datetime import datetime
from typing import Optional


_MEMORY_UNITS = {
    "b": 1,
    "k": 1024,
    "m": 1024 * 1024,
    "g": 1024 * 1024 * 1024,
}


def format_time(timestamp: Optional[datetime]) -> str:
    """
    Format a datetime as a human-readable string.

    Args:
        timestamp: Datetime to format, or None

    Returns:
        str: Formatted time string, or empty string if timestamp is None
    """
    if timestamp is None:
        return ""

    return timestamp.strftime('%Y-%m-%d %H:%M:%S')


def bytes_to_human(size_bytes: int) -> str:
    """
    Convert bytes to a human-readable string.

    Args:
        size_bytes: Size in bytes

    Returns:
        str: Human-readable size string
    """
    if size_bytes == 0:
        return "0B"

    size_name = ("B", "KB", "MB", "GB", "TB", "PB")
    i = 0
    while size_bytes >= 1024 and i < len(size_name) - 1:
        size_bytes /= 1024
        i += 1

    return f"{size_bytes:.2f}{size_name[i]}"


def parse_memory(memory_str: str) -> int:
    """
    Parse a memory string (e.g., "1g", "512m", "64mb") to bytes.

    Args:
        memory_str: The memory string

    Returns:
        int: Memory in bytes

    Raises:
        ValueError: If the string is not a size
    """
    text = memory_str.strip().lower()
    if not text:
        return 0
    if text.endswith("b") and len(text) > 1 and text[-2] in _MEMORY_UNITS:
        text = text[:-1]

    unit = text[-1]
    if unit in _MEMORY_UNITS:
        number = text[:-1]
        multiplier = _MEMORY_UNITS[unit]
    else:
        number = text
        multiplier = 1

    if not number.isdigit():
        raise ValueError(f"Invalid memory size: {memory_str!r}")
    return int(number) * multiplier
