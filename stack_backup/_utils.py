import logging
from datetime import datetime, timezone

logger = logging.getLogger("stack-backup")

_SIZE_UNITS = ["B", "KB", "MB", "GB"]


def format_bytes(size: int) -> str:
    """Format a byte count in human units, e.g. 1536 -> "1.5 KB"."""
    if size <= 0:
        return "0 B"
    index = 0
    while index < len(_SIZE_UNITS) - 1 and size >= 1024 ** (index + 1):
        index += 1
    value = round(size / 1024 ** index, 1)
    if value == int(value):
        value = int(value)
    return f"{value} {_SIZE_UNITS[index]}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_timestamp() -> str:
    """Second-granularity timestamp safe for filenames, e.g. 2024-05-01T03-00-00."""
    return utc_now().strftime("%Y-%m-%dT%H-%M-%S")
