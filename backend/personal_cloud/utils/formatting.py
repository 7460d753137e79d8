from typing import Optional

_SIZE_UNITS = ("B", "KB", "MB", "GB")


def format_size(num_bytes: Optional[int]) -> str:
    """Human readable size: 1536 -> '1.5 KB', 10 GiB -> '10 GB'."""
    size = float(num_bytes or 0)
    order = 0
    while size >= 1024 and order < len(_SIZE_UNITS) - 1:
        order += 1
        size /= 1024
    text = f"{size:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_SIZE_UNITS[order]}"
