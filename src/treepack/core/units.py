"""Human-readable byte sizes."""

from __future__ import annotations

_PREFIXES = "KMGTPE"


def format_bytes(count: int) -> str:
    """Format a byte count with binary (1024-based) units.

    >>> format_bytes(512)
    '512 B'
    >>> format_bytes(1536)
    '1.5 KiB'
    """
    if count < 1024:
        return f"{count} B"
    div, exp = 1024, 0
    n = count // 1024
    while n >= 1024 and exp < len(_PREFIXES) - 1:
        div *= 1024
        exp += 1
        n //= 1024
    return f"{count / div:.1f} {_PREFIXES[exp]}iB"
