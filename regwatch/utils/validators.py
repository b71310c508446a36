"""URL and checksum validation utilities."""

from __future__ import annotations

import re
from urllib.parse import urlparse


def is_valid_url(url: str) -> bool:
    """Check if a string is a valid HTTP/HTTPS URL."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def is_valid_checksum(checksum: str) -> bool:
    """Check if a string is a valid MD5 hex digest (32 lowercase hex chars)."""
    return bool(re.fullmatch(r"[0-9a-f]{32}", checksum))
