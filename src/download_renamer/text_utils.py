from __future__ import annotations

import logging
from datetime import datetime
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

# Name -> description, in the order the settings page lists them.
BUILTIN_PLACEHOLDERS = {
    "domain": "The domain name of the download source",
    "timestamp": "Full date and time (YYYYMMDD-HHMMSS)",
    "date": "Date only (YYYYMMDD)",
    "time": "Time only (HHMMSS)",
    "originalFilename": "The original filename without extension",
    "category": "Auto-detected file category (Documents, Images, etc.)",
    "sourceUrl": "Full download URL",
    "tabUrl": "Referrer/tab URL when available",
}

# Always appended after the joined values, never part of the join sequence.
EXT_PLACEHOLDER = "ext"


def split_filename(filename: str) -> tuple[str, str]:
    """
    Split a filename at its last dot into (name, ext). ext keeps the dot.
    A leading dot alone (".bashrc") does not start an extension.
    """
    if not filename:
        return ("", "")
    idx = filename.rfind(".")
    if idx <= 0:
        return (filename, "")
    return (filename[:idx], filename[idx:])


def extract_domain(url: str | None) -> str:
    """
    Hostname of url, lowercased. A missing, relative or malformed URL gives
    'unknown'; an absolute URL without a host (blob:, data:, file:///) gives ''.
    """
    if not url or not url.strip():
        return "unknown"
    try:
        parts = urlsplit(url.strip())
        host = parts.hostname
    except ValueError as exc:
        logger.debug("Could not parse URL %r: %s", url, exc)
        return "unknown"
    if not parts.scheme:
        return "unknown"
    return host or ""


def format_date(now: datetime) -> str:
    return now.strftime("%Y%m%d")


def format_time(now: datetime) -> str:
    return now.strftime("%H%M%S")


def format_timestamp(now: datetime) -> str:
    return f"{format_date(now)}-{format_time(now)}"
