"""Download a URL and save it under the name the renaming settings produce."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from pathlib import Path
from urllib.parse import unquote, urlsplit

import requests

from .rename_ops import move_into_place, sanitize_filename
from .renamer import DownloadEvent, generate_filename
from .settings import RenamerSettings

logger = logging.getLogger(__name__)

FALLBACK_FILENAME = "download"
_CHUNK_SIZE = 64 * 1024

_CD_FILENAME_STAR_RE = re.compile(r"filename\*\s*=\s*([^']*)'[^']*'([^;]+)", re.IGNORECASE)
_CD_FILENAME_RE = re.compile(r'filename\s*=\s*(?:"([^"]*)"|([^;]+))', re.IGNORECASE)


def _basename(name: str) -> str:
    # Servers sometimes send paths; only the last segment is a filename.
    return re.split(r"[\\/]", name.strip())[-1].strip()


def filename_from_response(response: requests.Response, url: str) -> str:
    """Filename from Content-Disposition, else the last URL path segment, else 'download'."""
    disposition = response.headers.get("Content-Disposition") or ""
    star = _CD_FILENAME_STAR_RE.search(disposition)
    if star:
        charset = star.group(1).strip() or "utf-8"
        try:
            name = _basename(unquote(star.group(2).strip().strip('"'), encoding=charset))
        except LookupError:
            name = _basename(unquote(star.group(2).strip().strip('"')))
        if name:
            return name
    plain = _CD_FILENAME_RE.search(disposition)
    if plain:
        name = _basename(plain.group(1) if plain.group(1) is not None else plain.group(2))
        if name:
            return name
    final_url = getattr(response, "url", None) or url
    name = _basename(unquote(urlsplit(final_url).path))
    return name or FALLBACK_FILENAME


def _resolve_name(original: str, url: str, referrer: str, settings: RenamerSettings, now: datetime | None) -> str:
    event = DownloadEvent(filename=original, url=url, referrer=referrer)
    new_name = generate_filename(event, settings, now=now)
    if new_name in ("", ".", ".."):
        # Every placeholder came out empty; a file still needs a name.
        logger.warning("Pattern %r gave an empty name for %s; keeping %s", settings.pattern, url, original)
        return sanitize_filename(original) or FALLBACK_FILENAME
    return new_name


def download_url(
    url: str,
    directory: str | Path,
    *,
    settings: RenamerSettings,
    referrer: str = "",
    dry_run: bool = False,
    timeout_s: float = 60.0,
    session: requests.Session | None = None,
    now: datetime | None = None,
) -> Path:
    """
    Fetch url into directory. The file is streamed to '<name>.part' and moved to
    its resolved name afterwards (with _1, _2 ... on collision). In dry-run mode
    only the headers are requested and the would-be path is returned.
    """
    dest_dir = Path(directory)
    if not dest_dir.is_dir():
        raise NotADirectoryError(f"Not a directory: {dest_dir}")
    headers = {"Referer": referrer} if referrer else {}
    http = session or requests.Session()
    if dry_run:
        resp = http.head(url, headers=headers, timeout=timeout_s, allow_redirects=True)
        resp.raise_for_status()
        original = filename_from_response(resp, url)
        target = dest_dir / _resolve_name(original, url, referrer, settings, now)
        logger.info("Dry-run: would save %s as %s", url, target.name)
        return target

    with http.get(url, headers=headers, timeout=timeout_s, stream=True) as resp:
        resp.raise_for_status()
        original = filename_from_response(resp, url)
        new_name = _resolve_name(original, url, referrer, settings, now)
        partial = dest_dir / f"{new_name}.part"
        try:
            with open(partial, "wb") as f:
                for chunk in resp.iter_content(chunk_size=_CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
            target = move_into_place(partial, new_name)
        except BaseException:
            partial.unlink(missing_ok=True)
            raise
    logger.info("Saved %s as %s", url, target)
    return target
