"""
Sanitization and on-disk rename helpers.

Kept apart from renamer so the collision and cross-device logic lives in one place.
"""

from __future__ import annotations

import errno
import logging
import os
import re
import shutil
from collections.abc import Callable
from pathlib import Path

from .text_utils import split_filename

logger = logging.getLogger(__name__)

# Characters browsers and common filesystems refuse in a filename.
FILENAME_UNSAFE_RE = re.compile(r'[\\/:*?"<>|]')

# Max collision suffixes tried before giving up.
MAX_RENAME_RETRIES = 20


def sanitize_filename(filename: str) -> str:
    """Replace each of \\ / : * ? " < > | with '_'. Nothing else changes."""
    return FILENAME_UNSAFE_RE.sub("_", filename)


def with_collision_suffix(name: str, counter: int) -> str:
    """'report.pdf', 2 -> 'report_2.pdf'."""
    stem, ext = split_filename(name)
    return f"{stem}_{counter}{ext}"


def move_into_place(source: Path, new_name: str) -> Path:
    """
    Move source to new_name in its own directory without overwriting, adding
    _1, _2, ... before the extension on collision. Returns the final path.
    """
    target = source.with_name(new_name)
    counter = 0
    for attempt in range(MAX_RENAME_RETRIES + 1):
        # os.rename replaces existing files on Unix, so check first.
        while target.exists() and counter < MAX_RENAME_RETRIES:
            counter += 1
            target = source.with_name(with_collision_suffix(new_name, counter))
        if target.exists():
            break
        try:
            os.rename(source, target)
            return target
        except FileExistsError:
            counter += 1
            target = source.with_name(with_collision_suffix(new_name, counter))
        except OSError as e:
            if getattr(errno, "ENAMETOOLONG", None) is not None and e.errno == errno.ENAMETOOLONG:
                raise OSError(
                    e.errno,
                    f"Filename too long for filesystem: {target.name!r}. Use a shorter pattern.",
                ) from e
            if e.errno != errno.EXDEV:
                raise
            shutil.copy2(source, target)
            try:
                source.unlink()
            except OSError as unlink_err:
                target.unlink(missing_ok=True)
                raise OSError(
                    f"Cross-filesystem rename: copied to {target}, could not remove source {source}: {unlink_err}"
                ) from unlink_err
            return target
    logger.error(
        "Rename failed after %d attempts (target already exists): %s -> %s",
        MAX_RENAME_RETRIES,
        source,
        new_name,
    )
    raise OSError(
        errno.EEXIST,
        f"Could not rename {source.name}: target exists and collision suffix limit "
        f"({MAX_RENAME_RETRIES}) reached. Move or rename conflicting files and retry.",
    )


def apply_single_rename(
    file_path: Path,
    new_name: str,
    *,
    plan_entries: list[dict[str, str]] | None = None,
    dry_run: bool = False,
    backup_dir: Path | str | None = None,
    on_success: Callable[[Path, Path], None] | None = None,
) -> Path:
    """
    Rename one file within its directory and return the final target.

    plan_entries: record {"old", "new"} and leave the file alone.
    dry_run: compute the target (collision suffix included) without renaming.
    """
    if file_path.name == new_name:
        return file_path
    if plan_entries is not None or dry_run:
        target = file_path.with_name(new_name)
        counter = 0
        while target.exists() and counter < MAX_RENAME_RETRIES:
            counter += 1
            target = file_path.with_name(with_collision_suffix(new_name, counter))
        if plan_entries is not None:
            plan_entries.append({"old": str(file_path), "new": str(target)})
            logger.info("Plan: %s -> %s", file_path.name, target.name)
        return target
    if backup_dir:
        backup_path = Path(backup_dir) / file_path.name
        backup_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(file_path, backup_path)
    target = move_into_place(file_path, new_name)
    if on_success is not None:
        on_success(file_path, target)
    return target
