from __future__ import annotations

import csv
import fnmatch
import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from .categories import default_category_rules, get_category_for_file
from .placeholders import derive_custom_values, process_pattern
from .rename_ops import apply_single_rename, sanitize_filename
from .settings import RenamerSettings
from .text_utils import extract_domain, format_date, format_time, format_timestamp, split_filename

logger = logging.getLogger(__name__)

# Suffixes browsers and download managers use while a file is still arriving.
IN_PROGRESS_SUFFIXES = frozenset({".crdownload", ".part", ".partial", ".download", ".opdownload", ".tmp"})


@dataclass(frozen=True)
class DownloadEvent:
    filename: str
    url: str = ""
    referrer: str = ""


def build_placeholder_values(event: DownloadEvent, settings: RenamerSettings, now: datetime) -> dict[str, str]:
    """Built-in placeholder values for one download."""
    name, ext = split_filename(event.filename)
    category = get_category_for_file(event.filename, default_category_rules(settings.category_rules))
    logger.debug("File category determined: %s -> %s", event.filename, category)
    return {
        "domain": extract_domain(event.url),
        "timestamp": format_timestamp(now),
        "date": format_date(now),
        "time": format_time(now),
        "originalFilename": name,
        "category": category,
        "sourceUrl": event.url or "",
        "tabUrl": event.referrer or "",
        "ext": ext,
    }


def generate_filename(event: DownloadEvent, settings: RenamerSettings, *, now: datetime | None = None) -> str:
    """
    Resolve the new filename for a download. Never raises: when renaming is
    disabled or anything goes wrong the original filename comes back unchanged.
    """
    if not settings.enabled:
        return event.filename
    try:
        values = build_placeholder_values(event, settings, now or datetime.now())
        values = derive_custom_values(settings.custom_placeholders, values)
        new_filename = sanitize_filename(process_pattern(settings.pattern, values, settings.separator))
    except Exception:
        logger.exception("Error processing download %r; keeping original filename", event.filename)
        return event.filename
    logger.info("Renaming: %s -> %s", event.filename, new_filename)
    return new_filename


@dataclass(frozen=True)
class RenamerConfig:
    dry_run: bool = False
    # Recursive: collect files from subdirectories (max_depth 0 = unlimited).
    recursive: bool = False
    max_depth: int = 0
    # fnmatch patterns for the basename. None = no filter.
    include_patterns: list[str] | None = None
    exclude_patterns: list[str] | None = None
    # Copy each file here before renaming.
    backup_dir: str | Path | None = None
    # Append old_path\tnew_path after each rename.
    rename_log_path: str | Path | None = None
    # Write the rename plan (JSON or .csv) without applying it.
    plan_file_path: str | Path | None = None
    # Download metadata a directory cannot supply itself ({sourceUrl}, {domain}, {tabUrl}).
    source_url: str = ""
    referrer: str = ""


@dataclass
class RenameSummary:
    renamed: int = 0
    skipped: int = 0
    failed: int = 0
    # Final path of every file handled (renamed or left as is).
    targets: list[Path] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.renamed + self.skipped + self.failed


def _matches_patterns(name: str, include: list[str] | None, exclude: list[str] | None) -> bool:
    if include and not any(fnmatch.fnmatch(name, p) for p in include):
        return False
    if exclude and any(fnmatch.fnmatch(name, p) for p in exclude):
        return False
    return True


def _is_candidate(p: Path) -> bool:
    return p.is_file() and not p.name.startswith(".") and p.suffix.lower() not in IN_PROGRESS_SUFFIXES


def collect_download_files(
    directory: Path,
    *,
    recursive: bool = False,
    max_depth: int = 0,
    include_patterns: list[str] | None = None,
    exclude_patterns: list[str] | None = None,
) -> list[Path]:
    """Finished, non-hidden files in directory, filtered by include/exclude patterns."""
    if recursive:
        candidates = []
        for p in directory.rglob("*"):
            if not _is_candidate(p):
                continue
            if max_depth > 0 and len(p.relative_to(directory).parts) > max_depth:
                continue
            candidates.append(p)
    else:
        candidates = [p for p in directory.iterdir() if _is_candidate(p)]
    return sorted(p for p in candidates if _matches_patterns(p.name, include_patterns, exclude_patterns))


def _write_json_or_csv(path: Path, rows: list[dict], csv_fieldnames: list[str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() == ".csv":
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=csv_fieldnames)
            writer.writeheader()
            writer.writerows(rows)
    else:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(rows, f, ensure_ascii=False, indent=2)


def _append_rename_log(log_path: str | Path, old: Path, new: Path) -> None:
    p = Path(log_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "a", encoding="utf-8") as f:
        f.write(f"{old}\t{new}\n")


def rename_downloads_in_directory(
    directory: str | Path,
    *,
    settings: RenamerSettings,
    config: RenamerConfig,
    files_override: list[Path] | None = None,
    now: datetime | None = None,
) -> RenameSummary:
    """Treat every finished file in directory as a download and rename it per settings."""
    dir_str = str(directory).strip()
    if not dir_str:
        raise ValueError("Directory path must be non-empty. Use --dir.")
    path = Path(dir_str)
    if not path.exists():
        raise FileNotFoundError(f"Directory does not exist: {path}")
    if not path.is_dir():
        raise NotADirectoryError(f"Not a directory: {path}")
    path = path.resolve()

    if files_override is not None:
        files = [p for p in files_override if _is_candidate(p)]
    else:
        files = collect_download_files(
            path,
            recursive=config.recursive,
            max_depth=config.max_depth,
            include_patterns=config.include_patterns,
            exclude_patterns=config.exclude_patterns,
        )
    if not settings.enabled:
        logger.info("Renaming is disabled; files keep their names.")

    summary = RenameSummary()
    plan_entries: list[dict[str, str]] | None = [] if config.plan_file_path else None

    def _on_rename_success(old: Path, new: Path) -> None:
        if config.rename_log_path:
            _append_rename_log(config.rename_log_path, old, new)

    for i, file_path in enumerate(files):
        logger.info("Processing %s/%s: %s", i + 1, len(files), file_path)
        event = DownloadEvent(filename=file_path.name, url=config.source_url, referrer=config.referrer)
        new_name = generate_filename(event, settings, now=now)
        if not new_name or new_name == file_path.name:
            summary.skipped += 1
            summary.targets.append(file_path)
            continue
        try:
            target = apply_single_rename(
                file_path,
                new_name,
                plan_entries=plan_entries,
                dry_run=config.dry_run,
                backup_dir=config.backup_dir,
                on_success=_on_rename_success,
            )
        except Exception as e:
            logger.exception("Failed to rename %s: %s", file_path, e)
            summary.failed += 1
            continue
        if config.dry_run:
            logger.info("Dry-run: would rename '%s' to '%s'", file_path.name, target.name)
        elif plan_entries is None:
            logger.info("Renamed '%s' to '%s'", file_path.name, target.name)
        summary.renamed += 1
        summary.targets.append(target)

    if config.plan_file_path and plan_entries:
        plan_path = Path(config.plan_file_path)
        _write_json_or_csv(plan_path, plan_entries, ["old", "new"])
        logger.info("Wrote rename plan (%s entries) to %s", len(plan_entries), plan_path)

    if files:
        logger.info(
            "Summary: %s file(s) processed, %s renamed, %s skipped, %s failed",
            summary.processed,
            summary.renamed,
            summary.skipped,
            summary.failed,
        )
    else:
        logger.info("No files found in %s", path)
    return summary


def run_watch_loop(
    directory: str | Path,
    *,
    settings: RenamerSettings,
    config: RenamerConfig,
    interval_seconds: float = 5.0,
    settle_seconds: float = 2.0,
    process_existing: bool = False,
    max_iterations: int | None = None,
) -> None:
    """
    Poll directory and rename files as they finish downloading. A file is handled
    once its size and mtime have stayed the same for settle_seconds. Files this
    loop produced, and files present at start unless process_existing, are left alone.
    """
    path = Path(directory).resolve()
    if not path.is_dir():
        raise NotADirectoryError(f"Not a directory: {path}")

    def _scan() -> list[Path]:
        return collect_download_files(
            path,
            recursive=config.recursive,
            max_depth=config.max_depth,
            include_patterns=config.include_patterns,
            exclude_patterns=config.exclude_patterns,
        )

    handled: set[Path] = set() if process_existing else set(_scan())
    signatures: dict[Path, tuple[int, float]] = {}
    stable_since: dict[Path, float] = {}
    logger.info("Watch mode: scanning %s every %.1fs (Ctrl+C to stop)", path, interval_seconds)
    iteration = 0
    while max_iterations is None or iteration < max_iterations:
        iteration += 1
        try:
            clock = time.monotonic()
            files = _scan()
            ready: list[Path] = []
            for p in files:
                if p in handled:
                    continue
                try:
                    st = p.stat()
                except OSError:
                    continue
                sig = (st.st_size, st.st_mtime)
                if signatures.get(p) != sig:
                    signatures[p] = sig
                    stable_since[p] = clock
                if clock - stable_since[p] >= settle_seconds:
                    ready.append(p)
            current = set(files)
            for p in [p for p in signatures if p not in current]:
                signatures.pop(p, None)
                stable_since.pop(p, None)
            if ready:
                summary = rename_downloads_in_directory(path, settings=settings, config=config, files_override=ready)
                handled.update(ready)
                handled.update(summary.targets)
                for p in ready:
                    signatures.pop(p, None)
                    stable_since.pop(p, None)
            time.sleep(interval_seconds)
        except KeyboardInterrupt:
            logger.info("Watch stopped by user")
            break
        except Exception as exc:
            logger.exception("Watch iteration failed: %s", exc)
            time.sleep(interval_seconds)
