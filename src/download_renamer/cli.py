from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

import requests

from .fetch import download_url
from .logging_utils import DEFAULT_LOG_FILE, setup_logging
from .renamer import (
    DownloadEvent,
    RenamerConfig,
    generate_filename,
    rename_downloads_in_directory,
    run_watch_loop,
)
from .settings import (
    DEFAULT_SEPARATOR,
    RenamerSettings,
    default_settings_path,
    load_settings_file,
    settings_from_dict,
)

logger = logging.getLogger(__name__)

# --separator accepts names for values that are awkward to type.
_SEPARATOR_NAMES = {"underscore": "_", "dash": "-", "dot": ".", "space": " ", "none": ""}


def _add_target_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--dir",
        dest="dirs",
        action="append",
        default=None,
        metavar="DIR",
        help="Downloads directory to rename files in. Can be repeated. With --url: where to save.",
    )
    p.add_argument(
        "--file",
        dest="single_file",
        default=None,
        metavar="PATH",
        help="Rename a single file. Overrides --dir.",
    )
    p.add_argument(
        "--url",
        dest="url",
        default=None,
        metavar="URL",
        help="Download URL into --dir (default: current directory) under the resolved name.",
    )
    p.add_argument(
        "--preview",
        dest="preview",
        default=None,
        metavar="NAME",
        help="Print the name a download called NAME would get and exit.",
    )
    p.add_argument(
        "--watch",
        dest="watch",
        action="store_true",
        help="Watch the directory and rename new downloads as they finish.",
    )
    p.add_argument(
        "--watch-interval",
        dest="watch_interval",
        type=float,
        default=5.0,
        metavar="SEC",
        help="Seconds between watch scans (default 5).",
    )
    p.add_argument(
        "--settle-seconds",
        dest="settle_seconds",
        type=float,
        default=2.0,
        metavar="SEC",
        help="A file must stay unchanged this long before it is renamed (default 2).",
    )
    p.add_argument(
        "--process-existing",
        dest="process_existing",
        action="store_true",
        help="With --watch, also rename files already present at start.",
    )


def _add_pattern_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--config",
        dest="config",
        default=None,
        metavar="FILE",
        help="Settings file (JSON or YAML). Default: env DOWNLOAD_RENAMER_CONFIG or "
        "~/.config/download-renamer/settings.json. Options below override it.",
    )
    p.add_argument(
        "--pattern",
        dest="pattern",
        default=None,
        metavar="PATTERN",
        help="Filename pattern, e.g. '{category}{date}{originalFilename}{ext}'. Placeholders: {domain}, "
        "{timestamp}, {date}, {time}, {originalFilename}, {category}, {sourceUrl}, {tabUrl}, {ext} "
        "and custom placeholders from the settings file.",
    )
    p.add_argument(
        "--separator",
        dest="separator",
        default=None,
        metavar="SEP",
        help=f"Separator between values: '_', '-', '.', ' ', '' or one of {sorted(_SEPARATOR_NAMES)} "
        f"(default {DEFAULT_SEPARATOR!r}).",
    )
    p.add_argument(
        "--disable",
        dest="disable",
        action="store_true",
        help="Keep original filenames (same as enabled: false in the settings file).",
    )
    p.add_argument(
        "--source-url",
        dest="source_url",
        default="",
        metavar="URL",
        help="Download URL to assume for {sourceUrl} and {domain} when renaming files on disk.",
    )
    p.add_argument(
        "--referrer",
        dest="referrer",
        default="",
        metavar="URL",
        help="Referring page for {tabUrl}; also sent as Referer with --url.",
    )


def _add_output_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--dry-run", dest="dry_run", action="store_true", help="Show what would be renamed.")
    p.add_argument(
        "--plan-file",
        dest="plan_file_path",
        default=None,
        metavar="FILE",
        help="Write rename plan (old,new) to FILE without applying. JSON or .csv.",
    )
    p.add_argument(
        "--rename-log",
        dest="rename_log_path",
        default=None,
        metavar="FILE",
        help="Append old_path\\tnew_path to FILE after each rename.",
    )
    p.add_argument(
        "--backup-dir",
        dest="backup_dir",
        default=None,
        metavar="DIR",
        help="Copy each file to DIR before renaming.",
    )
    p.add_argument("--recursive", "-r", dest="recursive", action="store_true", help="Include subdirectories.")
    p.add_argument(
        "--max-depth",
        dest="max_depth",
        type=int,
        default=0,
        metavar="N",
        help="Max directory depth when --recursive (0 = unlimited).",
    )
    p.add_argument(
        "--include",
        dest="include_patterns",
        action="append",
        default=None,
        metavar="PATTERN",
        help="Only files matching fnmatch PATTERN (e.g. *.pdf). Can be repeated.",
    )
    p.add_argument(
        "--exclude",
        dest="exclude_patterns",
        action="append",
        default=None,
        metavar="PATTERN",
        help="Skip files matching fnmatch PATTERN. Can be repeated.",
    )
    p.add_argument(
        "--timeout",
        dest="timeout_s",
        type=float,
        default=60.0,
        metavar="SEC",
        help="HTTP timeout for --url (default 60).",
    )


def _add_logging_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--quiet", dest="quiet", action="store_true", help="Log level WARNING. Overridden by --verbose.")
    p.add_argument("--verbose", dest="verbose", action="store_true", help="Log level DEBUG.")
    p.add_argument(
        "--log-file",
        dest="log_file",
        default=None,
        metavar="PATH",
        help="Log file path (default: env DOWNLOAD_RENAMER_LOG_FILE or download-renamer.log)",
    )
    p.add_argument("--no-log-file", dest="no_log_file", action="store_true", help="Log to the console only.")
    p.add_argument(
        "--log-level",
        dest="log_level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: env DOWNLOAD_RENAMER_LOG_LEVEL or INFO). Overridden by --verbose/--quiet.",
    )


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Rename downloaded files from a placeholder pattern.")
    _add_target_args(p.add_argument_group("Targets"))
    _add_pattern_args(p.add_argument_group("Pattern and settings"))
    _add_output_args(p.add_argument_group("Output"))
    _add_logging_args(p.add_argument_group("Logging"))
    return p


def _resolve_log_config(args: argparse.Namespace) -> tuple[str | None, int]:
    if args.no_log_file:
        log_file = None
    else:
        log_file = args.log_file or os.environ.get("DOWNLOAD_RENAMER_LOG_FILE") or DEFAULT_LOG_FILE
    if args.verbose:
        log_level = logging.DEBUG
    elif args.quiet:
        log_level = logging.WARNING
    elif args.log_level:
        log_level = getattr(logging, args.log_level)
    else:
        env_level = os.environ.get("DOWNLOAD_RENAMER_LOG_LEVEL", "INFO").upper()
        log_level = getattr(logging, env_level, logging.INFO)
    return (log_file, log_level)


def _build_settings_from_args(args: argparse.Namespace) -> RenamerSettings:
    """Settings file first, then command-line overrides."""
    path = Path(args.config) if args.config else default_settings_path()
    if args.config and not path.exists():
        raise SystemExit(f"Error: settings file not found: {path}")
    try:
        data = dict(load_settings_file(path))
        if args.pattern is not None:
            data["pattern"] = args.pattern
        if args.separator is not None:
            data["separator"] = _SEPARATOR_NAMES.get(args.separator.lower(), args.separator)
        if args.disable:
            data["enabled"] = False
        return settings_from_dict(data)
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc


def _build_config_from_args(args: argparse.Namespace) -> RenamerConfig:
    return RenamerConfig(
        dry_run=args.dry_run,
        recursive=args.recursive,
        max_depth=max(0, args.max_depth),
        include_patterns=args.include_patterns,
        exclude_patterns=args.exclude_patterns,
        backup_dir=args.backup_dir or None,
        rename_log_path=args.rename_log_path or None,
        plan_file_path=args.plan_file_path or None,
        source_url=args.source_url or "",
        referrer=args.referrer or "",
    )


def _resolve_dirs(args: argparse.Namespace) -> tuple[list[str], Path | None]:
    """Directories to process and an optional single file. Raises SystemExit on error."""
    single_file = None
    dirs = list(args.dirs or [])
    if args.single_file:
        single_file = Path(args.single_file)
        if not single_file.is_file():
            raise SystemExit(f"Error: --file must be an existing file: {single_file}")
        dirs = [str(single_file.resolve().parent)]
    if args.dirs is not None and not any((d or "").strip() for d in dirs):
        raise SystemExit("Error: --dir must be non-empty.")
    dirs = [d.strip() for d in dirs if (d or "").strip()]
    if not dirs:
        raise SystemExit("Error: at least one --dir, --file, --url or --preview is required.")
    return (dirs, single_file)


def _run(args: argparse.Namespace, settings: RenamerSettings, config: RenamerConfig) -> None:
    """Dispatch to preview, fetch, watch or directory rename. Raises SystemExit on errors."""
    if args.preview is not None:
        event = DownloadEvent(filename=args.preview, url=config.source_url, referrer=config.referrer)
        print(generate_filename(event, settings))
        return
    try:
        if args.url:
            dest = (args.dirs or ["."])[0]
            target = download_url(
                args.url,
                dest,
                settings=settings,
                referrer=config.referrer,
                dry_run=config.dry_run,
                timeout_s=args.timeout_s,
            )
            print(target)
            return
        dirs, single_file = _resolve_dirs(args)
        if args.watch:
            if len(dirs) > 1 or single_file is not None:
                raise SystemExit("Error: --watch supports only one directory. Use a single --dir.")
            run_watch_loop(
                dirs[0],
                settings=settings,
                config=config,
                interval_seconds=args.watch_interval,
                settle_seconds=args.settle_seconds,
                process_existing=args.process_existing,
            )
            return
        for directory in dirs:
            files_override = [single_file.resolve()] if single_file is not None else None
            summary = rename_downloads_in_directory(
                directory, settings=settings, config=config, files_override=files_override
            )
            print(
                f"Processed {summary.processed}, renamed {summary.renamed}, "
                f"skipped {summary.skipped}, failed {summary.failed}.",
                file=sys.stderr,
            )
    except requests.RequestException as exc:
        raise SystemExit(f"Download failed: {exc!s}") from exc
    except (FileNotFoundError, NotADirectoryError, OSError) as exc:
        raise SystemExit(str(exc)) from exc
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    log_file, log_level = _resolve_log_config(args)
    setup_logging(log_file=log_file, level=log_level)

    settings = _build_settings_from_args(args)
    config = _build_config_from_args(args)
    _run(args, settings, config)


if __name__ == "__main__":
    main()
