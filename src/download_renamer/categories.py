from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass

from .text_utils import split_filename

logger = logging.getLogger(__name__)

UNKNOWN_CATEGORY = "unknown"

_EXTENSIONS_FIELD_RE = re.compile(r"^[a-zA-Z0-9]+(,[a-zA-Z0-9]+)*$")
_MIN_NAME_CHARS = 2
_MAX_NAME_CHARS = 50


@dataclass(frozen=True)
class CategoryRule:
    name: str
    extensions: str

    def extension_list(self) -> list[str]:
        return [e.strip().lower() for e in (self.extensions or "").split(",") if e.strip()]


DEFAULT_CATEGORY_RULES: tuple[CategoryRule, ...] = (
    CategoryRule("Documents", "pdf,doc,docx,odt,rtf,txt,md"),
    CategoryRule("Spreadsheets", "xls,xlsx,csv,ods,xml"),
    CategoryRule("Presentations", "ppt,pptx,odp"),
    CategoryRule("Images", "jpg,jpeg,png,gif,bmp,svg,webp,heic,heif"),
    CategoryRule("Design & RAW", "psd,ai,eps,indd,sketch,fig,cr2,nef,arw,dng"),
    CategoryRule("Audio", "mp3,wav,aac,flac,m4a,ogg"),
    CategoryRule("Videos", "mp4,mov,avi,mkv,wmv,flv,webm"),
    CategoryRule("Archives", "zip,rar,7z,tar,gz,bz2"),
    CategoryRule("Code", "html,css,js,json,py,java,cpp,sh,ps1"),
    CategoryRule("Installers", "exe,dmg,pkg,msi,deb,app"),
    CategoryRule("Fonts", "ttf,otf,woff,woff2"),
)


def file_extension(filename: str) -> str:
    """Lower-cased extension without the dot ('' if there is none)."""
    _, ext = split_filename(filename or "")
    return ext[1:].lower() if ext.startswith(".") else ext.lower()


def get_category_for_file(filename: str, rules: Iterable[CategoryRule] | None) -> str:
    """
    Return the name of the first rule whose extension list contains the file's
    extension. Rules without a name or extensions are ignored. Falls back to
    'unknown' when the file has no extension, nothing matches or rules is unusable.
    """
    extension = file_extension(filename)
    if not extension:
        return UNKNOWN_CATEGORY
    if not rules or isinstance(rules, (str, bytes)):
        return UNKNOWN_CATEGORY
    for rule in rules:
        if not isinstance(rule, CategoryRule) or not rule.name or not rule.extensions:
            continue
        if extension in rule.extension_list():
            return rule.name
    return UNKNOWN_CATEGORY


def default_category_rules(rules: Iterable[CategoryRule] | None) -> tuple[CategoryRule, ...]:
    """User rules if there are any, otherwise the built-in set."""
    user_rules = tuple(rules or ())
    return user_rules if user_rules else DEFAULT_CATEGORY_RULES


def load_category_rules(entries: object) -> list[CategoryRule]:
    """Build rules from raw settings entries; incomplete rows are dropped."""
    if not isinstance(entries, list):
        if entries is not None:
            logger.warning("categoryRules must be a list, got %s; ignoring", type(entries).__name__)
        return []
    rules: list[CategoryRule] = []
    for entry in entries:
        if isinstance(entry, CategoryRule):
            rules.append(entry)
            continue
        if not isinstance(entry, dict):
            continue
        name = entry.get("name")
        extensions = entry.get("extensions")
        if isinstance(extensions, list):
            extensions = ",".join(str(e) for e in extensions)
        if not isinstance(name, str) or not isinstance(extensions, str):
            continue
        name = name.strip()
        extensions = extensions.strip()
        if name and extensions:
            rules.append(CategoryRule(name=name, extensions=extensions))
    return rules


def validate_category_rules(rules: Iterable[CategoryRule]) -> list[str]:
    problems: list[str] = []
    seen: set[str] = set()
    for rule in rules:
        name = rule.name.strip()
        if not _MIN_NAME_CHARS <= len(name) <= _MAX_NAME_CHARS:
            problems.append(
                f"Category name {name!r} must be {_MIN_NAME_CHARS}-{_MAX_NAME_CHARS} characters long"
            )
        key = name.lower()
        if key in seen:
            problems.append(f"Duplicate category name {name!r}")
        seen.add(key)
        if not _EXTENSIONS_FIELD_RE.match(rule.extensions.strip()):
            problems.append(
                f"Extensions for {name!r} must be comma-separated without dots or spaces, got {rule.extensions!r}"
            )
    return problems
