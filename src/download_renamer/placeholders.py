from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from functools import lru_cache

from .text_utils import BUILTIN_PLACEHOLDERS, EXT_PLACEHOLDER

logger = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(r"\{([^}]+)\}")


@dataclass(frozen=True)
class CustomPlaceholder:
    """A placeholder whose value is regex group 1 of another placeholder's value."""

    name: str
    base: str
    regex: str
    keywords: str = ""

    def keyword_list(self) -> list[str]:
        return [k.strip() for k in (self.keywords or "").split(",") if k.strip()]


def extract_placeholders(pattern: str) -> list[str]:
    """Placeholder names in pattern order (duplicates kept), without {ext}."""
    if not pattern or not isinstance(pattern, str):
        return []
    return [name for name in _PLACEHOLDER_RE.findall(pattern) if name != EXT_PLACEHOLDER]


@lru_cache(maxsize=128)
def _compile(regex: str) -> re.Pattern[str]:
    return re.compile(regex)


def _keyword_gate(source: str, keywords: list[str]) -> bool:
    if not keywords:
        return True
    lowered = source.lower()
    return any(k.lower() in lowered for k in keywords)


def _extract_group(definition: CustomPlaceholder, source: str) -> str:
    try:
        compiled = _compile(definition.regex)
    except (re.error, OverflowError, RecursionError) as exc:
        logger.warning("Invalid custom placeholder regex: %s %r (%s)", definition.name, definition.regex, exc)
        return ""
    if compiled.groups < 1:
        return ""
    match = compiled.search(source)
    if not match:
        return ""
    return match.group(1) or ""


def derive_custom_values(
    definitions: Iterable[CustomPlaceholder],
    values: Mapping[str, str],
) -> dict[str, str]:
    """
    Apply custom placeholder definitions in order and return the extended values.

    Each result is written before the next definition runs, so a definition may
    use an earlier one's name as its base. There is no cycle detection: a
    definition based on itself reads whatever the bag held before it ran.
    """
    resolved = dict(values)
    for definition in definitions:
        name = definition.name or ""
        base = definition.base or ""
        regex = definition.regex or ""
        if not name or not base or not regex:
            continue
        source = resolved.get(base) or ""
        if not source:
            resolved[name] = ""
            continue
        if not _keyword_gate(source, definition.keyword_list()):
            resolved[name] = ""
            continue
        resolved[name] = _extract_group(definition, str(source))
    return resolved


def assemble_filename(ordered_placeholders: Iterable[str], values: Mapping[str, str], separator: str) -> str:
    parts = []
    for name in ordered_placeholders:
        value = values.get(name)
        parts.append("" if value is None else str(value))
    if separator == "":
        joined = "".join(parts)
    else:
        joined = separator.join(p for p in parts if p != "")
    return joined + (values.get(EXT_PLACEHOLDER) or "")


def process_pattern(pattern: str, values: Mapping[str, str], separator: str) -> str:
    return assemble_filename(extract_placeholders(pattern), values, separator)


def load_custom_placeholders(entries: object) -> list[CustomPlaceholder]:
    """Build definitions from raw settings entries, dropping rows without name, base or regex."""
    if not isinstance(entries, list):
        if entries is not None:
            logger.warning("customPlaceholders must be a list, got %s; ignoring", type(entries).__name__)
        return []
    definitions: list[CustomPlaceholder] = []
    for entry in entries:
        if isinstance(entry, CustomPlaceholder):
            definitions.append(entry)
            continue
        if not isinstance(entry, dict):
            continue
        name = str(entry.get("name") or "").strip()
        base = str(entry.get("base") or "").strip()
        regex = str(entry.get("regex") or "").strip()
        keywords = entry.get("keywords")
        keywords = "" if keywords is None else str(keywords)
        if name and base and regex:
            definitions.append(CustomPlaceholder(name=name, base=base, regex=regex, keywords=keywords))
    return definitions


def validate_custom_placeholders(definitions: Iterable[CustomPlaceholder]) -> list[str]:
    """Lint definitions. Resolution stays permissive whatever this reports."""
    problems: list[str] = []
    known = set(BUILTIN_PLACEHOLDERS) | {EXT_PLACEHOLDER}
    for definition in definitions:
        if definition.name in BUILTIN_PLACEHOLDERS or definition.name == EXT_PLACEHOLDER:
            problems.append(f"Custom placeholder {definition.name!r} shadows a built-in placeholder")
        if definition.base not in known:
            problems.append(
                f"Custom placeholder {definition.name!r} is based on {definition.base!r}, "
                "which is neither built-in nor defined earlier"
            )
        try:
            groups = re.compile(definition.regex).groups
        except (re.error, OverflowError, RecursionError) as exc:
            problems.append(f"Custom placeholder {definition.name!r} has an invalid regex: {exc}")
        else:
            if groups != 1:
                problems.append(
                    f"Custom placeholder {definition.name!r} regex should have exactly one capture group "
                    f"(has {groups}); group 1 is used"
                )
        known.add(definition.name)
    return problems
