from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .categories import DEFAULT_CATEGORY_RULES, CategoryRule, load_category_rules, validate_category_rules
from .placeholders import CustomPlaceholder, load_custom_placeholders, validate_custom_placeholders

logger = logging.getLogger(__name__)

DEFAULT_PATTERN = "{date}{originalFilename}{ext}"
DEFAULT_SEPARATOR = "_"
VALID_SEPARATORS = frozenset({"_", "-", ".", " ", ""})

# Settings keys as the browser extension stores them -> field names.
_KEY_ALIASES = {
    "enabled": "enabled",
    "pattern": "pattern",
    "separator": "separator",
    "categoryRules": "category_rules",
    "category_rules": "category_rules",
    "customPlaceholders": "custom_placeholders",
    "custom_placeholders": "custom_placeholders",
}


@dataclass(frozen=True)
class RenamerSettings:
    """Immutable snapshot of the user's renaming settings; one per resolution."""

    enabled: bool = True
    pattern: str = DEFAULT_PATTERN
    separator: str = DEFAULT_SEPARATOR
    category_rules: tuple[CategoryRule, ...] = DEFAULT_CATEGORY_RULES
    custom_placeholders: tuple[CustomPlaceholder, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.separator not in VALID_SEPARATORS:
            raise ValueError(f"separator must be one of {sorted(VALID_SEPARATORS)}, got {self.separator!r}")
        if not self.pattern:
            object.__setattr__(self, "pattern", DEFAULT_PATTERN)
        object.__setattr__(self, "category_rules", tuple(self.category_rules))
        object.__setattr__(self, "custom_placeholders", tuple(self.custom_placeholders))


def _as_bool(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def settings_from_dict(data: dict) -> RenamerSettings:
    """
    Build settings from a flat dict using either the extension's storage keys
    (categoryRules, customPlaceholders) or snake_case names. Missing keys get the
    first-run defaults. Lint problems are logged, not raised.
    """
    raw = {_KEY_ALIASES[k]: v for k, v in (data or {}).items() if k in _KEY_ALIASES}
    kwargs: dict = {}
    if raw.get("enabled") is not None:
        kwargs["enabled"] = _as_bool(raw["enabled"])
    pattern = raw.get("pattern")
    if isinstance(pattern, str) and pattern.strip():
        kwargs["pattern"] = pattern.strip()
    separator = raw.get("separator")
    if separator is not None:
        kwargs["separator"] = str(separator)
    if "category_rules" in raw:
        rules = load_category_rules(raw["category_rules"])
        for problem in validate_category_rules(rules):
            logger.warning("Category rule: %s", problem)
        kwargs["category_rules"] = tuple(rules)
    if "custom_placeholders" in raw:
        definitions = load_custom_placeholders(raw["custom_placeholders"])
        for problem in validate_custom_placeholders(definitions):
            logger.warning("Custom placeholder: %s", problem)
        kwargs["custom_placeholders"] = tuple(definitions)
    return RenamerSettings(**kwargs)


def default_settings_path() -> Path:
    override = os.getenv("DOWNLOAD_RENAMER_CONFIG")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "download-renamer" / "settings.json"


def load_settings_file(path: str | Path) -> dict:
    """Load a JSON or YAML settings file. A missing file means no overrides."""
    p = Path(path)
    if not p.exists():
        logger.debug("Settings file %s not found; using defaults", p)
        return {}
    try:
        raw = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Could not read settings file {p.name!r}: {exc!s}") from exc
    suf = p.suffix.lower()
    if suf == ".json":
        try:
            data = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON in settings file {p.name!r}. {exc!s}") from exc
    elif suf in (".yaml", ".yml"):
        try:
            data = yaml.safe_load(raw) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in settings file {p.name!r}. {exc!s}") from exc
    else:
        raise ValueError(f"Unsupported settings file type {p.suffix!r}; use .json, .yaml or .yml")
    if not isinstance(data, dict):
        raise ValueError(f"Settings file {p.name!r} must contain a mapping, got {type(data).__name__}")
    return data


def load_settings(path: str | Path | None = None) -> RenamerSettings:
    return settings_from_dict(load_settings_file(path or default_settings_path()))
