"""Rename downloaded files from a placeholder pattern."""

from .renamer import DownloadEvent, generate_filename
from .settings import RenamerSettings, load_settings, settings_from_dict

__all__ = [
    "DownloadEvent",
    "RenamerSettings",
    "generate_filename",
    "load_settings",
    "settings_from_dict",
]
