from __future__ import annotations

from .browser import MediaBrowser
from .exceptions import BrowseError, DescriptionError, DlnaBrowserError
from .settings import Settings, settings

__all__ = [
    "BrowseError",
    "DescriptionError",
    "DlnaBrowserError",
    "MediaBrowser",
    "Settings",
    "settings",
]
