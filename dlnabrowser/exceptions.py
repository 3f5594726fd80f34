from __future__ import annotations


class DlnaBrowserError(Exception):
    """Base class for errors raised by dlnabrowser."""


class DescriptionError(DlnaBrowserError):
    """A device description document is missing required elements."""

    def __init__(self, location: str, message: str):
        self.location = location
        super().__init__(f"{message} ({location})")


class BrowseError(DlnaBrowserError):
    """A ContentDirectory Browse call failed or returned an unusable response."""

    def __init__(self, message: str, url: str | None = None, error_code: str | None = None):
        self.url = url
        self.error_code = error_code
        super().__init__(message)
