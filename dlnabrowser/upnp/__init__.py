from __future__ import annotations

from .content_directory import (
    Container,
    ContentDirectoryClient,
    ContentEntry,
    EntryKind,
    Item,
    decode_browse_response,
)
from .device import Device, DeviceRegistry, Icon, Service, parse_description
from .fetcher import DescriptionFetcher, DeviceListener

__all__ = [
    "Container",
    "ContentDirectoryClient",
    "ContentEntry",
    "DescriptionFetcher",
    "Device",
    "DeviceListener",
    "DeviceRegistry",
    "EntryKind",
    "Icon",
    "Item",
    "Service",
    "decode_browse_response",
    "parse_description",
]
