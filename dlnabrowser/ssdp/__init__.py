from __future__ import annotations

from .announcement import Announcement, NotificationType, parse_announcement
from .discover import DiscoveryState, SsdpDiscover
from .registry import ServiceRecord, ServiceRegistry

__all__ = [
    "Announcement",
    "DiscoveryState",
    "NotificationType",
    "ServiceRecord",
    "ServiceRegistry",
    "SsdpDiscover",
    "parse_announcement",
]
