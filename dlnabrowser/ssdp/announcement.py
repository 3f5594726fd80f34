"""Parsing of SSDP datagrams (NOTIFY announcements and M-SEARCH responses).

Devices in the wild send all kinds of slightly broken headers, so the
parser works line by line and keeps whatever looks like ``NAME: VALUE``.
The only thing an announcement must carry to be accepted is a ``USN``.
"""
from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta

from ..utils import utcnow

logger = logging.getLogger(__name__)

HEADER_RE = re.compile(r"^\s*([A-Za-z0-9_.\-]+)\s*:(.*)$")
MAX_AGE_RE = re.compile(r"max-age\s*=\s*\"?(\d+)", re.IGNORECASE)

NTS_ALIVE = "ssdp:alive"
NTS_BYEBYE = "ssdp:byebye"


class NotificationType(enum.Enum):
    ALIVE = "alive"
    BYEBYE = "byebye"
    OTHER = "other"

    @classmethod
    def from_nts(cls, nts: str | None) -> NotificationType:
        if nts == NTS_ALIVE:
            return cls.ALIVE
        if nts == NTS_BYEBYE:
            return cls.BYEBYE
        return cls.OTHER


@dataclass
class Announcement:
    fields: dict[str, str]
    expires_at: datetime | None = None

    @property
    def usn(self) -> str:
        return self.fields["usn"]

    @property
    def service_type(self) -> str:
        # NOTIFY carries NT, search responses carry ST
        return self.fields.get("nt") or self.fields.get("st") or ""

    @property
    def location(self) -> str | None:
        return self.fields.get("location") or None

    @property
    def notification_type(self) -> NotificationType:
        return NotificationType.from_nts(self.fields.get("nts"))


def normalize_header(name: str) -> str:
    return name.strip().lower().replace("-", "")


def parse_headers(raw: str) -> dict[str, str]:
    fields = {}
    for line in raw.splitlines():
        match = HEADER_RE.match(line)
        if match is None:
            continue
        name, value = match.groups()
        fields[normalize_header(name)] = value.strip()
    return fields


def parse_max_age(value: str | None) -> int | None:
    if not value:
        return None
    match = MAX_AGE_RE.search(value)
    if match is None:
        logger.debug("ignoring cache-control without max-age: %r", value)
        return None
    return int(match.group(1))


def parse_announcement(
    raw: str, now: datetime | None = None, require_notify: bool = False
) -> Announcement | None:
    """Parse a raw SSDP datagram.

    Returns ``None`` when the datagram must be discarded: it has no ``USN``,
    or ``require_notify`` is set and the text does not contain ``NOTIFY``.
    """
    if require_notify and "NOTIFY" not in raw:
        logger.debug("discarding datagram without NOTIFY")
        return None

    fields = parse_headers(raw)
    if not fields.get("usn"):
        logger.debug("discarding datagram without USN: %r", raw[:80])
        return None

    expires_at = None
    max_age = parse_max_age(fields.get("cachecontrol"))
    if max_age is not None:
        expires_at = (now or utcnow()) + timedelta(seconds=max_age)

    return Announcement(fields=fields, expires_at=expires_at)
