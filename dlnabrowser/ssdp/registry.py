from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator

from ..utils import utcnow
from .announcement import Announcement

logger = logging.getLogger(__name__)


@dataclass
class ServiceRecord:
    usn: str
    service_type: str = ""
    location: str | None = None
    expires_at: datetime | None = None
    headers: dict[str, str] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_announcement(cls, announcement: Announcement) -> ServiceRecord:
        return cls(
            usn=announcement.usn,
            service_type=announcement.service_type,
            location=announcement.location,
            expires_at=announcement.expires_at,
            headers=dict(announcement.fields),
        )

    def is_expired(self, now: datetime) -> bool:
        # a record without an expiry is stale straight away
        return self.expires_at is None or self.expires_at <= now


class ServiceRegistry:
    """Services currently advertised on the network, keyed by USN."""

    def __init__(self):
        self._services: list[ServiceRecord] = []

    def upsert(self, record: ServiceRecord):
        if not record.usn:
            logger.warning("dropping service without USN %r", record)
            return
        self.remove(record.usn)
        self._services.append(record)
        logger.debug("service %s %s", record.usn, record.service_type)

    def remove(self, usn: str):
        if not usn:
            logger.warning("cannot remove service without USN")
            return
        self._services = [s for s in self._services if s.usn != usn]

    def expire(self, now: datetime | None = None):
        now = now or utcnow()
        before = len(self._services)
        self._services = [s for s in self._services if not s.is_expired(now)]
        if expired := before - len(self._services):
            logger.debug("expired %s service(s)", expired)

    def get_services(
        self, type_filter: str | None = None, now: datetime | None = None
    ) -> list[ServiceRecord]:
        self.expire(now)
        if not type_filter:
            return list(self._services)
        return [s for s in self._services if type_filter in s.service_type]

    def get(self, usn: str) -> ServiceRecord | None:
        for service in self._services:
            if service.usn == usn:
                return service
        return None

    def __len__(self):
        return len(self._services)

    def __contains__(self, usn: object):
        return any(s.usn == usn for s in self._services)

    def __iter__(self) -> Iterator[ServiceRecord]:
        return iter(list(self._services))
