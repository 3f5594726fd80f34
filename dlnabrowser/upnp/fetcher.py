from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Protocol

import aiohttp

from ..exceptions import DescriptionError, DlnaBrowserError
from ..settings import Settings, settings as default_settings
from ..ssdp.registry import ServiceRecord
from ..utils import g
from .device import Device, DeviceRegistry, parse_description

logger = logging.getLogger(__name__)


class DeviceListener(Protocol):
    async def device_added(self, device: Device) -> None:
        ...


class DescriptionFetcher:
    """Turns advertised service locations into :class:`Device` entries.

    Every location is fetched at most once per process. A location whose
    fetch failed stays in ``attempted_locations`` as well and is only tried
    again after :meth:`forget` or :meth:`retry_failed`.

    Requests go through ``client``, or through the shared ``g.http`` session
    when no client is given.
    """

    def __init__(
        self,
        devices: DeviceRegistry,
        client: aiohttp.ClientSession | None = None,
        settings: Settings = default_settings,
    ):
        self.devices = devices
        self.client = client
        self.settings = settings
        self.attempted_locations: set[str] = set()
        self.failed_locations: set[str] = set()
        self.listeners: list[DeviceListener] = []

    @property
    def http(self) -> aiohttp.ClientSession:
        return g.session(self.client)

    def subscribe(self, listener: DeviceListener):
        if listener not in self.listeners:
            self.listeners.append(listener)

    def unsubscribe(self, listener: DeviceListener):
        if listener in self.listeners:
            self.listeners.remove(listener)

    async def process(self, records: Iterable[ServiceRecord]):
        locations = []
        for record in records:
            if not record.location:
                logger.debug("service %s had no location header", record.usn)
                continue
            # check and mark without yielding to the loop in between
            if record.location in self.attempted_locations:
                continue
            self.attempted_locations.add(record.location)
            locations.append(record.location)

        if locations:
            await asyncio.gather(*[self.fetch(location) for location in locations])

    async def fetch(self, location: str) -> Device | None:
        logger.debug("fetching device description %s", location)
        try:
            async with self.http.get(
                location, timeout=aiohttp.ClientTimeout(total=self.settings.http_timeout)
            ) as response:
                response.raise_for_status()
                xml = await response.read()
            device = parse_description(xml, location)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.error(
                "fetching device description %s failed %s %s",
                location,
                exc.__class__.__name__,
                exc,
            )
            self.failed_locations.add(location)
            return None
        except DescriptionError as exc:
            logger.error("invalid device description: %s", exc)
            self.failed_locations.add(location)
            return None
        except DlnaBrowserError as exc:
            logger.error("fetching device description %s failed: %s", location, exc)
            self.failed_locations.add(location)
            return None

        if self.devices.add(device):
            logger.info("new device %s (%s) at %s", device.name, device.device_type, location)
            await self._notify(device)
        return device

    async def _notify(self, device: Device):
        for listener in list(self.listeners):
            try:
                await listener.device_added(device)
            except Exception:
                logger.exception("device listener %r failed for %s", listener, device.name)

    def forget(self, location: str):
        self.attempted_locations.discard(location)
        self.failed_locations.discard(location)

    def retry_failed(self) -> int:
        failed = len(self.failed_locations)
        self.attempted_locations -= self.failed_locations
        self.failed_locations.clear()
        return failed
