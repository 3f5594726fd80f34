from __future__ import annotations

import asyncio
import contextlib
import logging
import socket
from dataclasses import dataclass, field

import aiohttp

from .settings import Settings, settings as default_settings
from .ssdp.discover import SsdpDiscover
from .ssdp.registry import ServiceRecord, ServiceRegistry
from .upnp.content_directory import ROOT_OBJECT_ID, ContentDirectoryClient, ContentEntry
from .upnp.device import Device, DeviceRegistry
from .upnp.fetcher import DescriptionFetcher, DeviceListener
from .utils import create_session

logger = logging.getLogger(__name__)


@dataclass
class MediaBrowser:
    """Ties discovery, description fetching and browsing together.

    SSDP announcements fill :attr:`services`; every ``refresh_interval``
    seconds expired services are dropped and the remaining locations are
    resolved into :attr:`devices`. Devices are browsed on demand.
    """

    settings: Settings = field(default_factory=lambda: default_settings)
    client: aiohttp.ClientSession | None = None

    services: ServiceRegistry = field(default_factory=ServiceRegistry, init=False)
    devices: DeviceRegistry = field(default_factory=DeviceRegistry, init=False)
    discovery: SsdpDiscover = field(init=False)
    fetcher: DescriptionFetcher = field(init=False)
    clients: dict[str, ContentDirectoryClient] = field(default_factory=dict, init=False)

    _owns_client: bool = field(default=False, init=False, repr=False)
    _refresh_task: asyncio.Task | None = field(default=None, init=False, repr=False)

    def __post_init__(self):
        self.discovery = SsdpDiscover(self.services, self.settings)
        self.fetcher = DescriptionFetcher(self.devices, self.client, self.settings)

    async def __aenter__(self) -> MediaBrowser:
        await self.start()
        return self

    async def __aexit__(self, *exc_info):
        await self.stop()

    async def start(self, sock: socket.socket | None = None) -> bool:
        """Start listening and refreshing. Safe to call again after a failure."""
        if self.client is None:
            self.client = create_session(self.settings)
            self._owns_client = True
        self.fetcher.client = self.client

        listening = await self.discovery.start(sock)
        if not listening:
            logger.warning("SSDP discovery is not running, call start() again to retry")

        if self.settings.location_urls:
            await self.fetcher.process(
                ServiceRecord(usn=f"static:{url}", location=url)
                for url in self.settings.location_urls
            )

        if self._refresh_task is None:
            self._refresh_task = asyncio.create_task(self._refresh_loop())
        return listening

    async def _refresh_loop(self):
        while True:
            try:
                await self.refresh()
            except Exception:
                logger.exception("refreshing devices failed")
            await asyncio.sleep(self.settings.refresh_interval)

    async def refresh(self):
        # get_services() drops expired records before listing
        await self.fetcher.process(self.services.get_services())

    def search(self) -> bool:
        return self.discovery.discover()

    def subscribe(self, listener: DeviceListener):
        self.fetcher.subscribe(listener)

    def unsubscribe(self, listener: DeviceListener):
        self.fetcher.unsubscribe(listener)

    def get_devices(self) -> list[Device]:
        return self.devices.get_devices()

    def media_servers(self) -> list[Device]:
        return [d for d in self.devices if d.content_directory is not None]

    def client_for(self, device: Device) -> ContentDirectoryClient:
        client = self.clients.get(device.location)
        if client is None or client.device is not device:
            client = ContentDirectoryClient(device, self.client, self.settings)
            self.clients[device.location] = client
        return client

    async def browse(self, device: Device, folder_id: str = ROOT_OBJECT_ID) -> list[ContentEntry]:
        return await self.client_for(device).browse(folder_id)

    async def stop(self):
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._refresh_task
            self._refresh_task = None

        self.discovery.shutdown()
        self.clients.clear()

        if self._owns_client and self.client is not None:
            await self.client.close()
            self.client = None
            self.fetcher.client = None
            self._owns_client = False
