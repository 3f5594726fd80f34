from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterator
from urllib.parse import urlparse
from xml.parsers.expat import ExpatError

from ..exceptions import DescriptionError
from ..utils import UPNP_CD_SERVICE_TYPE_PREFIX, base_url, text_of, xml2dict

if TYPE_CHECKING:
    from .models.root import DeviceDescription, Root

logger = logging.getLogger(__name__)


@dataclass
class Icon:
    url: str
    mime_type: str = ""
    width: int | None = None
    height: int | None = None


@dataclass
class Service:
    service_type: str
    service_id: str = ""
    control_url: str = ""
    event_sub_url: str = ""
    description_url: str = ""


@dataclass
class Device:
    # the description URL is the identity, one UDN can be reachable at several
    location: str
    name: str
    device_type: str
    presentation_url: str = ""
    udn: str = ""
    services: list[Service] = field(default_factory=list)
    icons: list[Icon] = field(default_factory=list)

    @property
    def base_url(self) -> str:
        return base_url(self.location)

    @property
    def ip(self) -> str | None:
        return urlparse(self.location).hostname

    def find_service(self, type_prefix: str) -> Service | None:
        for service in self.services:
            if service.service_type.startswith(type_prefix):
                return service
        return None

    @property
    def content_directory(self) -> Service | None:
        return self.find_service(UPNP_CD_SERVICE_TYPE_PREFIX)

    def __str__(self):
        return self.name


class DeviceRegistry:
    """Resolved devices keyed by the location of their description document."""

    def __init__(self):
        self._devices: dict[str, Device] = {}
        self._seen_locations: set[str] = set()

    def add(self, device: Device) -> bool:
        """Store ``device``, replacing any previous one at the same location.

        Returns ``True`` only the first time a device is committed for its
        location.
        """
        self._devices[device.location] = device
        if device.location in self._seen_locations:
            return False
        self._seen_locations.add(device.location)
        return True

    def remove(self, location: str):
        self._devices.pop(location, None)

    def get(self, location: str) -> Device | None:
        return self._devices.get(location)

    def get_devices(self) -> list[Device]:
        return list(self._devices.values())

    def __len__(self):
        return len(self._devices)

    def __contains__(self, location: object):
        return location in self._devices

    def __iter__(self) -> Iterator[Device]:
        return iter(self.get_devices())


def _children(container, key: str) -> list[dict]:
    if not isinstance(container, dict):
        return []
    return [c for c in container.get(key) or [] if isinstance(c, dict)]


def _walk(info: DeviceDescription) -> Iterator[DeviceDescription]:
    """The device and its embedded devices, depth first in document order."""
    yield info
    for embedded in _children(info.get("deviceList"), "device"):
        yield from _walk(embedded)


def _int(value) -> int | None:
    try:
        return int(text_of(value))
    except ValueError:
        return None


def parse_description(xml: str | bytes, location: str) -> Device:
    try:
        parsed = xml2dict(xml, force_list=("device", "service", "icon"), as_dotmap=False)
    except ExpatError as exc:
        raise DescriptionError(location, f"unparseable device description: {exc}") from exc

    root: Root | None = parsed.get("root")
    devices = _children(root, "device")
    if not devices:
        raise DescriptionError(location, "no device element in description")
    info = devices[0]

    device_type = text_of(info.get("deviceType"))
    name = text_of(info.get("friendlyName"))
    if not device_type or not name:
        raise DescriptionError(location, "description has no deviceType or friendlyName")

    # services and icons of embedded devices belong to the root device
    services = []
    icons = []
    for node in _walk(info):
        services += [
            Service(
                service_type=text_of(service.get("serviceType")),
                service_id=text_of(service.get("serviceId")),
                control_url=text_of(service.get("controlURL")),
                event_sub_url=text_of(service.get("eventSubURL")),
                description_url=text_of(service.get("SCPDURL")),
            )
            for service in _children(node.get("serviceList"), "service")
        ]
        icons += [
            Icon(
                url=text_of(icon.get("url")),
                mime_type=text_of(icon.get("mimetype")),
                width=_int(icon.get("width")),
                height=_int(icon.get("height")),
            )
            for icon in _children(node.get("iconList"), "icon")
        ]
    if not services:
        logger.debug("device %s at %s has no services", name, location)

    return Device(
        location=location,
        name=name,
        device_type=device_type,
        presentation_url=text_of(info.get("presentationURL")),
        udn=text_of(info.get("UDN")),
        services=services,
        icons=icons,
    )
