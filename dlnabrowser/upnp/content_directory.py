"""ContentDirectory client: browse the folders of a UPnP media server.

A Browse answer is a SOAP envelope whose ``Result`` element carries a
DIDL-Lite document as escaped text. That inner document is unwrapped and
turned into :class:`Container` and :class:`Item` entries.
"""
from __future__ import annotations

import asyncio
import enum
import html
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Mapping, Union
from urllib.parse import unquote
from xml.parsers.expat import ExpatError
from xml.sax.saxutils import escape

import aiohttp
from dotmap import DotMap

from ..exceptions import BrowseError
from ..settings import Settings, settings as default_settings
from ..utils import g, join_url, text_of, xml2dict
from .device import Device, Service

if TYPE_CHECKING:
    from .models.didl import DidlContainer, DidlItem, DidlLite

logger = logging.getLogger(__name__)

PAYLOAD_FMT = (
    '<?xml version="1.0" encoding="utf-8"?><s:Envelope xmlns:s="http://schemas.xmlsoap.org/soap/envelope/" '
    's:encodingStyle="http://schemas.xmlsoap.org/soap/encoding/"><s:Body><u:{action} xmlns:u="{urn}">'
    "{fields}</u:{action}></s:Body></s:Envelope>"
)

BROWSE_DIRECT_CHILDREN = "BrowseDirectChildren"
CONTAINER_CLASS = "object.container"
ROOT_OBJECT_ID = "0"


class EntryKind(enum.Enum):
    CONTAINER = "container"
    ITEM = "item"


@dataclass
class Container:
    title: str
    id: str
    parent_id: str
    type: str
    child_count: int | None = None
    kind: EntryKind = field(default=EntryKind.CONTAINER, init=False)


@dataclass
class Item:
    title: str
    id: str
    parent_id: str
    type: str
    url: str = ""
    album_art: str | None = None
    kind: EntryKind = field(default=EntryKind.ITEM, init=False)


ContentEntry = Union[Container, Item]


def _find(mapping, name: str):
    """Look up ``name`` whether or not its namespace was collapsed."""
    if not isinstance(mapping, Mapping):
        return None
    for key, value in mapping.items():
        if key == name or key.endswith(":" + name):
            return value
    return None


def _as_list(value) -> list:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def _int(value) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _parse_envelope_body(text: str | bytes) -> DotMap:
    try:
        info = xml2dict(text)
    except ExpatError as exc:
        raise BrowseError(f"unparseable browse response: {exc}") from exc
    envelope = info.get("Envelope")
    body = envelope.get("Body") if isinstance(envelope, DotMap) else None
    return body if isinstance(body, DotMap) else DotMap()


def _fault_of(body: DotMap) -> BrowseError | None:
    fault = body.get("Fault")
    if fault is None:
        return None
    if not isinstance(fault, DotMap):
        return BrowseError(f"browse failed: {fault}")
    error = fault.detail.UPnPError if isinstance(fault.get("detail"), DotMap) else None
    if not isinstance(error, DotMap):
        error = DotMap()
    description = error.get("errorDescription") or fault.get("faultstring") or "SOAP fault"
    return BrowseError(f"browse failed: {description}", error_code=error.get("errorCode"))


def unwrap_result(result: str) -> str:
    """Undo whatever escaping is left on the DIDL-Lite text of ``Result``."""
    if "<" not in result:
        if "%3c" in result.lower():
            result = unquote(result)
        elif "&lt;" in result:
            # escaped twice by the server
            result = html.unescape(result)
    return result


def entries_from_didl(content: DidlLite) -> list[ContentEntry]:
    """Containers first, then items, each in document order."""
    entries: list[ContentEntry] = []
    containers: list[DidlContainer] = _as_list(content.get("container"))
    for node in containers:
        if not isinstance(node, Mapping):
            continue
        upnp_class = text_of(node.get("class"))
        if CONTAINER_CLASS not in upnp_class:
            logger.debug("skipping container %s of class %r", node.get("@id"), upnp_class)
            continue
        entries.append(
            Container(
                title=text_of(node.get("title")),
                id=node.get("@id", ""),
                parent_id=node.get("@parentID", ""),
                type=upnp_class,
                child_count=_int(node.get("@childCount")),
            )
        )

    items: list[DidlItem] = _as_list(content.get("item"))
    for node in items:
        if not isinstance(node, Mapping):
            continue
        entries.append(
            Item(
                title=text_of(node.get("title")),
                id=node.get("@id", ""),
                parent_id=node.get("@parentID", ""),
                type=text_of(node.get("class")),
                url=text_of(node.get("res")),
                album_art=text_of(node.get("albumArtURI")) or None,
            )
        )
    return entries


def parse_didl(didl: str) -> list[ContentEntry]:
    try:
        parsed = xml2dict(
            didl,
            force_list=("container", "item", "res", "albumArtURI"),
            as_dotmap=False,
        )
    except ExpatError as exc:
        raise BrowseError(f"unparseable DIDL-Lite result: {exc}") from exc

    content: DidlLite | None = _find(parsed, "DIDL-Lite")
    if not isinstance(content, Mapping):
        return []
    return entries_from_didl(content)


def decode_browse_response(text: str | bytes) -> list[ContentEntry]:
    body = _parse_envelope_body(text)
    if (fault := _fault_of(body)) is not None:
        raise fault

    result = _find(_find(body, "BrowseResponse"), "Result")
    if isinstance(result, Mapping):
        # DIDL-Lite embedded without escaping
        content = _find(result, "DIDL-Lite")
        if isinstance(content, Mapping):
            return entries_from_didl(content)
    if not isinstance(result, str) or not result.strip():
        raise BrowseError("browse response has no Result")
    return parse_didl(unwrap_result(result))


class ContentDirectoryClient:
    def __init__(
        self,
        device: Device,
        client: aiohttp.ClientSession | None = None,
        settings: Settings = default_settings,
    ):
        self.device = device
        self.client = client
        self.settings = settings
        # only the first ContentDirectory is used when a device has several
        self.service: Service | None = device.content_directory

    @property
    def http(self) -> aiohttp.ClientSession:
        return g.session(self.client)

    @property
    def has_content_directory(self) -> bool:
        return self.service is not None

    @property
    def urn(self) -> str:
        return self.service.service_type if self.service else ""

    @property
    def control_url(self) -> str | None:
        # presentationURL is unreliable, the description location is not
        if self.service is None:
            return None
        return join_url(self.device.base_url, self.service.control_url)

    def payload_from_template(self, action: str, data: dict[str, object]) -> str:
        fields = ""
        for tag, value in data.items():
            fields += "<{tag}>{value}</{tag}>".format(tag=tag, value=escape(str(value)))
        payload = PAYLOAD_FMT.format(action=action, urn=self.urn, fields=fields)
        return payload

    def build_browse_payload(
        self,
        object_id: str = ROOT_OBJECT_ID,
        starting_index: int = 0,
        requested_count: int | None = None,
    ) -> str:
        return self.payload_from_template(
            "Browse",
            {
                "ObjectID": object_id,
                "BrowseFlag": BROWSE_DIRECT_CHILDREN,
                "Filter": self.settings.browse_filter,
                "StartingIndex": starting_index,
                "RequestedCount": requested_count or self.settings.browse_page_size,
                "SortCriteria": "",
            },
        )

    async def browse(
        self,
        folder_id: str = ROOT_OBJECT_ID,
        starting_index: int = 0,
        requested_count: int | None = None,
    ) -> list[ContentEntry]:
        if self.service is None:
            raise BrowseError(f"{self.device.name} has no ContentDirectory service")

        url = self.control_url
        headers = {
            "Content-Type": 'text/xml; charset="utf-8"',
            "SOAPACTION": f'"{self.urn}#Browse"',
        }
        payload = self.build_browse_payload(folder_id, starting_index, requested_count)

        try:
            async with self.http.post(
                url,
                data=payload.encode(),
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.settings.http_timeout),
            ) as response:
                status = response.status
                text = await response.text(errors="replace")
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.error(
                "DLNA %s browse %s error %s %s",
                self.device.name,
                folder_id,
                exc.__class__.__name__,
                exc,
            )
            raise BrowseError(f"browse request to {url} failed: {exc}", url=url) from exc

        try:
            if status >= 400:
                try:
                    fault = _fault_of(_parse_envelope_body(text))
                except BrowseError:
                    fault = None
                raise fault or BrowseError(f"browse request returned HTTP {status}")
            entries = decode_browse_response(text)
        except BrowseError as exc:
            exc.url = url
            logger.error("DLNA %s browse %s failed: %s", self.device.name, folder_id, exc)
            raise

        logger.debug("DLNA %s folder %s has %s entries", self.device.name, folder_id, len(entries))
        return entries
