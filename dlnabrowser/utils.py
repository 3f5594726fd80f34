from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Mapping, overload
from urllib.parse import urljoin, urlparse
from xml.parsers.expat import ExpatError, errors as expat_errors

import aiohttp
import xmltodict
from dotmap import DotMap

from .exceptions import DlnaBrowserError
from .settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

ALLOWED_UPNP_CD_VERSIONS = ["1", "2", "3", "4"]

UPNP_CD_SERVICE_TYPE_PREFIX = "urn:schemas-upnp-org:service:ContentDirectory"
UPNP_CD_SERVICE_TYPE = UPNP_CD_SERVICE_TYPE_PREFIX + ":{version}"

SOAP_ENVELOPE_NS = "http://schemas.xmlsoap.org/soap/envelope/"
UPNP_DEVICE_NS = "urn:schemas-upnp-org:device-1-0"
UPNP_CONTROL_NS = "urn:schemas-upnp-org:control-1-0"
DIDL_LITE_NS = "urn:schemas-upnp-org:metadata-1-0/DIDL-Lite/"
DC_NS = "http://purl.org/dc/elements/1.1/"
UPNP_METADATA_NS = "urn:schemas-upnp-org:metadata-1-0/upnp/"

COLLAPSED_NAMESPACES: dict[str, None] = {
    SOAP_ENVELOPE_NS: None,
    UPNP_DEVICE_NS: None,
    UPNP_CONTROL_NS: None,
    DIDL_LITE_NS: None,
    DC_NS: None,
    UPNP_METADATA_NS: None,
    **{UPNP_CD_SERVICE_TYPE.format(version=v): None for v in ALLOWED_UPNP_CD_VERSIONS},
}


@dataclass
class G:
    http: aiohttp.ClientSession = field(init=False)

    def create_session(self, settings: Settings = default_settings) -> aiohttp.ClientSession:
        self.http = create_session(settings)
        return self.http

    def session(self, client: aiohttp.ClientSession | None = None) -> aiohttp.ClientSession:
        """``client`` when given, otherwise the shared session."""
        if client is not None:
            return client
        if "http" not in self.__dict__:
            raise DlnaBrowserError("no HTTP session, pass a client or call g.create_session()")
        return self.http

    async def close(self):
        http = self.__dict__.pop("http", None)
        if http is not None:
            await http.close()


g = G()


def create_session(settings: Settings = default_settings) -> aiohttp.ClientSession:
    return aiohttp.ClientSession(
        headers={"User-Agent": settings.user_agent},
        timeout=aiohttp.ClientTimeout(total=settings.http_timeout),
    )


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def base_url(location: str) -> str:
    """Return ``scheme://host[:port]`` of a URL."""
    url = urlparse(location)
    return f"{url.scheme}://{url.netloc}"


def join_url(base: str, path: str) -> str:
    # control URLs are host relative, absolute ones are kept as they are
    return urljoin(base.rstrip("/") + "/", path)


def text_of(value) -> str:
    """Text content of an xmltodict node, whether or not it carried attributes."""
    if value is None:
        return ""
    if isinstance(value, list):
        return text_of(value[0]) if value else ""
    if isinstance(value, Mapping):
        return (value.get("#text") or "").strip()
    return str(value).strip()


def _strip_prefix(path, key: str, value):
    if key.startswith("@xmlns"):
        return None
    if key.startswith("@"):
        return "@" + key[1:].rpartition(":")[2], value
    return key.rpartition(":")[2], value


@overload
def xml2dict(
    xml: str | bytes,
    force_list: Iterable[str] = ...,
    as_dotmap: bool = True,
) -> DotMap:
    ...


@overload
def xml2dict(
    xml: str | bytes,
    force_list: Iterable[str] = ...,
    as_dotmap: bool = False,
) -> dict:
    ...


def xml2dict(
    xml: str | bytes,
    force_list: Iterable[str] = (),
    as_dotmap: bool = True,
) -> DotMap | dict:
    if not isinstance(xml, str):
        xml = xml.decode("utf-8", errors="replace")
    force_list = tuple(force_list) or None

    try:
        parsed = xmltodict.parse(
            xml,
            process_namespaces=True,
            namespaces=COLLAPSED_NAMESPACES,
            force_list=force_list,
        )
    except ExpatError as exc:
        if exc.code != expat_errors.codes[expat_errors.XML_ERROR_UNBOUND_PREFIX]:
            raise
        logger.debug("undeclared namespace prefix, dropping prefixes: %s", exc)
        parsed = xmltodict.parse(xml, force_list=force_list, postprocessor=_strip_prefix)
    if as_dotmap:
        return DotMap(parsed)
    else:
        return parsed
