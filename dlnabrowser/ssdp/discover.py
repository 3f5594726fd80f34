from __future__ import annotations

import asyncio
import enum
import logging
import socket
from asyncio.protocols import DatagramProtocol
from asyncio.transports import DatagramTransport
from dataclasses import dataclass, field
from typing import Type

from ..settings import Settings, settings as default_settings
from .announcement import NotificationType, parse_announcement
from .registry import ServiceRecord, ServiceRegistry

logger = logging.getLogger(__name__)

SSDP_SEARCH_PARAMS = [
    "M-SEARCH * HTTP/1.1",
    "HOST: {address}:{port}",
    'MAN: "ssdp:discover"',
    "MX: {mx}",
    "ST: {st}",
    "",
    "",
]
SSDP_SEARCH_FMT = "\r\n".join(SSDP_SEARCH_PARAMS)


class DiscoveryState(enum.IntEnum):
    UNINITIALIZED = 0
    SOCKET_BOUND = 1
    GROUP_JOINED = 2
    LISTENING = 3
    CLOSED = 4


def build_search_message(address: str, port: int, mx: int, st: str) -> str:
    return SSDP_SEARCH_FMT.format(address=address, port=port, mx=mx, st=st)


def get_protocol(discover: SsdpDiscover) -> Type[DatagramProtocol]:
    @dataclass
    class SsdpProtocol(DatagramProtocol):
        transport: DatagramTransport | None = None

        def __post_init__(self):
            discover.protocol = self

        @property
        def is_current(self) -> bool:
            # a restarted driver has a new protocol, the old transport may still report in
            return discover.protocol is self

        def connection_made(self, transport: DatagramTransport):
            self.transport = transport
            if self.is_current:
                discover.connection_made(transport)

        def datagram_received(self, data: bytes, addr: tuple[str, int]):
            if self.is_current:
                discover.datagram_received(data, addr)

        def error_received(self, exc: Exception):
            logger.error("SSDP socket error: %s", exc)

        def connection_lost(self, exc: Exception | None):
            self.transport = None
            if self.is_current:
                discover.connection_lost(exc)
            else:
                logger.debug("previous SSDP socket closed")

    return SsdpProtocol


@dataclass
class SsdpDiscover:
    registry: ServiceRegistry
    settings: Settings = field(default_factory=lambda: default_settings)

    state: DiscoveryState = field(default=DiscoveryState.UNINITIALIZED, init=False)
    protocol: DatagramProtocol | None = field(default=None, init=False)
    transport: DatagramTransport | None = field(default=None, init=False)
    socket: socket.socket | None = field(default=None, init=False)
    _search_task: asyncio.Task | None = field(default=None, init=False, repr=False)

    async def start(self, sock: socket.socket | None = None) -> bool:
        """Bind, join the multicast group and start listening.

        Failures are logged and leave the driver ``UNINITIALIZED`` so that
        ``start()`` can simply be called again. ``sock`` lets the host hand
        in a socket it created itself.
        """
        if self.state is DiscoveryState.LISTENING:
            return True

        try:
            self.socket = sock if sock is not None else self._new_socket()
            self._set_multicast_options()

            # port 0, another SSDP agent on this host may already own 1900
            self.socket.bind((self.settings.bind_address, 0))
            self.state = DiscoveryState.SOCKET_BOUND
            logger.info("SSDP socket bound to %s", self.socket.getsockname())

            self.socket.setsockopt(
                socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, self._membership()
            )
            self.state = DiscoveryState.GROUP_JOINED
            logger.info("joined multicast group %s", self.settings.multicast_address)

            self.socket.setblocking(False)
            loop = asyncio.get_running_loop()
            await loop.create_datagram_endpoint(get_protocol(self), sock=self.socket)
        except OSError as exc:
            logger.error("SSDP start failed (%s): %s", self.state.name, exc)
            self._close_socket()
            self.state = DiscoveryState.UNINITIALIZED
            return False

        return self.state is DiscoveryState.LISTENING

    def _new_socket(self) -> socket.socket:
        return socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)

    def _set_multicast_options(self):
        try:
            self.socket.setsockopt(
                socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, self.settings.multicast_ttl
            )
        except OSError as exc:
            logger.warning("setting multicast TTL failed %s", exc)
        try:
            self.socket.setsockopt(
                socket.IPPROTO_IP,
                socket.IP_MULTICAST_LOOP,
                int(self.settings.multicast_loopback),
            )
        except OSError as exc:
            logger.warning("setting multicast loopback mode failed %s", exc)

    def _membership(self) -> bytes:
        return socket.inet_aton(self.settings.multicast_address) + socket.inet_aton(
            self.settings.bind_address
        )

    def connection_made(self, transport: DatagramTransport):
        self.transport = transport
        self.state = DiscoveryState.LISTENING
        logger.info("waiting for SSDP announcements")
        self.discover()
        if self.settings.search_interval:
            self._search_task = asyncio.create_task(self._search_loop())

    async def _search_loop(self):
        while self.state is DiscoveryState.LISTENING:
            await asyncio.sleep(self.settings.search_interval)
            self.discover()

    def discover(self, max_delay: int | None = None, search_target: str | None = None) -> bool:
        """Multicast an M-SEARCH. Answers come back as ordinary datagrams."""
        if self.state is not DiscoveryState.LISTENING or self.transport is None:
            logger.warning("cannot send M-SEARCH while %s", self.state.name)
            return False

        message = build_search_message(
            self.settings.multicast_address,
            self.settings.multicast_port,
            max_delay if max_delay is not None else self.settings.search_mx,
            search_target or self.settings.search_target,
        )
        try:
            self.transport.sendto(message.encode("UTF-8"), self.settings.multicast_group)
        except OSError as exc:
            logger.error("sending M-SEARCH failed %s", exc)
            return False
        logger.debug("sent M-SEARCH discovery message")
        return True

    def datagram_received(self, data: bytes, addr: tuple[str, int] | None = None):
        announcement = parse_announcement(
            data.decode("UTF-8", errors="replace"),
            require_notify=self.settings.require_notify,
        )
        if announcement is None:
            return

        if announcement.notification_type is NotificationType.BYEBYE:
            logger.debug("byebye %s from %s", announcement.usn, addr)
            self.registry.remove(announcement.usn)
        else:
            self.registry.upsert(ServiceRecord.from_announcement(announcement))

    def connection_lost(self, exc: Exception | None):
        if self.state is DiscoveryState.CLOSED:
            logger.info("SSDP socket closed")
            return
        if exc:
            logger.error("SSDP socket lost: %s", exc)
        else:
            logger.warning("SSDP socket closed unexpectedly")
        self._cancel_search()
        self.transport = None
        self.socket = None
        self.state = DiscoveryState.CLOSED

    def shutdown(self):
        if self.state is DiscoveryState.CLOSED and self.socket is None:
            return

        logger.info("closing SSDP socket")
        self._cancel_search()
        if self.socket is not None and self.state >= DiscoveryState.GROUP_JOINED:
            try:
                self.socket.setsockopt(
                    socket.IPPROTO_IP, socket.IP_DROP_MEMBERSHIP, self._membership()
                )
            except OSError as exc:
                logger.debug("leaving multicast group failed %s", exc)

        self.state = DiscoveryState.CLOSED
        self.protocol = None
        if self.transport is not None:
            self.transport.close()
            self.transport = None
            self.socket = None
        else:
            self._close_socket()

    def _cancel_search(self):
        if self._search_task is not None:
            self._search_task.cancel()
            self._search_task = None

    def _close_socket(self):
        if self.socket is not None:
            self.socket.close()
            self.socket = None
