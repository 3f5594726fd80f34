from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from dlnabrowser import MediaBrowser, Settings
from dlnabrowser.ssdp.discover import DiscoveryState
from dlnabrowser.ssdp.registry import ServiceRecord
from dlnabrowser.upnp.content_directory import Container, Item
from dlnabrowser.utils import utcnow

from upnp_samples import MEDIA_SERVER_TYPE


class RecordingListener:
    def __init__(self):
        self.devices = []

    async def device_added(self, device):
        self.devices.append(device)


def quiet_settings(**kwargs) -> Settings:
    return Settings(search_interval=None, refresh_interval=3600, **kwargs)


def busy_socket() -> MagicMock:
    sock = MagicMock()
    sock.bind.side_effect = OSError(98, "Address already in use")
    return sock


async def wait_until(condition, timeout: float = 2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        assert loop.time() < deadline, "condition not met in time"
        await asyncio.sleep(0.01)


def advertise(browser: MediaBrowser, usn: str, location: str, ttl: float = 1800):
    browser.services.upsert(
        ServiceRecord(
            usn=usn,
            service_type=MEDIA_SERVER_TYPE,
            location=location,
            expires_at=utcnow() + timedelta(seconds=ttl),
        )
    )


@pytest.mark.asyncio
async def test_refresh_resolves_advertised_devices(upnp_server, session):
    browser = MediaBrowser(quiet_settings(), client=session)
    listener = RecordingListener()
    browser.subscribe(listener)

    advertise(browser, "uuid:nas", str(upnp_server.make_url("/description.xml")))
    advertise(browser, "uuid:speaker", str(upnp_server.make_url("/renderer.xml")))
    advertise(browser, "uuid:gone", str(upnp_server.make_url("/nameless.xml")), ttl=-5)

    await browser.refresh()
    await browser.refresh()

    assert sorted(d.name for d in browser.get_devices()) == ["Kitchen Speaker", "Living Room NAS"]
    assert [d.name for d in browser.media_servers()] == ["Living Room NAS"]
    assert len(listener.devices) == 2
    assert "uuid:gone" not in browser.services
    assert upnp_server.app["hits"]["/nameless.xml"] == 0
    assert upnp_server.app["hits"]["/description.xml"] == 1


@pytest.mark.asyncio
async def test_browse_through_the_facade(upnp_server, session):
    browser = MediaBrowser(quiet_settings(), client=session)
    advertise(browser, "uuid:nas", str(upnp_server.make_url("/description.xml")))
    await browser.refresh()

    (server,) = browser.media_servers()
    entries = await browser.browse(server)

    assert [type(e) for e in entries] == [Container, Item]
    assert [e.title for e in entries] == ["Music", "Song"]
    assert browser.client_for(server) is browser.client_for(server)


@pytest.mark.asyncio
async def test_client_is_rebuilt_for_a_new_description(upnp_server, session):
    location = str(upnp_server.make_url("/description.xml"))
    browser = MediaBrowser(quiet_settings(), client=session)
    advertise(browser, "uuid:nas", location)
    await browser.refresh()

    first = browser.client_for(browser.devices.get(location))
    browser.fetcher.forget(location)
    await browser.refresh()
    second = browser.client_for(browser.devices.get(location))

    assert first is not second
    assert second.device is browser.devices.get(location)


@pytest.mark.asyncio
async def test_start_without_multicast_still_uses_static_locations(upnp_server, session):
    location = str(upnp_server.make_url("/description.xml"))
    browser = MediaBrowser(quiet_settings(location_urls=[location]), client=session)

    assert await browser.start(busy_socket()) is False

    assert browser.discovery.state is DiscoveryState.UNINITIALIZED
    assert [d.location for d in browser.get_devices()] == [location]
    assert browser.search() is False

    await browser.stop()
    await browser.stop()

    assert session.closed is False
    assert browser.discovery.state is DiscoveryState.CLOSED


@pytest.mark.asyncio
async def test_stop_closes_its_own_session():
    browser = MediaBrowser(quiet_settings())

    await browser.start(busy_socket())
    client = browser.client
    assert client is not None
    assert browser.fetcher.client is client

    await browser.stop()

    assert client.closed is True
    assert browser.client is None


@pytest.mark.asyncio
async def test_refresh_runs_on_a_timer(upnp_server, session):
    browser = MediaBrowser(Settings(search_interval=None, refresh_interval=0.02), client=session)
    await browser.start(busy_socket())

    location = str(upnp_server.make_url("/description.xml"))
    advertise(browser, "uuid:nas", location)
    advertise(browser, "uuid:brief", str(upnp_server.make_url("/renderer.xml")), ttl=0.05)
    browser.services.upsert(ServiceRecord(usn="uuid:no-expiry", location=location))

    await wait_until(lambda: browser.devices.get(location) is not None)
    await wait_until(lambda: "uuid:brief" not in browser.services)
    assert "uuid:no-expiry" not in browser.services

    await browser.stop()


@pytest.mark.asyncio
async def test_refresh_errors_do_not_stop_the_timer(monkeypatch, session):
    browser = MediaBrowser(Settings(search_interval=None, refresh_interval=0.01), client=session)
    calls = []

    async def refresh():
        calls.append(len(calls))
        if len(calls) == 1:
            raise RuntimeError("unexpected")

    monkeypatch.setattr(browser, "refresh", refresh)
    await browser.start(busy_socket())

    await wait_until(lambda: len(calls) >= 3)
    await browser.stop()


@pytest.mark.asyncio
async def test_embedded_media_server_is_browsable(upnp_server, session):
    browser = MediaBrowser(quiet_settings(), client=session)
    advertise(browser, "uuid:router", str(upnp_server.make_url("/embedded.xml")))
    await browser.refresh()

    (router,) = browser.media_servers()
    entries = await browser.browse(router)

    assert router.name == "Router"
    assert [e.title for e in entries] == ["Music", "Song"]
    assert upnp_server.app["soap_requests"]
