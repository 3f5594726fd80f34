from __future__ import annotations

import collections
import logging

import aiohttp
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from upnp_samples import (
    BROWSE_RESPONSE_XML,
    DESCRIPTION_XML,
    EMBEDDED_DESCRIPTION_XML,
    FAULT_XML,
    NAMELESS_DESCRIPTION_XML,
    RENDERER_DESCRIPTION_XML,
)


def pytest_configure(config):
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def make_upnp_app() -> web.Application:
    """A fake media server: device descriptions plus a ContentDirectory endpoint."""
    app = web.Application()
    app["hits"] = collections.Counter()
    app["soap_requests"] = []

    def xml_handler(text: str, status: int = 200):
        async def handler(request: web.Request):
            request.app["hits"][request.path] += 1
            return web.Response(status=status, text=text, content_type="text/xml")

        return handler

    async def content_directory(request: web.Request):
        body = await request.text()
        request.app["soap_requests"].append((request.headers.get("SOAPACTION"), body))
        if "<ObjectID>missing</ObjectID>" in body:
            return web.Response(status=500, text=FAULT_XML, content_type="text/xml")
        return web.Response(text=BROWSE_RESPONSE_XML, content_type="text/xml")

    app.router.add_get("/description.xml", xml_handler(DESCRIPTION_XML))
    app.router.add_get("/embedded.xml", xml_handler(EMBEDDED_DESCRIPTION_XML))
    app.router.add_get("/renderer.xml", xml_handler(RENDERER_DESCRIPTION_XML))
    app.router.add_get("/nameless.xml", xml_handler(NAMELESS_DESCRIPTION_XML))
    app.router.add_get("/garbage.xml", xml_handler("<root><device>"))
    app.router.add_get("/broken.xml", xml_handler("", status=500))
    app.router.add_post("/ctl/ContentDir", content_directory)
    app.router.add_post("/media/ctl/ContentDir", content_directory)
    app.router.add_post("/ctl/Broken", xml_handler("oops", status=503))
    return app


@pytest_asyncio.fixture
async def upnp_server():
    server = TestServer(make_upnp_app())
    await server.start_server()

    yield server

    await server.close()


@pytest_asyncio.fixture
async def session():
    async with aiohttp.ClientSession() as session:
        yield session
