"""Shared test configuration and fixtures for all tests."""

import asyncio
import os
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from loadchaos.core.log import NullLogger
from loadchaos.storage.baseline_storage import LayeredBaselineStorage

os.environ.setdefault("MPLBACKEND", "Agg")

MB = 1024 * 1024


def _record(request: web.Request) -> None:
    request.app["hits"].append(request.path)
    request.app["requests"].append(
        {"path": request.path, "method": request.method, "headers": dict(request.headers)}
    )


async def home(request: web.Request) -> web.Response:
    _record(request)
    return web.Response(text="ok", headers={"X-AC": "HIT", "Age": "10", "X-Powered-By": "stub"})


async def shop(request: web.Request) -> web.Response:
    _record(request)
    return web.Response(status=500, text="boom")


async def cart(request: web.Request) -> web.Response:
    _record(request)
    return web.Response(text="cart", headers={"x-ac": "MISS", "age": "20"})


async def graphql(request: web.Request) -> web.Response:
    _record(request)
    body = await request.text()
    if "broken" in body:
        return web.json_response({"data": None, "errors": [{"message": "a"}, {"message": "b"}]})
    return web.json_response({"data": {"ok": True}})


async def echo(request: web.Request) -> web.Response:
    _record(request)
    body = await request.text()
    return web.json_response(
        {"method": request.method, "headers": dict(request.headers), "body": body}
    )


async def slow(request: web.Request) -> web.Response:
    _record(request)
    await asyncio.sleep(0.05)
    return web.Response(text="slow")


def build_stub_app() -> web.Application:
    app = web.Application()
    app["hits"] = []
    app["requests"] = []
    app.router.add_route("*", "/", home)
    app.router.add_route("*", "/shop/", shop)
    app.router.add_route("*", "/cart/", cart)
    app.router.add_route("*", "/graphql", graphql)
    app.router.add_route("*", "/echo", echo)
    app.router.add_route("*", "/slow", slow)
    return app


@pytest_asyncio.fixture
async def stub_server():
    """Local HTTP site with a handful of known endpoints."""
    server = TestServer(build_stub_app())
    await server.start_server()
    yield server
    await server.close()


@pytest.fixture
def base_url(stub_server):
    return f"http://{stub_server.host}:{stub_server.port}"


@pytest.fixture
def hits(stub_server):
    return stub_server.app["hits"]


@pytest.fixture
def null_logger():
    return NullLogger()


@pytest.fixture
def storage(tmp_path):
    return LayeredBaselineStorage(str(tmp_path / "baselines"))


@pytest.fixture
def fake_process():
    """psutil.Process stand-in whose RSS grows 1MB per sample."""
    process = MagicMock()
    state = {"rss": 100 * MB}

    def memory_info():
        state["rss"] += MB
        return MagicMock(rss=state["rss"])

    process.memory_info.side_effect = memory_info
    process.cpu_times.return_value = MagicMock(user=1.234, system=0.5)
    return process


@pytest.fixture
def sleeps():
    """Records the seconds passed to an injected sleep."""
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def _sleep(seconds):
        sleeps.append(seconds)

    return _sleep

