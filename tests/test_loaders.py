import textwrap
from unittest.mock import AsyncMock

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from skill_devkit.device import Availability, BaseDevice
from skill_devkit.errors import ImplementationError, UnsupportedError
from skill_devkit.loaders import (
    BuiltinLoader,
    GenericRestLoader,
    OnDiskLoader,
    ProxyLoader,
    RssLoader,
    UnsupportedBuiltinLoader,
)
from skill_devkit.registry import ModuleRegistry

from conftest import make_manifest
from test_rss import FEED


def _rest_manifest(base_url, **extra):
    data = {
        "loader": {"module": "org.thingpedia.generic_rest.v1"},
        "annotations": {"version": 2},
        "actions": {
            "eat_data": {
                "args": [{"name": "food", "direction": "in_req"}],
                "annotations": {"url": base_url + "/eat?food=${food}"},
            }
        },
        "queries": {
            "data": {
                "args": [
                    {"name": "food", "direction": "out"},
                    {"name": "size", "type": "Number", "direction": "out"},
                ],
                "annotations": {
                    "url": base_url + "/data",
                    "json_key": "items",
                    "poll_interval": 60000,
                },
            }
        },
    }
    data.update(extra)
    return make_manifest("com.example.rest", **data)


@pytest.mark.asyncio
async def test_rest_device_end_to_end(engine):
    received = {"eat_calls": 0}

    async def eat(request: web.Request) -> web.StreamResponse:
        received["eat_calls"] += 1
        received["query"] = dict(request.query)
        received["content_type"] = request.headers.get("Content-Type")
        received["body"] = await request.json()
        return web.Response(text="eaten")

    async def data(request: web.Request) -> web.StreamResponse:
        received["accept"] = request.headers.get("Accept")
        return web.json_response({"items": [{"food": "bar", "size": "3"}, {"food": "baz", "size": 5}]})

    app = web.Application()
    app.router.add_post("/eat", eat)
    app.router.add_get("/data", data)

    async with TestServer(app) as server:
        base_url = str(server.make_url("/")).rstrip("/")
        loader = GenericRestLoader("com.example.rest", _rest_manifest(base_url))
        device_class = await loader.get_device_class()
        device = device_class(engine, {"kind": "com.example.rest"})

        assert await device.do_eat_data({"food": "bar"}) == "eaten"
        results = await device.get_data({})

    assert received["eat_calls"] == 1
    assert received["query"] == {"food": "bar"}
    assert received["content_type"] == "application/json"
    assert received["body"] == {"food": "bar"}
    assert received["accept"] == "application/json"
    assert results == [{"food": "bar", "size": 3.0}, {"food": "baz", "size": 5}]

    assert await device.check_available() is Availability.AVAILABLE
    assert device.metadata.version == 2
    assert device.unique_id == "com.example.rest"
    assert set(device_class.function_table) >= {"do_eat_data", "get_data", "subscribe_data"}
    assert await loader.get_device_class() is device_class


@pytest.mark.asyncio
async def test_rest_device_uses_form_params_and_basic_auth(engine):
    manifest = _rest_manifest(
        "http://127.0.0.1:1",
        config={
            "module": "org.thingpedia.config.basic_auth",
            "params": {"extra_params": {"host": "String"}},
        },
    )
    loader = GenericRestLoader("com.example.rest", manifest)
    device_class = await loader.get_device_class()
    device = device_class(engine, {"kind": "com.example.rest", "username": "u", "password": "p"})

    assert device.auth.startswith("Basic ")
    assert device_class.metadata.auth["type"] == "basic"
    assert device_class.metadata.params == {"host": None}


@pytest.mark.asyncio
async def test_rest_zero_poll_interval_is_rejected():
    manifest = make_manifest(
        "com.example.rest",
        queries={"live": {"annotations": {"url": "http://x", "poll_interval": 0}}},
    )

    with pytest.raises(ImplementationError, match="Poll interval cannot be 0 for REST query live"):
        await GenericRestLoader("com.example.rest", manifest).get_device_class()


@pytest.mark.asyncio
async def test_rss_device_reads_the_feed(engine):
    async def feed(request: web.Request) -> web.StreamResponse:
        return web.Response(body=FEED, content_type="application/rss+xml")

    app = web.Application()
    app.router.add_get("/feed.xml", feed)

    async with TestServer(app) as server:
        manifest = make_manifest(
            "com.example.news",
            queries={"headlines": {"annotations": {"url": str(server.make_url("/feed.xml")), "poll_interval": 600000}}},
        )
        device_class = await RssLoader("com.example.news", manifest).get_device_class()
        device = device_class(engine, {"kind": "com.example.news"})
        entries = await device.get_headlines({})

    assert [entry["guid"] for entry in entries] == ["newer-2", "older-1"]


@pytest.mark.asyncio
async def test_rss_rejects_actions_and_zero_intervals():
    with_action = make_manifest(
        "com.example.news",
        actions={"post": {}},
        queries={"headlines": {"annotations": {"url": "http://x", "poll_interval": 1000}}},
    )
    zero_interval = make_manifest(
        "com.example.news",
        queries={"headlines": {"annotations": {"url": "http://x", "poll_interval": 0}}},
    )

    with pytest.raises(ImplementationError, match="RSS devices cannot have actions"):
        await RssLoader("com.example.news", with_action).get_device_class()
    with pytest.raises(ImplementationError, match="Poll interval cannot be 0 for RSS query headlines"):
        await RssLoader("com.example.news", zero_interval).get_device_class()


@pytest.mark.asyncio
async def test_rss_action_error_comes_before_query_checks():
    manifest = make_manifest(
        "com.example.news",
        actions={"post": {}},
        queries={"headlines": {"annotations": {"url": "http://x", "poll_interval": 0}}},
    )

    with pytest.raises(ImplementationError, match="Invalid action post"):
        await RssLoader("com.example.news", manifest).get_device_class()


@pytest.mark.asyncio
async def test_proxy_forwards_queries_to_the_client(engine):
    client = AsyncMock()
    client.invoke_query.return_value = [{"value": 1}]
    manifest = make_manifest(
        "com.example.proxied",
        actions={"post": {}},
        queries={
            "data": {"annotations": {"poll_interval": 1000}},
            "live": {"annotations": {"poll_interval": 0}},
        },
    )
    loader = ProxyLoader("com.example.proxied", manifest, {}, ModuleRegistry(client))
    device_class = await loader.get_device_class()
    device = device_class(engine, {"kind": "com.example.proxied"})

    assert await device.get_data({"x": 1}) == [{"value": 1}]
    client.invoke_query.assert_awaited_once_with(
        "com.example.proxied", "com.example.proxied", "data", {"x": 1}, None
    )
    with pytest.raises(UnsupportedError):
        await device.do_post({})
    with pytest.raises(UnsupportedError):
        device.subscribe_live({}, None)
    assert client.invoke_query.await_count == 1


def test_proxy_requires_a_registry():
    with pytest.raises(ValueError):
        ProxyLoader("com.example.proxied", make_manifest("com.example.proxied"))


@pytest.mark.asyncio
async def test_unsupported_builtin(engine):
    manifest = make_manifest(
        "org.thingpedia.builtin.thingengine.phone",
        annotations={"version": 7},
        actions={"call": {}},
        queries={"sms": {"annotations": {"poll_interval": 0}}},
    )
    loader = UnsupportedBuiltinLoader("org.thingpedia.builtin.thingengine.phone", manifest)
    device_class = await loader.get_device_class()
    device = device_class(engine, {"kind": "org.thingpedia.builtin.thingengine.phone"})

    assert loader.version == 0
    assert loader.config is None
    assert device.unique_id == "org.thingpedia.builtin.thingengine.phone"
    assert await device.check_available() is Availability.OWNER_UNAVAILABLE
    assert set(device_class.function_table) == {"do_call", "get_sms", "subscribe_sms"}
    with pytest.raises(UnsupportedError):
        await device.do_call({})
    with pytest.raises(UnsupportedError):
        await device.get_sms({})
    with pytest.raises(UnsupportedError):
        device.subscribe_sms({}, None)


class Thermostat(BaseDevice):
    async def get_temperature(self, params, hints=None, env=None):
        return [{"value": 21}]

    async def do_set_target(self, params, env=None):
        return None


@pytest.mark.asyncio
async def test_builtin_loader_wraps_the_class(engine):
    manifest = make_manifest(
        "org.thingpedia.builtin.test.thermostat",
        annotations={"version": 12},
        actions={"set_target": {}},
        queries={"temperature": {"annotations": {"poll_interval": 1000}}},
    )
    loader = BuiltinLoader("org.thingpedia.builtin.test.thermostat", manifest, {}, None, Thermostat)
    device_class = await loader.get_device_class()

    assert loader.version == 0
    assert issubclass(device_class, Thermostat)
    assert device_class.metadata.kind == "org.thingpedia.builtin.test.thermostat"
    assert device_class.manifest is loader.manifest
    assert await device_class(engine, {}).get_temperature({}) == [{"value": 21}]
    assert await loader.get_device_class() is device_class


@pytest.mark.asyncio
async def test_builtin_loader_retries_after_failure():
    manifest = make_manifest("org.thingpedia.builtin.test.broken", queries={"missing": {}})
    loader = BuiltinLoader("org.thingpedia.builtin.test.broken", manifest, {}, None, Thermostat)

    for _ in range(2):
        with pytest.raises(ImplementationError, match="Implementation for query missing missing"):
            await loader.get_device_class()


DISK_MODULE = '''
from skill_devkit.device import BaseDevice

THINGPEDIA_VERSION = 3


class DiskDevice(BaseDevice):
    async def get_status(self, params, hints=None, env=None):
        return [{"status": "ok"}]


DEVICE_CLASS = DiskDevice
'''


def _disk_manifest(version):
    return make_manifest(
        "com.example.disk",
        loader={"module": "org.thingpedia.v2"},
        annotations={"version": version},
        queries={"status": {"annotations": {"poll_interval": 1000}}},
    )


@pytest.fixture
def module_dir(tmp_path):
    package = tmp_path / "com.example.disk"
    package.mkdir()
    (package / "__init__.py").write_text(textwrap.dedent(DISK_MODULE), encoding="utf-8")
    return tmp_path


@pytest.mark.asyncio
async def test_on_disk_loader_imports_the_module(engine, module_dir):
    loader = OnDiskLoader("com.example.disk", _disk_manifest(3), module_dir=module_dir)
    try:
        device_class = await loader.get_device_class()
        device = device_class(engine, {"kind": "com.example.disk"})

        assert device_class.__name__ == "DiskDevice"
        assert loader.package_version == 3
        assert await device.get_status({}) == [{"status": "ok"}]
    finally:
        loader.clear_cache()


@pytest.mark.asyncio
async def test_on_disk_loader_rejects_stale_or_missing_modules(module_dir, tmp_path):
    stale = OnDiskLoader("com.example.disk", _disk_manifest(4), module_dir=module_dir)
    with pytest.raises(UnsupportedError, match="out of date"):
        await stale.get_device_class()

    missing = OnDiskLoader("com.example.disk", _disk_manifest(3), module_dir=tmp_path / "empty")
    with pytest.raises(UnsupportedError, match="not installed"):
        await missing.get_device_class()


@pytest.mark.asyncio
async def test_on_disk_loader_honours_package_version(module_dir):
    manifest = _disk_manifest(9).with_annotations(package_version=3)
    loader = OnDiskLoader("com.example.disk", manifest, module_dir=module_dir)
    try:
        device_class = await loader.get_device_class()
    finally:
        loader.clear_cache()

    assert device_class.metadata.version == 9

