import base64

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from skill_devkit.device import BaseDevice
from skill_devkit.helpers.oauth2 import OAuth2Runner
from skill_devkit.loaders import install_base
from skill_devkit.mixins import (
    BaseConfigMixin,
    BasicAuthConfigMixin,
    OAuth2ConfigMixin,
    get_config_mixin,
)

from conftest import make_manifest


def _oauth_manifest(**params):
    args = {
        "client_id": "client-1",
        "client_secret": "secret-1",
        "authorize": "https://auth.example.com/authorize",
        "get_access_token": "https://auth.example.com/token",
    }
    args.update(params)
    return make_manifest(
        "com.example.account",
        config={"module": "org.thingpedia.config.oauth2", "params": args},
    )


def test_mixin_selection():
    assert get_config_mixin(make_manifest(is_abstract=True)) is None
    assert type(get_config_mixin(make_manifest())) is BaseConfigMixin
    assert type(get_config_mixin(make_manifest(config={"module": "org.thingpedia.config.form"}))) is BaseConfigMixin
    assert isinstance(
        get_config_mixin(make_manifest(config={"module": "org.thingpedia.config.basic_auth"})),
        BasicAuthConfigMixin,
    )
    assert isinstance(get_config_mixin(_oauth_manifest()), OAuth2ConfigMixin)


def test_missing_keys():
    missing = make_manifest(
        config={"module": "org.thingpedia.config.api_key", "params": {"api_key": "$?"}}
    )
    present = make_manifest(
        config={"module": "org.thingpedia.config.api_key", "params": {"api_key": "abc"}}
    )

    assert get_config_mixin(missing).has_missing_keys()
    assert not get_config_mixin(present).has_missing_keys()
    assert not get_config_mixin(_oauth_manifest(client_secret="$?")).has_missing_keys()


def test_default_mixin_leaves_the_class_alone():
    mixin = get_config_mixin(make_manifest())

    assert mixin.install(BaseDevice) is BaseDevice
    assert mixin.kind == "com.example"
    assert mixin.module is None


def test_basic_auth_header(engine):
    manifest = make_manifest(
        "com.example.router",
        config={
            "module": "org.thingpedia.config.basic_auth",
            "params": {"extra_params": {"host": "String"}},
        },
    )
    device_class = install_base(BaseDevice, manifest, get_config_mixin(manifest))
    device = device_class(engine, {"kind": "com.example.router", "username": "alice", "password": "s3cret"})

    expected = "Basic " + base64.b64encode(b"alice:s3cret").decode("ascii")
    assert device.auth == expected
    assert not hasattr(BaseDevice, "auth")


def test_oauth_install_adds_the_oauth_interface(engine):
    manifest = _oauth_manifest()
    device_class = install_base(BaseDevice, manifest, get_config_mixin(manifest))
    device = device_class(
        engine,
        {"kind": "com.example.account", "accessToken": "tok", "refreshToken": "ref"},
    )

    assert isinstance(device_class.run_oauth2, OAuth2Runner)
    assert device.query_interface("oauth2") is device
    assert device.query_interface("other") is None
    assert device.access_token == "tok"
    assert device.refresh_token == "ref"
    assert BaseDevice.run_oauth2 is None
    assert device_class.metadata.auth["type"] == "oauth2"


def test_custom_oauth_runner_is_kept():
    async def custom_runner(device_class, engine, request):
        return None

    class Custom(BaseDevice):
        run_oauth2 = custom_runner

    manifest = _oauth_manifest()
    device_class = install_base(Custom, manifest, get_config_mixin(manifest))

    assert device_class.run_oauth2 is custom_runner
    assert issubclass(device_class, Custom)


@pytest.mark.asyncio
async def test_generic_load_from_oauth2_fetches_the_profile(engine):
    seen = {}

    async def profile(request: web.Request) -> web.StreamResponse:
        seen["authorization"] = request.headers.get("Authorization")
        return web.json_response({"id": "u-1", "name": "Alice", "email": "alice@example.com"})

    app = web.Application()
    app.router.add_get("/me", profile)

    async with TestServer(app) as server:
        manifest = _oauth_manifest(get_profile=str(server.make_url("/me")), profile=["id", "name"])
        device_class = install_base(BaseDevice, manifest, get_config_mixin(manifest))
        device = await device_class.load_from_oauth2(
            engine, "tok", "ref", {"access_token": "tok", "expires_in": 3600, "scope": "read"}
        )

    assert seen["authorization"] == "Bearer tok"
    assert device.state == {
        "kind": "com.example.account",
        "accessToken": "tok",
        "refreshToken": "ref",
        "scope": "read",
        "id": "u-1",
        "name": "Alice",
    }


@pytest.mark.asyncio
async def test_generic_load_from_oauth2_without_profile(engine):
    manifest = _oauth_manifest()
    device_class = install_base(BaseDevice, manifest, get_config_mixin(manifest))

    device = await device_class.load_from_oauth2(engine, "tok", None, {})

    assert device.state == {"kind": "com.example.account", "accessToken": "tok", "refreshToken": None}
