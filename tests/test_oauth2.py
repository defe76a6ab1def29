from typing import Any, Dict, List
from urllib.parse import parse_qs, urlparse

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from skill_devkit.device import BaseDevice, DeviceMetadata, OAuthRequest
from skill_devkit.errors import OAuthError
from skill_devkit.helpers.oauth2 import OAuth2Params, OAuth2Runner, rot13, state_session_key


class Account(BaseDevice):
    metadata = DeviceMetadata(
        kind="com.example.account",
        auth={"type": "oauth2", "client_id": "client-1", "client_secret": "secret-1"},
    )

    @classmethod
    async def load_from_oauth2(cls, engine, access_token, refresh_token, extra_data):
        return cls(
            engine,
            {
                "kind": cls.metadata.kind,
                "accessToken": access_token,
                "refreshToken": refresh_token,
                "scope": extra_data.get("scope"),
            },
        )


def _token_app(requests: List[Dict[str, Any]], *, body: Any = None, status: int = 200) -> web.Application:
    async def token(request: web.Request) -> web.StreamResponse:
        form = await request.post()
        requests.append({"form": dict(form), "headers": dict(request.headers)})
        if body is not None:
            return web.Response(status=status, text=body)
        return web.json_response(
            {
                "access_token": f"access-{len(requests)}",
                "refresh_token": f"refresh-{len(requests)}",
                "scope": "read",
            },
            status=status,
        )

    app = web.Application()
    app.router.add_post("/token", token)
    return app


@pytest.mark.asyncio
async def test_authorize_url_and_session(engine):
    runner = OAuth2Runner(
        OAuth2Params(
            authorize="https://auth.example.com/authorize",
            get_access_token="https://auth.example.com/token",
            scope=("read", "write"),
            set_state=True,
            set_access_type=True,
        )
    )

    url, session = await runner(Account, engine, None)
    parsed = urlparse(url)
    query = {key: values[0] for key, values in parse_qs(parsed.query).items()}

    assert parsed.netloc == "auth.example.com"
    assert query["client_id"] == "client-1"
    assert query["response_type"] == "code"
    assert query["redirect_uri"] == "http://127.0.0.1:3000/devices/oauth2/callback/com.example.account"
    assert query["access_type"] == "offline"
    assert query["scope"] == "read write"
    assert session == {state_session_key("com.example.account"): query["state"]}


@pytest.mark.asyncio
async def test_credentials_fall_back_to_the_obfuscated_secret(engine):
    class Anonymous(BaseDevice):
        metadata = DeviceMetadata(kind="com.example.anon", auth={"type": "oauth2"})

    runner = OAuth2Runner(
        OAuth2Params(
            authorize="https://auth.example.com/authorize?prompt=consent",
            get_access_token="https://auth.example.com/token",
            client_id="param-client",
            client_secret=rot13("param-secret"),
        )
    )

    assert runner._client_credentials(Anonymous) == ("param-client", "param-secret")
    url, session = await runner(Anonymous, engine, None)
    assert url.startswith("https://auth.example.com/authorize?prompt=consent&client_id=param-client")
    assert session == {}


@pytest.mark.asyncio
async def test_missing_client_id_is_an_error(engine):
    class Anonymous(BaseDevice):
        metadata = DeviceMetadata(kind="com.example.anon", auth={"type": "oauth2"})

    runner = OAuth2Runner(OAuth2Params(authorize="https://a", get_access_token="https://t"))

    with pytest.raises(OAuthError, match="Missing OAuth Client ID"):
        await runner(Anonymous, engine, None)


@pytest.mark.asyncio
async def test_complete_exchanges_the_code(engine):
    requests: List[Dict[str, Any]] = []

    async with TestServer(_token_app(requests)) as server:
        runner = OAuth2Runner(
            OAuth2Params(
                authorize="https://auth.example.com/authorize",
                get_access_token=str(server.make_url("/token")),
                set_state=True,
                use_basic_client_auth=True,
            )
        )
        device_class = runner.install(Account)
        _url, session = await device_class.load_from_custom_oauth(engine)
        state = session[state_session_key("com.example.account")]

        device = await device_class.complete_custom_oauth(
            engine,
            f"/devices/oauth2/callback/com.example.account?code=abc&state={state}",
            session,
        )

    assert isinstance(device, Account)
    assert device.state["accessToken"] == "access-1"
    assert device.state["refreshToken"] == "refresh-1"
    assert device.state["scope"] == "read"
    assert device.query_interface("oauth2") is device
    assert device.access_token == "access-1"
    assert session == {}

    form = requests[0]["form"]
    assert form["grant_type"] == "authorization_code"
    assert form["code"] == "abc"
    assert form["client_id"] == "client-1"
    assert form["redirect_uri"].endswith("/devices/oauth2/callback/com.example.account")
    assert requests[0]["headers"]["Authorization"].startswith("Basic ")


@pytest.mark.asyncio
async def test_complete_accepts_form_encoded_token_responses(engine):
    requests: List[Dict[str, Any]] = []
    app = _token_app(requests, body="access_token=plain&token_type=bearer")

    async with TestServer(app) as server:
        runner = OAuth2Runner(
            OAuth2Params(authorize="https://a", get_access_token=str(server.make_url("/token")))
        )
        device = await runner(Account, engine, OAuthRequest(query={"code": "abc"}, session={}))

    assert device.state["accessToken"] == "plain"
    assert device.state["refreshToken"] is None


@pytest.mark.asyncio
async def test_access_denied_returns_none(engine):
    runner = OAuth2Runner(OAuth2Params(authorize="https://a", get_access_token="https://t"))
    request = OAuthRequest(query={"error": "access_denied"}, session={})

    assert await runner(Account, engine, request) is None


@pytest.mark.asyncio
async def test_other_errors_raise(engine):
    runner = OAuth2Runner(OAuth2Params(authorize="https://a", get_access_token="https://t"))

    with pytest.raises(OAuthError, match="server exploded"):
        await runner(
            Account,
            engine,
            OAuthRequest(query={"error": "server_error", "error_description": "server exploded"}, session={}),
        )
    with pytest.raises(OAuthError, match="Missing authorization code"):
        await runner(Account, engine, OAuthRequest(query={}, session={}))


@pytest.mark.asyncio
async def test_csrf_mismatch_is_rejected(engine):
    runner = OAuth2Runner(
        OAuth2Params(authorize="https://a", get_access_token="https://t", set_state=True)
    )
    session = {state_session_key("com.example.account"): "expected"}
    request = OAuthRequest(query={"code": "abc", "state": "forged"}, session=session)

    with pytest.raises(OAuthError, match="Invalid CSRF token"):
        await runner(Account, engine, request)
    assert session == {}


@pytest.mark.asyncio
async def test_token_endpoint_failure_raises(engine):
    requests: List[Dict[str, Any]] = []

    async with TestServer(_token_app(requests, body="nope", status=400)) as server:
        runner = OAuth2Runner(
            OAuth2Params(authorize="https://a", get_access_token=str(server.make_url("/token")))
        )
        with pytest.raises(OAuthError, match="HTTP 400"):
            await runner(Account, engine, OAuthRequest(query={"code": "abc"}, session={}))


@pytest.mark.asyncio
async def test_refresh_updates_the_device(engine):
    requests: List[Dict[str, Any]] = []
    changes: List[str] = []

    async with TestServer(_token_app(requests)) as server:
        runner = OAuth2Runner(
            OAuth2Params(authorize="https://a", get_access_token=str(server.make_url("/token")))
        )
        device_class = runner.install(Account)
        device = device_class(
            engine,
            {"kind": "com.example.account", "accessToken": "old", "refreshToken": "old-refresh"},
        )
        device.add_listener("state-changed", lambda: changes.append("changed"))

        await device.refresh_credentials()

    assert requests[0]["form"]["grant_type"] == "refresh_token"
    assert requests[0]["form"]["refresh_token"] == "old-refresh"
    assert device.access_token == "access-1"
    assert device.refresh_token == "refresh-1"
    assert changes == ["changed"]
