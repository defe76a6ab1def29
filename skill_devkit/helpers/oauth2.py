"""Authorization-code OAuth 2 flow for device classes."""

from __future__ import annotations

import base64
import codecs
import json
import logging
import secrets
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional, Sequence, Tuple, Type
from urllib.parse import parse_qsl, urlencode

import aiohttp

from ..errors import OAuthError

if TYPE_CHECKING:
    from ..device import BaseDevice, Engine, OAuthRequest

LOGGER = logging.getLogger(__name__)

ACCESS_DENIED = "access_denied"
CALLBACK_PATH = "/devices/oauth2/callback/"

TokenCallback = Callable[..., Awaitable["BaseDevice"]]


def rot13(text: str) -> str:
    return codecs.encode(text, "rot13")


def state_session_key(kind: str) -> str:
    return f"oauth2-state-{kind}"


@dataclass(slots=True)
class OAuth2Params:
    authorize: str
    get_access_token: str
    client_id: Optional[str] = None
    client_secret: Optional[str] = None  # ROT13-obfuscated
    scope: Sequence[str] = ()
    redirect_uri: Optional[str] = None
    set_state: bool = False
    set_access_type: bool = False
    use_basic_client_auth: bool = False
    custom_headers: Dict[str, str] = field(default_factory=dict)
    callback: Optional[TokenCallback] = None


class OAuth2Runner:
    """Callable implementing ``run_oauth2`` for a device class.

    ``await runner(device_class, engine, None)`` starts the flow and returns
    the authorize URL and the session entries the engine must keep.
    ``await runner(device_class, engine, request)`` handles the redirect
    back, exchanges the code for tokens and returns the new device.
    """

    def __init__(self, params: OAuth2Params, *, session: Optional[aiohttp.ClientSession] = None) -> None:
        self.params = params
        self._session = session

    def _client_credentials(self, device_class: Type["BaseDevice"]) -> Tuple[str, str]:
        auth = device_class.metadata.auth
        client_id = auth.get("client_id") or self.params.client_id
        if not client_id:
            raise OAuthError("Missing OAuth Client ID in Authentication part of the manifest")
        client_secret = auth.get("client_secret")
        if not client_secret:
            if not self.params.client_secret:
                raise OAuthError("Missing OAuth Client Secret in Authentication part of the manifest")
            client_secret = rot13(self.params.client_secret)
        return str(client_id), str(client_secret)

    def redirect_uri(self, device_class: Type["BaseDevice"], engine: "Engine") -> str:
        if self.params.redirect_uri:
            return self.params.redirect_uri
        return engine.origin.rstrip("/") + CALLBACK_PATH + device_class.metadata.kind

    async def __call__(
        self,
        device_class: Type["BaseDevice"],
        engine: "Engine",
        request: Optional["OAuthRequest"],
    ) -> Any:
        client_id, client_secret = self._client_credentials(device_class)
        redirect_uri = self.redirect_uri(device_class, engine)
        if request is None:
            return self._start(device_class.metadata.kind, client_id, redirect_uri)
        return await self._complete(device_class, engine, request, client_id, client_secret, redirect_uri)

    def _start(self, kind: str, client_id: str, redirect_uri: str) -> Tuple[str, Dict[str, str]]:
        session: Dict[str, str] = {}
        query = {
            "client_id": client_id,
            "response_type": "code",
            "redirect_uri": redirect_uri,
        }
        if self.params.set_access_type:
            query["access_type"] = "offline"
        if self.params.set_state:
            state = secrets.token_hex(16)
            query["state"] = state
            session[state_session_key(kind)] = state
        if self.params.scope:
            query["scope"] = " ".join(self.params.scope)

        separator = "&" if "?" in self.params.authorize else "?"
        return self.params.authorize + separator + urlencode(query), session

    async def _complete(
        self,
        device_class: Type["BaseDevice"],
        engine: "Engine",
        request: "OAuthRequest",
        client_id: str,
        client_secret: str,
        redirect_uri: str,
    ) -> Optional["BaseDevice"]:
        expected_state = request.session.pop(state_session_key(device_class.metadata.kind), None)

        error = request.query.get("error")
        if error:
            if error == ACCESS_DENIED:
                return None
            raise OAuthError(request.query.get("error_description") or error)

        code = request.query.get("code")
        if not code:
            raise OAuthError("Missing authorization code")
        if self.params.set_state and request.query.get("state") != expected_state:
            raise OAuthError("Invalid CSRF token")

        access_token, refresh_token, extra_data = await self._request_token(
            client_id,
            client_secret,
            {"grant_type": "authorization_code", "code": code, "redirect_uri": redirect_uri},
        )
        if self.params.callback is not None:
            return await self.params.callback(engine, access_token, refresh_token, extra_data)
        return await device_class.load_from_oauth2(engine, access_token, refresh_token, extra_data)

    async def refresh(self, device: "BaseDevice") -> None:
        """Trade the device's refresh token for a new access token."""

        device_class = type(device)
        client_id, client_secret = self._client_credentials(device_class)
        refresh_token = device.state.get("refreshToken")
        if not refresh_token:
            raise OAuthError("No refresh token available")

        access_token, new_refresh_token, extra_data = await self._request_token(
            client_id,
            client_secret,
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "redirect_uri": self.redirect_uri(device_class, device.engine),
            },
        )
        await device.update_oauth2_token(access_token, new_refresh_token, extra_data)

    async def _request_token(
        self, client_id: str, client_secret: str, form: Dict[str, str]
    ) -> Tuple[str, Optional[str], Dict[str, Any]]:
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        headers.update(self.params.custom_headers)
        if self.params.use_basic_client_auth:
            credentials = base64.b64encode(f"{client_id}:{client_secret}".encode()).decode("ascii")
            headers["Authorization"] = f"Basic {credentials}"

        data = {"client_id": client_id, "client_secret": client_secret}
        data.update(form)

        owns_session = self._session is None
        session = self._session or aiohttp.ClientSession()
        try:
            async with session.post(self.params.get_access_token, data=data, headers=headers) as response:
                body = await response.text()
                if response.status not in (200, 201):
                    LOGGER.error("Error obtaining access token: HTTP %s %s", response.status, body)
                    raise OAuthError(f"Error obtaining access token: HTTP {response.status}")
        except aiohttp.ClientError as exc:
            LOGGER.error("Error obtaining access token: %s", exc)
            raise OAuthError(str(exc) or "Error obtaining access token") from exc
        finally:
            if owns_session:
                await session.close()

        results = _parse_token_response(body)
        access_token = results.get("access_token")
        if not access_token:
            raise OAuthError(str(results.get("error_description") or results.get("error") or "Error obtaining access token"))
        refresh_token = results.get("refresh_token")
        return str(access_token), str(refresh_token) if refresh_token else None, results

    def install(self, device_class: Type["BaseDevice"]) -> Type["BaseDevice"]:
        """Return a subclass of ``device_class`` exposing the ``oauth2`` interface."""

        runner = self

        class OAuth2Device(device_class):  # type: ignore[valid-type, misc]
            run_oauth2 = runner

            @property
            def access_token(self) -> Optional[str]:
                return self.state.get("accessToken")

            @property
            def refresh_token(self) -> Optional[str]:
                return self.state.get("refreshToken")

            async def refresh_credentials(self) -> None:
                await runner.refresh(self)

            def query_interface(self, name: str) -> Any:
                if name == "oauth2":
                    return self
                return super().query_interface(name)

        OAuth2Device.__name__ = device_class.__name__
        OAuth2Device.__qualname__ = device_class.__qualname__
        OAuth2Device.__module__ = device_class.__module__
        return OAuth2Device


def _parse_token_response(body: str) -> Dict[str, Any]:
    try:
        results = json.loads(body)
    except ValueError:
        return dict(parse_qsl(body))
    if not isinstance(results, dict):
        raise OAuthError("Invalid token response")
    return results
