"""OAuth 2 configuration: authorization-code flow and token bookkeeping."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Optional, Type

from ..device import BaseDevice
from ..helpers import http
from ..helpers.oauth2 import OAuth2Params, OAuth2Runner
from .base import BaseConfigMixin

if TYPE_CHECKING:
    from ..device import Engine

LOGGER = logging.getLogger(__name__)

_TOKEN_FIELDS = frozenset({"access_token", "refresh_token", "expires_in"})


def _make_load_from_oauth2(kind: str, info: Mapping[str, Any]) -> Callable[..., Any]:
    profile_url = info.get("get_profile")
    profile_fields = info.get("profile")

    async def load_from_oauth2(
        cls: Type[BaseDevice],
        engine: "Engine",
        access_token: str,
        refresh_token: Optional[str],
        extra_data: Mapping[str, Any],
    ) -> BaseDevice:
        state: Dict[str, Any] = {
            "kind": kind,
            "accessToken": access_token,
            "refreshToken": refresh_token,
        }
        for name, value in extra_data.items():
            if name in _TOKEN_FIELDS:
                continue
            state[name] = value

        if profile_url:
            response = await http.get(
                str(profile_url),
                auth=f"Bearer {access_token}",
                accept="application/json",
            )
            profile = json.loads(response)
            if profile_fields:
                for name in profile_fields:
                    state[name] = profile.get(name)
            else:
                state["profile"] = profile

        return cls(engine, state)

    return load_from_oauth2


def _uses_default_loader(device_class: Type[BaseDevice]) -> bool:
    return device_class.load_from_oauth2.__func__ is BaseDevice.load_from_oauth2.__func__


def make_generic_oauth(kind: str, info: Mapping[str, Any], device_class: Type[BaseDevice]) -> Type[BaseDevice]:
    """Install a runner built from the mixin arguments on ``device_class``."""

    namespace: Dict[str, Any] = {"__module__": device_class.__module__}
    if _uses_default_loader(device_class):
        namespace["load_from_oauth2"] = classmethod(_make_load_from_oauth2(kind, info))

    runner = OAuth2Runner(
        OAuth2Params(
            authorize=str(info.get("authorize", "")),
            get_access_token=str(info.get("get_access_token", "")),
            scope=tuple(info.get("scope") or ()),
            set_state=bool(info.get("set_state")),
            redirect_uri=str(info["redirect_uri"]) if info.get("redirect_uri") else None,
            use_basic_client_auth=bool(info.get("use_basic_client_auth")),
        )
    )
    configured = type(device_class.__name__, (device_class,), namespace)
    configured.__qualname__ = device_class.__qualname__
    return runner.install(configured)


class OAuth2ConfigMixin(BaseConfigMixin):
    def has_missing_keys(self) -> bool:
        return False

    def install(self, device_class: Type[BaseDevice]) -> Type[BaseDevice]:
        runner = device_class.run_oauth2
        if runner is None:
            info = self.mixin.args() if self.mixin is not None else {}
            return make_generic_oauth(self.kind, info, device_class)

        install = getattr(runner, "install", None)
        if install is not None:
            return install(device_class)
        LOGGER.debug("%s provides its own OAuth flow", self.kind)
        return device_class
