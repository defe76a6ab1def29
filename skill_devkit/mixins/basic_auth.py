"""HTTP basic authentication from the ``username``/``password`` device state."""

from __future__ import annotations

import base64
from typing import TYPE_CHECKING, Type

from .base import BaseConfigMixin

if TYPE_CHECKING:
    from ..device import BaseDevice


class BasicAuthConfigMixin(BaseConfigMixin):
    def install(self, device_class: Type["BaseDevice"]) -> Type["BaseDevice"]:
        def auth(self: "BaseDevice") -> str:
            credentials = f"{self.state.get('username')}:{self.state.get('password')}"
            return "Basic " + base64.b64encode(credentials.encode("utf-8")).decode("ascii")

        installed = type(
            device_class.__name__,
            (device_class,),
            {"__module__": device_class.__module__, "auth": property(auth)},
        )
        installed.__qualname__ = device_class.__qualname__
        return installed
