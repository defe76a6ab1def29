"""Devices whose queries are executed by the remote API.

Used when a class needs API keys that this installation does not have.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Optional

from ..device import BaseDevice
from ..errors import UnsupportedError
from ..manifest import ClassManifest, get_poll_interval
from .base import Parents
from .generic import DeclarativeLoader

if TYPE_CHECKING:
    from ..client import ApiClient
    from ..registry import ModuleRegistry


async def _unsupported_action(self: BaseDevice, params: Mapping[str, Any], env: Any = None) -> None:
    raise UnsupportedError()


def _unsupported_subscribe(self: BaseDevice, *args: Any, **kwargs: Any) -> Any:
    raise UnsupportedError()


def _make_proxied_query(client: "ApiClient", query: str) -> Callable[..., Any]:
    async def get(
        self: BaseDevice, params: Mapping[str, Any], hints: Any = None, env: Any = None
    ) -> Any:
        return await client.invoke_query(self.kind, self.unique_id, query, params, hints)

    return get


class ProxyLoader(DeclarativeLoader):
    def __init__(
        self,
        kind: str,
        manifest: ClassManifest,
        parents: Optional[Parents] = None,
        registry: Optional["ModuleRegistry"] = None,
    ) -> None:
        super().__init__(kind, manifest, parents, registry)
        if registry is None:
            raise ValueError("ProxyLoader requires a registry with an API client")
        self._client = registry.client

    def _function_namespace(self) -> Dict[str, Any]:
        namespace: Dict[str, Any] = {}
        for action, _fndef in self.iterate_functions("actions"):
            namespace["do_" + action] = _unsupported_action

        for query, fndef in self.iterate_functions("queries"):
            namespace["get_" + query] = _make_proxied_query(self._client, query)
            if get_poll_interval(fndef) == 0:
                namespace["subscribe_" + query] = _unsupported_subscribe
        return namespace
