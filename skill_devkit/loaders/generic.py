"""Loaders that synthesize device classes from manifest annotations."""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Mapping, Optional, Type

from ..core.utils import format_string, parse_generic_response
from ..device import BaseDevice
from ..errors import ImplementationError
from ..helpers import http
from ..manifest import FunctionDef, get_poll_interval
from ..wrapping import wrap_device_functions
from .base import BaseLoader, install_base, make_generic_device_class

LOGGER = logging.getLogger(__name__)


class DeclarativeLoader(BaseLoader):
    """Base for loaders whose functions are generated rather than hand-written.

    Subclasses return the generated methods from :meth:`_function_namespace`.
    The class is built once; a failed build is retried on the next call.
    """

    _loaded: Optional[Type[BaseDevice]] = None

    def _function_namespace(self) -> Dict[str, Any]:
        return {}

    def _load_module(self) -> Type[BaseDevice]:
        device_class = make_generic_device_class(
            self._manifest, self._config, self._function_namespace()
        )
        device_class = install_base(device_class, self._manifest, self._config)
        return wrap_device_functions(device_class, self._manifest, self._parents)

    async def get_device_class(self) -> Type[BaseDevice]:
        if self._loaded is None:
            self._loaded = self._load_module()
        return self._loaded


def _encode_params(params: Mapping[str, Any]) -> str:
    return json.dumps(dict(params), default=str)


def _make_rest_action(fndef: FunctionDef) -> Callable[..., Any]:
    base_url = str(fndef.annotation("url", ""))
    method = str(fndef.annotation("method") or "POST")

    async def action(self: BaseDevice, params: Mapping[str, Any], env: Any = None) -> Any:
        url = format_string(base_url, self.state, params)
        return await http.request(
            url,
            method,
            _encode_params(params),
            auth=getattr(self, "auth", None),
            use_oauth2=self,
            data_content_type="application/json",
        )

    return action


def _make_rest_query(fndef: FunctionDef) -> Callable[..., Any]:
    base_url = str(fndef.annotation("url", ""))
    method = str(fndef.annotation("method") or "GET")

    async def query(
        self: BaseDevice, params: Mapping[str, Any], hints: Any = None, env: Any = None
    ) -> Any:
        url = format_string(base_url, self.state, params)
        data = None if method == "GET" else _encode_params(params)
        response = await http.request(
            url,
            method,
            data,
            data_content_type=None if method == "GET" else "application/json",
            auth=getattr(self, "auth", None),
            use_oauth2=self,
            accept="application/json",
        )
        return parse_generic_response(json.loads(response), fndef)

    return query


class GenericRestLoader(DeclarativeLoader):
    """REST devices: each function is one HTTP request to its ``url`` annotation.

    Actions default to ``POST`` with the parameters as a JSON body; queries
    default to ``GET`` and map the JSON response onto their output
    arguments.
    """

    def _function_namespace(self) -> Dict[str, Any]:
        namespace: Dict[str, Any] = {}
        for action, fndef in self.iterate_functions("actions"):
            namespace["do_" + action] = _make_rest_action(fndef)

        for query, fndef in self.iterate_functions("queries"):
            if get_poll_interval(fndef) == 0:
                raise ImplementationError(f"Poll interval cannot be 0 for REST query {query}")
            namespace["get_" + query] = _make_rest_query(fndef)
        return namespace
