"""RSS feed devices."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping

from ..core.utils import format_string
from ..device import BaseDevice
from ..errors import ImplementationError
from ..helpers import rss
from ..manifest import FunctionDef, get_poll_interval
from .generic import DeclarativeLoader


def _make_feed_query(fndef: FunctionDef) -> Callable[..., Any]:
    base_url = str(fndef.annotation("url", ""))

    async def query(
        self: BaseDevice, params: Mapping[str, Any], hints: Any = None, env: Any = None
    ) -> List[Dict[str, Any]]:
        url = format_string(base_url, self.state, params)
        return await rss.get(url, auth=getattr(self, "auth", None), use_oauth2=self)

    return query


class RssLoader(DeclarativeLoader):
    """Every query downloads the feed at its ``url`` annotation."""

    def _function_namespace(self) -> Dict[str, Any]:
        for action in self._manifest.actions:
            raise ImplementationError(f"Invalid action {action}: RSS devices cannot have actions")

        namespace: Dict[str, Any] = {}
        for query, fndef in self.iterate_functions("queries"):
            if get_poll_interval(fndef) == 0:
                raise ImplementationError(f"Poll interval cannot be 0 for RSS query {query}")
            namespace["get_" + query] = _make_feed_query(fndef)
        return namespace
