"""Clients for the service that provides class manifests and proxied queries."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol

import aiohttp

from .errors import DevkitError, HTTPError, UnsupportedError
from .manifest import ClassManifest

LOGGER = logging.getLogger(__name__)


class ApiClient(Protocol):
    async def get_manifest(self, kind: str) -> ClassManifest: ...

    async def invoke_query(
        self,
        kind: str,
        unique_id: Optional[str],
        query: str,
        params: Mapping[str, Any],
        hints: Any,
    ) -> List[Dict[str, Any]]: ...


class FileApiClient:
    """Reads manifests from ``<directory>/<kind>.json``."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def _read(self, kind: str) -> Dict[str, Any]:
        path = self.directory / f"{kind}.json"
        if not path.is_file():
            raise FileNotFoundError(f"No manifest for {kind} in {self.directory}")
        return json.loads(path.read_text(encoding="utf-8"))

    async def get_manifest(self, kind: str) -> ClassManifest:
        data = await asyncio.to_thread(self._read, kind)
        data.setdefault("kind", kind)
        return ClassManifest.from_dict(data)

    async def invoke_query(
        self,
        kind: str,
        unique_id: Optional[str],
        query: str,
        params: Mapping[str, Any],
        hints: Any,
    ) -> List[Dict[str, Any]]:
        raise UnsupportedError("Proxied queries are not available with a file-based client")


class HttpApiClient:
    """Talks to a remote manifest service over HTTP."""

    def __init__(
        self,
        base_url: str,
        *,
        developer_key: Optional[str] = None,
        locale: str = "en-US",
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.developer_key = developer_key
        self.locale = locale
        self._session = session

    def _query_params(self) -> Dict[str, str]:
        params = {"locale": self.locale}
        if self.developer_key:
            params["developer_key"] = self.developer_key
        return params

    async def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        url = self.base_url + path
        owns_session = self._session is None
        session = self._session or aiohttp.ClientSession()
        try:
            async with session.request(
                method,
                url,
                params=self._query_params(),
                json=payload,
                headers={"Accept": "application/json"},
            ) as response:
                if response.status >= 300:
                    detail = await response.text()
                    raise HTTPError(response.status, url, detail)
                parsed = await response.json(content_type=None)
        finally:
            if owns_session:
                await session.close()

        if not isinstance(parsed, dict):
            raise DevkitError(f"Operation failed: unexpected response {parsed!r}")
        if parsed.get("result") != "ok":
            raise DevkitError(f"Operation failed: {parsed.get('error') or parsed.get('result')}")
        return parsed.get("data")

    async def get_manifest(self, kind: str) -> ClassManifest:
        data = await self._request("GET", f"/devices/code/{kind}")
        if not isinstance(data, dict):
            raise DevkitError(f"Invalid manifest returned for {kind}")
        data.setdefault("kind", kind)
        LOGGER.debug("Fetched manifest for %s", kind)
        return ClassManifest.from_dict(data)

    async def invoke_query(
        self,
        kind: str,
        unique_id: Optional[str],
        query: str,
        params: Mapping[str, Any],
        hints: Any,
    ) -> List[Dict[str, Any]]:
        payload = {
            "uniqueId": unique_id,
            "params": dict(params),
            "hints": hints if isinstance(hints, (dict, list)) else None,
        }
        data = await self._request("POST", f"/proxy/query/{kind}/{query}", payload)
        return list(data or [])
