"""HTTP request helpers built on aiohttp.

Every helper accepts an optional ``session``; when it is omitted a
short-lived :class:`aiohttp.ClientSession` is created for the request and
closed afterwards.
"""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Optional, Tuple, Union
from urllib.parse import urljoin, urlparse

import aiohttp

from ..config import HttpConfig
from ..errors import HTTPError

LOGGER = logging.getLogger(__name__)

_REDIRECT_SAME_METHOD = (301, 302, 307, 308)
_DEFAULT_PORTS = (None, 80, 443)

_http_config = HttpConfig()


def configure_http(config: HttpConfig) -> None:
    """Set the process-wide defaults (timeout, user agent, proxy)."""
    global _http_config
    _http_config = config


def get_http_config() -> HttpConfig:
    return _http_config


@dataclass(slots=True)
class HTTPRequestOptions:
    auth: Optional[str] = None
    use_oauth2: Any = None  # a device exposing the "oauth2" interface
    auth_method: str = "Bearer"
    accept: Optional[str] = None
    data_content_type: Optional[str] = None
    user_agent: Optional[str] = None
    extra_headers: Dict[str, str] = field(default_factory=dict)
    ignore_errors: bool = False
    follow_redirects: bool = True
    raw: bool = False
    timeout: Optional[float] = None
    session: Optional[aiohttp.ClientSession] = None


def _oauth2_interface(options: HTTPRequestOptions) -> Any:
    if options.auth or options.use_oauth2 is None:
        return None
    return options.use_oauth2.query_interface("oauth2")


def _build_headers(options: HTTPRequestOptions, oauth2: Any) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    if options.auth:
        headers["Authorization"] = options.auth
    elif oauth2 is not None:
        headers["Authorization"] = f"{options.auth_method} {oauth2.access_token}"
    if options.accept:
        headers["Accept"] = options.accept
    if options.data_content_type:
        headers["Content-Type"] = options.data_content_type
    headers["User-Agent"] = options.user_agent or _http_config.user_agent
    headers.update(options.extra_headers)
    return headers


def _proxy_for(url: str) -> Optional[str]:
    if not _http_config.proxy:
        return None
    if urlparse(url).port in _DEFAULT_PORTS:
        return _http_config.proxy
    return None


async def _send(
    session: aiohttp.ClientSession,
    url: str,
    method: str,
    data: Union[str, bytes, None],
    options: HTTPRequestOptions,
) -> aiohttp.ClientResponse:
    oauth2 = _oauth2_interface(options)
    attempted_refresh = False
    timeout = aiohttp.ClientTimeout(
        total=options.timeout if options.timeout is not None else _http_config.timeout_seconds
    )

    while True:
        response = await session.request(
            method,
            url,
            data=data,
            headers=_build_headers(options, oauth2),
            allow_redirects=False,
            proxy=_proxy_for(url),
            timeout=timeout,
        )
        status = response.status
        location = response.headers.get("Location")

        if options.follow_redirects and location and status in _REDIRECT_SAME_METHOD:
            response.release()
            url = urljoin(url, location)
            continue
        if options.follow_redirects and location and status == 303:
            response.release()
            url = urljoin(url, location)
            method = "GET"
            data = None
            continue

        if (
            not options.ignore_errors
            and status == 401
            and oauth2 is not None
            and not attempted_refresh
            and oauth2.refresh_token
        ):
            response.release()
            LOGGER.info("Refreshing OAuth 2 credentials for failure in request to %s", url)
            await oauth2.refresh_credentials()
            attempted_refresh = True
            continue

        if not options.ignore_errors and status >= 300:
            detail = await response.text()
            response.release()
            if status not in (301, 302, 303):
                LOGGER.debug("HTTP request to %s failed: %s", url, detail)
            redirect = urljoin(url, location) if location and 300 <= status < 400 else None
            raise HTTPError(status, url, detail, redirect=redirect)

        return response


@contextlib.asynccontextmanager
async def request_stream(
    url: str,
    method: str = "GET",
    data: Union[str, bytes, None] = None,
    **kwargs: Any,
) -> AsyncIterator[aiohttp.ClientResponse]:
    """Issue a request and yield the open response for streaming reads."""

    options = HTTPRequestOptions(**kwargs)
    session = options.session
    owns_session = session is None
    if session is None:
        session = aiohttp.ClientSession()

    try:
        response = await _send(session, url, method, data, options)
        try:
            yield response
        finally:
            response.release()
    finally:
        if owns_session:
            await session.close()


async def request(
    url: str,
    method: str = "GET",
    data: Union[str, bytes, None] = None,
    **kwargs: Any,
) -> Union[str, Tuple[bytes, str]]:
    """Issue a request and return the body as text, or ``(bytes, content_type)`` when ``raw=True``."""

    raw = bool(kwargs.get("raw", False))
    async with request_stream(url, method, data, **kwargs) as response:
        if raw:
            body = await response.read()
            return body, response.headers.get("Content-Type", "")
        return await response.text()


async def get(url: str, **kwargs: Any) -> Union[str, Tuple[bytes, str]]:
    return await request(url, "GET", None, **kwargs)


async def post(url: str, data: Union[str, bytes], **kwargs: Any) -> Union[str, Tuple[bytes, str]]:
    return await request(url, "POST", data, **kwargs)


def get_stream(url: str, **kwargs: Any) -> contextlib.AbstractAsyncContextManager[aiohttp.ClientResponse]:
    return request_stream(url, "GET", None, **kwargs)
