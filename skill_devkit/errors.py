"""Exception hierarchy shared by loaders, helpers and devices."""

from __future__ import annotations

from typing import Optional


class DevkitError(Exception):
    """Base class for all skill-devkit errors."""


class ImplementationError(DevkitError):
    """The implementation of a device has a programming error (e.g. a missing function)."""

    def __init__(self, message: str) -> None:
        super().__init__(f"Implementation Error: {message}")


class UnsupportedError(DevkitError):
    """Some functionality is intentionally not available for this device."""

    code = "ENOSYS"

    def __init__(self, message: str = "This command is not available in this version of the SDK") -> None:
        super().__init__(message)


class NotMonitorableError(DevkitError):
    """Raised when subscribing to a query declared as non-deterministic."""

    def __init__(self) -> None:
        super().__init__("This query is non-deterministic and cannot be monitored")


class OAuthError(DevkitError):
    """An error occurred during OAuth."""


class BookkeepingError(DevkitError):
    """A caller violated the reference-counting contract of a RefCounted object."""


class HTTPError(DevkitError):
    """Raised for HTTP responses with a status code of 300 or above."""

    def __init__(self, code: int, url: str, detail: str, *, redirect: Optional[str] = None) -> None:
        super().__init__(f"Unexpected HTTP error {code} in request to {url}")
        self.code = code
        self.url = url
        self.detail = detail
        self.redirect = redirect
