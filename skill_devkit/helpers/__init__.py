"""Helpers available to device implementations."""

from . import http, rss
from .oauth2 import OAuth2Params, OAuth2Runner
from .polling import MemoryStateBinder, PollingStream, StateBinder

__all__ = [
    "MemoryStateBinder",
    "OAuth2Params",
    "OAuth2Runner",
    "PollingStream",
    "StateBinder",
    "http",
    "rss",
]
