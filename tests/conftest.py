from dataclasses import dataclass
from typing import Any, Dict

import pytest

from skill_devkit.helpers import http
from skill_devkit.config import HttpConfig
from skill_devkit.manifest import ClassManifest


@dataclass
class FakeEngine:
    origin: str = "http://127.0.0.1:3000"
    locale: str = "en-US"


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture(autouse=True)
def reset_http_config():
    """Keep process-wide HTTP defaults isolated between tests."""
    previous = http.get_http_config()
    http.configure_http(HttpConfig())
    yield
    http.configure_http(previous)


def make_manifest(kind: str = "com.example", **data: Any) -> ClassManifest:
    payload: Dict[str, Any] = {"kind": kind}
    payload.update(data)
    return ClassManifest.from_dict(payload)
