"""Base class for device implementations."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    ClassVar,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Tuple,
    Type,
)
from urllib.parse import parse_qsl, urlparse

from .core.events import Observable
from .core.utils import format_string

if TYPE_CHECKING:
    from .wrapping import FunctionEntry
    from .manifest import ClassManifest

LOGGER = logging.getLogger(__name__)

STATE_CHANGED = "state-changed"

DeviceState = Dict[str, Any]
SessionMap = Dict[str, str]


class Tier(str, Enum):
    GLOBAL = "global"
    PHONE = "phone"
    SERVER = "server"
    DESKTOP = "desktop"
    CLOUD = "cloud"


class Availability(IntEnum):
    UNAVAILABLE = 0
    AVAILABLE = 1
    OWNER_UNAVAILABLE = 2
    UNKNOWN = -1


@dataclass(slots=True)
class DeviceMetadata:
    """Normalized class metadata consumed by the host engine."""

    kind: str
    version: int = 0
    name: str = ""
    description: str = ""
    types: List[str] = field(default_factory=list)
    category: str = "online"
    auth: Dict[str, Any] = field(default_factory=lambda: {"type": "none"})
    params: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "version": self.version,
            "name": self.name,
            "description": self.description,
            "types": list(self.types),
            "category": self.category,
            "auth": dict(self.auth),
            "params": dict(self.params),
        }


class Engine(Protocol):
    """The host engine, as seen by device implementations."""

    @property
    def origin(self) -> str:
        """Base URL used to build OAuth redirect URIs."""

    @property
    def locale(self) -> str: ...


@dataclass(slots=True)
class OAuthRequest:
    """The query string and session of an OAuth redirect back to the engine."""

    query: Dict[str, str]
    session: SessionMap

    @classmethod
    def from_url(cls, url: str, session: SessionMap) -> "OAuthRequest":
        return cls(query=dict(parse_qsl(urlparse(url).query)), session=session)


class ConfigDelegate(ABC):
    """Interactive channel to the user during device configuration."""

    @abstractmethod
    async def config_done(self) -> None:
        """Configuration completed successfully."""

    @abstractmethod
    async def config_failed(self, error: BaseException) -> None:
        """Configuration failed."""

    @abstractmethod
    async def confirm(self, question: str) -> bool:
        """Ask a yes/no question."""

    @abstractmethod
    async def request_code(self, question: str, secret: bool = False) -> str:
        """Ask for a free-form answer, such as a PIN."""


class BaseDevice(Observable):
    """A configured instance of a device class.

    Subclasses receive ``metadata`` and ``manifest`` from the loader that
    creates them. Functions declared by the manifest are exposed as
    ``do_<name>`` (actions), ``get_<name>`` and ``subscribe_<name>``
    (queries), and are also listed in ``function_table``.

    ``run_oauth2`` is a callable ``(device_class, engine, request)``. With a
    ``None`` request it returns ``(authorize_url, session)``; otherwise it
    completes the flow and returns the new device, or ``None`` when the user
    denied access.
    """

    metadata: ClassVar[DeviceMetadata] = DeviceMetadata(kind="org.thingpedia.builtin.unknown")
    manifest: ClassVar[Optional["ClassManifest"]] = None
    subdevices: ClassVar[Dict[str, Type["BaseDevice"]]] = {}
    function_table: ClassVar[Dict[str, "FunctionEntry"]] = {}
    run_oauth2: ClassVar[Optional[Callable[..., Any]]] = None

    def __init__(self, engine: Engine, state: DeviceState) -> None:
        super().__init__()
        self.engine = engine
        self.state = state

        metadata = self.metadata
        params = list(metadata.params)
        is_none_auth = metadata.auth.get("type") == "none"

        self.unique_id: Optional[str]
        if is_none_auth and not params:
            self.unique_id = self.kind
        elif is_none_auth:
            self.unique_id = self.kind + "-" + "-".join(
                f"{key}:{state.get(key)}" for key in params
            )
        else:
            # the host picks an id when the device is added
            self.unique_id = None

        self.name = format_string(metadata.name, self.state) if metadata.name else metadata.name
        self.description = (
            format_string(metadata.description, self.state)
            if metadata.description
            else metadata.description
        )
        self.descriptors: List[str] = []
        self.is_transient = False

    @property
    def kind(self) -> str:
        return str(self.state.get("kind", self.metadata.kind))

    @property
    def owner_tier(self) -> Tier:
        return Tier.GLOBAL

    def state_changed(self) -> None:
        self.emit(STATE_CHANGED)

    def update_state(self, state: DeviceState) -> None:
        self.state = state

    def serialize(self) -> DeviceState:
        if self.state is None:
            raise RuntimeError("Device lost state, cannot serialize")
        return self.state

    async def start(self) -> None:
        """Called once the device is added to the engine."""

    async def stop(self) -> None:
        """Called before the device is removed or the engine stops."""

    async def check_available(self) -> Availability:
        return Availability.UNKNOWN

    def has_kind(self, kind: str) -> bool:
        category = self.metadata.category
        if kind == "data-source":
            return category == "data"
        if kind == "online-account":
            return category == "online"
        if kind == "thingengine-system":
            return category == "system"
        return kind == self.kind or kind in self.metadata.types

    def query_interface(self, name: str) -> Any:
        return None

    async def update_oauth2_token(
        self,
        access_token: str,
        refresh_token: Optional[str],
        extra_data: Mapping[str, Any],
    ) -> None:
        self.state["accessToken"] = access_token
        if refresh_token:
            self.state["refreshToken"] = refresh_token
        LOGGER.debug("Updated OAuth 2 tokens for %s", self.kind)
        self.state_changed()

    async def complete_discovery(self, delegate: ConfigDelegate) -> "BaseDevice":
        raise NotImplementedError

    async def update_from_discovery(self, private_data: Mapping[str, Any]) -> None:
        pass

    @classmethod
    async def load_from_oauth2(
        cls,
        engine: Engine,
        access_token: str,
        refresh_token: Optional[str],
        extra_data: Mapping[str, Any],
    ) -> "BaseDevice":
        raise NotImplementedError

    @classmethod
    async def load_from_custom_oauth(cls, engine: Engine) -> Tuple[str, SessionMap]:
        if cls.run_oauth2 is None:
            raise NotImplementedError(f"{cls.metadata.kind} does not support OAuth")
        return await cls.run_oauth2(cls, engine, None)

    @classmethod
    async def complete_custom_oauth(
        cls, engine: Engine, url: str, session: SessionMap
    ) -> Optional["BaseDevice"]:
        if cls.run_oauth2 is None:
            raise NotImplementedError(f"{cls.metadata.kind} does not support OAuth")
        return await cls.run_oauth2(cls, engine, OAuthRequest.from_url(url, session))

    @classmethod
    async def load_from_discovery(
        cls,
        engine: Engine,
        public_data: Mapping[str, Any],
        private_data: Mapping[str, Any],
    ) -> "BaseDevice":
        raise NotImplementedError

    @classmethod
    async def load_interactively(cls, engine: Engine, delegate: ConfigDelegate) -> "BaseDevice":
        return await cls.configure_interactively(engine, delegate)

    @classmethod
    async def configure_interactively(
        cls, engine: Engine, delegate: ConfigDelegate
    ) -> "BaseDevice":
        raise NotImplementedError
