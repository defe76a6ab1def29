"""Configuration loader for skill-devkit."""

from __future__ import annotations

from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import constants


@dataclass(slots=True)
class HttpConfig:
    timeout_seconds: float = constants.DEFAULT_HTTP_TIMEOUT_SECONDS
    user_agent: str = constants.DEFAULT_USER_AGENT
    proxy: Optional[str] = None  # forward proxy for requests to default ports


@dataclass(slots=True)
class OAuthConfig:
    origin: str = constants.DEFAULT_OAUTH_ORIGIN


@dataclass(slots=True)
class LoaderConfig:
    manifest_dir: Optional[Path] = None
    module_dir: Optional[Path] = None


@dataclass(slots=True)
class ProxyConfig:
    base_url: str = constants.DEFAULT_PROXY_BASE_URL
    developer_key: Optional[str] = None
    locale: str = "en-US"


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = None
    log_network: bool = False


@dataclass(slots=True)
class DevkitConfig:
    http: HttpConfig
    oauth: OAuthConfig
    loader: LoaderConfig
    proxy: ProxyConfig
    logging: LoggingConfig
    raw: ConfigParser
    path: Path


def _optional_path(parser: ConfigParser, section: str, option: str) -> Optional[Path]:
    value = parser.get(section, option, fallback="").strip()
    if not value:
        return None
    return Path(value).expanduser()


def load_config(path: Optional[Path] = None) -> DevkitConfig:
    """Load configuration from disk, applying defaults where necessary."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    parser = ConfigParser(interpolation=None)
    parser.read_dict(
        {
            "http": {
                "timeout_seconds": str(constants.DEFAULT_HTTP_TIMEOUT_SECONDS),
                "user_agent": constants.DEFAULT_USER_AGENT,
                "proxy": "",
            },
            "oauth": {
                "origin": constants.DEFAULT_OAUTH_ORIGIN,
            },
            "loader": {
                "manifest_dir": "",
                "module_dir": "",
            },
            "proxy": {
                "base_url": constants.DEFAULT_PROXY_BASE_URL,
                "developer_key": "",
                "locale": "en-US",
            },
            "logging": {
                "level": "INFO",
                "path": "",
                "log_network": "false",
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    default_timeout = HttpConfig().timeout_seconds
    try:
        timeout_value = parser.getfloat("http", "timeout_seconds", fallback=default_timeout)
    except ValueError:
        timeout_value = default_timeout

    http = HttpConfig(
        timeout_seconds=max(0.0, timeout_value),
        user_agent=parser.get("http", "user_agent"),
        proxy=parser.get("http", "proxy", fallback="").strip() or None,
    )

    oauth = OAuthConfig(origin=parser.get("oauth", "origin").rstrip("/"))

    loader = LoaderConfig(
        manifest_dir=_optional_path(parser, "loader", "manifest_dir"),
        module_dir=_optional_path(parser, "loader", "module_dir"),
    )

    proxy = ProxyConfig(
        base_url=parser.get("proxy", "base_url"),
        developer_key=parser.get("proxy", "developer_key", fallback="").strip() or None,
        locale=parser.get("proxy", "locale", fallback="en-US"),
    )

    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        path=_optional_path(parser, "logging", "path"),
        log_network=parser.getboolean("logging", "log_network", fallback=False),
    )

    return DevkitConfig(
        http=http,
        oauth=oauth,
        loader=loader,
        proxy=proxy,
        logging=logging_config,
        raw=parser,
        path=config_path,
    )


def save_config(config: DevkitConfig) -> None:
    """Persist the current configuration to disk."""

    config_path = config.path
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as stream:
        config.raw.write(stream)
