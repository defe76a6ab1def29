"""Command-line interface for skill-devkit."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Type

from . import constants
from .client import ApiClient, FileApiClient, HttpApiClient
from .config import DevkitConfig, load_config
from .device import BaseDevice
from .errors import DevkitError, HTTPError
from .helpers.http import configure_http
from .logging import configure_logging
from .registry import ModuleRegistry

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="skill-devkit", description="Load and inspect device classes"
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser(
        "show-config", help="Print the resolved configuration and exit"
    )

    inspect_parser = subparsers.add_parser(
        "inspect", help="Load a device class and print its normalized metadata"
    )
    inspect_parser.add_argument("kind", help="Device class identifier")

    functions_parser = subparsers.add_parser(
        "functions", help="Load a device class and list its callable functions"
    )
    functions_parser.add_argument("kind", help="Device class identifier")

    oauth_parser = subparsers.add_parser(
        "oauth-url", help="Start the OAuth flow of a device class and print the authorize URL"
    )
    oauth_parser.add_argument("kind", help="Device class identifier")

    return parser


@dataclass(slots=True)
class CliEngine:
    origin: str
    locale: str


def make_client(config: DevkitConfig) -> ApiClient:
    if config.loader.manifest_dir is not None:
        return FileApiClient(config.loader.manifest_dir)
    return HttpApiClient(
        config.proxy.base_url,
        developer_key=config.proxy.developer_key,
        locale=config.proxy.locale,
    )


async def _load_device_class(config: DevkitConfig, kind: str) -> Type[BaseDevice]:
    registry = ModuleRegistry(make_client(config), module_dir=config.loader.module_dir)
    return await registry.get_device_class(kind)


async def _authorize_url(config: DevkitConfig, kind: str) -> str:
    device_class = await _load_device_class(config, kind)
    engine = CliEngine(origin=config.oauth.origin, locale=config.proxy.locale)
    url, _session = await device_class.load_from_custom_oauth(engine)
    return url


def _print_config(config: DevkitConfig) -> None:
    print(f"Configuration loaded from {config.path!s}\n")
    for section in config.raw.sections():
        print(f"[{section}]")
        for key, value in config.raw[section].items():
            print(f"{key} = {value}")
        print()


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)

    if args.command == "show-config":
        _print_config(config)
        return 0

    configure_logging(
        config.logging.level,
        log_path=config.logging.path,
        log_network=config.logging.log_network,
    )
    configure_http(config.http)

    if args.command == "oauth-url":
        try:
            print(asyncio.run(_authorize_url(config, args.kind)))
        except NotImplementedError:
            LOGGER.error("%s does not support OAuth", args.kind)
            return 1
        except (DevkitError, FileNotFoundError) as exc:
            LOGGER.error("Failed to start OAuth for %s: %s", args.kind, exc)
            return 1
        return 0

    try:
        device_class = asyncio.run(_load_device_class(config, args.kind))
    except (DevkitError, FileNotFoundError) as exc:
        if isinstance(exc, HTTPError):
            LOGGER.debug("Response body: %s", exc.detail)
        LOGGER.error("Failed to load %s: %s", args.kind, exc)
        return 1

    if args.command == "inspect":
        print(json.dumps(device_class.metadata.to_dict(), indent=2, sort_keys=True))
        return 0

    if args.command == "functions":
        for attribute, entry in sorted(device_class.function_table.items()):
            print(f"{attribute}\t{entry.kind.value}\t{entry.handler}")
        return 0

    LOGGER.error("Unknown command: %s", args.command)
    return 1


if __name__ == "__main__":
    sys.exit(main())
