"""Root logger setup for the ``skill-devkit`` command line."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"

# Loggers that log every request and response made while loading devices.
NETWORK_LOGGERS = (
    "aiohttp.access",
    "aiohttp.client",
    "skill_devkit.helpers.http",
)


def configure_logging(
    level: str = "INFO", *, log_path: Optional[Path] = None, log_network: bool = False
) -> None:
    """Route device loader logs to stderr, and to ``log_path`` when set.

    Unknown level names fall back to INFO. Unless ``log_network`` is true the
    HTTP helpers only report warnings, so inspecting a device class does not
    dump every manifest download.
    """

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    logging.captureWarnings(True)

    network_level = logging.NOTSET if log_network else logging.WARNING
    for name in NETWORK_LOGGERS:
        logging.getLogger(name).setLevel(network_level)
