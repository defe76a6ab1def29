"""Constants used across the skill-devkit package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "skill-devkit"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path.home() / ".config" / APP_NAME / DEFAULT_CONFIG_FILENAME

DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0
DEFAULT_USER_AGENT = "Thingpedia/1.0.0 skill-devkit"

DEFAULT_OAUTH_ORIGIN = "http://127.0.0.1:3000"
DEFAULT_PROXY_BASE_URL = "https://thingpedia.stanford.edu/thingpedia/api/v3"

# sentinel poll interval for queries that cannot be monitored
NON_DETERMINISTIC_POLL_INTERVAL = -1

LAST_POLL_KEY = "last-poll"
