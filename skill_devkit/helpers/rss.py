"""Fetch and normalize RSS/Atom feeds."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import feedparser

from . import http

LOGGER = logging.getLogger(__name__)


def _entry_date(entry: Any) -> datetime:
    parsed = entry.get("updated_parsed") or entry.get("published_parsed")
    if parsed is None:
        return datetime.now(timezone.utc)
    return datetime(*parsed[:6], tzinfo=timezone.utc)


def _entry_picture(entry: Any) -> Optional[str]:
    for thumbnail in entry.get("media_thumbnail") or ():
        if thumbnail.get("url"):
            return thumbnail["url"]
    for media in entry.get("media_content") or ():
        if media.get("medium") == "image" and media.get("url"):
            return media["url"]
    image = entry.get("image")
    if image and image.get("href"):
        return image["href"]
    for enclosure in entry.get("enclosures") or ():
        if str(enclosure.get("type", "")).startswith("image/"):
            return enclosure.get("href")
    return None


def _normalize_entry(entry: Any) -> Dict[str, Any]:
    date = _entry_date(entry)
    return {
        "guid": entry.get("id") or entry.get("link"),
        "title": entry.get("title"),
        "description": entry.get("summary") or entry.get("description"),
        "link": entry.get("link"),
        "author": entry.get("author"),
        "updated_time": date,
        "updated": date,
        "picture_url": _entry_picture(entry),
        "categories": [tag.get("term") for tag in entry.get("tags") or () if tag.get("term")],
    }


def parse_feed(body: bytes, url: str) -> List[Dict[str, Any]]:
    """Parse a downloaded feed document, newest entries first."""

    feed = feedparser.parse(body, response_headers={"content-location": url})
    if feed.bozo and not feed.entries:
        raise ValueError(f"Invalid RSS feed at {url}: {feed.get('bozo_exception')}")

    entries = [_normalize_entry(entry) for entry in feed.entries]
    entries.sort(key=lambda entry: entry["updated_time"], reverse=True)
    return entries


async def get(url: str, **options: Any) -> List[Dict[str, Any]]:
    """Download ``url`` through the HTTP helper and parse it as a feed."""

    options["raw"] = True
    body, _content_type = await http.get(url, **options)
    entries = await asyncio.to_thread(parse_feed, body, url)
    LOGGER.debug("Fetched %d entries from %s", len(entries), url)
    return entries
