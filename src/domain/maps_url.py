"""
Maps URLs
=========

Checks that a URL points at a Google page that shows place reviews before a
browser is started for it.
"""

import re
from urllib.parse import parse_qs, urlparse

from .errors import ValidationError

GOOGLE_DOMAINS = (
    "maps.google.com",
    "www.google.com",
    "google.com",
    "maps.app.goo.gl",
    "goo.gl",
)

_COORDINATES = re.compile(r"@-?\d+\.\d+,-?\d+\.\d+")


def _is_google_host(hostname: str) -> bool:
    return any(hostname == domain or hostname.endswith("." + domain) for domain in GOOGLE_DOMAINS)


def is_maps_url(url: str) -> bool:
    """
    True for Google URLs that lead to a place with reviews:
    /maps/place/ pages, /search?q= results, /maps?place_id= links,
    goo.gl short links and /maps/@lat,lng views.
    """
    if not url or not isinstance(url, str):
        return False

    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return False

    hostname = parsed.hostname.lower()
    if not _is_google_host(hostname):
        return False

    path = parsed.path
    query = parse_qs(parsed.query)

    if "/maps/place/" in path:
        return True
    if "/search" in path and query.get("q"):
        return True
    if "/maps" in path and query.get("place_id"):
        return True
    if "goo.gl" in hostname:
        return True
    return "/maps/@" in path and bool(_COORDINATES.search(path))


def require_maps_url(url: str) -> str:
    """Return the stripped URL, or raise ValidationError if it is not a Maps place URL."""
    url = (url or "").strip()
    if not url:
        raise ValidationError("url must not be empty")
    if not is_maps_url(url):
        raise ValidationError(
            f"url must be a Google Maps place, search or share link, got '{url[:100]}'"
        )
    return url
