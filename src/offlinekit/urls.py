"""URL resolution and cache-key normalisation.

Cache entries are keyed by the normalised absolute URL so that
``HTTPS://Example.com:443/a#top`` and ``https://example.com/a`` resolve to the
same entry. Query strings are kept verbatim: two requests that differ only in
parameter order are distinct resources to the remote API.
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import urljoin, urlsplit, urlunsplit

_DEFAULT_PORTS = {"http": 80, "https": 443}


def is_http_url(url: str) -> bool:
    """Return True if *url* uses the ``http`` or ``https`` scheme."""
    return urlsplit(url).scheme.lower() in _DEFAULT_PORTS


def resolve_url(url: str, base_url: Optional[str] = None) -> str:
    """Resolve *url* against *base_url* when it is relative.

    Absolute URLs, and any URL when no base is configured, are returned
    unchanged.
    """
    if not base_url or urlsplit(url).scheme:
        return url
    return urljoin(base_url.rstrip("/") + "/", url.lstrip("/"))


def normalize_url(url: str, base_url: Optional[str] = None) -> str:
    """Return the cache key for *url*.

    Resolves against *base_url*, lower-cases scheme and host, drops the
    default port and the fragment, and defaults an empty path to ``/``.
    """
    parts = urlsplit(resolve_url(url, base_url))
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    netloc = host
    if parts.port is not None and parts.port != _DEFAULT_PORTS.get(scheme):
        netloc = f"{host}:{parts.port}"
    if parts.username:
        userinfo = parts.username
        if parts.password:
            userinfo = f"{userinfo}:{parts.password}"
        netloc = f"{userinfo}@{netloc}"
    return urlunsplit((scheme, netloc, parts.path or "/", parts.query, ""))
