"""Request classification into caching routes.

:class:`StrategyRouter` maps an outgoing :class:`~offlinekit.models.FetchRequest`
to a :class:`~offlinekit.models.Route` -- the strategy, the logical cache
partition, and that class's freshness bounds -- or to ``None``, meaning the
request bypasses the cache entirely (non-GET methods and non-HTTP(S) schemes).

Rules are evaluated in a fixed order and the first match wins:

======  ==================  ========================  ==========
Order   Request class       Strategy                  Partition
======  ==================  ========================  ==========
1       font                cache-first               fonts
2       image               cache-first               images
3       api                 network-first             api
4       static              cache-first               static
5       image transform     cache-first               images
6       navigation          stale-while-revalidate    dynamic
7       everything else     network-first             dynamic
======  ==================  ========================  ==========

Fonts and content-hashed build assets never change under the same URL, so
they are cached aggressively. API responses must not be more than a minute
old. Pages always revalidate in the background so a new deploy shows up
without a hard reload.
"""

from __future__ import annotations

from typing import Callable, Optional
from urllib.parse import urlsplit

from offlinekit.models import FetchRequest, RequestClass, Route, RoutingConfig, StrategyName
from offlinekit.urls import is_http_url, resolve_url

_ROUTE_TARGETS: dict[RequestClass, tuple[StrategyName, str]] = {
    RequestClass.FONT: (StrategyName.CACHE_FIRST, "fonts"),
    RequestClass.IMAGE: (StrategyName.CACHE_FIRST, "images"),
    RequestClass.API: (StrategyName.NETWORK_FIRST, "api"),
    RequestClass.STATIC: (StrategyName.CACHE_FIRST, "static"),
    RequestClass.IMAGE_TRANSFORM: (StrategyName.CACHE_FIRST, "images"),
    RequestClass.NAVIGATION: (StrategyName.STALE_WHILE_REVALIDATE, "dynamic"),
    RequestClass.OTHER: (StrategyName.NETWORK_FIRST, "dynamic"),
}


class StrategyRouter:
    """Classifies requests using the host and path patterns in :class:`RoutingConfig`.

    Args:
        config: Routing patterns and per-class cache policies.
        base_url: Origin that relative request URLs resolve against.
    """

    def __init__(self, config: Optional[RoutingConfig] = None, base_url: Optional[str] = None) -> None:
        self._config = config or RoutingConfig()
        self._base_url = base_url
        self._rules: list[tuple[RequestClass, Callable[[FetchRequest, str, str], bool]]] = [
            (RequestClass.FONT, self._is_font),
            (RequestClass.IMAGE, self._is_image),
            (RequestClass.API, self._is_api),
            (RequestClass.STATIC, self._is_static),
            (RequestClass.IMAGE_TRANSFORM, self._is_image_transform),
            (RequestClass.NAVIGATION, self._is_navigation),
        ]

    def classify(self, request: FetchRequest) -> Optional[Route]:
        """Return the route for *request*, or ``None`` to bypass the cache."""
        if request.method.upper() != "GET":
            return None
        url = resolve_url(request.url, self._base_url)
        if not is_http_url(url):
            return None

        parts = urlsplit(url)
        host = (parts.hostname or "").lower()
        path = parts.path or "/"

        request_class = RequestClass.OTHER
        for candidate, matches in self._rules:
            if matches(request, host, path):
                request_class = candidate
                break
        return self.route_for(request_class)

    def route_for(self, request_class: RequestClass) -> Route:
        """Build the route for *request_class* with its configured policy."""
        strategy, cache_name = _ROUTE_TARGETS[request_class]
        policy = self._config.policy_for(request_class)
        return Route(
            request_class=request_class,
            strategy=strategy,
            cache_name=cache_name,
            max_age=policy.max_age,
            max_entries=policy.max_entries,
        )

    # ------------------------------------------------------------------ #
    # Rules
    # ------------------------------------------------------------------ #

    def _is_font(self, request: FetchRequest, host: str, path: str) -> bool:
        return (
            host in self._config.font_hosts
            or self._config.font_path_marker in path
            or request.destination == "font"
        )

    def _is_image(self, request: FetchRequest, host: str, path: str) -> bool:
        if request.destination == "image":
            return True
        _, dot, ext = path.rpartition(".")
        return bool(dot) and ext.lower() in self._config.image_extensions

    def _is_api(self, request: FetchRequest, host: str, path: str) -> bool:
        return path.startswith(self._config.api_prefix) or host in self._config.api_hosts

    def _is_static(self, request: FetchRequest, host: str, path: str) -> bool:
        return path.startswith(self._config.static_prefix)

    def _is_image_transform(self, request: FetchRequest, host: str, path: str) -> bool:
        return path.startswith(self._config.image_transform_prefix)

    def _is_navigation(self, request: FetchRequest, host: str, path: str) -> bool:
        return request.is_navigation
