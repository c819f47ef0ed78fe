"""offlinekit -- Offline-first request cache and background-sync engine.

This package sits between a web client and its remote HTTP/JSON API. Every
outbound request is classified by a router, answered under one of three
caching strategies (cache-first, network-first, stale-while-revalidate), and
mutating requests that fail while offline are persisted in a durable queue
and replayed once connectivity returns.

Typical usage::

    from offlinekit.engine import Engine
    from offlinekit.models import FetchRequest

    async with Engine.from_config(config) as engine:
        await engine.install()
        response = await engine.handle(FetchRequest(url="https://example.com/api/matches"))

Modules:
    engine: The :class:`Engine` context object tying everything together.
    router: Request classification into caching routes.
    strategies: The three request-resolution algorithms.
    cache: Durable, partitioned response storage.
    sync: Durable replay queue for mutating requests.
    lifecycle: Generation versioning and periodic refresh.
    models: Pydantic models shared across the entire package.
    config: XDG-aware configuration management.
    exceptions: Exception hierarchy with exit-code mapping.
"""

__version__ = "0.3.0"

