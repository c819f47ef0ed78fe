"""Built-in CLI sub-commands for offlinekit.

* :mod:`~offlinekit.commands.status` -- ``status`` and ``fetch``.
* :mod:`~offlinekit.commands.cache` -- list, clear, and warm partitions.
* :mod:`~offlinekit.commands.queue` -- list, add, replay, and drop queued
  mutations.
* :mod:`~offlinekit.commands.lifecycle` -- install, skip-waiting, refresh.
* :mod:`~offlinekit.commands.config` -- view and modify configuration.

Commands that touch storage run a short-lived :class:`~offlinekit.engine.Engine`
through :func:`run_engine`, which turns an
:class:`~offlinekit.exceptions.OfflinekitError` into an error message and
the matching exit code.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

import typer

T = TypeVar("T")


def run_engine(ctx: typer.Context, func: Callable[[Any], Awaitable[T]]) -> T:
    """Resolve the configuration, open an engine, and await ``func(engine)``.

    Raises:
        typer.Exit: With the error's exit code on :class:`OfflinekitError`.
    """
    from offlinekit.config import resolve_config
    from offlinekit.engine import Engine
    from offlinekit.exceptions import OfflinekitError
    from offlinekit.output import error

    obj = ctx.obj or {}

    async def _run() -> T:
        config = resolve_config(
            cli_base_url=obj.get("base_url"), cli_cache_dir=obj.get("cache_dir")
        )
        async with Engine.from_config(config) as engine:
            return await func(engine)

    try:
        return asyncio.run(_run())
    except OfflinekitError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def is_forced(ctx: typer.Context) -> bool:
    return bool(ctx.obj.get("force", False)) if ctx.obj else False
