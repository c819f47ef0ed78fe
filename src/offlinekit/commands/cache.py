"""Cache commands -- inspect, wipe, and pre-warm cache partitions."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import typer

from offlinekit.commands import is_forced, run_engine
from offlinekit.output import error, info, print_table, success

cache_app = typer.Typer(no_args_is_help=True)


@cache_app.command("list")
def cache_list(
    ctx: typer.Context,
    name: Optional[str] = typer.Argument(
        None, help="Partition to list entries of. Omit to list partitions."
    ),
) -> None:
    """List partitions, or the entries of one partition in eviction order.

    Example::

        offlinekit cache list
        offlinekit cache list offlinekit-v1-api
    """

    async def _list(engine):
        if name is None:
            return engine.store.stats()["partitions"], None
        if not engine.store.has_partition(name):
            return None, None
        return None, [engine.store.get(name, key) for key in engine.store.keys(name)]

    partitions, entries = run_engine(ctx, _list)
    if partitions is not None:
        print_table(
            ["partition", "entries"],
            [[partition, str(count)] for partition, count in partitions.items()],
        )
        return
    if entries is None:
        error(f"No partition named '{name}'")
        raise typer.Exit(code=2)

    rows = [
        [
            entry.key,
            str(entry.status_code),
            datetime.fromtimestamp(entry.stored_at).isoformat(timespec="seconds"),
        ]
        for entry in entries
        if entry is not None
    ]
    print_table(["key", "status", "stored_at"], rows, title=name)


@cache_app.command("clear")
def cache_clear(
    ctx: typer.Context,
    name: str = typer.Argument(
        "dynamic", help="Logical name (e.g. 'dynamic') or full partition name."
    ),
) -> None:
    """Wipe one cache partition.

    Example::

        offlinekit cache clear
        offlinekit cache clear api --force
    """
    if not is_forced(ctx) and not typer.confirm(f"Clear cache partition '{name}'?"):
        info("Cancelled.")
        raise typer.Exit()

    async def _clear(engine):
        return engine.clear_cache(name)

    if run_engine(ctx, _clear):
        success(f"Cleared {name}.")
    else:
        info(f"Nothing to clear for {name}.")


@cache_app.command("warm")
def cache_warm(
    ctx: typer.Context,
    urls: list[str] = typer.Argument(help="URLs to pre-fetch into the dynamic partition."),
) -> None:
    """Pre-fetch URLs into the dynamic partition.

    Each URL is fetched on its own; failures are reported and skipped.

    Example::

        offlinekit --base-url https://example.com cache warm /matches /leaderboard
    """

    async def _warm(engine):
        return await engine.warm(urls)

    stored = run_engine(ctx, _warm)
    success(f"Cached {stored}/{len(urls)} URLs.")
