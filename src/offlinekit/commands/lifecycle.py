"""Lifecycle commands -- install, activate, and refresh generations."""

from __future__ import annotations

import typer

from offlinekit.commands import run_engine
from offlinekit.models import GenerationState
from offlinekit.output import info, success, suggest

lifecycle_app = typer.Typer(no_args_is_help=True)


@lifecycle_app.command("install")
def lifecycle_install(
    ctx: typer.Context,
    activate: bool = typer.Option(
        False, "--activate", help="Take over immediately if another generation is active."
    ),
) -> None:
    """Pre-cache the shell resources for the configured generation.

    The first generation activates straight away. A newer one waits until
    ``lifecycle skip-waiting`` (or ``--activate``).

    Example::

        OFFLINEKIT_VERSION=2 offlinekit lifecycle install
    """

    async def _install(engine):
        state = await engine.install()
        if activate and state == GenerationState.WAITING:
            state = await engine.skip_waiting()
        return engine.lifecycle.generation, state

    generation, state = run_engine(ctx, _install)
    if state == GenerationState.WAITING:
        info(f"Generation v{generation.version} installed and waiting.")
        suggest("Run 'offlinekit lifecycle skip-waiting' to activate it.")
    else:
        success(f"Generation v{generation.version} is {state.value}.")


@lifecycle_app.command("skip-waiting")
def lifecycle_skip_waiting(ctx: typer.Context) -> None:
    """Activate the waiting generation and purge older partitions."""

    async def _skip(engine):
        if engine.lifecycle.state == GenerationState.INSTALLING:
            # A fresh process only knows it is waiting after installing.
            await engine.install()
        return await engine.skip_waiting()

    state = run_engine(ctx, _skip)
    success(f"Generation is {state.value}.")


@lifecycle_app.command("refresh")
def lifecycle_refresh(ctx: typer.Context) -> None:
    """Run one periodic tick: refresh listings, then replay every queue."""

    async def _refresh(engine):
        return await engine.on_periodic_sync()

    refreshed = run_engine(ctx, _refresh)
    success(f"Refreshed {refreshed} resource(s).")
