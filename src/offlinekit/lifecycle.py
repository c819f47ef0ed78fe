"""Generation versioning, cache cutover, and periodic refresh.

A *generation* is one deployed version of the engine together with the cache
partitions it declares (``<prefix>-v<version>-static``, ``-dynamic``,
``-api``, ``-images``, ``-fonts``). :class:`LifecycleManager` moves this
engine's generation through an explicit state machine::

    installing --> waiting --> active --> superseded
         \\______________________^

* **installing** -- pre-populate the shell resources into the ``static``
  partition. Every resource is fetched on its own; one failure is logged and
  does not fail the install.
* **waiting** -- installed while another generation still serves traffic.
  Leaves this state only on an explicit :meth:`LifecycleManager.skip_waiting`.
* **active** -- every partition not declared by this generation is deleted
  and this generation is recorded as the active one.
* **superseded** -- the previous generation, once a newer one is active.

The active version is persisted in ``<root>/lifecycle`` so a restart with
the same version comes straight back as active, and a restart with a newer
version waits for take-over.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import diskcache

from offlinekit.cache.store import CacheStore
from offlinekit.client import NetworkClient
from offlinekit.events import MessageBus
from offlinekit.exceptions import LifecycleError, TransportError
from offlinekit.models import (
    FetchRequest,
    Generation,
    GenerationState,
    LifecycleConfig,
    MessageType,
)
from offlinekit.urls import normalize_url

logger = logging.getLogger(__name__)

_ACTIVE_KEY = "active"

# Transitions allowed by the state machine; anything else is a LifecycleError.
_TRANSITIONS: dict[GenerationState, set[GenerationState]] = {
    GenerationState.INSTALLING: {GenerationState.WAITING, GenerationState.ACTIVE},
    GenerationState.WAITING: {GenerationState.ACTIVE, GenerationState.SUPERSEDED},
    GenerationState.ACTIVE: {GenerationState.SUPERSEDED},
    GenerationState.SUPERSEDED: set(),
}


class LifecycleManager:
    """Drives one generation from install to active and refreshes its data.

    Args:
        root: Storage root. Generation state lives in ``root / "lifecycle"``.
        config: Generation identity, pre-cache list, and refresh URLs.
        store: The cache whose partitions this generation owns.
        client: Network client for pre-caching and refresh.
        bus: Message bus for ``UPDATE_AVAILABLE`` and ``MATCHES_REFRESHED``.
        base_url: Origin that relative resource URLs resolve against.
    """

    def __init__(
        self,
        root: str | Path,
        config: LifecycleConfig,
        store: CacheStore,
        client: NetworkClient,
        bus: Optional[MessageBus] = None,
        base_url: Optional[str] = None,
    ) -> None:
        self._config = config
        self._store = store
        self._client = client
        self._bus = bus or MessageBus()
        self._base_url = base_url
        self._state = diskcache.Cache(str(Path(root) / "lifecycle"))
        self.generation = Generation(version=config.version, prefix=config.prefix)
        self.previous: Optional[Generation] = None

        active = self._load_active()
        if active is not None and active.version == self.generation.version:
            self.generation.state = GenerationState.ACTIVE

    # ------------------------------------------------------------------ #
    # State
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> GenerationState:
        return self.generation.state

    @property
    def serving(self) -> Generation:
        """The generation whose partitions answer requests right now.

        While this generation is installing or waiting, the previously active
        generation keeps serving; with no previous generation, this one does.
        Once a newer generation is recorded as active, this one is superseded
        and the newer one serves.
        """
        active = self._load_active()
        if active is None or active.version == self.generation.version:
            return self.generation
        if (
            self.generation.state == GenerationState.ACTIVE
            and active.version > self.generation.version
        ):
            # Another process activated a newer generation.
            self._transition(GenerationState.SUPERSEDED)
        return active

    def _load_active(self) -> Optional[Generation]:
        data = self._state.get(_ACTIVE_KEY)
        if data is None:
            return None
        return Generation.model_validate(data)

    def _transition(self, target: GenerationState) -> None:
        current = self.generation.state
        if target not in _TRANSITIONS[current]:
            raise LifecycleError(
                f"Generation v{self.generation.version} cannot go from "
                f"{current.value} to {target.value}"
            )
        logger.info(
            "Generation v%d: %s -> %s", self.generation.version, current.value, target.value
        )
        self.generation.state = target

    # ------------------------------------------------------------------ #
    # Install / activate
    # ------------------------------------------------------------------ #

    async def install(self) -> GenerationState:
        """Pre-cache the shell and move to ``waiting`` or ``active``.

        Installing the generation that is already active is a no-op.

        Returns:
            The state after installation.

        Raises:
            LifecycleError: If a newer generation is already active.
        """
        active = self._load_active()
        if active is not None and active.version > self.generation.version:
            raise LifecycleError(
                f"Generation v{active.version} is active; "
                f"refusing to install older v{self.generation.version}"
            )
        if self.generation.state == GenerationState.ACTIVE:
            return self.generation.state

        self.generation.state = GenerationState.INSTALLING
        cached = await self.precache(self._config.precache_urls)
        logger.info(
            "Pre-cached %d/%d shell resources for v%d",
            cached,
            len(self._config.precache_urls),
            self.generation.version,
        )

        if active is None:
            await self.activate()
        else:
            self.previous = active
            self._transition(GenerationState.WAITING)
            self._bus.publish(
                MessageType.UPDATE_AVAILABLE,
                data={"version": self.generation.version, "active": active.version},
            )
        return self.generation.state

    async def skip_waiting(self) -> GenerationState:
        """Take over now: activate a waiting generation.

        Calling it on an already active generation is a no-op.
        """
        if self.generation.state == GenerationState.ACTIVE:
            return self.generation.state
        if self.generation.state != GenerationState.WAITING:
            raise LifecycleError(
                f"Generation v{self.generation.version} is {self.generation.state.value}, "
                "not waiting"
            )
        await self.activate()
        return self.generation.state

    async def activate(self) -> list[str]:
        """Make this generation the active one and purge every other partition.

        Returns:
            Names of the partitions that were deleted.
        """
        self._transition(GenerationState.ACTIVE)
        previous = self._load_active()
        if previous is not None and previous.version != self.generation.version:
            previous.state = GenerationState.SUPERSEDED
            self.previous = previous

        self._state.set(_ACTIVE_KEY, self.generation.model_dump(mode="json"))
        self._store.ensure_partitions(self.generation.partitions)
        deleted = self._store.delete_partitions_not_in(self.generation.partitions)
        if deleted:
            logger.info("Removed %d superseded partitions: %s", len(deleted), ", ".join(deleted))
        return deleted

    async def precache(self, urls: list[str], logical: str = "static") -> int:
        """Fetch *urls* concurrently into *logical* of the installing generation.

        Each URL succeeds or fails on its own; failures are logged.

        Returns:
            How many URLs were stored.
        """
        cache_name = self.generation.partition_name(logical)
        results = await asyncio.gather(
            *(self._fetch_into(url, cache_name) for url in urls),
            return_exceptions=True,
        )
        stored = 0
        for url, result in zip(urls, results):
            if isinstance(result, BaseException):
                logger.warning("Could not pre-cache %s: %s", url, result)
            elif result:
                stored += 1
        return stored

    async def _fetch_into(self, url: str, cache_name: str) -> bool:
        response = await self._client.fetch(FetchRequest(url=url))
        if not response.ok:
            logger.warning("Could not pre-cache %s: HTTP %d", url, response.status_code)
            return False
        return self._store.put(cache_name, normalize_url(url, self._base_url), response)

    # ------------------------------------------------------------------ #
    # Periodic refresh
    # ------------------------------------------------------------------ #

    async def periodic_refresh(self) -> int:
        """Refresh the configured listings straight into the ``api`` partition.

        Returns:
            How many resources were refreshed.
        """
        cache_name = self.serving.partition_name("api")
        refreshed = 0
        for url in self._config.refresh_urls:
            try:
                if await self._fetch_into(url, cache_name):
                    refreshed += 1
            except TransportError as exc:
                logger.warning("Periodic refresh of %s failed: %s", url, exc)
        if refreshed:
            self._bus.publish(MessageType.MATCHES_REFRESHED, data={"refreshed": refreshed})
        return refreshed

    def close(self) -> None:
        self._state.close()
