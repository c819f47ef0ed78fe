"""Canonical Pydantic models shared across all offlinekit modules.

This is the single source of truth for data shapes in the project. The models
fall into two groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`RequestConfig`, :class:`CachePolicy`, :class:`RoutingConfig`,
    :class:`LifecycleConfig`, :class:`SyncConfig`, and :class:`EngineConfig`.

**Runtime models** -- produced and consumed by the engine:
    :class:`RequestClass`, :class:`StrategyName`, :class:`Route`,
    :class:`FetchRequest`, :class:`FetchResponse`, :class:`CacheEntry`,
    :class:`QueueItem`, :class:`ReplayReport`, :class:`GenerationState`,
    :class:`Generation`, :class:`MessageType`, and :class:`ClientMessage`.

All models use Pydantic v2.
"""

from __future__ import annotations

import enum
import json
import time
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

_DAY = 60 * 60 * 24


# --- Enumerations ---


class RequestClass(str, enum.Enum):
    """Request classes recognised by :class:`~offlinekit.router.StrategyRouter`.

    Listed in classification order; the first matching class wins.
    """

    FONT = "font"
    IMAGE = "image"
    API = "api"
    STATIC = "static"
    IMAGE_TRANSFORM = "image_transform"
    NAVIGATION = "navigation"
    OTHER = "other"


class StrategyName(str, enum.Enum):
    """The three request-resolution algorithms."""

    CACHE_FIRST = "cache_first"
    NETWORK_FIRST = "network_first"
    STALE_WHILE_REVALIDATE = "stale_while_revalidate"


class ResponseSource(str, enum.Enum):
    """Where a :class:`FetchResponse` handed to the caller came from."""

    NETWORK = "network"
    CACHE = "cache"
    OFFLINE = "offline"


class GenerationState(str, enum.Enum):
    """Lifecycle states of an engine generation."""

    INSTALLING = "installing"
    WAITING = "waiting"
    ACTIVE = "active"
    SUPERSEDED = "superseded"


class MessageType(str, enum.Enum):
    """Messages the engine publishes to the UI layer."""

    SYNC_SUCCESS = "SYNC_SUCCESS"
    MATCHES_REFRESHED = "MATCHES_REFRESHED"
    BADGE_UPDATED = "BADGE_UPDATED"
    UPDATE_AVAILABLE = "UPDATE_AVAILABLE"


# --- Configuration models ---


class RequestConfig(BaseModel):
    """Network settings applied to every outbound fetch."""

    timeout: float = Field(default=30, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")


class CachePolicy(BaseModel):
    """Freshness and size bounds for one request class."""

    max_age: Optional[int] = Field(
        default=None, description="Seconds before an entry is considered stale"
    )
    max_entries: Optional[int] = Field(
        default=None, description="Maximum entries kept in the target partition"
    )


def _default_policies() -> dict[str, CachePolicy]:
    return {
        RequestClass.FONT.value: CachePolicy(max_age=365 * _DAY),
        RequestClass.IMAGE.value: CachePolicy(max_age=30 * _DAY, max_entries=80),
        RequestClass.API.value: CachePolicy(max_age=60),
        RequestClass.STATIC.value: CachePolicy(max_age=365 * _DAY),
        RequestClass.IMAGE_TRANSFORM.value: CachePolicy(max_age=30 * _DAY),
        RequestClass.NAVIGATION.value: CachePolicy(),
        RequestClass.OTHER.value: CachePolicy(max_age=5 * 60),
    }


class RoutingConfig(BaseModel):
    """Host and path patterns used to classify requests.

    See Also:
        :class:`~offlinekit.router.StrategyRouter`: Consumer of these rules.
    """

    font_hosts: list[str] = Field(default_factory=lambda: ["fonts.gstatic.com"])
    font_path_marker: str = "/fonts/"
    image_extensions: list[str] = Field(
        default_factory=lambda: ["png", "jpg", "jpeg", "gif", "webp", "avif", "svg", "ico"]
    )
    api_prefix: str = "/api/"
    api_hosts: list[str] = Field(default_factory=list)
    static_prefix: str = "/_next/static/"
    image_transform_prefix: str = "/_next/image"
    policies: dict[str, CachePolicy] = Field(default_factory=_default_policies)

    def policy_for(self, request_class: RequestClass) -> CachePolicy:
        """Return the configured policy for *request_class* (empty when unset)."""
        return self.policies.get(request_class.value) or CachePolicy()


class LifecycleConfig(BaseModel):
    """Generation identity and the resources it manages."""

    prefix: str = Field(default="offlinekit", description="Partition name prefix")
    version: int = Field(default=1, ge=1, description="Generation version")
    precache_urls: list[str] = Field(
        default_factory=lambda: [
            "/",
            "/offline",
            "/matches",
            "/tournaments",
            "/leaderboard",
            "/manifest.json",
        ]
    )
    offline_url: str = "/offline"
    refresh_urls: list[str] = Field(
        default_factory=lambda: ["/api/matches?status=upcoming&limit=10"]
    )
    refresh_interval: int = Field(
        default=60 * 60, description="Seconds between periodic refresh ticks"
    )


class SyncConfig(BaseModel):
    """Background-sync queues, trigger tags, and mutation routes."""

    queues: list[str] = Field(
        default_factory=lambda: [
            "match-join-queue",
            "tournament-register-queue",
            "wallet-deposit-queue",
        ]
    )
    tags: dict[str, str] = Field(
        default_factory=lambda: {
            "sync-match-join": "match-join-queue",
            "sync-tournament-register": "tournament-register-queue",
            "sync-wallet-deposit": "wallet-deposit-queue",
        },
        description="Background-sync tag to queue name",
    )
    routes: dict[str, str] = Field(
        default_factory=dict,
        description="Path prefix to queue name for mutations that fail offline",
    )
    periodic_tag: str = "refresh-matches"


class EngineConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/offlinekit/config.json``.

    Loaded and saved by :func:`~offlinekit.config.load_engine_config` and
    :func:`~offlinekit.config.save_engine_config`. See
    :func:`~offlinekit.config.resolve_config` for the precedence chain.
    """

    base_url: Optional[str] = Field(
        default=None, description="Origin that relative URLs resolve against"
    )
    cache_dir: Optional[str] = Field(
        default=None, description="Override for the durable storage root"
    )
    request: RequestConfig = Field(default_factory=RequestConfig)
    routing: RoutingConfig = Field(default_factory=RoutingConfig)
    lifecycle: LifecycleConfig = Field(default_factory=LifecycleConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)


# --- Runtime models ---


class Route(BaseModel):
    """Outcome of classifying a request: which strategy and partition to use."""

    model_config = ConfigDict(frozen=True)

    request_class: RequestClass
    strategy: StrategyName
    cache_name: str = Field(description="Logical partition name, e.g. 'api'")
    max_age: Optional[int] = None
    max_entries: Optional[int] = None


class FetchRequest(BaseModel):
    """An outbound request as seen by the engine.

    ``mode`` and ``destination`` mirror the browser fetch hints the router
    uses to recognise navigations and image/font loads. ``queue_name`` marks a
    mutating request as replayable if it fails while offline.
    """

    method: str = "GET"
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    body: Optional[bytes] = None
    mode: str = "cors"
    destination: str = ""
    queue_name: Optional[str] = None

    @property
    def is_navigation(self) -> bool:
        """A page load: navigate mode, or a request that accepts HTML."""
        return self.mode == "navigate" or "text/html" in self.header("accept")

    def header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default


class FetchResponse(BaseModel):
    """A response returned to the caller, from network, cache, or synthesised."""

    status_code: int
    headers: dict[str, str] = Field(default_factory=dict)
    body: bytes = b""
    url: str = ""
    source: ResponseSource = ResponseSource.NETWORK

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.body)

    @classmethod
    def from_json(
        cls,
        data: Any,
        status_code: int = 200,
        url: str = "",
        source: ResponseSource = ResponseSource.NETWORK,
    ) -> FetchResponse:
        """Build a response with a JSON body and matching content type."""
        return cls(
            status_code=status_code,
            headers={"content-type": "application/json"},
            body=json.dumps(data).encode("utf-8"),
            url=url,
            source=source,
        )


class CacheEntry(BaseModel):
    """A stored response inside one cache partition.

    ``key`` is the normalised absolute URL; cached entries are always GETs.
    """

    key: str
    body: bytes = b""
    headers: dict[str, str] = Field(default_factory=dict)
    status_code: int = 200
    stored_at: float
    cache_name: str

    def to_response(self) -> FetchResponse:
        return FetchResponse(
            status_code=self.status_code,
            headers=dict(self.headers),
            body=self.body,
            url=self.key,
            source=ResponseSource.CACHE,
        )


class QueueItem(BaseModel):
    """A mutating request waiting in a :class:`~offlinekit.sync.queue.SyncQueue`.

    ``id`` is assigned by the queue on enqueue and is unique within
    ``queue_name``.
    """

    id: Optional[int] = None
    queue_name: str = ""
    method: str = "POST"
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    body: Optional[bytes] = None
    enqueued_at: float = Field(default_factory=time.time)

    @classmethod
    def from_request(cls, request: FetchRequest) -> QueueItem:
        return cls(
            method=request.method.upper(),
            url=request.url,
            headers=dict(request.headers),
            body=request.body,
        )

    def to_request(self) -> FetchRequest:
        return FetchRequest(
            method=self.method,
            url=self.url,
            headers=dict(self.headers),
            body=self.body,
            queue_name=self.queue_name,
        )


class ReplayReport(BaseModel):
    """Summary of one :meth:`~offlinekit.sync.queue.SyncQueue.replay` pass."""

    queue_name: str
    succeeded: list[int] = Field(default_factory=list)
    failed: list[int] = Field(default_factory=list)
    skipped: bool = Field(
        default=False, description="True when another replay of the queue was running"
    )

    @property
    def remaining(self) -> int:
        return len(self.failed)


class Generation(BaseModel):
    """A versioned set of cache partitions considered current."""

    version: int
    prefix: str
    state: GenerationState = GenerationState.INSTALLING
    logical_partitions: list[str] = Field(
        default_factory=lambda: ["static", "dynamic", "api", "images", "fonts"]
    )

    def partition_name(self, logical: str) -> str:
        """Physical partition name, e.g. ``offlinekit-v3-api``."""
        return f"{self.prefix}-v{self.version}-{logical}"

    @property
    def partitions(self) -> list[str]:
        return [self.partition_name(name) for name in self.logical_partitions]


class ClientMessage(BaseModel):
    """A message published to UI subscribers through the message bus."""

    type: MessageType
    tag: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)
