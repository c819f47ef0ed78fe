"""Shared test fixtures for offlinekit.

Provides an isolated config environment, a controllable clock, an in-process
fake origin server mounted through :class:`httpx.MockTransport`, output state
management, and a ready-to-use :class:`~offlinekit.engine.Engine`. These
fixtures are discovered by pytest and available to all test modules.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Optional, Union

import httpx
import pytest
import pytest_asyncio

from offlinekit.engine import Engine
from offlinekit.models import EngineConfig, LifecycleConfig
from offlinekit.output import OutputFormat, OutputManager, reset_output, set_output

BASE_URL = "https://example.com"

Route = Union[httpx.Response, Callable[[httpx.Request], Any]]


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager and CLI log handler after every test.

    Both cache sys.stdout/sys.stderr at creation time; once CliRunner
    restores the real streams those references are stale.
    """
    yield
    reset_output()
    logger = logging.getLogger("offlinekit")
    for handler in list(logger.handlers):
        if getattr(handler, "_offlinekit_cli", False):
            logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


# ---------------------------------------------------------------------------
# Time and network doubles
# ---------------------------------------------------------------------------


class FakeClock:
    """A clock that only moves when told to."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeServer:
    """Origin server double for :class:`httpx.MockTransport`.

    Routes are keyed by path. A route is either a prepared
    :class:`httpx.Response` or a callable (sync or async) receiving the
    request. Unknown paths answer ``404``. While :attr:`offline` is set, or
    for paths in :attr:`unreachable`, every request raises
    :class:`httpx.ConnectError`.
    """

    def __init__(self) -> None:
        self.routes: dict[str, Route] = {}
        self.calls: list[httpx.Request] = []
        self.offline = False
        self.unreachable: set[str] = set()

    def add(
        self,
        path: str,
        status_code: int = 200,
        json: Any = None,
        text: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> None:
        headers = {"content-type": content_type} if content_type else None
        if json is not None:
            response = httpx.Response(status_code, json=json, headers=headers)
        else:
            response = httpx.Response(status_code, text=text or "", headers=headers)
        self.routes[path] = response

    def handle(self, request: httpx.Request) -> Any:
        self.calls.append(request)
        if self.offline or request.url.path in self.unreachable:
            raise httpx.ConnectError("network unreachable", request=request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, text="not found")
        if isinstance(route, httpx.Response):
            # Responses are single-use once read; hand out a fresh copy.
            return httpx.Response(
                route.status_code, headers=route.headers, content=route.content
            )
        return route(request)

    def count(self, path: str) -> int:
        return sum(1 for call in self.calls if call.url.path == path)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def server() -> FakeServer:
    """A fake origin with an app shell, an offline page, and a match listing."""
    srv = FakeServer()
    srv.add("/", text="<html>home</html>", content_type="text/html")
    srv.add("/offline", text="<html>You are offline</html>", content_type="text/html")
    srv.add("/api/matches", json=[{"id": 1, "status": "upcoming"}])
    return srv


# ---------------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def engine_config(tmp_path: Path) -> EngineConfig:
    return EngineConfig(
        base_url=BASE_URL,
        cache_dir=str(tmp_path / "store"),
        lifecycle=LifecycleConfig(precache_urls=["/", "/offline"]),
    )


@pytest_asyncio.fixture
async def engine(engine_config: EngineConfig, server: FakeServer, clock: FakeClock):
    """An open engine wired to the fake server and clock."""
    eng = Engine.from_config(engine_config, transport=server.transport, clock=clock)
    async with eng:
        yield eng


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration and storage to a temporary directory.

    Points the XDG directories at subdirectories of tmp_path, clears the
    OFFLINEKIT_* environment variables, and changes into tmp_path.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("offlinekit.config._is_xdg_platform", lambda: True)

    for var in ["OFFLINEKIT_BASE_URL", "OFFLINEKIT_CACHE_DIR", "OFFLINEKIT_VERSION"]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a quiet PLAIN output manager for tests that ignore output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def cli_runner():
    from typer.testing import CliRunner

    return CliRunner()
