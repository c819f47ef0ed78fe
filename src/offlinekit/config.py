"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for offlinekit:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.offlinekit/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_cache_dir`, :func:`get_data_dir`.
* **Engine config** -- A single :class:`~offlinekit.models.EngineConfig`
  JSON file storing routing rules, lifecycle settings, and sync queues.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, project-local config, and user config into the
  final effective configuration.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from offlinekit.exceptions import ConfigError
from offlinekit.models import EngineConfig

_APP_NAME = "offlinekit"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "offlinekit.json"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/offlinekit/`` (default ``~/.config/offlinekit/``).
    On macOS/Windows: ``~/.offlinekit/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the durable storage root, creating it if necessary.

    Holds the cache partitions, sync queues, and generation state. Unlike a
    plain HTTP cache, deleting it also drops queued mutations.

    On Linux/BSD: ``$XDG_CACHE_HOME/offlinekit/`` (default ``~/.cache/offlinekit/``).
    On macOS/Windows: ``~/.offlinekit/cache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CACHE_HOME", (".cache",)) / _APP_NAME
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/offlinekit/`` (default ``~/.local/share/offlinekit/``).
    On macOS/Windows: ``~/.offlinekit/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_storage_root(config: EngineConfig) -> Path:
    """Return the storage root for *config*, honouring its ``cache_dir`` override."""
    if config.cache_dir:
        path = Path(config.cache_dir).expanduser()
        path.mkdir(parents=True, exist_ok=True)
        return path
    return get_cache_dir()


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close below
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Engine config ---


def _engine_config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def load_engine_config() -> EngineConfig:
    """Load the engine configuration from the XDG config directory.

    Returns:
        The deserialised :class:`~offlinekit.models.EngineConfig`, or a
        default instance when the file does not exist.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = _engine_config_path()
    if not path.is_file():
        return EngineConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return EngineConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_engine_config(config: EngineConfig) -> None:
    """Persist the engine configuration atomically to disk."""
    data = config.model_dump(mode="json")
    _atomic_write(_engine_config_path(), json.dumps(data, indent=2) + "\n")


# --- Project-local config ---


def load_project_config() -> Optional[dict[str, Any]]:
    """Load project-local overrides from ``./offlinekit.json``.

    Returns:
        The parsed JSON as a dict, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file exists but contains invalid JSON.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid project config at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Project config at {path} must be a JSON object")
    return data


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# --- Precedence resolution ---


def resolve_config(
    cli_base_url: Optional[str] = None,
    cli_cache_dir: Optional[str] = None,
    cli_version: Optional[int] = None,
) -> EngineConfig:
    """Resolve config with full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_base_url``, ``cli_cache_dir``, ``cli_version``)
        2. Environment variables (``OFFLINEKIT_BASE_URL``,
           ``OFFLINEKIT_CACHE_DIR``, ``OFFLINEKIT_VERSION``)
        3. Project config (``./offlinekit.json``), deep-merged
        4. User config (``~/.config/offlinekit/config.json``)
        5. Defaults

    Raises:
        ConfigError: If any layer is invalid.
    """
    config = load_engine_config()

    project = load_project_config()
    if project is not None:
        try:
            config = EngineConfig.model_validate(
                _deep_merge(config.model_dump(mode="json"), project)
            )
        except ValueError as exc:
            raise ConfigError(f"Invalid project config: {exc}") from exc

    env_base_url = os.environ.get("OFFLINEKIT_BASE_URL")
    if env_base_url:
        config.base_url = env_base_url
    env_cache_dir = os.environ.get("OFFLINEKIT_CACHE_DIR")
    if env_cache_dir:
        config.cache_dir = env_cache_dir
    env_version = os.environ.get("OFFLINEKIT_VERSION")
    if env_version:
        try:
            config.lifecycle.version = int(env_version)
        except ValueError as exc:
            raise ConfigError(
                f"OFFLINEKIT_VERSION must be an integer, got: {env_version}"
            ) from exc

    if cli_base_url is not None:
        config.base_url = cli_base_url
    if cli_cache_dir is not None:
        config.cache_dir = cli_cache_dir
    if cli_version is not None:
        config.lifecycle.version = cli_version

    return config
