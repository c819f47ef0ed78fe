"""Config commands -- view and modify the user configuration.

Provides the ``offlinekit config`` sub-command group for reading, updating,
and resetting ``config.json`` (:class:`~offlinekit.models.EngineConfig`) in
the offlinekit config directory.
"""

from __future__ import annotations

import json
from typing import Any

import typer

from offlinekit.commands import is_forced
from offlinekit.output import error, format_response, info, success

config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show(
    effective: bool = typer.Option(
        False,
        "--effective",
        help="Show the resolved config including project file and environment.",
    ),
) -> None:
    """Show the current configuration.

    Example::

        offlinekit config show
        offlinekit --json config show --effective
    """
    from offlinekit.config import get_config_dir, load_engine_config, resolve_config
    from offlinekit.exceptions import ConfigError

    try:
        config = resolve_config() if effective else load_engine_config()
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    info(f"Config directory: {get_config_dir()}")
    format_response(config.model_dump(mode="json"))


def _coerce(key: str, current: Any, value: str) -> Any:
    if isinstance(current, bool):
        return value.lower() in ("true", "1", "yes")
    if isinstance(current, int):
        try:
            return int(value)
        except ValueError:
            error(f"Expected integer for {key}, got: {value}")
            raise typer.Exit(code=2) from None
    if isinstance(current, float):
        try:
            return float(value)
        except ValueError:
            error(f"Expected number for {key}, got: {value}")
            raise typer.Exit(code=2) from None
    if isinstance(current, (list, dict)):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            if isinstance(current, list):
                return [part.strip() for part in value.split(",") if part.strip()]
            error(f"Expected a JSON object for {key}, got: {value}")
            raise typer.Exit(code=2) from None
    return value


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Config key (dot notation, e.g., 'lifecycle.version')."),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a configuration value.

    The value is coerced to the type of the existing field; lists accept
    JSON or a comma-separated string, mappings accept JSON. The result is
    validated before saving.

    Example::

        offlinekit config set base_url https://example.com
        offlinekit config set lifecycle.version 2
        offlinekit config set sync.routes '{"/api/matches/": "match-join-queue"}'
    """
    from offlinekit.config import load_engine_config, save_engine_config
    from offlinekit.exceptions import ConfigError
    from offlinekit.models import EngineConfig

    try:
        config = load_engine_config()
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    data = config.model_dump(mode="json")

    keys = key.split(".")
    target = data
    for k in keys[:-1]:
        if k not in target or not isinstance(target[k], dict):
            error(f"Invalid config key: {key}")
            raise typer.Exit(code=2)
        target = target[k]

    final_key = keys[-1]
    if final_key not in target:
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=2)

    coerced = _coerce(key, target[final_key], value)
    target[final_key] = coerced

    try:
        new_config = EngineConfig.model_validate(data)
    except ValueError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=2) from None

    save_engine_config(new_config)
    success(f"Set {key} = {coerced}")


@config_app.command("reset")
def config_reset(ctx: typer.Context) -> None:
    """Reset configuration to defaults. Asks for confirmation unless ``--force``."""
    from offlinekit.config import save_engine_config
    from offlinekit.models import EngineConfig

    if not is_forced(ctx) and not typer.confirm("Reset all config to defaults?"):
        info("Cancelled.")
        raise typer.Exit()

    save_engine_config(EngineConfig())
    success("Configuration reset to defaults.")
