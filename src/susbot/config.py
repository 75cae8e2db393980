from __future__ import annotations

from pathlib import Path

HOME_CONFIG_PATH = Path.home() / ".susbot" / "susbot.toml"
DEFAULT_DB_FILENAME = "susbot.db"


class ConfigError(RuntimeError):
    pass


def resolve_config_path(path: str | Path | None) -> Path:
    return Path(path).expanduser() if path else HOME_CONFIG_PATH
