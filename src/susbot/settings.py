from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

from pydantic import (
    Field,
    SecretStr,
    ValidationError,
    field_serializer,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import TomlConfigSettingsSource

from .config import DEFAULT_DB_FILENAME, ConfigError, resolve_config_path

DEFAULT_PREFIX = "/"


class BotSettings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="ignore",
        env_prefix="SUSBOT__",
        env_nested_delimiter="__",
    )

    bot_token: SecretStr | None = None
    bot_prefix: str = DEFAULT_PREFIX
    admins: list[str] = Field(default_factory=list)
    database_path: str | None = None
    poll_timeout_s: int = 50

    @field_validator("bot_token", mode="before")
    @classmethod
    def _validate_bot_token(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, SecretStr):
            return value
        if not isinstance(value, str):
            raise ValueError("bot_token must be a string")
        return value.strip() or None

    @field_validator("bot_prefix", mode="before")
    @classmethod
    def _validate_prefix(cls, value: Any) -> Any:
        if value is None:
            return DEFAULT_PREFIX
        if not isinstance(value, str):
            raise ValueError("bot_prefix must be a string")
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("bot_prefix must be a non-empty string")
        if any(ch.isspace() for ch in cleaned):
            raise ValueError("bot_prefix must not contain whitespace")
        return cleaned

    @field_validator("admins", mode="before")
    @classmethod
    def _normalize_admins(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, (str, int)) and not isinstance(value, bool):
            value = [value]
        if not isinstance(value, (list, tuple, set)):
            raise ValueError("admins must be a list of user ids")
        admins: list[str] = []
        for item in value:
            if isinstance(item, bool) or not isinstance(item, (str, int)):
                raise ValueError("admins entries must be user ids")
            cleaned = str(item).strip()
            if cleaned and cleaned not in admins:
                admins.append(cleaned)
        return admins

    @field_validator("poll_timeout_s")
    @classmethod
    def _validate_poll_timeout(cls, value: int) -> int:
        if value < 0:
            raise ValueError("poll_timeout_s must be >= 0")
        return value

    @field_serializer("bot_token")
    def _dump_token(self, value: SecretStr | None) -> str | None:
        return value.get_secret_value() if value else None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    def resolve_database_path(self, *, config_path: Path) -> Path:
        if self.database_path is None:
            return config_path.with_name(DEFAULT_DB_FILENAME)
        path = Path(self.database_path).expanduser()
        if not path.is_absolute():
            path = config_path.parent / path
        return path


def load_settings(path: str | Path | None = None) -> tuple[BotSettings, Path]:
    cfg_path = resolve_config_path(path)
    if cfg_path.exists() and not cfg_path.is_file():
        raise ConfigError(f"Config path {cfg_path} exists but is not a file.") from None
    if not cfg_path.exists():
        raise ConfigError(f"Missing config file {cfg_path}.") from None
    return _load_settings_from_path(cfg_path), cfg_path


def require_bot_token(settings: BotSettings, config_path: Path) -> str:
    token = settings.bot_token
    if token is None or not token.get_secret_value().strip():
        raise ConfigError(f"Missing bot token in {config_path}.")
    return token.get_secret_value().strip()


def _load_settings_from_path(cfg_path: Path) -> BotSettings:
    cfg = dict(BotSettings.model_config)
    cfg["toml_file"] = cfg_path
    Bound = type(
        "BotSettingsBound",
        (BotSettings,),
        {"model_config": SettingsConfigDict(**cfg)},
    )
    try:
        return Bound()
    except ValidationError as exc:
        raise ConfigError(f"Invalid config in {cfg_path}: {exc}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Malformed TOML in {cfg_path}: {exc}") from None
