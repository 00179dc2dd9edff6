"""XDG config loading/saving."""

from __future__ import annotations

import os
import sys
from contextlib import suppress
from pathlib import Path
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

if sys.version_info >= (3, 11):
    import tomllib
else:  # pragma: no cover
    import tomli as tomllib

from coderelay.errors import CodeRelayError, ExitCode
from coderelay.logging import LOG_LEVELS, normalize_level

DEFAULT_CONFIG_PATH = Path("~/.config/coderelay/config.toml").expanduser()
DEFAULT_API_URL = "http://localhost:8000"
DEFAULT_TERMINAL_URL = "ws://localhost:8000/python-terminal"
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_OPEN_TIMEOUT = 10.0
DEFAULT_LANGUAGE = "python"
API_URL_ENV = "CODERELAY_API_URL"
TERMINAL_URL_ENV = "CODERELAY_TERMINAL_URL"

_HTTP_SCHEMES = {"http", "https"}
_WS_SCHEMES = {"ws", "wss"}


def _validate_url(value: str, schemes: set[str]) -> str:
    candidate = value.strip()
    parsed = urlparse(candidate)
    if parsed.scheme not in schemes or not parsed.netloc:
        accepted = "/".join(sorted(schemes))
        raise ValueError(f"Invalid URL (expected {accepted}): {value}")
    return candidate


class AppConfig(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    api_url: str = DEFAULT_API_URL
    terminal_url: str = DEFAULT_TERMINAL_URL
    request_timeout_seconds: float = Field(default=DEFAULT_REQUEST_TIMEOUT, gt=0)
    open_timeout_seconds: float = Field(default=DEFAULT_OPEN_TIMEOUT, gt=0)
    default_language: str = DEFAULT_LANGUAGE
    log_level: str = "WARN"

    @field_validator("api_url")
    @classmethod
    def _validate_api_url(cls, value: str) -> str:
        return _validate_url(value, _HTTP_SCHEMES).rstrip("/")

    @field_validator("terminal_url")
    @classmethod
    def _validate_terminal_url(cls, value: str) -> str:
        return _validate_url(value, _WS_SCHEMES)

    @field_validator("default_language")
    @classmethod
    def _validate_language(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError("Default language cannot be empty")
        return normalized

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        normalized = normalize_level(value)
        if normalized not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {value}")
        return normalized


def get_config_path(path: str | Path | None = None) -> Path:
    if path is None:
        return DEFAULT_CONFIG_PATH
    return Path(path).expanduser()


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _toml_scalar(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return f'"{_escape(value)}"'
    raise TypeError(f"Unsupported TOML scalar type: {type(value)!r}")


def _assign(cfg: AppConfig, field_name: str, value: object) -> None:
    # Invalid values are dropped one field at a time so a single typo keeps the rest.
    with suppress(ValidationError):
        setattr(cfg, field_name, value)


def _sanitize(raw: dict[str, object]) -> AppConfig:
    cfg = AppConfig()

    for field_name in ("api_url", "terminal_url", "default_language", "log_level"):
        value = raw.get(field_name)
        if isinstance(value, str):
            _assign(cfg, field_name, value)

    for field_name in ("request_timeout_seconds", "open_timeout_seconds"):
        value = raw.get(field_name)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            _assign(cfg, field_name, float(value))

    env_api_url = os.getenv(API_URL_ENV, "").strip()
    if env_api_url:
        _assign(cfg, "api_url", env_api_url)
    env_terminal_url = os.getenv(TERMINAL_URL_ENV, "").strip()
    if env_terminal_url:
        _assign(cfg, "terminal_url", env_terminal_url)

    return cfg


def load_config(path: str | Path | None = None) -> AppConfig:
    resolved = get_config_path(path)
    raw: object = {}
    if resolved.exists():
        try:
            with resolved.open("rb") as handle:
                raw = tomllib.load(handle)
        except (tomllib.TOMLDecodeError, OSError):
            raw = {}
    if not isinstance(raw, dict):
        raw = {}
    return _sanitize(raw)


def save_config(config: AppConfig, path: str | Path | None = None) -> Path:
    resolved = get_config_path(path)
    try:
        resolved.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise CodeRelayError(
            f"Cannot create config directory: {resolved.parent}",
            code=ExitCode.CONFIG_ERROR,
            hint=str(exc) or "Check directory permissions.",
        ) from exc

    lines = [
        f"api_url = {_toml_scalar(config.api_url)}",
        f"terminal_url = {_toml_scalar(config.terminal_url)}",
        f"request_timeout_seconds = {_toml_scalar(config.request_timeout_seconds)}",
        f"open_timeout_seconds = {_toml_scalar(config.open_timeout_seconds)}",
        f"default_language = {_toml_scalar(config.default_language)}",
        f"log_level = {_toml_scalar(config.log_level)}",
    ]
    resolved.write_text("\n".join(lines) + "\n", encoding="utf-8")
    with suppress(OSError):
        resolved.chmod(0o600)
    return resolved
