from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Union
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, Field, model_validator


_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z0-9_]+)\}")


def _expand_env_vars(value: object) -> object:
    if isinstance(value, str):
        def repl(match: re.Match[str]) -> str:
            var = match.group(1)
            return os.getenv(var, "")

        return _ENV_VAR_PATTERN.sub(repl, value)
    if isinstance(value, list):
        return [_expand_env_vars(v) for v in value]
    if isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    return value


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name, "") or "").strip().lower()
    if not raw:
        return bool(default)
    return raw in {"1", "true", "t", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name, "") or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _deep_merge(base: object, override: object) -> object:
    if isinstance(base, dict) and isinstance(override, dict):
        out = dict(base)
        for k, v in override.items():
            if k in out:
                out[k] = _deep_merge(out[k], v)
            else:
                out[k] = v
        return out
    return override


def _default_config_from_env() -> dict:
    """
    Env-only config so most users only need `.env`.

    A YAML file remains an optional override (values may reference `${ENV_VAR}`).
    """
    return {
        "doctolib": {
            "base_url": os.getenv("DOCTOLIB_BASE_URL", "https://pro.doctolib.fr"),
            "username": os.getenv("DOCTOLIB_USERNAME", ""),
            "password": os.getenv("DOCTOLIB_PASSWORD", ""),
            "pin": os.getenv("DOCTOLIB_PIN", ""),
            "accept_cookies": _env_bool("DOCTOLIB_ACCEPT_COOKIES", default=False),
        },
        "browser": {
            "user_data_dir": os.getenv("BROWSER_USER_DATA_DIR", "data/user_data"),
            "clear_session": _env_bool("BROWSER_CLEAR_SESSION", default=False),
            "headless": _env_bool("BROWSER_HEADLESS", default=False),
            "slow_mo_ms": _env_int("BROWSER_SLOW_MO_MS", 100),
            "channel": os.getenv("BROWSER_CHANNEL", "chrome"),
        },
        "webhook": {
            "url": os.getenv("WEBHOOK_URL", ""),
            "timeout_seconds": _env_int("WEBHOOK_TIMEOUT_SECONDS", 30),
        },
        "pacing": {
            "base_ms": _env_int("PACING_BASE_MS", 1000),
            "jitter_ms": _env_int("PACING_JITTER_MS", 500),
        },
        "logging": {
            "level": os.getenv("LOG_LEVEL", "INFO"),
            "file_path": os.getenv("LOG_FILE", "data/agenda_sync.log"),
        },
        "debug_dir": os.getenv("DEBUG_DIR", "data/debug"),
    }


class DoctolibConfig(BaseModel):
    """
    Doctolib Pro account + site settings.

    Which credentials are actually used depends on the login form the site shows:
    the PIN screen (4 digits), a password-only screen (remembered account), or the full
    username/password form.
    """

    base_url: str = "https://pro.doctolib.fr"
    signin_path: str = "/signin"
    # Regex (case-insensitive) matched against the page URL once logged in.
    calendar_url_pattern: str = r"pro\.doctolib\.fr/calendar"
    username: str = ""
    password: str = Field(default="", repr=False)
    pin: str = Field(default="", repr=False)
    accept_cookies: bool = False

    @model_validator(mode="after")
    def _validate(self) -> "DoctolibConfig":
        base_url = (self.base_url or "").strip().rstrip("/")
        parsed = urlparse(base_url)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError("doctolib.base_url must be a full URL like 'https://pro.doctolib.fr'")
        self.base_url = base_url

        if not self.signin_path.startswith("/"):
            self.signin_path = "/" + self.signin_path

        try:
            re.compile(self.calendar_url_pattern)
        except re.error as e:
            raise ValueError(f"doctolib.calendar_url_pattern is not a valid regex: {e}") from e
        return self

    def require_credentials(self) -> None:
        """Only `run` logs in; profile and config commands work without secrets."""
        if not self.password and not self.pin:
            raise ValueError("Doctolib auth requires doctolib.password (or doctolib.pin for PIN login)")

    @property
    def signin_url(self) -> str:
        return f"{self.base_url}{self.signin_path}"


class BrowserConfig(BaseModel):
    user_data_dir: str = "data/user_data"
    # Wipe the persistent profile before launching (forces a fresh login).
    clear_session: bool = False
    # Headful by default: second-factor confirmation may need a human at the window.
    headless: bool = False
    slow_mo_ms: int = 100
    channel: str = "chrome"
    viewport_width: int = 1400
    viewport_height: int = 900


class WebhookConfig(BaseModel):
    url: str = ""
    timeout_seconds: int = 30

    @model_validator(mode="after")
    def _validate_url(self) -> "WebhookConfig":
        url = (self.url or "").strip()
        if url:
            parsed = urlparse(url)
            if parsed.scheme not in {"http", "https"} or not parsed.netloc:
                raise ValueError("webhook.url must be an http(s) URL")
        self.url = url
        return self


class PacingConfig(BaseModel):
    base_ms: int = Field(default=1000, ge=0)
    jitter_ms: int = Field(default=500, ge=0)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file_path: str = "data/agenda_sync.log"


class AppConfig(BaseModel):
    doctolib: DoctolibConfig
    browser: BrowserConfig = BrowserConfig()
    webhook: WebhookConfig = WebhookConfig()
    pacing: PacingConfig = PacingConfig()
    logging: LoggingConfig = LoggingConfig()
    debug_dir: str = "data/debug"


def load_config(path: Union[str, Path]) -> AppConfig:
    p = Path(path)
    raw: dict = {}
    if p.exists():
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
        raw = _expand_env_vars(raw)  # supports ${ENV_VAR} in YAML

    merged = _deep_merge(_default_config_from_env(), raw)
    return AppConfig.model_validate(merged)
