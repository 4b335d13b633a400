from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict

import yaml

_CONFIG_PATH = Path(__file__).resolve().parent / "config.yaml"

MIN_PARTICIPANTS = 2

_DEFAULT_MEETING_LIMITS = {
    "max_participants_limit": 100,
    "default_max_participants": 50,
    "title_max_length": 200,
    "message_max_length": 2000,
}
_DEFAULT_MEETING_REFRESH = {
    "enabled": True,
    "detail_interval_seconds": 5,
    "messages_interval_seconds": 2,
}
_DEFAULT_ACCESS_TOKEN_EXPIRE_MINUTES = 60


def load_config() -> Dict[str, Any]:
    """Load the application config from YAML, returning an empty mapping on error."""
    try:
        with _CONFIG_PATH.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
            if isinstance(data, dict):
                return data
            logging.warning(
                "Config file %s is not a mapping; using defaults.", _CONFIG_PATH
            )
            return {}
    except FileNotFoundError:
        logging.warning(
            "Configuration file %s not found; using defaults.", _CONFIG_PATH
        )
        return {}
    except Exception as exc:  # noqa: BLE001
        logging.error("Failed to load configuration from %s: %s", _CONFIG_PATH, exc)
        return {}


def _coerce_positive_int(value: Any, fallback: int) -> int:
    try:
        candidate = int(value)
        return candidate if candidate > 0 else fallback
    except Exception:  # noqa: BLE001
        return fallback


def _coerce_positive_float(value: Any, fallback: float) -> float:
    try:
        candidate = float(value)
        return candidate if candidate > 0 else fallback
    except Exception:  # noqa: BLE001
        return fallback


def _coerce_bool(value: Any, fallback: bool) -> bool:
    if value is None:
        return fallback
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def get_database_url(default: str) -> str:
    """Return the database URL, preferring CLUBHOUSE_DATABASE_URL over config.yaml."""
    env_value = os.getenv("CLUBHOUSE_DATABASE_URL")
    if env_value:
        return env_value
    url = load_config().get("database_url")
    return str(url) if url else default


def get_meeting_limits() -> Dict[str, int]:
    """Return meeting size and text limits sourced from config with safe defaults."""
    config = load_config()
    section = config.get("meetings") or {}
    limits = dict(_DEFAULT_MEETING_LIMITS)
    for key in limits:
        limits[key] = _coerce_positive_int(section.get(key), limits[key])
    if limits["max_participants_limit"] < MIN_PARTICIPANTS:
        limits["max_participants_limit"] = _DEFAULT_MEETING_LIMITS[
            "max_participants_limit"
        ]
    limits["default_max_participants"] = min(
        max(limits["default_max_participants"], MIN_PARTICIPANTS),
        limits["max_participants_limit"],
    )
    return limits


def get_meeting_refresh_settings() -> Dict[str, Any]:
    """Return meeting room polling settings sourced from config with safe defaults."""
    config = load_config()
    section = config.get("meeting_refresh") or {}
    defaults = dict(_DEFAULT_MEETING_REFRESH)
    return {
        "enabled": _coerce_bool(section.get("enabled"), defaults["enabled"]),
        "detail_interval_seconds": _coerce_positive_float(
            section.get("detail_interval_seconds"),
            defaults["detail_interval_seconds"],
        ),
        "messages_interval_seconds": _coerce_positive_float(
            section.get("messages_interval_seconds"),
            defaults["messages_interval_seconds"],
        ),
    }


def get_access_token_expire_minutes() -> int:
    """
    Source the access token lifetime from config.yaml, then the
    CLUBHOUSE_ACCESS_TOKEN_EXPIRE_MINUTES environment variable, then a default.
    """
    section = load_config().get("auth") or {}
    configured = _coerce_positive_int(section.get("access_token_expire_minutes"), 0)
    if configured:
        return configured
    return _coerce_positive_int(
        os.getenv("CLUBHOUSE_ACCESS_TOKEN_EXPIRE_MINUTES"),
        _DEFAULT_ACCESS_TOKEN_EXPIRE_MINUTES,
    )


def get_secure_cookies_enabled() -> bool:
    """
    Return whether auth cookies should be marked Secure.

    Priority:
    1) CLUBHOUSE_SECURE_COOKIES env var
    2) config.yaml auth.secure_cookies
    3) default False (local HTTP-friendly)
    """
    env_value = os.getenv("CLUBHOUSE_SECURE_COOKIES")
    if env_value is not None:
        return env_value.strip().lower() in {"1", "true", "yes", "on"}

    section = load_config().get("auth") or {}
    return _coerce_bool(section.get("secure_cookies"), False)


def get_sqlite_settings() -> Dict[str, Any]:
    section = load_config().get("sqlite") or {}
    return {
        "journal_mode": str(section.get("journal_mode") or "WAL"),
        "synchronous": str(section.get("synchronous") or "NORMAL"),
        "busy_timeout_ms": _coerce_positive_int(section.get("busy_timeout_ms"), 30000),
    }


def get_pool_settings() -> Dict[str, int]:
    section = load_config().get("database_pool") or {}
    return {
        "pool_size": _coerce_positive_int(section.get("pool_size"), 20),
        "max_overflow": _coerce_positive_int(section.get("max_overflow"), 40),
        "pool_timeout": _coerce_positive_int(section.get("pool_timeout_seconds"), 15),
        "pool_recycle": _coerce_positive_int(
            section.get("pool_recycle_seconds"), 1800
        ),
    }
