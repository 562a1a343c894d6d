# config.py

"""Settings for the completion engine.

Values are looked up in ``st.secrets`` first, then in the environment, then
fall back to a default, the same way ``DATABASE_URL`` has always been found.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

ENV_PREFIX = "TUNTAS"

try:
    import streamlit as st
    _secrets = getattr(st, "secrets", {})
except Exception:
    _secrets = {}


def _k(suffix: str) -> str:
    return f"{ENV_PREFIX}_{suffix}"


def _raw(name: str) -> str | None:
    try:
        val = _secrets.get(name)
    except Exception:
        # st.secrets raises when no secrets.toml exists
        val = None
    if val is None:
        val = os.getenv(name)
    if val is None or str(val).strip() == "":
        return None
    return str(val)


def _setting(name: str, default: str) -> str:
    v = _raw(name)
    return default if v is None else v


def _setting_int(name: str, default: int) -> int:
    v = _raw(name)
    if v is None:
        return default
    try:
        return int(v)
    except ValueError:
        return default


@dataclass(frozen=True, slots=True)
class Settings:
    database_url: str

    # ---- lifecycle ----
    ttl_hours: int
    overdue_after_days: int

    # ---- client ----
    debounce_ms: int
    min_click_interval_ms: int
    poll_seconds: int

    # ---- logging ----
    log_level: str
    log_dir: str


def load_settings() -> Settings:
    return Settings(
        database_url=_setting("DATABASE_URL", "sqlite:///tuntas.db"),
        ttl_hours=_setting_int(_k("TTL_HOURS"), 24),
        overdue_after_days=_setting_int(_k("OVERDUE_AFTER_DAYS"), 7),
        debounce_ms=_setting_int(_k("DEBOUNCE_MS"), 800),
        min_click_interval_ms=_setting_int(_k("MIN_CLICK_INTERVAL_MS"), 300),
        poll_seconds=_setting_int(_k("POLL_SECONDS"), 5),
        log_level=_setting(_k("LOG_LEVEL"), "INFO").upper(),
        log_dir=_setting(_k("LOG_DIR"), ".local/tuntas"),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
