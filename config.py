"""
Settings and constants for FitBuddy.

Secrets are read from Streamlit secrets first (.streamlit/secrets.toml) and fall back to
environment variables, which may come from a local .env file:

    SUPABASE_URL = 'your-project-url'
    SUPABASE_ANON_KEY = 'your-anon-key'
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Dict, List, Optional

import pytz
from dotenv import load_dotenv

load_dotenv()

# -------------------------------
# Configuration and constants
# -------------------------------
DEFAULT_TZ = "America/Chicago"
DEFAULT_DATA_PATH = os.path.join(os.path.dirname(__file__), "fitbuddy_data.json")

WEIGHT_MIN = 0.0
WEIGHT_MAX = 1000.0
HEIGHT_MIN = 0.0
HEIGHT_MAX = 120.0
AGE_MIN = 0
AGE_MAX = 120

FRIEND_CODE_LENGTH = 6
FRIEND_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
FRIEND_CODE_MAX_ATTEMPTS = 5
SUCCESS_CLOSE_DELAY = 1.0  # seconds before the add-friend form closes itself

WINDOWS: List[str] = ["week", "month", "year", "all"]
DEFAULT_WINDOW = "month"
CARD_CHANGE_DAYS = 30

# Self is always index 0; positions past the end reuse the last entry.
PALETTE: List[Dict[str, str]] = [
    {"border": "#2563EB", "fill": "rgba(37,99,235,0.1)"},
    {"border": "#10B981", "fill": "rgba(16,185,129,0.1)"},
    {"border": "#F59E0B", "fill": "rgba(245,158,11,0.1)"},
    {"border": "#EF4444", "fill": "rgba(239,68,68,0.1)"},
]

# Supabase table / RPC names
SAMPLES_TABLE = "user_weight_entries"
PROFILES_TABLE = "user_profiles"
FRIENDS_TABLE = "user_friends"
FRIEND_CODE_RPC = "get_user_id_by_friend_code"


@dataclass(frozen=True)
class Settings:
    supabase_url: Optional[str]
    supabase_key: Optional[str]
    timezone: str = DEFAULT_TZ
    data_path: str = DEFAULT_DATA_PATH

    @property
    def supabase_available(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    @property
    def tz(self):
        return pytz.timezone(self.timezone)


def _secret(name: str) -> Optional[str]:
    try:
        import streamlit as st

        value = st.secrets[name]
        if value:
            return str(value)
    except Exception:
        # No secrets.toml, or key missing from it.
        pass
    return os.environ.get(name) or None


def load_settings() -> Settings:
    """Build settings from Streamlit secrets and the environment."""
    timezone = _secret("FITBUDDY_TZ") or DEFAULT_TZ
    try:
        pytz.timezone(timezone)
    except pytz.UnknownTimeZoneError:
        logging.getLogger(__name__).warning("Unknown timezone %r, using %s", timezone, DEFAULT_TZ)
        timezone = DEFAULT_TZ
    return Settings(
        supabase_url=_secret("SUPABASE_URL"),
        supabase_key=_secret("SUPABASE_ANON_KEY"),
        timezone=timezone,
        data_path=_secret("FITBUDDY_DATA_PATH") or DEFAULT_DATA_PATH,
    )


_LOGGING_CONFIGURED = False


def configure_logging(level: int = logging.INFO) -> None:
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    _LOGGING_CONFIGURED = True
