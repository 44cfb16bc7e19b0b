"""
Profile service: saving profiles, friend-code assignment and cached/remote hydration.
"""
from __future__ import annotations

import logging
import random
from dataclasses import fields as dc_fields
from typing import Dict, Optional

from config import FRIEND_CODE_ALPHABET, FRIEND_CODE_LENGTH, FRIEND_CODE_MAX_ATTEMPTS
from errors import PersistenceError
from ingest import normalize_profile_fields
from models import UserProfile

logger = logging.getLogger(__name__)

_sysrand = random.SystemRandom()


def generate_friend_code(rng: Optional[random.Random] = None) -> str:
    rng = rng or _sysrand
    return "".join(rng.choice(FRIEND_CODE_ALPHABET) for _ in range(FRIEND_CODE_LENGTH))


def normalize_friend_code(code: Optional[str]) -> str:
    """
    >>> normalize_friend_code("  abc123 ")
    'ABC123'
    """
    return (code or "").strip().upper()


def needs_onboarding(profile: Optional[UserProfile]) -> bool:
    return profile is None or not profile.has_goal


def merge_profile(remote: Optional[UserProfile], cached: Optional[UserProfile],
                  defaults: Optional[Dict[str, object]] = None) -> Optional[UserProfile]:
    """
    Combine a remote and a locally cached copy of the same profile, field by field.

    Precedence per field: remote value if not None, else cached value if not None, else
    the default. Returns None when neither copy exists.
    """
    if remote is None and cached is None:
        return None
    defaults = defaults or {}
    base = remote if remote is not None else cached
    merged = {}
    for f in dc_fields(UserProfile):
        value = getattr(remote, f.name, None) if remote is not None else None
        if value is None and cached is not None:
            value = getattr(cached, f.name, None)
        if value is None:
            value = defaults.get(f.name)
        merged[f.name] = value
    merged["user_id"] = base.user_id
    if merged["activity_level"] is None:
        del merged["activity_level"]
    return UserProfile(**merged)


def save_profile(store, user_id: str, fields: Dict[str, object],
                 rng: Optional[random.Random] = None,
                 max_attempts: int = FRIEND_CODE_MAX_ATTEMPTS) -> UserProfile:
    """
    Normalize and upsert profile fields. A profile without a friend code gets one; a code
    collision regenerates and retries up to ``max_attempts`` times. Existing codes are kept.
    """
    assert user_id, "save_profile requires an authenticated user"
    clean = normalize_profile_fields(fields)
    existing = store.fetch_profile(user_id)
    if existing is not None and existing.friend_code:
        return store.upsert_profile(user_id, clean)

    for attempt in range(1, max_attempts + 1):
        code = generate_friend_code(rng)
        try:
            return store.upsert_profile(user_id, dict(clean, friend_code=code))
        except PersistenceError as e:
            if not e.conflict:
                raise
            logger.info("Friend code collision on attempt %d, regenerating", attempt)
    raise PersistenceError("Could not assign a unique friend code. Please try again.")
