"""
Validation and normalization of user-submitted values before they reach a store.
"""
from __future__ import annotations

import math
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Dict, Optional

from config import AGE_MAX, AGE_MIN, HEIGHT_MAX, HEIGHT_MIN, WEIGHT_MAX, WEIGHT_MIN
from errors import ValidationError
from models import ActivityLevel, WeightSample, utcnow


def _to_decimal(value, label: str = "weight") -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"Please enter a valid {label}.")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValidationError(f"Please enter a valid {label}.")
    try:
        d = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Please enter a valid {label}.")
    if not d.is_finite():
        raise ValidationError(f"Please enter a valid {label}.")
    return d


def _clamp(x, lo, hi):
    return max(lo, min(hi, x))


def _round1(d: Decimal, lo, hi) -> float:
    """Clamp to [lo, hi] first so huge finite inputs never overflow the quantize context."""
    d = _clamp(d, Decimal(lo), Decimal(hi))
    return float(d.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def normalize_weight(value, label: str = "weight") -> float:
    """
    Parse, round to one decimal and clamp a weight to [0, 1000].

    >>> normalize_weight("187.46")
    187.5
    >>> normalize_weight(1200)
    1000.0
    >>> normalize_weight(-3)
    0.0
    """
    return _round1(_to_decimal(value, label), WEIGHT_MIN, WEIGHT_MAX)


def normalize_note(note: Optional[str]) -> Optional[str]:
    if note is None:
        return None
    note = str(note).strip()
    return note or None


def today_local(tz, now: Optional[datetime] = None) -> date:
    """The caller's calendar date in ``tz`` (a pytz timezone)."""
    now = now or utcnow()
    if now.tzinfo is None:
        now = tz.localize(now)
    return now.astimezone(tz).date()


def build_sample(user_id: str, weight, note: Optional[str], today: date) -> WeightSample:
    """Normalized sample for ``today``; there is no backdating."""
    assert user_id, "build_sample requires an authenticated user"
    stamp = utcnow()
    return WeightSample(
        user_id=user_id,
        date=today,
        weight=normalize_weight(weight),
        note=normalize_note(note),
        created_at=stamp,
        updated_at=stamp,
    )


def normalize_profile_fields(fields: Dict[str, object]) -> Dict[str, object]:
    """
    Normalize the subset of profile fields that were supplied.

    Unknown keys are dropped, as is ``friend_code``: codes are assigned once by the
    profile service and never edited through a form.

    >>> normalize_profile_fields({"starting_weight": "195.04", "height": 250, "age": "34"})
    {'starting_weight': 195.0, 'height': 120.0, 'age': 34}
    """
    out: Dict[str, object] = {}
    for key in ("starting_weight", "target_weight"):
        if fields.get(key) is not None:
            out[key] = normalize_weight(fields[key], label=key.replace("_", " "))
    if fields.get("height") is not None:
        out["height"] = _round1(_to_decimal(fields["height"], "height"), HEIGHT_MIN, HEIGHT_MAX)
    if fields.get("age") is not None:
        a = _to_decimal(fields["age"], "age")
        out["age"] = int(_clamp(a, Decimal(AGE_MIN), Decimal(AGE_MAX)))
    if fields.get("activity_level") is not None:
        try:
            out["activity_level"] = ActivityLevel(fields["activity_level"])
        except ValueError:
            raise ValidationError("Please choose an activity level.")
    if "display_name" in fields:
        out["display_name"] = normalize_note(fields["display_name"])
    return out
