"""
Records shared by the aggregation engine, the friend workflow and the stores.

Row mapping follows the Supabase schema:

- user_weight_entries(user_id, entry_date, weight_lbs, notes, created_at, updated_at)
- user_profiles(user_id, starting_weight, target_weight, height, age, activity_level,
  username, friend_code, created_at, updated_at)
- user_friends(user_id, friend_user_id)
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, NamedTuple, Optional

import pandas as pd
import pytz
from dateutil import parser as dateparser


class ActivityLevel(str, enum.Enum):
    SEDENTARY = "sedentary"
    LIGHT = "light"
    MODERATE = "moderate"
    ACTIVE = "active"
    VERY_ACTIVE = "very_active"


ACTIVITY_LABELS: Dict[ActivityLevel, str] = {
    ActivityLevel.SEDENTARY: "Sedentary (little to no exercise)",
    ActivityLevel.LIGHT: "Light (light exercise 1-3 days/week)",
    ActivityLevel.MODERATE: "Moderate (moderate exercise 3-5 days/week)",
    ActivityLevel.ACTIVE: "Active (hard exercise 6-7 days/week)",
    ActivityLevel.VERY_ACTIVE: "Very Active (very hard exercise, physical job)",
}


def utcnow() -> datetime:
    return datetime.now(pytz.utc)


def ensure_date(obj) -> date:
    """
    Coerce a date-ish value to a calendar date.

    >>> ensure_date("2025-01-03")
    datetime.date(2025, 1, 3)
    >>> ensure_date(datetime(2025, 1, 3, 8, 0))
    datetime.date(2025, 1, 3)
    """
    if isinstance(obj, pd.Timestamp):
        return obj.date()
    if isinstance(obj, datetime):
        return obj.date()
    if isinstance(obj, date):
        return obj
    return dateparser.parse(str(obj)).date()


def ensure_datetime(obj) -> Optional[datetime]:
    if obj is None:
        return None
    if isinstance(obj, datetime):
        return obj
    if isinstance(obj, date):
        return datetime(obj.year, obj.month, obj.day)
    return dateparser.parse(str(obj))


@dataclass(frozen=True)
class Identity:
    id: str
    email: Optional[str] = None


@dataclass
class WeightSample:
    user_id: str
    date: date
    weight: float
    note: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_row(self) -> Dict[str, object]:
        row = {
            "user_id": self.user_id,
            "entry_date": self.date.isoformat(),
            "weight_lbs": float(self.weight),
            "notes": self.note,
        }
        if self.created_at is not None:
            row["created_at"] = self.created_at.isoformat()
        if self.updated_at is not None:
            row["updated_at"] = self.updated_at.isoformat()
        return row

    @classmethod
    def from_row(cls, row: Dict[str, object]) -> "WeightSample":
        return cls(
            user_id=str(row["user_id"]),
            date=ensure_date(row["entry_date"]),
            weight=float(row["weight_lbs"]),
            note=row.get("notes") or None,
            created_at=ensure_datetime(row.get("created_at")),
            updated_at=ensure_datetime(row.get("updated_at")),
        )


@dataclass
class UserProfile:
    user_id: str
    starting_weight: Optional[float] = None
    target_weight: Optional[float] = None
    height: Optional[float] = None
    age: Optional[int] = None
    activity_level: ActivityLevel = ActivityLevel.MODERATE
    display_name: Optional[str] = None
    friend_code: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def has_goal(self) -> bool:
        return self.starting_weight is not None and self.target_weight is not None

    @classmethod
    def from_row(cls, row: Dict[str, object]) -> "UserProfile":
        level = row.get("activity_level") or ActivityLevel.MODERATE.value
        age = row.get("age")
        return cls(
            user_id=str(row["user_id"]),
            starting_weight=_opt_float(row.get("starting_weight")),
            target_weight=_opt_float(row.get("target_weight")),
            height=_opt_float(row.get("height")),
            age=int(age) if age is not None else None,
            activity_level=ActivityLevel(level),
            display_name=row.get("username") or row.get("display_name") or None,
            friend_code=row.get("friend_code") or None,
            created_at=ensure_datetime(row.get("created_at")),
            updated_at=ensure_datetime(row.get("updated_at")),
        )


def _opt_float(value) -> Optional[float]:
    return float(value) if value is not None else None


@dataclass(frozen=True)
class FriendEdge:
    owner_user_id: str
    friend_user_id: str

    def other(self, user_id: str) -> str:
        return self.friend_user_id if self.owner_user_id == user_id else self.owner_user_id

    @classmethod
    def from_row(cls, row: Dict[str, object]) -> "FriendEdge":
        return cls(owner_user_id=str(row["user_id"]), friend_user_id=str(row["friend_user_id"]))


class SeriesPoint(NamedTuple):
    timestamp: datetime
    value: float


@dataclass
class UserSeries:
    """One line on the comparison chart, plus its card stats."""

    user_id: str
    label: str
    color: str
    fill: str
    is_self: bool
    points: List[SeriesPoint] = field(default_factory=list)
    current: Optional[float] = None
    change_30d: Optional[float] = None
