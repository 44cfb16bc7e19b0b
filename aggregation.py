"""
Aggregation engine: display-ready values derived from already-fetched weight samples.

Everything here is pure. ``now`` is injectable on every time-dependent function so the
results are reproducible in tests. Sign convention for deltas: positive = weight gained,
negative = weight lost.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import pandas as pd
from dateutil.relativedelta import relativedelta

from config import CARD_CHANGE_DAYS, PALETTE, WINDOWS
from errors import ValidationError
from models import SeriesPoint, UserProfile, UserSeries, WeightSample, ensure_date

DateLike = Union[date, datetime]

# "all" has no lower bound
_ALL_CUTOFF = date.min


def _today(now: Optional[DateLike]) -> date:
    if now is None:
        return date.today()
    return ensure_date(now)


def _ascending(samples: Iterable[WeightSample]) -> List[WeightSample]:
    return sorted(samples, key=lambda s: s.date)


def window_cutoff(window: str, now: Optional[DateLike] = None) -> date:
    """
    First calendar day included in a trailing window.

    >>> window_cutoff("week", date(2025, 3, 31))
    datetime.date(2025, 3, 24)
    >>> window_cutoff("month", date(2025, 3, 31))
    datetime.date(2025, 2, 28)
    >>> window_cutoff("year", date(2024, 2, 29))
    datetime.date(2023, 2, 28)
    """
    today = _today(now)
    if window == "week":
        return today - timedelta(days=7)
    if window == "month":
        return today - relativedelta(months=1)
    if window == "year":
        return today - relativedelta(years=1)
    if window == "all":
        return _ALL_CUTOFF
    raise ValidationError(f"Unknown time window {window!r}; expected one of {', '.join(WINDOWS)}.")


def in_window(samples: Iterable[WeightSample], cutoff: date) -> List[WeightSample]:
    return _ascending(s for s in samples if s.date >= cutoff)


def latest(samples: Sequence[WeightSample]) -> Optional[WeightSample]:
    """Sample with the most recent date, or None when there is no data."""
    if not samples:
        return None
    return max(samples, key=lambda s: s.date)


def _endpoint_delta(window_samples: List[WeightSample]) -> float:
    if len(window_samples) < 2:
        return 0.0
    return round(window_samples[-1].weight - window_samples[0].weight, 1)


def windowed_delta(samples: Sequence[WeightSample], window: str, now: Optional[DateLike] = None) -> float:
    """
    Latest minus earliest weight inside the window, by date. 0.0 ("no change") when the
    window holds fewer than two samples.
    """
    return _endpoint_delta(in_window(samples, window_cutoff(window, now)))


def change_over_days(samples: Sequence[WeightSample], days: int = CARD_CHANGE_DAYS,
                     now: Optional[DateLike] = None) -> Optional[float]:
    """Same as windowed_delta over a trailing number of days; None when there is no data at all."""
    if not samples:
        return None
    cutoff = _today(now) - timedelta(days=days)
    return _endpoint_delta(in_window(samples, cutoff))


def previous_change(samples: Sequence[WeightSample]) -> float:
    """Latest weight minus the one logged before it."""
    ordered = _ascending(samples)
    if len(ordered) < 2:
        return 0.0
    return round(ordered[-1].weight - ordered[-2].weight, 1)


def progress_to_goal(profile: Optional[UserProfile], latest_weight: Optional[float]) -> Optional[float]:
    """
    Percent of the way from starting weight to target weight, capped at 100.

    Returns None ("no goal") when there is no profile, no weight, or starting == target.
    Moving past the starting weight in the wrong direction yields a negative value.

    >>> progress_to_goal(UserProfile("u", starting_weight=195, target_weight=180), 187.5)
    50.0
    >>> progress_to_goal(UserProfile("u", starting_weight=195, target_weight=180), 175)
    100.0
    >>> progress_to_goal(UserProfile("u", starting_weight=180, target_weight=180), 175) is None
    True
    """
    if profile is None or latest_weight is None or not profile.has_goal:
        return None
    total = profile.starting_weight - profile.target_weight
    if total == 0:
        return None
    return min((profile.starting_weight - latest_weight) / total * 100.0, 100.0)


def bucket_series(samples: Sequence[WeightSample], window: str, now: Optional[DateLike] = None) -> List[SeriesPoint]:
    """Chart points inside the window, ascending by date."""
    return [
        SeriesPoint(datetime(s.date.year, s.date.month, s.date.day), s.weight)
        for s in in_window(samples, window_cutoff(window, now))
    ]


def entry_changes(samples: Sequence[WeightSample]) -> List[Tuple[WeightSample, float]]:
    """
    History rows, newest first, each paired with its change from the next older sample.
    The oldest sample has change 0.
    """
    ordered = sorted(samples, key=lambda s: s.date, reverse=True)
    rows: List[Tuple[WeightSample, float]] = []
    for i, s in enumerate(ordered):
        change = round(s.weight - ordered[i + 1].weight, 1) if i + 1 < len(ordered) else 0.0
        rows.append((s, change))
    return rows


def palette_entry(position: int) -> Dict[str, str]:
    """
    Colour for the series at ``position`` (self is 0). Past the end of the palette the
    last entry is reused.

    >>> palette_entry(0)["border"], palette_entry(9)["border"]
    ('#2563EB', '#EF4444')
    """
    return PALETTE[min(max(position, 0), len(PALETTE) - 1)]


def fallback_label(user_id: str) -> str:
    return f"{user_id[:8]}…"


def series_order(samples: Sequence[WeightSample], self_id: str,
                 friend_ids: Optional[Sequence[str]] = None) -> List[str]:
    """
    Stable user ordering for the comparison chart: self first, then friends in the order
    given (or in arrival order within ``samples`` when no friend list is passed).
    """
    order: List[str] = [self_id]
    source = friend_ids if friend_ids is not None else [s.user_id for s in samples]
    for uid in source:
        if uid not in order:
            order.append(uid)
    return order


def multi_user_series(samples: Sequence[WeightSample], self_id: str,
                      friend_ids: Optional[Sequence[str]] = None,
                      names: Optional[Dict[str, str]] = None,
                      window: str = "all",
                      now: Optional[DateLike] = None) -> List[UserSeries]:
    """Per-user chart series and card stats, self first with a deterministic palette."""
    assert self_id, "multi_user_series requires an authenticated user"
    names = names or {}
    by_user: Dict[str, List[WeightSample]] = {}
    for s in samples:
        by_user.setdefault(s.user_id, []).append(s)

    out: List[UserSeries] = []
    for position, uid in enumerate(series_order(samples, self_id, friend_ids)):
        user_samples = by_user.get(uid, [])
        colors = palette_entry(position)
        is_self = uid == self_id
        entry = UserSeries(
            user_id=uid,
            label="Me" if is_self else (names.get(uid) or fallback_label(uid)),
            color=colors["border"],
            fill=colors["fill"],
            is_self=is_self,
            points=bucket_series(user_samples, window, now),
        )
        if not is_self:
            newest = latest(user_samples)
            entry.current = newest.weight if newest else None
            entry.change_30d = change_over_days(user_samples, CARD_CHANGE_DAYS, now)
        out.append(entry)
    return out


def samples_frame(samples: Sequence[WeightSample]) -> pd.DataFrame:
    """Date/Weight frame sorted ascending, for charting and CSV export."""
    if not samples:
        return pd.DataFrame(columns=["Date", "Weight"])
    df = pd.DataFrame(
        {"Date": [s.date for s in samples], "Weight": [float(s.weight) for s in samples]}
    )
    return df.sort_values("Date").reset_index(drop=True)
