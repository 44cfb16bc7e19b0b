"""
Snapshot loading and weight recording for the dashboards.

Fetches are independent: a failed profile fetch still yields samples (and "no goal"),
a failed friend fetch still yields the user's own series.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Tuple

from aggregation import latest, multi_user_series, previous_change, progress_to_goal, windowed_delta
from errors import PersistenceError
from friends import friend_ids
from ingest import build_sample
from models import Identity, UserProfile, UserSeries, WeightSample

logger = logging.getLogger(__name__)


@dataclass
class Snapshot:
    identity: Identity
    profile: Optional[UserProfile] = None
    samples: List[WeightSample] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass
class Summary:
    current: Optional[float]
    last_change: float
    window_change: float
    progress: Optional[float]


def load_snapshot(store, identity: Identity) -> Snapshot:
    assert identity is not None, "load_snapshot requires an authenticated user"
    snap = Snapshot(identity=identity)
    try:
        snap.profile = store.fetch_profile(identity.id)
    except PersistenceError as e:
        snap.errors.append(e.message)
    try:
        snap.samples = store.fetch_samples([identity.id])
    except PersistenceError as e:
        snap.errors.append(e.message)
    return snap


def summarize(samples: List[WeightSample], profile: Optional[UserProfile], window: str, now=None) -> Summary:
    newest = latest(samples)
    current = newest.weight if newest else None
    return Summary(
        current=current,
        last_change=previous_change(samples),
        window_change=windowed_delta(samples, window, now),
        progress=progress_to_goal(profile, current),
    )


def record_weight(store, identity: Identity, samples: List[WeightSample], weight, note: Optional[str],
                  today: date) -> Tuple[List[WeightSample], Optional[WeightSample]]:
    """
    Validate and save today's weight, applying it to ``samples`` optimistically.

    Returns the updated list and the saved sample. ValidationError propagates before
    anything changes; on PersistenceError the optimistic change is rolled back and the
    error re-raised.
    """
    sample = build_sample(identity.id, weight, note, today)
    previous = list(samples)
    optimistic = [s for s in samples if not (s.user_id == sample.user_id and s.date == sample.date)]
    optimistic.append(sample)
    optimistic.sort(key=lambda s: s.date)
    samples[:] = optimistic
    try:
        saved = store.upsert_sample(sample)
    except PersistenceError:
        logger.error("Rolling back weight for %s on %s", identity.id, today)
        samples[:] = previous
        raise
    samples[:] = [saved if s is sample else s for s in samples]
    return samples, saved


@dataclass
class Comparison:
    series: List[UserSeries]
    errors: List[str] = field(default_factory=list)

    @property
    def friends(self) -> List[UserSeries]:
        return [s for s in self.series if not s.is_self]


def load_comparison(store, identity: Identity, window: str, now=None) -> Comparison:
    """Self + friends series. Samples are only requested for the caller and resolved friends."""
    assert identity is not None, "load_comparison requires an authenticated user"
    errors: List[str] = []
    ids: List[str] = []
    try:
        ids = friend_ids(store.fetch_friend_edges(identity.id), identity.id)
    except PersistenceError as e:
        errors.append(e.message)
    all_ids = [identity.id] + ids

    samples: List[WeightSample] = []
    try:
        samples = store.fetch_samples(all_ids)
    except PersistenceError as e:
        errors.append(e.message)

    names: Dict[str, str] = {}
    try:
        for uid, profile in store.fetch_profiles(all_ids).items():
            names[uid] = profile.display_name or "Friend"
    except PersistenceError as e:
        # Labels fall back to truncated ids.
        logger.warning("Failed to load profiles: %s", e.message)

    series = multi_user_series(samples, identity.id, friend_ids=ids, names=names, window=window, now=now)
    return Comparison(series=series, errors=errors)
