"""Tests for snapshot loading, weight recording and the comparison view."""
from datetime import date, datetime, timedelta

import pytest
import pytz

from dashboard import load_comparison, load_snapshot, record_weight, summarize
from errors import PersistenceError, ValidationError
from friends import FriendLinker
from ingest import today_local
from models import Identity, UserProfile, WeightSample
from profiles import save_profile
from store import LocalStore

TODAY = date(2025, 10, 27)
ME = Identity("me", "me@example.com")
PROFILE = {"starting_weight": 195, "target_weight": 180, "height": 70, "age": 30}


class ProfileDownStore(LocalStore):
    def fetch_profile(self, user_id):
        raise PersistenceError("Failed to load profile.")

    def fetch_profiles(self, user_ids):
        raise PersistenceError("Failed to load profiles.")


class SampleWriteDownStore(LocalStore):
    """Fails every weight write, noting what the caller's list held at the time."""

    def __init__(self, watched):
        super().__init__()
        self.watched = watched
        self.seen = []

    def upsert_sample(self, sample):
        self.seen.append([s.weight for s in self.watched])
        raise PersistenceError("Failed to save weight.")


class RecordingStore(LocalStore):
    def __init__(self):
        super().__init__()
        self.sample_requests = []

    def fetch_samples(self, user_ids):
        self.sample_requests.append(list(user_ids))
        return super().fetch_samples(user_ids)


def test_record_weight_same_day_overwrites():
    store = LocalStore()
    samples = []
    record_weight(store, ME, samples, "190.0", None, TODAY)
    record_weight(store, ME, samples, "189.6", "after run", TODAY)
    assert len(samples) == 1
    assert samples[0].weight == 189.6
    stored = store.fetch_samples([ME.id])
    assert len(stored) == 1 and stored[0].weight == 189.6 and stored[0].note == "after run"


def test_record_weight_invalid_input_changes_nothing():
    store = LocalStore()
    samples = [WeightSample(ME.id, TODAY - timedelta(days=1), 190.0)]
    with pytest.raises(ValidationError):
        record_weight(store, ME, samples, "abc", None, TODAY)
    assert len(samples) == 1
    assert store.fetch_samples([ME.id]) == []


def test_record_weight_rolls_back_on_store_failure():
    before = [WeightSample(ME.id, TODAY - timedelta(days=1), 190.0)]
    samples = list(before)
    store = SampleWriteDownStore(samples)
    with pytest.raises(PersistenceError):
        record_weight(store, ME, samples, "185", None, TODAY)
    assert store.seen == [[190.0, 185.0]]
    assert samples == before


def test_record_weight_shows_new_value_while_saving():
    samples = [WeightSample(ME.id, TODAY, 190.0)]
    seen = []

    class WatchingStore(LocalStore):
        def upsert_sample(self, sample):
            seen.append([(s.date, s.weight) for s in samples])
            return super().upsert_sample(sample)

    record_weight(WatchingStore(), ME, samples, "188.2", None, TODAY)
    assert seen == [[(TODAY, 188.2)]]
    assert [s.weight for s in samples] == [188.2]
    assert samples[0].created_at is not None


def test_snapshot_without_profile_reports_no_goal():
    store = LocalStore()
    store.upsert_sample(WeightSample(ME.id, TODAY, 190.0))
    snap = load_snapshot(store, ME)
    summary = summarize(snap.samples, snap.profile, "month", now=TODAY)
    assert snap.profile is None
    assert summary.current == 190.0
    assert summary.progress is None
    assert summary.window_change == 0.0


def test_snapshot_survives_profile_fetch_failure():
    store = ProfileDownStore()
    store.upsert_sample(WeightSample(ME.id, TODAY, 190.0))
    snap = load_snapshot(store, ME)
    assert snap.errors == ["Failed to load profile."]
    assert len(snap.samples) == 1


def test_summary_with_goal():
    samples = [WeightSample(ME.id, TODAY - timedelta(days=3), 189.0), WeightSample(ME.id, TODAY, 187.5)]
    summary = summarize(samples, UserProfile(ME.id, starting_weight=195.0, target_weight=180.0), "week", now=TODAY)
    assert summary.progress == 50.0
    assert summary.last_change == -1.5
    assert summary.window_change == -1.5


def test_summary_empty():
    summary = summarize([], None, "all", now=TODAY)
    assert summary.current is None and summary.progress is None
    assert summary.last_change == 0.0 and summary.window_change == 0.0


def test_new_friend_appears_in_comparison_and_strangers_do_not():
    store = RecordingStore()
    save_profile(store, ME.id, PROFILE)
    save_profile(store, "alice", dict(PROFILE, display_name="Alice"))
    save_profile(store, "stranger", PROFILE)
    store.upsert_sample(WeightSample(ME.id, TODAY, 190.0))
    store.upsert_sample(WeightSample("alice", TODAY - timedelta(days=5), 160.0))
    store.upsert_sample(WeightSample("stranger", TODAY, 150.0))

    before = load_comparison(store, ME, "all", now=TODAY)
    assert [s.user_id for s in before.series] == [ME.id]

    FriendLinker(store).add_friend(ME.id, store.fetch_profile("alice").friend_code)
    after = load_comparison(store, ME, "all", now=TODAY)

    assert [s.label for s in after.series] == ["Me", "Alice"]
    assert after.friends[0].current == 160.0
    assert store.sample_requests[-1] == [ME.id, "alice"]
    assert all("stranger" not in ids for ids in store.sample_requests)


def test_comparison_labels_fall_back_without_profiles():
    store = ProfileDownStore()
    store.insert_friend_edge("0123456789abcdef", ME.id)
    comparison = load_comparison(store, ME, "all", now=TODAY)
    assert [s.label for s in comparison.series] == ["Me", "01234567…"]
    assert comparison.errors == []


def test_summary_window_follows_the_local_calendar_day():
    tz = pytz.timezone("America/Chicago")
    samples = [WeightSample(ME.id, TODAY - timedelta(days=7), 192.0), WeightSample(ME.id, TODAY, 190.0)]
    # 03:00 UTC on the 28th is still the evening of the 27th in Chicago.
    local_today = today_local(tz, datetime(2025, 10, 28, 3, 0, tzinfo=pytz.utc))
    assert summarize(samples, None, "week", now=local_today).window_change == -2.0
    assert summarize(samples, None, "week", now=TODAY + timedelta(days=1)).window_change == 0.0
