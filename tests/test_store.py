"""Tests for the local store and the Supabase store's request mapping."""
from datetime import date

import pytest

from errors import InvalidOperationError, PersistenceError, ValidationError
from models import FriendEdge, Identity, WeightSample
from store import LocalStore, SupabaseStore

DAY = date(2025, 6, 1)


def test_upsert_same_day_keeps_one_sample_with_latest_value():
    store = LocalStore()
    first = store.upsert_sample(WeightSample("u1", DAY, 190.0, note="morning"))
    second = store.upsert_sample(WeightSample("u1", DAY, 189.4))
    samples = store.fetch_samples(["u1"])
    assert len(samples) == 1
    assert samples[0].weight == 189.4
    assert samples[0].note is None
    assert second.created_at == first.created_at


def test_fetch_samples_only_requested_users_in_date_order():
    store = LocalStore()
    store.upsert_sample(WeightSample("u1", date(2025, 6, 3), 189.0))
    store.upsert_sample(WeightSample("u1", date(2025, 6, 1), 190.0))
    store.upsert_sample(WeightSample("u2", date(2025, 6, 2), 150.0))
    assert [s.date.day for s in store.fetch_samples(["u1"])] == [1, 3]
    assert {s.user_id for s in store.fetch_samples(["u1", "u2"])} == {"u1", "u2"}
    assert store.fetch_samples([]) == []


def test_profile_partial_upsert():
    store = LocalStore()
    store.upsert_profile("u1", {"starting_weight": 195.0, "display_name": "Sam"})
    store.upsert_profile("u1", {"target_weight": 180.0})
    profile = store.fetch_profile("u1")
    assert profile.starting_weight == 195.0
    assert profile.target_weight == 180.0
    assert profile.display_name == "Sam"
    assert profile.created_at is not None


def test_friend_code_must_be_unique():
    store = LocalStore()
    store.upsert_profile("u1", {"friend_code": "ABC123"})
    with pytest.raises(PersistenceError) as exc:
        store.upsert_profile("u2", {"friend_code": "ABC123"})
    assert exc.value.conflict


def test_friend_edges_idempotent_and_bidirectional():
    store = LocalStore()
    store.insert_friend_edge("a", "b")
    store.insert_friend_edge("a", "b")
    assert store.fetch_friend_edges("a") == [FriendEdge("a", "b")]
    assert store.fetch_friend_edges("b") == [FriendEdge("a", "b")]
    assert store.fetch_friend_edges("c") == []


def test_json_file_round_trip(tmp_path):
    path = str(tmp_path / "data.json")
    store = LocalStore(path)
    store.sign_up("sam@example.com", "secret")
    store.upsert_sample(WeightSample("u1", DAY, 190.0, note="hi"))
    store.upsert_profile("u1", {"starting_weight": 195.0, "friend_code": "ABC123"})
    store.insert_friend_edge("u1", "u2")

    reloaded = LocalStore(path)
    assert reloaded.fetch_samples(["u1"])[0].note == "hi"
    assert reloaded.resolve_friend_code("ABC123") == "u1"
    assert reloaded.fetch_friend_edges("u2") == [FriendEdge("u1", "u2")]
    assert reloaded.sign_in("sam@example.com", "secret").email == "sam@example.com"


def test_corrupt_file_starts_empty(tmp_path):
    path = tmp_path / "data.json"
    path.write_text("{not json")
    assert LocalStore(str(path)).fetch_samples(["u1"]) == []


def test_local_auth():
    store = LocalStore()
    assert store.get_session() is None
    ident = store.sign_up("a@example.com", "pw")
    assert store.get_session() == ident
    with pytest.raises(InvalidOperationError):
        store.sign_up("a@example.com", "pw")
    store.sign_out()
    assert store.get_session() is None
    with pytest.raises(ValidationError):
        store.sign_in("a@example.com", "wrong")
    assert store.sign_in("a@example.com", "pw").id == ident.id
    assert store.sign_in_as(Identity("guest")).id == "guest"


def _unwritable(store, tmp_path):
    """Point an existing store at a directory so every later write fails."""
    store.path = str(tmp_path)
    return store


def test_failed_sample_write_leaves_memory_unchanged(tmp_path):
    store = LocalStore(str(tmp_path / "data.json"))
    store.upsert_sample(WeightSample("u", DAY, 191.0))
    _unwritable(store, tmp_path)
    with pytest.raises(PersistenceError):
        store.upsert_sample(WeightSample("u", DAY, 190.0))
    with pytest.raises(PersistenceError):
        store.upsert_sample(WeightSample("u", date(2025, 6, 2), 189.0))
    assert [(s.date, s.weight) for s in store.fetch_samples(["u"])] == [(DAY, 191.0)]


def test_failed_profile_and_edge_writes_leave_memory_unchanged(tmp_path):
    store = LocalStore(str(tmp_path / "data.json"))
    store.upsert_profile("u1", {"starting_weight": 195.0})
    _unwritable(store, tmp_path)
    with pytest.raises(PersistenceError):
        store.upsert_profile("u1", {"starting_weight": 150.0})
    with pytest.raises(PersistenceError):
        store.upsert_profile("u2", {"starting_weight": 150.0})
    with pytest.raises(PersistenceError):
        store.insert_friend_edge("u1", "u2")
    with pytest.raises(PersistenceError):
        store.sign_up("new@example.com", "pw")
    assert store.fetch_profile("u1").starting_weight == 195.0
    assert store.fetch_profile("u2") is None
    assert store.fetch_friend_edges("u1") == []
    with pytest.raises(ValidationError):
        store.sign_in("new@example.com", "pw")


def test_friend_code_cannot_be_changed_once_assigned():
    store = LocalStore()
    store.upsert_profile("u1", {"friend_code": "ABC123"})
    store.upsert_profile("u1", {"friend_code": "ABC123", "age": 30})
    with pytest.raises(InvalidOperationError):
        store.upsert_profile("u1", {"friend_code": "XYZ789"})
    assert store.fetch_profile("u1").friend_code == "ABC123"
    assert store.resolve_friend_code("XYZ789") is None


def test_local_passwords_are_salted():
    store = LocalStore()
    store.sign_up("a@example.com", "same")
    store.sign_up("b@example.com", "same")
    a, b = store._users
    assert a["salt"] != b["salt"]
    assert a["password"] != b["password"]
    assert "same" not in (a["password"], b["password"])


# Supabase mapping, with a recording fake in place of the client

class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    def __init__(self, data=None, error=None):
        self.calls = []
        self.data = data if data is not None else []
        self.error = error

    def __getattr__(self, name):
        def method(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self
        return method

    def execute(self):
        if self.error is not None:
            raise self.error
        return FakeResponse(self.data)


class FakeAuth:
    def __init__(self, fail=False):
        self.fail = fail
        self.signed_out = False

    def sign_out(self):
        if self.fail:
            raise RuntimeError("network down")
        self.signed_out = True

    def get_session(self):
        return None


class FakeClient:
    def __init__(self, query, auth=None):
        self.query = query
        self.auth = auth or FakeAuth()
        self.tables = []

    def table(self, name):
        self.tables.append(name)
        return self.query

    def rpc(self, name, params):
        self.query.calls.append(("rpc", (name, params), {}))
        return self.query


class UniqueViolation(Exception):
    code = "23505"


def test_supabase_sign_out_survives_remote_failure():
    store = SupabaseStore(FakeClient(FakeQuery(), FakeAuth(fail=True)))
    store.sign_out()
    assert store.get_session() is None


def test_supabase_friend_edges_query_both_directions():
    query = FakeQuery([{"user_id": "me", "friend_user_id": "a"}, {"user_id": "b", "friend_user_id": "me"}])
    store = SupabaseStore(FakeClient(query))
    edges = store.fetch_friend_edges("me")
    assert edges == [FriendEdge("me", "a"), FriendEdge("b", "me")]
    assert ("or_", ("user_id.eq.me,friend_user_id.eq.me",), {}) in query.calls


def test_supabase_upsert_sample_leaves_created_at_to_database():
    query = FakeQuery([])
    store = SupabaseStore(FakeClient(query))
    store.upsert_sample(WeightSample("u1", DAY, 190.0, created_at=None))
    name, args, kwargs = [c for c in query.calls if c[0] == "upsert"][0]
    assert kwargs == {"on_conflict": "user_id,entry_date"}
    assert "created_at" not in args[0]
    assert args[0]["entry_date"] == "2025-06-01"
    assert args[0]["weight_lbs"] == 190.0


class FailOnUpsertQuery(FakeQuery):
    """Reads succeed with ``data``; any upsert raises ``error``."""

    def execute(self):
        if any(name == "upsert" for name, _, _ in self.calls):
            raise self.error
        return FakeResponse(self.data)


def test_supabase_unique_violation_is_conflict():
    store = SupabaseStore(FakeClient(FailOnUpsertQuery(error=UniqueViolation("duplicate key"))))
    with pytest.raises(PersistenceError) as exc:
        store.upsert_profile("u1", {"friend_code": "ABC123"})
    assert exc.value.conflict


def test_supabase_refuses_to_change_an_assigned_friend_code():
    query = FakeQuery([{"user_id": "u1", "friend_code": "ABC123"}])
    store = SupabaseStore(FakeClient(query))
    with pytest.raises(InvalidOperationError):
        store.upsert_profile("u1", {"friend_code": "XYZ789"})
    assert not any(name == "upsert" for name, _, _ in query.calls)


def test_supabase_other_failures_are_not_conflicts():
    store = SupabaseStore(FakeClient(FakeQuery(error=RuntimeError("boom"))))
    with pytest.raises(PersistenceError) as exc:
        store.fetch_samples(["u1"])
    assert not exc.value.conflict


def test_supabase_resolve_friend_code_uses_rpc():
    query = FakeQuery("alice-id")
    store = SupabaseStore(FakeClient(query))
    assert store.resolve_friend_code("ABC123") == "alice-id"
    assert ("rpc", ("get_user_id_by_friend_code", {"p_code": "ABC123"}), {}) in query.calls


def test_supabase_resolve_unknown_code():
    store = SupabaseStore(FakeClient(FakeQuery(None)))
    assert store.resolve_friend_code("ABC123") is None
