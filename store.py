"""
Persistence and identity boundary.

Two interchangeable stores expose the same operations:

- SupabaseStore: the hosted project (auth + Postgres tables with row-level security).
- LocalStore: rows kept in memory and, when a path is given, persisted to a JSON file.
  Used for guest/demo mode and in tests.

Every store failure is logged and re-raised as PersistenceError.
"""
from __future__ import annotations

import hashlib
import hmac
import json
import logging
import os
import uuid
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from config import FRIEND_CODE_RPC, FRIENDS_TABLE, PROFILES_TABLE, SAMPLES_TABLE, Settings
from errors import InvalidOperationError, PersistenceError, ValidationError
from models import ActivityLevel, FriendEdge, Identity, UserProfile, WeightSample, utcnow
from supabase import Client, create_client

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"
PBKDF2_ROUNDS = 200_000


def _profile_row(user_id: str, fields: Dict[str, object]) -> Dict[str, object]:
    """Map normalized profile fields to column names; only supplied fields are written."""
    row: Dict[str, object] = {"user_id": user_id}
    for key, value in fields.items():
        if key == "display_name":
            row["username"] = value
        elif key == "activity_level":
            row["activity_level"] = ActivityLevel(value).value
        elif key in ("user_id", "created_at", "updated_at"):
            continue
        else:
            row[key] = value
    return row


def _check_friend_code(current: Optional[str], requested: Optional[str]) -> None:
    """A friend code is assigned once; rewriting it to a different value is refused."""
    if current and requested and requested != current:
        raise InvalidOperationError("Friend code can't be changed.")


class Store:
    """Operations required by the app. See LocalStore and SupabaseStore."""

    is_remote = False

    def get_session(self) -> Optional[Identity]:
        raise NotImplementedError

    def sign_in(self, email: str, password: str) -> Identity:
        raise NotImplementedError

    def sign_up(self, email: str, password: str) -> Identity:
        raise NotImplementedError

    def sign_out(self) -> None:
        raise NotImplementedError

    def fetch_profile(self, user_id: str) -> Optional[UserProfile]:
        raise NotImplementedError

    def fetch_profiles(self, user_ids: Sequence[str]) -> Dict[str, UserProfile]:
        raise NotImplementedError

    def upsert_profile(self, user_id: str, fields: Dict[str, object]) -> UserProfile:
        raise NotImplementedError

    def fetch_samples(self, user_ids: Sequence[str]) -> List[WeightSample]:
        raise NotImplementedError

    def upsert_sample(self, sample: WeightSample) -> WeightSample:
        raise NotImplementedError

    def fetch_friend_edges(self, user_id: str) -> List[FriendEdge]:
        raise NotImplementedError

    def resolve_friend_code(self, code: str) -> Optional[str]:
        raise NotImplementedError

    def insert_friend_edge(self, owner_id: str, friend_id: str) -> None:
        raise NotImplementedError


# -------------------------------
# Local (guest / demo) store
# -------------------------------

class LocalStore(Store):
    def __init__(self, path: Optional[str] = None):
        self.path = path
        self._users: List[Dict[str, str]] = []
        self._profiles: Dict[str, Dict[str, object]] = {}
        self._samples: Dict[tuple, Dict[str, object]] = {}
        self._edges: List[Dict[str, str]] = []
        self._session: Optional[Identity] = None
        if path:
            self._load()

    # persistence

    def _load(self) -> None:
        if not os.path.exists(self.path):
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                obj = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Could not read %s, starting empty: %s", self.path, e)
            return
        self._users = obj.get("users", [])
        self._profiles = {p["user_id"]: p for p in obj.get("profiles", [])}
        self._samples = {(s["user_id"], s["entry_date"]): s for s in obj.get("samples", [])}
        self._edges = obj.get("friends", [])

    def _save(self) -> None:
        if not self.path:
            return
        data = {
            "users": self._users,
            "profiles": list(self._profiles.values()),
            "samples": list(self._samples.values()),
            "friends": self._edges,
            "saved_at": datetime.now().isoformat(),
        }
        try:
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            logger.error("Failed to write %s: %s", self.path, e)
            raise PersistenceError() from e

    def _persist(self, undo: Callable[[], None]) -> None:
        """Write to disk, reverting the in-memory change with ``undo`` if the write fails."""
        try:
            self._save()
        except PersistenceError:
            undo()
            raise

    @staticmethod
    def _restore(table: Dict, key, previous) -> None:
        if previous is None:
            table.pop(key, None)
        else:
            table[key] = previous

    # identity

    @staticmethod
    def _hash(password: str, salt: str) -> str:
        digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), bytes.fromhex(salt), PBKDF2_ROUNDS)
        return digest.hex()

    def get_session(self) -> Optional[Identity]:
        return self._session

    def sign_in_as(self, identity: Identity) -> Identity:
        """Start a session without credentials (guest and demo users)."""
        self._session = identity
        return identity

    def sign_up(self, email: str, password: str) -> Identity:
        if not email or not password:
            raise ValidationError("Please fill in all fields.")
        if any(u["email"] == email for u in self._users):
            raise InvalidOperationError("User already exists")
        salt = os.urandom(16).hex()
        user = {"id": uuid.uuid4().hex, "email": email, "salt": salt, "password": self._hash(password, salt)}
        self._users.append(user)
        self._persist(lambda: self._users.remove(user))
        self._session = Identity(user["id"], email)
        return self._session

    def sign_in(self, email: str, password: str) -> Identity:
        for u in self._users:
            if u["email"] != email or "salt" not in u:
                continue
            if hmac.compare_digest(u["password"], self._hash(password or "", u["salt"])):
                self._session = Identity(u["id"], email)
                return self._session
        raise ValidationError("Invalid email or password")

    def sign_out(self) -> None:
        self._session = None

    # profiles

    def fetch_profile(self, user_id: str) -> Optional[UserProfile]:
        row = self._profiles.get(user_id)
        return UserProfile.from_row(row) if row else None

    def fetch_profiles(self, user_ids: Sequence[str]) -> Dict[str, UserProfile]:
        return {uid: UserProfile.from_row(self._profiles[uid]) for uid in user_ids if uid in self._profiles}

    def upsert_profile(self, user_id: str, fields: Dict[str, object]) -> UserProfile:
        row = _profile_row(user_id, fields)
        code = row.get("friend_code")
        if code and any(p.get("friend_code") == code and uid != user_id for uid, p in self._profiles.items()):
            raise PersistenceError("Friend code already taken.", conflict=True)
        previous = self._profiles.get(user_id)
        _check_friend_code(previous and previous.get("friend_code"), code)
        now = utcnow().isoformat()
        merged = dict(previous) if previous else {"user_id": user_id, "created_at": now}
        merged.update(row)
        merged["updated_at"] = now
        self._profiles[user_id] = merged
        self._persist(lambda: self._restore(self._profiles, user_id, previous))
        return UserProfile.from_row(merged)

    # samples

    def fetch_samples(self, user_ids: Sequence[str]) -> List[WeightSample]:
        wanted = set(user_ids)
        rows = [r for (uid, _), r in self._samples.items() if uid in wanted]
        return sorted((WeightSample.from_row(r) for r in rows), key=lambda s: s.date)

    def upsert_sample(self, sample: WeightSample) -> WeightSample:
        key = (sample.user_id, sample.date.isoformat())
        now = utcnow().isoformat()
        row = sample.to_row()
        previous = self._samples.get(key)
        row["created_at"] = previous["created_at"] if previous and previous.get("created_at") else now
        row["updated_at"] = now
        self._samples[key] = row
        self._persist(lambda: self._restore(self._samples, key, previous))
        return WeightSample.from_row(row)

    def load_samples(self, samples: Sequence[WeightSample]) -> None:
        """Bulk-insert samples as given (demo dataset); existing days are replaced."""
        before = dict(self._samples)
        for s in samples:
            self._samples[(s.user_id, s.date.isoformat())] = s.to_row()
        self._persist(lambda: setattr(self, "_samples", before))

    # friends

    def fetch_friend_edges(self, user_id: str) -> List[FriendEdge]:
        return [
            FriendEdge.from_row(e) for e in self._edges
            if e["user_id"] == user_id or e["friend_user_id"] == user_id
        ]

    def resolve_friend_code(self, code: str) -> Optional[str]:
        for uid, p in self._profiles.items():
            if p.get("friend_code") == code:
                return uid
        return None

    def insert_friend_edge(self, owner_id: str, friend_id: str) -> None:
        row = {"user_id": owner_id, "friend_user_id": friend_id}
        if row not in self._edges:
            self._edges.append(row)
            self._persist(lambda: self._edges.remove(row))


# -------------------------------
# Supabase store
# -------------------------------

class SupabaseStore(Store):
    is_remote = True

    def __init__(self, client):
        self.client = client

    def _call(self, action: str, fn: Callable, message: Optional[str] = None):
        try:
            return fn()
        except Exception as e:
            conflict = getattr(e, "code", None) == UNIQUE_VIOLATION
            logger.error("Supabase call failed (%s): %s", action, e)
            raise PersistenceError(message, conflict=conflict) from e

    # identity

    def get_session(self) -> Optional[Identity]:
        try:
            session = self.client.auth.get_session()
        except Exception as e:
            logger.warning("Could not read auth session: %s", e)
            return None
        if not session or not session.user:
            return None
        return Identity(str(session.user.id), session.user.email)

    def auth_session(self):
        """Raw auth session, kept in Streamlit state to restore the login across reruns."""
        try:
            return self.client.auth.get_session()
        except Exception as e:
            logger.warning("Could not read auth session: %s", e)
            return None

    def set_session(self, access_token: str, refresh_token: str) -> None:
        self._call("set_session", lambda: self.client.auth.set_session(access_token, refresh_token))

    def sign_in(self, email: str, password: str) -> Identity:
        if not email or not password:
            raise ValidationError("Please enter both email and password.")
        response = self._call(
            "sign_in",
            lambda: self.client.auth.sign_in_with_password({"email": email, "password": password}),
            "Login failed.",
        )
        return Identity(str(response.user.id), response.user.email)

    def sign_up(self, email: str, password: str) -> Identity:
        if not email or not password:
            raise ValidationError("Please fill in all fields.")
        response = self._call(
            "sign_up",
            lambda: self.client.auth.sign_up({"email": email, "password": password}),
            "Sign up failed.",
        )
        return Identity(str(response.user.id), response.user.email)

    def sign_out(self) -> None:
        # Local sign-out must succeed even when the remote call does not.
        try:
            self.client.auth.sign_out()
        except Exception as e:
            logger.warning("Remote sign-out failed: %s", e)

    # profiles

    def fetch_profile(self, user_id: str) -> Optional[UserProfile]:
        response = self._call(
            "fetch_profile",
            lambda: self.client.table(PROFILES_TABLE).select("*").eq("user_id", user_id).limit(1).execute(),
        )
        return UserProfile.from_row(response.data[0]) if response.data else None

    def fetch_profiles(self, user_ids: Sequence[str]) -> Dict[str, UserProfile]:
        if not user_ids:
            return {}
        response = self._call(
            "fetch_profiles",
            lambda: self.client.table(PROFILES_TABLE).select("*").in_("user_id", list(user_ids)).execute(),
        )
        return {str(r["user_id"]): UserProfile.from_row(r) for r in response.data or []}

    def upsert_profile(self, user_id: str, fields: Dict[str, object]) -> UserProfile:
        row = _profile_row(user_id, fields)
        if row.get("friend_code"):
            current = self.fetch_profile(user_id)
            _check_friend_code(current and current.friend_code, row["friend_code"])
        row["updated_at"] = utcnow().isoformat()
        response = self._call(
            "upsert_profile",
            lambda: self.client.table(PROFILES_TABLE).upsert(row, on_conflict="user_id").execute(),
            "Failed to save profile.",
        )
        if response.data:
            return UserProfile.from_row(response.data[0])
        return self.fetch_profile(user_id)

    # samples

    def fetch_samples(self, user_ids: Sequence[str]) -> List[WeightSample]:
        if not user_ids:
            return []
        response = self._call(
            "fetch_samples",
            lambda: self.client.table(SAMPLES_TABLE)
            .select("user_id, entry_date, weight_lbs, notes, created_at, updated_at")
            .in_("user_id", list(user_ids))
            .order("entry_date")
            .execute(),
        )
        return [WeightSample.from_row(r) for r in response.data or []]

    def upsert_sample(self, sample: WeightSample) -> WeightSample:
        row = sample.to_row()
        # created_at is left to the column default so a same-day update keeps it.
        row.pop("created_at", None)
        row["updated_at"] = utcnow().isoformat()
        response = self._call(
            "upsert_sample",
            lambda: self.client.table(SAMPLES_TABLE).upsert(row, on_conflict="user_id,entry_date").execute(),
            "Failed to save weight.",
        )
        return WeightSample.from_row(response.data[0]) if response.data else sample

    # friends

    def fetch_friend_edges(self, user_id: str) -> List[FriendEdge]:
        response = self._call(
            "fetch_friend_edges",
            lambda: self.client.table(FRIENDS_TABLE)
            .select("user_id, friend_user_id")
            .or_(f"user_id.eq.{user_id},friend_user_id.eq.{user_id}")
            .execute(),
        )
        return [FriendEdge.from_row(r) for r in response.data or []]

    def resolve_friend_code(self, code: str) -> Optional[str]:
        response = self._call(
            "resolve_friend_code",
            lambda: self.client.rpc(FRIEND_CODE_RPC, {"p_code": code}).execute(),
            "Failed to add friend.",
        )
        return str(response.data) if response.data else None

    def insert_friend_edge(self, owner_id: str, friend_id: str) -> None:
        row = {"user_id": owner_id, "friend_user_id": friend_id}
        self._call(
            "insert_friend_edge",
            lambda: self.client.table(FRIENDS_TABLE).upsert(row, on_conflict="user_id,friend_user_id").execute(),
            "Failed to add friend.",
        )


def create_store(settings: Settings) -> Store:
    """Supabase when credentials are configured, otherwise a file-backed local store."""
    if settings.supabase_available:
        try:
            client: Client = create_client(settings.supabase_url, settings.supabase_key)
            return SupabaseStore(client)
        except Exception as e:
            logger.error("Supabase initialization failed: %s", e)
    return LocalStore(settings.data_path)
