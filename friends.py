"""
Friend linking: attach another user's weights to the comparison view using their
six-character friend code. No approval from the friend is needed.
"""
from __future__ import annotations

import enum
import logging
import time
from typing import Callable, Iterable, List, Optional

from config import FRIEND_CODE_LENGTH, SUCCESS_CLOSE_DELAY
from errors import FitBuddyError, InvalidOperationError, NotFoundError, PersistenceError, ValidationError
from models import FriendEdge
from profiles import normalize_friend_code

logger = logging.getLogger(__name__)


def friend_ids(edges: Iterable[FriendEdge], user_id: str) -> List[str]:
    """Other endpoint of every edge touching ``user_id``, in either direction, without repeats."""
    out: List[str] = []
    for edge in edges:
        other = edge.other(user_id)
        if other != user_id and other not in out:
            out.append(other)
    return out


def validate_friend_code(code: Optional[str]) -> str:
    normalized = normalize_friend_code(code)
    if len(normalized) != FRIEND_CODE_LENGTH:
        raise ValidationError(f"Friend code should be {FRIEND_CODE_LENGTH} characters.")
    return normalized


class FriendLinker:
    def __init__(self, store):
        self.store = store

    def resolve(self, code: Optional[str]) -> str:
        normalized = validate_friend_code(code)
        try:
            friend_id = self.store.resolve_friend_code(normalized)
        except PersistenceError as e:
            logger.error("Friend code lookup failed: %s", e)
            raise PersistenceError("Failed to add friend.") from e
        if not friend_id:
            raise NotFoundError("No user found with that code.")
        return friend_id

    def link(self, caller_id: str, friend_id: str) -> FriendEdge:
        if friend_id == caller_id:
            raise InvalidOperationError("You can't add yourself.")
        try:
            self.store.insert_friend_edge(caller_id, friend_id)
        except PersistenceError as e:
            logger.error("Could not link %s -> %s: %s", caller_id, friend_id, e)
            raise PersistenceError("Failed to add friend.") from e
        logger.info("Linked %s -> %s", caller_id, friend_id)
        return FriendEdge(caller_id, friend_id)

    def add_friend(self, caller_id: str, code: Optional[str]) -> FriendEdge:
        """
        Validate, resolve and link in one go. Re-adding an existing friend is a no-op that
        still succeeds.
        """
        assert caller_id, "add_friend requires an authenticated user"
        return self.link(caller_id, self.resolve(code))


class AddFriendState(str, enum.Enum):
    IDLE = "idle"
    CODE_ENTERED = "code_entered"
    VALIDATING = "validating"
    VALIDATION_FAILED = "validation_failed"
    LOOKUP_FAILED = "lookup_failed"
    RESOLVED = "resolved"
    INSERTING = "inserting"
    SUCCESS = "success"


class AddFriendFlow:
    """
    UI state for the add-friend form.

    Idle -> CodeEntered -> Validating -> Resolved -> Inserting -> Success -> Idle.
    Validation and lookup failures go back to CodeEntered with a message. ``submitting``
    blocks a second submit while one is in flight.
    """

    def __init__(self, linker: FriendLinker, clock: Callable[[], float] = time.monotonic):
        self.linker = linker
        self.clock = clock
        self.state = AddFriendState.IDLE
        self.code = ""
        self.message: Optional[str] = None
        self.submitting = False
        self.history: List[AddFriendState] = [self.state]
        self._success_at: Optional[float] = None

    def _go(self, state: AddFriendState) -> None:
        self.state = state
        self.history.append(state)

    @property
    def is_open(self) -> bool:
        return self.state != AddFriendState.IDLE

    def open(self) -> None:
        if self.state == AddFriendState.IDLE:
            self.code = ""
            self.message = None

    def enter(self, code: str) -> None:
        self.code = (code or "").upper()
        self.message = None
        if self.state != AddFriendState.CODE_ENTERED:
            self._go(AddFriendState.CODE_ENTERED)

    def close(self) -> None:
        self.code = ""
        self.message = None
        self.submitting = False
        self._success_at = None
        if self.state != AddFriendState.IDLE:
            self._go(AddFriendState.IDLE)

    def submit(self, caller_id: str) -> bool:
        """Run one add attempt. Returns True when the friend was linked."""
        if self.submitting or self.state != AddFriendState.CODE_ENTERED:
            return False
        self.submitting = True
        try:
            self._go(AddFriendState.VALIDATING)
            try:
                friend_id = self.linker.resolve(self.code)
            except ValidationError as e:
                return self._fail(AddFriendState.VALIDATION_FAILED, e)
            except (NotFoundError, PersistenceError) as e:
                return self._fail(AddFriendState.LOOKUP_FAILED, e)
            self._go(AddFriendState.RESOLVED)
            self._go(AddFriendState.INSERTING)
            try:
                self.linker.link(caller_id, friend_id)
            except FitBuddyError as e:
                return self._fail(None, e)
            self._go(AddFriendState.SUCCESS)
            self.message = "Friend added!"
            self.code = ""
            self._success_at = self.clock()
            return True
        finally:
            self.submitting = False

    def _fail(self, state: Optional[AddFriendState], error: FitBuddyError) -> bool:
        if state is not None:
            self._go(state)
        self._go(AddFriendState.CODE_ENTERED)
        self.message = error.message
        return False

    def tick(self) -> None:
        """Close the form once the success message has been shown long enough."""
        if self.state == AddFriendState.SUCCESS and self._success_at is not None:
            if self.clock() - self._success_at >= SUCCESS_CLOSE_DELAY:
                self.close()
