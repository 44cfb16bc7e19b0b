"""
Error taxonomy for FitBuddy.

Every error carries a user-facing ``message`` that the UI can show inline.
"""


class FitBuddyError(Exception):
    """Base class for errors surfaced to the user."""

    default_message = "Something went wrong."

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(FitBuddyError):
    """Malformed input (non-numeric weight, wrong-length friend code). Nothing was attempted."""

    default_message = "Invalid input."


class NotFoundError(FitBuddyError):
    """A friend code did not resolve to any user."""

    default_message = "No user found with that code."


class InvalidOperationError(FitBuddyError):
    """The request is well-formed but not allowed, e.g. adding yourself as a friend."""

    default_message = "That operation is not allowed."


class PersistenceError(FitBuddyError):
    """
    A store call failed.

    ``conflict`` is set when the failure was a uniqueness violation, so callers that
    generate keys (friend codes) can regenerate and retry.
    """

    default_message = "Failed to save changes."

    def __init__(self, message: str = None, conflict: bool = False):
        super().__init__(message)
        self.conflict = conflict
