"""
Engine error taxonomy.

- ValidationError: bad input, rejected before any state change
- StoreUnavailableError: transient collaborator failure
- ScanTimeoutError: clustering exceeded its wall-clock budget
- DuplicateOpenTrackingError: logic error, never caught by the engine
"""

from hotspot_zone.errors import ValidationError, InvalidTopicError


class StoreUnavailableError(Exception):
    """A backing store could not be reached. Safe to retry."""
    pass


class ScanTimeoutError(Exception):
    """A clustering scan ran past its budget and was abandoned."""
    pass


class DuplicateOpenTrackingError(RuntimeError):
    """A second open tracking row for the same (user, zone) pair."""

    def __init__(self, user_id: str, zone_id: int):
        super().__init__(
            f"User {user_id!r} already has an open tracking row for zone {zone_id}"
        )
        self.user_id = user_id
        self.zone_id = zone_id


class UserNotFoundError(ValidationError):
    """Location update for a user the user feed does not know."""

    def __init__(self, user_id: str):
        super().__init__("unknown user")
        self.user_id = user_id


__all__ = [
    "ValidationError",
    "InvalidTopicError",
    "StoreUnavailableError",
    "ScanTimeoutError",
    "DuplicateOpenTrackingError",
    "UserNotFoundError",
]
