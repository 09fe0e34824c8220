"""
Domain validation errors.

Raised at the edges of the pure domain layer (coordinates, geohash topic
keys, radii) before any state is touched.
"""


class ValidationError(ValueError):
    """
    Input rejected before any state change.

    Attributes:
        reason: Short client-facing reason, used verbatim in error replies
    """

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason

    def to_dict(self) -> dict:
        """Structured error reply."""
        return {"error": {"reason": self.reason}}


class InvalidTopicError(ValidationError):
    """Raised when a geohash topic key is malformed or has the wrong length."""
    pass
