from __future__ import annotations


class ModerationError(Exception):
    """Base error for transition requests."""


class InvalidTransitionError(ModerationError):
    """Raised when the requested status edge does not exist for the entity kind."""

    def __init__(self, kind: str, from_status: str, to_status: str) -> None:
        self.kind = kind
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"invalid {kind} status transition: {from_status} -> {to_status}")


class PermissionDeniedError(ModerationError):
    """Raised when the actor lacks the capability; ``reason`` is user-facing."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class StaleSnapshotError(ModerationError):
    """Raised when a compare-and-set commit finds a newer version than was read."""


class EntityNotFoundError(ModerationError):
    """Raised when the target entity does not exist."""
