"""State management errors."""


class StateError(Exception):
    """Base exception for index state operations."""


class MissingStateError(StateError):
    """Raised when no index state exists for a record."""
