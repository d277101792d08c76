"""Errors raised by the bridge repositories."""


class DatabaseError(Exception):
    """Base class for persistence failures."""


class DatabaseConstraintError(DatabaseError):
    """A write collided with a unique or foreign key constraint."""


class DatabaseOperationError(DatabaseError):
    """A query or write failed for any other reason."""
