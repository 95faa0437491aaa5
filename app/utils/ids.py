"""Identifier helpers."""

from uuid import UUID


def is_uuid(value: str) -> bool:
    """Check that a string parses as a UUID.

    Lookups guard with this so a malformed id reads as "not found"
    instead of a database type error.
    """
    try:
        UUID(str(value))
    except ValueError:
        return False
    return True
