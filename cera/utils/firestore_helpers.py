"""
Firestore query and encoding helpers.

NOTE: For the firebase_admin SDK we use positional `where` arguments, which
still work. The deprecation warning is just a warning.
"""

from enum import Enum


def where_filter(query, field_path: str, op_string: str, value):
    """
    Helper function for Firestore queries.

    Usage:
        query = where_filter(collection, "status", "in", ["pending", "approved"])
        query = where_filter(query, "reporter", "==", user_id)
    """
    return query.where(field_path, op_string, value)


def to_firestore(value):
    """
    Recursively convert a `model_dump()` result into Firestore-storable values.

    Enums are stored by value; datetimes are left as-is so Firestore keeps
    them as native timestamps.
    """
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: to_firestore(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_firestore(v) for v in value]
    return value
