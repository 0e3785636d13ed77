"""
Timestamp helpers.

All datetimes in the system are timezone-aware UTC to prevent comparison bugs
between values created in-process and values read back from Firestore.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
