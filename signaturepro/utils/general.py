### signaturepro/utils/general.py

# Standard library imports
from datetime import datetime, timezone
from typing import Optional


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Make a datetime timezone-aware. Some backends (SQLite) hand back naive
    values for columns that were written as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_email(email: str) -> str:
    """Lower-case and strip an email address for comparisons and storage"""
    return email.strip().lower()


def display_name_for(name: Optional[str], email: str) -> str:
    """Name shown to people, falling back to the email local part"""
    return name or email.split("@")[0]
