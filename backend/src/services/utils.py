"""Shared utility functions for service layer."""
import math


def escape_ilike(value: str) -> str:
    r"""
    Escape special ILIKE characters for safe use in LIKE/ILIKE patterns.

    LIKE/ILIKE treats these characters specially:
    - % matches any sequence of characters
    - _ matches any single character
    - \\ is the escape character

    This function escapes them so they match literally. Pair it with
    ``escape="\\"`` on the ilike() call, since SQLite has no default escape.
    """
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def page_count(total: int, limit: int) -> int:
    """Number of pages needed to show total items, limit per page."""
    return math.ceil(total / limit) if limit else 0


def normalize_email(email: str) -> str:
    """Emails are stored and compared lower-cased."""
    return email.strip().lower()
