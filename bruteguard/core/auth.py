"""Credential checks for the demo login endpoint.

Accounts come from ``APP_USERS`` as comma-separated ``username:password``
pairs. Passwords are compared in constant time.
"""

from __future__ import annotations

import hmac
import logging

from bruteguard.core.config import settings

logger = logging.getLogger(__name__)


def parse_users(users_string: str | None) -> dict[str, str]:
    """Parse ``username:password`` pairs into a mapping.

    Examples:
        >>> parse_users("alice:wonder, bob:builder")
        {'alice': 'wonder', 'bob': 'builder'}
        >>> parse_users(None)
        {}
    """
    if not users_string:
        return {}

    users: dict[str, str] = {}
    for entry in users_string.split(","):
        username, sep, password = entry.strip().partition(":")
        if sep and username:
            users[username] = password
    return users


def verify_credentials(username: str, password: str) -> bool:
    """Return True when the pair matches a configured account."""
    users = parse_users(settings.app.users)
    expected = users.get(username, "")
    matched = hmac.compare_digest(expected.encode(), password.encode())
    if username not in users:
        logger.info("auth.unknown_user")
        return False
    return matched
