"""Explicit input checks shared by the request models and the services."""

from __future__ import annotations

import re

PASSWORD_MIN_LENGTH = 8
# bcrypt ignores everything past the first 72 bytes
PASSWORD_MAX_LENGTH = 72
PASSWORD_SPECIALS = "@$!%*?&"
EMAIL_MAX_LENGTH = 100

_ALLOWED_PASSWORD = re.compile(r"^[A-Za-z\d@$!%*?&]+$")


def password_policy_violations(raw: str) -> list[str]:
    """Return every password-policy rule ``raw`` breaks; empty when acceptable."""
    problems: list[str] = []
    if not PASSWORD_MIN_LENGTH <= len(raw.encode("utf-8")) <= PASSWORD_MAX_LENGTH:
        problems.append(
            f"must be between {PASSWORD_MIN_LENGTH} and {PASSWORD_MAX_LENGTH} characters"
        )
    if not any(c.islower() for c in raw):
        problems.append("must contain a lowercase letter")
    if not any(c.isupper() for c in raw):
        problems.append("must contain an uppercase letter")
    if not any(c.isdigit() for c in raw):
        problems.append("must contain a digit")
    if not any(c in PASSWORD_SPECIALS for c in raw):
        problems.append(f"must contain one of {PASSWORD_SPECIALS}")
    if raw and not _ALLOWED_PASSWORD.match(raw):
        problems.append(f"may only contain letters, digits and {PASSWORD_SPECIALS}")
    return problems


def email_violations(email: str) -> list[str]:
    problems: list[str] = []
    if not email.strip():
        problems.append("is required")
    if len(email) > EMAIL_MAX_LENGTH:
        problems.append(f"must not exceed {EMAIL_MAX_LENGTH} characters")
    return problems
