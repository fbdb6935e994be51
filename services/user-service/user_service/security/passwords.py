"""Adaptive one-way password hashing."""

from __future__ import annotations

from passlib.context import CryptContext

DEFAULT_BCRYPT_ROUNDS = 12


class PasswordHasher:
    """Salted bcrypt hashing with a configurable work factor."""

    def __init__(self, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> None:
        self._context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)

    def hash(self, raw_password: str) -> str:
        """Return a fresh salted hash for ``raw_password``."""
        return self._context.hash(raw_password)

    def verify(self, raw_password: str, password_hash: str) -> bool:
        """Return ``True`` when ``raw_password`` matches ``password_hash``."""
        return self._context.verify(raw_password, password_hash)

    def dummy_verify(self) -> None:
        """Spend one verification worth of work when there is no hash to check."""
        self._context.dummy_verify()
