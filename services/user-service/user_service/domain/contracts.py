"""Domain-level contracts shared by the services and their collaborators."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from .account import Account


@dataclass(slots=True)
class NewAccountInput:
    """Validated inputs required to persist a freshly registered account."""

    email: str
    password_hash: str
    confirmation_token: str
    created_at: datetime


class AccountStore(Protocol):
    """Durable keyed storage for accounts.

    Every mutating method is a single atomic operation. Conditional updates
    return the updated ``Account`` or ``None`` when the condition no longer
    holds (the row changed underneath the caller).
    """

    def find_by_email(self, email: str) -> Account | None: ...

    def find_by_confirmation_token(self, token: str) -> Account | None: ...

    def find_by_reset_token(self, token: str) -> Account | None: ...

    def exists_by_email(self, email: str) -> bool: ...

    def insert_account(self, payload: NewAccountInput) -> Account:
        """Insert a new unconfirmed account.

        Raises ``DuplicateEmailError`` when the email is already taken; the
        uniqueness check happens atomically with the insert.
        """
        ...

    def mark_confirmed(self, account_id: str, confirmation_token: str) -> Account | None: ...

    def update_password(
        self,
        account_id: str,
        *,
        expected_hash: str,
        new_hash: str,
        changed_at: datetime,
    ) -> Account | None: ...

    def set_reset_token(
        self, account_id: str, *, token: str, expires_at: datetime
    ) -> Account | None: ...

    def clear_reset_token(self, token: str) -> bool: ...

    def consume_reset_token(
        self,
        token: str,
        *,
        new_hash: str,
        changed_at: datetime,
        now: datetime,
    ) -> Account | None: ...


class Notifier(Protocol):
    """Best-effort delivery of account emails; return values are never observed."""

    def send_confirmation(self, email: str, token: str) -> None: ...

    def send_password_reset(self, email: str, token: str) -> None: ...
