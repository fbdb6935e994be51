from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class Account:
    """Aggregate root for a registered user identity.

    Instances are immutable; every state transition goes through an explicit
    ``AccountStore`` call that returns the updated record.
    """

    account_id: str
    email: str
    password_hash: str
    created_at: datetime
    password_changed_at: datetime
    confirmed: bool = False
    confirmation_token: str | None = None
    reset_token: str | None = None
    reset_token_expiry: datetime | None = None

    def reset_token_valid(self, now: datetime) -> bool:
        """Return ``True`` while a reset token is present and not yet expired."""
        return (
            self.reset_token is not None
            and self.reset_token_expiry is not None
            and self.reset_token_expiry > now
        )


@dataclass(frozen=True, slots=True)
class AccountSummary:
    """Projection returned after registration; never carries secrets."""

    account_id: str
    email: str
    created_at: datetime
    password_changed_at: datetime

    @classmethod
    def from_account(cls, account: Account) -> "AccountSummary":
        return cls(
            account_id=account.account_id,
            email=account.email,
            created_at=account.created_at,
            password_changed_at=account.password_changed_at,
        )


@dataclass(frozen=True, slots=True)
class ProfileView:
    """Read-only profile projection for the authenticated account."""

    account_id: str
    email: str
    created_at: datetime
    password_changed_at: datetime
    confirmed: bool

    @classmethod
    def from_account(cls, account: Account) -> "ProfileView":
        return cls(
            account_id=account.account_id,
            email=account.email,
            created_at=account.created_at,
            password_changed_at=account.password_changed_at,
            confirmed=account.confirmed,
        )
