"""Account creation, email confirmation and authenticated password change."""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone
from typing import Callable

from ..metrics import record_auth_event
from ..security.passwords import PasswordHasher
from .account import AccountSummary, ProfileView
from .contracts import AccountStore, NewAccountInput, Notifier
from .errors import (
    AccountNotFoundError,
    AlreadyConfirmedError,
    DuplicateEmailError,
    InvalidCredentialsError,
    InvalidTokenError,
    PasswordReuseError,
)

logger = logging.getLogger(__name__)

REGISTERED_MESSAGE = (
    "User registered successfully. Please check your email to confirm your account."
)
CONFIRMED_MESSAGE = "Your account has been confirmed successfully. You can now login."
PASSWORD_CHANGED_MESSAGE = "Password changed successfully"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_opaque_token() -> str:
    """Return a single-use URL-safe secret with 256 bits of entropy."""
    return secrets.token_urlsafe(32)


class CredentialService:
    """Owns the account state machine up to and including password changes."""

    def __init__(
        self,
        store: AccountStore,
        notifier: Notifier,
        hasher: PasswordHasher,
        *,
        clock: Callable[[], datetime] = utc_now,
        token_factory: Callable[[], str] = generate_opaque_token,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._hasher = hasher
        self._clock = clock
        self._token_factory = token_factory

    def register_account(self, email: str, raw_password: str) -> AccountSummary:
        """Create an unconfirmed account and send its confirmation email.

        ``DuplicateEmailError`` comes from the store's atomic insert, so two
        concurrent registrations of one address produce exactly one account.
        """
        logger.info("registering account for %s", email)
        payload = NewAccountInput(
            email=email,
            password_hash=self._hasher.hash(raw_password),
            confirmation_token=self._token_factory(),
            created_at=self._clock(),
        )
        try:
            account = self._store.insert_account(payload)
        except DuplicateEmailError:
            logger.warning("registration rejected, email already exists: %s", email)
            record_auth_event("register", "duplicate")
            raise

        record_auth_event("register", "success")
        logger.info("account %s registered", account.account_id)
        self._notifier.send_confirmation(account.email, payload.confirmation_token)
        return AccountSummary.from_account(account)

    def confirm_account(self, token: str) -> str:
        account = self._store.find_by_confirmation_token(token)
        if account is None:
            logger.warning("confirmation rejected, unknown token")
            record_auth_event("confirm", "invalid_token")
            raise InvalidTokenError("Invalid confirmation token")
        if account.confirmed:
            logger.warning("confirmation rejected, account %s already confirmed", account.account_id)
            record_auth_event("confirm", "already_confirmed")
            raise AlreadyConfirmedError()

        confirmed = self._store.mark_confirmed(account.account_id, token)
        if confirmed is None:
            # Another request consumed the token between lookup and update.
            record_auth_event("confirm", "invalid_token")
            raise InvalidTokenError("Invalid confirmation token")

        record_auth_event("confirm", "success")
        logger.info("account %s confirmed", account.account_id)
        return CONFIRMED_MESSAGE

    def change_password(self, email: str, current_password: str, new_password: str) -> str:
        """Replace the password after re-verifying the current one.

        The store update is conditional on the hash that was verified, so a
        change committed concurrently makes this one fail with
        ``InvalidCredentialsError`` rather than silently overwrite it.
        """
        account = self._store.find_by_email(email)
        if account is None:
            raise AccountNotFoundError()
        if not self._hasher.verify(current_password, account.password_hash):
            logger.warning("password change rejected for %s: current password mismatch", email)
            record_auth_event("change_password", "invalid_credentials")
            raise InvalidCredentialsError("Current password is incorrect")
        if self._hasher.verify(new_password, account.password_hash):
            logger.warning("password change rejected for %s: new password equals current", email)
            record_auth_event("change_password", "reuse")
            raise PasswordReuseError()

        updated = self._store.update_password(
            account.account_id,
            expected_hash=account.password_hash,
            new_hash=self._hasher.hash(new_password),
            changed_at=self._clock(),
        )
        if updated is None:
            logger.warning("password change for %s lost a race with another update", email)
            record_auth_event("change_password", "conflict")
            raise InvalidCredentialsError("Current password is incorrect")

        record_auth_event("change_password", "success")
        logger.info("password changed for account %s", account.account_id)
        return PASSWORD_CHANGED_MESSAGE

    def get_profile(self, email: str) -> ProfileView:
        account = self._store.find_by_email(email)
        if account is None:
            raise AccountNotFoundError()
        return ProfileView.from_account(account)
