"""Login and the unauthenticated password-reset flow."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from ..metrics import record_auth_event
from ..security.passwords import PasswordHasher
from ..security.tokens import TokenIssuer
from .contracts import AccountStore, Notifier
from .credentials import generate_opaque_token, utc_now
from .errors import InvalidCredentialsError, InvalidTokenError, ResetTokenExpiredError

logger = logging.getLogger(__name__)

RESET_REQUESTED_MESSAGE = (
    "If an account with that email exists, you will receive password reset instructions."
)
RESET_COMPLETED_MESSAGE = (
    "Your password has been reset successfully. You can now login with your new password."
)
DEFAULT_RESET_TOKEN_TTL = timedelta(hours=24)


@dataclass(frozen=True, slots=True)
class LoginResult:
    """Session token and the account it was minted for."""

    token: str
    expires_in: int
    account_id: str
    email: str


class AuthenticationService:
    """Credential verification, token minting and password reset."""

    def __init__(
        self,
        store: AccountStore,
        notifier: Notifier,
        hasher: PasswordHasher,
        issuer: TokenIssuer,
        *,
        reset_token_ttl: timedelta = DEFAULT_RESET_TOKEN_TTL,
        clock: Callable[[], datetime] = utc_now,
        token_factory: Callable[[], str] = generate_opaque_token,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._hasher = hasher
        self._issuer = issuer
        self._reset_token_ttl = reset_token_ttl
        self._clock = clock
        self._token_factory = token_factory

    def login(self, email: str, password: str) -> LoginResult:
        """Verify credentials and mint a session token.

        Unknown email, wrong password and unconfirmed account all raise the
        same ``InvalidCredentialsError``; the reason is only logged.
        """
        account = self._store.find_by_email(email)
        if account is None:
            self._hasher.dummy_verify()
            raise self._login_failure(email, "unknown email")
        if not self._hasher.verify(password, account.password_hash):
            raise self._login_failure(email, "password mismatch")
        if not account.confirmed:
            raise self._login_failure(email, "account not confirmed")

        issued = self._issuer.mint(account.email)
        record_auth_event("login", "success")
        logger.info("account %s authenticated", account.account_id)
        return LoginResult(
            token=issued.token,
            expires_in=issued.expires_in,
            account_id=account.account_id,
            email=account.email,
        )

    def initiate_password_reset(self, email: str) -> str:
        """Issue a reset token when the account exists; the reply never says which."""
        account = self._store.find_by_email(email)
        if account is None:
            logger.info("password reset requested for unknown email")
            record_auth_event("forgot_password", "unknown_email")
            return RESET_REQUESTED_MESSAGE

        token = self._token_factory()
        updated = self._store.set_reset_token(
            account.account_id,
            token=token,
            expires_at=self._clock() + self._reset_token_ttl,
        )
        if updated is None:
            logger.warning("account %s vanished before reset token was stored", account.account_id)
            return RESET_REQUESTED_MESSAGE

        record_auth_event("forgot_password", "issued")
        logger.info("password reset token issued for account %s", account.account_id)
        self._notifier.send_password_reset(updated.email, token)
        return RESET_REQUESTED_MESSAGE

    def complete_reset(self, token: str, new_password: str) -> str:
        """Consume ``token`` and set ``new_password``.

        An expired token is cleared before ``ResetTokenExpiredError`` is
        raised, so a retry sees ``InvalidTokenError``; only the caller whose
        clear succeeded reports the expiry. The successful path is a
        single conditional store update, so of two concurrent attempts only
        one succeeds.
        """
        now = self._clock()
        account = self._store.find_by_reset_token(token)
        if account is None:
            logger.warning("password reset rejected, unknown token")
            record_auth_event("reset_password", "invalid_token")
            raise InvalidTokenError("Invalid or expired reset token")
        if not account.reset_token_valid(now):
            if not self._store.clear_reset_token(token):
                # a concurrent attempt already reported the expiry
                record_auth_event("reset_password", "invalid_token")
                raise InvalidTokenError("Invalid or expired reset token")
            logger.warning("password reset rejected, token expired for account %s", account.account_id)
            record_auth_event("reset_password", "expired")
            raise ResetTokenExpiredError()

        updated = self._store.consume_reset_token(
            token,
            new_hash=self._hasher.hash(new_password),
            changed_at=now,
            now=now,
        )
        if updated is None:
            logger.warning("password reset rejected, token already consumed")
            record_auth_event("reset_password", "invalid_token")
            raise InvalidTokenError("Invalid or expired reset token")

        record_auth_event("reset_password", "success")
        logger.info("password reset for account %s", updated.account_id)
        return RESET_COMPLETED_MESSAGE

    def _login_failure(self, email: str, reason: str) -> InvalidCredentialsError:
        logger.warning("authentication failed for %s: %s", email, reason)
        record_auth_event("login", "rejected")
        return InvalidCredentialsError()
