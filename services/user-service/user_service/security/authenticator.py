"""Per-request bearer-token authentication."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..domain.contracts import AccountStore
from ..domain.errors import TokenError
from .tokens import TokenIssuer

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "
USER_AUTHORITY = "ROLE_USER"


@dataclass(frozen=True, slots=True)
class Principal:
    """Ephemeral identity of the caller for a single request."""

    account_id: str
    email: str
    confirmed: bool
    authorities: tuple[str, ...] = (USER_AUTHORITY,)


class RequestAuthenticator:
    """Turn an ``Authorization`` header into a ``Principal`` or leave the request anonymous.

    Every failure path returns ``None``; whether anonymous access is allowed
    is decided by the route, not here.
    """

    def __init__(self, issuer: TokenIssuer, store: AccountStore) -> None:
        self._issuer = issuer
        self._store = store

    @staticmethod
    def extract_bearer(authorization: str | None) -> str | None:
        """Return the raw token from a ``Bearer`` header, or ``None`` when absent."""
        if not authorization or not authorization.startswith(BEARER_PREFIX):
            return None
        token = authorization[len(BEARER_PREFIX):].strip()
        return token or None

    def authenticate(self, authorization: str | None) -> Principal | None:
        token = self.extract_bearer(authorization)
        if token is None:
            return None

        try:
            subject = self._issuer.verify(token)
        except TokenError as exc:
            logger.warning("bearer token rejected (%s): %s", exc.code, exc)
            return None

        account = self._store.find_by_email(subject)
        if account is None:
            logger.warning("bearer token subject no longer resolves to an account")
            return None

        return Principal(
            account_id=account.account_id,
            email=account.email,
            confirmed=account.confirmed,
        )
