"""Issuing and validating stateless session JWTs."""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass
from typing import Any, Callable

import jwt

from ..domain.errors import (
    TokenExpiredError,
    TokenMalformedError,
    TokenSignatureInvalidError,
    TokenUnsupportedAlgorithmError,
)

ALGORITHM = "HS256"
MIN_SECRET_BYTES = 32


@dataclass(frozen=True, slots=True)
class IssuedToken:
    """A signed session token together with its lifetime."""

    token: str
    expires_in: int
    expires_at: int


class TokenIssuer:
    """Mints and verifies HS256 session tokens.

    The signing key is fixed for the lifetime of the instance; the process
    builds exactly one issuer at startup. There is no revocation list, so a
    leaked token stays valid until its ``exp`` claim passes.
    """

    def __init__(
        self,
        secret: str,
        *,
        ttl_seconds: int = 86400,
        issuer: str = "userms",
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Validate and store the signing key.

        Parameters
        ----------
        secret:
            Shared HMAC key; must be at least 32 bytes once UTF-8 encoded.
        ttl_seconds:
            Lifetime stamped into every minted token.
        issuer:
            Value of the ``iss`` claim, enforced on verification.
        clock:
            Source of the issue time; only minting consults it.
        """
        key = secret.encode("utf-8")
        if len(key) < MIN_SECRET_BYTES:
            raise ValueError(f"JWT secret must be at least {MIN_SECRET_BYTES} bytes")
        if ttl_seconds <= 0:
            raise ValueError("token lifetime must be positive")
        self._key = key
        self._ttl = ttl_seconds
        self._issuer = issuer
        self._clock = clock

    @property
    def ttl_seconds(self) -> int:
        return self._ttl

    def mint(self, subject_email: str) -> IssuedToken:
        """Create a signed token whose ``sub`` claim is the account email."""
        now = int(self._clock())
        payload: dict[str, Any] = {
            "iss": self._issuer,
            "sub": subject_email,
            "iat": now,
            "exp": now + self._ttl,
            "jti": secrets.token_hex(8),
        }
        token = jwt.encode(payload, self._key, algorithm=ALGORITHM)
        return IssuedToken(token=token, expires_in=self._ttl, expires_at=now + self._ttl)

    def verify(self, token: str) -> str:
        """Return the subject email of a valid token.

        Raises
        ------
        TokenError
            One of ``TokenMalformedError``, ``TokenExpiredError``,
            ``TokenUnsupportedAlgorithmError`` or ``TokenSignatureInvalidError``.
        """
        try:
            claims = jwt.decode(
                token,
                self._key,
                algorithms=[ALGORITHM],
                issuer=self._issuer,
                options={"require": ["sub", "iat", "exp"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenExpiredError("token expired") from exc
        except jwt.InvalidAlgorithmError as exc:
            raise TokenUnsupportedAlgorithmError("token algorithm not accepted") from exc
        except jwt.InvalidSignatureError as exc:
            raise TokenSignatureInvalidError("token signature mismatch") from exc
        except jwt.PyJWTError as exc:
            raise TokenMalformedError(f"token rejected: {exc}") from exc

        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            raise TokenMalformedError("token subject missing")
        return subject

