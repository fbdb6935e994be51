from __future__ import annotations

import base64
import json
import time

import jwt
import pytest

from user_service.domain.errors import (
    TokenExpiredError,
    TokenMalformedError,
    TokenSignatureInvalidError,
    TokenUnsupportedAlgorithmError,
)
from user_service.security.tokens import TokenIssuer

from conftest import TEST_SECRET


def _b64(data: dict) -> str:
    raw = json.dumps(data, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def test_minted_token_verifies_to_same_subject(issuer):
    issued = issuer.mint("a@b.com")

    assert issued.expires_in == 3600
    assert issuer.verify(issued.token) == "a@b.com"


def test_token_claims_carry_issue_and_expiry(issuer):
    issued = issuer.mint("a@b.com")
    claims = jwt.decode(issued.token, options={"verify_signature": False})

    assert claims["sub"] == "a@b.com"
    assert claims["iss"] == "userms-test"
    assert claims["exp"] - claims["iat"] == 3600
    assert claims["exp"] == issued.expires_at


def test_expired_token_is_rejected():
    two_hours_ago = lambda: time.time() - 7200  # noqa: E731
    stale_issuer = TokenIssuer(TEST_SECRET, ttl_seconds=3600, issuer="userms-test", clock=two_hours_ago)
    token = stale_issuer.mint("a@b.com").token

    with pytest.raises(TokenExpiredError):
        stale_issuer.verify(token)


def test_tampered_signature_is_rejected(issuer):
    header, payload, signature = issuer.mint("a@b.com").token.split(".")
    forged = ("A" if signature[0] != "A" else "B") + signature[1:]

    with pytest.raises(TokenSignatureInvalidError):
        issuer.verify(f"{header}.{payload}.{forged}")


def test_tampered_payload_is_rejected(issuer):
    token = issuer.mint("a@b.com").token
    header, payload, signature = token.split(".")
    claims = jwt.decode(token, options={"verify_signature": False})
    claims["sub"] = "admin@b.com"

    with pytest.raises(TokenSignatureInvalidError):
        issuer.verify(f"{header}.{_b64(claims)}.{signature}")


def test_token_from_other_key_is_rejected(issuer):
    other = TokenIssuer("another-signing-secret-0123456789abc", issuer="userms-test")

    with pytest.raises(TokenSignatureInvalidError):
        issuer.verify(other.mint("a@b.com").token)


def test_unsupported_algorithm_is_rejected(issuer):
    now = int(time.time())
    token = jwt.encode(
        {"iss": "userms-test", "sub": "a@b.com", "iat": now, "exp": now + 60},
        TEST_SECRET,
        algorithm="HS512",
    )

    with pytest.raises(TokenUnsupportedAlgorithmError):
        issuer.verify(token)


@pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c"])
def test_malformed_token_is_rejected(issuer, token):
    with pytest.raises(TokenMalformedError):
        issuer.verify(token)


def test_foreign_issuer_is_rejected(issuer):
    foreign = TokenIssuer(TEST_SECRET, issuer="someone-else")

    with pytest.raises(TokenMalformedError):
        issuer.verify(foreign.mint("a@b.com").token)


def test_short_secret_is_refused():
    with pytest.raises(ValueError):
        TokenIssuer("too-short")
