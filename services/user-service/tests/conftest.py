from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import pytest

from user_service.domain.authentication import AuthenticationService
from user_service.domain.credentials import CredentialService
from user_service.memory_repository import InMemoryAccountRepository
from user_service.security.passwords import PasswordHasher
from user_service.security.tokens import TokenIssuer

TEST_SECRET = "test-signing-secret-0123456789abcdef"
PASSWORD = "Secret123!"


class RecordingNotifier:
    """Synchronous notifier capturing every dispatched token."""

    def __init__(self) -> None:
        self.confirmations: list[tuple[str, str]] = []
        self.resets: list[tuple[str, str]] = []

    def send_confirmation(self, email: str, token: str) -> None:
        self.confirmations.append((email, token))

    def send_password_reset(self, email: str, token: str) -> None:
        self.resets.append((email, token))

    def confirmation_token_for(self, email: str) -> str:
        return next(token for addr, token in reversed(self.confirmations) if addr == email)

    def reset_token_for(self, email: str) -> str:
        return next(token for addr, token in reversed(self.resets) if addr == email)


@dataclass
class FakeClock:
    now: datetime = field(default_factory=lambda: datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc))

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def store() -> InMemoryAccountRepository:
    return InMemoryAccountRepository()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    # minimum bcrypt work factor keeps the suite fast
    return PasswordHasher(rounds=4)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def issuer() -> TokenIssuer:
    return TokenIssuer(TEST_SECRET, ttl_seconds=3600, issuer="userms-test")


@pytest.fixture
def credentials(store, notifier, hasher, clock) -> CredentialService:
    return CredentialService(store, notifier, hasher, clock=clock)


@pytest.fixture
def authentication(store, notifier, hasher, issuer, clock) -> AuthenticationService:
    return AuthenticationService(store, notifier, hasher, issuer, clock=clock)


@pytest.fixture
def confirmed_account(credentials, notifier):
    """Register and confirm ``a@b.com`` and return its summary."""
    summary = credentials.register_account("a@b.com", PASSWORD)
    credentials.confirm_account(notifier.confirmation_token_for("a@b.com"))
    return summary
