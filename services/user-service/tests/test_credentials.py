from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace

import pytest

from user_service.domain.credentials import CONFIRMED_MESSAGE, PASSWORD_CHANGED_MESSAGE
from user_service.domain.errors import (
    AccountNotFoundError,
    AlreadyConfirmedError,
    DuplicateEmailError,
    InvalidCredentialsError,
    InvalidTokenError,
    PasswordReuseError,
)

from conftest import PASSWORD


def test_register_creates_unconfirmed_account_and_notifies(credentials, store, notifier, clock):
    summary = credentials.register_account("a@b.com", PASSWORD)

    assert summary.email == "a@b.com"
    assert summary.created_at == clock.now
    assert summary.password_changed_at == clock.now
    assert not hasattr(summary, "password_hash")

    account = store.find_by_email("a@b.com")
    assert account is not None
    assert account.confirmed is False
    assert account.password_hash != PASSWORD
    assert account.confirmation_token
    assert notifier.confirmations == [("a@b.com", account.confirmation_token)]


def test_register_twice_raises_duplicate_email(credentials, notifier):
    credentials.register_account("a@b.com", PASSWORD)

    with pytest.raises(DuplicateEmailError):
        credentials.register_account("a@b.com", "Other456$")
    assert len(notifier.confirmations) == 1


def test_email_is_matched_exactly(credentials, store):
    credentials.register_account("User@b.com", PASSWORD)
    credentials.register_account("user@b.com", PASSWORD)

    assert store.find_by_email("User@b.com").account_id != store.find_by_email("user@b.com").account_id


def test_concurrent_registrations_of_same_email_succeed_once(credentials, store):
    def attempt(_):
        try:
            credentials.register_account("race@b.com", PASSWORD)
            return "ok"
        except DuplicateEmailError:
            return "duplicate"

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(attempt, range(8)))

    assert outcomes.count("ok") == 1
    assert outcomes.count("duplicate") == 7
    assert store.exists_by_email("race@b.com")


def test_confirm_sets_flag_and_clears_token(credentials, store, notifier):
    credentials.register_account("a@b.com", PASSWORD)
    token = notifier.confirmation_token_for("a@b.com")

    assert credentials.confirm_account(token) == CONFIRMED_MESSAGE

    account = store.find_by_email("a@b.com")
    assert account.confirmed is True
    assert account.confirmation_token is None
    assert store.find_by_confirmation_token(token) is None


def test_confirm_same_token_twice_is_invalid_token(credentials, notifier):
    credentials.register_account("a@b.com", PASSWORD)
    token = notifier.confirmation_token_for("a@b.com")
    credentials.confirm_account(token)

    with pytest.raises(InvalidTokenError):
        credentials.confirm_account(token)


def test_confirm_unknown_token(credentials):
    with pytest.raises(InvalidTokenError):
        credentials.confirm_account("does-not-exist")


def test_confirm_rejects_confirmed_account_still_holding_token(credentials, store, notifier):
    """A confirmed row that somehow kept its token is reported, not re-confirmed."""
    credentials.register_account("a@b.com", PASSWORD)
    token = notifier.confirmation_token_for("a@b.com")
    account = store.find_by_email("a@b.com")
    store._accounts[account.account_id] = replace(account, confirmed=True)

    with pytest.raises(AlreadyConfirmedError):
        credentials.confirm_account(token)


def test_change_password_replaces_hash(credentials, store, clock, hasher, confirmed_account):
    before = store.find_by_email("a@b.com")
    clock.advance(hours=1)

    assert credentials.change_password("a@b.com", PASSWORD, "Fresh789@") == PASSWORD_CHANGED_MESSAGE

    after = store.find_by_email("a@b.com")
    assert after.password_hash != before.password_hash
    assert after.password_changed_at == clock.now
    assert hasher.verify("Fresh789@", after.password_hash)


def test_change_password_wrong_current(credentials, confirmed_account):
    with pytest.raises(InvalidCredentialsError):
        credentials.change_password("a@b.com", "Wrong123!", "Fresh789@")


def test_change_password_reuse_is_rejected(credentials, confirmed_account):
    with pytest.raises(PasswordReuseError):
        credentials.change_password("a@b.com", PASSWORD, PASSWORD)


def test_change_password_unknown_account(credentials):
    with pytest.raises(AccountNotFoundError):
        credentials.change_password("ghost@b.com", PASSWORD, "Fresh789@")


def test_change_password_loses_to_concurrent_change(credentials, store, confirmed_account):
    stale = store.find_by_email("a@b.com")
    credentials.change_password("a@b.com", PASSWORD, "Fresh789@")

    # the stale hash no longer matches, so the conditional update refuses it
    assert store.update_password(
        stale.account_id,
        expected_hash=stale.password_hash,
        new_hash="irrelevant",
        changed_at=stale.created_at,
    ) is None


def test_get_profile_excludes_secrets(credentials, confirmed_account):
    profile = credentials.get_profile("a@b.com")

    assert profile.account_id == confirmed_account.account_id
    assert profile.confirmed is True
    assert not hasattr(profile, "password_hash")
    assert not hasattr(profile, "confirmation_token")


def test_get_profile_unknown(credentials):
    with pytest.raises(AccountNotFoundError):
        credentials.get_profile("ghost@b.com")
