"""In-process ``AccountStore`` for local development and tests."""

from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime
from threading import Lock

from .domain.account import Account
from .domain.contracts import NewAccountInput
from .domain.errors import DuplicateEmailError


class InMemoryAccountRepository:
    """Dictionary-backed store; one lock makes every operation atomic."""

    def __init__(self) -> None:
        self._accounts: dict[str, Account] = {}
        self._ids_by_email: dict[str, str] = {}
        self._lock = Lock()

    def find_by_email(self, email: str) -> Account | None:
        with self._lock:
            account_id = self._ids_by_email.get(email)
            return self._accounts.get(account_id) if account_id else None

    def find_by_confirmation_token(self, token: str) -> Account | None:
        with self._lock:
            return self._find(lambda a: a.confirmation_token == token)

    def find_by_reset_token(self, token: str) -> Account | None:
        with self._lock:
            return self._find(lambda a: a.reset_token == token)

    def exists_by_email(self, email: str) -> bool:
        with self._lock:
            return email in self._ids_by_email

    def insert_account(self, payload: NewAccountInput) -> Account:
        with self._lock:
            if payload.email in self._ids_by_email:
                raise DuplicateEmailError()
            account = Account(
                account_id=str(uuid.uuid4()),
                email=payload.email,
                password_hash=payload.password_hash,
                created_at=payload.created_at,
                password_changed_at=payload.created_at,
                confirmed=False,
                confirmation_token=payload.confirmation_token,
            )
            self._accounts[account.account_id] = account
            self._ids_by_email[account.email] = account.account_id
            return account

    def mark_confirmed(self, account_id: str, confirmation_token: str) -> Account | None:
        with self._lock:
            account = self._accounts.get(account_id)
            if (
                account is None
                or account.confirmed
                or account.confirmation_token != confirmation_token
            ):
                return None
            return self._store(replace(account, confirmed=True, confirmation_token=None))

    def update_password(
        self,
        account_id: str,
        *,
        expected_hash: str,
        new_hash: str,
        changed_at: datetime,
    ) -> Account | None:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None or account.password_hash != expected_hash:
                return None
            return self._store(
                replace(account, password_hash=new_hash, password_changed_at=changed_at)
            )

    def set_reset_token(
        self, account_id: str, *, token: str, expires_at: datetime
    ) -> Account | None:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                return None
            return self._store(replace(account, reset_token=token, reset_token_expiry=expires_at))

    def clear_reset_token(self, token: str) -> bool:
        with self._lock:
            account = self._find(lambda a: a.reset_token == token)
            if account is None:
                return False
            self._store(replace(account, reset_token=None, reset_token_expiry=None))
            return True

    def consume_reset_token(
        self,
        token: str,
        *,
        new_hash: str,
        changed_at: datetime,
        now: datetime,
    ) -> Account | None:
        with self._lock:
            account = self._find(lambda a: a.reset_token == token)
            if account is None or not account.reset_token_valid(now):
                return None
            return self._store(
                replace(
                    account,
                    password_hash=new_hash,
                    password_changed_at=changed_at,
                    reset_token=None,
                    reset_token_expiry=None,
                )
            )

    def _find(self, predicate) -> Account | None:
        for account in self._accounts.values():
            if predicate(account):
                return account
        return None

    def _store(self, account: Account) -> Account:
        self._accounts[account.account_id] = account
        return account
