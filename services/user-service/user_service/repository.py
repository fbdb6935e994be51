"""Postgres repository for account data."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Sequence

import psycopg
from psycopg.rows import tuple_row
from psycopg_pool import ConnectionPool

from .domain.account import Account
from .domain.contracts import NewAccountInput
from .domain.errors import DuplicateEmailError, InfrastructureError

logger = logging.getLogger(__name__)

_COLUMNS = """
    account_id, email, password_hash, created_at, password_changed_at,
    confirmed, confirmation_token, reset_token, reset_token_expiry
"""


class AccountRepository:
    """Postgres-backed ``AccountStore``.

    Each mutation is one conditional statement, so uniqueness and token
    consumption are decided by the database row lock rather than by a prior
    read in Python.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    def find_by_email(self, email: str) -> Account | None:
        return self._fetch_one(
            "find_by_email",
            f"SELECT {_COLUMNS} FROM accounts WHERE email = %s",
            (email,),
        )

    def find_by_confirmation_token(self, token: str) -> Account | None:
        return self._fetch_one(
            "find_by_confirmation_token",
            f"SELECT {_COLUMNS} FROM accounts WHERE confirmation_token = %s",
            (token,),
        )

    def find_by_reset_token(self, token: str) -> Account | None:
        return self._fetch_one(
            "find_by_reset_token",
            f"SELECT {_COLUMNS} FROM accounts WHERE reset_token = %s",
            (token,),
        )

    def exists_by_email(self, email: str) -> bool:
        row = self._execute(
            "exists_by_email",
            "SELECT EXISTS (SELECT 1 FROM accounts WHERE email = %s)",
            (email,),
        )
        return bool(row and row[0])

    def insert_account(self, payload: NewAccountInput) -> Account:
        """Insert an unconfirmed account, relying on the email UNIQUE constraint."""
        account = self._fetch_one(
            "insert_account",
            f"""
            INSERT INTO accounts (
                account_id, email, password_hash, created_at, password_changed_at,
                confirmed, confirmation_token
            )
            VALUES (%s, %s, %s, %s, %s, FALSE, %s)
            ON CONFLICT (email) DO NOTHING
            RETURNING {_COLUMNS}
            """,
            (
                str(uuid.uuid4()),
                payload.email,
                payload.password_hash,
                payload.created_at,
                payload.created_at,
                payload.confirmation_token,
            ),
            commit=True,
        )
        if account is None:
            raise DuplicateEmailError()
        return account

    def mark_confirmed(self, account_id: str, confirmation_token: str) -> Account | None:
        return self._fetch_one(
            "mark_confirmed",
            f"""
            UPDATE accounts
            SET confirmed = TRUE, confirmation_token = NULL
            WHERE account_id = %s AND confirmation_token = %s AND confirmed = FALSE
            RETURNING {_COLUMNS}
            """,
            (account_id, confirmation_token),
            commit=True,
        )

    def update_password(
        self,
        account_id: str,
        *,
        expected_hash: str,
        new_hash: str,
        changed_at: datetime,
    ) -> Account | None:
        return self._fetch_one(
            "update_password",
            f"""
            UPDATE accounts
            SET password_hash = %s, password_changed_at = %s
            WHERE account_id = %s AND password_hash = %s
            RETURNING {_COLUMNS}
            """,
            (new_hash, changed_at, account_id, expected_hash),
            commit=True,
        )

    def set_reset_token(
        self, account_id: str, *, token: str, expires_at: datetime
    ) -> Account | None:
        return self._fetch_one(
            "set_reset_token",
            f"""
            UPDATE accounts
            SET reset_token = %s, reset_token_expiry = %s
            WHERE account_id = %s
            RETURNING {_COLUMNS}
            """,
            (token, expires_at, account_id),
            commit=True,
        )

    def clear_reset_token(self, token: str) -> bool:
        row = self._execute(
            "clear_reset_token",
            """
            UPDATE accounts
            SET reset_token = NULL, reset_token_expiry = NULL
            WHERE reset_token = %s
            RETURNING account_id
            """,
            (token,),
            commit=True,
        )
        return row is not None

    def consume_reset_token(
        self,
        token: str,
        *,
        new_hash: str,
        changed_at: datetime,
        now: datetime,
    ) -> Account | None:
        """Swap the password and clear the reset fields if ``token`` is still live."""
        return self._fetch_one(
            "consume_reset_token",
            f"""
            UPDATE accounts
            SET password_hash = %s,
                password_changed_at = %s,
                reset_token = NULL,
                reset_token_expiry = NULL
            WHERE reset_token = %s AND reset_token_expiry > %s
            RETURNING {_COLUMNS}
            """,
            (new_hash, changed_at, token, now),
            commit=True,
        )

    def _fetch_one(
        self,
        operation: str,
        query: str,
        params: Sequence[Any],
        *,
        commit: bool = False,
    ) -> Account | None:
        row = self._execute(operation, query, params, commit=commit)
        if row is None:
            return None
        return self._map_record(row)

    def _execute(
        self,
        operation: str,
        query: str,
        params: Sequence[Any],
        *,
        commit: bool = False,
    ) -> tuple | None:
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(query, params)
                    row = cur.fetchone()
                    if commit:
                        conn.commit()
        except psycopg.Error as exc:
            logger.exception("account store operation %s failed", operation)
            raise InfrastructureError(operation) from exc
        return row

    def _map_record(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        return Account(
            account_id=str(row[0]),
            email=row[1],
            password_hash=row[2],
            created_at=row[3],
            password_changed_at=row[4],
            confirmed=row[5],
            confirmation_token=row[6],
            reset_token=row[7],
            reset_token_expiry=row[8],
        )
