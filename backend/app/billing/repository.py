"""Persistence layer for billing account state."""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from ...app_context import get_conn
from .exceptions import PersistenceFailed
from .models import BillingAccount, BillingUpdate, PlanStatus, PlanType

_ACCOUNT_COLUMNS = """
    id,
    email,
    customer_id,
    subscription_id,
    plan_type,
    plan_status,
    current_period_start,
    current_period_end,
    updated_utc
"""


@contextmanager
def managed_connection(conn: Optional[PgConnection] = None):
    """Context manager that manages transaction boundaries for optional connections."""

    if conn is not None:
        yield conn, False
        return

    try:
        connection = get_conn()
    except psycopg2.Error as exc:
        raise PersistenceFailed(f"Unable to connect to billing store: {exc}") from exc
    try:
        try:
            yield connection, True
        except Exception:
            connection.rollback()
            raise
        try:
            connection.commit()
        except psycopg2.Error as exc:
            raise PersistenceFailed(f"Failed to commit billing changes: {exc}") from exc
    finally:
        connection.close()


def _row_to_account(row: dict) -> BillingAccount:
    plan_status = row.get("plan_status")
    return BillingAccount(
        user_id=str(row["id"]),
        email=row.get("email"),
        customer_id=row.get("customer_id"),
        subscription_id=row.get("subscription_id"),
        plan_type=PlanType(row.get("plan_type") or PlanType.FREE.value),
        plan_status=PlanStatus(plan_status) if plan_status else None,
        current_period_start=row.get("current_period_start"),
        current_period_end=row.get("current_period_end"),
        updated_utc=row.get("updated_utc") or datetime.now(timezone.utc),
    )


class PostgresBillingRepository:
    """Concrete repository reading and writing billing columns of ``users``."""

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    @contextmanager
    def transaction(self) -> Iterator["PostgresBillingRepository"]:
        """Bind every call inside the block to one connection and transaction."""

        if self._conn is not None:
            yield self
            return
        with managed_connection() as (connection, _):
            yield PostgresBillingRepository(conn=connection)

    @contextmanager
    def _cursor(self) -> Iterator[PgCursor]:
        with managed_connection(self._conn) as (connection, managed):
            cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            try:
                yield cursor
                if managed:
                    connection.commit()
            except psycopg2.Error as exc:
                if managed:
                    connection.rollback()
                raise PersistenceFailed(f"Billing store error: {exc}") from exc
            except Exception:
                if managed:
                    connection.rollback()
                raise
            finally:
                cursor.close()

    def get_account_by_customer_id(self, customer_id: str) -> Optional[BillingAccount]:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT {_ACCOUNT_COLUMNS}
                FROM users
                WHERE customer_id = %s
                LIMIT 1
                FOR UPDATE
                """,
                (customer_id,),
            )
            row = cursor.fetchone()
            return _row_to_account(row) if row else None

    def get_account_by_subscription_id(self, subscription_id: str) -> Optional[BillingAccount]:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT {_ACCOUNT_COLUMNS}
                FROM users
                WHERE subscription_id = %s
                LIMIT 1
                FOR UPDATE
                """,
                (subscription_id,),
            )
            row = cursor.fetchone()
            return _row_to_account(row) if row else None

    def update_billing(self, user_id: str, update: BillingUpdate) -> BillingAccount:
        """Write the non-empty fields of ``update`` to the user's billing columns."""

        with self._cursor() as cursor:
            cursor.execute(
                f"""
                UPDATE users
                SET customer_id = COALESCE(%(customer_id)s, customer_id),
                    subscription_id = COALESCE(%(subscription_id)s, subscription_id),
                    plan_type = COALESCE(%(plan_type)s, plan_type),
                    plan_status = COALESCE(%(plan_status)s, plan_status),
                    current_period_start = COALESCE(%(current_period_start)s, current_period_start),
                    current_period_end = COALESCE(%(current_period_end)s, current_period_end),
                    updated_utc = %(updated_utc)s
                WHERE id = %(user_id)s
                RETURNING {_ACCOUNT_COLUMNS}
                """,
                {
                    "user_id": user_id,
                    "customer_id": update.customer_id,
                    "subscription_id": update.subscription_id,
                    "plan_type": update.plan_type.value if update.plan_type else None,
                    "plan_status": update.plan_status.value if update.plan_status else None,
                    "current_period_start": update.current_period_start,
                    "current_period_end": update.current_period_end,
                    "updated_utc": update.updated_utc,
                },
            )
            row = cursor.fetchone()
            if not row:
                raise PersistenceFailed(f"Billing update for user {user_id} affected no rows")
            return _row_to_account(row)


__all__ = ["PostgresBillingRepository", "managed_connection"]
