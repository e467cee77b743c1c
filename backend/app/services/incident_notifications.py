"""Fetching, rendering and dispatching pending incident notification emails."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, List, Mapping, Optional

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from pydantic import ValidationError

from ... import app_context
from ...mail.providers import EmailProvider, SendFailed
from ...mail.renderer import render_incident_notification
from ..schemas.notifications import IncidentNotification

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50
DEFAULT_RETRY_AFTER = timedelta(minutes=5)
MAX_ERROR_LENGTH = 1000
_MARK_SAVEPOINT = "incident_notification_mark"

_NOTIFICATION_COLUMNS = """
    id,
    email,
    incident_id,
    type,
    status_page_id,
    status_page_name,
    status_page_url,
    incident_title,
    incident_status,
    message,
    unsubscribe_url,
    sent,
    sent_at,
    error_message,
    created_at,
    updated_at
"""


@dataclass
class IncidentDispatchSummary:
    """Aggregated results for one pass over pending notifications."""

    sent: int = 0
    failed: int = 0
    unrecorded: int = 0

    @property
    def processed(self) -> int:
        return self.sent + self.failed


@contextmanager
def _connection_scope(conn: Optional[PgConnection]):
    if conn is not None:
        yield conn, False
        return
    owned_conn = app_context.get_conn()
    try:
        yield owned_conn, True
        owned_conn.commit()
    except Exception:
        owned_conn.rollback()
        raise
    finally:
        owned_conn.close()


def _truncate_error(message: str) -> str:
    if len(message) <= MAX_ERROR_LENGTH:
        return message
    return message[: MAX_ERROR_LENGTH - 1] + "…"


def fetch_pending_notifications(
    connection: PgConnection,
    *,
    now: datetime,
    batch_size: int = DEFAULT_BATCH_SIZE,
    retry_after: timedelta = DEFAULT_RETRY_AFTER,
) -> List[Mapping[str, Any]]:
    """Return unsent rows, oldest first; failed rows only once ``retry_after`` has elapsed."""

    retry_cutoff = now - retry_after
    with connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
        cur.execute(
            f"""
            SELECT {_NOTIFICATION_COLUMNS}
            FROM incident_notifications
            WHERE sent = FALSE
              AND (error_message IS NULL OR updated_at <= %s)
            ORDER BY created_at ASC, id ASC
            LIMIT %s
            """,
            (retry_cutoff, max(1, batch_size)),
        )
        rows = cur.fetchall()
    return list(rows)


def mark_notification_sent(connection: PgConnection, notification_id: str, *, now: datetime) -> None:
    with connection.cursor() as cur:
        cur.execute(
            """
            UPDATE incident_notifications
            SET sent = TRUE,
                sent_at = %s,
                error_message = NULL,
                updated_at = %s
            WHERE id = %s
            """,
            (now, now, notification_id),
        )


def mark_notification_failed(
    connection: PgConnection,
    notification_id: str,
    error_message: str,
    *,
    now: datetime,
) -> None:
    with connection.cursor() as cur:
        cur.execute(
            """
            UPDATE incident_notifications
            SET error_message = %s,
                updated_at = %s
            WHERE id = %s
            """,
            (_truncate_error(error_message), now, notification_id),
        )


def dispatch_notification(notification: IncidentNotification, provider: EmailProvider) -> None:
    """Render ``notification`` and hand it to ``provider``; any transport error becomes :class:`SendFailed`."""

    subject, text_body, html_body = render_incident_notification(notification)
    try:
        provider.send_email(notification.email, subject, html_body, text_body)
    except SendFailed:
        raise
    except Exception as exc:
        raise SendFailed(notification.email, f"{type(exc).__name__}: {exc}") from exc


def _record_outcome(
    connection: PgConnection,
    owned: bool,
    notification_id: str,
    *,
    now: datetime,
    error: Optional[str] = None,
) -> bool:
    """Persist one notification's outcome in isolation from the rest of the batch.

    A savepoint keeps a failed mark from poisoning the transaction; owned
    connections commit after every mark so delivered rows stay sent.
    """

    with connection.cursor() as cur:
        cur.execute(f"SAVEPOINT {_MARK_SAVEPOINT}")
    try:
        if error is None:
            mark_notification_sent(connection, notification_id, now=now)
        else:
            mark_notification_failed(connection, notification_id, error, now=now)
    except psycopg2.Error:
        logger.exception(
            "Failed to record incident notification outcome",
            extra={"notification_id": notification_id, "delivered": error is None},
        )
        with connection.cursor() as cur:
            cur.execute(f"ROLLBACK TO SAVEPOINT {_MARK_SAVEPOINT}")
        return False

    with connection.cursor() as cur:
        cur.execute(f"RELEASE SAVEPOINT {_MARK_SAVEPOINT}")
    if owned:
        connection.commit()
    return True


def process_pending_notifications(
    *,
    conn: Optional[PgConnection] = None,
    provider: Optional[EmailProvider] = None,
    now: Optional[datetime] = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
    retry_after: timedelta = DEFAULT_RETRY_AFTER,
) -> IncidentDispatchSummary:
    current_time = now or datetime.now(timezone.utc)
    if current_time.tzinfo is None:
        current_time = current_time.replace(tzinfo=timezone.utc)

    email_provider = provider or app_context.get_email_provider()
    summary = IncidentDispatchSummary()

    with _connection_scope(conn) as (connection, owned):
        rows = fetch_pending_notifications(
            connection,
            now=current_time,
            batch_size=batch_size,
            retry_after=retry_after,
        )
        if not rows:
            return summary

        logger.info("Processing %d pending incident notifications", len(rows))

        for row in rows:
            notification_id = str(row["id"])
            try:
                notification = IncidentNotification.model_validate(row)
                dispatch_notification(notification, email_provider)
            except (SendFailed, ValidationError) as exc:
                error = str(exc)
            except Exception as exc:
                logger.exception(
                    "Unexpected error dispatching incident notification",
                    extra={"notification_id": notification_id},
                )
                error = f"{type(exc).__name__}: {exc}"
            else:
                summary.sent += 1
                logger.info(
                    "Sent incident notification %s to %s",
                    notification_id,
                    notification.email,
                    extra={"notification_id": notification_id, "incident_id": notification.incident_id},
                )
                if not _record_outcome(connection, owned, notification_id, now=current_time):
                    summary.unrecorded += 1
                continue

            summary.failed += 1
            logger.warning(
                "Failed to send incident notification %s: %s",
                notification_id,
                error,
                extra={"notification_id": notification_id},
            )
            if not _record_outcome(connection, owned, notification_id, now=current_time, error=error):
                summary.unrecorded += 1

    return summary


__all__ = [
    "IncidentDispatchSummary",
    "dispatch_notification",
    "fetch_pending_notifications",
    "mark_notification_failed",
    "mark_notification_sent",
    "process_pending_notifications",
]
