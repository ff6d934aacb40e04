"""
Notification Service - store side of the contract reminders.

Reading, marking read, deleting and (re)generating the rows of the
`notifications` table. Which reminders are due is decided by
gestcrm.engine.contracts; this module only moves data in and out.

Generation is idempotent twice over: the evaluator skips (client, type)
pairs that already exist, and the insert uses ON CONFLICT DO NOTHING against
the UNIQUE (client_id, tipo_notifica) constraint in case two runs overlap.
"""

import logging
from datetime import date
from typing import List, Optional, Sequence

from gestcrm.bus.events import (
    bus, EVENT_NOTIFICATIONS_GENERATED, EVENT_NOTIFICATIONS_READ, EVENT_NOTIFICATION_DELETED,
)
from gestcrm.config import config
from gestcrm.db.connection import get_db_cursor, fallback_on_db_error
from gestcrm.engine.contracts import count_notifications, evaluate_due_notifications, with_days_remaining
from gestcrm.engine.crm import client_from_row, known_fields
from gestcrm.engine.periods import local_today
from gestcrm.models import Notification, NotificationCounts

logger = logging.getLogger(__name__)

_NOTIFICATION_SELECT = """
    SELECT n.*, c.nome_azienda
    FROM notifications n
    LEFT JOIN clients c ON c.id = n.client_id
"""


def _notification_from_row(row) -> Notification:
    return Notification(**known_fields(Notification, row))


@fallback_on_db_error([])
def fetch_notifications(user_id: str, pending_only: bool = False, today: Optional[date] = None) -> List[Notification]:
    """
    A user's notifications, newest reminder date first, with giorni_rimanenti
    computed for `today`. pending_only keeps unread ones that are already due.
    """
    today = today or local_today()
    conditions = ["n.user_id = %(user_id)s"]
    params = {'user_id': user_id, 'today': today}

    if pending_only:
        conditions.append("n.letta = FALSE")
        conditions.append("n.data_notifica <= %(today)s")

    where_clause = " AND ".join(conditions)

    with get_db_cursor() as cur:
        cur.execute(_NOTIFICATION_SELECT + f"""
            WHERE {where_clause}
            ORDER BY n.data_notifica DESC
        """, params)

        rows = cur.fetchall()
        logger.debug(f"fetch_notifications: {len(rows)} rows (user_id={user_id}, pending_only={pending_only})")
        return with_days_remaining([_notification_from_row(r) for r in rows], today)


@fallback_on_db_error([])
def fetch_client_notifications(user_id: str, client_id: str, today: Optional[date] = None) -> List[Notification]:
    """All notifications of one client for this user."""
    with get_db_cursor() as cur:
        cur.execute(_NOTIFICATION_SELECT + """
            WHERE n.user_id = %(user_id)s AND n.client_id = %(client_id)s
            ORDER BY n.data_notifica DESC
        """, {'user_id': user_id, 'client_id': client_id})

        rows = cur.fetchall()
        return with_days_remaining([_notification_from_row(r) for r in rows], today or local_today())


@fallback_on_db_error(None)
def mark_notification_read(notification_id: str) -> None:
    """
    Mark one notification read. Idempotent: an already-read (or missing)
    notification is left as it is. Backend errors are logged, not raised.
    """
    with get_db_cursor() as cur:
        cur.execute("""
            UPDATE notifications
            SET letta = TRUE, updated_at = NOW()
            WHERE id = %s AND letta = FALSE
        """, (notification_id,))

        if cur.rowcount > 0:
            logger.info(f"Notification {notification_id} marked read")
            bus.emit(EVENT_NOTIFICATIONS_READ, {'notification_ids': [notification_id]})


def mark_notifications_read(notification_ids: Sequence[str]) -> int:
    """
    Mark several notifications read in one statement.
    Returns how many changed state. Backend errors propagate.
    """
    ids = list(notification_ids)
    if not ids:
        return 0

    with get_db_cursor() as cur:
        cur.execute("""
            UPDATE notifications
            SET letta = TRUE, updated_at = NOW()
            WHERE id = ANY(%s::uuid[]) AND letta = FALSE
        """, (ids,))

        changed = cur.rowcount
        logger.info(f"Marked {changed} of {len(ids)} notifications read")
        if changed > 0:
            bus.emit(EVENT_NOTIFICATIONS_READ, {'notification_ids': ids})
        return changed


def delete_notification(notification_id: str) -> bool:
    """Explicit removal by the user. Backend errors propagate."""
    with get_db_cursor() as cur:
        cur.execute("DELETE FROM notifications WHERE id = %s", (notification_id,))

        if cur.rowcount > 0:
            logger.info(f"Deleted notification {notification_id}")
            bus.emit(EVENT_NOTIFICATION_DELETED, {'notification_id': notification_id})
            return True
        return False


@fallback_on_db_error(0)
def generate_notifications(today: Optional[date] = None) -> int:
    """
    Materialize every reminder that has come due for contract-tracked clients.
    Safe to run any number of times. Returns the number of rows inserted;
    0 when the backend is unavailable.
    """
    today = today or local_today()

    with get_db_cursor() as cur:
        cur.execute("""
            SELECT * FROM clients
            WHERE notifiche_attive = TRUE
              AND data_scadenza_contratto IS NOT NULL
        """)
        clients = [client_from_row(r) for r in cur.fetchall()]

        cur.execute("SELECT client_id, tipo_notifica FROM notifications")
        existing = [_notification_from_row(r) for r in cur.fetchall()]

        created = 0
        for notification in evaluate_due_notifications(clients, existing, today):
            cur.execute("""
                INSERT INTO notifications (
                    client_id, tipo_notifica, data_notifica, data_scadenza_contratto,
                    messaggio, letta, inviata, user_id
                ) VALUES (
                    %(client_id)s, %(tipo_notifica)s, %(data_notifica)s, %(data_scadenza_contratto)s,
                    %(messaggio)s, %(letta)s, %(inviata)s, %(user_id)s
                )
                ON CONFLICT (client_id, tipo_notifica) DO NOTHING
            """, {
                'client_id': notification.client_id,
                'tipo_notifica': notification.tipo_notifica,
                'data_notifica': notification.data_notifica,
                'data_scadenza_contratto': notification.data_scadenza_contratto,
                'messaggio': notification.messaggio,
                'letta': notification.letta,
                'inviata': notification.inviata,
                'user_id': notification.user_id,
            })
            created += cur.rowcount

    logger.info(f"generate_notifications: {created} new notifications for {len(clients)} tracked clients")
    if created:
        bus.emit(EVENT_NOTIFICATIONS_GENERATED, {'count': created, 'date': today})
    return created


@fallback_on_db_error(NotificationCounts())
def get_notification_counts(user_id: str, today: Optional[date] = None) -> NotificationCounts:
    """Pending reminders and contracts expiring within EXPIRING_SOON_DAYS for a user."""
    today = today or local_today()

    with get_db_cursor() as cur:
        cur.execute("""
            SELECT id, letta, data_notifica, data_scadenza_contratto
            FROM notifications
            WHERE user_id = %s AND letta = FALSE
        """, (user_id,))
        notifications = [_notification_from_row(r) for r in cur.fetchall()]

        cur.execute("""
            SELECT id, nome_azienda, data_scadenza_contratto
            FROM clients
            WHERE user_id = %s AND data_scadenza_contratto IS NOT NULL
        """, (user_id,))
        clients = [client_from_row(r) for r in cur.fetchall()]

    return count_notifications(notifications, clients, today, window_days=config.EXPIRING_SOON_DAYS)
