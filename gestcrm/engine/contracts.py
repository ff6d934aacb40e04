"""
Contract Notification Engine
Decides which expiry reminders (45 / 30 / 15 days before data_scadenza_contratto)
are due for each tracked client, and derives the read-time fields of
materialized notifications.

Pure Python: no database, no clock unless `today` is omitted. The store side
(fetching clients, inserting rows) lives in gestcrm.engine.notifications.

Lifecycle of one (client, tipo_notifica) reminder:

    not_yet_due --(today >= scadenza - offset)--> pending --(user)--> read

There is no way back from `read`, and nothing here ever removes a notification.
"""

import dataclasses
import logging
from datetime import date, timedelta
from typing import Iterable, List, Optional, Tuple

from gestcrm.engine.periods import add_months, days_between, local_today, to_date
from gestcrm.models import (
    Client, Notification, NotificationCounts,
    SCADENZA_45, REMINDER_30, SOLLECITO_15,
)

logger = logging.getLogger(__name__)

# (tipo_notifica, days before expiry), most distant first
REMINDER_RULES: Tuple[Tuple[str, int], ...] = (
    (SCADENZA_45, 45),
    (REMINDER_30, 30),
    (SOLLECITO_15, 15),
)
REMINDER_OFFSETS = dict(REMINDER_RULES)

STATE_NOT_YET_DUE = 'not_yet_due'
STATE_PENDING = 'pending'
STATE_READ = 'read'

_MESSAGES = {
    SCADENZA_45: "Il contratto con {nome} scade il {scadenza}: mancano 45 giorni.",
    REMINDER_30: "Promemoria: il contratto con {nome} scade il {scadenza} (30 giorni).",
    SOLLECITO_15: "Sollecito: il contratto con {nome} scade il {scadenza}, restano 15 giorni.",
}


def _today(today) -> date:
    return to_date(today) if today is not None else local_today()


def is_eligible(client: Client) -> bool:
    """
    True when reminders should be generated for this client:
    notifiche_attive is set and the expiry date is present and parseable.
    """
    if not getattr(client, 'notifiche_attive', False):
        return False
    if getattr(client, 'id', None) is None:
        return False
    try:
        return to_date(getattr(client, 'data_scadenza_contratto', None)) is not None
    except ValueError:
        return False


def reminder_date(expiry: date, offset_days: int) -> date:
    """Date a reminder becomes due."""
    return expiry - timedelta(days=offset_days)


def due_reminders(client: Client, today=None) -> List[str]:
    """Reminder types whose due date has been reached for this client."""
    today = _today(today)
    expiry = to_date(client.data_scadenza_contratto)
    if expiry is None:
        return []
    return [tipo for tipo, offset in REMINDER_RULES if today >= reminder_date(expiry, offset)]


def build_notification(client: Client, tipo_notifica: str) -> Notification:
    """A fresh, unread, undelivered notification for one client and reminder type."""
    expiry = to_date(client.data_scadenza_contratto)
    return Notification(
        client_id=client.id,
        nome_azienda=client.nome_azienda,
        tipo_notifica=tipo_notifica,
        data_notifica=reminder_date(expiry, REMINDER_OFFSETS[tipo_notifica]),
        data_scadenza_contratto=expiry,
        messaggio=_MESSAGES[tipo_notifica].format(
            nome=client.nome_azienda, scadenza=expiry.strftime('%d/%m/%Y'),
        ),
        letta=False,
        inviata=False,
        user_id=client.user_id,
    )


def evaluate_due_notifications(
    clients: Iterable[Client],
    existing: Iterable[Notification],
    today=None,
) -> List[Notification]:
    """
    New notifications to materialize.

    Set-union semantics: a (client_id, tipo_notifica) pair already present in
    `existing` (or produced earlier in this run) is never returned again, so
    running this repeatedly over the same data yields nothing new.

    Clients that are ineligible are skipped silently; clients whose contract
    fields are malformed are logged and skipped, and the rest of the batch
    is still evaluated.
    """
    today = _today(today)
    seen = {(str(n.client_id), n.tipo_notifica) for n in existing}
    created: List[Notification] = []

    for client in clients:
        if not is_eligible(client):
            continue
        try:
            pending = []
            for tipo in due_reminders(client, today):
                key = (str(client.id), tipo)
                if key in seen:
                    continue
                pending.append((key, build_notification(client, tipo)))
        except (AttributeError, TypeError, ValueError) as exc:
            logger.warning(f"evaluate_due_notifications: skipping client {getattr(client, 'id', None)}: {exc}")
            continue

        for key, notification in pending:
            seen.add(key)
            created.append(notification)

    logger.debug(f"evaluate_due_notifications: {len(created)} new notifications for {today}")
    return created


# =============================================================================
# READ-TIME DERIVATIONS
# =============================================================================

def days_remaining(notification: Notification, today=None) -> Optional[int]:
    """Days from today to the contract expiry. Negative once expired, None if unknown."""
    try:
        expiry = to_date(notification.data_scadenza_contratto)
    except ValueError:
        return None
    if expiry is None:
        return None
    return days_between(_today(today), expiry)


def with_days_remaining(notifications: Iterable[Notification], today=None) -> List[Notification]:
    """Copies of the notifications with giorni_rimanenti filled in for `today`."""
    today = _today(today)
    return [
        dataclasses.replace(n, giorni_rimanenti=days_remaining(n, today))
        for n in notifications
    ]


def notification_state(notification: Notification, today=None) -> str:
    if notification.letta:
        return STATE_READ
    try:
        due = to_date(notification.data_notifica)
    except ValueError:
        due = None
    if due is None or due > _today(today):
        return STATE_NOT_YET_DUE
    return STATE_PENDING


def mark_read(notification: Notification) -> Notification:
    """The unread -> read transition. Idempotent; there is no inverse."""
    if notification.letta:
        return notification
    return dataclasses.replace(notification, letta=True)


def count_notifications(
    notifications: Iterable[Notification],
    clients: Iterable[Client],
    today=None,
    window_days: int = 60,
) -> NotificationCounts:
    """
    pending       : unread notifications whose data_notifica has been reached
    expiring_soon : clients whose contract ends within [today, today + window_days]
    """
    today = _today(today)
    horizon = today + timedelta(days=window_days)

    pending = sum(1 for n in notifications if notification_state(n, today) == STATE_PENDING)

    expiring = 0
    for client in clients:
        try:
            expiry = to_date(getattr(client, 'data_scadenza_contratto', None))
        except ValueError:
            continue
        if expiry is not None and today <= expiry <= horizon:
            expiring += 1

    return NotificationCounts(pending=pending, expiring_soon=expiring)


def expiry_from_duration(start, months) -> Optional[date]:
    """Contract end date from start date + duration in months, when both are known."""
    start = to_date(start)
    if start is None or not months:
        return None
    return add_months(start, int(months))
