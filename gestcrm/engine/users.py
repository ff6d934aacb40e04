"""
User Accounts - approval queue for the `users` table.

New accounts start unapproved and cannot use the CRM until an owner approves
them (see gestcrm.session.require_user). Who may call these functions is the
caller's concern; the CLI gates them behind require_owner.
"""

import logging
from typing import Any, Dict, List, Optional

from gestcrm.bus.events import bus, EVENT_USER_APPROVAL_CHANGED
from gestcrm.db.connection import get_db_cursor, fallback_on_db_error
from gestcrm.engine.crm import known_fields
from gestcrm.models import CurrentUser

logger = logging.getLogger(__name__)

STATUS_PENDING = 'pending'
STATUS_APPROVED = 'approved'
USER_STATUSES = (STATUS_PENDING, STATUS_APPROVED)

_STATUS_CONDITIONS = {
    STATUS_PENDING: "WHERE approved = FALSE",
    STATUS_APPROVED: "WHERE approved = TRUE",
}


def user_from_row(row: Dict[str, Any]) -> CurrentUser:
    return CurrentUser(**known_fields(CurrentUser, row))


@fallback_on_db_error([])
def fetch_users(status: Optional[str] = None) -> List[CurrentUser]:
    """
    Registered accounts, newest first.
    status: None for everyone, 'pending' for unapproved, 'approved' for approved.
    """
    if status is not None and status not in _STATUS_CONDITIONS:
        raise ValueError(f"Invalid user status: {status!r}")

    where_clause = _STATUS_CONDITIONS.get(status, "")
    with get_db_cursor() as cur:
        cur.execute(f"""
            SELECT * FROM users
            {where_clause}
            ORDER BY created_at DESC
        """)

        rows = cur.fetchall()
        logger.debug(f"fetch_users: {len(rows)} users (status={status})")
        return [user_from_row(row) for row in rows]


def set_user_approval(user_id: str, approved: bool) -> bool:
    """
    Approve or revoke an account.
    Returns: True if the account changed state, False if missing or already there
    """
    with get_db_cursor() as cur:
        cur.execute("""
            UPDATE users
            SET approved = %(approved)s
            WHERE id = %(user_id)s AND approved IS DISTINCT FROM %(approved)s
        """, {'user_id': user_id, 'approved': approved})

        if cur.rowcount > 0:
            logger.info(f"User {user_id} {'approved' if approved else 'revoked'}")
            bus.emit(EVENT_USER_APPROVAL_CHANGED, {'user_id': user_id, 'approved': approved})
            return True
        return False
