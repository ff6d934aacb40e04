"""
Dashboard loader: fetch a fresh snapshot and run the aggregator over it.
"""

import logging
from datetime import date
from typing import Optional

from gestcrm.engine import crm, notifications
from gestcrm.engine.periods import local_today
from gestcrm.engine.reports import compute_dashboard_stats
from gestcrm.models import DashboardStats

logger = logging.getLogger(__name__)


def load_dashboard_stats(user_id: str, today: Optional[date] = None) -> DashboardStats:
    """
    Dashboard figures for a user as of `today`.
    Each fetch degrades to empty on a backend failure, so the worst case is an
    all-zero dashboard rather than an error.
    """
    today = today or local_today()

    clients = crm.fetch_clients()
    deals = crm.fetch_deals()
    activities = crm.fetch_activities(user_id=user_id)
    counts = notifications.get_notification_counts(user_id, today)

    stats = compute_dashboard_stats(clients, deals, activities, counts, today)
    logger.info(
        f"load_dashboard_stats: {stats.total_clients} clients, {stats.active_deals} open deals, "
        f"{stats.pending_notifications} pending notifications"
    )
    return stats
