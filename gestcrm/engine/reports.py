"""
Revenue & Performance Aggregator
Dashboard statistics and report series computed from already-loaded clients,
deals and activities. Pure Python; amounts stay Decimal, formatting is the
caller's job.

Every function accepts empty collections and returns zeros / None rather
than raising. Records with a bad amount count as zero; records with a bad
date drop out of the date-bucketed series only.
"""

import logging
from collections.abc import Mapping
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional

from gestcrm.engine.periods import (
    day_key, local_today, month_key, quarter_label, quarter_of, to_date, trailing_months, week_start,
)
from gestcrm.models import (
    Activity, BestDay, BestMonth, BiggestDeal, Client, ClientContractDuration,
    ClientRevenue, ClientRevenueRow, DashboardStats, Deal, RevenueBucket,
    SalesPerformance, DEAL_STATES, STATO_IN_CORSO, STATO_PERSA, STATO_VINTA,
)

logger = logging.getLogger(__name__)

ZERO = Decimal('0')


# =============================================================================
# HELPERS
# =============================================================================

def _money(value) -> Decimal:
    """Amount as a finite Decimal; missing, unparseable, NaN and infinite values count as 0."""
    if value is None:
        return ZERO
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        logger.debug(f"_money: treating unparseable amount {value!r} as 0")
        return ZERO
    if not amount.is_finite():
        logger.debug(f"_money: treating non-finite amount {value!r} as 0")
        return ZERO
    return amount


def _safe_date(value) -> Optional[date]:
    try:
        return to_date(value)
    except ValueError:
        return None


def _won(deals: Iterable[Deal]) -> List[Deal]:
    return [d for d in deals if d.stato_trattativa == STATO_VINTA]


def _clients_by_id(clients: Iterable[Client]) -> Dict[str, Client]:
    return {str(c.id): c for c in clients if c.id is not None}


def _client_name(deal: Deal, clients_by_id: Dict[str, Client]) -> Optional[str]:
    """Name from the joined client, falling back to the loaded client list."""
    if deal.client is not None and deal.client.nome_azienda:
        return deal.client.nome_azienda
    client = clients_by_id.get(str(deal.client_id)) if deal.client_id is not None else None
    return client.nome_azienda if client and client.nome_azienda else None


def _count(counts, name: str) -> int:
    if counts is None:
        return 0
    if isinstance(counts, Mapping):
        return int(counts.get(name, 0) or 0)
    return int(getattr(counts, name, 0) or 0)


# =============================================================================
# DASHBOARD
# =============================================================================

def pipeline_value(deals: Iterable[Deal]) -> Decimal:
    """Sum of valore_stimato over open (in_corso) deals only."""
    return sum((_money(d.valore_stimato) for d in deals if d.stato_trattativa == STATO_IN_CORSO), ZERO)


def best_client_by_revenue(deals: Iterable[Deal], clients: Iterable[Client] = ()) -> Optional[ClientRevenue]:
    """
    Client with the highest summed value of won deals.
    Deals whose client cannot be resolved are ignored; a zero total never wins.
    Ties go to the alphabetically first company name.
    """
    by_id = _clients_by_id(clients)
    totals: Dict[str, list] = {}

    for deal in _won(deals):
        name = _client_name(deal, by_id)
        if not name:
            continue
        key = str(deal.client_id) if deal.client_id is not None else name
        entry = totals.setdefault(key, [name, ZERO])
        entry[1] += _money(deal.valore_stimato)

    candidates = [(name, total) for name, total in totals.values() if total > 0]
    if not candidates:
        return None

    name, total = min(candidates, key=lambda item: (-item[1], item[0]))
    return ClientRevenue(nome_azienda=name, total_revenue=total)


def best_client_by_contract_duration(clients: Iterable[Client]) -> Optional[ClientContractDuration]:
    """Client with the longest durata_contratto_mesi. Ties go to the alphabetically first name."""
    candidates = []
    for client in clients:
        if client.durata_contratto_mesi is None:
            continue
        try:
            months = int(client.durata_contratto_mesi)
        except (TypeError, ValueError):
            continue
        candidates.append((months, client.nome_azienda or ''))

    if not candidates:
        return None

    months, name = min(candidates, key=lambda item: (-item[0], item[1]))
    return ClientContractDuration(nome_azienda=name, contract_duration_months=months)


def best_sales_performance(deals: Iterable[Deal], clients: Iterable[Client] = ()) -> Optional[SalesPerformance]:
    """
    Best month (by summed value), best day (by number of deals) and biggest
    single deal, over won deals. The metrics differ on purpose: month is
    value-based, day is count-based.

    Ties in all three go to whichever was seen first in `deals` order.
    """
    won = _won(deals)
    if not won:
        return None

    by_id = _clients_by_id(clients)
    months: Dict[str, list] = {}
    days: Dict[str, int] = {}
    biggest = None

    for deal in won:
        value = _money(deal.valore_stimato)
        if biggest is None or value > _money(biggest.valore_stimato):
            biggest = deal

        opened = _safe_date(deal.data_apertura)
        if opened is None:
            continue
        stats = months.setdefault(month_key(opened), [0, ZERO])
        stats[0] += 1
        stats[1] += value
        days[day_key(opened)] = days.get(day_key(opened), 0) + 1

    best_month = None
    for month, (count, total) in months.items():
        if best_month is None or total > best_month.total_value:
            best_month = BestMonth(month=month, deals_count=count, total_value=total)

    best_day = None
    for day, count in days.items():
        if best_day is None or count > best_day.deals_count:
            best_day = BestDay(date=day, deals_count=count)

    return SalesPerformance(
        best_month=best_month,
        best_day=best_day,
        biggest_deal=BiggestDeal(
            oggetto_trattativa=biggest.oggetto_trattativa,
            valore_stimato=_money(biggest.valore_stimato),
            client_name=_client_name(biggest, by_id) or 'N/A',
        ),
    )


def activities_this_week(activities: Iterable[Activity], today=None) -> int:
    """Activities dated on or after the most recent Sunday."""
    start = week_start(to_date(today) if today is not None else local_today())
    count = 0
    for activity in activities:
        when = _safe_date(activity.data_ora)
        if when is not None and when >= start:
            count += 1
    return count


def compute_dashboard_stats(
    clients: Iterable[Client],
    deals: Iterable[Deal],
    activities: Iterable[Activity],
    notification_counts=None,
    today=None,
) -> DashboardStats:
    """
    Dashboard summary for one snapshot of the store.

    notification_counts may be a NotificationCounts or a mapping with
    'pending' / 'expiring_soon' keys.
    """
    clients = list(clients)
    deals = list(deals)
    activities = list(activities)

    status = deals_by_status(deals)

    stats = DashboardStats(
        total_clients=len(clients),
        active_deals=status[STATO_IN_CORSO],
        won_deals=status[STATO_VINTA],
        lost_deals=status[STATO_PERSA],
        total_deal_value=pipeline_value(deals),
        this_week_activities=activities_this_week(activities, today),
        pending_notifications=_count(notification_counts, 'pending'),
        contracts_expiring_soon=_count(notification_counts, 'expiring_soon'),
        best_client_by_revenue=best_client_by_revenue(deals, clients),
        best_client_by_contract_duration=best_client_by_contract_duration(clients),
        best_sales_performance=best_sales_performance(deals, clients),
    )
    logger.debug(
        f"compute_dashboard_stats: clients={stats.total_clients} deals={len(deals)} "
        f"pipeline={stats.total_deal_value}"
    )
    return stats


# =============================================================================
# REPORTS
# =============================================================================

def deals_by_status(deals: Iterable[Deal]) -> Dict[str, int]:
    counts = {state: 0 for state in DEAL_STATES}
    for deal in deals:
        if deal.stato_trattativa in counts:
            counts[deal.stato_trattativa] += 1
    return counts


def total_revenue(deals: Iterable[Deal]) -> Decimal:
    """Sum of won deals."""
    return sum((_money(d.valore_stimato) for d in _won(deals)), ZERO)


def current_month_revenue(deals: Iterable[Deal], today=None) -> Decimal:
    today = to_date(today) if today is not None else local_today()
    total = ZERO
    for deal in _won(deals):
        opened = _safe_date(deal.data_apertura)
        if opened is not None and (opened.year, opened.month) == (today.year, today.month):
            total += _money(deal.valore_stimato)
    return total


def revenue_by_client(clients: Iterable[Client], deals: Iterable[Deal]) -> List[ClientRevenueRow]:
    """
    Won revenue per client, highest first. Clients without won revenue are
    left out; equal revenues keep client-list order.
    """
    won = _won(deals)
    rows = []
    for client in clients:
        client_deals = [d for d in won if d.client_id is not None and str(d.client_id) == str(client.id)]
        revenue = sum((_money(d.valore_stimato) for d in client_deals), ZERO)
        if revenue > 0:
            rows.append(ClientRevenueRow(client=client.nome_azienda, revenue=revenue, deals=len(client_deals)))
    rows.sort(key=lambda row: row.revenue, reverse=True)
    return rows


def quarterly_revenue(deals: Iterable[Deal], year: Optional[int] = None) -> List[RevenueBucket]:
    """
    Won revenue per calendar quarter, chronological. Sparse: only quarters
    with at least one won deal appear. `year` restricts to one year.
    """
    buckets: Dict[tuple, Decimal] = {}
    for deal in _won(deals):
        opened = _safe_date(deal.data_apertura)
        if opened is None or (year is not None and opened.year != year):
            continue
        key = (opened.year, quarter_of(opened))
        buckets[key] = buckets.get(key, ZERO) + _money(deal.valore_stimato)

    return [
        RevenueBucket(label=quarter_label(date(y, (quarter - 1) * 3 + 1, 1)), revenue=buckets[(y, quarter)])
        for y, quarter in sorted(buckets)
    ]


def monthly_revenue_trend(deals: Iterable[Deal], today=None, months: int = 6) -> List[RevenueBucket]:
    """
    Won revenue for each of the trailing `months` months ending with today's
    month, oldest first. Zero-filled: months without revenue are included.
    """
    today = to_date(today) if today is not None else local_today()
    window = trailing_months(today, months)
    totals = {ym: ZERO for ym in window}

    for deal in _won(deals):
        opened = _safe_date(deal.data_apertura)
        if opened is None:
            continue
        ym = (opened.year, opened.month)
        if ym in totals:
            totals[ym] += _money(deal.valore_stimato)

    return [RevenueBucket(label=month_key(date(y, m, 1)), revenue=totals[(y, m)]) for y, m in window]
