"""
CRM Engine - Core Database Operations
Clients, deals and activities. Pure store access with no reporting logic.

Reads degrade to an empty result when the backend fails (see
fallback_on_db_error); creates, updates and deletes let the error propagate so
the caller can report it. Every successful write emits an event on the bus.
"""

import dataclasses
import logging
from typing import List, Optional, Dict, Any

from gestcrm.db.connection import get_db_cursor, fallback_on_db_error
from gestcrm.engine.contracts import expiry_from_duration
from gestcrm.models import Client, Deal, Activity
from gestcrm.bus.events import (
    bus,
    EVENT_CLIENT_CREATED, EVENT_CLIENT_UPDATED, EVENT_CLIENT_DELETED,
    EVENT_DEAL_CREATED, EVENT_DEAL_UPDATED, EVENT_DEAL_DELETED,
    EVENT_ACTIVITY_LOGGED, EVENT_ACTIVITY_UPDATED, EVENT_ACTIVITY_DELETED,
)

logger = logging.getLogger(__name__)

# Insert order doubles as the allowlist for dynamic UPDATE queries;
# column names never come from user input directly
_CLIENT_INSERT = (
    'nome_azienda', 'figura_preposta', 'contatti', 'indirizzo_mail',
    'data_invio_proposta', 'proposta_presentata', 'tipologia_proposta', 'frequenza',
    'valore_mensile', 'valore_spot', 'stato_trattativa', 'data_fine',
    'giorni_gestazione', 'durata', 'fine_lavori', 'estensione',
    'data_inizio_contratto', 'data_scadenza_contratto', 'durata_contratto_mesi',
    'rinnovo_automatico', 'notifiche_attive', 'user_id',
)
_DEAL_INSERT = (
    'client_id', 'oggetto_trattativa', 'valore_stimato', 'data_apertura',
    'stato_trattativa', 'scadenza_prossimo_contatto', 'note', 'user_id',
)
_ACTIVITY_INSERT = (
    'tipo_attivita', 'data_ora', 'esito', 'client_id', 'deal_id', 'note', 'user_id',
)

_CLIENT_COLUMNS = set(_CLIENT_INSERT) - {'user_id'}
_DEAL_COLUMNS = set(_DEAL_INSERT) - {'user_id'}
_ACTIVITY_COLUMNS = set(_ACTIVITY_INSERT) - {'user_id'}

# Deals come back with their client as a JSON object
_DEAL_SELECT = """
    SELECT d.*,
           CASE WHEN c.id IS NULL THEN NULL ELSE row_to_json(c) END AS client
    FROM deals d
    LEFT JOIN clients c ON c.id = d.client_id
"""


def _validate_columns(updates: Dict[str, Any], allowed: set, entity: str) -> None:
    """Raise ValueError if any key in updates is not an allowed column name."""
    invalid = set(updates.keys()) - allowed
    if invalid:
        raise ValueError(f"Invalid {entity} fields: {invalid}")


def known_fields(cls, row: Dict[str, Any]) -> Dict[str, Any]:
    """Drop columns the dataclass doesn't declare (joins, newer schema columns)."""
    names = {f.name for f in dataclasses.fields(cls)}
    return {k: v for k, v in row.items() if k in names}


def _insert_sql(table: str, columns) -> str:
    cols = ', '.join(columns)
    values = ', '.join(f"%({c})s" for c in columns)
    return f"INSERT INTO {table} ({cols}) VALUES ({values}) RETURNING id"


def _set_clause(updates: Dict[str, Any]) -> str:
    # keys are validated against an allowlist before this is called
    return ', '.join(f"{key} = %({key})s" for key in updates.keys())


def client_from_row(row: Dict[str, Any]) -> Client:
    return Client(**known_fields(Client, row))


def deal_from_row(row: Dict[str, Any]) -> Deal:
    data = dict(row)
    client = data.pop('client', None)
    deal = Deal(**known_fields(Deal, data))
    if client:
        deal.client = client_from_row(client)
    return deal


# =============================================================================
# CLIENT OPERATIONS
# =============================================================================

def create_client(client: Client) -> str:
    """
    Create a new client.
    When only start date and duration are given, the expiry date is derived.
    Returns: client_id
    """
    if client.data_scadenza_contratto is None:
        client.data_scadenza_contratto = expiry_from_duration(
            client.data_inizio_contratto, client.durata_contratto_mesi
        )

    params = {c: getattr(client, c) for c in _CLIENT_INSERT}
    with get_db_cursor() as cur:
        cur.execute(_insert_sql('clients', _CLIENT_INSERT), params)

        client_id = cur.fetchone()['id']
        logger.info(f"Created client {client_id}: {client.nome_azienda}")

        bus.emit(EVENT_CLIENT_CREATED, {'client_id': client_id, 'client': client})

        return client_id


@fallback_on_db_error(None)
def get_client(client_id: str) -> Optional[Client]:
    """Get client by ID."""
    with get_db_cursor() as cur:
        cur.execute("SELECT * FROM clients WHERE id = %s", (client_id,))

        row = cur.fetchone()
        if row:
            return client_from_row(row)
        logger.debug(f"get_client: client_id={client_id} not found")
        return None


def update_client(client_id: str, updates: Dict[str, Any]) -> bool:
    """
    Update client fields.
    Returns: True if updated, False if not found
    """
    if not updates:
        return False

    _validate_columns(updates, _CLIENT_COLUMNS, 'client')

    params = dict(updates, client_id=client_id)
    with get_db_cursor() as cur:
        cur.execute(f"""
            UPDATE clients
            SET {_set_clause(updates)}, updated_at = NOW()
            WHERE id = %(client_id)s
        """, params)

        if cur.rowcount > 0:
            logger.info(f"Updated client {client_id}: {list(updates.keys())}")
            bus.emit(EVENT_CLIENT_UPDATED, {'client_id': client_id, 'updates': updates})
            return True
        return False


def delete_client(client_id: str) -> bool:
    """
    Delete a client. Its deals, activities and notifications go with it
    (ON DELETE CASCADE).
    Returns: True if deleted, False if not found
    """
    with get_db_cursor() as cur:
        cur.execute("DELETE FROM clients WHERE id = %s", (client_id,))

        if cur.rowcount > 0:
            logger.info(f"Deleted client {client_id}")
            bus.emit(EVENT_CLIENT_DELETED, {'client_id': client_id})
            return True
        return False


@fallback_on_db_error([])
def search_clients(
    nome: Optional[str] = None,
    stato: Optional[str] = None,
    user_id: Optional[str] = None,
    limit: int = 500,
) -> List[Client]:
    """
    Search clients with optional filters.
    Returns list of matching clients, most recently updated first.
    """
    conditions = ["TRUE"]
    params: Dict[str, Any] = {}

    if nome:
        conditions.append("nome_azienda ILIKE %(nome)s")
        params['nome'] = f"%{nome}%"

    if stato:
        conditions.append("stato_trattativa = %(stato)s")
        params['stato'] = stato

    if user_id:
        conditions.append("user_id = %(user_id)s")
        params['user_id'] = user_id

    params['limit'] = limit

    where_clause = " AND ".join(conditions)

    with get_db_cursor() as cur:
        cur.execute(f"""
            SELECT * FROM clients
            WHERE {where_clause}
            ORDER BY updated_at DESC
            LIMIT %(limit)s
        """, params)

        rows = cur.fetchall()
        logger.debug(f"search_clients: {len(rows)} results (nome={nome}, stato={stato})")
        return [client_from_row(row) for row in rows]


@fallback_on_db_error([])
def fetch_clients(user_id: Optional[str] = None) -> List[Client]:
    """All clients (optionally one user's), alphabetical."""
    with get_db_cursor() as cur:
        if user_id:
            cur.execute("""
                SELECT * FROM clients WHERE user_id = %s ORDER BY nome_azienda ASC
            """, (user_id,))
        else:
            cur.execute("SELECT * FROM clients ORDER BY nome_azienda ASC")

        rows = cur.fetchall()
        logger.debug(f"fetch_clients: {len(rows)} clients (user_id={user_id})")
        return [client_from_row(row) for row in rows]


# =============================================================================
# DEAL OPERATIONS
# =============================================================================

def create_deal(deal: Deal) -> str:
    """
    Create a new deal.
    Returns: deal_id
    """
    params = {c: getattr(deal, c) for c in _DEAL_INSERT}
    with get_db_cursor() as cur:
        cur.execute(_insert_sql('deals', _DEAL_INSERT), params)

        deal_id = cur.fetchone()['id']
        logger.info(f"Created deal {deal_id}: {deal.oggetto_trattativa} ({deal.valore_stimato})")

        bus.emit(EVENT_DEAL_CREATED, {'deal_id': deal_id, 'deal': deal})

        return deal_id


@fallback_on_db_error(None)
def get_deal(deal_id: str) -> Optional[Deal]:
    """Get deal by ID, with its client."""
    with get_db_cursor() as cur:
        cur.execute(_DEAL_SELECT + " WHERE d.id = %s", (deal_id,))

        row = cur.fetchone()
        if row:
            return deal_from_row(row)
        logger.debug(f"get_deal: deal_id={deal_id} not found")
        return None


def update_deal(deal_id: str, updates: Dict[str, Any]) -> bool:
    """Update deal fields. Returns True if updated, False if not found."""
    if not updates:
        return False

    _validate_columns(updates, _DEAL_COLUMNS, 'deal')

    params = dict(updates, deal_id=deal_id)
    with get_db_cursor() as cur:
        cur.execute(f"""
            UPDATE deals
            SET {_set_clause(updates)}, updated_at = NOW()
            WHERE id = %(deal_id)s
        """, params)

        if cur.rowcount > 0:
            logger.info(f"Updated deal {deal_id}: {list(updates.keys())}")
            bus.emit(EVENT_DEAL_UPDATED, {'deal_id': deal_id, 'updates': updates})
            return True
        return False


def delete_deal(deal_id: str) -> bool:
    with get_db_cursor() as cur:
        cur.execute("DELETE FROM deals WHERE id = %s", (deal_id,))

        if cur.rowcount > 0:
            logger.info(f"Deleted deal {deal_id}")
            bus.emit(EVENT_DEAL_DELETED, {'deal_id': deal_id})
            return True
        return False


@fallback_on_db_error([])
def fetch_deals(
    stato: Optional[str] = None,
    client_id: Optional[str] = None,
) -> List[Deal]:
    """Deals with their client, newest first."""
    conditions = ["TRUE"]
    params: Dict[str, Any] = {}

    if stato:
        conditions.append("d.stato_trattativa = %(stato)s")
        params['stato'] = stato

    if client_id:
        conditions.append("d.client_id = %(client_id)s")
        params['client_id'] = client_id

    where_clause = " AND ".join(conditions)

    with get_db_cursor() as cur:
        cur.execute(_DEAL_SELECT + f"""
            WHERE {where_clause}
            ORDER BY d.created_at DESC
        """, params)

        rows = cur.fetchall()
        logger.debug(f"fetch_deals: {len(rows)} deals (stato={stato}, client_id={client_id})")
        return [deal_from_row(row) for row in rows]


# =============================================================================
# ACTIVITY OPERATIONS
# =============================================================================

def log_activity(activity: Activity) -> str:
    """
    Log a call / email / meeting.
    Returns: activity_id
    """
    params = {c: getattr(activity, c) for c in _ACTIVITY_INSERT}
    with get_db_cursor() as cur:
        cur.execute(_insert_sql('activities', _ACTIVITY_INSERT), params)

        activity_id = cur.fetchone()['id']
        logger.info(f"Logged activity {activity_id} ({activity.tipo_attivita}) for client {activity.client_id}")

        bus.emit(EVENT_ACTIVITY_LOGGED, {
            'activity_id': activity_id,
            'client_id': activity.client_id,
            'activity': activity,
        })

        return activity_id


@fallback_on_db_error([])
def fetch_activities(
    user_id: Optional[str] = None,
    client_id: Optional[str] = None,
) -> List[Activity]:
    """Activities, most recent first."""
    conditions = ["TRUE"]
    params: Dict[str, Any] = {}

    if user_id:
        conditions.append("user_id = %(user_id)s")
        params['user_id'] = user_id

    if client_id:
        conditions.append("client_id = %(client_id)s")
        params['client_id'] = client_id

    where_clause = " AND ".join(conditions)

    with get_db_cursor() as cur:
        cur.execute(f"""
            SELECT * FROM activities
            WHERE {where_clause}
            ORDER BY data_ora DESC
        """, params)

        rows = cur.fetchall()
        logger.debug(f"fetch_activities: {len(rows)} activities (client_id={client_id})")
        return [Activity(**known_fields(Activity, row)) for row in rows]


def update_activity(activity_id: str, updates: Dict[str, Any], user_id: Optional[str] = None) -> bool:
    """Update an activity; with user_id, only that user's activity matches."""
    if not updates:
        return False

    _validate_columns(updates, _ACTIVITY_COLUMNS, 'activity')

    params = dict(updates, activity_id=activity_id, owner=user_id)
    with get_db_cursor() as cur:
        cur.execute(f"""
            UPDATE activities
            SET {_set_clause(updates)}
            WHERE id = %(activity_id)s
              AND (%(owner)s IS NULL OR user_id = %(owner)s)
        """, params)

        if cur.rowcount > 0:
            logger.info(f"Updated activity {activity_id}: {list(updates.keys())}")
            bus.emit(EVENT_ACTIVITY_UPDATED, {'activity_id': activity_id, 'updates': updates})
            return True
        return False


def delete_activity(activity_id: str, user_id: Optional[str] = None) -> bool:
    with get_db_cursor() as cur:
        cur.execute("""
            DELETE FROM activities
            WHERE id = %(activity_id)s
              AND (%(owner)s IS NULL OR user_id = %(owner)s)
        """, {'activity_id': activity_id, 'owner': user_id})

        if cur.rowcount > 0:
            logger.info(f"Deleted activity {activity_id}")
            bus.emit(EVENT_ACTIVITY_DELETED, {'activity_id': activity_id})
            return True
        return False
