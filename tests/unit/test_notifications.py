"""
Unit tests for the Notification Service (gestcrm/engine/notifications.py).

Same strategy as test_crm: get_db_cursor is replaced by a contextmanager
yielding a MagicMock cursor; generate_notifications reads twice from one
cursor, so fetchall uses side_effect.
"""

import pytest
import psycopg2
from contextlib import contextmanager
from datetime import date, timedelta
from unittest.mock import MagicMock, patch

from gestcrm.engine.notifications import (
    delete_notification,
    fetch_client_notifications,
    fetch_notifications,
    generate_notifications,
    get_notification_counts,
    mark_notification_read,
    mark_notifications_read,
)
from gestcrm.bus.events import (
    EVENT_NOTIFICATIONS_GENERATED, EVENT_NOTIFICATIONS_READ, EVENT_NOTIFICATION_DELETED,
)
from gestcrm.models import Notification, NotificationCounts, SCADENZA_45, REMINDER_30

TODAY = date(2025, 3, 1)

NOTIFICATION_ROW = {
    'id': 'n1', 'client_id': 'c1', 'nome_azienda': 'Acme Srl', 'tipo_notifica': SCADENZA_45,
    'data_notifica': TODAY - timedelta(days=2), 'data_scadenza_contratto': TODAY + timedelta(days=43),
    'messaggio': 'Il contratto con Acme Srl scade', 'letta': False, 'inviata': False,
    'user_id': 'u1', 'created_at': None, 'updated_at': None,
}

TRACKED_ROW = {
    'id': 'c1', 'nome_azienda': 'Acme Srl', 'notifiche_attive': True, 'user_id': 'u1',
    'data_scadenza_contratto': TODAY + timedelta(days=20),
}


def make_cursor(fetchone=None, fetchall=None, rowcount=1):
    cur = MagicMock()
    cur.fetchone.return_value = fetchone
    cur.fetchall.return_value = fetchall if fetchall is not None else []
    cur.rowcount = rowcount
    return cur


def cursor_patch(cur):
    @contextmanager
    def _mock_ctx():
        yield cur

    return patch('gestcrm.engine.notifications.get_db_cursor', _mock_ctx)


def failing_cursor_patch():
    @contextmanager
    def _mock_ctx():
        raise psycopg2.OperationalError("connection refused")
        yield  # pragma: no cover

    return patch('gestcrm.engine.notifications.get_db_cursor', _mock_ctx)


# ---------------------------------------------------------------------------
# fetch_notifications
# ---------------------------------------------------------------------------

def test_fetch_notifications_fills_days_remaining():
    cur = make_cursor(fetchall=[NOTIFICATION_ROW])
    with cursor_patch(cur):
        [n] = fetch_notifications('u1', today=TODAY)
    assert isinstance(n, Notification)
    assert n.nome_azienda == 'Acme Srl'
    assert n.giorni_rimanenti == 43


def test_fetch_notifications_pending_only_filters_in_sql():
    cur = make_cursor(fetchall=[])
    with cursor_patch(cur):
        fetch_notifications('u1', pending_only=True, today=TODAY)
    sql, params = cur.execute.call_args[0]
    assert 'n.letta = FALSE' in sql
    assert 'n.data_notifica <= %(today)s' in sql
    assert params == {'user_id': 'u1', 'today': TODAY}


def test_fetch_notifications_all_has_no_read_filter():
    cur = make_cursor(fetchall=[])
    with cursor_patch(cur):
        fetch_notifications('u1', today=TODAY)
    assert 'letta = FALSE' not in cur.execute.call_args[0][0]


def test_fetch_notifications_degrades_to_empty_list():
    with failing_cursor_patch():
        assert fetch_notifications('u1') == []


def test_fetch_client_notifications():
    cur = make_cursor(fetchall=[NOTIFICATION_ROW])
    with cursor_patch(cur):
        result = fetch_client_notifications('u1', 'c1', today=TODAY)
    assert cur.execute.call_args[0][1] == {'user_id': 'u1', 'client_id': 'c1'}
    assert result[0].giorni_rimanenti == 43


# ---------------------------------------------------------------------------
# mark_notification_read
# ---------------------------------------------------------------------------

def test_mark_notification_read_only_touches_unread():
    cur = make_cursor(rowcount=1)
    with cursor_patch(cur), patch('gestcrm.engine.notifications.bus.emit') as mock_emit:
        mark_notification_read('n1')
    sql, params = cur.execute.call_args[0]
    assert 'SET letta = TRUE' in sql
    assert 'letta = FALSE' in sql
    assert params == ('n1',)
    mock_emit.assert_called_once_with(EVENT_NOTIFICATIONS_READ, {'notification_ids': ['n1']})


def test_mark_notification_read_twice_is_harmless():
    first = make_cursor(rowcount=1)
    second = make_cursor(rowcount=0)
    with patch('gestcrm.engine.notifications.bus.emit') as mock_emit:
        with cursor_patch(first):
            assert mark_notification_read('n1') is None
        with cursor_patch(second):
            assert mark_notification_read('n1') is None
    assert mock_emit.call_count == 1


def test_mark_notification_read_swallows_backend_error():
    with failing_cursor_patch():
        assert mark_notification_read('n1') is None


# ---------------------------------------------------------------------------
# mark_notifications_read
# ---------------------------------------------------------------------------

def test_mark_notifications_read_empty_is_noop():
    with patch('gestcrm.engine.notifications.get_db_cursor') as mock_ctx:
        assert mark_notifications_read([]) == 0
    mock_ctx.assert_not_called()


def test_mark_notifications_read_batch():
    cur = make_cursor(rowcount=2)
    with cursor_patch(cur), patch('gestcrm.engine.notifications.bus.emit') as mock_emit:
        assert mark_notifications_read(['n1', 'n2', 'n3']) == 2
    sql, params = cur.execute.call_args[0]
    assert 'ANY(%s::uuid[])' in sql
    assert params == (['n1', 'n2', 'n3'],)
    mock_emit.assert_called_once()


def test_mark_notifications_read_nothing_changed_no_event():
    with cursor_patch(make_cursor(rowcount=0)), patch('gestcrm.engine.notifications.bus.emit') as mock_emit:
        assert mark_notifications_read(['n1']) == 0
    mock_emit.assert_not_called()


def test_mark_notifications_read_propagates_backend_error():
    with failing_cursor_patch(), pytest.raises(psycopg2.OperationalError):
        mark_notifications_read(['n1'])


# ---------------------------------------------------------------------------
# delete_notification
# ---------------------------------------------------------------------------

def test_delete_notification():
    with cursor_patch(make_cursor(rowcount=1)), patch('gestcrm.engine.notifications.bus.emit') as mock_emit:
        assert delete_notification('n1') is True
    mock_emit.assert_called_once_with(EVENT_NOTIFICATION_DELETED, {'notification_id': 'n1'})


def test_delete_notification_not_found():
    with cursor_patch(make_cursor(rowcount=0)):
        assert delete_notification('n1') is False


def test_delete_notification_propagates_backend_error():
    with failing_cursor_patch(), pytest.raises(psycopg2.OperationalError):
        delete_notification('n1')


# ---------------------------------------------------------------------------
# generate_notifications
# ---------------------------------------------------------------------------

def _inserts(cur):
    return [c for c in cur.execute.call_args_list if 'INSERT INTO notifications' in c[0][0]]


def test_generate_notifications_inserts_due_reminders():
    cur = make_cursor(rowcount=1)
    cur.fetchall.side_effect = [[TRACKED_ROW], []]
    with cursor_patch(cur), patch('gestcrm.engine.notifications.bus.emit') as mock_emit:
        created = generate_notifications(today=TODAY)

    inserts = _inserts(cur)
    assert created == 2
    assert [c[0][1]['tipo_notifica'] for c in inserts] == [SCADENZA_45, REMINDER_30]
    assert all('ON CONFLICT (client_id, tipo_notifica) DO NOTHING' in c[0][0] for c in inserts)
    mock_emit.assert_called_once_with(EVENT_NOTIFICATIONS_GENERATED, {'count': 2, 'date': TODAY})


def test_generate_notifications_skips_existing():
    cur = make_cursor(rowcount=1)
    cur.fetchall.side_effect = [
        [TRACKED_ROW],
        [{'client_id': 'c1', 'tipo_notifica': SCADENZA_45}, {'client_id': 'c1', 'tipo_notifica': REMINDER_30}],
    ]
    with cursor_patch(cur), patch('gestcrm.engine.notifications.bus.emit') as mock_emit:
        assert generate_notifications(today=TODAY) == 0
    assert _inserts(cur) == []
    mock_emit.assert_not_called()


def test_generate_notifications_counts_only_rows_actually_inserted():
    cur = make_cursor(rowcount=0)  # a concurrent run got there first
    cur.fetchall.side_effect = [[TRACKED_ROW], []]
    with cursor_patch(cur), patch('gestcrm.engine.notifications.bus.emit'):
        assert generate_notifications(today=TODAY) == 0


def test_generate_notifications_degrades_to_zero():
    with failing_cursor_patch():
        assert generate_notifications(today=TODAY) == 0


# ---------------------------------------------------------------------------
# get_notification_counts
# ---------------------------------------------------------------------------

def test_get_notification_counts():
    cur = make_cursor()
    cur.fetchall.side_effect = [
        [
            {'id': 'n1', 'letta': False, 'data_notifica': TODAY, 'data_scadenza_contratto': TODAY + timedelta(days=45)},
            {'id': 'n2', 'letta': False, 'data_notifica': TODAY + timedelta(days=5), 'data_scadenza_contratto': None},
        ],
        [
            {'id': 'c1', 'nome_azienda': 'Acme', 'data_scadenza_contratto': TODAY + timedelta(days=10)},
            {'id': 'c2', 'nome_azienda': 'Beta', 'data_scadenza_contratto': TODAY + timedelta(days=90)},
        ],
    ]
    with cursor_patch(cur):
        counts = get_notification_counts('u1', today=TODAY)
    assert counts == NotificationCounts(pending=1, expiring_soon=1)


def test_get_notification_counts_degrades_to_zero():
    with failing_cursor_patch():
        assert get_notification_counts('u1') == NotificationCounts()
