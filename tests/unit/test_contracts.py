"""
Unit tests for the contract reminder engine (gestcrm/engine/contracts.py).
Pure Python: clients and notifications are plain dataclasses, `today` is
passed explicitly except where the business-calendar default is under test.
"""

from datetime import date, timedelta
from unittest.mock import patch

import pytest

from gestcrm.engine.contracts import (
    STATE_NOT_YET_DUE, STATE_PENDING, STATE_READ,
    build_notification, count_notifications, days_remaining, due_reminders,
    evaluate_due_notifications, expiry_from_duration, is_eligible, mark_read,
    notification_state, reminder_date, with_days_remaining,
)
from gestcrm.models import Client, Notification, SCADENZA_45, REMINDER_30, SOLLECITO_15

TODAY = date(2025, 3, 1)


def tracked(client_id='c1', days_left=40, **overrides):
    fields = dict(
        id=client_id, nome_azienda=f'Azienda {client_id}', user_id='u1',
        notifiche_attive=True, data_scadenza_contratto=TODAY + timedelta(days=days_left),
    )
    fields.update(overrides)
    return Client(**fields)


# ---------------------------------------------------------------------------
# Eligibility
# ---------------------------------------------------------------------------

class TestIsEligible:

    def test_tracked_client(self):
        assert is_eligible(tracked()) is True

    def test_notifications_disabled(self):
        assert is_eligible(tracked(notifiche_attive=False)) is False

    def test_missing_expiry(self):
        assert is_eligible(tracked(data_scadenza_contratto=None)) is False

    def test_unparseable_expiry(self):
        assert is_eligible(tracked(data_scadenza_contratto='31/12/2025')) is False

    def test_missing_id(self):
        assert is_eligible(tracked(client_id=None)) is False


# ---------------------------------------------------------------------------
# Due reminders
# ---------------------------------------------------------------------------

class TestDueReminders:

    def test_44_days_left_makes_45_day_reminder_due(self):
        assert due_reminders(tracked(days_left=44), TODAY) == [SCADENZA_45]

    def test_46_days_left_nothing_due(self):
        assert due_reminders(tracked(days_left=46), TODAY) == []

    def test_exactly_45_days_is_due(self):
        assert due_reminders(tracked(days_left=45), TODAY) == [SCADENZA_45]

    def test_20_days_left(self):
        assert due_reminders(tracked(days_left=20), TODAY) == [SCADENZA_45, REMINDER_30]

    def test_10_days_left_all_due(self):
        assert due_reminders(tracked(days_left=10), TODAY) == [SCADENZA_45, REMINDER_30, SOLLECITO_15]

    def test_already_expired_all_due(self):
        assert due_reminders(tracked(days_left=-3), TODAY) == [SCADENZA_45, REMINDER_30, SOLLECITO_15]

    def test_iso_string_expiry(self):
        assert due_reminders(tracked(data_scadenza_contratto='2025-03-20'), TODAY) == [
            SCADENZA_45, REMINDER_30,
        ]

    def test_default_today_follows_business_calendar(self):
        with patch('gestcrm.engine.contracts.local_today', return_value=TODAY) as clock:
            assert due_reminders(tracked(days_left=44)) == [SCADENZA_45]
        clock.assert_called_once_with()


def test_reminder_date():
    assert reminder_date(date(2025, 6, 30), 15) == date(2025, 6, 15)


def test_build_notification_fields():
    client = tracked(days_left=30)
    n = build_notification(client, REMINDER_30)
    assert n.client_id == 'c1'
    assert n.tipo_notifica == REMINDER_30
    assert n.data_notifica == TODAY
    assert n.data_scadenza_contratto == TODAY + timedelta(days=30)
    assert n.letta is False
    assert n.inviata is False
    assert n.user_id == 'u1'
    assert 'Azienda c1' in n.messaggio
    assert '31/03/2025' in n.messaggio


# ---------------------------------------------------------------------------
# evaluate_due_notifications
# ---------------------------------------------------------------------------

class TestEvaluateDueNotifications:

    def test_disabled_client_never_appears(self):
        clients = [tracked('a', days_left=5, notifiche_attive=False), tracked('b', days_left=5)]
        result = evaluate_due_notifications(clients, [], TODAY)
        assert {n.client_id for n in result} == {'b'}

    def test_existing_pairs_are_skipped(self):
        existing = [Notification(client_id='c1', tipo_notifica=SCADENZA_45)]
        result = evaluate_due_notifications([tracked(days_left=20)], existing, TODAY)
        assert [n.tipo_notifica for n in result] == [REMINDER_30]

    def test_existing_matches_across_id_types(self):
        existing = [Notification(client_id=7, tipo_notifica=SCADENZA_45)]
        result = evaluate_due_notifications([tracked(client_id='7', days_left=40)], existing, TODAY)
        assert result == []

    def test_idempotent_when_fed_its_own_output(self):
        clients = [tracked('a', days_left=10), tracked('b', days_left=40)]
        first = evaluate_due_notifications(clients, [], TODAY)
        second = evaluate_due_notifications(clients, first, TODAY)
        assert len(first) == 4
        assert second == []

    def test_duplicate_clients_in_input_produce_one_row_each(self):
        result = evaluate_due_notifications([tracked(days_left=40), tracked(days_left=40)], [], TODAY)
        assert len(result) == 1

    def test_no_clients(self):
        assert evaluate_due_notifications([], [], TODAY) == []

    def test_malformed_client_is_skipped_not_fatal(self):
        class Broken:
            id = 'x'
            nome_azienda = 'Broken'
            notifiche_attive = True
            data_scadenza_contratto = TODAY
            # no user_id attribute

        result = evaluate_due_notifications([Broken(), tracked('ok', days_left=40)], [], TODAY)
        assert [n.client_id for n in result] == ['ok']

    def test_does_not_mutate_existing(self):
        existing = [Notification(client_id='c1', tipo_notifica=SCADENZA_45)]
        evaluate_due_notifications([tracked(days_left=5)], existing, TODAY)
        assert len(existing) == 1


# ---------------------------------------------------------------------------
# Read-time derivations
# ---------------------------------------------------------------------------

def test_days_remaining():
    n = Notification(data_scadenza_contratto=TODAY + timedelta(days=12))
    assert days_remaining(n, TODAY) == 12


def test_days_remaining_negative_after_expiry():
    n = Notification(data_scadenza_contratto=TODAY - timedelta(days=2))
    assert days_remaining(n, TODAY) == -2


def test_days_remaining_unknown_expiry():
    assert days_remaining(Notification(), TODAY) is None


def test_with_days_remaining_returns_copies():
    original = Notification(data_scadenza_contratto=TODAY + timedelta(days=3))
    [copy] = with_days_remaining([original], TODAY)
    assert copy.giorni_rimanenti == 3
    assert original.giorni_rimanenti is None


class TestNotificationState:

    def test_not_yet_due(self):
        assert notification_state(Notification(data_notifica=TODAY + timedelta(days=1)), TODAY) == STATE_NOT_YET_DUE

    def test_pending_on_due_date(self):
        assert notification_state(Notification(data_notifica=TODAY), TODAY) == STATE_PENDING

    def test_read(self):
        assert notification_state(Notification(data_notifica=TODAY, letta=True), TODAY) == STATE_READ


def test_mark_read_is_idempotent():
    once = mark_read(Notification(id='n1'))
    twice = mark_read(once)
    assert once.letta is True
    assert twice == once


def test_mark_read_leaves_original_unread():
    original = Notification(id='n1')
    mark_read(original)
    assert original.letta is False


# ---------------------------------------------------------------------------
# count_notifications
# ---------------------------------------------------------------------------

class TestCountNotifications:

    def test_pending_counts_only_due_unread(self):
        notifications = [
            Notification(data_notifica=TODAY - timedelta(days=1)),
            Notification(data_notifica=TODAY),
            Notification(data_notifica=TODAY + timedelta(days=1)),
            Notification(data_notifica=TODAY, letta=True),
        ]
        assert count_notifications(notifications, [], TODAY).pending == 2

    def test_expiring_soon_window(self):
        clients = [
            tracked('a', days_left=0),
            tracked('b', days_left=60),
            tracked('c', days_left=61),
            tracked('d', days_left=-1),
            tracked('e', data_scadenza_contratto=None),
        ]
        assert count_notifications([], clients, TODAY).expiring_soon == 2

    def test_custom_window(self):
        clients = [tracked('a', days_left=20), tracked('b', days_left=40)]
        assert count_notifications([], clients, TODAY, window_days=30).expiring_soon == 1

    def test_empty(self):
        counts = count_notifications([], [], TODAY)
        assert (counts.pending, counts.expiring_soon) == (0, 0)


# ---------------------------------------------------------------------------
# expiry_from_duration
# ---------------------------------------------------------------------------

def test_expiry_from_duration():
    assert expiry_from_duration(date(2025, 1, 31), 1) == date(2025, 2, 28)


def test_expiry_from_duration_string_start():
    assert expiry_from_duration('2025-01-15', 12) == date(2026, 1, 15)


@pytest.mark.parametrize('start,months', [(None, 12), (date(2025, 1, 1), None), (date(2025, 1, 1), 0)])
def test_expiry_from_duration_incomplete(start, months):
    assert expiry_from_duration(start, months) is None
