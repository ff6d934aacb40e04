from datetime import date

import psycopg2
from pytest_bdd import scenarios, given, when, parsers
from gestcrm.cli.main import cli
from gestcrm.models import Notification, REMINDER_30

scenarios("features/notifications.feature")


@given("there are no pending reminders")
def no_reminders(mock_notifications):
    mock_notifications.fetch_notifications.return_value = []


@given(parsers.parse('a 30 day reminder is pending for "{company}"'))
def reminder_pending(mock_notifications, company):
    mock_notifications.fetch_notifications.return_value = [
        Notification(
            id="n1", client_id="c1", nome_azienda=company, tipo_notifica=REMINDER_30,
            data_notifica=date(2025, 12, 2), data_scadenza_contratto=date(2026, 1, 1),
            messaggio=f"Promemoria: il contratto con {company} scade il 01/01/2026 (30 giorni).",
            giorni_rimanenti=30,
        )
    ]
    mock_notifications.mark_notifications_read.return_value = 1


@given("the store is unavailable for writes")
def store_unavailable(mock_notifications):
    mock_notifications.mark_notifications_read.side_effect = psycopg2.OperationalError("connection refused")


@given(parsers.parse("{count:d} reminders have come due"))
def reminders_due(mock_notifications, count):
    mock_notifications.generate_notifications.return_value = count


@when("the user lists reminders")
def list_reminders(runner, context):
    context["result"] = runner.invoke(cli, ["notifications", "list"])


@when("the user marks all reminders as read")
def read_all(runner, context):
    context["result"] = runner.invoke(cli, ["notifications", "read-all"])


@when("the user generates reminders")
def generate(runner, context):
    context["result"] = runner.invoke(cli, ["notifications", "generate"])
