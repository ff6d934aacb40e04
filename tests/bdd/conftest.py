"""
Shared fixtures and step definitions for BDD tests.

- runner, mock_crm, mock_notifications, mock_dashboard, context: available to
  all scenario files in this directory
- no_logging: autouse, prevents log file creation during tests
- 'the output contains' step: shared across all feature files
"""

import pytest
from unittest.mock import patch
from click.testing import CliRunner
from pytest_bdd import then, parsers


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def mock_crm():
    with patch("gestcrm.cli.main.crm") as mock:
        yield mock


@pytest.fixture
def mock_notifications():
    with patch("gestcrm.cli.main.notifications") as mock:
        mock.fetch_client_notifications.return_value = []
        yield mock


@pytest.fixture
def mock_dashboard():
    with patch("gestcrm.cli.main.dashboard") as mock:
        yield mock


@pytest.fixture
def context():
    """Mutable dict shared between Given/When/Then steps within a scenario."""
    return {}


@pytest.fixture(autouse=True)
def no_logging():
    with patch("gestcrm.cli.main.configure_logging"):
        yield


@then(parsers.parse('the output contains "{text}"'))
def output_contains(context, text):
    assert text in context["result"].output, (
        f"Expected {text!r} in output:\n{context['result'].output}"
    )


@then(parsers.parse("the command exits with code {code:d}"))
def exits_with(context, code):
    assert context["result"].exit_code == code, context["result"].output
