"""
Unit tests for the EventBus (gestcrm/bus/events.py).
No mocking required — pure Python.
"""

import pytest
from gestcrm.bus import events
from gestcrm.bus.events import EventBus


@pytest.fixture
def bus():
    """Fresh EventBus for each test — never share state between tests."""
    return EventBus()


# ---------------------------------------------------------------------------
# on / emit
# ---------------------------------------------------------------------------

def test_handler_called_on_emit(bus):
    received = []
    bus.on('client_created', received.append)
    bus.emit('client_created', {'client_id': 'c1'})
    assert received == [{'client_id': 'c1'}]


def test_handlers_called_in_registration_order(bus):
    calls = []
    bus.on('evt', lambda d: calls.append('a'))
    bus.on('evt', lambda d: calls.append('b'))
    bus.emit('evt', {})
    assert calls == ['a', 'b']


def test_emit_no_handlers_is_silent(bus):
    bus.emit('unknown_event', {'x': 1})


def test_emit_default_data_is_empty_dict(bus):
    received = []
    bus.on('evt', received.append)
    bus.emit('evt')
    assert received == [{}]


def test_events_are_isolated(bus):
    a_calls, b_calls = [], []
    bus.on('deal_created', a_calls.append)
    bus.on('deal_deleted', b_calls.append)
    bus.emit('deal_created', {})
    assert len(a_calls) == 1
    assert b_calls == []


# ---------------------------------------------------------------------------
# off
# ---------------------------------------------------------------------------

def test_off_unregisters_handler(bus):
    calls = []
    handler = calls.append
    bus.on('evt', handler)
    bus.off('evt', handler)
    bus.emit('evt', {})
    assert calls == []


def test_off_unknown_handler_is_ignored(bus):
    bus.off('evt', print)


def test_handler_may_unregister_itself_during_emit(bus):
    calls = []

    def once(data):
        calls.append('once')
        bus.off('evt', once)

    bus.on('evt', once)
    bus.on('evt', lambda d: calls.append('always'))
    bus.emit('evt', {})
    bus.emit('evt', {})
    assert calls == ['once', 'always', 'always']


# ---------------------------------------------------------------------------
# Error isolation
# ---------------------------------------------------------------------------

def test_handler_exception_does_not_propagate(bus):
    """A failing handler must not stop the others."""
    good_calls = []

    def bad_handler(data):
        raise RuntimeError("handler exploded")

    bus.on('evt', bad_handler)
    bus.on('evt', lambda d: good_calls.append(True))

    bus.emit('evt', {})
    assert good_calls == [True]


# ---------------------------------------------------------------------------
# clear()
# ---------------------------------------------------------------------------

def test_clear_removes_all_handlers(bus):
    calls = []
    bus.on('evt', calls.append)
    bus.clear()
    bus.emit('evt', {})
    assert calls == []


# ---------------------------------------------------------------------------
# Event name constants
# ---------------------------------------------------------------------------

def test_event_constants_are_unique_strings():
    constants = [getattr(events, name) for name in dir(events) if name.startswith('EVENT_')]
    assert len(constants) >= 20
    assert all(isinstance(c, str) and c for c in constants)
    assert len(constants) == len(set(constants))
