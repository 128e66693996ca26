"""
Unit Tests for the Local Login Hook
===================================

Tests for multidomain_login/relay/subscriber.py

Run tests:
----------
    pytest multidomain_login/tests/test_subscriber.py -v
"""

import pytest

from multidomain_login.models import Account
from multidomain_login.relay.subscriber import (
    LoginEntrySubscriber,
    LoginEventDispatcher,
    UserLoginEvent,
)


ENTRY_PATH = "/relay/start"


@pytest.fixture
def account():
    return Account(id=3, email="dave@alpha.org", password_hash="$2y$10$dave")


@pytest.fixture
def dispatcher():
    dispatcher = LoginEventDispatcher()
    LoginEntrySubscriber(ENTRY_PATH, excluded_routes=["password_reset"]).register(dispatcher)
    return dispatcher


def test_login_is_redirected_into_relay(dispatcher, account):
    event = dispatcher.dispatch(UserLoginEvent(account=account, route_name="user_login", destination="/dashboard"))

    assert event.destination == ENTRY_PATH


def test_langcode_is_forwarded(dispatcher, account):
    event = dispatcher.dispatch(UserLoginEvent(account=account, route_name="user_login", langcode="nl"))

    assert event.destination == "/relay/start?langcode=nl"


def test_relay_route_never_reenters_relay(dispatcher, account):
    event = dispatcher.dispatch(UserLoginEvent(account=account, route_name="relay_login", destination="/"))

    assert event.destination == "/"


def test_excluded_route_keeps_its_destination(dispatcher, account):
    event = dispatcher.dispatch(
        UserLoginEvent(account=account, route_name="password_reset", destination="/user/3/edit")
    )

    assert event.destination == "/user/3/edit"


def test_entry_subscriber_overrides_earlier_subscribers(dispatcher, account):
    def send_to_dashboard(event):
        event.destination = "/dashboard"

    dispatcher.subscribe(send_to_dashboard)

    event = dispatcher.dispatch(UserLoginEvent(account=account, route_name="user_login"))

    assert event.destination == ENTRY_PATH


def test_dispatcher_orders_by_priority_then_subscription():
    calls = []
    dispatcher = LoginEventDispatcher()

    dispatcher.subscribe(lambda event: calls.append("low"), priority=-10)
    dispatcher.subscribe(lambda event: calls.append("first"))
    dispatcher.subscribe(lambda event: calls.append("high"), priority=10)
    dispatcher.subscribe(lambda event: calls.append("second"))

    dispatcher.dispatch(UserLoginEvent(account=Account(id=1, email="a@alpha.org", password_hash="x")))

    assert calls == ["high", "first", "second", "low"]
