"""
Unit Tests for Per-domain Sessions
==================================

Tests for multidomain_login/relay/session.py

Run tests:
----------
    pytest multidomain_login/tests/test_session.py -v
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import jwt
import pytest

from multidomain_login.config import Settings
from multidomain_login.models import Account
from multidomain_login.relay.session import (
    SESSION_KEY,
    RelaySession,
    create_session_jwt,
    verify_session_jwt,
)


@pytest.fixture
def settings():
    return Settings(
        RELAY_DOMAINS="https://www.alpha.org",
        RELAY_HASH_SALT="relay-hash-salt-0123456789abcdefghijkl",
        SESSION_SECRET_KEY="session-secret-key-0123456789abcdefgh",
        SESSION_JWT_SECRET="session-jwt-secret-0123456789abcdefgh",
    )


@pytest.fixture
def account():
    return Account(id=5, email="carol@alpha.org", password_hash="$2y$10$carol")


@pytest.fixture
def request_stub():
    """Minimal request exposing a session dict, as SessionMiddleware provides"""
    return SimpleNamespace(session={})


def test_session_jwt_round_trip(settings, account):
    claims = verify_session_jwt(create_session_jwt(account, settings), settings)

    assert claims["sub"] == "5"
    assert claims["email"] == "carol@alpha.org"
    assert claims["iss"] == settings.SESSION_JWT_ISSUER


def test_expired_session_jwt_is_rejected(settings):
    now = datetime.now(timezone.utc)
    token = jwt.encode(
        {
            "sub": "5",
            "iat": now - timedelta(hours=2),
            "exp": now - timedelta(hours=1),
            "iss": settings.SESSION_JWT_ISSUER,
        },
        settings.SESSION_JWT_SECRET,
        algorithm="HS256",
    )

    assert verify_session_jwt(token, settings) is None


def test_session_jwt_with_wrong_secret_is_rejected(settings, account):
    token = create_session_jwt(account, settings)
    other = settings.model_copy(update={"SESSION_JWT_SECRET": "another-jwt-secret-0123456789abcdefgh"})

    assert verify_session_jwt(token, other) is None


def test_session_jwt_with_wrong_issuer_is_rejected(settings, account):
    token = create_session_jwt(account, settings)
    other = settings.model_copy(update={"SESSION_JWT_ISSUER": "someone-else"})

    assert verify_session_jwt(token, other) is None


def test_empty_session_jwt_is_anonymous(settings):
    assert verify_session_jwt(None, settings) is None
    assert verify_session_jwt("", settings) is None


def test_relay_session_lifecycle(settings, account, request_stub):
    session = RelaySession(request_stub, settings)

    assert session.is_anonymous
    assert session.account_id is None

    session.establish(account)

    assert session.is_authenticated
    assert session.account_id == 5
    assert SESSION_KEY in request_stub.session

    session.terminate()

    assert session.is_anonymous
    assert request_stub.session == {}


def test_establish_replaces_previous_session(settings, account, request_stub):
    request_stub.session["cart"] = "leftover"
    session = RelaySession(request_stub, settings)

    session.establish(account)

    assert "cart" not in request_stub.session
    assert session.account_id == 5


def test_tampered_session_value_is_anonymous(settings, request_stub):
    request_stub.session[SESSION_KEY] = "not-a-jwt"

    assert RelaySession(request_stub, settings).is_anonymous
