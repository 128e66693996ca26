"""
Unit Tests for the Account Directory
====================================

Tests for multidomain_login/identity/directory.py

The HTTP directory is exercised against httpx.MockTransport, so no identity
service has to be running.

Run tests:
----------
    pytest multidomain_login/tests/test_directory.py -v
"""

import httpx
import pytest

from multidomain_login.errors import IdentityServiceError
from multidomain_login.identity import HttpAccountDirectory, InMemoryAccountDirectory
from multidomain_login.models import Account


SHARED_SECRET = "internal-shared-secret-0123456789abcdef"

ACCOUNT_PAYLOAD = {
    "id": 12,
    "email": "erin@alpha.org",
    "password_hash": "$2y$10$erin",
    "active": True,
}


def make_directory(handler):
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler),
        base_url="http://identity.internal",
    )
    return HttpAccountDirectory(client, SHARED_SECRET)


# ============================================================================
# HTTP Directory
# ============================================================================

@pytest.mark.asyncio
async def test_fetches_account():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["secret"] = request.headers.get("X-Internal-Secret")
        return httpx.Response(200, json=ACCOUNT_PAYLOAD)

    directory = make_directory(handler)
    account = await directory.get_account(12)
    await directory.aclose()

    assert account == Account(**ACCOUNT_PAYLOAD)
    assert seen == {"path": "/accounts/12", "secret": SHARED_SECRET}


@pytest.mark.asyncio
async def test_unknown_account_is_none():
    directory = make_directory(lambda request: httpx.Response(404))

    assert await directory.get_account(404) is None


@pytest.mark.asyncio
async def test_anonymous_id_skips_request():
    def handler(request):
        raise AssertionError("identity service must not be called")

    directory = make_directory(handler)

    assert await directory.get_account(0) is None


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [401, 500, 503])
async def test_error_status_raises(status_code):
    directory = make_directory(lambda request: httpx.Response(status_code))

    with pytest.raises(IdentityServiceError):
        await directory.get_account(12)


@pytest.mark.asyncio
async def test_malformed_payload_raises():
    directory = make_directory(lambda request: httpx.Response(200, json={"id": "twelve"}))

    with pytest.raises(IdentityServiceError):
        await directory.get_account(12)


@pytest.mark.asyncio
async def test_non_json_payload_raises():
    directory = make_directory(lambda request: httpx.Response(200, text="<html>oops</html>"))

    with pytest.raises(IdentityServiceError):
        await directory.get_account(12)


@pytest.mark.asyncio
async def test_network_error_raises():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    directory = make_directory(handler)

    with pytest.raises(IdentityServiceError):
        await directory.get_account(12)


@pytest.mark.asyncio
async def test_timeout_raises():
    def handler(request):
        raise httpx.ReadTimeout("too slow", request=request)

    directory = make_directory(handler)

    with pytest.raises(IdentityServiceError, match="timeout"):
        await directory.get_account(12)


def test_requires_shared_secret():
    with pytest.raises(ValueError):
        HttpAccountDirectory(httpx.AsyncClient(), "")


# ============================================================================
# In-memory Directory
# ============================================================================

@pytest.mark.asyncio
async def test_in_memory_directory():
    account = Account(**ACCOUNT_PAYLOAD)
    directory = InMemoryAccountDirectory()

    assert await directory.get_account(12) is None

    directory.add(account)

    assert await directory.get_account(12) == account
