"""
Account Directory - Shared Identity Store Access
================================================

The relay never owns accounts; it reads them from the identity store every
domain shares.

Security Model:
---------------
1. Requests to the identity service carry the internal secret (X-Internal-Secret)
2. Only the id, email, credential hash and active flag are read
3. Any transport failure is reported as IdentityServiceError so the relay
   handler can reject the hop instead of crashing the redirect chain
"""

import logging
from typing import Dict, Iterable, Optional, Protocol

import httpx
from pydantic import ValidationError

from ..models import Account
from ..errors import IdentityServiceError

logger = logging.getLogger(__name__)


class AccountDirectory(Protocol):
    async def get_account(self, account_id: int) -> Optional[Account]:
        """Return the account, or None if it does not exist."""
        ...


class InMemoryAccountDirectory:
    """Account directory backed by a dict, for embedding and tests."""

    def __init__(self, accounts: Iterable[Account] = ()):
        self._accounts: Dict[int, Account] = {account.id: account for account in accounts}

    def add(self, account: Account) -> None:
        self._accounts[account.id] = account

    async def get_account(self, account_id: int) -> Optional[Account]:
        return self._accounts.get(account_id)


class HttpAccountDirectory:
    """
    Account directory served by the identity service over HTTP.

    Args:
        client: httpx.AsyncClient with base_url pointing at the identity service
        shared_secret: Value of the X-Internal-Secret header
        timeout: Per-request timeout in seconds
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        shared_secret: str,
        timeout: float = 5.0,
    ):
        if not shared_secret:
            raise ValueError("shared_secret must not be empty")
        self._client = client
        self._headers = {
            "X-Internal-Secret": shared_secret,
            "Accept": "application/json",
        }
        self._timeout = httpx.Timeout(timeout, connect=min(timeout, 2.0))

    async def get_account(self, account_id: int) -> Optional[Account]:
        """
        Fetch an account by id.

        Returns:
            Account, or None when the identity service answers 404

        Raises:
            IdentityServiceError: On network errors, timeouts, unexpected
                status codes or malformed payloads
        """
        if account_id <= 0:
            return None

        try:
            response = await self._client.get(
                f"/accounts/{account_id}",
                headers=self._headers,
                timeout=self._timeout,
            )
        except httpx.TimeoutException as e:
            logger.error("Identity service timeout", extra={"account_id": account_id})
            raise IdentityServiceError("Identity service timeout") from e
        except httpx.HTTPError as e:
            logger.error(
                f"Identity service network error: {e}",
                extra={"account_id": account_id},
            )
            raise IdentityServiceError("Cannot reach identity service") from e

        if response.status_code == 404:
            return None

        if response.status_code == 401:
            logger.error("Identity service authentication failed - invalid internal secret")
            raise IdentityServiceError("Identity service rejected the internal secret")

        if response.status_code != 200:
            logger.warning(
                f"Identity service error: {response.status_code}",
                extra={"account_id": account_id},
            )
            raise IdentityServiceError(f"Identity service returned {response.status_code}")

        try:
            return Account.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error(
                f"Malformed account payload: {e}",
                extra={"account_id": account_id},
            )
            raise IdentityServiceError("Malformed account payload") from e

    async def aclose(self) -> None:
        await self._client.aclose()
