"""
Login relay handler: validates one hop and logs the relayed account in.

States: AWAITING_VALIDATION -> AUTHORIZED | REJECTED | EXPIRED.

A failed hop is logged and reported through HopResult, never raised. The
caller plans the next redirect whatever the outcome, so the browser always
finishes the ring; only this domain's session is left unestablished.
"""

import logging
from typing import Callable, Optional

from ..config import Settings
from ..errors import AccountUnavailable, IdentityServiceError, TokenExpired, TokenInvalid
from ..models import Account, FlowState, HopOutcome, HopResult, RelayState
from .planner import request_time
from .session import RelaySession
from .token import TokenCodec, is_expired

logger = logging.getLogger(__name__)


class LoginRelayHandler:
    """
    Args:
        settings: Relay configuration (timeout, force logout, extra logging)
        directory: Account directory (see multidomain_login.identity)
        codec: Token codec bound to the server hash salt
        clock: Returns the current unix time
    """

    def __init__(
        self,
        settings: Settings,
        directory,
        codec: TokenCodec,
        clock: Optional[Callable[[], int]] = None,
    ):
        self._settings = settings
        self._directory = directory
        self._codec = codec
        self._clock = clock or request_time

    async def handle(self, flow: FlowState, session: RelaySession, host: str) -> HopResult:
        """
        Validate the hop described by `flow` and establish the session.

        Args:
            flow: Relay state decoded from the request URL
            session: Session accessor of the current domain
            host: Current host, for logging

        Returns:
            HopResult with the final state and the hop status code
        """
        log_context = {"domain": host, "account_id": flow.account_id}

        try:
            self._check_expiry(flow.timestamp)
            account = await self._load_account(flow.account_id)

            if session.is_authenticated:
                if not self._settings.RELAY_FORCE_LOGOUT:
                    logger.info(
                        f"User {flow.account_id} already logged in {host}",
                        extra=log_context,
                    )
                    return HopResult(
                        state=RelayState.AUTHORIZED,
                        status_code=200,
                        outcome=HopOutcome.ALREADY_AUTHENTICATED,
                    )

                session.terminate()
                self._debug(f"User logout {host}", log_context)

            if not self._codec.verify(flow.token, account, flow.timestamp):
                raise TokenInvalid("Relay token does not match the account")

            session.establish(account)
            self._debug(f"Login finalize: 200 {host}", log_context)
            return HopResult(
                state=RelayState.AUTHORIZED,
                status_code=200,
                outcome=HopOutcome.SESSION_ESTABLISHED,
            )

        except TokenExpired:
            logger.critical(f"Login attempt expired {host}", extra=log_context)
            return HopResult(
                state=RelayState.EXPIRED,
                status_code=403,
                outcome=HopOutcome.TOKEN_EXPIRED,
            )
        except AccountUnavailable:
            logger.warning(
                f"User {flow.account_id} no longer active or found {host}",
                extra=log_context,
            )
            return HopResult(
                state=RelayState.REJECTED,
                status_code=403,
                outcome=HopOutcome.ACCOUNT_UNAVAILABLE,
            )
        except TokenInvalid:
            logger.critical(f"Invalid hash used in login attempt {host}", extra=log_context)
            return HopResult(
                state=RelayState.REJECTED,
                status_code=403,
                outcome=HopOutcome.TOKEN_INVALID,
            )

    def _check_expiry(self, timestamp: int) -> None:
        if is_expired(timestamp, self._clock(), self._settings.RELAY_TIMEOUT_SECONDS):
            raise TokenExpired(f"Relay token issued at {timestamp} has expired")

    async def _load_account(self, account_id: int) -> Account:
        try:
            account = await self._directory.get_account(account_id)
        except IdentityServiceError as e:
            logger.error(f"Account lookup failed: {e}", extra={"account_id": account_id})
            raise AccountUnavailable(str(e)) from e

        if account is None or not account.active:
            raise AccountUnavailable(f"Account {account_id} missing or blocked")
        return account

    def _debug(self, message: str, extra: dict) -> None:
        if self._settings.RELAY_ENABLE_EXTRA_LOGGING:
            logger.debug(message, extra=extra)
