"""
Hop planner: decides where the browser goes after each hop.

Either the next domain's relay URL (with a fresh token for the account that
is logged in on the current hop) or, once the ring has closed, the terminal
success destination on the domain the flow started from.
"""

import logging
import time
from typing import Callable, Optional

from ..config import Settings
from ..models import ANONYMOUS_ACCOUNT_ID, ANONYMOUS_TOKEN, Account
from .ring import DomainRing, TrustedDomain
from .token import TokenCodec

logger = logging.getLogger(__name__)


UrlAlter = Callable[[str, str], str]
UrlPathFor = Callable[..., str]

RELAY_LOGIN_ROUTE = "relay_login"


def request_time() -> int:
    return int(time.time())


def localized_path(path: str, langcode: Optional[str], default_language: str) -> str:
    """
    Prefix a site-relative path with the language code.

    The default language is served unprefixed, e.g. ``/welcome`` stays
    ``/welcome`` for the default language and becomes ``/de/welcome`` for ``de``.
    """
    if not path.startswith("/"):
        path = "/" + path
    if not langcode or langcode == default_language:
        return path
    if path == "/":
        return f"/{langcode}"
    return f"/{langcode}{path}"


class HopPlanner:
    """
    Computes the absolute URL of the next hop.

    Args:
        ring: Domain ring for this request
        codec: Token codec bound to the server hash salt
        settings: Relay configuration
        url_path_for: Route path builder (FastAPI's ``app.url_path_for``)
        url_alter: Optional filter applied to every planned URL
        clock: Returns the current unix time; used for fresh token timestamps
    """

    def __init__(
        self,
        ring: DomainRing,
        codec: TokenCodec,
        settings: Settings,
        url_path_for: UrlPathFor,
        url_alter: Optional[UrlAlter] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self._ring = ring
        self._codec = codec
        self._settings = settings
        self._url_path_for = url_path_for
        self._url_alter = url_alter
        self._clock = clock or request_time

    @property
    def ring(self) -> DomainRing:
        return self._ring

    def referrer_for(self, request_url: str) -> int:
        """Fingerprint of the domain a flow is started from."""
        return self._ring.resolve_current(request_url).fingerprint

    def plan_url(
        self,
        request_url: str,
        referrer: int,
        langcode: str,
        is_first_hop: bool,
        account: Optional[Account],
    ) -> str:
        """
        Plan the URL the browser is redirected to from the current hop.

        Args:
            request_url: Full URL of the current request
            referrer: Fingerprint of the domain the flow started from
            langcode: Language for the terminal destination
            is_first_hop: True on the relay entry point (ring closure is not checked)
            account: Account logged in on the current hop, None if anonymous

        Returns:
            Absolute URL of the next relay hop or the terminal destination

        Raises:
            DomainNotInRing: If the current request host is not in the ring
        """
        current = self._ring.resolve_current(request_url)
        next_domain = self._ring.next(current)

        if not is_first_hop and next_domain.fingerprint == referrer:
            url = self._terminal_url(next_domain, langcode)
            logger.info(
                "Relay circuit complete",
                extra={"domain": current.url, "destination": url},
            )
        else:
            url = self._relay_url(next_domain, referrer, langcode, account)

        if self._url_alter is not None:
            url = self._url_alter(url, next_domain.url)

        return url

    def error_url(self, base_url: str, langcode: Optional[str]) -> Optional[str]:
        """Absolute error destination on `base_url`, or None when none is configured."""
        if not self._settings.RELAY_REDIRECT_ERROR:
            return None
        path = localized_path(
            self._settings.RELAY_REDIRECT_ERROR,
            langcode,
            self._settings.DEFAULT_LANGUAGE,
        )
        return base_url.rstrip("/") + path

    def _terminal_url(self, domain: TrustedDomain, langcode: str) -> str:
        path = localized_path(
            self._settings.RELAY_REDIRECT_SUCCESS or "/",
            langcode,
            self._settings.DEFAULT_LANGUAGE,
        )
        return domain.url + path

    def _relay_url(
        self,
        domain: TrustedDomain,
        referrer: int,
        langcode: str,
        account: Optional[Account],
    ) -> str:
        timestamp = self._clock()

        if account is None:
            # Later hops reject the anonymous marker; the ring still closes.
            account_id = ANONYMOUS_ACCOUNT_ID
            token = ANONYMOUS_TOKEN
        else:
            account_id = account.id
            token = self._codec.issue(account, timestamp)

        path = self._url_path_for(
            RELAY_LOGIN_ROUTE,
            referrer=str(referrer),
            account_id=str(account_id),
            timestamp=str(timestamp),
            token=token,
            langcode=langcode,
        )
        return domain.url + str(path)
