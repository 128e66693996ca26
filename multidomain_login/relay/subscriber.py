"""
Local login hook.

When an account logs in on one domain the way that domain normally does it,
the post-login redirect is pointed at the relay entry point so the login is
carried to every other domain of the ring.

The host application checks credentials itself and then calls
``finalize_login``, which establishes the local session and fires a
UserLoginEvent through the app's LoginEventDispatcher.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Tuple
from urllib.parse import urlencode

from fastapi import Request
from fastapi.responses import RedirectResponse

from ..models import Account
from .planner import RELAY_LOGIN_ROUTE
from .session import RelaySession

logger = logging.getLogger(__name__)


@dataclass
class UserLoginEvent:
    account: Account
    route_name: Optional[str] = None
    langcode: Optional[str] = None
    destination: Optional[str] = None


LoginCallback = Callable[[UserLoginEvent], None]


class LoginEventDispatcher:
    """Runs login callbacks, highest priority first; equal priorities run in subscription order."""

    def __init__(self):
        self._subscribers: List[Tuple[int, int, LoginCallback]] = []

    def subscribe(self, callback: LoginCallback, priority: int = 0) -> None:
        self._subscribers.append((priority, len(self._subscribers), callback))
        self._subscribers.sort(key=lambda entry: (-entry[0], entry[1]))

    def dispatch(self, event: UserLoginEvent) -> UserLoginEvent:
        for _, _, callback in self._subscribers:
            callback(event)
        return event


class LoginEntrySubscriber:
    """
    Redirects a fresh local login into the relay.

    Runs at very low priority so its destination overrides any post-login
    destination set by other subscribers. Logins that happen on the relay
    route itself, or on routes such as password reset, are left alone;
    sending those into the relay would loop or make no sense.

    Args:
        entry_path: Path of the relay entry route (``/relay/start``)
        excluded_routes: Extra route names that must not enter the relay
    """

    PRIORITY = -100

    def __init__(self, entry_path: str, excluded_routes: Iterable[str] = ()):
        self.entry_path = entry_path
        self.excluded_routes = frozenset({RELAY_LOGIN_ROUTE, *excluded_routes})

    def __call__(self, event: UserLoginEvent) -> None:
        if event.route_name in self.excluded_routes:
            logger.debug(
                "Login on excluded route, relay not started",
                extra={"route": event.route_name},
            )
            return

        destination = self.entry_path
        if event.langcode:
            destination = f"{destination}?{urlencode({'langcode': event.langcode})}"
        event.destination = destination

    def register(self, dispatcher: LoginEventDispatcher) -> None:
        dispatcher.subscribe(self, priority=self.PRIORITY)


def current_route_name(request: Request) -> Optional[str]:
    route = request.scope.get("route")
    return getattr(route, "name", None)


def finalize_login(
    request: Request,
    account: Account,
    destination: str = "/",
    langcode: Optional[str] = None,
) -> RedirectResponse:
    """
    Complete a local login and redirect to wherever the login subscribers decided.

    Call this from the host application's login route once the credentials
    have been checked.

    Args:
        request: Current request
        account: Account that just authenticated
        destination: Post-login destination when no subscriber overrides it
        langcode: Language of the current request, forwarded to the relay

    Returns:
        303 RedirectResponse to the final destination
    """
    settings = request.app.state.settings
    RelaySession(request, settings).establish(account)

    event = UserLoginEvent(
        account=account,
        route_name=current_route_name(request),
        langcode=langcode,
        destination=destination,
    )
    request.app.state.login_events.dispatch(event)

    logger.info(
        "Local login finalized",
        extra={"account_id": account.id, "destination": event.destination},
    )
    return RedirectResponse(url=event.destination or destination, status_code=303)
