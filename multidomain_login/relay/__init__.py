"""
Relay Package

This package carries a login made on one domain to every other domain of
the configured ring.

Modules:
- token: relay token issue/verify and the CRC32 domain fingerprint
- ring: ordered, circular list of trusted domains
- planner: decides the next hop URL or the terminal destination
- handler: validates a hop and establishes the local session
- session: per-domain session accessor (session JWT in a signed cookie)
- subscriber: local login event hook that enters the relay
- routes: /relay/start and /relay/{referrer}/{account_id}/{timestamp}/{token}/{langcode}

The relay flow:
1. Account logs in on domain A, finalize_login redirects to /relay/start
2. A plans the first hop and redirects to B's relay URL with a fresh token
3. B verifies the token, logs the account in, redirects to C, and so on
4. The hop whose next domain is A redirects to the success destination on A
"""

from .routes import RelayHooks, relay_router
from .subscriber import LoginEntrySubscriber, LoginEventDispatcher, UserLoginEvent, finalize_login

__all__ = [
    "RelayHooks",
    "relay_router",
    "LoginEntrySubscriber",
    "LoginEventDispatcher",
    "UserLoginEvent",
    "finalize_login",
]
