"""
Multi-Domain Login Relay
========================

Propagates a login made on one domain to a fixed, ordered ring of trusted
domains that share an account directory but cannot share cookies.

Each hop is a 303 redirect carrying a short-lived HMAC token bound to the
account, its current password hash and the issuance time. No token is ever
stored: every domain recomputes and compares.

Packages:
    - relay: token codec, domain ring, hop planner, relay handler, routes
    - identity: access to the shared account directory
"""

__version__ = "1.0.0"
