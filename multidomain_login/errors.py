"""
Relay error taxonomy.

These exceptions never leave the relay handler: it converts them into a
HopResult so the browser keeps travelling the ring. DomainNotInRing is the
exception to that rule and is handled by the routes.
"""


class RelayError(Exception):
    """Base exception for relay errors"""
    pass


class TokenExpired(RelayError):
    """The relay token is older than the configured timeout"""
    pass


class TokenInvalid(RelayError):
    """The relay token MAC does not match the account"""
    pass


class AccountUnavailable(RelayError):
    """The relayed account is missing or blocked"""
    pass


class IdentityServiceError(RelayError):
    """The identity service could not be queried"""
    pass


class DomainNotInRing(RelayError):
    """The current request host is not a member of the configured ring"""

    def __init__(self, domain: str):
        super().__init__(f"Domain {domain} is not part of the relay ring")
        self.domain = domain
