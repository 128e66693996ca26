"""
Relay Token Codec
=================

Builds and verifies the per-hop relay token.

The token is an HMAC-SHA256 over ``timestamp + account id + email`` keyed with
the server hash salt followed by the account's current password hash. Nothing
is stored: every hop recomputes the digest and compares. Because the password
hash is part of the key, changing a password invalidates every outstanding
token for that account.
"""

import base64
import hashlib
import hmac
import zlib

from ..models import Account


def checksum(value: str) -> int:
    """
    Unsigned CRC32 of a string.

    Used as the referrer fingerprint in relay URLs so domain strings never
    need URL encoding.
    """
    return zlib.crc32(value.encode("utf-8")) & 0xFFFFFFFF


def _hmac_base64(data: str, key: str) -> str:
    digest = hmac.new(key.encode("utf-8"), data.encode("utf-8"), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def issue_token(
    account_id: int,
    email: str,
    password_hash: str,
    server_secret: str,
    timestamp: int,
) -> str:
    """
    Issue a relay token.

    Args:
        account_id: Account being relayed
        email: Account email
        password_hash: Account's current credential hash
        server_secret: Server-wide hash salt
        timestamp: Issuance time in unix seconds

    Returns:
        Base64-URL-encoded HMAC-SHA256 digest without padding
    """
    message = f"{timestamp}{account_id}{email}"
    return _hmac_base64(message, server_secret + password_hash)


def verify_token(
    token: str,
    account_id: int,
    email: str,
    password_hash: str,
    server_secret: str,
    timestamp: int,
) -> bool:
    """
    Verify a relay token in constant time.

    Returns:
        True when the token matches, False otherwise (never raises)
    """
    if not token:
        return False

    expected = issue_token(account_id, email, password_hash, server_secret, timestamp)
    return hmac.compare_digest(expected.encode("ascii"), token.encode("utf-8"))


def is_expired(timestamp: int, now: int, timeout: int) -> bool:
    """A token issued at `timestamp` is still valid when exactly `timeout` seconds old."""
    return now - timestamp > timeout


class TokenCodec:
    """Token issue/verify bound to the server hash salt."""

    def __init__(self, server_secret: str):
        if not server_secret:
            raise ValueError("server_secret must not be empty")
        self._server_secret = server_secret

    def issue(self, account: Account, timestamp: int) -> str:
        return issue_token(
            account.id,
            account.email,
            account.password_hash,
            self._server_secret,
            timestamp,
        )

    def verify(self, token: str, account: Account, timestamp: int) -> bool:
        return verify_token(
            token,
            account.id,
            account.email,
            account.password_hash,
            self._server_secret,
            timestamp,
        )
