"""
Domain ring: the ordered, circular list of trusted domains.

Ring position is tracked by index into the configured list. The CRC32
fingerprint only appears in the referrer segment of relay URLs.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence
from urllib.parse import urlsplit

from ..errors import DomainNotInRing
from .token import checksum

logger = logging.getLogger(__name__)


DomainsAlter = Callable[[List[str]], List[str]]
DomainAlter = Callable[[str, List[str]], str]


@dataclass(frozen=True)
class TrustedDomain:
    """A scheme+host entry of the ring; index is None for an unlisted request host."""
    url: str
    index: Optional[int] = None

    @property
    def fingerprint(self) -> int:
        return checksum(self.url)

    @property
    def in_ring(self) -> bool:
        return self.index is not None


def request_origin(request_url: str) -> str:
    """Scheme and host (with port) of a URL."""
    parts = urlsplit(request_url)
    return f"{parts.scheme}://{parts.netloc}"


def _matches_prefix(request_url: str, domain: str) -> bool:
    if not request_url.startswith(domain):
        return False
    # "https://a.com" must not claim "https://a.com.evil.org" or "https://a.com:8443"
    rest = request_url[len(domain):]
    return rest == "" or rest[0] in "/?#"


class DomainRing:
    """
    Ordered, circular sequence of trusted domains.

    Args:
        domains: Domains in configured order
        domains_alter: Optional filter that may rewrite the domain list
        domain_alter: Optional filter that may rewrite the resolved current domain
    """

    def __init__(
        self,
        domains: Sequence[str],
        domains_alter: Optional[DomainsAlter] = None,
        domain_alter: Optional[DomainAlter] = None,
    ):
        entries = list(domains)
        if domains_alter is not None:
            entries = list(domains_alter(entries))
        if not entries:
            raise ValueError("A domain ring needs at least one domain")

        self._domains = [TrustedDomain(url=url, index=i) for i, url in enumerate(entries)]
        self._domain_alter = domain_alter

    def __len__(self) -> int:
        return len(self._domains)

    def __iter__(self):
        return iter(self._domains)

    @property
    def urls(self) -> List[str]:
        return [domain.url for domain in self._domains]

    def lookup(self, url: str) -> TrustedDomain:
        """Return the ring entry for `url`, or an out-of-ring domain if it is not listed."""
        for domain in self._domains:
            if domain.url == url:
                return domain
        return TrustedDomain(url=url)

    def by_fingerprint(self, fingerprint: int) -> Optional[TrustedDomain]:
        for domain in self._domains:
            if domain.fingerprint == fingerprint:
                return domain
        return None

    def resolve_current(self, request_url: str) -> TrustedDomain:
        """
        Determine which domain a request was made on.

        The first configured domain that prefixes the request URL wins; when
        none does, the request's own scheme and host is used. The result is
        passed through the domain alter filter before the ring lookup.
        """
        current = request_origin(request_url)

        for domain in self._domains:
            if _matches_prefix(request_url, domain.url):
                current = domain.url
                break

        if self._domain_alter is not None:
            current = self._domain_alter(current, self.urls)

        return self.lookup(current)

    def next(self, current: TrustedDomain) -> TrustedDomain:
        """
        Return the domain following `current`, wrapping to the first entry.

        Raises:
            DomainNotInRing: If `current` is not a member of the ring
        """
        if not current.in_ring:
            logger.warning(
                "Current domain is not part of the relay ring",
                extra={"domain": current.url},
            )
            raise DomainNotInRing(current.url)

        return self._domains[(current.index + 1) % len(self._domains)]
