"""
URL Safety Module
=================

Decides whether a user-supplied URL is safe for the server to fetch.
Blocks anything that resolves to loopback, private, link-local or
otherwise non-public address space, plus cloud metadata endpoints.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import socket
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from urllib.parse import urlsplit

from findadram.core.errors import SafetyRejection
from findadram.ingestion.config import SafetyConfig

logger = logging.getLogger(__name__)

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address

# Given (hostname, port), return every address the name resolves to
Resolver = Callable[[str, int], Awaitable[list[str]]]

ALLOWED_SCHEMES = frozenset({"http", "https"})

# Cloud metadata services and their DNS aliases
METADATA_HOSTS = frozenset({
    "169.254.169.254",
    "169.254.170.2",
    "100.100.100.200",
    "fd00:ec2::254",
    "metadata",
    "metadata.google.internal",
    "metadata.goog",
    "metadata.azure.internal",
    "instance-data",
    "instance-data.ec2.internal",
})

INTERNAL_SUFFIXES = (".localhost", ".internal", ".local", ".localdomain", ".home.arpa")

NAT64_PREFIX = ipaddress.IPv6Network("64:ff9b::/96")


@dataclass
class SafetyCheck:
    """Outcome of validating one URL."""

    valid: bool
    reason: str | None = None
    hostname: str | None = None
    addresses: list[str] = field(default_factory=list)


async def resolve_host(hostname: str, port: int) -> list[str]:
    """Resolve a hostname to all of its IPv4 and IPv6 addresses."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(hostname, port, type=socket.SOCK_STREAM)
    # Preserve resolver order, drop duplicates
    seen: dict[str, None] = {}
    for info in infos:
        seen.setdefault(str(info[4][0]), None)
    return list(seen)


def _embedded_ipv4(ip: ipaddress.IPv6Address) -> ipaddress.IPv4Address | None:
    """Return an IPv4 address tunnelled inside an IPv6 one, if any."""
    if ip.ipv4_mapped is not None:
        return ip.ipv4_mapped
    if ip.sixtofour is not None:
        return ip.sixtofour
    if ip.teredo is not None:
        return ip.teredo[1]
    if ip in NAT64_PREFIX:
        return ipaddress.IPv4Address(int(ip) & 0xFFFFFFFF)
    return None


def is_public_address(ip: IPAddress) -> bool:
    """
    Check whether an address is globally routable.

    Rejects RFC 1918, loopback, link-local, CGNAT shared space, multicast,
    reserved and unspecified ranges, unique-local IPv6, and IPv6 forms that
    embed any of those IPv4 ranges.
    """
    if isinstance(ip, ipaddress.IPv6Address):
        embedded = _embedded_ipv4(ip)
        if embedded is not None:
            return is_public_address(embedded)

    if (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_multicast
        or ip.is_reserved
        or ip.is_unspecified
    ):
        return False
    return ip.is_global


class UrlSafetyValidator:
    """
    SSRF guard for server-initiated fetches.

    The check runs against every address the hostname currently resolves
    to, not the textual hostname. Callers that follow redirects must call
    validate() again for each redirect target.
    """

    def __init__(
        self,
        config: SafetyConfig | None = None,
        resolver: Resolver | None = None,
    ) -> None:
        self.config = config or SafetyConfig()
        self._resolver = resolver or resolve_host
        self._blocked_hosts = METADATA_HOSTS | {h.lower() for h in self.config.blocked_hostnames}

    async def validate(self, url: str) -> SafetyCheck:
        """
        Decide whether a URL is safe to fetch.

        Args:
            url: Absolute URL supplied by a user or a redirect

        Returns:
            SafetyCheck with valid=False and a human-readable reason when blocked
        """
        if len(url) > self.config.max_url_length:
            return SafetyCheck(False, f"URL exceeds {self.config.max_url_length} characters")

        try:
            parts = urlsplit(url.strip())
            port = parts.port
        except ValueError:
            return SafetyCheck(False, "Invalid URL format")

        scheme = parts.scheme.lower()
        if scheme not in ALLOWED_SCHEMES:
            return SafetyCheck(False, f"Blocked protocol: {scheme or 'none'}")

        hostname = (parts.hostname or "").rstrip(".")
        if not hostname:
            return SafetyCheck(False, "Invalid URL format")

        if parts.username or parts.password:
            return SafetyCheck(False, "Credentials in URL are not allowed", hostname)

        if port is not None and port not in self.config.allowed_ports:
            return SafetyCheck(False, f"Blocked port: {port}", hostname)

        if hostname in self._blocked_hosts:
            return SafetyCheck(False, f"Blocked metadata host: {hostname}", hostname)

        if hostname == "localhost" or hostname.endswith(INTERNAL_SUFFIXES):
            return SafetyCheck(False, f"Blocked internal hostname: {hostname}", hostname)

        effective_port = port or (443 if scheme == "https" else 80)

        # Literal IPs are checked without a DNS round trip
        try:
            literal = ipaddress.ip_address(hostname)
        except ValueError:
            literal = None

        if literal is not None:
            addresses = [str(literal)]
        else:
            try:
                addresses = await asyncio.wait_for(
                    self._resolver(hostname, effective_port),
                    timeout=self.config.dns_timeout,
                )
            except (OSError, asyncio.TimeoutError, UnicodeError) as e:
                logger.warning(f"DNS resolution failed for {hostname}: {e}")
                return SafetyCheck(False, f"DNS resolution failed for {hostname}", hostname)

        if not addresses:
            return SafetyCheck(False, f"DNS resolution failed for {hostname}", hostname)

        for address in addresses:
            try:
                ip = ipaddress.ip_address(address)
            except ValueError:
                return SafetyCheck(False, f"Unparseable address for {hostname}: {address}", hostname)

            if str(ip) in self._blocked_hosts:
                return SafetyCheck(False, f"Blocked metadata address: {ip}", hostname)
            if not is_public_address(ip):
                return SafetyCheck(False, f"Blocked private IP: {ip}", hostname)

        return SafetyCheck(True, hostname=hostname, addresses=addresses)

    async def ensure_safe(self, url: str) -> SafetyCheck:
        """
        Validate a URL, raising when it is blocked.

        Raises:
            SafetyRejection: If the URL fails validation
        """
        check = await self.validate(url)
        if not check.valid:
            logger.warning(f"Rejected URL {url!r}: {check.reason}")
            raise SafetyRejection(check.reason or "URL failed validation")
        return check
