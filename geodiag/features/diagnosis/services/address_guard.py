import asyncio
import ipaddress
import logging
import re
import socket
from typing import Awaitable, Callable, List, Optional
from urllib.parse import urlparse

from geodiag.platform.exceptions import BlockedHost, BlockedNetwork, InvalidUrl

logger = logging.getLogger(__name__)

Resolver = Callable[[str], Awaitable[List[str]]]

ALLOWED_SCHEMES = ("http", "https")

# Private, loopback, link-local and carrier-NAT ranges
PRIVATE_IP_PATTERNS = [
    re.compile(r"^10\."),                                   # 10.0.0.0/8
    re.compile(r"^172\.(1[6-9]|2[0-9]|3[01])\."),           # 172.16.0.0/12
    re.compile(r"^192\.168\."),                             # 192.168.0.0/16
    re.compile(r"^169\.254\."),                             # link-local, cloud metadata
    re.compile(r"^127\."),                                  # loopback
    re.compile(r"^0\."),                                    # 0.0.0.0/8
    re.compile(r"^100\.(6[4-9]|[7-9][0-9]|1[01][0-9]|12[0-7])\."),  # 100.64.0.0/10
    re.compile(r"^198\.1[89]\."),                           # benchmark testing
    re.compile(r"^::1$"),                                   # IPv6 loopback
    re.compile(r"^::$"),                                    # IPv6 unspecified
    re.compile(r"^f[cd][0-9a-f]{0,2}:", re.IGNORECASE),     # fc00::/7
    re.compile(r"^fe[89ab][0-9a-f]?:", re.IGNORECASE),      # fe80::/10
]

BLOCKED_HOSTNAMES = {
    "localhost",
    "127.0.0.1",
    "::1",
    "0.0.0.0",
    "metadata.google.internal",
    "metadata.google.cloud",
}

BLOCKED_DOMAIN_PATTERNS = [
    re.compile(r"^169\.254\.169\.254$"),
    re.compile(r"^metadata\.", re.IGNORECASE),
    re.compile(r"\.internal$", re.IGNORECASE),
    re.compile(r"\.local$", re.IGNORECASE),
]

STANDARD_PORTS = {80, 443, 8080, 8443, 3000, 5000}


def is_private_ip(address: str) -> bool:
    """True when a literal address falls in one of the disallowed ranges."""
    address = address.split("%", 1)[0]  # drop IPv6 zone id
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        ip = None

    if ip is not None:
        # ::ffff:a.b.c.d and its hex spelling carry an IPv4 target
        if ip.version == 6 and ip.ipv4_mapped is not None:
            return is_private_ip(str(ip.ipv4_mapped))
        # Tables are written against the compressed spelling (0:0::1 -> ::1)
        address = str(ip)

    return any(p.search(address) for p in PRIVATE_IP_PATTERNS)


def is_blocked_hostname(hostname: str) -> bool:
    hostname = hostname.lower().rstrip(".")
    if hostname in BLOCKED_HOSTNAMES:
        return True
    return any(p.search(hostname) for p in BLOCKED_DOMAIN_PATTERNS)


def _is_ip_literal(hostname: str) -> bool:
    try:
        ipaddress.ip_address(hostname.split("%", 1)[0])
        return True
    except ValueError:
        return False


async def resolve_host(hostname: str) -> List[str]:
    """Forward-resolve A and AAAA records for a hostname."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(hostname, None, type=socket.SOCK_STREAM)
    return list(dict.fromkeys(info[4][0] for info in infos))


class AddressGuard:
    """
    Rejects URLs that point at internal infrastructure before anything is fetched.

    Literal hosts are checked against fixed tables, then the hostname is
    resolved and every answer is checked too, so a public name that points at
    a private address is refused. A failed lookup is not a rejection: the
    render step will fail on its own.
    """

    def __init__(self, resolver: Optional[Resolver] = None, dns_timeout: float = 5.0):
        self.resolver = resolver or resolve_host
        self.dns_timeout = dns_timeout

    async def validate(self, url: str) -> str:
        if not url or not url.strip():
            raise InvalidUrl("URL cannot be empty")
        url = url.strip()

        try:
            parsed = urlparse(url)
            hostname = parsed.hostname
            port = parsed.port
        except ValueError as e:
            raise InvalidUrl(f"URL parsing error: {e}")

        if parsed.scheme not in ALLOWED_SCHEMES:
            raise InvalidUrl(f"Invalid URL scheme: {parsed.scheme or 'none'} (must be http or https)")

        if not hostname:
            raise InvalidUrl("Invalid URL format: missing host")

        if is_blocked_hostname(hostname):
            raise BlockedHost(f"Blocked host: {hostname}")

        if port and port not in STANDARD_PORTS:
            logger.warning(f"Non-standard port {port} requested for {hostname}")

        if _is_ip_literal(hostname):
            if is_private_ip(hostname):
                raise BlockedNetwork(f"Private address: {hostname}")
        else:
            for address in await self._resolve_quietly(hostname):
                if is_private_ip(address):
                    raise BlockedNetwork(f"{hostname} resolves to private address {address}")

        return url

    async def _resolve_quietly(self, hostname: str) -> List[str]:
        try:
            return await asyncio.wait_for(self.resolver(hostname), timeout=self.dns_timeout)
        except (OSError, UnicodeError, asyncio.TimeoutError) as e:
            logger.debug(f"DNS lookup for {hostname} failed, leaving it to the renderer: {e}")
            return []
