"""
============================================================================
DEPWATCH - ENDPOINT URL VALIDATORS
============================================================================
Server-side request forgery protection for health endpoints.

Two levels of checking:
    validate_hostname()          synchronous; scheme, hostname blocklist
                                 and literal IP ranges
    validate_url_not_private()   additionally resolves the hostname via
                                 DNS and checks every returned address,
                                 which defeats DNS-rebinding tricks

Both honour the outbound allowlist (see utils.allowlist).

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
import ipaddress
import re
import socket
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple, Union
from urllib.parse import urlsplit

import dns.asyncresolver
import dns.exception
import dns.resolver
import validators as external_validators

from config.constants import NetworkRules
from exceptions.validation import DNSResolutionError, InvalidURLError, SSRFBlockedError
from utils.allowlist import Allowlist
from utils.logger import get_logger


logger = get_logger("Validator")

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
Resolver = Callable[[str], Awaitable[Sequence[str]]]

ALLOWED_SCHEMES = ("http", "https")

_PRIVATE_V4 = tuple(ipaddress.ip_network(n) for n in NetworkRules.PRIVATE_IPV4)
_PRIVATE_V6 = tuple(ipaddress.ip_network(n) for n in NetworkRules.PRIVATE_IPV6)

# Shorthand IPv4 forms accepted by inet_aton: 2130706433, 0x7f.1, 0177.0.0.1
_LEGACY_IPV4 = re.compile(r"^(0x[0-9a-f]+|[0-9]+)(\.(0x[0-9a-f]+|[0-9]+)){0,3}$", re.IGNORECASE)


# ============================================================================
# ADDRESS CLASSIFICATION
# ============================================================================

def _to_ip(value: Union[str, IPAddress]) -> Optional[IPAddress]:
    if isinstance(value, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return value
    try:
        return ipaddress.ip_address(value.strip().strip("[]"))
    except ValueError:
        return None


def _unmapped(ip: IPAddress) -> IPAddress:
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return ip.ipv4_mapped
    return ip


def is_private_ip(value: Union[str, IPAddress]) -> bool:
    """
    Check whether an address lies in a private, loopback, link-local,
    reserved or documentation range.

    IPv4-mapped IPv6 addresses are judged by their IPv4 part and
    strings that do not parse as an address count as private.
    """
    ip = _to_ip(value)
    if ip is None:
        return True

    ip = _unmapped(ip)
    networks = _PRIVATE_V4 if ip.version == 4 else _PRIVATE_V6
    return any(ip in network for network in networks)


def is_metadata_ip(value: Union[str, IPAddress]) -> bool:
    """Check whether an address is a cloud metadata endpoint."""
    ip = _to_ip(value)
    if ip is None:
        return False
    return str(_unmapped(ip)) in NetworkRules.METADATA_IPS


def is_blocked_hostname(hostname: str) -> bool:
    """Check a DNS name against the local/internal hostname blocklist."""
    host = hostname.lower().rstrip(".")
    if host in NetworkRules.BLOCKED_HOSTNAMES:
        return True
    return any(host.endswith(suffix) for suffix in NetworkRules.BLOCKED_SUFFIXES)


def extract_hostname(url: str) -> str:
    """Return the lowercased hostname of ``url``, or ``url`` itself if it has none."""
    try:
        hostname = urlsplit(url).hostname
    except ValueError:
        return url
    return hostname or url


def is_valid_hostname(hostname: str) -> bool:
    """
    Check DNS name syntax. Single-label names such as ``localhost`` are
    accepted so they can still be allowlisted; a trailing root dot is ignored.
    """
    name = hostname[:-1] if hostname.endswith(".") else hostname
    if not name:
        return False
    if "." in name:
        return external_validators.domain(name) is True
    return external_validators.hostname(
        name,
        skip_ipv4_addr=True,
        skip_ipv6_addr=True,
        may_have_port=False,
        maybe_simple=True,
    ) is True


def parse_ip_literal(host: str) -> Tuple[bool, Optional[IPAddress]]:
    """
    Interpret a URL host as an IP literal.

    Returns:
        (is_literal, address). ``address`` is None when the host looks
        like an address but cannot be parsed as one.
    """
    ip = _to_ip(host)
    if ip is not None:
        return True, ip

    if _LEGACY_IPV4.match(host):
        try:
            return True, ipaddress.IPv4Address(socket.inet_aton(host))
        except OSError:
            return True, None

    if ":" in host:
        return True, None

    return False, None


# ============================================================================
# DNS RESOLUTION
# ============================================================================

class DnsResolver:
    """Resolve A and AAAA records with dnspython's async resolver."""

    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout

    async def __call__(self, hostname: str) -> List[str]:
        resolver = dns.asyncresolver.Resolver()
        resolver.lifetime = self.timeout

        addresses: List[str] = []
        for record_type in ("A", "AAAA"):
            try:
                answer = await resolver.resolve(hostname, record_type)
            except dns.resolver.NoAnswer:
                continue
            addresses.extend(rdata.to_text() for rdata in answer)

        if not addresses:
            raise dns.resolver.NoAnswer(f"no A or AAAA records for {hostname}")
        return addresses


# ============================================================================
# URL VALIDATOR
# ============================================================================

class URLValidator:
    """
    Health endpoint safety checks.

    Holds the current allowlist; the polling engine swaps it in with
    ``set_allowlist`` whenever the runtime setting changes.
    """

    def __init__(
        self,
        allowlist: Optional[Allowlist] = None,
        resolver: Optional[Resolver] = None,
        dns_timeout: float = 5.0,
    ):
        self.allowlist = allowlist or Allowlist()
        self.dns_timeout = dns_timeout
        self._resolver: Resolver = resolver or DnsResolver(dns_timeout)

    def set_allowlist(self, allowlist: Allowlist) -> None:
        self.allowlist = allowlist

    # ----- PUBLIC API -----

    def validate_hostname(self, url: str) -> str:
        """
        Synchronous URL check without DNS.

        Args:
            url: Endpoint URL

        Returns:
            The URL's lowercased hostname

        Raises:
            InvalidURLError: malformed URL or unsupported scheme
            SSRFBlockedError: blocked hostname or private literal address
        """
        host = self._parse_host(url)

        is_literal, ip = parse_ip_literal(host)
        if is_literal:
            if ip is None:
                raise SSRFBlockedError(f"Blocked private IP: {host}", hostname=host)
            self._check_address(ip, host)
            return host

        if not is_valid_hostname(host):
            raise InvalidURLError(f"Invalid hostname: {host}", url=url, reason="malformed")

        if self.allowlist.matches_hostname(host):
            return host

        if is_blocked_hostname(host):
            raise SSRFBlockedError(f"Blocked hostname: {host}", hostname=host)

        return host

    async def validate_url_not_private(self, url: str) -> None:
        """
        Full URL check including DNS resolution of the hostname.

        Every resolved address must pass the same range rules as a
        literal address. An allowlisted hostname may resolve to private
        addresses, but never to a metadata address unless that address
        is listed on its own.

        Raises:
            InvalidURLError, SSRFBlockedError, DNSResolutionError
        """
        host = self.validate_hostname(url)

        is_literal, _ = parse_ip_literal(host)
        if is_literal:
            return

        addresses = await self._resolve(host)
        host_allowlisted = self.allowlist.matches_hostname(host)

        for address in addresses:
            ip = _to_ip(address)
            if ip is None:
                raise SSRFBlockedError(
                    f"Hostname {host} resolved to blocked private IP: {address}",
                    hostname=host,
                    address=address,
                )
            self._check_address(ip, host, resolved=True, host_allowlisted=host_allowlisted)

    # ----- INTERNALS -----

    @staticmethod
    def _parse_host(url: str) -> str:
        if not isinstance(url, str) or not url.strip():
            raise InvalidURLError("URL is empty", url=url, reason="empty")

        try:
            parts = urlsplit(url.strip())
            parts.port  # raises on a malformed port
        except ValueError as e:
            raise InvalidURLError(f"Invalid URL: {url}", url=url, reason="malformed", cause=e)

        if parts.scheme.lower() not in ALLOWED_SCHEMES:
            raise InvalidURLError(
                f"Unsupported URL scheme: {parts.scheme or '(none)'}",
                url=url,
                reason="unsupported_scheme",
            )

        host = parts.hostname
        if not host:
            raise InvalidURLError(f"URL has no hostname: {url}", url=url, reason="missing_host")

        return host

    def _check_address(
        self,
        ip: IPAddress,
        host: str,
        resolved: bool = False,
        host_allowlisted: bool = False,
    ) -> None:
        if is_metadata_ip(ip):
            if self.allowlist.explicitly_lists(ip):
                return
            raise SSRFBlockedError(
                self._blocked_message(ip, host, resolved, kind="metadata"),
                hostname=host,
                address=str(ip),
            )

        if host_allowlisted or self.allowlist.matches_ip(ip):
            return

        if is_private_ip(ip):
            raise SSRFBlockedError(
                self._blocked_message(ip, host, resolved, kind="private"),
                hostname=host,
                address=str(ip),
            )

    @staticmethod
    def _blocked_message(ip: IPAddress, host: str, resolved: bool, kind: str) -> str:
        if resolved:
            return f"Hostname {host} resolved to blocked {kind} IP: {ip}"
        return f"Blocked {kind} IP: {ip}"

    async def _resolve(self, host: str) -> Sequence[str]:
        try:
            addresses = await asyncio.wait_for(self._resolver(host), timeout=self.dns_timeout)
        except DNSResolutionError:
            raise
        except asyncio.TimeoutError as e:
            raise DNSResolutionError(
                f"DNS resolution failed for {host}: timed out", hostname=host, cause=e
            )
        except (dns.exception.DNSException, OSError) as e:
            raise DNSResolutionError(
                f"DNS resolution failed for {host}: {e}", hostname=host, cause=e
            )

        if not addresses:
            raise DNSResolutionError(
                f"DNS resolution failed for {host}: no addresses", hostname=host
            )

        logger.debug(f"[DNS] {host} → {', '.join(addresses)}")
        return addresses
