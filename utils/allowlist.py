"""
============================================================================
DEPWATCH - OUTBOUND ALLOWLIST
============================================================================
Parses the comma-separated allowlist that lets administrators poll
hosts which would otherwise be rejected as private or internal.

Entry forms:
    api.example.com      exact hostname (case-insensitive)
    *.corp.example.com   any subdomain of corp.example.com (not the bare name)
    10.20.0.0/16         CIDR range (IPv4 or IPv6)
    10.20.30.40          single address, same as a /32 (or /128)

Cloud metadata addresses (169.254.169.254 and friends) are admitted only
by a single-address entry naming them. A range such as 169.254.0.0/16
opens the rest of link-local but never a metadata address inside it;
see ``Allowlist.explicitly_lists``.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import ipaddress
from dataclasses import dataclass, field
from typing import FrozenSet, List, Tuple, Union

from utils.logger import get_logger


logger = get_logger("Allowlist")

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


# ============================================================================
# CIDR BLOCK
# ============================================================================

@dataclass(frozen=True)
class CidrBlock:
    """A network stored as integer base and mask for bitwise matching."""

    version: int
    base: int
    mask: int
    prefix: int

    @classmethod
    def parse(cls, entry: str) -> "CidrBlock":
        """
        Build a block from ``a.b.c.d/n`` or a bare address.

        Raises:
            ValueError: if the entry is not a valid network
        """
        network = ipaddress.ip_network(entry, strict=False)
        mask = int(network.netmask)
        return cls(
            version=network.version,
            base=int(network.network_address) & mask,
            mask=mask,
            prefix=network.prefixlen,
        )

    @property
    def is_single_address(self) -> bool:
        return self.prefix == (32 if self.version == 4 else 128)

    def contains(self, ip: IPAddress) -> bool:
        if ip.version != self.version:
            return False
        return (int(ip) & self.mask) == self.base


# ============================================================================
# ALLOWLIST
# ============================================================================

@dataclass(frozen=True)
class Allowlist:
    """
    Parsed allowlist.

    An allowlist match bypasses the private-network checks, except for
    cloud metadata addresses, which are only admitted when an entry names
    that exact address (see ``explicitly_lists``).
    """

    hostnames: FrozenSet[str] = frozenset()
    wildcard_suffixes: Tuple[str, ...] = ()
    cidrs: Tuple[CidrBlock, ...] = field(default_factory=tuple)

    @classmethod
    def parse(cls, raw: str) -> "Allowlist":
        """
        Parse a comma-separated allowlist string.

        Invalid CIDR entries are logged and skipped so one typo does
        not disable the rest of the list.
        """
        hostnames: List[str] = []
        suffixes: List[str] = []
        cidrs: List[CidrBlock] = []

        for item in (raw or "").split(","):
            entry = item.strip().lower()
            if not entry:
                continue

            if entry.startswith("*."):
                suffix = entry[1:].rstrip(".")
                if len(suffix) > 1:
                    suffixes.append(suffix)
                continue

            if "/" in entry or _looks_like_ip(entry):
                try:
                    cidrs.append(CidrBlock.parse(entry))
                except ValueError:
                    logger.warning(f"[Allowlist] Ignoring invalid CIDR entry: {entry!r}")
                continue

            hostnames.append(entry.rstrip("."))

        return cls(
            hostnames=frozenset(hostnames),
            wildcard_suffixes=tuple(suffixes),
            cidrs=tuple(cidrs),
        )

    @property
    def is_empty(self) -> bool:
        return not (self.hostnames or self.wildcard_suffixes or self.cidrs)

    def matches_hostname(self, hostname: str) -> bool:
        """Check a DNS name against exact and wildcard entries."""
        host = hostname.lower().rstrip(".")
        if host in self.hostnames:
            return True
        return any(host.endswith(suffix) for suffix in self.wildcard_suffixes)

    def matches_ip(self, ip: IPAddress) -> bool:
        """Check an address against the CIDR entries."""
        return any(block.contains(candidate) for candidate in _candidates(ip) for block in self.cidrs)

    def explicitly_lists(self, ip: IPAddress) -> bool:
        """True only when a single-address entry names exactly ``ip``."""
        return any(
            block.is_single_address and block.contains(candidate)
            for candidate in _candidates(ip)
            for block in self.cidrs
        )


# ============================================================================
# HELPERS
# ============================================================================

def _looks_like_ip(entry: str) -> bool:
    try:
        ipaddress.ip_address(entry)
        return True
    except ValueError:
        return False


def _candidates(ip: IPAddress) -> Tuple[IPAddress, ...]:
    """The address itself plus its IPv4 form when it is IPv4-mapped."""
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return (ip, ip.ipv4_mapped)
    return (ip,)
