"""Address helpers: CIDR containment, allow/deny list parsing, clustering.

Containment is computed on the packed (big-endian) address bytes so that
IPv4 and IPv6 share one code path. A network entry without a prefix is a
single address and matches only the identical address string.
"""

import ipaddress
from functools import lru_cache
from typing import Iterable, Optional

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


@lru_cache(maxsize=8192)
def parse_address(value: str) -> Optional[IPAddress]:
    """Parse a textual address, returning None when it is not a valid IP."""
    if not isinstance(value, str):
        return None
    try:
        return ipaddress.ip_address(value.strip())
    except ValueError:
        return None


@lru_cache(maxsize=4096)
def split_network(network: str) -> Optional[tuple[bytes, int, int]]:
    """Split ``addr/prefix`` into (packed_subnet, prefix, version).

    Returns None for bare addresses, malformed entries and prefixes outside
    the range allowed for the address family.
    """
    if not isinstance(network, str) or "/" not in network:
        return None
    subnet, _, mask = network.strip().partition("/")
    try:
        prefix = int(mask)
    except ValueError:
        return None
    subnet_addr = parse_address(subnet)
    if subnet_addr is None or prefix < 0 or prefix > subnet_addr.max_prefixlen:
        return None
    return subnet_addr.packed, prefix, subnet_addr.version


def _prefix_equal(left: bytes, right: bytes, prefix: int) -> bool:
    full_bytes, rem_bits = divmod(prefix, 8)
    if left[:full_bytes] != right[:full_bytes]:
        return False
    if rem_bits:
        mask = (0xFF << (8 - rem_bits)) & 0xFF
        return (left[full_bytes] & mask) == (right[full_bytes] & mask)
    return True


def ip_in_network(ip: str, network: str) -> bool:
    """Check whether ``ip`` falls inside ``network`` (CIDR or bare address)."""
    if not isinstance(ip, str) or not isinstance(network, str):
        return False
    if "/" not in network:
        return ip == network

    parts = split_network(network)
    if parts is None:
        return False
    subnet_packed, prefix, version = parts

    addr = parse_address(ip)
    if addr is None or addr.version != version:
        return False
    return _prefix_equal(addr.packed, subnet_packed, prefix)


def parse_ip_list(text: str | None) -> list[str]:
    """Parse a newline-separated address list.

    Blank lines and lines starting with ``#`` are ignored.
    """
    if not text or not isinstance(text, str):
        return []
    entries = []
    for line in text.splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            entries.append(line)
    return entries


def ip_in_list(ip: str, entries: Iterable[str]) -> bool:
    """Check an address against mixed single-address and CIDR entries."""
    for entry in entries:
        if "/" in entry:
            if ip_in_network(ip, entry):
                return True
        elif ip == entry:
            return True
    return False


def is_valid_ip(value: str) -> bool:
    return parse_address(value) is not None


def is_public_ip(value: str) -> bool:
    """True for valid addresses outside private and reserved ranges."""
    addr = parse_address(value)
    if addr is None:
        return False
    return not (
        addr.is_private
        or addr.is_reserved
        or addr.is_loopback
        or addr.is_link_local
        or addr.is_unspecified
        or addr.is_multicast
    )


def cluster_network(address: str, ipv4_prefix: int = 24, ipv6_prefix: int = 64) -> Optional[str]:
    """Return the enclosing /24 (IPv4) or /64 (IPv6) network of an address."""
    addr = parse_address(address)
    if addr is None:
        return None
    prefix = ipv4_prefix if addr.version == 4 else ipv6_prefix
    return str(ipaddress.ip_network(f"{addr}/{prefix}", strict=False))


def single_address_network(address: str) -> Optional[str]:
    """Return the /32 or /128 network naming exactly one address."""
    addr = parse_address(address)
    if addr is None:
        return None
    return f"{addr}/{addr.max_prefixlen}"
