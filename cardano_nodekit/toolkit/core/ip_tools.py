"""
Utilities for working with IP addresses: local interfaces, this host's
externally visible addresses, and whether this host is the parent node.
"""

import ipaddress
import logging
import socket
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, Any, FrozenSet, Iterable, Optional, Set

import ipinfo
import psutil
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NodeIdentity:
    """What this host knows about its own addresses.

    ``external_ipv4``/``external_ipv6`` are what a live lookup returned just
    now; ``preset_addresses`` come from configuration and only take part in
    the parent self-check.
    """
    local_addresses: FrozenSet[str] = field(default_factory=frozenset)
    external_ipv4: str = ""
    external_ipv6: str = ""
    preset_addresses: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def external_known(self) -> bool:
        """True if this host reached the outside world during this run."""
        return bool(self.external_ipv4 or self.external_ipv6)

    @property
    def all_addresses(self) -> FrozenSet[str]:
        extra = {a for a in (self.external_ipv4, self.external_ipv6) if a}
        return self.local_addresses | self.preset_addresses | extra


def normalize_address(address: str) -> str:
    """Normalize an address string for comparison.

    Strips brackets, prefix lengths and IPv6 zone identifiers, and returns the
    compressed form for IP literals. Anything that is not an IP literal is
    lower-cased and returned as is.
    """
    value = (address or "").strip().strip("[]")
    value = value.split("/", 1)[0]
    value = value.split("%", 1)[0]
    try:
        return ipaddress.ip_address(value).compressed
    except ValueError:
        return value.lower()


def get_local_addresses() -> FrozenSet[str]:
    """Return every IPv4/IPv6 address bound to a local interface."""
    addresses: Set[str] = set()
    for nic, addrs in psutil.net_if_addrs().items():
        for addr in addrs:
            if addr.family in (socket.AF_INET, socket.AF_INET6) and addr.address:
                addresses.add(normalize_address(addr.address))
    logger.debug(f"Local interface addresses: {sorted(addresses)}")
    return frozenset(addresses)


def get_ip_info(ip_address: Optional[str] = None, token: Optional[str] = None, timeout: float = 3.0) -> Dict[str, Any]:
    """
    Retrieve information about an IP address using the ipinfo.io API.

    Args:
        ip_address: The IP address to look up; None looks up this host's own address
        token: Optional API token for ipinfo.io (for higher rate limits)
        timeout: Request timeout in seconds

    Returns:
        Dictionary containing information about the IP address including:
        - ip: IP address
        - city, region, country: Location
        - org: Organization/ISP
        - asn: AS number
        - org_name: Organization name without ASN
        - va_format: Compact "ASN-COUNTRY-CITY" string

    Raises:
        RuntimeError: If the API request fails
    """
    try:
        handler = ipinfo.getHandler(token, request_options={"timeout": timeout})
        details = handler.getDetails(ip_address)
        ip_data = details.all
    except Exception as e:
        raise RuntimeError(f"Failed to retrieve IP information: {str(e)}")

    result = dict(ip_data)

    # Process organization info to extract ASN
    org_info = ip_data.get('org', '') or ''
    if ' ' in org_info and org_info.startswith('AS'):
        asn, org = org_info.split(' ', 1)
        result['asn'] = asn
        result['org_name'] = org
    else:
        result['asn'] = 'AS0'
        result['org_name'] = org_info

    country = ip_data.get('country', 'Unknown')
    city = ip_data.get('city', 'Unknown')
    asn_num = result['asn'][2:] if result['asn'].startswith('AS') else result['asn']
    result['va_format'] = f"{asn_num}-{country}-{city}"

    return result


@lru_cache(maxsize=64)
def get_ip_info_cached(ip_address: str, token: Optional[str] = None) -> Dict[str, Any]:
    """Cached lookup for display purposes; never used for failover decisions."""
    return get_ip_info(ip_address, token)


def _configure_session() -> requests.Session:
    """HTTP session with a single quick retry on transient errors."""
    session = requests.Session()
    retry_strategy = Retry(
        total=1,
        backoff_factor=0.2,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["GET"]
    )
    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def get_external_ipv4(token: Optional[str] = None, timeout: float = 3.0) -> str:
    """Return this host's externally visible IPv4 address, or '' if it cannot be determined."""
    try:
        address = get_ip_info(None, token, timeout).get("ip", "")
    except RuntimeError as e:
        logger.warning(f"External IPv4 lookup failed: {e}")
        return ""
    try:
        return ipaddress.IPv4Address(address).compressed
    except ValueError:
        logger.warning(f"External IPv4 lookup returned an unusable address: {address!r}")
        return ""


def get_external_ipv6(url: str, timeout: float = 3.0) -> str:
    """Return this host's externally visible IPv6 address, or '' if it cannot be determined.

    The URL must be served over IPv6 only, so that the answer reflects the
    address our IPv6 traffic leaves from.
    """
    if not url:
        return ""
    try:
        with _configure_session() as session:
            response = session.get(url, timeout=timeout)
            response.raise_for_status()
            address = response.text.strip()
    except requests.RequestException as e:
        logger.debug(f"External IPv6 lookup failed: {e}")
        return ""
    try:
        return ipaddress.IPv6Address(address).compressed
    except ValueError:
        logger.warning(f"External IPv6 lookup returned an unusable address: {address!r}")
        return ""


def resolve_identity(
    preset_ipv4: str = "",
    preset_ipv6: str = "",
    token: Optional[str] = None,
    ipv6_url: str = "",
    timeout: float = 3.0,
) -> NodeIdentity:
    """Collect local addresses, preset addresses and live external addresses.

    The live lookups always run, even with presets configured: their success
    is the only evidence that this host can still reach the outside world.
    """
    local = get_local_addresses()
    presets = frozenset(normalize_address(a) for a in (preset_ipv4, preset_ipv6) if a)
    ipv4 = get_external_ipv4(token, timeout)
    ipv6 = get_external_ipv6(ipv6_url, timeout)
    logger.debug(f"External addresses: IPv4={ipv4 or '-'} IPv6={ipv6 or '-'} preset={sorted(presets) or '-'}")
    if presets and not (ipv4 or ipv6):
        logger.warning("External address lookups failed; preset addresses do not prove this host is online")
    return NodeIdentity(local, ipv4, ipv6, presets)


def resolve_parent_addresses(parent: str) -> FrozenSet[str]:
    """Return the normalized parent address, plus its resolved addresses if it is a hostname."""
    normalized = normalize_address(parent)
    addresses = {normalized}
    try:
        ipaddress.ip_address(normalized)
        return frozenset(addresses)
    except ValueError:
        pass

    try:
        for info in socket.getaddrinfo(normalized, None, proto=socket.IPPROTO_TCP):
            addresses.add(normalize_address(info[4][0]))
    except OSError as e:
        logger.warning(f"Cannot resolve parent hostname {parent}: {e}")
    return frozenset(addresses)


def is_parent(identity: NodeIdentity, parent_addresses: Iterable[str]) -> bool:
    """True if any local or external address of this host is a parent address.

    An unknown external address never makes this host the parent.
    """
    parents = {normalize_address(a) for a in parent_addresses if a}
    matches = identity.all_addresses & parents
    if matches:
        logger.debug(f"This host owns parent address(es): {sorted(matches)}")
    return bool(matches)
