"""
Network Topology Module

Determines the local host's IPv4 address and netmask and derives the
address range to sweep.

Only /24 networks are swept: the first three octets of the host address
are kept and the last octet is enumerated from 1 to 254. Any other prefix
length raises UnsupportedRangeError unless ``force_slash24`` is set, in
which case the /24 containing the host address is swept regardless of the
real netmask.
"""

import ipaddress
import logging
from typing import Dict, List, Optional

import netifaces
import psutil

from config import (
    FORCE_SLASH24,
    SWEEP_FIRST_HOST,
    SWEEP_LAST_HOST,
    SWEEP_PREFIX_LENGTH,
)
from modules.errors import NoNetworkError, UnsupportedRangeError

logger = logging.getLogger(__name__)


class NetworkInfo:
    """Local interface address, mask and the derived sweep range."""

    def __init__(
        self,
        interface: str,
        address: str,
        netmask: str,
        gateway: Optional[str] = None,
        force_slash24: bool = False,
    ):
        self.interface = interface
        self.address = address
        self.netmask = netmask
        self.gateway = gateway
        self.force_slash24 = force_slash24
        self.prefix_length = prefix_length_for(netmask)

    @property
    def sweep_supported(self) -> bool:
        return self.force_slash24 or self.prefix_length == SWEEP_PREFIX_LENGTH

    @property
    def network_range(self) -> Optional[str]:
        """CIDR of the sweep range, e.g. '192.168.1.0/24', or None if unsupported."""
        if not self.sweep_supported:
            return None
        return str(derive_sweep_range(self.address, self.netmask, force_slash24=True))

    def sweep_addresses(self) -> List[str]:
        """Every candidate address of the sweep range, .1 through .254.

        Raises:
            UnsupportedRangeError: the netmask is not a /24 and
                ``force_slash24`` is off.
        """
        network = derive_sweep_range(
            self.address, self.netmask, force_slash24=self.force_slash24
        )
        base = network.network_address
        return [str(base + i) for i in range(SWEEP_FIRST_HOST, SWEEP_LAST_HOST + 1)]

    def to_dict(self) -> Dict:
        """Convert to dictionary representation."""
        return {
            "interface": self.interface,
            "address": self.address,
            "netmask": self.netmask,
            "prefix_length": self.prefix_length,
            "network_range": self.network_range,
            "gateway": self.gateway,
            "sweep_supported": self.sweep_supported,
        }

    def __repr__(self) -> str:
        return f"<NetworkInfo {self.interface} {self.address}/{self.prefix_length}>"


def prefix_length_for(netmask: str) -> Optional[int]:
    """Prefix length of a dotted netmask, or None if it is not a valid mask."""
    try:
        return ipaddress.IPv4Network(f"0.0.0.0/{netmask}").prefixlen
    except ValueError:
        return None


def derive_sweep_range(
    address: str,
    netmask: str,
    force_slash24: bool = False,
) -> ipaddress.IPv4Network:
    """
    Derive the /24 sweep network for a host address.

    Args:
        address: Host IPv4 address (e.g. '192.168.1.23')
        netmask: Dotted netmask of the interface
        force_slash24: Sweep the /24 containing ``address`` even when the
            netmask says otherwise

    Returns:
        The /24 network, e.g. IPv4Network('192.168.1.0/24')

    Raises:
        UnsupportedRangeError: netmask is not /24 and force_slash24 is off
    """
    prefix = prefix_length_for(netmask)
    if prefix != SWEEP_PREFIX_LENGTH and not force_slash24:
        raise UnsupportedRangeError(netmask, prefix)
    return ipaddress.IPv4Network(f"{address}/{SWEEP_PREFIX_LENGTH}", strict=False)


def get_ipv4_addresses(interface_name: str) -> List[Dict[str, str]]:
    """
    Get IPv4 address entries assigned to an interface.

    Returns:
        List of {'addr': ..., 'netmask': ...} dicts, loopback excluded
    """
    entries = []
    try:
        addrs = netifaces.ifaddresses(interface_name)
    except ValueError:
        return entries

    for addr_info in addrs.get(netifaces.AF_INET, []):
        ip = addr_info.get("addr")
        netmask = addr_info.get("netmask")
        if not ip or not netmask:
            continue
        try:
            if ipaddress.IPv4Address(ip).is_loopback:
                continue
        except ValueError:
            continue
        entries.append({"addr": ip, "netmask": netmask})

    return entries


def is_interface_up(interface_name: str) -> bool:
    """
    Check if a network interface is up.

    Args:
        interface_name: Network interface name

    Returns:
        True if interface is up
    """
    try:
        stats = psutil.net_if_stats().get(interface_name)
        if stats:
            return stats.isup
    except Exception as e:
        logger.debug(f"Error checking if {interface_name} is up: {e}")

    return False


def get_default_gateway() -> Optional[str]:
    """Default IPv4 gateway from the routing table, or None."""
    try:
        default = netifaces.gateways().get("default", {})
        entry = default.get(netifaces.AF_INET)
        if entry:
            return entry[0]
    except Exception as e:
        logger.debug(f"Could not read default gateway: {e}")
    return None


def resolve_topology(
    interface: Optional[str] = None,
    force_slash24: bool = FORCE_SLASH24,
) -> NetworkInfo:
    """
    Find the first usable non-loopback IPv4 interface.

    Interfaces that are up are preferred; if none is up, the first interface
    carrying a non-loopback IPv4 address is used.

    Args:
        interface: Restrict the search to this interface name
        force_slash24: Passed through to the resulting NetworkInfo

    Returns:
        NetworkInfo for the selected interface

    Raises:
        NoNetworkError: no qualifying interface exists
    """
    names = [interface] if interface else netifaces.interfaces()
    logger.debug(f"Candidate interfaces: {names}")

    candidates = []
    for name in names:
        for entry in get_ipv4_addresses(name):
            candidates.append((name, entry))

    if not candidates:
        if interface:
            logger.error(f"Interface '{interface}' has no usable IPv4 address")
        else:
            logger.error("No non-loopback IPv4 interface found")
        raise NoNetworkError()

    up = [c for c in candidates if is_interface_up(c[0])]
    if not up:
        logger.warning(f"No interfaces are up, defaulting to: {candidates[0][0]}")
    name, entry = (up or candidates)[0]

    info = NetworkInfo(
        interface=name,
        address=entry["addr"],
        netmask=entry["netmask"],
        gateway=get_default_gateway(),
        force_slash24=force_slash24,
    )
    if not info.sweep_supported:
        logger.warning(
            f"Interface {name} has netmask {info.netmask}; only /24 networks can be swept"
        )
    logger.debug(f"Resolved topology: {info}")
    return info
