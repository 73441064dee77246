"""
Host Probe Module

Probes a single IPv4 address: reachability via ICMP ping, link-layer
address via the kernel ARP cache (falling back to a scapy who-has), reverse
name via the system resolver, and a heuristic device classification.

An unreachable host is not an error. ``probe_host`` returns None for it,
and a failed name or link-address lookup only leaves that field unknown.
Probes share no mutable state, so any number may run concurrently.
"""

import asyncio
import ipaddress
import logging
import math
import re
import socket
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional

from mac_vendor_lookup import AsyncMacLookup
from scapy.layers.l2 import ARP, Ether
from scapy.sendrecv import srp

from config import (
    DEFAULT_ARP_TIMEOUT,
    ENABLE_VENDOR_LOOKUP,
    HOSTNAME_TIMEOUT,
    PROBE_TIMEOUT,
    RESOLVER_WORKERS,
    UNKNOWN_LINK_ADDRESS,
)

logger = logging.getLogger(__name__)

ARP_CACHE_PATH = "/proc/net/arp"
_EMPTY_MAC = "00:00:00:00:00:00"

# Blocking name and ARP lookups. One worker per sweepable host, so a
# lookup's timeout never includes time spent waiting for a thread.
_resolver_pool = ThreadPoolExecutor(
    max_workers=RESOLVER_WORKERS, thread_name_prefix="lanwatch-resolve",
)

# ---------------------------------------------------------------------------
# Device classes
# ---------------------------------------------------------------------------

ROUTER = "Router"
SWITCH = "Switch"
PRINTER = "Printer"
PHONE = "Phone"
SMART_TV = "Smart TV"
CAMERA = "Camera"
SERVER = "Server"
COMPUTER = "Computer"
DEVICE = "Device"

DEVICE_CLASSES = (
    ROUTER, SWITCH, PRINTER, PHONE, SMART_TV, CAMERA, SERVER, COMPUTER, DEVICE,
)

# Evaluated in order, first match wins.
NAME_PATTERNS = (
    (("router", "gateway"), ROUTER),
    (("switch",), SWITCH),
    (("printer",), PRINTER),
    (("phone", "android", "iphone"), PHONE),
    (("tv", "roku", "chromecast"), SMART_TV),
    (("camera",), CAMERA),
    (("server",), SERVER),
)


def classify_device(address: str, name: Optional[str] = None) -> str:
    """Guess the device class from its address and resolved name.

    Rules, top to bottom, first match wins:

    1. last octet is 1 -> Router
    2. name keywords (case-insensitive), in NAME_PATTERNS order
    3. last octet <= 50 -> Server, <= 100 -> Computer, else Device
    """
    last_octet = int(address.rsplit(".", 1)[1])

    if last_octet == 1:
        return ROUTER

    if name:
        lower = name.lower()
        for keywords, device_class in NAME_PATTERNS:
            if any(keyword in lower for keyword in keywords):
                return device_class

    if last_octet <= 50:
        return SERVER
    if last_octet <= 100:
        return COMPUTER
    return DEVICE


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class PingResult:
    """Outcome of an ICMP reachability check."""
    alive: bool
    response_time: Optional[float] = None  # average RTT in ms
    packet_loss: float = 100.0  # percent

    def to_dict(self) -> Dict:
        return {
            "alive": self.alive,
            "response_time": self.response_time,
            "packet_loss": self.packet_loss,
        }


@dataclass(frozen=True)
class ProbeResult:
    """Identity of one host that answered a probe."""
    address: str
    link_address: str = UNKNOWN_LINK_ADDRESS
    name: str = ""
    device_class: str = DEVICE
    vendor: Optional[str] = None
    response_time: float = 0.0
    seen_at: datetime = field(default_factory=datetime.now)


# ---------------------------------------------------------------------------
# Reachability
# ---------------------------------------------------------------------------

_RTT_PATTERNS = (
    re.compile(r'rtt\s+min/avg/max/mdev\s*=\s*[\d.]+/([\d.]+)/[\d.]+/[\d.]+\s*ms'),
    re.compile(
        r'round-trip\s+min/avg/max/(?:std-dev|stddev)\s*=\s*[\d.]+/([\d.]+)/[\d.]+/[\d.]+\s*ms'
    ),
)
_LOSS_PATTERN = re.compile(r'([\d.]+)%\s+packet\s+loss')
_REPLY_TIME_PATTERN = re.compile(r'time[=<]([\d.]+)\s*ms')


def parse_ping_output(stdout: str, returncode: int) -> PingResult:
    """Build a PingResult from ``ping`` output.

    ``ping`` exits 0 when at least one reply arrived.
    """
    alive = returncode == 0

    response_time = None
    for pattern in _RTT_PATTERNS:
        match = pattern.search(stdout)
        if match:
            response_time = float(match.group(1))
            break
    if response_time is None and alive:
        # Single-packet pings on some platforms omit the summary line
        match = _REPLY_TIME_PATTERN.search(stdout)
        if match:
            response_time = float(match.group(1))

    loss_match = _LOSS_PATTERN.search(stdout)
    if loss_match:
        packet_loss = float(loss_match.group(1))
    else:
        packet_loss = 0.0 if alive else 100.0

    return PingResult(alive=alive, response_time=response_time, packet_loss=packet_loss)


async def ping_host(address: str, count: int = 1, timeout: float = PROBE_TIMEOUT) -> PingResult:
    """Send ``count`` ICMP echo requests to ``address``.

    Args:
        address: Target IPv4 address.
        count: Number of packets to send.
        timeout: Per-packet wait in seconds.

    Returns:
        PingResult; ``alive`` is False when nothing answered or ping failed.
    """
    wait = max(1, math.ceil(timeout))
    cmd = ["ping", "-n", "-c", str(count), "-W", str(wait), address]
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except FileNotFoundError:
        logger.error("Command not found: ping")
        return PingResult(alive=False)
    except OSError as e:
        logger.error(f"OS error running ping for {address}: {e}")
        return PingResult(alive=False)

    try:
        stdout, _ = await asyncio.wait_for(
            process.communicate(), timeout=count * wait + 2
        )
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        logger.debug(f"Ping to {address} timed out")
        return PingResult(alive=False)

    return parse_ping_output(stdout.decode(errors="replace"), process.returncode)


# ---------------------------------------------------------------------------
# Link-layer address
# ---------------------------------------------------------------------------

def read_arp_cache(address: str, path: str = ARP_CACHE_PATH) -> Optional[str]:
    """Look ``address`` up in the kernel ARP cache."""
    try:
        with open(path, "r") as f:
            for line in f.readlines()[1:]:  # skip header
                parts = line.split()
                if len(parts) >= 4 and parts[0] == address:
                    mac = parts[3].upper()
                    if mac != _EMPTY_MAC:
                        return mac
    except OSError as e:
        logger.debug(f"Could not read {path}: {e}")
    return None


def arp_who_has(
    address: str,
    interface: Optional[str] = None,
    timeout: float = DEFAULT_ARP_TIMEOUT,
) -> Optional[str]:
    """Ask for ``address`` with a broadcast ARP request (needs CAP_NET_RAW)."""
    kwargs = {"timeout": timeout, "verbose": 0}
    if interface:
        kwargs["iface"] = interface
    try:
        answered, _ = srp(Ether(dst="ff:ff:ff:ff:ff:ff") / ARP(pdst=address), **kwargs)
    except PermissionError:
        logger.debug("ARP who-has requires root/CAP_NET_RAW")
        return None
    except Exception as e:
        logger.debug(f"ARP who-has for {address} failed: {e}")
        return None

    for _, received in answered:
        mac = received.hwsrc.upper()
        if mac and mac != _EMPTY_MAC:
            return mac
    return None


async def resolve_link_address(
    address: str,
    interface: Optional[str] = None,
    timeout: float = DEFAULT_ARP_TIMEOUT,
) -> Optional[str]:
    """Hardware address for ``address``, or None if it cannot be resolved.

    The ping that precedes this call normally leaves an entry in the ARP
    cache; the who-has request only runs when it did not.
    """
    mac = read_arp_cache(address)
    if mac:
        return mac
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(_resolver_pool, arp_who_has, address, interface, timeout)


# ---------------------------------------------------------------------------
# Reverse name
# ---------------------------------------------------------------------------

async def resolve_hostname(address: str, timeout: float = HOSTNAME_TIMEOUT) -> Optional[str]:
    """Reverse-resolve ``address``; None when unnamed or the lookup is slow."""
    loop = asyncio.get_running_loop()
    try:
        hostname, _, _ = await asyncio.wait_for(
            loop.run_in_executor(_resolver_pool, socket.gethostbyaddr, address),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        logger.debug(f"Reverse lookup for {address} timed out")
        return None
    except (socket.herror, socket.gaierror, OSError):
        return None

    hostname = hostname.rstrip(".")
    if not hostname or hostname == address:
        return None
    return hostname


# ---------------------------------------------------------------------------
# Vendor lookup
# ---------------------------------------------------------------------------

_mac_lookup: Optional[AsyncMacLookup] = None
_vendor_lock: Optional[asyncio.Lock] = None
_vendors_loaded = False


async def load_vendor_database() -> AsyncMacLookup:
    """Load the OUI table once; concurrent callers wait for the first load."""
    global _mac_lookup, _vendor_lock, _vendors_loaded
    if _mac_lookup is None:
        _mac_lookup = AsyncMacLookup()
        _vendor_lock = asyncio.Lock()

    if not _vendors_loaded:
        async with _vendor_lock:
            if not _vendors_loaded:
                await _mac_lookup.load_vendors()
                _vendors_loaded = True
                logger.info("MAC vendor database loaded")
    return _mac_lookup


async def lookup_vendor(mac: str) -> Optional[str]:
    """Look up vendor from MAC OUI prefix.

    Uses the mac-vendor-lookup OUI database. Returns None when lookup is
    disabled or the OUI cannot be resolved.
    """
    if not ENABLE_VENDOR_LOOKUP or not mac or mac == UNKNOWN_LINK_ADDRESS:
        return None
    try:
        mac_lookup = await load_vendor_database()
        return await mac_lookup.lookup(mac)
    except Exception as e:
        logger.debug(f"Vendor lookup for {mac} failed: {e}")
        return None


# ---------------------------------------------------------------------------
# Full probe
# ---------------------------------------------------------------------------

def is_ipv4_address(value: str) -> bool:
    try:
        ipaddress.IPv4Address(value)
    except ValueError:
        return False
    return True


async def probe_host(
    address: str,
    timeout: float = PROBE_TIMEOUT,
    hostname_timeout: float = HOSTNAME_TIMEOUT,
    interface: Optional[str] = None,
) -> Optional[ProbeResult]:
    """
    Probe one address and resolve its identity.

    Args:
        address: IPv4 address to probe
        timeout: Reachability timeout in seconds
        hostname_timeout: Reverse lookup timeout in seconds
        interface: Interface for the ARP who-has fallback

    Returns:
        ProbeResult if the host answered, otherwise None
    """
    ping = await ping_host(address, count=1, timeout=timeout)
    if not ping.alive:
        return None

    mac = await resolve_link_address(address, interface=interface)
    hostname = await resolve_hostname(address, timeout=hostname_timeout)
    vendor = await lookup_vendor(mac) if mac else None

    result = ProbeResult(
        address=address,
        link_address=mac or UNKNOWN_LINK_ADDRESS,
        name=hostname or address,
        device_class=classify_device(address, hostname),
        vendor=vendor,
        response_time=ping.response_time or 0.0,
        seen_at=datetime.now(),
    )
    logger.debug(f"Probe hit {address}: {result.device_class} {result.name} ({result.link_address})")
    return result
