"""
Sweep Coordinator Module

Runs one concurrent probe per candidate address of the local /24, waits
for every probe to settle, merges the hosts that answered into the device
store and broadcasts the new snapshot.

Only one sweep runs at a time. A request that arrives while a sweep is
active fails at once with SweepInProgressError; nothing is queued.
"""

import asyncio
import functools
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional

from config import EVENT_SCAN_COMPLETE, HOSTNAME_TIMEOUT, INTERFACE, PROBE_TIMEOUT
from modules.errors import SweepInProgressError
from modules.notifier import ChangeNotifier
from modules.probe import ProbeResult, probe_host
from modules.store import DeviceRecord, DeviceStore
from modules.topology import NetworkInfo, resolve_topology

logger = logging.getLogger(__name__)

ProbeFn = Callable[[str], Awaitable[Optional[ProbeResult]]]
TopologyFn = Callable[[], NetworkInfo]


@dataclass
class SweepSummary:
    """Outcome of one completed sweep."""
    network_range: str
    addresses_probed: int
    devices: List[DeviceRecord]
    started_at: datetime = field(default_factory=datetime.now)
    duration_seconds: float = 0.0
    failed_probes: int = 0

    @property
    def devices_found(self) -> int:
        return len(self.devices)

    def to_dict(self) -> Dict:
        return {
            "network_range": self.network_range,
            "addresses_probed": self.addresses_probed,
            "devices_found": self.devices_found,
            "failed_probes": self.failed_probes,
            "started_at": self.started_at.isoformat(),
            "duration_seconds": round(self.duration_seconds, 3),
        }


class SweepCoordinator:
    """Owns the sweep-in-progress flag and drives sweeps into the store.

    Usage::

        coordinator = SweepCoordinator(store, notifier)
        summary = await coordinator.sweep()
    """

    def __init__(
        self,
        store: DeviceStore,
        notifier: ChangeNotifier,
        topology: Optional[TopologyFn] = None,
        probe: Optional[ProbeFn] = None,
        interface: Optional[str] = INTERFACE or None,
        probe_timeout: float = PROBE_TIMEOUT,
        hostname_timeout: float = HOSTNAME_TIMEOUT,
    ):
        """
        Args:
            store: Device store results are merged into.
            notifier: Receives the scan-complete snapshot.
            topology: Returns the NetworkInfo to sweep. Defaults to
                      ``resolve_topology`` on ``interface``.
            probe: Async probe for one address. Defaults to ``probe_host``.
            interface: Preferred interface name (None for auto-detect).
            probe_timeout: Reachability timeout per address, in seconds.
            hostname_timeout: Reverse lookup timeout per host, in seconds.
        """
        self.store = store
        self.notifier = notifier
        self.interface = interface
        self.probe_timeout = probe_timeout
        self.hostname_timeout = hostname_timeout
        self._topology = topology or functools.partial(resolve_topology, interface)
        self._probe = probe
        self._in_progress = False
        self.last_sweep: Optional[SweepSummary] = None

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    def get_network_info(self) -> NetworkInfo:
        """Current topology; raises NoNetworkError when there is none."""
        return self._topology()

    async def sweep(self) -> SweepSummary:
        """
        Probe every address of the local /24 and merge the live hosts.

        Returns:
            SweepSummary listing the devices that answered in this sweep

        Raises:
            SweepInProgressError: another sweep is still running
            NoNetworkError: no usable interface
            UnsupportedRangeError: the interface is not a /24
        """
        if self._in_progress:
            raise SweepInProgressError()
        self._in_progress = True

        try:
            network = self._topology()
            addresses = network.sweep_addresses()
            probe = self._probe or functools.partial(
                probe_host,
                timeout=self.probe_timeout,
                hostname_timeout=self.hostname_timeout,
                interface=network.interface,
            )

            logger.info(f"Scanning network: {network.network_range}")
            started_at = datetime.now()
            start = time.monotonic()

            outcomes = await asyncio.gather(
                *(probe(address) for address in addresses),
                return_exceptions=True,
            )

            results: List[ProbeResult] = []
            failed = 0
            for address, outcome in zip(addresses, outcomes):
                if isinstance(outcome, BaseException):
                    failed += 1
                    logger.debug(f"Probe for {address} raised: {outcome!r}")
                elif outcome is None:
                    continue
                elif outcome.address != address:
                    failed += 1
                    logger.warning(
                        f"Probe for {address} returned result for {outcome.address}, ignored"
                    )
                else:
                    results.append(outcome)

            devices = [self.store.upsert(result)[0] for result in results]
            self.notifier.broadcast(EVENT_SCAN_COMPLETE, self.store.snapshot())

            summary = SweepSummary(
                network_range=network.network_range,
                addresses_probed=len(addresses),
                devices=devices,
                started_at=started_at,
                duration_seconds=time.monotonic() - start,
                failed_probes=failed,
            )
            self.last_sweep = summary
            logger.info(
                f"Scan complete: {summary.devices_found} devices in "
                f"{summary.duration_seconds:.2f}s"
            )
            return summary

        finally:
            self._in_progress = False
