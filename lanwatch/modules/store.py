"""
Device Store Module

Thread-safe in-memory mapping of IPv4 address to DeviceRecord. It is the
only owner of device records: sweeps merge probe results into it, the
liveness reconciler flips status through it, and every read hands back
copies so no caller ever holds a record the store may still mutate.

Records are created on first successful discovery and never expire; an
address missing from a later sweep keeps its last known state.
"""

import dataclasses
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from config import STATUS_OFFLINE, STATUS_ONLINE, UNKNOWN_LINK_ADDRESS
from modules.probe import DEVICE, ProbeResult

logger = logging.getLogger(__name__)


@dataclass
class DeviceRecord:
    """State of one discovered address."""
    address: str
    link_address: str = UNKNOWN_LINK_ADDRESS
    name: str = ""
    device_class: str = DEVICE
    status: str = STATUS_ONLINE
    last_seen: datetime = field(default_factory=datetime.now)
    last_response_time: float = 0.0
    vendor: Optional[str] = None
    first_seen: datetime = field(default_factory=datetime.now)

    @property
    def is_online(self) -> bool:
        return self.status == STATUS_ONLINE

    def copy(self) -> "DeviceRecord":
        return dataclasses.replace(self)

    def to_dict(self) -> Dict:
        return {
            "address": self.address,
            "link_address": self.link_address,
            "name": self.name,
            "vendor": self.vendor,
            "device_class": self.device_class,
            "status": self.status,
            "first_seen": self.first_seen.isoformat(),
            "last_seen": self.last_seen.isoformat(),
            "last_response_time": self.last_response_time,
        }


@dataclass(frozen=True)
class StatusChange:
    """A record's status before and after a liveness check."""
    previous: str
    record: DeviceRecord

    @property
    def changed(self) -> bool:
        return self.previous != self.record.status

    def to_event(self) -> Dict:
        """Payload of a status-change event."""
        return {
            "address": self.record.address,
            "status": self.record.status,
            "last_seen": self.record.last_seen.isoformat(),
        }


class DeviceStore:
    """Thread-safe in-memory device store keyed by address.

    Every mutation of a record happens under one lock, so concurrent sweep
    merges and reconciler updates are atomic per record. Conflicting writes
    resolve last-writer-wins.
    """

    def __init__(self):
        self._devices: Dict[str, DeviceRecord] = {}
        self._lock = threading.Lock()

    # -- read helpers --------------------------------------------------------

    @property
    def device_count(self) -> int:
        with self._lock:
            return len(self._devices)

    @property
    def online_count(self) -> int:
        with self._lock:
            return sum(1 for d in self._devices.values() if d.is_online)

    def get(self, address: str) -> Optional[DeviceRecord]:
        with self._lock:
            record = self._devices.get(address)
            return record.copy() if record is not None else None

    def get_all(self) -> List[DeviceRecord]:
        with self._lock:
            return [d.copy() for d in self._devices.values()]

    def addresses(self) -> List[str]:
        """Snapshot of every known address."""
        with self._lock:
            return list(self._devices.keys())

    def snapshot(self) -> List[Dict]:
        """Return a JSON-serialisable snapshot of every record."""
        with self._lock:
            return [d.to_dict() for d in self._devices.values()]

    # -- write helpers -------------------------------------------------------

    def upsert(self, result: ProbeResult) -> Tuple[DeviceRecord, bool]:
        """Merge a successful probe result.

        Creates the record on first sight; otherwise overwrites link
        address, name, vendor, class, response time and last_seen, and
        marks it online. No other record is touched.

        Returns:
            (record copy, is_new)
        """
        with self._lock:
            existing = self._devices.get(result.address)
            if existing is None:
                record = DeviceRecord(
                    address=result.address,
                    link_address=result.link_address,
                    name=result.name or result.address,
                    device_class=result.device_class,
                    status=STATUS_ONLINE,
                    last_seen=result.seen_at,
                    last_response_time=result.response_time,
                    vendor=result.vendor,
                    first_seen=result.seen_at,
                )
                self._devices[result.address] = record
                logger.info(
                    "New device %s (%s, %s)",
                    result.address, record.device_class, record.link_address,
                )
                return record.copy(), True

            existing.link_address = result.link_address
            existing.name = result.name or result.address
            existing.device_class = result.device_class
            existing.vendor = result.vendor
            existing.status = STATUS_ONLINE
            existing.last_seen = result.seen_at
            existing.last_response_time = result.response_time
            return existing.copy(), False

    def record_liveness(
        self,
        address: str,
        alive: bool,
        seen_at: Optional[datetime] = None,
    ) -> Optional[StatusChange]:
        """Apply the outcome of a liveness check to a known record.

        Reachable: status online and last_seen advanced to ``seen_at``.
        Unreachable: status offline, last_seen kept as the last confirmed
        time.

        Returns:
            StatusChange, or None if the address is not in the store
        """
        with self._lock:
            record = self._devices.get(address)
            if record is None:
                return None
            previous = record.status
            if alive:
                record.status = STATUS_ONLINE
                record.last_seen = seen_at or datetime.now()
            else:
                record.status = STATUS_OFFLINE
            return StatusChange(previous=previous, record=record.copy())
