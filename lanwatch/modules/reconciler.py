"""
Liveness Reconciler Module

Background task that re-checks every known device on a fixed interval and
publishes a status-change event whenever a device goes online or offline.

A failed check marks the device offline but keeps its last_seen, which
always holds the last time the device was confirmed alive. A check that
raises is logged and leaves that device untouched for the cycle.
"""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, List, Optional

from config import EVENT_STATUS_CHANGE, RECHECK_INTERVAL, RECHECK_TIMEOUT
from modules.notifier import ChangeNotifier
from modules.probe import ping_host
from modules.store import DeviceStore, StatusChange

logger = logging.getLogger(__name__)

CheckFn = Callable[[str], Awaitable[bool]]


class LivenessReconciler:
    """Periodic liveness re-check of every address in the device store."""

    def __init__(
        self,
        store: DeviceStore,
        notifier: ChangeNotifier,
        interval: float = RECHECK_INTERVAL,
        timeout: float = RECHECK_TIMEOUT,
        check: Optional[CheckFn] = None,
    ):
        """
        Args:
            store: Device store to read and update.
            notifier: Receives status-change events.
            interval: Seconds between cycles.
            timeout: Reachability timeout per address, in seconds.
            check: Async reachability check; defaults to a one-packet ping.
        """
        self.store = store
        self.notifier = notifier
        self.interval = interval
        self.timeout = timeout
        self._check = check or self._ping
        self.running = False
        self.cycles = 0
        self.last_cycle: Optional[datetime] = None

    async def _ping(self, address: str) -> bool:
        result = await ping_host(address, count=1, timeout=self.timeout)
        return result.alive

    async def run_cycle(self) -> List[StatusChange]:
        """Check every address known at cycle start.

        Returns:
            The transitions this cycle produced
        """
        addresses = self.store.addresses()
        outcomes = await asyncio.gather(
            *(self._check(address) for address in addresses),
            return_exceptions=True,
        )

        transitions: List[StatusChange] = []
        now = datetime.now()
        for address, outcome in zip(addresses, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(f"Liveness check for {address} failed: {outcome}")
                continue

            change = self.store.record_liveness(address, bool(outcome), seen_at=now)
            if change is None or not change.changed:
                continue

            logger.info(f"Device {address} is now {change.record.status}")
            self.notifier.broadcast(EVENT_STATUS_CHANGE, change.to_event())
            transitions.append(change)

        self.cycles += 1
        self.last_cycle = now
        logger.debug(
            f"Liveness cycle {self.cycles}: {len(addresses)} checked, "
            f"{len(transitions)} transition(s)"
        )
        return transitions

    async def run(self) -> None:
        """Run cycles every ``interval`` seconds until stopped or cancelled."""
        self.running = True
        logger.info(f"Starting liveness reconciler (interval: {self.interval}s)")

        while self.running:
            try:
                await asyncio.sleep(self.interval)
                if not self.running:
                    break
                await self.run_cycle()

            except asyncio.CancelledError:
                logger.info("Liveness reconciler cancelled")
                break

            except Exception as e:
                logger.error(f"Error in liveness reconciler: {e}", exc_info=True)

        self.running = False
        logger.info("Liveness reconciler stopped")

    def stop(self):
        self.running = False
