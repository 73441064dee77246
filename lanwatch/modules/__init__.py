"""
LanWatch Modules Package

Discovery and reconciliation engine: topology resolution, host probing,
the device store, sweeps, liveness re-checks and change notification.
"""

from .errors import (
    LanWatchError, NoNetworkError, UnsupportedRangeError, SweepInProgressError,
)
from .topology import NetworkInfo, resolve_topology, derive_sweep_range
from .probe import (
    ProbeResult, PingResult, DEVICE_CLASSES,
    probe_host, ping_host, classify_device,
)
from .store import DeviceRecord, DeviceStore, StatusChange
from .notifier import ChangeNotifier, Subscription
from .sweep import SweepCoordinator, SweepSummary
from .reconciler import LivenessReconciler

__all__ = [
    "LanWatchError",
    "NoNetworkError",
    "UnsupportedRangeError",
    "SweepInProgressError",
    "NetworkInfo",
    "resolve_topology",
    "derive_sweep_range",
    "ProbeResult",
    "PingResult",
    "DEVICE_CLASSES",
    "probe_host",
    "ping_host",
    "classify_device",
    "DeviceRecord",
    "DeviceStore",
    "StatusChange",
    "ChangeNotifier",
    "Subscription",
    "SweepCoordinator",
    "SweepSummary",
    "LivenessReconciler",
]
