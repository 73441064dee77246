"""
API Routes

REST endpoints for network information, sweeps, the device snapshot,
single-device details and on-demand ping.
"""

import logging
import random

from fastapi import APIRouter, Request, HTTPException

from config import PING_COUNT, PING_TIMEOUT
from modules.errors import NoNetworkError, SweepInProgressError, UnsupportedRangeError
from modules.probe import is_ipv4_address, ping_host

logger = logging.getLogger(__name__)

router = APIRouter()


# ─── Helper Functions ─────────────────────────────────────────────────────────

def _get_store(request: Request):
    """Get the device store or raise 503."""
    store = request.app.state.store
    if not store:
        raise HTTPException(status_code=503, detail="Device store not available")
    return store


def _get_coordinator(request: Request):
    """Get the sweep coordinator or raise 503."""
    coordinator = request.app.state.coordinator
    if not coordinator:
        raise HTTPException(status_code=503, detail="Scanner not available")
    return coordinator


def _validate_address(address: str):
    if not is_ipv4_address(address):
        raise HTTPException(status_code=400, detail=f"Invalid IPv4 address: {address}")


def get_device_metrics(address: str) -> dict:
    """Synthetic performance metrics; no SNMP/WMI collection is done."""
    return {
        "cpu": random.randrange(100),
        "memory": random.randrange(100),
        "bandwidth": random.randrange(1000),
        "uptime": random.randrange(86400),
    }


# ─── Network ──────────────────────────────────────────────────────────────────

@router.get("/api/network-info")
async def get_network_info(request: Request):
    """Local address, netmask and the derived sweep range."""
    coordinator = _get_coordinator(request)

    try:
        return coordinator.get_network_info().to_dict()
    except NoNetworkError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.post("/api/scan")
async def scan_network(request: Request):
    """Sweep the local /24 and return the devices that answered."""
    coordinator = _get_coordinator(request)

    try:
        summary = await coordinator.sweep()
    except SweepInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except UnsupportedRangeError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except NoNetworkError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return {
        "success": True,
        "devices_found": summary.devices_found,
        "devices": [device.to_dict() for device in summary.devices],
        "network_range": summary.network_range,
        "duration_seconds": round(summary.duration_seconds, 3),
    }


# ─── Devices ──────────────────────────────────────────────────────────────────

@router.get("/api/devices")
async def get_devices(request: Request):
    """Every device in the store."""
    store = _get_store(request)
    return store.snapshot()


@router.get("/api/devices/{address}")
async def get_device(request: Request, address: str):
    """One device plus synthetic metrics."""
    store = _get_store(request)
    _validate_address(address)

    device = store.get(address)
    if device is None:
        raise HTTPException(status_code=404, detail="Device not found")

    return {
        **device.to_dict(),
        "metrics": get_device_metrics(address),
    }


@router.post("/api/ping/{address}")
async def ping_device(request: Request, address: str):
    """Ping any address on demand; the device store is not touched."""
    _validate_address(address)

    result = await ping_host(address, count=PING_COUNT, timeout=PING_TIMEOUT)
    logger.debug(f"Ping {address}: alive={result.alive} rtt={result.response_time}")
    return result.to_dict()
