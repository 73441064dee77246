"""
Tests for the FastAPI routes and the WebSocket event stream.

Uses FastAPI's TestClient against a real store, notifier and sweep
coordinator with a fake topology and probe, so no packets are sent.
"""

from datetime import datetime
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from config import EVENT_INITIAL, EVENT_SCAN_COMPLETE, STATUS_ONLINE
from dashboard.app import create_app
from modules.errors import NoNetworkError
from modules.notifier import ChangeNotifier
from modules.probe import PingResult, ProbeResult, classify_device
from modules.store import DeviceStore
from modules.sweep import SweepCoordinator
from modules.topology import NetworkInfo

HOME_NETWORK = NetworkInfo("eth0", "192.168.1.23", "255.255.255.0", gateway="192.168.1.1")

LIVE_HOSTS = {
    "192.168.1.1": None,
    "192.168.1.50": "homeserver",
}


async def fake_probe(address):
    if address not in LIVE_HOSTS:
        return None
    name = LIVE_HOSTS[address]
    return ProbeResult(
        address=address,
        link_address="AA:BB:CC:DD:EE:01",
        name=name or address,
        device_class=classify_device(address, name),
        response_time=1.5,
        seen_at=datetime(2026, 1, 1, 12, 0, 0),
    )


def no_network():
    raise NoNetworkError()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def store():
    return DeviceStore()


@pytest.fixture
def notifier(store):
    return ChangeNotifier(store)


@pytest.fixture
def coordinator(store, notifier):
    return SweepCoordinator(
        store, notifier, topology=lambda: HOME_NETWORK, probe=fake_probe
    )


@pytest.fixture
def app(store, coordinator, notifier):
    return create_app(store=store, coordinator=coordinator, notifier=notifier)


@pytest.fixture
def client(app):
    """TestClient sharing one event loop across HTTP and WebSocket calls."""
    with TestClient(app) as test_client:
        yield test_client


def make_client(topology, store=None):
    store = store or DeviceStore()
    notifier = ChangeNotifier(store)
    coordinator = SweepCoordinator(store, notifier, topology=topology, probe=fake_probe)
    return TestClient(create_app(store=store, coordinator=coordinator, notifier=notifier))


# ---------------------------------------------------------------------------
# Network info
# ---------------------------------------------------------------------------

class TestNetworkInfo:
    def test_network_info(self, client):
        response = client.get("/api/network-info")
        assert response.status_code == 200
        data = response.json()
        assert data["address"] == "192.168.1.23"
        assert data["netmask"] == "255.255.255.0"
        assert data["network_range"] == "192.168.1.0/24"
        assert data["gateway"] == "192.168.1.1"

    def test_no_network(self):
        client = make_client(no_network)
        response = client.get("/api/network-info")
        assert response.status_code == 503
        assert "detail" in response.json()


# ---------------------------------------------------------------------------
# Scan
# ---------------------------------------------------------------------------

class TestScan:
    def test_scan_returns_devices(self, client, store):
        response = client.post("/api/scan")
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["devices_found"] == 2
        assert data["network_range"] == "192.168.1.0/24"

        by_address = {d["address"]: d for d in data["devices"]}
        assert by_address["192.168.1.1"]["device_class"] == "Router"
        assert by_address["192.168.1.1"]["name"] == "192.168.1.1"
        assert by_address["192.168.1.50"]["device_class"] == "Server"
        assert by_address["192.168.1.50"]["name"] == "homeserver"
        assert all(d["status"] == STATUS_ONLINE for d in data["devices"])
        assert store.device_count == 2

    def test_scan_in_progress(self, client, coordinator, store):
        coordinator._in_progress = True
        response = client.post("/api/scan")
        assert response.status_code == 409
        assert response.json()["detail"] == "Scan already in progress"
        assert store.device_count == 0

    def test_scan_no_network(self):
        client = make_client(no_network)
        response = client.post("/api/scan")
        assert response.status_code == 503

    def test_scan_unsupported_range(self):
        wide = NetworkInfo("eth0", "10.0.5.9", "255.255.0.0")
        client = make_client(lambda: wide)
        response = client.post("/api/scan")
        assert response.status_code == 422
        assert "255.255.0.0" in response.json()["detail"]

    def test_scan_without_coordinator(self):
        client = TestClient(create_app(store=DeviceStore()))
        response = client.post("/api/scan")
        assert response.status_code == 503


# ---------------------------------------------------------------------------
# Devices
# ---------------------------------------------------------------------------

class TestDevices:
    def test_empty_list(self, client):
        response = client.get("/api/devices")
        assert response.status_code == 200
        assert response.json() == []

    def test_list_after_scan(self, client):
        client.post("/api/scan")
        response = client.get("/api/devices")
        assert response.status_code == 200
        addresses = sorted(d["address"] for d in response.json())
        assert addresses == ["192.168.1.1", "192.168.1.50"]

    def test_device_detail_with_metrics(self, client):
        client.post("/api/scan")
        response = client.get("/api/devices/192.168.1.50")
        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "homeserver"
        assert data["link_address"] == "AA:BB:CC:DD:EE:01"
        metrics = data["metrics"]
        assert set(metrics) == {"cpu", "memory", "bandwidth", "uptime"}
        assert 0 <= metrics["cpu"] < 100
        assert 0 <= metrics["memory"] < 100

    def test_device_not_found(self, client):
        response = client.get("/api/devices/192.168.1.99")
        assert response.status_code == 404
        assert response.json()["detail"] == "Device not found"

    def test_device_invalid_address(self, client):
        response = client.get("/api/devices/not-an-ip")
        assert response.status_code == 400


# ---------------------------------------------------------------------------
# Ping
# ---------------------------------------------------------------------------

class TestPing:
    def test_ping_reachable(self, client, store):
        result = PingResult(alive=True, response_time=1.2, packet_loss=0.0)
        with patch("dashboard.routes.ping_host", AsyncMock(return_value=result)) as mock_ping:
            response = client.post("/api/ping/192.168.1.77")

        assert response.status_code == 200
        assert response.json() == {"alive": True, "response_time": 1.2, "packet_loss": 0.0}
        assert mock_ping.await_args[0][0] == "192.168.1.77"
        # On-demand ping never touches the store
        assert store.device_count == 0

    def test_ping_unreachable(self, client):
        with patch("dashboard.routes.ping_host", AsyncMock(return_value=PingResult(alive=False))):
            response = client.post("/api/ping/192.168.1.78")

        assert response.status_code == 200
        data = response.json()
        assert data["alive"] is False
        assert data["response_time"] is None
        assert data["packet_loss"] == 100.0

    def test_ping_invalid_address(self, client):
        with patch("dashboard.routes.ping_host", AsyncMock()) as mock_ping:
            response = client.post("/api/ping/256.1.1.1")
        assert response.status_code == 400
        mock_ping.assert_not_called()


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

class TestHealth:
    def test_healthy(self, client):
        client.post("/api/scan")
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["components"]["store"]["devices"] == 2
        assert data["components"]["sweep"]["in_progress"] is False
        assert data["components"]["sweep"]["last_sweep"]["devices_found"] == 2

    def test_degraded(self):
        client = TestClient(create_app())
        data = client.get("/health").json()
        assert data["status"] == "degraded"

    def test_timing_header(self, client):
        response = client.get("/health")
        assert "X-Response-Time" in response.headers


# ---------------------------------------------------------------------------
# WebSocket
# ---------------------------------------------------------------------------

class TestWebSocket:
    def test_initial_snapshot_first(self, client):
        client.post("/api/scan")
        with client.websocket_connect("/ws") as ws:
            message = ws.receive_json()
        assert message["type"] == EVENT_INITIAL
        assert len(message["data"]) == 2

    def test_scan_complete_pushed(self, client):
        with client.websocket_connect("/ws") as ws:
            initial = ws.receive_json()
            assert initial["type"] == EVENT_INITIAL
            assert initial["data"] == []

            client.post("/api/scan")
            message = ws.receive_json()

        assert message["type"] == EVENT_SCAN_COMPLETE
        assert sorted(d["address"] for d in message["data"]) == [
            "192.168.1.1", "192.168.1.50",
        ]

    def test_no_notifier_closes(self):
        client = TestClient(create_app(store=DeviceStore()))
        with pytest.raises(WebSocketDisconnect) as excinfo:
            with client.websocket_connect("/ws") as ws:
                ws.receive_text()
        assert excinfo.value.code == 1011
