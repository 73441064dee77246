"""
Unit tests for the device store.
"""

import threading
from datetime import datetime, timedelta

from config import STATUS_OFFLINE, STATUS_ONLINE
from modules.probe import COMPUTER, PRINTER, ROUTER, SERVER, ProbeResult
from modules.store import DeviceRecord, DeviceStore, StatusChange


def make_result(address="192.168.1.50", **kwargs):
    defaults = {
        "link_address": "AA:BB:CC:DD:EE:32",
        "name": "homeserver",
        "device_class": SERVER,
        "vendor": "Acme Corp",
        "response_time": 0.9,
        "seen_at": datetime(2026, 1, 1, 12, 0, 0),
    }
    defaults.update(kwargs)
    return ProbeResult(address=address, **defaults)


class TestDeviceRecord:
    """Tests for the DeviceRecord dataclass."""

    def test_to_dict(self):
        seen = datetime(2026, 1, 1, 12, 0, 0)
        record = DeviceRecord(
            address="192.168.1.1",
            link_address="AA:BB:CC:DD:EE:01",
            name="gateway",
            device_class=ROUTER,
            last_seen=seen,
            first_seen=seen,
        )
        d = record.to_dict()
        assert d["address"] == "192.168.1.1"
        assert d["link_address"] == "AA:BB:CC:DD:EE:01"
        assert d["device_class"] == ROUTER
        assert d["status"] == STATUS_ONLINE
        assert d["last_seen"] == "2026-01-01T12:00:00"
        assert "last_response_time" in d
        assert "vendor" in d


class TestDeviceStoreUpsert:
    """Tests for merging probe results."""

    def test_empty_store(self):
        store = DeviceStore()
        assert store.device_count == 0
        assert store.get_all() == []
        assert store.snapshot() == []

    def test_new_address_creates_one_online_record(self):
        store = DeviceStore()
        record, is_new = store.upsert(make_result())
        assert is_new is True
        assert store.device_count == 1
        assert record.status == STATUS_ONLINE
        assert record.first_seen == record.last_seen

    def test_known_address_is_overwritten(self):
        store = DeviceStore()
        store.upsert(make_result())
        store.record_liveness("192.168.1.50", alive=False)

        later = datetime(2026, 1, 1, 13, 0, 0)
        record, is_new = store.upsert(make_result(
            link_address="AA:BB:CC:DD:EE:99",
            name="office-printer",
            device_class=PRINTER,
            vendor=None,
            response_time=2.5,
            seen_at=later,
        ))

        assert is_new is False
        assert store.device_count == 1
        assert record.status == STATUS_ONLINE
        assert record.link_address == "AA:BB:CC:DD:EE:99"
        assert record.name == "office-printer"
        assert record.device_class == PRINTER
        assert record.vendor is None
        assert record.last_seen == later
        assert record.last_response_time == 2.5
        assert record.first_seen == datetime(2026, 1, 1, 12, 0, 0)

    def test_unrelated_records_untouched(self):
        store = DeviceStore()
        store.upsert(make_result("192.168.1.1", name="gateway", device_class=ROUTER))
        before = store.get("192.168.1.1")

        store.upsert(make_result("192.168.1.60", name="desk", device_class=COMPUTER))
        store.upsert(make_result("192.168.1.60", name="desk-2", device_class=COMPUTER))

        assert store.get("192.168.1.1") == before
        assert store.device_count == 2

    def test_empty_name_falls_back_to_address(self):
        store = DeviceStore()
        record, _ = store.upsert(make_result(name=""))
        assert record.name == "192.168.1.50"

    def test_reads_are_copies(self):
        store = DeviceStore()
        store.upsert(make_result())

        copy = store.get("192.168.1.50")
        copy.status = STATUS_OFFLINE
        copy.name = "tampered"
        for record in store.get_all():
            record.device_class = PRINTER

        stored = store.get("192.168.1.50")
        assert stored.status == STATUS_ONLINE
        assert stored.name == "homeserver"
        assert stored.device_class == SERVER

    def test_get_unknown(self):
        assert DeviceStore().get("192.168.1.99") is None

    def test_addresses_snapshot(self):
        store = DeviceStore()
        store.upsert(make_result("192.168.1.1"))
        addresses = store.addresses()
        store.upsert(make_result("192.168.1.2"))
        assert addresses == ["192.168.1.1"]

    def test_concurrent_upserts(self):
        store = DeviceStore()

        def worker(offset):
            for i in range(1, 51):
                store.upsert(make_result(f"192.168.1.{i}", name=f"host-{offset}"))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert store.device_count == 50
        assert store.online_count == 50


class TestDeviceStoreLiveness:
    """Tests for record_liveness."""

    def test_failure_marks_offline_and_keeps_last_seen(self):
        store = DeviceStore()
        store.upsert(make_result())

        change = store.record_liveness("192.168.1.50", alive=False)

        assert isinstance(change, StatusChange)
        assert change.previous == STATUS_ONLINE
        assert change.changed is True
        assert change.record.status == STATUS_OFFLINE
        assert change.record.last_seen == datetime(2026, 1, 1, 12, 0, 0)
        assert store.online_count == 0

    def test_success_marks_online_and_advances_last_seen(self):
        store = DeviceStore()
        store.upsert(make_result())
        store.record_liveness("192.168.1.50", alive=False)

        now = datetime(2026, 1, 1, 12, 0, 0) + timedelta(minutes=5)
        change = store.record_liveness("192.168.1.50", alive=True, seen_at=now)

        assert change.previous == STATUS_OFFLINE
        assert change.changed is True
        assert change.record.status == STATUS_ONLINE
        assert change.record.last_seen == now

    def test_no_transition(self):
        store = DeviceStore()
        store.upsert(make_result())
        change = store.record_liveness("192.168.1.50", alive=True)
        assert change.changed is False

    def test_unknown_address(self):
        store = DeviceStore()
        assert store.record_liveness("192.168.1.99", alive=True) is None
        assert store.device_count == 0

    def test_status_change_event_payload(self):
        store = DeviceStore()
        store.upsert(make_result())
        change = store.record_liveness("192.168.1.50", alive=False)
        assert change.to_event() == {
            "address": "192.168.1.50",
            "status": STATUS_OFFLINE,
            "last_seen": "2026-01-01T12:00:00",
        }
