"""Shared test fixtures and configuration for the E-Waste Tracker test suite."""

import dataclasses
import itertools

import pytest

from ledger.models import DeviceRecord, RegistrationReceipt
from tracker.errors import LedgerCallFailed, NotFound
from tracker.record_store import RecordStore
from tracker.service import DeviceTracker

OWNER = "0x90F79bf6EB2c4f870365E785982E1f101E93b906"


class FakeLedger:
    """In-memory stand-in for LedgerAdapter."""

    def __init__(self):
        self.devices = {}
        self.calls = []
        self.failing_ids = set()
        self.register_error = None
        self.update_error = None
        self.balance_error = None
        self.balance = "1.25"

    def register_device(self, device_type):
        self.calls.append(("register_device", device_type))
        if self.register_error is not None:
            raise self.register_error
        device_id = len(self.devices) + 1
        self.devices[device_id] = DeviceRecord(
            id=device_id,
            device_type=device_type,
            status="Disposed",
            owner=OWNER,
            registered_at=1700000000 + device_id,
            last_updated=1700000000 + device_id,
        )
        return RegistrationReceipt(device_id=device_id, tx_hash=f"0xreg{device_id:04d}", resolved_via="event")

    def update_status(self, device_id, new_status):
        self.calls.append(("update_status", device_id, new_status))
        if self.update_error is not None:
            raise self.update_error
        record = self.devices[device_id]
        self.devices[device_id] = dataclasses.replace(
            record, status=new_status, last_updated=record.last_updated + 60
        )
        return f"0xupd{device_id:04d}{new_status.lower()}"

    def get_device(self, device_id):
        self.calls.append(("get_device", device_id))
        if device_id in self.failing_ids:
            raise LedgerCallFailed("getDevice", RuntimeError("rpc unavailable"))
        if device_id not in self.devices:
            raise NotFound(f"Device {device_id} not found on ledger")
        return dataclasses.replace(self.devices[device_id])

    def get_total_devices(self):
        self.calls.append(("get_total_devices",))
        return len(self.devices)

    def get_balance(self):
        if self.balance_error is not None:
            raise self.balance_error
        return self.balance

    def add_device(self, device_type="Laptop", status="Disposed"):
        """Put a device on the fake ledger without going through registration."""
        device_id = len(self.devices) + 1
        self.devices[device_id] = DeviceRecord(
            id=device_id,
            device_type=device_type,
            status=status,
            owner=OWNER,
            registered_at=1700000000,
            last_updated=1700000000,
        )
        return device_id


@pytest.fixture()
def fake_ledger():
    return FakeLedger()


@pytest.fixture()
def store_path(tmp_path):
    return str(tmp_path / "data-store.json")


@pytest.fixture()
def record_store(store_path):
    return RecordStore(store_path)


@pytest.fixture()
def tracker(fake_ledger, record_store):
    """DeviceTracker with a clock that ticks one second per reading."""
    ticks = itertools.count(1700000000000, 1000)
    return DeviceTracker(fake_ledger, record_store, clock=lambda: next(ticks))
