"""
Tests for Module 05 — Reconciliation Service.
Runs DeviceTracker against the in-memory FakeLedger and a real RecordStore
in a temp dir.
"""
import pytest

from impact.calculator import (
    ImpactKind,
    calculate_projected_impact,
    calculate_verified_impact,
    derive_impact,
)
from tracker.errors import (
    IdentifierResolutionFailed,
    InvalidDeviceType,
    LedgerCallFailed,
    NotFound,
    ValidationError,
)
from tracker.models import DeviceMetadata, TimelineEntry
from tracker.record_store import RecordStore


class TestRegisterDevice:
    def test_round_trip(self, tracker):
        result = tracker.register_device("Laptop", 2.5, "Downtown Seattle")
        assert result.device_id == 1
        assert result.confirmation_ref == "0xreg0001"
        assert result.projected_impact.kind == ImpactKind.PROJECTED

        view = tracker.get_device_view(result.device_id)
        assert view.metadata_missing is False
        assert view.metadata == DeviceMetadata(1, 2.5, "Downtown Seattle", 15.0)
        assert view.projected_impact == result.projected_impact
        assert view.verified_impact is None
        assert len(view.timeline) == 1
        assert view.timeline[0].status == "Disposed"
        assert view.timeline[0].confirmation_ref == "0xreg0001"

    def test_projected_matches_calculator(self, tracker):
        result = tracker.register_device("TV", 15, "rural village road")
        expected = derive_impact("TV", 15, 80)
        assert result.projected_impact.co2_saved_kg == expected.co2_saved_kg
        assert result.projected_impact.sustainability_score == expected.sustainability_score

    @pytest.mark.parametrize("device_type,weight,location,error", [
        ("Toaster", 1.0, "city", InvalidDeviceType),
        ("Laptop", 0, "city", ValidationError),
        ("Laptop", -2.0, "city", ValidationError),
        ("Laptop", float("nan"), "city", ValidationError),
        ("Laptop", 2.0, "", ValidationError),
        ("Laptop", 2.0, "   ", ValidationError),
    ])
    def test_validation_happens_before_ledger(self, tracker, fake_ledger, device_type, weight, location, error):
        with pytest.raises(error):
            tracker.register_device(device_type, weight, location)
        assert fake_ledger.calls == []

    def test_ledger_failure_leaves_no_local_record(self, tracker, fake_ledger, record_store):
        fake_ledger.register_error = LedgerCallFailed("registerDevice", RuntimeError("nonce too low"))
        with pytest.raises(LedgerCallFailed):
            tracker.register_device("Phone", 0.2, "city")
        assert record_store.device_ids() == []
        assert record_store.get_timeline(1) == []

    def test_identifier_failure_leaves_no_local_record(self, tracker, fake_ledger, record_store):
        fake_ledger.register_error = IdentifierResolutionFailed(RuntimeError("counter unreadable"))
        with pytest.raises(IdentifierResolutionFailed):
            tracker.register_device("Phone", 0.2, "city")
        assert record_store.device_ids() == []

    def test_persisted_to_disk(self, tracker, store_path):
        tracker.register_device("Phone", 0.2, "123 Main St")
        reloaded = RecordStore(store_path)
        assert reloaded.get_metadata(1).transport_distance_km == 30.0
        assert reloaded.get_projected_impact(1) is not None

    def test_stale_local_records_for_new_id_are_replaced(self, tracker, record_store):
        # Left over from an earlier deployment that also handed out id 1.
        record_store.store_metadata(DeviceMetadata(1, 15.0, "remote", 80.0))
        record_store.store_projected_impact(calculate_projected_impact(1, "TV", 15.0, 80.0))
        record_store.store_verified_impact(calculate_verified_impact(1, "TV", 15.0, 80.0))
        record_store.append_timeline_entry(1, TimelineEntry("Recycled", 1800000000000, "0xold"))

        result = tracker.register_device("Phone", 0.2, "123 Main St")
        expected = derive_impact("Phone", 0.2, 30)
        assert result.device_id == 1
        assert result.projected_impact.co2_saved_kg == expected.co2_saved_kg == 70.0

        view = tracker.get_device_view(1)
        assert view.metadata == DeviceMetadata(1, 0.2, "123 Main St", 30.0)
        assert view.projected_impact == result.projected_impact
        assert view.verified_impact is None
        assert [(e.status, e.confirmation_ref) for e in view.timeline] == [("Disposed", "0xreg0001")]
        assert view.timeline[0].timestamp == 1700000000000


class TestUpdateStatus:
    def test_collected_has_no_verified_impact(self, tracker):
        tracker.register_device("Laptop", 2.5, "city")
        result = tracker.update_status(1, "Collected")
        assert result.new_status == "Collected"
        assert result.confirmation_ref == "0xupd0001collected"
        assert result.verified_impact is None

    def test_full_lifecycle(self, tracker):
        tracker.register_device("Laptop", 2.5, "city")
        tracker.update_status(1, "Collected")
        result = tracker.update_status(1, "Recycled")

        assert result.verified_impact is not None
        assert result.verified_impact.kind == ImpactKind.VERIFIED

        view = tracker.get_device_view(1)
        assert view.record.status == "Recycled"
        assert view.verified_impact == result.verified_impact
        assert [e.status for e in view.timeline] == ["Disposed", "Collected", "Recycled"]
        timestamps = [e.timestamp for e in view.timeline]
        assert timestamps == sorted(timestamps)

    def test_verified_uses_ledger_device_type(self, tracker, fake_ledger, record_store):
        device_id = fake_ledger.add_device("TV", status="Collected")
        record_store.store_metadata(DeviceMetadata(device_id, 15.0, "remote", 80.0))
        result = tracker.update_status(device_id, "Recycled")
        assert result.verified_impact.co2_saved_kg == derive_impact("TV", 15.0, 80.0).co2_saved_kg
        assert ("get_device", device_id) in fake_ledger.calls

    @pytest.mark.parametrize("status", ["Disposed", "recycled", "Lost", ""])
    def test_invalid_status(self, tracker, fake_ledger, status):
        tracker.register_device("Laptop", 2.5, "city")
        with pytest.raises(ValidationError):
            tracker.update_status(1, status)
        assert not any(c[0] == "update_status" for c in fake_ledger.calls)

    def test_unknown_device_is_not_found(self, tracker, fake_ledger):
        with pytest.raises(NotFound):
            tracker.update_status(9, "Collected")
        assert fake_ledger.calls == []

    def test_ledger_failure_appends_nothing(self, tracker, fake_ledger, record_store):
        tracker.register_device("Laptop", 2.5, "city")
        fake_ledger.update_error = LedgerCallFailed("updateStatus", RuntimeError("reverted"))
        with pytest.raises(LedgerCallFailed):
            tracker.update_status(1, "Collected")
        assert len(record_store.get_timeline(1)) == 1


class TestDeviceView:
    def test_metadata_missing_is_soft(self, tracker, fake_ledger):
        fake_ledger.add_device("Phone")
        view = tracker.get_device_view(1)
        assert view.metadata_missing is True
        assert view.record.device_type == "Phone"
        assert view.metadata is None
        assert view.timeline == []

    def test_unknown_on_ledger(self, tracker):
        with pytest.raises(NotFound):
            tracker.get_device_view(3)

    def test_missing_verified_is_recomputed(self, tracker, fake_ledger, record_store):
        device_id = fake_ledger.add_device("Laptop", status="Recycled")
        record_store.store_metadata(DeviceMetadata(device_id, 2.5, "city", 15.0))
        view = tracker.get_device_view(device_id)
        assert view.verified_impact is not None
        assert view.verified_impact.kind == ImpactKind.VERIFIED
        assert record_store.get_verified_impact(device_id) == view.verified_impact

    def test_not_recycled_gets_no_verified(self, tracker, fake_ledger, record_store):
        device_id = fake_ledger.add_device("Laptop", status="Collected")
        record_store.store_metadata(DeviceMetadata(device_id, 2.5, "city", 15.0))
        assert tracker.get_device_view(device_id).verified_impact is None
        assert record_store.get_verified_impact(device_id) is None


class TestEstimateImpact:
    def test_no_persistence(self, tracker, fake_ledger, record_store):
        snapshot = tracker.estimate_impact("Phone", 0.2, 30)
        assert snapshot.co2_saved_kg == 70.0
        assert snapshot.device_id is None
        assert fake_ledger.calls == []
        assert record_store.device_ids() == []

    def test_rejects_zero_weight(self, tracker):
        with pytest.raises(ValidationError):
            tracker.estimate_impact("Phone", 0, 30)

    def test_rejects_unknown_type(self, tracker):
        with pytest.raises(InvalidDeviceType):
            tracker.estimate_impact("Fridge", 40, 30)

    def test_rejects_negative_distance(self, tracker):
        with pytest.raises(ValidationError):
            tracker.estimate_impact("Phone", 0.2, -5)


class TestEnumeration:
    def test_empty_dashboard(self, tracker):
        stats = tracker.get_dashboard_stats()
        assert stats.total_devices == 0
        assert stats.total_co2_saved_kg == 0
        assert stats.total_toxic_waste_prevented_kg == 0
        assert stats.average_sustainability_score == 0
        assert stats.devices_by_status == {"disposed": 0, "collected": 0, "recycled": 0}

    def test_dashboard_sums_recycled_only(self, tracker):
        tracker.register_device("Laptop", 2.5, "city")
        tracker.register_device("TV", 15, "rural")
        tracker.register_device("Phone", 0.2, "suburb")
        tracker.update_status(1, "Collected")
        tracker.update_status(2, "Collected")
        tracker.update_status(2, "Recycled")

        stats = tracker.get_dashboard_stats()
        tv = derive_impact("TV", 15, 80)
        assert stats.total_devices == 3
        assert stats.devices_by_status == {"disposed": 1, "collected": 1, "recycled": 1}
        assert stats.total_co2_saved_kg == tv.co2_saved_kg
        assert stats.total_toxic_waste_prevented_kg == tv.toxic_waste_prevented_kg
        assert stats.average_sustainability_score == tv.sustainability_score

    def test_dashboard_skips_failed_fetch(self, tracker, fake_ledger):
        tracker.register_device("Laptop", 2.5, "city")
        tracker.register_device("Phone", 0.2, "city")
        fake_ledger.failing_ids.add(1)
        stats = tracker.get_dashboard_stats()
        assert stats.total_devices == 1

    def test_dashboard_repairs_missing_verified(self, tracker, fake_ledger, record_store):
        device_id = fake_ledger.add_device("TV", status="Recycled")
        record_store.store_metadata(DeviceMetadata(device_id, 15.0, "remote", 80.0))
        stats = tracker.get_dashboard_stats()
        assert stats.total_co2_saved_kg == derive_impact("TV", 15.0, 80.0).co2_saved_kg

    def test_recycled_without_metadata_contributes_zero(self, tracker, fake_ledger):
        fake_ledger.add_device("TV", status="Recycled")
        stats = tracker.get_dashboard_stats()
        assert stats.devices_by_status["recycled"] == 1
        assert stats.total_co2_saved_kg == 0
        assert stats.average_sustainability_score == 0

    def test_list_devices(self, tracker, fake_ledger):
        tracker.register_device("Laptop", 2.5, "city")
        fake_ledger.add_device("Phone")
        listing = tracker.list_devices()
        assert listing.total == 2
        assert [v.record.id for v in listing.devices] == [1, 2]
        assert listing.devices[0].metadata_missing is False
        assert listing.devices[1].metadata_missing is True

    def test_list_devices_skips_failures(self, tracker, fake_ledger):
        fake_ledger.add_device("Laptop")
        fake_ledger.add_device("Phone")
        fake_ledger.failing_ids.add(2)
        listing = tracker.list_devices()
        assert listing.total == 2
        assert len(listing.devices) == 1


class TestHealth:
    def test_healthy(self, tracker):
        tracker.register_device("Laptop", 2.5, "city")
        report = tracker.health()
        assert report.healthy
        assert report.balance == "1.25"
        assert report.total_devices == 1
        assert report.to_dict()["blockchain"]["balance"] == "1.25 MATIC"

    def test_unhealthy(self, tracker, fake_ledger):
        fake_ledger.balance_error = LedgerCallFailed("getBalance", ConnectionError("refused"))
        report = tracker.health()
        assert not report.healthy
        assert "getBalance" in report.error
        assert report.to_dict()["status"] == "unhealthy"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
