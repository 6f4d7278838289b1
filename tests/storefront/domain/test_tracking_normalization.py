"""Tests for carrier tracking payload normalization."""

from datetime import UTC, datetime

import pytest

from storefront.carrier.tracking import TrackingStatus, normalize_status, normalize_tracking
from storefront.utils.timestamps import parse_timestamp


class TestNormalizeStatus:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (7, TrackingStatus.DELIVERED),
            ("7", TrackingStatus.DELIVERED),
            (5, TrackingStatus.READY_FOR_PICKUP),
            (6, TrackingStatus.HANDED_TO_CARRIER),
            (11, TrackingStatus.CANCELLED),
            ("in-transit", TrackingStatus.IN_TRANSIT),
            ("Ready for pickup", TrackingStatus.READY_FOR_PICKUP),
            ("posted back", TrackingStatus.RETURNED),
            ("canceled", TrackingStatus.CANCELLED),
            ({"code": 2, "name": "whatever"}, TrackingStatus.IN_TRANSIT),
        ],
    )
    def test_known_representations(self, value, expected):
        assert normalize_status(value) == expected

    @pytest.mark.parametrize("value", [None, "", "teleported", 99, True])
    def test_unknown_values(self, value):
        assert normalize_status(value) == TrackingStatus.UNKNOWN


class TestNormalizeTracking:
    def test_flat_payload(self):
        state = normalize_tracking(
            "PKT-1",
            {
                "status": "in_transit",
                "statusText": "Parcel is on its way",
                "branchName": "Praha 9",
                "estimatedDelivery": "2026-03-04T12:00:00Z",
            },
        )
        assert state.status == TrackingStatus.IN_TRANSIT
        assert state.status_text == "Parcel is on its way"
        assert state.location == "Praha 9"
        assert state.estimated_delivery == datetime(2026, 3, 4, 12, 0, tzinfo=UTC)

    def test_numeric_code_next_to_unknown_name(self):
        state = normalize_tracking("PKT-1", {"status": "mystery", "statusCode": 7})
        assert state.status == TrackingStatus.DELIVERED

    def test_nested_state_object(self):
        state = normalize_tracking("PKT-1", {"state": {"code": 5, "text": "Waiting at Z-Point"}})
        assert state.status == TrackingStatus.READY_FOR_PICKUP
        assert state.status_text == "Waiting at Z-Point"

    def test_history_sorted_oldest_first_and_drives_status(self):
        state = normalize_tracking(
            "PKT-1",
            {
                "statusRecords": [
                    {"dateTime": "2026-03-03T09:00:00Z", "codeText": "delivered", "branchName": "Brno"},
                    {"dateTime": "2026-03-01T09:00:00Z", "codeText": "received_data"},
                    {"dateTime": "2026-03-02T09:00:00Z", "codeText": "in_transit"},
                ]
            },
        )
        assert [e.status for e in state.events] == [
            TrackingStatus.CREATED,
            TrackingStatus.IN_TRANSIT,
            TrackingStatus.DELIVERED,
        ]
        assert state.status == TrackingStatus.DELIVERED
        assert state.delivered_at == datetime(2026, 3, 3, 9, 0, tzinfo=UTC)
        assert state.location == "Brno"

    def test_record_wrapper(self):
        state = normalize_tracking("PKT-1", {"history": {"record": [{"status": 2, "date": "2026-03-02 10:00:00"}]}})
        assert len(state.events) == 1
        assert state.events[0].status == TrackingStatus.IN_TRANSIT

    def test_explicit_delivered_at_wins(self):
        state = normalize_tracking("PKT-1", {"status": "delivered", "deliveredAt": "2026-03-05T08:30:00+00:00"})
        assert state.is_delivered
        assert state.delivered_at == datetime(2026, 3, 5, 8, 30, tzinfo=UTC)

    @pytest.mark.parametrize("raw", [None, [], "delivered", {}])
    def test_unrecognized_payload_is_unknown(self, raw):
        state = normalize_tracking("PKT-1", raw)
        assert state.status == TrackingStatus.UNKNOWN
        assert state.status_text == "Status unavailable"

    def test_epoch_milliseconds(self):
        state = normalize_tracking("PKT-1", {"status": "delivered", "updatedAt": 1760000000000})
        assert state.is_delivered
        assert state.updated_at == datetime.fromtimestamp(1760000000, UTC)

    @pytest.mark.parametrize("value", [10**30, -(10**30), float("inf"), float("nan")])
    def test_out_of_range_timestamp_is_dropped(self, value):
        state = normalize_tracking("PKT-1", {"status": "delivered", "deliveredAt": value, "updatedAt": value})
        assert state.is_delivered
        assert state.updated_at is None


class TestParseTimestamp:
    @pytest.mark.parametrize(
        "value",
        [1760000000, 1760000000.0, 1760000000000, "2025-10-09T08:53:20Z", "2025-10-09 08:53:20"],
    )
    def test_equivalent_representations(self, value):
        assert parse_timestamp(value) == datetime(2025, 10, 9, 8, 53, 20, tzinfo=UTC)

    @pytest.mark.parametrize("value", [None, "", "soon", True, 10**30])
    def test_unparseable(self, value):
        assert parse_timestamp(value) is None
