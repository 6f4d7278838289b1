"""Carrier tracking state and the normalization of provider payloads into it.

Carrier APIs have renamed their fields across versions (``status`` vs
``state.name`` vs numeric ``statusCode``, ``updatedAt`` vs ``dateTime``...).
Everything past this module sees only ``TrackingState``. An unrecognized or
missing status becomes ``TrackingStatus.UNKNOWN``; normalization never raises.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from storefront.utils.timestamps import parse_timestamp


class TrackingStatus(Enum):
    CREATED = "created"
    HANDED_TO_CARRIER = "handed_to_carrier"
    IN_TRANSIT = "in_transit"
    READY_FOR_PICKUP = "ready_for_pickup"
    DELIVERED = "delivered"
    RETURNED = "returned"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


TRACKING_STATUS_TEXTS = {
    TrackingStatus.CREATED: "Shipment data received by the carrier",
    TrackingStatus.HANDED_TO_CARRIER: "Handed over to the carrier",
    TrackingStatus.IN_TRANSIT: "In transit",
    TrackingStatus.READY_FOR_PICKUP: "Ready for pickup",
    TrackingStatus.DELIVERED: "Delivered",
    TrackingStatus.RETURNED: "Returned to sender",
    TrackingStatus.CANCELLED: "Cancelled",
    TrackingStatus.UNKNOWN: "Status unavailable",
}

# Packeta numeric status codes
_STATUS_CODES = {
    1: TrackingStatus.CREATED,
    2: TrackingStatus.IN_TRANSIT,
    3: TrackingStatus.IN_TRANSIT,
    4: TrackingStatus.IN_TRANSIT,
    5: TrackingStatus.READY_FOR_PICKUP,
    6: TrackingStatus.HANDED_TO_CARRIER,
    7: TrackingStatus.DELIVERED,
    9: TrackingStatus.RETURNED,
    10: TrackingStatus.RETURNED,
    11: TrackingStatus.CANCELLED,
    12: TrackingStatus.IN_TRANSIT,
    14: TrackingStatus.IN_TRANSIT,
    15: TrackingStatus.RETURNED,
    16: TrackingStatus.IN_TRANSIT,
    17: TrackingStatus.RETURNED,
}

_STATUS_NAMES = {
    "created": TrackingStatus.CREATED,
    "received_data": TrackingStatus.CREATED,
    "data_received": TrackingStatus.CREATED,
    "handed_to_carrier": TrackingStatus.HANDED_TO_CARRIER,
    "handed_over": TrackingStatus.HANDED_TO_CARRIER,
    "in_transit": TrackingStatus.IN_TRANSIT,
    "arrived": TrackingStatus.IN_TRANSIT,
    "prepared_for_departure": TrackingStatus.IN_TRANSIT,
    "departed": TrackingStatus.IN_TRANSIT,
    "collected": TrackingStatus.IN_TRANSIT,
    "customs": TrackingStatus.IN_TRANSIT,
    "delivery_attempt": TrackingStatus.IN_TRANSIT,
    "ready_for_pickup": TrackingStatus.READY_FOR_PICKUP,
    "delivered": TrackingStatus.DELIVERED,
    "returned": TrackingStatus.RETURNED,
    "posted_back": TrackingStatus.RETURNED,
    "rejected": TrackingStatus.RETURNED,
    "cancelled": TrackingStatus.CANCELLED,
    "canceled": TrackingStatus.CANCELLED,
}

_STATUS_KEYS = ("status", "state", "statusCode", "status_code", "codeText", "code")
_TEXT_KEYS = ("statusText", "status_text", "text", "description")
_LOCATION_KEYS = ("location", "branchName", "branch", "lastLocation", "last_location")
_ESTIMATE_KEYS = ("estimatedDelivery", "estimated_delivery", "eta")
_DELIVERED_KEYS = ("deliveredAt", "delivered_at", "deliveryDate")
_TIME_KEYS = ("dateTime", "occurred_at", "occurredAt", "date", "timestamp", "time", "updatedAt", "updated_at")
_HISTORY_KEYS = ("events", "history", "statusRecords", "tracking")


@dataclass(frozen=True)
class TrackingEvent:
    occurred_at: datetime | None
    status: TrackingStatus
    status_text: str
    location: str | None = None


@dataclass(frozen=True)
class TrackingState:
    shipment_id: str
    status: TrackingStatus
    status_text: str
    location: str | None = None
    estimated_delivery: datetime | None = None
    delivered_at: datetime | None = None
    updated_at: datetime | None = None
    events: tuple[TrackingEvent, ...] = ()
    raw: dict = field(default_factory=dict, compare=False)

    @classmethod
    def unknown(cls, shipment_id: str, raw: dict | None = None) -> "TrackingState":
        return cls(
            shipment_id=shipment_id,
            status=TrackingStatus.UNKNOWN,
            status_text=TRACKING_STATUS_TEXTS[TrackingStatus.UNKNOWN],
            raw=raw or {},
        )

    @property
    def is_delivered(self) -> bool:
        return self.status == TrackingStatus.DELIVERED


def _first(data: dict, keys) -> object | None:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def normalize_status(value) -> TrackingStatus:
    """Map any provider status representation onto ``TrackingStatus``."""
    if isinstance(value, dict):
        value = _first(value, ("code", "name", "status"))
    if value is None or isinstance(value, bool):
        return TrackingStatus.UNKNOWN
    if isinstance(value, int):
        return _STATUS_CODES.get(value, TrackingStatus.UNKNOWN)

    text = str(value).strip()
    if text.isdigit():
        return _STATUS_CODES.get(int(text), TrackingStatus.UNKNOWN)
    key = text.lower().replace("-", "_").replace(" ", "_")
    return _STATUS_NAMES.get(key, TrackingStatus.UNKNOWN)


def _status_of(data: dict) -> TrackingStatus:
    # Try every variant: a numeric code may be present next to an unknown name
    for key in _STATUS_KEYS:
        status = normalize_status(data.get(key))
        if status != TrackingStatus.UNKNOWN:
            return status
    return TrackingStatus.UNKNOWN


def _text_of(data: dict, status: TrackingStatus) -> str:
    text = _first(data, _TEXT_KEYS)
    state = data.get("state")
    if text is None and isinstance(state, dict):
        text = _first(state, ("text", "description"))
    return str(text) if text is not None else TRACKING_STATUS_TEXTS[status]


def _location_of(data: dict) -> str | None:
    location = _first(data, _LOCATION_KEYS)
    if isinstance(location, dict):
        location = _first(location, ("name", "city", "place"))
    return str(location) if location is not None else None


def _event_from(data: dict) -> TrackingEvent:
    status = _status_of(data)
    return TrackingEvent(
        occurred_at=parse_timestamp(_first(data, _TIME_KEYS)),
        status=status,
        status_text=_text_of(data, status),
        location=_location_of(data),
    )


def _history_of(raw: dict) -> tuple[TrackingEvent, ...]:
    history = _first(raw, _HISTORY_KEYS)
    if isinstance(history, dict):
        # {"record": [...]} wrappers from XML-to-JSON bridges
        history = _first(history, ("record", "records", "items"))
    if not isinstance(history, list):
        return ()
    events = [_event_from(entry) for entry in history if isinstance(entry, dict)]
    # Undated events keep their relative order at the start
    dated = sorted((e for e in events if e.occurred_at is not None), key=lambda e: e.occurred_at)
    undated = [e for e in events if e.occurred_at is None]
    return tuple(undated + dated)


def normalize_tracking(shipment_id: str, raw: dict | None) -> TrackingState:
    """Build a ``TrackingState`` from any known carrier payload shape."""
    if not isinstance(raw, dict):
        return TrackingState.unknown(shipment_id)

    events = _history_of(raw)
    status = _status_of(raw)
    if status == TrackingStatus.UNKNOWN and events:
        status = events[-1].status

    delivered_at = parse_timestamp(_first(raw, _DELIVERED_KEYS))
    if delivered_at is None and status == TrackingStatus.DELIVERED:
        delivered_at = next(
            (e.occurred_at for e in reversed(events) if e.status == TrackingStatus.DELIVERED),
            None,
        )

    location = _location_of(raw)
    if location is None and events:
        location = events[-1].location

    return TrackingState(
        shipment_id=str(shipment_id),
        status=status,
        status_text=_text_of(raw, status),
        location=location,
        estimated_delivery=parse_timestamp(_first(raw, _ESTIMATE_KEYS)),
        delivered_at=delivered_at,
        updated_at=parse_timestamp(_first(raw, _TIME_KEYS)),
        events=events,
        raw=raw,
    )
