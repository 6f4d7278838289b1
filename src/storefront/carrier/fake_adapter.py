"""Fake carrier adapter: deterministic carrier for testing and development.

Issues sequential ``PKT-`` shipment ids and reports whatever tracking status
a test sets for a shipment. Configurable success/failure behavior for
integration testing.
"""

from storefront.carrier.port import CarrierPort, ShipmentReceipt, ShipmentRequest
from storefront.errors import CarrierRejected, UpstreamUnavailable


class FakeCarrier(CarrierPort):
    """Fake carrier that always succeeds by default."""

    name = "fake-carrier"

    def __init__(self):
        self.should_succeed = True
        self.failure_reason = "Carrier unavailable"
        self.reachable = True
        self.created: list[ShipmentRequest] = []
        self.cancelled: list[str] = []
        self.tracking_calls: list[str] = []
        self._tracking: dict[str, dict] = {}
        self._sequence = 0

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Carrier unavailable",
        reachable: bool = True,
    ):
        """Configure the fake carrier behavior for testing.

        ``should_succeed=False`` rejects shipment creation (HTTP 422 style);
        ``reachable=False`` makes every call time out.
        """
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.reachable = reachable

    def set_tracking(self, shipment_id: str, payload: dict) -> None:
        """Set the raw payload the carrier reports for a shipment."""
        self._tracking[shipment_id] = payload

    def set_status(self, shipment_id: str, status: str, **extra) -> None:
        self.set_tracking(shipment_id, {"status": status, **extra})

    def tracking_url(self, shipment_id: str) -> str:
        return f"https://tracking.fake-carrier.example.com/{shipment_id}"

    def create_shipment(self, request: ShipmentRequest) -> ShipmentReceipt:
        if not self.reachable:
            raise UpstreamUnavailable(self.name, self.failure_reason)
        if not self.should_succeed:
            raise CarrierRejected(self.failure_reason, status_code=422)

        self._sequence += 1
        shipment_id = f"PKT-{self._sequence:06d}"
        self.created.append(request)
        self._tracking.setdefault(shipment_id, {"status": "created"})
        return ShipmentReceipt(
            shipment_id=shipment_id,
            tracking_url=self.tracking_url(shipment_id),
            label_url=f"https://fake-carrier.example.com/labels/{shipment_id}.pdf",
        )

    def fetch_tracking(self, shipment_id: str) -> dict:
        self.tracking_calls.append(shipment_id)
        if not self.reachable:
            raise UpstreamUnavailable(self.name, self.failure_reason)
        return dict(self._tracking.get(shipment_id, {}))

    def cancel_shipment(self, shipment_id: str) -> bool:
        if not self.reachable or not self.should_succeed:
            return False
        self.cancelled.append(shipment_id)
        self._tracking[shipment_id] = {"status": "cancelled"}
        return True
