"""Carrier port: abstract interface for shipping carrier integrations.

All carrier adapters must implement this interface. The orchestrator programs
against the port; adapters are swapped via configuration.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal

from storefront.carrier.tracking import TrackingState, normalize_tracking


@dataclass(frozen=True)
class ShipmentRequest:
    """Everything the carrier needs to create a parcel for one order."""

    order_id: str
    recipient_name: str
    recipient_email: str | None
    recipient_phone: str | None
    value: int  # minor units
    currency: str
    weight_kg: Decimal
    pickup_point_id: str | None = None
    address: dict | None = None
    cod: int = 0


@dataclass(frozen=True)
class ShipmentReceipt:
    shipment_id: str
    tracking_url: str
    label_url: str | None = None


class CarrierPort(ABC):
    """Abstract interface for carrier adapters."""

    name = "carrier"

    @abstractmethod
    def create_shipment(self, request: ShipmentRequest) -> ShipmentReceipt:
        """Create a shipment with the carrier.

        Raises:
            CarrierRejected: the carrier answered with a non-2xx response.
            UpstreamUnavailable: the carrier could not be reached in time.
        """
        ...

    @abstractmethod
    def fetch_tracking(self, shipment_id: str) -> dict:
        """Return the carrier's raw tracking payload for a shipment.

        Raises:
            UpstreamUnavailable: the carrier could not be reached in time.
        """
        ...

    @abstractmethod
    def cancel_shipment(self, shipment_id: str) -> bool:
        """Ask the carrier to cancel a shipment that has not been handed over yet."""
        ...

    @abstractmethod
    def tracking_url(self, shipment_id: str) -> str:
        """Public tracking page for a shipment."""
        ...

    def get_tracking(self, shipment_id: str) -> TrackingState:
        """Fetch and normalize tracking; unrecognized payloads yield an ``unknown`` state."""
        return normalize_tracking(shipment_id, self.fetch_tracking(shipment_id))
