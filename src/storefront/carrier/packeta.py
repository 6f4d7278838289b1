"""Packeta carrier adapter: shipment creation and tracking over the REST API.

Packeta offers no reliable push notifications, so tracking is pulled by the
reconciliation run. Any non-2xx answer to a create request is a
``CarrierRejected``; transport failures and timeouts are
``UpstreamUnavailable`` and are safe to retry.
"""

import httpx
import structlog

from storefront.carrier.port import CarrierPort, ShipmentReceipt, ShipmentRequest
from storefront.errors import CarrierRejected, InvalidPayload, UpstreamUnavailable
from storefront.utils.http import ProviderHttpClient

logger = structlog.get_logger(__name__)

TRACKING_URL_TEMPLATE = "https://tracking.packeta.com/cs/Z{shipment_id}"


class PacketaCarrier(CarrierPort):
    name = "packeta"

    def __init__(
        self,
        api_url: str,
        api_key: str,
        eshop_id: str,
        timeout: float = 15.0,
        max_retries: int = 2,
        backoff_seconds: float = 1.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.eshop_id = eshop_id
        self._http = ProviderHttpClient(
            provider=self.name,
            base_url=api_url,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=timeout,
            max_retries=max_retries,
            backoff_seconds=backoff_seconds,
            transport=transport,
        )

    def tracking_url(self, shipment_id: str) -> str:
        return TRACKING_URL_TEMPLATE.format(shipment_id=shipment_id)

    def _shipment_payload(self, request: ShipmentRequest) -> dict:
        first_name, _, last_name = (request.recipient_name or "").strip().partition(" ")
        payload = {
            "number": request.order_id,
            "name": first_name,
            "surname": last_name,
            "email": request.recipient_email,
            "phone": request.recipient_phone,
            "value": request.value / 100,
            "currency": request.currency,
            "cod": request.cod / 100,
            "weight": float(request.weight_kg),
            "eshop": self.eshop_id,
        }
        if request.pickup_point_id:
            payload["addressId"] = request.pickup_point_id
        elif request.address:
            payload["street"] = request.address.get("street")
            payload["city"] = request.address.get("city")
            payload["zip"] = request.address.get("postal_code")
            payload["country"] = request.address.get("country")
        else:
            raise InvalidPayload(f"Order {request.order_id} has neither a pickup point nor an address")
        return payload

    def create_shipment(self, request: ShipmentRequest) -> ShipmentReceipt:
        response = self._http.request("POST", "/packets", json=self._shipment_payload(request))
        if not response.is_success:
            logger.warning(
                "carrier_rejected_shipment",
                order_id=request.order_id,
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise CarrierRejected(
                f"Packeta rejected shipment for order {request.order_id}: HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise CarrierRejected("Packeta returned an unreadable response", response.status_code) from exc

        shipment_id = body.get("id") or body.get("packetId") or body.get("barcode")
        if not shipment_id:
            raise CarrierRejected("Packeta response did not contain a shipment id", response.status_code)

        shipment_id = str(shipment_id)
        logger.info("carrier_shipment_created", order_id=request.order_id, shipment_id=shipment_id)
        return ShipmentReceipt(
            shipment_id=shipment_id,
            tracking_url=self.tracking_url(shipment_id),
            label_url=body.get("labelUrl") or body.get("label_url"),
        )

    def fetch_tracking(self, shipment_id: str) -> dict:
        response = self._http.request("GET", f"/packets/{shipment_id}/tracking")
        if not response.is_success:
            raise UpstreamUnavailable(
                self.name,
                f"Packeta tracking for {shipment_id} failed: HTTP {response.status_code}",
            )
        try:
            return response.json()
        except ValueError:
            logger.warning("carrier_tracking_unreadable", shipment_id=shipment_id)
            return {}

    def cancel_shipment(self, shipment_id: str) -> bool:
        response = self._http.request("POST", f"/packets/{shipment_id}/cancel")
        if not response.is_success:
            logger.warning(
                "carrier_cancel_refused",
                shipment_id=shipment_id,
                status_code=response.status_code,
            )
            return False
        return True
