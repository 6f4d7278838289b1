"""FastAPI routes for the storefront fulfillment pipeline.

Handlers that reach the store or a provider are plain ``def`` so FastAPI runs
them in its threadpool; webhook handlers read the raw body on the event loop
and hand ingestion to a worker thread. Both paths carry the request's domain
context along.
"""

import asyncio
import base64
import binascii
import json

from fastapi import APIRouter, Depends, Query, Request
from protean.utils.globals import current_domain

from storefront.api.dependencies import (
    get_cart_sweep,
    get_idempotency,
    get_ingestion,
    get_orchestrator,
    get_reconciliation,
    get_weight_catalog,
)
from storefront.api.schemas import (
    CartIdResponse,
    CartMarkResponse,
    CartUpsertRequest,
    ComposeRequest,
    ComposeResponse,
    CreateOrderRequest,
    NotificationResponse,
    OrderOutcomeResponse,
    OrderResponse,
    PruneResponse,
    QuoteRequest,
    QuoteResponse,
    ReconciliationResponse,
    ResendResponse,
    ResolveReturnRequest,
    ReturnCreateRequest,
    ReturnOutcomeResponse,
    ReturnResponse,
    ShipmentResponse,
    SweepResponse,
    TrackingResponse,
    TransitionRequest,
    WebhookAck,
)
from storefront.cart.tracking import MarkCartAbandoned, MarkCartRecovered, UpsertAbandonedCart
from storefront.email.port import Attachment
from storefront.errors import InvalidPayload
from storefront.notification.notification import Notification
from storefront.order.order import Order, parse_status
from storefront.order.returns import ReturnRequest
from storefront.shipping.quote import quote_shipping
from storefront.utils.timestamps import parse_timestamp


def _order_response(order: Order) -> OrderResponse:
    return OrderResponse(
        order_id=str(order.id),
        status=order.status,
        status_text=order.status_text,
        payment_reference=order.payment_reference,
        customer_email=order.customer_email,
        customer_name=order.customer_name,
        delivery_method=order.delivery_method,
        pickup_point_id=order.pickup_point_id,
        pickup_point_name=order.pickup_point_name,
        currency=order.currency,
        amount_total=order.amount_total,
        amount_shipping=order.amount_shipping or 0,
        items=json.loads(order.items_snapshot()),
        carrier_shipment_id=order.carrier_shipment_id,
        carrier_tracking_url=order.carrier_tracking_url,
        tracking_status=order.tracking_status,
        tracking_status_text=order.tracking_status_text,
        created_at=order.created_at,
        updated_at=order.updated_at,
        shipped_at=order.shipped_at,
        delivered_at=order.delivered_at,
        cancellation_reason=order.cancellation_reason,
    )


def _return_response(request: ReturnRequest) -> ReturnResponse:
    return ReturnResponse(
        return_id=str(request.id),
        order_id=str(request.order_id),
        status=request.status,
        reason=request.reason,
        customer_email=request.customer_email,
        admin_note=request.admin_note,
        created_at=request.created_at,
        resolved_at=request.resolved_at,
    )


# ---------------------------------------------------------------------------
# Webhook Router
# ---------------------------------------------------------------------------
webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])


async def _ingest(provider: str, request: Request, ingestion) -> WebhookAck:
    raw_body = await request.body()
    result = await asyncio.to_thread(ingestion.ingest, provider, raw_body, dict(request.headers))
    return WebhookAck(duplicate=result.duplicate, outcome=result.outcome)


@webhook_router.post("/payments", response_model=WebhookAck)
async def payment_webhook(request: Request, ingestion=Depends(get_ingestion)) -> WebhookAck:
    """Payment provider callback (checkout completed / payment confirmed)."""
    return await _ingest("payments", request, ingestion)


@webhook_router.post("/email", response_model=WebhookAck)
async def email_webhook(request: Request, ingestion=Depends(get_ingestion)) -> WebhookAck:
    """Email provider delivery events (delivered, opened, bounced)."""
    return await _ingest("email", request, ingestion)


@webhook_router.post("/carrier", response_model=WebhookAck)
async def carrier_webhook(request: Request, ingestion=Depends(get_ingestion)) -> WebhookAck:
    """Carrier push update for one shipment."""
    return await _ingest("carrier", request, ingestion)


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderOutcomeResponse)
def create_order(body: CreateOrderRequest, orchestrator=Depends(get_orchestrator)) -> OrderOutcomeResponse:
    """Create an order without a confirmed payment (admin)."""
    outcome = orchestrator.place_manual_order(
        items=[item.model_dump() for item in body.items],
        amount_total=body.amount_total,
        currency=body.currency,
        amount_shipping=body.amount_shipping,
        customer_email=body.customer_email,
        customer_name=body.customer_name,
        customer_phone=body.customer_phone,
        delivery_method=body.delivery_method,
        pickup_point_id=body.pickup_point_id,
        pickup_point_name=body.pickup_point_name,
        shipping_address=body.shipping_address.model_dump() if body.shipping_address else None,
    )
    return OrderOutcomeResponse(**outcome.as_dict())


@order_router.get("", response_model=list[OrderResponse])
def list_orders(
    status: str | None = None,
    created_from: str | None = None,
    created_to: str | None = None,
    with_shipment: bool | None = Query(None),
) -> list[OrderResponse]:
    """Admin order list, oldest first."""
    repo = current_domain.repository_for(Order)
    orders = repo.list_by_filter(
        status=parse_status(status) if status else None,
        created_from=parse_timestamp(created_from),
        created_to=parse_timestamp(created_to),
        with_shipment=with_shipment,
    )
    return [_order_response(order) for order in orders]


@order_router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: str) -> OrderResponse:
    return _order_response(current_domain.repository_for(Order).get_by_id(order_id))


@order_router.post("/{order_id}/status", response_model=OrderOutcomeResponse)
def advance_status(
    order_id: str,
    body: TransitionRequest,
    orchestrator=Depends(get_orchestrator),
) -> OrderOutcomeResponse:
    """Admin status change; the response reports a failed customer email without failing."""
    outcome = orchestrator.advance_order_status(
        order_id,
        body.status,
        shipment_id=body.shipment_id,
        tracking_url=body.tracking_url,
        reason=body.reason,
        expected_status=body.expected_status,
    )
    return OrderOutcomeResponse(**outcome.as_dict())


@order_router.post("/{order_id}/shipment", response_model=ShipmentResponse)
def create_shipment(order_id: str, orchestrator=Depends(get_orchestrator)) -> ShipmentResponse:
    """Create the carrier shipment (idempotent: returns the existing one)."""
    return ShipmentResponse(**orchestrator.create_shipment(order_id).as_dict())


@order_router.post("/{order_id}/reconcile", response_model=OrderOutcomeResponse)
def reconcile_order(order_id: str, orchestrator=Depends(get_orchestrator)) -> OrderOutcomeResponse:
    return OrderOutcomeResponse(**orchestrator.reconcile_shipment(order_id).as_dict())


@order_router.get("/{order_id}/tracking", response_model=TrackingResponse)
def track_order(order_id: str, orchestrator=Depends(get_orchestrator)) -> TrackingResponse:
    """Customer tracking lookup; never fails because the carrier is down."""
    view = orchestrator.track_order(order_id)
    return TrackingResponse(**view.__dict__)


@order_router.get("/{order_id}/notifications", response_model=list[NotificationResponse])
def list_notifications(order_id: str) -> list[NotificationResponse]:
    notifications = current_domain.repository_for(Notification).for_order(order_id)
    return [
        NotificationResponse(
            notification_id=str(n.id),
            notification_type=n.notification_type,
            recipient=n.recipient,
            status=n.status,
            subject=n.subject,
            provider_message_id=n.provider_message_id,
            failure_reason=n.failure_reason,
            trigger_status=n.trigger_status,
            created_at=n.created_at,
        )
        for n in notifications
    ]


@order_router.post("/{order_id}/notifications/resend", response_model=ResendResponse)
def resend_notification(order_id: str, orchestrator=Depends(get_orchestrator)) -> ResendResponse:
    """Re-send the email that matches the order's current status."""
    return ResendResponse(**orchestrator.resend_notification(order_id))


@order_router.post("/{order_id}/returns", status_code=201, response_model=ReturnResponse)
def request_return(
    order_id: str,
    body: ReturnCreateRequest,
    orchestrator=Depends(get_orchestrator),
) -> ReturnResponse:
    """Customer return request for a delivered order."""
    request = orchestrator.request_return(
        order_id,
        customer_email=body.customer_email,
        reason=body.reason,
        description=body.description,
    )
    return _return_response(request)


# ---------------------------------------------------------------------------
# Returns Router
# ---------------------------------------------------------------------------
returns_router = APIRouter(prefix="/returns", tags=["returns"])


@returns_router.get("/{return_id}", response_model=ReturnResponse)
def get_return(return_id: str) -> ReturnResponse:
    return _return_response(current_domain.repository_for(ReturnRequest).get(return_id))


@returns_router.post("/{return_id}/resolve", response_model=ReturnOutcomeResponse)
def resolve_return(
    return_id: str,
    body: ResolveReturnRequest,
    orchestrator=Depends(get_orchestrator),
) -> ReturnOutcomeResponse:
    """Approve (order becomes returned) or reject a pending return request."""
    outcome = orchestrator.resolve_return(return_id, approve=body.approve, note=body.note)
    return ReturnOutcomeResponse(**outcome.as_dict())


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/carts", tags=["carts"])


@cart_router.put("/{session_id}", response_model=CartIdResponse)
def upsert_cart(session_id: str, body: CartUpsertRequest) -> CartIdResponse:
    """Record the current contents of a browser session's cart."""
    command = UpsertAbandonedCart(
        session_id=session_id,
        items=json.dumps(body.items),
        total_amount=body.total_amount,
        customer_email=body.customer_email,
        customer_name=body.customer_name,
    )
    result = current_domain.process(command, asynchronous=False)
    return CartIdResponse(cart_id=result)


@cart_router.put("/{session_id}/recover", response_model=CartMarkResponse)
def recover_cart(session_id: str) -> CartMarkResponse:
    changed = current_domain.process(MarkCartRecovered(session_id=session_id), asynchronous=False)
    return CartMarkResponse(session_id=session_id, changed=bool(changed))


@cart_router.put("/{session_id}/abandon", response_model=CartMarkResponse)
def abandon_cart(session_id: str) -> CartMarkResponse:
    changed = current_domain.process(MarkCartAbandoned(session_id=session_id), asynchronous=False)
    return CartMarkResponse(session_id=session_id, changed=bool(changed))


# ---------------------------------------------------------------------------
# Shipping Router
# ---------------------------------------------------------------------------
shipping_router = APIRouter(prefix="/shipping", tags=["shipping"])


@shipping_router.post("/quote", response_model=QuoteResponse)
def shipping_quote(body: QuoteRequest, catalog=Depends(get_weight_catalog)) -> QuoteResponse:
    """Price a cart; creates no records."""
    quote = quote_shipping(
        [(item.product_id, item.quantity) for item in body.items],
        body.delivery_method,
        catalog,
    )
    return QuoteResponse(
        carrier=quote.carrier,
        service=quote.service,
        delivery_method=quote.delivery_method,
        weight_kg=str(quote.weight_kg),
        base=quote.base,
        fuel_surcharge=quote.fuel_surcharge,
        toll=quote.toll,
        handling=quote.handling,
        total=quote.total,
        currency=quote.currency,
    )


# ---------------------------------------------------------------------------
# Notifications Router
# ---------------------------------------------------------------------------
notification_router = APIRouter(prefix="/notifications", tags=["notifications"])


def _attachments(body: ComposeRequest) -> list[Attachment]:
    attachments = []
    for item in body.attachments:
        try:
            content = base64.b64decode(item.content_base64, validate=True)
        except (binascii.Error, ValueError):
            raise InvalidPayload(f"Attachment {item.filename} is not valid base64") from None
        attachments.append(Attachment(filename=item.filename, content=content, content_type=item.content_type))
    return attachments


@notification_router.post("/compose", status_code=201, response_model=ComposeResponse)
def compose(body: ComposeRequest, orchestrator=Depends(get_orchestrator)) -> ComposeResponse:
    """Send a support reply written by an admin."""
    notification = orchestrator.compose_support_reply(
        body.to,
        body.subject,
        body.html,
        order_id=body.order_id,
        attachments=_attachments(body),
    )
    return ComposeResponse(notification_id=str(notification.id), provider_message_id=notification.provider_message_id)


# ---------------------------------------------------------------------------
# Maintenance Router (cron triggers)
# ---------------------------------------------------------------------------
maintenance_router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@maintenance_router.post("/reconcile", response_model=ReconciliationResponse)
def reconcile_shipments(scheduler=Depends(get_reconciliation)) -> ReconciliationResponse:
    return ReconciliationResponse(**scheduler.run().as_dict())


@maintenance_router.post("/abandoned-carts/sweep", response_model=SweepResponse)
def sweep_abandoned_carts(sweep=Depends(get_cart_sweep)) -> SweepResponse:
    report = sweep.run()
    return SweepResponse(abandoned=report.abandoned, emailed=report.emailed, failed=report.failed)


@maintenance_router.post("/processed-events/prune", response_model=PruneResponse)
def prune_processed_events(idempotency=Depends(get_idempotency)) -> PruneResponse:
    return PruneResponse(removed=idempotency.prune())
