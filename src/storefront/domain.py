"""Storefront bounded context: Order Fulfillment.

Turns an external payment confirmation into a durable order, a carrier
shipment, and a series of customer-visible status emails. Inbound provider
webhooks (payment, email, carrier) are verified and de-duplicated before they
reach the orchestrator; outbound provider calls go through ports so every
component can be exercised without a live provider.
"""

from protean.domain import Domain

storefront = Domain(name="storefront")
