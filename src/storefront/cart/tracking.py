"""Cart tracking: commands sent by the storefront as a shopper fills a cart."""

import json

import structlog
from protean import handle
from protean.fields import Integer, String, Text
from protean.utils.globals import current_domain

from storefront.cart.cart import AbandonedCart, session_locks
from storefront.domain import storefront

logger = structlog.get_logger(__name__)


@storefront.command(part_of="AbandonedCart")
class UpsertAbandonedCart:
    """Record the latest contents of a session's cart."""

    session_id = String(required=True, max_length=255)
    items = Text(required=True)  # JSON list of cart lines
    total_amount = Integer(min_value=0, default=0)
    customer_email = String(max_length=254)
    customer_name = String(max_length=255)


@storefront.command(part_of="AbandonedCart")
class MarkCartRecovered:
    session_id = String(required=True, max_length=255)


@storefront.command(part_of="AbandonedCart")
class MarkCartAbandoned:
    session_id = String(required=True, max_length=255)


@storefront.command_handler(part_of=AbandonedCart)
class CartTrackingHandler:
    @handle(UpsertAbandonedCart)
    def upsert(self, command):
        repo = current_domain.repository_for(AbandonedCart)
        items = json.loads(command.items)
        with session_locks.hold(command.session_id):
            cart = repo.find_by_session(command.session_id)
            if cart is None:
                cart = AbandonedCart.create(
                    session_id=command.session_id,
                    items=items,
                    total_amount=command.total_amount,
                    customer_email=command.customer_email,
                    customer_name=command.customer_name,
                )
            else:
                cart.update_contents(
                    items=items,
                    total_amount=command.total_amount,
                    customer_email=command.customer_email,
                    customer_name=command.customer_name,
                )
            repo.add(cart)
        return str(cart.id)

    @handle(MarkCartRecovered)
    def mark_recovered(self, command):
        repo = current_domain.repository_for(AbandonedCart)
        with session_locks.hold(command.session_id):
            cart = repo.find_by_session(command.session_id)
            if cart is None:
                logger.info("cart_recovery_without_cart", session_id=command.session_id)
                return False
            changed = cart.mark_recovered()
            if changed:
                repo.add(cart)
        return changed

    @handle(MarkCartAbandoned)
    def mark_abandoned(self, command):
        repo = current_domain.repository_for(AbandonedCart)
        with session_locks.hold(command.session_id):
            cart = repo.find_by_session(command.session_id)
            if cart is None:
                return False
            changed = cart.mark_abandoned()
            if changed:
                repo.add(cart)
        return changed
