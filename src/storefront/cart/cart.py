"""Abandoned cart: a snapshot of a browser session's cart, kept for recovery.

Identified by the storefront session id. ``abandoned_at`` and
``recovered_at`` are never set at the same time: recovering clears the
abandonment, and a recovered cart cannot be abandoned. Any change to the cart
contents means the customer is active again and clears both markers.
"""

import json
from datetime import datetime

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Integer, String, Text

from storefront.domain import storefront
from storefront.utils.locks import KeyedLocks
from storefront.utils.timestamps import as_utc, utcnow

# Serializes find-then-add on one session; session_id is also unique in storage
session_locks = KeyedLocks()


@storefront.event(part_of="AbandonedCart")
class CartAbandoned:
    __version__ = 1

    session_id = String(required=True)
    customer_email = String()
    total_amount = Integer()
    abandoned_at = DateTime(required=True)


@storefront.event(part_of="AbandonedCart")
class CartRecovered:
    __version__ = 1

    session_id = String(required=True)
    recovered_at = DateTime(required=True)


@storefront.aggregate
class AbandonedCart:
    session_id = String(required=True, max_length=255, unique=True)
    customer_email = String(max_length=254)
    customer_name = String(max_length=255)
    items = Text()  # JSON snapshot of cart lines
    total_amount = Integer(min_value=0, default=0)
    currency = String(max_length=3, default="CZK")

    abandoned_at = DateTime()
    recovered_at = DateTime()
    email_sent_at = DateTime()

    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def abandoned_and_recovered_are_exclusive(self):
        if self.abandoned_at is not None and self.recovered_at is not None:
            raise ValidationError({"cart": ["A cart cannot be abandoned and recovered at the same time"]})

    @classmethod
    def create(cls, session_id, items, total_amount, customer_email=None, customer_name=None, currency="CZK"):
        now = utcnow()
        return cls(
            session_id=session_id,
            items=json.dumps(items or []),
            total_amount=total_amount or 0,
            currency=currency,
            customer_email=customer_email,
            customer_name=customer_name,
            created_at=now,
            updated_at=now,
        )

    @property
    def item_list(self) -> list[dict]:
        return json.loads(self.items) if self.items else []

    @property
    def is_recovered(self) -> bool:
        return self.recovered_at is not None

    @property
    def is_abandoned(self) -> bool:
        return self.abandoned_at is not None

    def update_contents(self, items, total_amount, customer_email=None, customer_name=None) -> None:
        self.abandoned_at = None
        self.recovered_at = None
        self.email_sent_at = None
        self.items = json.dumps(items or [])
        self.total_amount = total_amount or 0
        if customer_email:
            self.customer_email = customer_email
        if customer_name:
            self.customer_name = customer_name
        self.updated_at = utcnow()

    def mark_recovered(self, at: datetime | None = None) -> bool:
        if self.is_recovered:
            return False
        now = at or utcnow()
        self.abandoned_at = None
        self.recovered_at = now
        self.updated_at = now
        self.raise_(CartRecovered(session_id=self.session_id, recovered_at=now))
        return True

    def mark_abandoned(self, at: datetime | None = None) -> bool:
        """Flag the cart abandoned; recovered or already-abandoned carts are left alone."""
        if self.is_recovered or self.is_abandoned:
            return False
        now = at or utcnow()
        self.abandoned_at = now
        self.raise_(
            CartAbandoned(
                session_id=self.session_id,
                customer_email=self.customer_email,
                total_amount=self.total_amount,
                abandoned_at=now,
            )
        )
        return True

    def record_recovery_email(self, at: datetime | None = None) -> None:
        self.email_sent_at = at or utcnow()

    def idle_since(self, cutoff: datetime) -> bool:
        return self.updated_at is not None and as_utc(self.updated_at) <= as_utc(cutoff)


@storefront.repository(part_of=AbandonedCart)
class AbandonedCartRepository:
    def find_by_session(self, session_id: str) -> AbandonedCart | None:
        results = self._dao.query.filter(session_id=session_id).all().items
        return results[0] if results else None

    def sweep_candidates(self, cutoff: datetime, limit: int) -> list[AbandonedCart]:
        """Idle carts with an email that are neither abandoned nor recovered, oldest first."""
        carts = [
            cart
            for cart in self._dao.query.all().items
            if cart.customer_email and not cart.is_abandoned and not cart.is_recovered and cart.idle_since(cutoff)
        ]
        carts.sort(key=lambda cart: as_utc(cart.updated_at))
        return carts[:limit]
