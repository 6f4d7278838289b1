"""Return requests: the customer-initiated path from ``delivered`` to ``returned``.

A request never touches the order by itself. Only an admin approval moves the
order to ``returned``; a rejection just records the admin's note.

State Machine:
    PENDING → APPROVED
    PENDING → REJECTED
"""

from datetime import datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, String, Text

from storefront.domain import storefront
from storefront.utils.timestamps import utcnow


class ReturnStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


OPEN_RETURN_STATUSES = (ReturnStatus.PENDING, ReturnStatus.APPROVED)


@storefront.event(part_of="ReturnRequest")
class ReturnRequested:
    __version__ = 1

    return_id = Identifier(required=True)
    order_id = Identifier(required=True)
    reason = String(required=True)
    requested_at = DateTime(required=True)


@storefront.event(part_of="ReturnRequest")
class ReturnResolved:
    __version__ = 1

    return_id = Identifier(required=True)
    order_id = Identifier(required=True)
    status = String(required=True)
    resolved_at = DateTime(required=True)


@storefront.aggregate
class ReturnRequest:
    order_id = Identifier(required=True)
    customer_email = String(required=True, max_length=254)
    reason = String(required=True, max_length=100)
    description = Text()
    items = Text()  # JSON snapshot of the returned lines
    status = String(choices=ReturnStatus, default=ReturnStatus.PENDING.value)
    admin_note = Text()
    created_at = DateTime()
    resolved_at = DateTime()

    @classmethod
    def create(cls, order_id, customer_email, reason, description=None, items=None):
        now = utcnow()
        request = cls(
            order_id=order_id,
            customer_email=customer_email,
            reason=reason,
            description=description,
            items=items,
            status=ReturnStatus.PENDING.value,
            created_at=now,
        )
        request.raise_(
            ReturnRequested(
                return_id=str(request.id),
                order_id=str(order_id),
                reason=reason,
                requested_at=now,
            )
        )
        return request

    def _resolve(self, status: ReturnStatus, note: str | None, at: datetime | None) -> None:
        if ReturnStatus(self.status) != ReturnStatus.PENDING:
            raise ValidationError({"status": [f"Return request is already {self.status}"]})
        now = at or utcnow()
        self.status = status.value
        self.admin_note = note
        self.resolved_at = now
        self.raise_(
            ReturnResolved(
                return_id=str(self.id),
                order_id=str(self.order_id),
                status=status.value,
                resolved_at=now,
            )
        )

    def approve(self, note: str | None = None, at: datetime | None = None) -> None:
        self._resolve(ReturnStatus.APPROVED, note, at)

    def reject(self, note: str | None = None, at: datetime | None = None) -> None:
        self._resolve(ReturnStatus.REJECTED, note, at)


@storefront.repository(part_of=ReturnRequest)
class ReturnRequestRepository:
    def open_for_order(self, order_id: str) -> list[ReturnRequest]:
        requests = self._dao.query.filter(order_id=str(order_id)).all().items
        return [r for r in requests if ReturnStatus(r.status) in OPEN_RETURN_STATUSES]
