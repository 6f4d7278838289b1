"""Processed-event store: remembers which provider events were handled.

A key is ``"<provider>:<event_id>"``. Reserving a key before any side effect
makes concurrent re-deliveries of the same event mutually exclusive: the
first one processes it, later ones see either an in-flight reservation or the
completed outcome.

Lifecycle:
    reserve → processing → mark_complete → completed
    reserve → processing → release (handler failed; the provider may retry)

A processing reservation older than the lease is treated as abandoned (the
worker died) and can be taken over.
"""

import json
from datetime import datetime, timedelta
from enum import Enum

import structlog
from protean.exceptions import ExpectedVersionError, ObjectNotFoundError, ValidationError
from protean.fields import DateTime, Identifier, String, Text
from sqlalchemy.exc import IntegrityError

from storefront.domain import storefront
from storefront.errors import DuplicateEvent
from storefront.utils.locks import KeyedLocks
from storefront.utils.timestamps import as_utc, utcnow

logger = structlog.get_logger(__name__)

_event_locks = KeyedLocks()


class ProcessingStatus(Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"


def event_key(provider: str, event_id: str) -> str:
    return f"{provider}:{event_id}"


@storefront.aggregate
class ProcessedEvent:
    key = Identifier(identifier=True)
    provider = String(required=True, max_length=50)
    event_id = String(required=True, max_length=255)
    status = String(choices=ProcessingStatus, default=ProcessingStatus.PROCESSING.value)
    outcome = Text()  # JSON summary returned to duplicate deliveries
    reserved_at = DateTime()
    completed_at = DateTime()

    @property
    def outcome_data(self) -> dict:
        return json.loads(self.outcome) if self.outcome else {}

    @property
    def is_completed(self) -> bool:
        return self.status == ProcessingStatus.COMPLETED.value

    def lease_expired(self, lease: timedelta, now: datetime) -> bool:
        return self.reserved_at is None or as_utc(self.reserved_at) + lease <= as_utc(now)


@storefront.repository(part_of=ProcessedEvent)
class ProcessedEventRepository:
    def find(self, key: str) -> ProcessedEvent | None:
        try:
            return self.get(key)
        except ObjectNotFoundError:
            return None

    def completed_before(self, cutoff: datetime) -> list[ProcessedEvent]:
        return [
            record
            for record in self._dao.query.filter(status=ProcessingStatus.COMPLETED.value).all().items
            if record.completed_at is not None and as_utc(record.completed_at) < as_utc(cutoff)
        ]

    def remove(self, record: ProcessedEvent) -> None:
        self._dao.delete(record)


class IdempotencyStore:
    def __init__(self, repository, lease_seconds: int = 300, retention_days: int = 30):
        self.repository = repository
        self.lease = timedelta(seconds=lease_seconds)
        self.retention = timedelta(days=retention_days)

    def reserve(self, provider: str, event_id: str) -> ProcessedEvent:
        """Claim an event for processing or raise ``DuplicateEvent``."""
        key = event_key(provider, event_id)
        now = utcnow()
        with _event_locks.hold(key):
            record = self.repository.find(key)
            if record is not None:
                if record.is_completed:
                    raise DuplicateEvent(provider, event_id, outcome=record.outcome_data)
                if not record.lease_expired(self.lease, now):
                    raise DuplicateEvent(provider, event_id, in_flight=True)
                logger.warning("idempotency_lease_taken_over", key=key, reserved_at=str(record.reserved_at))
                record.reserved_at = now
            else:
                record = ProcessedEvent(key=key, provider=provider, event_id=event_id, reserved_at=now)
            try:
                self.repository.add(record)
            except (ValidationError, ExpectedVersionError, IntegrityError) as exc:
                # Another worker wrote the key between the read and the write
                winner = self.repository.find(key)
                if winner is None:
                    raise
                logger.info("idempotency_reservation_lost", key=key)
                if winner.is_completed:
                    raise DuplicateEvent(provider, event_id, outcome=winner.outcome_data) from exc
                raise DuplicateEvent(provider, event_id, in_flight=True) from exc
        return record

    def mark_complete(self, provider: str, event_id: str, outcome: dict | None = None) -> None:
        key = event_key(provider, event_id)
        with _event_locks.hold(key):
            record = self.repository.find(key)
            if record is None:
                record = ProcessedEvent(key=key, provider=provider, event_id=event_id, reserved_at=utcnow())
            record.status = ProcessingStatus.COMPLETED.value
            record.outcome = json.dumps(outcome or {}, default=str)
            record.completed_at = utcnow()
            self.repository.add(record)

    def release(self, provider: str, event_id: str) -> None:
        """Drop an in-flight reservation so the provider's retry is processed again."""
        key = event_key(provider, event_id)
        with _event_locks.hold(key):
            record = self.repository.find(key)
            if record is not None and not record.is_completed:
                self.repository.remove(record)
                logger.info("idempotency_reservation_released", key=key)

    def prune(self, older_than: datetime | None = None) -> int:
        """Delete completed records past the retention window; returns how many went."""
        cutoff = older_than or utcnow() - self.retention
        removed = 0
        for record in self.repository.completed_before(cutoff):
            self.repository.remove(record)
            removed += 1
        logger.info("idempotency_pruned", removed=removed, cutoff=cutoff.isoformat())
        return removed
