from datetime import timedelta

import pytest

from storefront.errors import DuplicateEvent
from storefront.utils.timestamps import utcnow
from storefront.webhooks.idempotency import IdempotencyStore, event_key


class TestReserve:
    def test_first_reservation(self, idempotency):
        record = idempotency.reserve("payments", "evt_1")
        assert record.key == "payments:evt_1"
        assert record.status == "processing"

    def test_in_flight_reservation_blocks(self, idempotency):
        idempotency.reserve("payments", "evt_1")
        with pytest.raises(DuplicateEvent) as exc:
            idempotency.reserve("payments", "evt_1")
        assert exc.value.in_flight is True

    def test_completed_event_returns_outcome(self, idempotency):
        idempotency.reserve("payments", "evt_1")
        idempotency.mark_complete("payments", "evt_1", {"order_id": "o-1"})
        with pytest.raises(DuplicateEvent) as exc:
            idempotency.reserve("payments", "evt_1")
        assert exc.value.in_flight is False
        assert exc.value.outcome == {"order_id": "o-1"}

    def test_same_event_id_from_another_provider(self, idempotency):
        idempotency.reserve("payments", "evt_1")
        assert idempotency.reserve("email", "evt_1").key == event_key("email", "evt_1")

    def test_expired_lease_is_taken_over(self, idempotency):
        store = IdempotencyStore(idempotency.repository, lease_seconds=0)
        store.reserve("carrier", "c-1")
        record = store.reserve("carrier", "c-1")
        assert record.status == "processing"

    def _hide_first_lookup(self, monkeypatch, repository):
        """Make the existence check miss, as if another worker inserted right after it."""
        lookup = repository.find
        calls = []

        def find(key):
            calls.append(key)
            return None if len(calls) == 1 else lookup(key)

        monkeypatch.setattr(repository, "find", find)

    def test_racing_insert_is_reported_in_flight(self, idempotency, monkeypatch):
        idempotency.reserve("payments", "evt_1")
        self._hide_first_lookup(monkeypatch, idempotency.repository)

        with pytest.raises(DuplicateEvent) as exc:
            idempotency.reserve("payments", "evt_1")

        assert exc.value.in_flight is True

    def test_racing_insert_of_completed_event_returns_outcome(self, idempotency, monkeypatch):
        idempotency.reserve("payments", "evt_1")
        idempotency.mark_complete("payments", "evt_1", {"order_id": "o-1"})
        self._hide_first_lookup(monkeypatch, idempotency.repository)

        with pytest.raises(DuplicateEvent) as exc:
            idempotency.reserve("payments", "evt_1")

        assert exc.value.outcome == {"order_id": "o-1"}


class TestReleaseAndPrune:
    def test_release_allows_retry(self, idempotency):
        idempotency.reserve("payments", "evt_1")
        idempotency.release("payments", "evt_1")
        assert idempotency.reserve("payments", "evt_1").status == "processing"

    def test_release_keeps_completed_records(self, idempotency):
        idempotency.reserve("payments", "evt_1")
        idempotency.mark_complete("payments", "evt_1", {})
        idempotency.release("payments", "evt_1")
        assert idempotency.repository.find("payments:evt_1").is_completed

    def test_prune_removes_only_old_completed_records(self, idempotency):
        idempotency.reserve("payments", "old")
        idempotency.mark_complete("payments", "old", {})
        idempotency.reserve("payments", "in-flight")

        removed = idempotency.prune(older_than=utcnow() + timedelta(seconds=1))

        assert removed == 1
        assert idempotency.repository.find("payments:old") is None
        assert idempotency.repository.find("payments:in-flight") is not None

    def test_prune_respects_retention(self, idempotency):
        idempotency.reserve("payments", "recent")
        idempotency.mark_complete("payments", "recent", {})
        assert idempotency.prune() == 0
