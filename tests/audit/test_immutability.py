"""
Append-only persistence tests.

Verifies:
- Payment timeline events can never be updated or deleted
- Batch membership is fixed when the batch is created
- Batch totals and identity are frozen; status stays mutable
- The database refuses a payment in two batches
"""

from contextlib import contextmanager
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from settlement_batch.models.batch import PaymentBatchItemModel, PaymentBatchModel
from settlement_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from settlement_kernel.exceptions import ImmutabilityViolationError
from settlement_kernel.models.payment import PaymentTimelineEventModel


@contextmanager
def disabled_immutability():
    """Disable the ORM listeners to simulate tampering."""
    unregister_immutability_listeners()
    try:
        yield
    finally:
        register_immutability_listeners()


@pytest.fixture
def batch_row(session, make_payment, orchestrator, test_actor_id):
    payments = [make_payment(), make_payment()]
    result = orchestrator.create_batch(
        "ALRAJHI", [p.payment_id for p in payments], test_actor_id,
    )
    return session.get(PaymentBatchModel, result.batch.batch_id)


def _first_event(session, payment_id):
    return session.execute(
        select(PaymentTimelineEventModel)
        .where(PaymentTimelineEventModel.payment_id == payment_id)
        .order_by(PaymentTimelineEventModel.seq)
    ).scalars().first()


class TestTimelineImmutability:

    def test_update_blocked(self, session, make_payment):
        event = _first_event(session, make_payment().payment_id)
        event.description = "rewritten"

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "PaymentTimelineEvent"

    def test_delete_blocked(self, session, make_payment):
        session.delete(_first_event(session, make_payment().payment_id))

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_blocked_update_is_logged(self, session, make_payment, captured_logs):
        event = _first_event(session, make_payment().payment_id)
        event.status = "COMPLETED"

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        blocked = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert blocked[0]["operation"] == "UPDATE"

    def test_listeners_can_be_disabled(self, session, make_payment):
        event = _first_event(session, make_payment().payment_id)
        with disabled_immutability():
            event.description = "tampered"
            session.flush()
        assert event.description == "tampered"


class TestBatchImmutability:

    def test_item_update_blocked(self, session, batch_row):
        batch_row.items[0].position = 99

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "PaymentBatchItem"

    def test_item_delete_blocked(self, session, batch_row):
        session.delete(batch_row.items[0])

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_batch_delete_blocked(self, session, batch_row):
        session.delete(batch_row)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    @pytest.mark.parametrize(
        "field_name,value",
        [
            ("total_amount", Decimal("1.00")),
            ("bank_code", "NCB"),
            ("batch_number", "B999999"),
            ("currency", "USD"),
        ],
    )
    def test_frozen_fields(self, session, batch_row, field_name, value):
        setattr(batch_row, field_name, value)

        with pytest.raises(ImmutabilityViolationError, match=field_name):
            session.flush()

    def test_status_remains_mutable(self, session, batch_row):
        batch_row.status = "FILE_GENERATED"
        session.flush()
        assert session.get(PaymentBatchModel, batch_row.id).status == "FILE_GENERATED"

    def test_payment_cannot_join_two_batches(self, session, batch_row):
        existing = batch_row.items[0]
        session.add(PaymentBatchItemModel(
            id=uuid4(),
            batch_id=batch_row.id,
            payment_id=existing.payment_id,
            position=50,
            amount=existing.amount,
        ))

        with pytest.raises(IntegrityError):
            session.flush()
