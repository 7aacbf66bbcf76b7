"""
Tests for BatchDispatchService: file generation, hand-off to the bank and
bank acknowledgement, each moving the batch and its live members together.
"""

import csv
import io
from uuid import uuid4

import pytest

from settlement_kernel.domain.types import (
    PaymentBatchStatus,
    PaymentStatus,
    TimelineEventType,
)
from settlement_kernel.exceptions import BatchNotFoundError, IllegalBatchTransitionError


@pytest.fixture
def created_batch(make_payment, orchestrator, test_actor_id):
    def _make(n=2, bank="ALRAJHI"):
        payments = [make_payment(bank=bank) for _ in range(n)]
        return orchestrator.create_batch(
            bank, [p.payment_id for p in payments], test_actor_id,
        ).batch

    return _make


def _statuses(payment_service, batch):
    return [payment_service.get_payment(pid).status for pid in batch.payment_ids]


class TestFullFlow:

    def test_generate_send_acknowledge(
        self, dispatch, created_batch, orchestrator, payment_service, clock, test_actor_id,
    ):
        batch = created_batch()

        bank_file = dispatch.generate_file(batch.batch_id, test_actor_id)
        assert bank_file.file_name == batch.file_reference
        assert bank_file.record_count == 2
        generated = orchestrator.get_batch(batch.batch_id)
        assert generated.status == PaymentBatchStatus.FILE_GENERATED
        assert generated.file_generated_at == clock.now_utc()
        assert _statuses(payment_service, batch) == [PaymentStatus.BANK_FILE_GENERATED] * 2

        clock.advance(60)
        sent = dispatch.mark_sent_to_bank(batch.batch_id, test_actor_id)
        assert sent.status == PaymentBatchStatus.SENT_TO_BANK
        assert sent.sent_at == clock.now_utc()
        assert _statuses(payment_service, batch) == [PaymentStatus.SENT_TO_BANK] * 2

        processing = dispatch.acknowledge_receipt(batch.batch_id, test_actor_id)
        assert processing.status == PaymentBatchStatus.PROCESSING
        assert _statuses(payment_service, batch) == [PaymentStatus.BANK_PROCESSING] * 2

    def test_file_generation_recorded_on_timeline(
        self, dispatch, created_batch, payment_service, test_actor_id,
    ):
        batch = created_batch(n=1)
        bank_file = dispatch.generate_file(batch.batch_id, test_actor_id)

        event = payment_service.get_timeline(batch.payment_ids[0])[-1]
        assert event.event_type == TimelineEventType.FILE_GENERATED
        assert event.status == PaymentStatus.BANK_FILE_GENERATED
        assert event.metadata["file_name"] == bank_file.file_name

    def test_csv_bank(self, dispatch, created_batch, test_actor_id):
        batch = created_batch(bank="SABB")
        bank_file = dispatch.generate_file(batch.batch_id, test_actor_id)

        rows = list(csv.reader(io.StringIO(bank_file.content.decode("utf-8-sig"))))
        assert len(rows) == 3
        assert rows[1][0] == "Saudi British Bank"

    def test_render_file_changes_nothing(self, dispatch, created_batch, orchestrator):
        batch = created_batch()
        rendered = dispatch.render_file(batch.batch_id)

        assert rendered.record_count == 2
        assert orchestrator.get_batch(batch.batch_id).status == PaymentBatchStatus.CREATED

    def test_logged_with_batch_context(
        self, dispatch, created_batch, test_actor_id, captured_logs,
    ):
        batch = created_batch()
        dispatch.generate_file(batch.batch_id, test_actor_id)

        generated = [r for r in captured_logs() if r["message"] == "bank_file_generated"]
        assert generated[0]["batch_id"] == str(batch.batch_id)
        assert generated[0]["record_count"] == 2


class TestOrdering:

    def test_send_before_generate_rejected(
        self, dispatch, created_batch, payment_service, test_actor_id,
    ):
        batch = created_batch()

        with pytest.raises(IllegalBatchTransitionError) as exc_info:
            dispatch.mark_sent_to_bank(batch.batch_id, test_actor_id)

        assert exc_info.value.from_status == "CREATED"
        assert _statuses(payment_service, batch) == [PaymentStatus.BANK_FILE_GENERATED] * 2

    def test_generate_twice_rejected(self, dispatch, created_batch, test_actor_id):
        batch = created_batch()
        dispatch.generate_file(batch.batch_id, test_actor_id)

        with pytest.raises(IllegalBatchTransitionError):
            dispatch.generate_file(batch.batch_id, test_actor_id)

    def test_acknowledge_before_send_rejected(self, dispatch, created_batch, test_actor_id):
        batch = created_batch()
        dispatch.generate_file(batch.batch_id, test_actor_id)

        with pytest.raises(IllegalBatchTransitionError):
            dispatch.acknowledge_receipt(batch.batch_id, test_actor_id)

    def test_unknown_batch(self, dispatch):
        with pytest.raises(BatchNotFoundError):
            dispatch.generate_file(uuid4())


class TestCancelledMembers:

    def test_cancelled_member_skipped(
        self, dispatch, created_batch, payment_service, test_actor_id,
    ):
        batch = created_batch(n=3)
        cancelled_id = batch.payment_ids[1]
        payment_service.cancel_payment(cancelled_id, test_actor_id, reason="Resigned")

        bank_file = dispatch.generate_file(batch.batch_id, test_actor_id)
        dispatch.mark_sent_to_bank(batch.batch_id, test_actor_id)
        dispatch.acknowledge_receipt(batch.batch_id, test_actor_id)

        assert bank_file.record_count == 2
        assert _statuses(payment_service, batch) == [
            PaymentStatus.BANK_PROCESSING,
            PaymentStatus.CANCELLED,
            PaymentStatus.BANK_PROCESSING,
        ]
        timeline = payment_service.get_timeline(cancelled_id)
        assert timeline[-1].event_type == TimelineEventType.CANCELLED
