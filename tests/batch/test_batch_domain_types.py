"""Tests for the batch-layer DTOs that parse external input."""

from uuid import UUID, uuid4

import pytest

from settlement_batch.domain.types import (
    OutcomeKind,
    PaymentOutcome,
    ReconciliationSummary,
)
from settlement_kernel.domain.types import PaymentBatchStatus


class TestOutcomeKind:

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("SUCCESS", OutcomeKind.SUCCESS),
            ("completed", OutcomeKind.SUCCESS),
            (" Settled ", OutcomeKind.SUCCESS),
            ("FAILED", OutcomeKind.FAILURE),
            ("rejected", OutcomeKind.FAILURE),
            (OutcomeKind.FAILURE, OutcomeKind.FAILURE),
        ],
    )
    def test_aliases(self, raw, expected):
        assert OutcomeKind.parse(raw) is expected

    def test_unknown(self):
        with pytest.raises(ValueError, match="PENDING"):
            OutcomeKind.parse("PENDING")


class TestPaymentOutcomeFromMapping:

    def test_snake_case(self):
        payment_id = uuid4()
        outcome = PaymentOutcome.from_mapping({
            "payment_id": str(payment_id),
            "outcome": "success",
            "reference": "FT-1",
        })
        assert outcome == PaymentOutcome(payment_id, OutcomeKind.SUCCESS, reference="FT-1")

    def test_camel_case(self):
        payment_id = uuid4()
        outcome = PaymentOutcome.from_mapping({
            "paymentId": payment_id,
            "status": "FAILED",
            "errorMessage": "Beneficiary account closed",
            "bankReference": "",
        })
        assert outcome.payment_id == payment_id
        assert outcome.outcome == OutcomeKind.FAILURE
        assert outcome.error_message == "Beneficiary account closed"
        assert outcome.reference is None

    @pytest.mark.parametrize(
        "payload",
        [
            {"outcome": "SUCCESS"},
            {"payment_id": str(UUID(int=1))},
            {"payment_id": "", "outcome": "SUCCESS"},
        ],
    )
    def test_required_keys(self, payload):
        with pytest.raises(ValueError):
            PaymentOutcome.from_mapping(payload)

    def test_malformed_id(self):
        with pytest.raises(ValueError):
            PaymentOutcome.from_mapping({"payment_id": "not-a-uuid", "outcome": "SUCCESS"})


class TestReconciliationSummary:

    def test_derived_properties(self):
        summary = ReconciliationSummary(
            batch_id=uuid4(),
            batch_status=PaymentBatchStatus.FAILED,
            completed=3,
            failed=1,
        )
        assert summary.applied == 4
        assert summary.settled

    def test_processing_is_not_settled(self):
        summary = ReconciliationSummary(uuid4(), PaymentBatchStatus.PROCESSING)
        assert not summary.settled
