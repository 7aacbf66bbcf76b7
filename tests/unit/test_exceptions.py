"""Unit tests for the typed exception hierarchy."""

import pytest

from settlement_kernel import exceptions
from settlement_kernel.exceptions import (
    BatchError,
    BatchNotFoundError,
    ChecksumError,
    ConfigurationError,
    DuplicateCandidateError,
    EligibilityError,
    EmptyBatchError,
    IBANError,
    IllegalBatchTransitionError,
    IllegalTransitionError,
    PartialAssignmentError,
    PaymentError,
    PaymentLockedError,
    SettlementError,
    StructuralError,
    TransitionError,
    UnsupportedFileFormatError,
)
from settlement_kernel.logging_config import LogContext


def _all_error_classes():
    return [
        obj for obj in vars(exceptions).values()
        if isinstance(obj, type) and issubclass(obj, SettlementError)
    ]


class TestCodes:

    def test_every_class_has_its_own_code(self):
        codes = [cls.code for cls in _all_error_classes()]
        assert len(codes) == len(set(codes))

    def test_codes_are_upper_snake_case(self):
        for cls in _all_error_classes():
            assert cls.code == cls.code.upper()
            assert " " not in cls.code


class TestHierarchy:

    @pytest.mark.parametrize(
        "child,parent",
        [
            (StructuralError, IBANError),
            (ChecksumError, IBANError),
            (DuplicateCandidateError, EligibilityError),
            (IllegalTransitionError, TransitionError),
            (IllegalBatchTransitionError, TransitionError),
            (EmptyBatchError, BatchError),
            (PartialAssignmentError, BatchError),
            (UnsupportedFileFormatError, BatchError),
            (PaymentLockedError, PaymentError),
            (ConfigurationError, SettlementError),
        ],
    )
    def test_parentage(self, child, parent):
        assert issubclass(child, parent)


class TestStructuredData:

    def test_iban_errors_keep_codes(self):
        error = StructuralError("SA12", ("IBAN_LENGTH_INVALID",))
        assert error.iban == "SA12"
        assert error.errors == ("IBAN_LENGTH_INVALID",)
        assert ChecksumError("SA00").errors == ("IBAN_CHECKSUM_MISMATCH",)

    def test_empty_batch(self):
        error = EmptyBatchError("NCB", 4)
        assert error.bank_code == "NCB"
        assert error.candidate_count == 4
        assert "4 candidate" in str(error)

    def test_unsupported_format_lists_available(self):
        error = UnsupportedFileFormatError("PDF", ["XML", "CSV"])
        assert str(error).endswith("Available: CSV, XML")

    def test_configuration_error_source(self):
        error = ConfigurationError("bad", source="sets/default")
        assert error.source == "sets/default"
        assert str(error) == "sets/default: bad"

    def test_batch_not_found(self):
        assert BatchNotFoundError("b-1").batch_id == "b-1"


class TestTraceId:

    def test_generated_when_absent(self):
        first = IllegalTransitionError("p", "READY_FOR_PAYMENT", "COMPLETED")
        second = IllegalTransitionError("p", "READY_FOR_PAYMENT", "COMPLETED")
        assert first.trace_id
        assert first.trace_id != second.trace_id
        assert first.trace_id in str(first)

    def test_taken_from_log_context(self):
        with LogContext.bind(trace_id="ctx-trace"):
            error = PartialAssignmentError("ALRAJHI", "p-1", "claim lost")
        assert error.trace_id == "ctx-trace"

    def test_explicit_wins(self):
        with LogContext.bind(trace_id="ctx-trace"):
            error = IllegalBatchTransitionError("b", "CREATED", "PROCESSING", trace_id="given")
        assert error.trace_id == "given"
