"""
Tests for PaymentStateMachine: the transition table, side effects of
each accepted transition, timeline recording and batch transitions.
"""

from uuid import uuid4

import pytest
from hypothesis import given
from hypothesis import strategies as st
from sqlalchemy import select

from settlement_kernel.domain.types import (
    PaymentBatchStatus,
    PaymentStatus,
    TERMINAL_PAYMENT_STATUSES,
    TimelineEventType,
)
from settlement_kernel.domain.workflow import (
    BATCH_WORKFLOW,
    PAYMENT_WORKFLOW,
    can_transition,
    can_transition_batch,
)
from settlement_kernel.exceptions import IllegalBatchTransitionError, IllegalTransitionError
from settlement_kernel.models.payment import PaymentModel, PaymentTimelineEventModel
from settlement_kernel.services.state_machine import PaymentStateMachine

P = PaymentStatus


@pytest.fixture
def machine(session, clock):
    return PaymentStateMachine(session, clock)


@pytest.fixture
def payment_row(session, make_payment):
    def _row():
        return session.get(PaymentModel, make_payment().payment_id)

    return _row


def _walk(machine, row, *statuses):
    for status in statuses:
        machine.transition(row, status)


def _events(session, payment_id):
    return session.execute(
        select(PaymentTimelineEventModel)
        .where(PaymentTimelineEventModel.payment_id == payment_id)
        .order_by(PaymentTimelineEventModel.seq)
    ).scalars().all()


class TestTransitionTable:

    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            (P.READY_FOR_PAYMENT, P.BANK_FILE_GENERATED),
            (P.BANK_FILE_GENERATED, P.SENT_TO_BANK),
            (P.SENT_TO_BANK, P.BANK_PROCESSING),
            (P.BANK_PROCESSING, P.COMPLETED),
            (P.BANK_PROCESSING, P.FAILED),
            (P.READY_FOR_PAYMENT, P.CANCELLED),
            (P.BANK_FILE_GENERATED, P.CANCELLED),
            (P.SENT_TO_BANK, P.CANCELLED),
            (P.BANK_PROCESSING, P.CANCELLED),
        ],
    )
    def test_legal(self, from_status, to_status):
        assert can_transition(from_status, to_status)

    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            (P.READY_FOR_PAYMENT, P.SENT_TO_BANK),
            (P.READY_FOR_PAYMENT, P.COMPLETED),
            (P.BANK_FILE_GENERATED, P.READY_FOR_PAYMENT),
            (P.SENT_TO_BANK, P.COMPLETED),
            (P.COMPLETED, P.FAILED),
            (P.FAILED, P.READY_FOR_PAYMENT),
            (P.CANCELLED, P.READY_FOR_PAYMENT),
        ],
    )
    def test_illegal(self, from_status, to_status):
        assert not can_transition(from_status, to_status)

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_PAYMENT_STATUSES))
    def test_terminal_states_have_no_exit(self, terminal):
        assert PAYMENT_WORKFLOW.allowed_targets(terminal.value) == frozenset()

    def test_batch_table(self):
        B = PaymentBatchStatus
        assert can_transition_batch(B.CREATED, B.FILE_GENERATED)
        assert can_transition_batch(B.PROCESSING, B.FAILED)
        assert not can_transition_batch(B.CREATED, B.SENT_TO_BANK)
        assert not can_transition_batch(B.COMPLETED, B.PROCESSING)
        assert BATCH_WORKFLOW.allowed_targets(B.FAILED.value) == frozenset()

    @given(st.lists(st.sampled_from(list(PaymentStatus)), max_size=20))
    def test_terminal_is_absorbing(self, attempts):
        state = P.READY_FOR_PAYMENT
        reached_terminal = None
        for target in attempts:
            if can_transition(state, target):
                state = target
            if state.is_terminal and reached_terminal is None:
                reached_terminal = state
        if reached_terminal is not None:
            assert state == reached_terminal


class TestTransition:

    def test_happy_path_to_completed(self, machine, payment_row, clock):
        row = payment_row()
        _walk(machine, row, P.BANK_FILE_GENERATED, P.SENT_TO_BANK, P.BANK_PROCESSING)
        machine.transition(row, P.COMPLETED, bank_reference="REF-1")

        assert row.status == P.COMPLETED.value
        assert row.processed_at == clock.now_utc()
        assert row.completed_at == clock.now_utc()
        assert row.bank_reference == "REF-1"

    def test_failed_stores_error_message(self, machine, payment_row):
        row = payment_row()
        _walk(machine, row, P.BANK_FILE_GENERATED, P.SENT_TO_BANK, P.BANK_PROCESSING)
        machine.transition(row, P.FAILED, error_message="Account closed")

        assert row.status == P.FAILED.value
        assert row.error_message == "Account closed"
        assert row.completed_at is None

    def test_failed_default_error_message(self, machine, payment_row):
        row = payment_row()
        _walk(machine, row, P.BANK_FILE_GENERATED, P.SENT_TO_BANK, P.BANK_PROCESSING)
        machine.transition(row, P.FAILED)
        assert row.error_message == "Rejected by bank"

    def test_cancel_clears_batch_reference(self, machine, payment_row):
        row = payment_row()
        row.batch_id = uuid4()
        machine.transition(row, P.BANK_FILE_GENERATED)
        machine.transition(row, P.CANCELLED)

        assert row.status == P.CANCELLED.value
        assert row.batch_id is None

    def test_illegal_transition_raises_without_mutation(self, machine, payment_row, session):
        row = payment_row()
        before = len(_events(session, row.id))

        with pytest.raises(IllegalTransitionError) as exc_info:
            machine.transition(row, P.COMPLETED)

        assert row.status == P.READY_FOR_PAYMENT.value
        assert len(_events(session, row.id)) == before
        assert exc_info.value.from_status == "READY_FOR_PAYMENT"
        assert exc_info.value.to_status == "COMPLETED"
        assert exc_info.value.trace_id

    def test_illegal_transition_logged_with_trace_id(self, machine, payment_row, captured_logs):
        row = payment_row()
        with pytest.raises(IllegalTransitionError) as exc_info:
            machine.transition(row, P.BANK_PROCESSING)

        logged = [r for r in captured_logs() if r["message"] == "illegal_transition_rejected"]
        assert logged[0]["trace_id"] == exc_info.value.trace_id

    def test_terminal_payment_cannot_be_cancelled(self, machine, payment_row):
        row = payment_row()
        machine.transition(row, P.CANCELLED)
        with pytest.raises(IllegalTransitionError):
            machine.transition(row, P.CANCELLED)


class TestTimeline:

    def test_each_transition_appends_an_event(self, machine, payment_row, session, test_actor_id):
        row = payment_row()
        machine.transition(row, P.BANK_FILE_GENERATED, test_actor_id, metadata={"batch_id": uuid4()})
        machine.transition(row, P.SENT_TO_BANK, test_actor_id)

        events = _events(session, row.id)
        # registration event, then one per transition
        assert [e.seq for e in events] == [1, 2, 3]
        assert events[1].event_type == TimelineEventType.BATCH_CREATED.value
        assert events[1].from_status == P.READY_FOR_PAYMENT.value
        assert events[1].status == P.BANK_FILE_GENERATED.value
        assert events[1].actor_id == test_actor_id
        assert events[1].details["action"] == "batch_file_created"
        assert isinstance(events[1].details["batch_id"], str)

    def test_event_types_follow_workflow(self, machine, payment_row, session):
        row = payment_row()
        _walk(machine, row, P.BANK_FILE_GENERATED, P.SENT_TO_BANK, P.BANK_PROCESSING, P.FAILED)

        types = [e.event_type for e in _events(session, row.id)]
        assert types == [
            TimelineEventType.STATUS_CHANGE.value,
            TimelineEventType.BATCH_CREATED.value,
            TimelineEventType.STATUS_CHANGE.value,
            TimelineEventType.BANK_CONFIRMED.value,
            TimelineEventType.ERROR.value,
        ]

    def test_record_event_keeps_status(self, machine, payment_row):
        row = payment_row()
        event = machine.record_event(row, TimelineEventType.FILE_GENERATED, description="note")

        assert event.status == P.READY_FOR_PAYMENT
        assert event.from_status is None
        assert event.description == "note"

    def test_status_change_logged(self, machine, payment_row, captured_logs):
        row = payment_row()
        machine.transition(row, P.BANK_FILE_GENERATED)

        changed = [r for r in captured_logs() if r["message"] == "payment_status_changed"]
        assert changed[-1]["from_status"] == "READY_FOR_PAYMENT"
        assert changed[-1]["to_status"] == "BANK_FILE_GENERATED"


class _BatchRow:
    def __init__(self, status):
        self.id = uuid4()
        self.status = status.value
        self.updated_by_id = None
        self.file_generated_at = None
        self.sent_at = None
        self.completed_at = None


class TestBatchTransition:

    def test_legal_batch_transition_stamps_time(self, machine, clock):
        row = _BatchRow(PaymentBatchStatus.CREATED)
        previous = machine.transition_batch(row, PaymentBatchStatus.FILE_GENERATED)

        assert previous == PaymentBatchStatus.CREATED
        assert row.status == PaymentBatchStatus.FILE_GENERATED.value
        assert row.file_generated_at == clock.now_utc()

    def test_illegal_batch_transition(self, machine):
        row = _BatchRow(PaymentBatchStatus.CREATED)
        with pytest.raises(IllegalBatchTransitionError) as exc_info:
            machine.transition_batch(row, PaymentBatchStatus.PROCESSING)
        assert row.status == PaymentBatchStatus.CREATED.value
        assert exc_info.value.code == "ILLEGAL_BATCH_TRANSITION"
