"""
Settlement workflow definitions (``settlement_kernel.domain.workflow``).

Responsibility
--------------
Declares the payment and batch state machines as frozen value objects.
The PaymentStateMachine service and the batch services consult these
tables; nothing else decides whether a status change is legal.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass

from settlement_kernel.domain.types import (
    PaymentBatchStatus,
    PaymentStatus,
    TERMINAL_PAYMENT_STATUSES,
    TimelineEventType,
)


@dataclass(frozen=True)
class Transition:
    """A valid state transition.

    ``action`` names the business trigger; ``event_type`` is the timeline
    entry recorded when the transition fires.
    """
    from_state: str
    to_state: str
    action: str
    event_type: TimelineEventType = TimelineEventType.STATUS_CHANGE


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(f"{self.name}: initial state not in states")
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"{self.name}: transition {t.from_state}->{t.to_state} "
                    "references an unknown state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"{self.name}: terminal state {t.from_state} has an "
                    "outgoing transition"
                )

    def find(self, from_state: str, to_state: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None

    def allowed_targets(self, from_state: str) -> frozenset[str]:
        return frozenset(
            t.to_state for t in self.transitions if t.from_state == from_state
        )


# -----------------------------------------------------------------------------
# Payment workflow
# -----------------------------------------------------------------------------

_P = PaymentStatus

_cancel_transitions = tuple(
    Transition(
        from_state=status.value,
        to_state=_P.CANCELLED.value,
        action="cancel",
        event_type=TimelineEventType.CANCELLED,
    )
    for status in PaymentStatus
    if status not in TERMINAL_PAYMENT_STATUSES
)

PAYMENT_WORKFLOW = Workflow(
    name="payment_settlement",
    description="Payment lifecycle from ready-for-payment to bank settlement",
    initial_state=_P.READY_FOR_PAYMENT.value,
    states=tuple(s.value for s in PaymentStatus),
    transitions=(
        Transition(
            from_state=_P.READY_FOR_PAYMENT.value,
            to_state=_P.BANK_FILE_GENERATED.value,
            action="batch_file_created",
            event_type=TimelineEventType.BATCH_CREATED,
        ),
        Transition(
            from_state=_P.BANK_FILE_GENERATED.value,
            to_state=_P.SENT_TO_BANK.value,
            action="file_sent_to_bank",
        ),
        Transition(
            from_state=_P.SENT_TO_BANK.value,
            to_state=_P.BANK_PROCESSING.value,
            action="bank_acknowledged",
            event_type=TimelineEventType.BANK_CONFIRMED,
        ),
        Transition(
            from_state=_P.BANK_PROCESSING.value,
            to_state=_P.COMPLETED.value,
            action="bank_settled",
            event_type=TimelineEventType.COMPLETED,
        ),
        Transition(
            from_state=_P.BANK_PROCESSING.value,
            to_state=_P.FAILED.value,
            action="bank_rejected",
            event_type=TimelineEventType.ERROR,
        ),
    ) + _cancel_transitions,
    terminal_states=tuple(s.value for s in TERMINAL_PAYMENT_STATUSES),
)


# -----------------------------------------------------------------------------
# Batch workflow
# -----------------------------------------------------------------------------

_B = PaymentBatchStatus

BATCH_WORKFLOW = Workflow(
    name="payment_batch",
    description="Settlement batch lifecycle",
    initial_state=_B.CREATED.value,
    states=tuple(s.value for s in PaymentBatchStatus),
    transitions=(
        Transition(_B.CREATED.value, _B.FILE_GENERATED.value, "generate_file"),
        Transition(_B.FILE_GENERATED.value, _B.SENT_TO_BANK.value, "send_to_bank"),
        Transition(_B.SENT_TO_BANK.value, _B.PROCESSING.value, "bank_acknowledged"),
        Transition(_B.PROCESSING.value, _B.COMPLETED.value, "all_settled"),
        Transition(_B.PROCESSING.value, _B.FAILED.value, "settled_with_failures"),
    ),
    terminal_states=(_B.COMPLETED.value, _B.FAILED.value),
)


def can_transition(from_status: PaymentStatus, to_status: PaymentStatus) -> bool:
    """Pure query against the payment transition table."""
    return PAYMENT_WORKFLOW.find(from_status.value, to_status.value) is not None


def can_transition_batch(
    from_status: PaymentBatchStatus, to_status: PaymentBatchStatus,
) -> bool:
    """Pure query against the batch transition table."""
    return BATCH_WORKFLOW.find(from_status.value, to_status.value) is not None
