"""Application lifecycle state machine"""

import enum
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional

from rentflow.domain.exceptions import InvalidTransitionError


class ApplicationState(str, enum.Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    ADMIN_SCREENED = "admin_screened"
    APPROVED_HIGH = "approved_high"
    TERMS_SET = "terms_set"
    MIN_DUE = "min_due"
    MIN_PAID = "min_paid"
    COUNTERSIGNED = "countersigned"
    OCCUPIED = "occupied"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"

    @classmethod
    def terminal_states(cls) -> FrozenSet["ApplicationState"]:
        return frozenset({cls.REJECTED, cls.WITHDRAWN})

    @property
    def is_terminal(self) -> bool:
        return self in ApplicationState.terminal_states()


class WorkflowEvent(str, enum.Enum):
    SUBMIT = "submit"
    SCREEN = "screen"
    APPROVE = "approve"
    SET_TERMS = "set_terms"
    OPEN_PAYMENTS = "open_payments"
    PAYMENT_UPDATED = "payment_updated"
    COUNTERSIGN = "countersign"
    OCCUPY = "occupy"
    REJECT = "reject"
    WITHDRAW = "withdraw"


# Forward edges; reject/withdraw are implied from every non-terminal state
TRANSITIONS: Dict[ApplicationState, Dict[WorkflowEvent, ApplicationState]] = {
    ApplicationState.DRAFT: {WorkflowEvent.SUBMIT: ApplicationState.SUBMITTED},
    ApplicationState.SUBMITTED: {WorkflowEvent.SCREEN: ApplicationState.ADMIN_SCREENED},
    ApplicationState.ADMIN_SCREENED: {WorkflowEvent.APPROVE: ApplicationState.APPROVED_HIGH},
    ApplicationState.APPROVED_HIGH: {WorkflowEvent.SET_TERMS: ApplicationState.TERMS_SET},
    ApplicationState.TERMS_SET: {WorkflowEvent.OPEN_PAYMENTS: ApplicationState.MIN_DUE},
    ApplicationState.MIN_DUE: {WorkflowEvent.PAYMENT_UPDATED: ApplicationState.MIN_PAID},
    ApplicationState.MIN_PAID: {WorkflowEvent.COUNTERSIGN: ApplicationState.COUNTERSIGNED},
    ApplicationState.COUNTERSIGNED: {WorkflowEvent.OCCUPY: ApplicationState.OCCUPIED},
    ApplicationState.OCCUPIED: {},
    ApplicationState.REJECTED: {},
    ApplicationState.WITHDRAWN: {},
}

EXIT_EVENTS: Dict[WorkflowEvent, ApplicationState] = {
    WorkflowEvent.REJECT: ApplicationState.REJECTED,
    WorkflowEvent.WITHDRAW: ApplicationState.WITHDRAWN,
}

# Events whose target requires stage 1 to be fully met
STAGE1_GATED: FrozenSet[WorkflowEvent] = frozenset({WorkflowEvent.PAYMENT_UPDATED, WorkflowEvent.COUNTERSIGN})

# States that imply stage 1 was met on entry
PAID_STATES: FrozenSet[ApplicationState] = frozenset(
    {ApplicationState.MIN_PAID, ApplicationState.COUNTERSIGNED, ApplicationState.OCCUPIED}
)

# Older status vocabularies map onto the canonical states for display only
DISPLAY_LABELS: Dict[ApplicationState, str] = {
    ApplicationState.DRAFT: "new",
    ApplicationState.SUBMITTED: "new",
    ApplicationState.ADMIN_SCREENED: "in_review",
    ApplicationState.APPROVED_HIGH: "approved_pending_lease",
    ApplicationState.TERMS_SET: "lease_out",
    ApplicationState.MIN_DUE: "lease_out",
    ApplicationState.MIN_PAID: "countersign_ready",
    ApplicationState.COUNTERSIGNED: "countersigned",
    ApplicationState.OCCUPIED: "occupied",
    ApplicationState.REJECTED: "rejected",
    ApplicationState.WITHDRAWN: "withdrawn",
}


@dataclass
class GuardContext:
    """Facts known at call time, used to evaluate transition guards"""

    stage1_met: bool = False
    move_in_reached: bool = False
    reason: Optional[str] = None


def allowed_events(state: ApplicationState) -> List[WorkflowEvent]:
    """Edges leaving a state, ignoring guards (for UI hints)"""
    state = ApplicationState(state)
    if state.is_terminal:
        return []
    return list(TRANSITIONS[state]) + list(EXIT_EVENTS)


def next_state(
    current: ApplicationState,
    event: WorkflowEvent,
    ctx: Optional[GuardContext] = None,
) -> ApplicationState:
    """
    Apply one edge of the lifecycle.

    Raises:
        InvalidTransitionError: If the edge does not exist from ``current``
            or its guard is not satisfied
    """
    current = ApplicationState(current)
    event = WorkflowEvent(event)
    ctx = ctx or GuardContext()

    if current.is_terminal:
        raise InvalidTransitionError(current.value, event.value, "terminal state")

    if event in EXIT_EVENTS:
        if not (ctx.reason and ctx.reason.strip()):
            raise InvalidTransitionError(current.value, event.value, "a reason is required")
        return EXIT_EVENTS[event]

    target = TRANSITIONS[current].get(event)
    if target is None:
        raise InvalidTransitionError(current.value, event.value, "no such edge")

    if event in STAGE1_GATED and not ctx.stage1_met:
        raise InvalidTransitionError(current.value, event.value, "signing funds not met")

    if event == WorkflowEvent.OCCUPY and not ctx.move_in_reached:
        raise InvalidTransitionError(current.value, event.value, "move-in date not reached")

    return target
