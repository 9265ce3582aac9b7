"""
Payment flow state machine.

The flow is an explicit transition table; `transition` is a pure function and
holds no UI or I/O concerns. The controller in the application layer drives it.
"""
from __future__ import annotations

from enum import Enum

from domain.payment.exceptions import InvalidFlowTransition


class FlowState(str, Enum):
    SELECT_TERMINAL = "SelectTerminal"
    INITIAL = "Initial"
    SENDING = "Sending"
    PROCESSING = "Processing"
    SUCCESS = "Success"
    REJECTED = "Rejected"
    ERROR = "Error"
    CONFIRM_CLOSE = "ConfirmClose"
    CLOSED = "Closed"


class FlowTrigger(str, Enum):
    # operator actions
    SELECT_TERMINAL = "select_terminal"
    START = "start"
    BACK = "back"
    RETRY = "retry"
    CONFIRM = "confirm"
    FINALIZE = "finalize"
    CANCEL = "cancel"
    # system events
    NO_TERMINALS = "no_terminals"
    SUBMITTED = "submitted"
    FAILED = "failed"
    APPROVED = "approved"
    DECLINED = "declined"
    UNRESOLVED = "unresolved"  # timeout or unexpected status


S = FlowState
T = FlowTrigger

TRANSITIONS: dict[tuple[FlowState, FlowTrigger], FlowState] = {
    (S.SELECT_TERMINAL, T.SELECT_TERMINAL): S.INITIAL,
    (S.SELECT_TERMINAL, T.NO_TERMINALS): S.SELECT_TERMINAL,
    (S.INITIAL, T.START): S.SENDING,
    (S.INITIAL, T.BACK): S.SELECT_TERMINAL,
    (S.SENDING, T.SUBMITTED): S.PROCESSING,
    (S.SENDING, T.FAILED): S.ERROR,
    (S.PROCESSING, T.FAILED): S.ERROR,
    (S.PROCESSING, T.APPROVED): S.SUCCESS,
    (S.PROCESSING, T.DECLINED): S.REJECTED,
    (S.PROCESSING, T.UNRESOLVED): S.ERROR,
    (S.SUCCESS, T.CONFIRM): S.CONFIRM_CLOSE,
    (S.REJECTED, T.RETRY): S.SENDING,
    (S.CONFIRM_CLOSE, T.FINALIZE): S.CLOSED,
    # closing by the operator
    (S.SELECT_TERMINAL, T.CANCEL): S.CLOSED,
    (S.INITIAL, T.CANCEL): S.CLOSED,
    (S.SENDING, T.CANCEL): S.CLOSED,
    (S.PROCESSING, T.CANCEL): S.CLOSED,
    (S.SUCCESS, T.CANCEL): S.CLOSED,
    (S.REJECTED, T.CANCEL): S.CLOSED,
    (S.ERROR, T.CANCEL): S.CLOSED,
    (S.CONFIRM_CLOSE, T.CANCEL): S.CLOSED,
}

OPERATOR_TRIGGERS = (T.SELECT_TERMINAL, T.START, T.BACK, T.RETRY, T.CONFIRM, T.FINALIZE, T.CANCEL)


def transition(state: FlowState, trigger: FlowTrigger) -> FlowState:
    try:
        return TRANSITIONS[(state, trigger)]
    except KeyError:
        raise InvalidFlowTransition(state.value, trigger.value) from None


def can_transition(state: FlowState, trigger: FlowTrigger) -> bool:
    return (state, trigger) in TRANSITIONS


def available_actions(state: FlowState) -> list[FlowTrigger]:
    """Operator actions accepted in `state`, in a stable order."""
    return [trigger for trigger in OPERATOR_TRIGGERS if (state, trigger) in TRANSITIONS]
