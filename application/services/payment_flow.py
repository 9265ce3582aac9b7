"""
Payment flow controller.

Drives one flow (terminal selection → intent → polling → acknowledgment)
through the domain state machine. Operator actions are plain methods; the
submit/poll attempt runs as an asyncio task so the loop keeps serving
operator actions, including cancel, while a provider call is outstanding.

Every attempt carries a number. Progress and results are applied only while
the flow is still in that attempt's state, so a late result from an
abandoned attempt never changes what the operator sees.
"""
from __future__ import annotations

import asyncio
from decimal import Decimal
from functools import partial
from typing import Any, Callable, Optional

from application.dtos.payments import FlowView, OutcomeDTO, TerminalDTO
from application.ports.payment_gateway import TerminalPaymentGateway
from application.services.intent_submitter import PaymentIntentSubmitter, derive_idempotency_key
from application.services.outcome_poller import OutcomePoller, PollProgress
from application.services.terminal_directory import TerminalDirectory
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException, DomainValidationException
from domain.payment.entity import (
    IntentHandle,
    OutcomeStatus,
    PaymentOutcome,
    PaymentRequest,
    Terminal,
    parse_amount,
)
from domain.payment.events import FlowDiscarded, FlowEvent, PaymentCollected
from domain.payment.exceptions import InvalidPaymentRequest, TerminalPaymentError
from domain.payment.flow import (
    FlowState,
    FlowTrigger,
    available_actions,
    transition,
)
from shared.codes import BusinessCode


logger = get_logger(__name__)

FlowListener = Callable[[FlowView], Any]


class PaymentFlowController:
    """One ephemeral payment flow, scoped to an operator session."""

    def __init__(
        self,
        *,
        flow_id: str,
        order_id: str,
        amount: Decimal,
        description: Optional[str] = None,
        directory: TerminalDirectory,
        submitter: PaymentIntentSubmitter,
        poller: OutcomePoller,
        gateway: Optional[TerminalPaymentGateway] = None,
        cancel_intent_on_close: bool = True,
        display_reference_length: int = 8,
        on_finalized: Optional[Callable[[PaymentCollected], Any]] = None,
    ) -> None:
        self.flow_id = flow_id
        self.order_id = order_id
        try:
            self.amount = parse_amount(amount)
        except DomainValidationException as exc:
            raise InvalidPaymentRequest(exc.message, field="amount") from exc
        self.description = description or f"Order {order_id}"
        self._directory = directory
        self._submitter = submitter
        self._poller = poller
        self._gateway = gateway or submitter.gateway
        self._cancel_intent_on_close = cancel_intent_on_close
        self._display_reference_length = display_reference_length
        self._on_finalized = on_finalized

        self.state = FlowState.SELECT_TERMINAL
        self.history: list[FlowState] = [self.state]
        self.message = "loading terminals"
        self.terminals: list[Terminal] = []
        self.terminals_loaded = False
        self.selected_terminal: Optional[Terminal] = None
        self.request: Optional[PaymentRequest] = None
        self.handle: Optional[IntentHandle] = None
        self.attempt = 0
        self.elapsed_seconds = 0.0
        self.remaining_seconds = 0.0
        self.raw_status: Optional[str] = None
        self.outcome: Optional[PaymentOutcome] = None
        self.error: Optional[BusinessException] = None
        self.events: list[FlowEvent] = []

        self._task: Optional[asyncio.Task] = None
        self._cleanup_task: Optional[asyncio.Task] = None
        self._listeners: list[FlowListener] = []
        self._last_view: Optional[FlowView] = None

    # ---- observation ------------------------------------------------------

    @property
    def display_reference(self) -> str:
        # Display only; the full order id is what gets submitted
        return self.order_id[: self._display_reference_length]

    @property
    def is_closed(self) -> bool:
        return self.state == FlowState.CLOSED

    def view(self) -> FlowView:
        return FlowView(
            flow_id=self.flow_id,
            state=self.state.value,
            message=self.message,
            order_id=self.order_id,
            display_reference=self.display_reference,
            amount=self.amount,
            terminals=[TerminalDTO.from_entity(t) for t in self.terminals],
            terminals_loaded=self.terminals_loaded,
            selected_terminal=TerminalDTO.from_entity(self.selected_terminal) if self.selected_terminal else None,
            attempt=self.attempt,
            intent_id=self.handle.intent_id if self.handle else None,
            elapsed_seconds=self.elapsed_seconds,
            remaining_seconds=self.remaining_seconds,
            raw_status=self.raw_status,
            outcome=OutcomeDTO(
                status=self.outcome.status.value,
                payment_id=self.outcome.payment_id,
                error_message=self.outcome.error_message,
                raw_status=self.outcome.raw_status,
            ) if self.outcome else None,
            error_type=self.error.error_type if self.error else None,
            available_actions=[t.value for t in self.available_actions()],
        )

    def available_actions(self) -> list[FlowTrigger]:
        actions = available_actions(self.state)
        if self.state == FlowState.SELECT_TERMINAL and not self.terminals:
            actions = [a for a in actions if a != FlowTrigger.SELECT_TERMINAL]
        return actions

    def subscribe(self, listener: FlowListener) -> Callable[[], None]:
        """Register a listener; it receives the current view right away."""
        self._listeners.append(listener)
        listener(self.view())

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        view = self.view()
        if view == self._last_view:
            return
        self._last_view = view
        for listener in list(self._listeners):
            listener(view)

    def _fire(self, trigger: FlowTrigger) -> FlowState:
        previous = self.state
        self.state = transition(previous, trigger)
        self.history.append(self.state)
        logger.info(
            "flow_transition",
            flow_id=self.flow_id,
            attempt=self.attempt,
            trigger=trigger.value,
            from_state=previous.value,
            to_state=self.state.value,
        )
        return previous

    def _is_current(self, attempt: int, state: FlowState) -> bool:
        return self.attempt == attempt and self.state == state

    # ---- terminal selection -----------------------------------------------

    async def load_terminals(self) -> list[Terminal]:
        """Fetch enabled terminals; only meaningful while selecting a terminal."""
        if self.state != FlowState.SELECT_TERMINAL:
            return self.terminals
        try:
            terminals = await self._directory.list_enabled_terminals()
        except TerminalPaymentError as exc:
            logger.error("flow_terminals_failed", flow_id=self.flow_id, error=exc.message, error_type=exc.error_type)
            self.error = exc
            self.terminals = []
            self.terminals_loaded = False
            self.message = f"could not load terminals: {exc.message}"
            self._notify()
            return []

        self.error = None
        self.terminals = terminals
        self.terminals_loaded = True
        if not terminals:
            self._fire(FlowTrigger.NO_TERMINALS)
            self.message = "no terminals available"
        else:
            self.message = "select a terminal"
        self._notify()
        return terminals

    def select_terminal(self, terminal_id: str) -> None:
        terminal = next((t for t in self.terminals if t.id == terminal_id), None)
        if self.state == FlowState.SELECT_TERMINAL and terminal is None:
            raise InvalidPaymentRequest(f"Terminal {terminal_id} is not an enabled terminal", field="terminal_id")
        self._fire(FlowTrigger.SELECT_TERMINAL)
        self.selected_terminal = terminal
        self.error = None
        self.message = f"ready to charge {self.amount} on {terminal.name}"
        self._notify()

    def back(self) -> None:
        self._fire(FlowTrigger.BACK)
        self.selected_terminal = None
        self.message = "select a terminal" if self.terminals else "no terminals available"
        self._notify()

    # ---- attempts ---------------------------------------------------------

    def start(self) -> None:
        self._begin_attempt(FlowTrigger.START)

    def retry(self) -> None:
        self._begin_attempt(FlowTrigger.RETRY)

    def _begin_attempt(self, trigger: FlowTrigger) -> None:
        # Both checks run before any state changes; Sending always carries a request
        transition(self.state, trigger)
        terminal = self.selected_terminal
        try:
            request = PaymentRequest(
                amount=self.amount,
                description=self.description,
                external_reference=self.order_id,
                terminal_id=terminal.id,
            )
        except DomainValidationException as exc:
            raise InvalidPaymentRequest(exc.message, field=exc.field) from exc

        self.attempt += 1
        self.request = request
        self._fire(trigger)
        self.handle = None
        self.outcome = None
        self.error = None
        self.raw_status = None
        self.elapsed_seconds = 0.0
        self.remaining_seconds = self._poller.timeout
        self.message = f"sending payment to {terminal.name}"
        self._notify()
        self._task = asyncio.create_task(self._run_attempt(self.attempt, self.request))

    async def _run_attempt(self, attempt: int, request: PaymentRequest) -> None:
        try:
            handle = await self._submitter.submit(
                request,
                self.terminals,
                idempotency_key=derive_idempotency_key(self.flow_id, attempt, request),
            )
        except TerminalPaymentError as exc:
            self._apply_failure(attempt, FlowState.SENDING, exc)
            return
        except Exception as exc:
            logger.exception("flow_attempt_crashed", flow_id=self.flow_id, attempt=attempt)
            self._apply_failure(attempt, FlowState.SENDING, self._unexpected(exc))
            return

        if not self._is_current(attempt, FlowState.SENDING):
            logger.info("late_outcome_discarded", flow_id=self.flow_id, attempt=attempt, intent_id=handle.intent_id)
            if self.is_closed and self._cancel_intent_on_close:
                # Closed while the create call was outstanding; the intent exists anyway
                await self._cancel_remote_intent(handle)
            return
        self.handle = handle
        self._fire(FlowTrigger.SUBMITTED)
        self.message = f"waiting for payment on {self.selected_terminal.name}"
        self._notify()

        try:
            outcome = await self._poller.poll_until_terminal(
                handle,
                on_progress=partial(self._on_progress, attempt),
                should_continue=partial(self._is_current, attempt, FlowState.PROCESSING),
            )
        except TerminalPaymentError as exc:
            self._apply_failure(attempt, FlowState.PROCESSING, exc)
            return
        except Exception as exc:
            logger.exception("flow_attempt_crashed", flow_id=self.flow_id, attempt=attempt)
            self._apply_failure(attempt, FlowState.PROCESSING, self._unexpected(exc))
            return

        if outcome is None or not self._is_current(attempt, FlowState.PROCESSING):
            logger.info("late_outcome_discarded", flow_id=self.flow_id, attempt=attempt, state=self.state.value)
            return
        self._apply_outcome(outcome)

    def _on_progress(self, attempt: int, progress: PollProgress) -> None:
        if not self._is_current(attempt, FlowState.PROCESSING):
            return
        self.elapsed_seconds = max(self.elapsed_seconds, progress.elapsed)
        self.remaining_seconds = progress.remaining
        self.raw_status = progress.raw_status
        self._notify()

    def _apply_failure(self, attempt: int, expected: FlowState, exc: BusinessException) -> None:
        if not self._is_current(attempt, expected):
            logger.info("late_outcome_discarded", flow_id=self.flow_id, attempt=attempt, error_type=exc.error_type)
            return
        self.error = exc
        self._fire(FlowTrigger.FAILED)
        self.remaining_seconds = 0.0
        self.message = exc.message
        self._notify()

    def _apply_outcome(self, outcome: PaymentOutcome) -> None:
        self.outcome = outcome
        self.raw_status = outcome.raw_status or self.raw_status
        self.remaining_seconds = 0.0
        self.error = outcome.as_error()

        if outcome.status == OutcomeStatus.APPROVED:
            self._fire(FlowTrigger.APPROVED)
            self.message = "payment approved"
        elif outcome.status == OutcomeStatus.REJECTED:
            self._fire(FlowTrigger.DECLINED)
            reason = outcome.error_message
            self.message = f"payment rejected: {reason}" if reason else "payment rejected"
        elif outcome.status == OutcomeStatus.CANCELLED:
            self._fire(FlowTrigger.DECLINED)
            reason = outcome.error_message
            self.message = f"payment cancelled: {reason}" if reason else "payment cancelled"
        elif outcome.status == OutcomeStatus.TIMEOUT:
            self._fire(FlowTrigger.UNRESOLVED)
            self.message = self.error.message
        elif outcome.status == OutcomeStatus.EXPIRED:
            self._fire(FlowTrigger.UNRESOLVED)
            self.message = "payment intent expired before the customer paid"
        else:
            self._fire(FlowTrigger.UNRESOLVED)
            self.message = outcome.error_message or f"unexpected payment status: {outcome.raw_status}"
        self._notify()

    @staticmethod
    def _unexpected(exc: Exception) -> BusinessException:
        return BusinessException(
            code=BusinessCode.SYSTEM_ERROR,
            message=f"unexpected error: {exc}",
            error_type="SystemError",
        )

    # ---- acknowledgment and closing ----------------------------------------

    def confirm(self) -> None:
        self._fire(FlowTrigger.CONFIRM)
        self.message = f"confirm to finalize order {self.display_reference}"
        self._notify()

    def finalize(self) -> PaymentCollected:
        self._fire(FlowTrigger.FINALIZE)
        event = PaymentCollected(
            flow_id=self.flow_id,
            order_id=self.order_id,
            terminal_id=self.selected_terminal.id,
            amount=self.amount,
            intent_id=self.handle.intent_id if self.handle else None,
            payment_id=self.outcome.payment_id if self.outcome else None,
        )
        self.events.append(event)
        self.message = "payment finalized"
        logger.info("payment_collected", flow_id=self.flow_id, order_id=self.order_id, payment_id=event.payment_id)
        self._notify()
        if self._on_finalized is not None:
            self._on_finalized(event)
        return event

    def cancel(self, reason: Optional[str] = None) -> FlowDiscarded:
        previous = self._fire(FlowTrigger.CANCEL)
        # A pending create call is left to finish so its intent can be withdrawn
        if previous == FlowState.PROCESSING and self._task is not None and not self._task.done():
            self._task.cancel()
        if (
            previous == FlowState.PROCESSING
            and self.handle is not None
            and self._cancel_intent_on_close
        ):
            self._cleanup_task = asyncio.create_task(self._cancel_remote_intent(self.handle))

        self.remaining_seconds = 0.0
        self.message = "payment flow closed"
        event = FlowDiscarded(
            flow_id=self.flow_id,
            order_id=self.order_id,
            last_state=previous.value,
            reason=reason,
        )
        self.events.append(event)
        logger.info("flow_discarded", flow_id=self.flow_id, last_state=previous.value, attempt=self.attempt)
        self._notify()
        return event

    async def _cancel_remote_intent(self, handle: IntentHandle) -> None:
        try:
            await self._gateway.cancel_intent(handle)
        except TerminalPaymentError as exc:
            # The terminal may still show the charge; the flow is closed either way
            logger.warning(
                "intent_cancel_failed",
                flow_id=self.flow_id,
                intent_id=handle.intent_id,
                error=exc.message,
                error_type=exc.error_type,
            )

    async def wait(self) -> None:
        """Wait for the running attempt and any provider-side cleanup."""
        tasks = [t for t in (self._task, self._cleanup_task) if t is not None]
        if not tasks:
            return
        done, _ = await asyncio.wait(tasks)
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()

    def perform(self, action: FlowTrigger | str) -> None:
        """Dispatch an operator action by name (select_terminal excluded)."""
        try:
            trigger = FlowTrigger(action)
        except ValueError:
            raise InvalidPaymentRequest(f"Unsupported action: {action}", field="action") from None
        handlers = {
            FlowTrigger.START: self.start,
            FlowTrigger.BACK: self.back,
            FlowTrigger.RETRY: self.retry,
            FlowTrigger.CONFIRM: self.confirm,
            FlowTrigger.FINALIZE: self.finalize,
            FlowTrigger.CANCEL: self.cancel,
        }
        handler = handlers.get(trigger)
        if handler is None:
            raise InvalidPaymentRequest(f"Unsupported action: {trigger.value}", field="action")
        handler()
