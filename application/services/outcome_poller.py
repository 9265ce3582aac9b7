"""
Outcome poller.

Queries a created intent at a fixed interval until the provider reports a
final state or the local ceiling is reached. Progress is reported as
structured values (elapsed, raw status, remaining), never as display text.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Literal, Optional

import httpx

from application.ports.payment_gateway import TerminalPaymentGateway
from core.logging_config import get_logger
from domain.payment.entity import IntentHandle, IntentSnapshot, OutcomeStatus, PaymentOutcome
from domain.payment.exceptions import CommunicationError
from shared.codes.payment_codes import (
    STATUS_APPROVED,
    STATUS_CANCELED,
    STATUS_EXPIRED,
    STATUS_PENDING,
    STATUS_REJECTED,
)


logger = get_logger(__name__)


@dataclass(frozen=True)
class PollProgress:
    elapsed: float       # seconds since this attempt's polling started
    raw_status: str
    remaining: float     # seconds until the local ceiling


ProgressCallback = Callable[[PollProgress], None]
ContinueCheck = Callable[[], bool]


class OutcomePoller:
    def __init__(
        self,
        gateway: TerminalPaymentGateway,
        *,
        interval: float = 1.0,
        timeout: float = 60.0,
        unknown_status_policy: Literal["error", "continue"] = "error",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if interval <= 0 or timeout <= 0:
            raise ValueError("Polling interval and timeout must be positive")
        self.gateway = gateway
        self.interval = interval
        self.timeout = timeout
        self.unknown_status_policy = unknown_status_policy
        self._clock = clock
        self._sleep = sleep

    async def poll_until_terminal(
        self,
        handle: IntentHandle,
        on_progress: Optional[ProgressCallback] = None,
        should_continue: Optional[ContinueCheck] = None,
    ) -> Optional[PaymentOutcome]:
        """
        Poll `handle` until it resolves.

        Returns:
            The outcome, or None when `should_continue` turned false (the
            caller has moved on and no outcome must be delivered).

        Raises:
            CommunicationError: a status query failed after the client's retries
        """
        started = self._clock()
        elapsed = 0.0
        last_raw = handle.status or ""
        polls = 0
        logger.info("poll_started", intent_id=handle.intent_id, interval=self.interval, timeout=self.timeout)

        while True:
            await self._sleep(self.interval)
            if should_continue is not None and not should_continue():
                logger.info("poll_aborted", intent_id=handle.intent_id, polls=polls)
                return None

            snapshot = await self._query(handle)
            polls += 1
            if should_continue is not None and not should_continue():
                # A query was in flight when the caller moved on
                logger.info("poll_aborted", intent_id=handle.intent_id, polls=polls, late_status=snapshot.raw_status)
                return None

            elapsed = max(elapsed, self._clock() - started)
            remaining = max(self.timeout - elapsed, 0.0)
            last_raw = snapshot.raw_status
            logger.debug(
                "poll_progress",
                intent_id=handle.intent_id,
                elapsed=round(elapsed, 3),
                raw_status=snapshot.raw_status,
                status=snapshot.status,
            )
            if on_progress is not None:
                on_progress(PollProgress(elapsed=elapsed, raw_status=snapshot.raw_status, remaining=remaining))

            outcome = self.resolve(snapshot)
            if outcome is not None:
                logger.info(
                    "poll_resolved",
                    intent_id=handle.intent_id,
                    outcome=outcome.status.value,
                    raw_status=snapshot.raw_status,
                    polls=polls,
                )
                return outcome

            if elapsed >= self.timeout:
                logger.warning("poll_timeout", intent_id=handle.intent_id, timeout=self.timeout, last_status=last_raw)
                return PaymentOutcome(
                    status=OutcomeStatus.TIMEOUT,
                    raw_status=last_raw,
                    intent_id=handle.intent_id,
                    timeout_seconds=self.timeout,
                )

    async def _query(self, handle: IntentHandle) -> IntentSnapshot:
        try:
            return await self.gateway.get_intent(handle)
        except (httpx.HTTPError, OSError) as exc:
            logger.error("poll_transport_error", intent_id=handle.intent_id, error=str(exc))
            raise CommunicationError(details={"error_type": type(exc).__name__}) from exc

    def resolve(self, snapshot: IntentSnapshot) -> Optional[PaymentOutcome]:
        """Map one status read to an outcome, or None to keep polling."""
        status = snapshot.status
        common = dict(raw_status=snapshot.raw_status, intent_id=snapshot.intent_id)
        if status == STATUS_PENDING:
            return None
        if status == STATUS_APPROVED:
            return PaymentOutcome(status=OutcomeStatus.APPROVED, payment_id=snapshot.payment_id, **common)
        if status == STATUS_REJECTED:
            return PaymentOutcome(
                status=OutcomeStatus.REJECTED,
                payment_id=snapshot.payment_id,
                error_message=snapshot.status_detail,
                **common,
            )
        if status == STATUS_CANCELED:
            return PaymentOutcome(
                status=OutcomeStatus.CANCELLED,
                payment_id=snapshot.payment_id,
                error_message=snapshot.status_detail,
                **common,
            )
        if status == STATUS_EXPIRED:
            return PaymentOutcome(
                status=OutcomeStatus.EXPIRED,
                error_message="Payment intent expired on the provider",
                **common,
            )

        if self.unknown_status_policy == "continue":
            logger.warning("poll_unknown_status", intent_id=snapshot.intent_id, raw_status=snapshot.raw_status)
            return None
        return PaymentOutcome(
            status=OutcomeStatus.ERROR,
            error_message=f"unexpected payment status: {snapshot.raw_status}",
            **common,
        )
