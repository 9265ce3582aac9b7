"""
Payment intent submitter.

Validates a PaymentRequest against the flow's terminal list and creates
exactly one intent on the provider. Creation is never retried here; a retry
is a new attempt driven by the operator and gets a new idempotency key.
"""
from __future__ import annotations

import hashlib
from decimal import Decimal
from typing import Optional, Sequence

import httpx

from application.ports.payment_gateway import TerminalPaymentGateway
from core.logging_config import get_logger
from domain.payment.entity import IntentHandle, PaymentRequest, Terminal
from domain.payment.exceptions import (
    CommunicationError,
    InvalidPaymentRequest,
    ProviderRejection,
    TerminalPaymentError,
)


logger = get_logger(__name__)


def derive_idempotency_key(flow_id: str, attempt: int, request: PaymentRequest) -> str:
    """Stable within one attempt, distinct across attempts of the same flow."""
    base = f"create|{flow_id}|{attempt}|{request.external_reference}|{request.amount}|{request.terminal_id}"
    return hashlib.sha256(base.encode("utf-8")).hexdigest()


class PaymentIntentSubmitter:
    def __init__(self, gateway: TerminalPaymentGateway, *, min_amount: Optional[Decimal] = None) -> None:
        self.gateway = gateway
        self.min_amount = min_amount

    def validate(self, request: PaymentRequest, terminals: Sequence[Terminal]) -> None:
        if request.amount <= 0:
            raise InvalidPaymentRequest(f"Amount must be greater than 0: {request.amount}", field="amount")
        if self.min_amount is not None and request.amount < self.min_amount:
            raise InvalidPaymentRequest(
                f"Amount {request.amount} is below the minimum of {self.min_amount}",
                field="amount",
                details={"min_amount": str(self.min_amount)},
            )
        if request.terminal_id not in {t.id for t in terminals if t.enabled}:
            raise InvalidPaymentRequest(
                f"Terminal {request.terminal_id} is not an enabled terminal",
                field="terminal_id",
            )

    async def submit(
        self,
        request: PaymentRequest,
        terminals: Sequence[Terminal],
        *,
        idempotency_key: Optional[str] = None,
    ) -> IntentHandle:
        self.validate(request, terminals)
        key = idempotency_key or derive_idempotency_key("", 0, request)
        logger.info(
            "intent_submit_request",
            provider=self.gateway.provider,
            terminal_id=request.terminal_id,
            external_reference=request.external_reference,
            amount=str(request.amount),
            idempotency_key=key,
        )
        try:
            handle = await self.gateway.create_intent(request, idempotency_key=key)
        except (httpx.HTTPError, OSError) as exc:
            logger.error("intent_submit_transport_error", error=str(exc), error_type=type(exc).__name__)
            raise CommunicationError(details={"error_type": type(exc).__name__}) from exc

        try:
            self._verify_echo(request, handle)
        except ProviderRejection:
            # The intent already exists on the terminal; it must not stay payable
            if handle.intent_id:
                await self._withdraw(handle)
            raise
        logger.info("intent_submitted", intent_id=handle.intent_id, terminal_id=handle.terminal_id, status=handle.status)
        return handle

    async def _withdraw(self, handle: IntentHandle) -> None:
        try:
            await self.gateway.cancel_intent(handle)
        except TerminalPaymentError as exc:
            logger.warning(
                "intent_withdraw_failed",
                intent_id=handle.intent_id,
                error=exc.message,
                error_type=exc.error_type,
            )
        else:
            logger.info("intent_withdrawn", intent_id=handle.intent_id, terminal_id=handle.terminal_id)

    @staticmethod
    def _verify_echo(request: PaymentRequest, handle: IntentHandle) -> None:
        if not handle.intent_id:
            raise ProviderRejection("Payment provider did not return an intent id")
        mismatches = {}
        if handle.amount is not None and handle.amount != request.amount:
            mismatches["amount"] = {"sent": str(request.amount), "echoed": str(handle.amount)}
        if handle.external_reference is not None and handle.external_reference != request.external_reference:
            mismatches["external_reference"] = {
                "sent": request.external_reference,
                "echoed": handle.external_reference,
            }
        if handle.terminal_id and handle.terminal_id != request.terminal_id:
            mismatches["terminal_id"] = {"sent": request.terminal_id, "echoed": handle.terminal_id}
        if mismatches:
            logger.error("intent_echo_mismatch", intent_id=handle.intent_id, mismatches=mismatches)
            raise ProviderRejection(
                "Payment provider echoed different payment details",
                details={"intent_id": handle.intent_id, "mismatches": mismatches},
            )
