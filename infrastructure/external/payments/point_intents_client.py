"""
Point payment-intents adapter.

- create: POST /point/integration-api/devices/{device_id}/payment-intents
  with the amount in cents and the order reference in additional_info
- status: GET /point/integration-api/payment-intents/{id}; the intent's
  `state` is authoritative, a FINISHED intent is qualified by payment.status
- cancel: DELETE /point/integration-api/payment-intents/{id}
"""
from __future__ import annotations

from typing import Any

from domain.payment.entity import IntentHandle, IntentSnapshot, PaymentRequest
from infrastructure.external.payments.base import DEVICES_PATH, BaseTerminalClient


INTENTS_PATH = "/point/integration-api/payment-intents"


class PointIntentsClient(BaseTerminalClient):
    provider = "point_intents"

    def __init__(self, gateway, *, retry=None, print_on_terminal: bool = True):
        super().__init__(gateway, retry=retry)
        self._print_on_terminal = print_on_terminal

    async def create_intent(self, req: PaymentRequest, *, idempotency_key: str) -> IntentHandle:  # type: ignore[override]
        payload = {
            "amount": self._to_minor(req.amount),
            "additional_info": {
                "external_reference": req.external_reference,
                "print_on_terminal": self._print_on_terminal,
            },
        }
        data = await self._call(
            "POST",
            f"{DEVICES_PATH}/{req.terminal_id}/payment-intents",
            body=payload,
            idempotency_key=idempotency_key,
        ) or {}
        additional = data.get("additional_info") or {}
        handle = IntentHandle(
            intent_id=str(data.get("id") or ""),
            terminal_id=str(data.get("device_id") or req.terminal_id),
            amount=self._from_minor(data.get("amount")),
            external_reference=additional.get("external_reference"),
            status=data.get("state") or "OPEN",
            idempotency_key=idempotency_key,
        )
        self._log("intent_created", intent_id=handle.intent_id, terminal_id=handle.terminal_id)
        return handle

    async def get_intent(self, handle: IntentHandle) -> IntentSnapshot:  # type: ignore[override]
        data = await self._retry(lambda: self._call("GET", f"{INTENTS_PATH}/{handle.intent_id}")) or {}
        state = str(data.get("state") or "OPEN")
        payment = data.get("payment") or {}
        payment_status = payment.get("status")

        status = self._map_status(self._qualified_state(state, payment_status))
        return IntentSnapshot(
            intent_id=str(data.get("id") or handle.intent_id),
            raw_status=state,
            status=status,
            payment_id=str(payment["id"]) if payment.get("id") is not None else None,
            payment_status=payment_status,
            status_detail=payment.get("status_detail"),
            raw=data,
        )

    async def cancel_intent(self, handle: IntentHandle) -> None:  # type: ignore[override]
        await self._call("DELETE", f"{INTENTS_PATH}/{handle.intent_id}")
        self._log("intent_cancelled", intent_id=handle.intent_id)

    @staticmethod
    def _qualified_state(state: str, payment_status: Any) -> str:
        if state == "FINISHED" and payment_status in ("approved", "rejected"):
            return f"{state}:{payment_status}"
        return state
