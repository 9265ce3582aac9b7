"""
Point orders adapter (v1/orders).

An order of type "point" carries a single payment transaction targeted at a
terminal. The order `status` drives resolution; the first payment's
status_detail is used as the decline reason.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from domain.payment.entity import IntentHandle, IntentSnapshot, PaymentRequest
from infrastructure.external.payments.base import BaseTerminalClient


ORDERS_PATH = "/v1/orders"


class PointOrdersClient(BaseTerminalClient):
    provider = "point_orders"

    def __init__(
        self,
        gateway,
        *,
        retry=None,
        expiration_time: str = "PT5M",
        print_on_terminal: str = "seller_ticket",
        description_prefix: str = "Order",
    ):
        super().__init__(gateway, retry=retry)
        self._expiration_time = expiration_time
        self._print_on_terminal = print_on_terminal
        self._description_prefix = description_prefix

    async def create_intent(self, req: PaymentRequest, *, idempotency_key: str) -> IntentHandle:  # type: ignore[override]
        payload = {
            "type": "point",
            "external_reference": req.external_reference,
            "description": req.description or f"{self._description_prefix}-{req.external_reference}",
            "expiration_time": self._expiration_time,
            "transactions": {
                # Decimal string with exactly two places
                "payments": [{"amount": f"{req.amount.quantize(Decimal('0.01'))}"}],
            },
            "config": {
                "point": {
                    "terminal_id": req.terminal_id,
                    "print_on_terminal": self._print_on_terminal,
                },
            },
        }
        data = await self._call("POST", ORDERS_PATH, body=payload, idempotency_key=idempotency_key) or {}
        payment = self._first_payment(data)
        point = (data.get("config") or {}).get("point") or {}
        handle = IntentHandle(
            intent_id=str(data.get("id") or ""),
            terminal_id=str(point.get("terminal_id") or req.terminal_id),
            amount=self._parse_amount(payment.get("amount")),
            external_reference=data.get("external_reference"),
            status=data.get("status"),
            idempotency_key=idempotency_key,
        )
        self._log("order_created", intent_id=handle.intent_id, terminal_id=handle.terminal_id)
        return handle

    async def get_intent(self, handle: IntentHandle) -> IntentSnapshot:  # type: ignore[override]
        data = await self._retry(lambda: self._call("GET", f"{ORDERS_PATH}/{handle.intent_id}")) or {}
        raw_status = str(data.get("status") or "created")
        payment = self._first_payment(data)
        return IntentSnapshot(
            intent_id=str(data.get("id") or handle.intent_id),
            raw_status=raw_status,
            status=self._map_status(raw_status),
            payment_id=str(payment["id"]) if payment.get("id") is not None else None,
            payment_status=payment.get("status"),
            status_detail=payment.get("status_detail") or data.get("status_detail"),
            raw=data,
        )

    async def cancel_intent(self, handle: IntentHandle) -> None:  # type: ignore[override]
        await self._call("POST", f"{ORDERS_PATH}/{handle.intent_id}/cancel")
        self._log("order_cancelled", intent_id=handle.intent_id)

    @staticmethod
    def _first_payment(data: dict) -> dict:
        payments = (data.get("transactions") or {}).get("payments") or []
        return payments[0] if payments and isinstance(payments[0], dict) else {}

    @staticmethod
    def _parse_amount(value) -> Optional[Decimal]:
        if value is None:
            return None
        return Decimal(str(value)).quantize(Decimal("0.01"))
