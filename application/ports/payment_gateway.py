"""
Terminal payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters for
each provider API. Implementations convert every transport/provider failure
into the domain error taxonomy before returning control.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from application.dtos.payments import ProviderDevice
from domain.payment.entity import IntentHandle, IntentSnapshot, OperatingMode, PaymentRequest


@runtime_checkable
class TerminalPaymentGateway(Protocol):
    """Gateway protocol for a remote payment-terminal network.

    Implementations should be async and side-effect free beyond IO.
    """

    provider: str

    async def list_devices(self) -> list[ProviderDevice]: ...

    async def create_intent(self, req: PaymentRequest, *, idempotency_key: str) -> IntentHandle: ...

    async def get_intent(self, handle: IntentHandle) -> IntentSnapshot: ...

    async def cancel_intent(self, handle: IntentHandle) -> None: ...

    async def set_operating_mode(self, device_id: str, mode: OperatingMode) -> ProviderDevice: ...
