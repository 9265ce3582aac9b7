"""
Base terminal client implementing shared concerns: gateway calls, retry,
logging, status mapping and the device directory.

Concrete provider APIs subclass and implement intent create/get/cancel.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional

from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception

from core.logging_config import get_logger
from application.dtos.payments import ProviderDevice
from application.ports.payment_gateway import TerminalPaymentGateway
from domain.payment.entity import IntentHandle, IntentSnapshot, OperatingMode, PaymentRequest
from domain.payment.exceptions import (
    CommunicationError,
    ProviderRejection,
    RateLimitedError,
    TerminalPaymentError,
)
from infrastructure.external.api_clients.credentialed_gateway import CredentialedGateway, GatewayResponse
from shared.codes.payment_codes import PROVIDER_STATUS_TO_INTERNAL


logger = get_logger(__name__)

DEVICES_PATH = "/point/integration-api/devices"


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, TerminalPaymentError) and exc.retryable


class BaseTerminalClient(TerminalPaymentGateway):
    provider: str = "base"

    def __init__(
        self,
        gateway: CredentialedGateway,
        *,
        retry: Optional[dict[str, Any]] = None,
    ) -> None:
        self._gateway = gateway
        self._retry_cfg = retry or {"max": 2, "base_backoff": 0.5, "max_backoff": 10.0}

    async def aclose(self) -> None:
        await self._gateway.aclose()

    async def _retry(self, fn: Callable[[], Awaitable[Any]]):
        """Retry read-only calls on transient failures (rate limit, 5xx, transport)."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(
                multiplier=self._retry_cfg["base_backoff"],
                min=0.1,
                max=self._retry_cfg.get("max_backoff", 10.0),
            ),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    self._log("provider_call_retry", attempt=attempt.retry_state.attempt_number)
                return await fn()

    async def _call(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        idempotency_key: Optional[str] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        headers = {"X-Idempotency-Key": idempotency_key} if idempotency_key else None
        response = await self._gateway.forward(method, path, headers=headers, body=body, params=params)
        self._raise_for_response(response, method=method, path=path)
        return response.data

    def _raise_for_response(self, response: GatewayResponse, *, method: str, path: str) -> None:
        if response.is_success:
            return
        data = response.data if isinstance(response.data, dict) else {}
        message = str(data.get("message") or data.get("error") or f"HTTP {response.status_code}")
        self._log("provider_error_response", method=method, path=path, status_code=response.status_code, error=message)

        if response.status_code == 429:
            raise RateLimitedError(retry_after=self._retry_after(response))
        if response.status_code >= 500:
            raise CommunicationError(
                f"Payment provider unavailable: {message}",
                status_code=response.status_code,
            )
        raise ProviderRejection(
            message,
            status_code=response.status_code,
            provider_code=str(data["error"]) if data.get("error") else None,
        )

    @staticmethod
    def _retry_after(response: GatewayResponse) -> Optional[float]:
        value = response.headers.get("retry-after") or response.headers.get("Retry-After")
        try:
            return float(value) if value is not None else None
        except ValueError:
            return None

    # Device directory, shared by both terminal APIs

    async def list_devices(self) -> list[ProviderDevice]:
        data = await self._retry(lambda: self._call("GET", DEVICES_PATH))
        devices = (data or {}).get("devices") or []
        result = [ProviderDevice.model_validate(d) for d in devices if isinstance(d, dict) and d.get("id")]
        self._log("devices_listed", count=len(result))
        return result

    async def set_operating_mode(self, device_id: str, mode: OperatingMode) -> ProviderDevice:
        data = await self._call(
            "PATCH",
            f"{DEVICES_PATH}/{device_id}",
            body={"operating_mode": OperatingMode(mode).value},
        )
        self._log("device_operating_mode_set", device_id=device_id, mode=OperatingMode(mode).value)
        payload = dict(data or {})
        payload.setdefault("id", device_id)
        return ProviderDevice.model_validate(payload)

    # Default implementations raise to force override

    async def create_intent(self, req: PaymentRequest, *, idempotency_key: str) -> IntentHandle:  # type: ignore[override]
        raise NotImplementedError

    async def get_intent(self, handle: IntentHandle) -> IntentSnapshot:  # type: ignore[override]
        raise NotImplementedError

    async def cancel_intent(self, handle: IntentHandle) -> None:  # type: ignore[override]
        raise NotImplementedError

    # Helpers
    def _map_status(self, provider_status: str) -> str:
        mapping = PROVIDER_STATUS_TO_INTERNAL.get(self.provider, {})
        return mapping.get(provider_status, provider_status)

    @staticmethod
    def _to_minor(amount: Decimal) -> int:
        # Amounts are sent in cents
        return int((amount * 100).to_integral_value())

    @staticmethod
    def _from_minor(value: Any) -> Optional[Decimal]:
        if value is None:
            return None
        return (Decimal(str(value)) / 100).quantize(Decimal("0.01"))

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
