"""
终端支付领域实体 - terminals, payment requests, intents and outcomes.

All entities are immutable: a Terminal is a read-only reference for the whole
flow, a PaymentRequest is built once per attempt, and a PaymentOutcome is
produced once per attempt and consumed exactly once by the flow controller.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from domain.common.exceptions import DomainValidationException
from domain.payment.exceptions import (
    PaymentDeclined,
    TerminalPaymentError,
    TimeoutExceeded,
)


CENT = Decimal("0.01")


class OperatingMode(str, Enum):
    """终端运行模式"""
    PDV = "PDV"                # receives intents pushed through the API
    STANDALONE = "STANDALONE"  # manual payments only


class OutcomeStatus(str, Enum):
    """单次尝试的最终结果"""
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"    # provider expired the intent
    TIMEOUT = "TIMEOUT"    # local polling ceiling reached
    ERROR = "ERROR"        # unexpected provider status


def parse_amount(value: Any) -> Decimal:
    """A chargeable amount: finite, positive, at most two decimal places."""
    try:
        # str() keeps 250.1 from turning into 250.0999...
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise DomainValidationException(f"Invalid amount: {value!r}", field="amount") from exc
    if not amount.is_finite():
        raise DomainValidationException(f"Invalid amount: {value!r}", field="amount")
    if amount <= 0:
        raise DomainValidationException(f"Amount must be greater than 0: {amount}", field="amount")
    if amount != amount.quantize(CENT):
        raise DomainValidationException(f"Amount must have at most 2 decimal places: {amount}", field="amount")
    return amount


@dataclass(frozen=True)
class Terminal:
    id: str
    name: str
    location: str
    enabled: bool = True
    operating_mode: Optional[OperatingMode] = None
    store_id: Optional[str] = None
    pos_id: Optional[str] = None
    external_id: Optional[str] = None


@dataclass(frozen=True)
class PaymentRequest:
    """
    一次收款尝试的请求

    业务规则：
    1. 金额必须大于0，且最多两位小数（服务商按分计价）
    2. 必须指定目标终端
    3. external_reference 为订单ID，原样提交，不截断
    """

    amount: Decimal
    description: str
    external_reference: str
    terminal_id: str

    def __post_init__(self):
        amount = parse_amount(self.amount)
        object.__setattr__(self, "amount", amount)
        if not self.terminal_id:
            raise DomainValidationException("A target terminal is required", field="terminal_id")
        if not self.external_reference:
            raise DomainValidationException("An external reference is required", field="external_reference")


@dataclass(frozen=True)
class IntentHandle:
    """Provider-assigned intent id plus the values the provider echoed back."""

    intent_id: str
    terminal_id: str
    amount: Optional[Decimal] = None
    external_reference: Optional[str] = None
    status: Optional[str] = None
    idempotency_key: Optional[str] = None


@dataclass(frozen=True)
class IntentSnapshot:
    """A single status read of an intent."""

    intent_id: str
    raw_status: str
    status: str  # normalized, see shared.codes.payment_codes
    payment_id: Optional[str] = None
    payment_status: Optional[str] = None
    status_detail: Optional[str] = None
    raw: dict = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class PaymentOutcome:
    status: OutcomeStatus
    payment_id: Optional[str] = None
    error_message: Optional[str] = None
    raw_status: Optional[str] = None
    intent_id: Optional[str] = None
    timeout_seconds: Optional[float] = None

    @property
    def is_approved(self) -> bool:
        return self.status == OutcomeStatus.APPROVED

    @property
    def is_declined(self) -> bool:
        return self.status in (OutcomeStatus.REJECTED, OutcomeStatus.CANCELLED)

    def as_error(self) -> Optional[TerminalPaymentError]:
        """Express a non-approved outcome in the error taxonomy."""
        if self.is_approved:
            return None
        if self.is_declined:
            message = self.error_message or (
                "Payment cancelled" if self.status == OutcomeStatus.CANCELLED else "Payment rejected"
            )
            return PaymentDeclined(message, status=self.status.value, reason=self.error_message)
        if self.status == OutcomeStatus.TIMEOUT:
            return TimeoutExceeded(self.timeout_seconds or 0.0, last_status=self.raw_status)
        return None
