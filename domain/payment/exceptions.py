"""
Terminal payment error taxonomy.

Every provider/network failure is converted into one of these kinds at the
client, submitter or poller boundary, so the flow controller never handles a
raw transport exception.
"""
from __future__ import annotations

from typing import Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class TerminalPaymentError(BusinessException):
    """Base class for every terminal payment failure kind."""

    retryable: bool = False

    def __init__(self, message: str, *, code: int, error_type: str, details: Optional[dict] = None):
        super().__init__(code=code, message=message, error_type=error_type, details=details)


class ConfigurationError(TerminalPaymentError):
    """The provider credential (or another mandatory setting) is missing."""

    def __init__(self, message: str = "Provider access token not configured", *, details: Optional[dict] = None):
        super().__init__(message, code=PaymentCode.CONFIGURATION_ERROR, error_type="ConfigurationError", details=details)


class CommunicationError(TerminalPaymentError):
    """Transport failure, unreadable response or transient provider failure."""

    retryable = True

    def __init__(
        self,
        message: str = "Error communicating with the payment provider",
        *,
        status_code: Optional[int] = None,
        details: Optional[dict] = None,
    ):
        full_details = {"status_code": status_code} if status_code is not None else {}
        if details:
            full_details.update(details)
        super().__init__(
            message,
            code=PaymentCode.COMMUNICATION_ERROR,
            error_type="CommunicationError",
            details=full_details or None,
        )
        self.status_code = status_code


class RateLimitedError(CommunicationError):
    def __init__(self, message: str = "Too many requests to the payment provider", *, retry_after: Optional[float] = None):
        super().__init__(message, status_code=429, details={"retry_after": retry_after})
        self.code = PaymentCode.RATE_LIMITED
        self.error_type = "RateLimited"
        self.retry_after = retry_after


class ProviderRejection(TerminalPaymentError):
    """The provider synchronously refused the request (bad terminal, amount...)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        provider_code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        full_details = {"status_code": status_code, "provider_code": provider_code}
        if details:
            full_details.update(details)
        super().__init__(message, code=PaymentCode.PROVIDER_REJECTION, error_type="ProviderRejection", details=full_details)
        self.status_code = status_code


class InvalidPaymentRequest(TerminalPaymentError):
    """Local validation of a payment request failed before any outbound call."""

    def __init__(self, message: str, *, field: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message, code=PaymentCode.INVALID_REQUEST, error_type="InvalidPaymentRequest", details=details)
        self.field = field


class PaymentDeclined(TerminalPaymentError):
    """The provider reported the payment as rejected or cancelled."""

    retryable = True

    def __init__(self, message: str, *, status: str, reason: Optional[str] = None):
        super().__init__(
            message,
            code=PaymentCode.PAYMENT_DECLINED,
            error_type="PaymentDeclined",
            details={"status": status, "reason": reason},
        )
        self.status = status
        self.reason = reason


class TimeoutExceeded(TerminalPaymentError):
    """Polling ceiling reached without a final status; the terminal may still be mid-transaction."""

    def __init__(self, timeout_seconds: float, *, last_status: Optional[str] = None):
        super().__init__(
            f"No final payment status after {timeout_seconds:g}s; the terminal may still be processing the payment",
            code=PaymentCode.TIMEOUT,
            error_type="TimeoutExceeded",
            details={"timeout_seconds": timeout_seconds, "last_status": last_status},
        )
        self.timeout_seconds = timeout_seconds
        self.last_status = last_status


class InvalidFlowTransition(BusinessException):
    def __init__(self, state: str, trigger: str):
        super().__init__(
            code=PaymentCode.INVALID_TRANSITION,
            message=f"Action '{trigger}' is not allowed in state '{state}'",
            error_type="InvalidFlowTransition",
            details={"state": state, "trigger": trigger},
        )
        self.state = state
        self.trigger = trigger


class FlowNotFound(BusinessException):
    def __init__(self, flow_id: str):
        super().__init__(
            code=PaymentCode.FLOW_NOT_FOUND,
            message=f"Payment flow not found: {flow_id}",
            error_type="FlowNotFound",
            details={"flow_id": flow_id},
        )


class FlowAlreadyOpen(BusinessException):
    def __init__(self, session_id: str, flow_id: str):
        super().__init__(
            code=PaymentCode.FLOW_ALREADY_OPEN,
            message=f"Session {session_id} already has an open payment flow",
            error_type="FlowAlreadyOpen",
            details={"session_id": session_id, "flow_id": flow_id},
        )
