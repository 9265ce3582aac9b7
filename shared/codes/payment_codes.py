"""
Payment specific codes and provider status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    COMMUNICATION_ERROR = 60001
    CONFIGURATION_ERROR = 60002
    TIMEOUT = 60003
    RATE_LIMITED = 60004
    PROVIDER_REJECTION = 60005
    PAYMENT_DECLINED = 60006

    # Flow errors (61xxx)
    INVALID_REQUEST = 61000
    INVALID_TRANSITION = 61001
    FLOW_NOT_FOUND = 61002
    FLOW_ALREADY_OPEN = 61003


# Normalized intent statuses shared by every terminal API
STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
STATUS_CANCELED = "canceled"
STATUS_EXPIRED = "expired"


# Provider→internal status mapping. Statuses missing here are passed through
# unchanged and treated as unexpected by the poller.
PROVIDER_STATUS_TO_INTERNAL = {
    "point_intents": {
        # Per payment-intent `state`; FINISHED is qualified by payment.status
        "OPEN": STATUS_PENDING,
        "CREATED": STATUS_PENDING,
        "PENDING": STATUS_PENDING,
        "ON_TERMINAL": STATUS_PENDING,
        "PROCESSING": STATUS_PENDING,
        "FINISHED:approved": STATUS_APPROVED,
        "FINISHED:rejected": STATUS_REJECTED,
        "FINISHED": STATUS_CANCELED,
        "CANCELED": STATUS_CANCELED,
        "CANCELLED": STATUS_CANCELED,
        "ABANDONED": STATUS_CANCELED,
        "ERROR": STATUS_REJECTED,
        "EXPIRED": STATUS_EXPIRED,
    },
    "point_orders": {
        # Per order `status`
        "created": STATUS_PENDING,
        "at_terminal": STATUS_PENDING,
        "processing": STATUS_PENDING,
        "action_required": STATUS_PENDING,
        "processed": STATUS_APPROVED,
        "paid": STATUS_APPROVED,
        "failed": STATUS_REJECTED,
        "canceled": STATUS_CANCELED,
        "expired": STATUS_EXPIRED,
    },
}
