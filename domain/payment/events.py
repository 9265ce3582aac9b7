"""
Payment flow domain events.

Dataclass events record the facts a flow reports upward (e.g. releasing a
table once the operator finalizes). Domain remains free of infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
import uuid


@dataclass
class FlowEvent:
    flow_id: str
    order_id: str
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class PaymentCollected(FlowEvent):
    terminal_id: str = ""
    amount: Decimal = Decimal("0")
    intent_id: Optional[str] = None
    payment_id: Optional[str] = None


@dataclass
class FlowDiscarded(FlowEvent):
    last_state: str = ""
    reason: Optional[str] = None
