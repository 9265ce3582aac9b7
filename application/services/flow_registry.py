"""
In-memory registry of ephemeral payment flows.

At most one open flow per operator session. A closed flow stays readable
until its session opens the next one.
"""
from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Callable, Optional

from application.services.payment_flow import PaymentFlowController
from core.logging_config import get_logger
from domain.payment.exceptions import FlowAlreadyOpen, FlowNotFound


logger = get_logger(__name__)

ControllerFactory = Callable[..., PaymentFlowController]


class FlowRegistry:
    def __init__(self, factory: ControllerFactory) -> None:
        self._factory = factory
        self._flows: dict[str, PaymentFlowController] = {}
        self._by_session: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._flows)

    def open(
        self,
        session_id: str,
        *,
        order_id: str,
        amount: Decimal,
        description: Optional[str] = None,
    ) -> PaymentFlowController:
        current_id = self._by_session.get(session_id)
        if current_id is not None:
            current = self._flows.get(current_id)
            if current is not None and not current.is_closed:
                raise FlowAlreadyOpen(session_id, current_id)
            self._flows.pop(current_id, None)

        flow_id = uuid.uuid4().hex
        controller = self._factory(
            flow_id=flow_id,
            order_id=order_id,
            amount=amount,
            description=description,
        )
        self._flows[flow_id] = controller
        self._by_session[session_id] = flow_id
        logger.info("flow_opened", flow_id=flow_id, session_id=session_id, order_id=order_id, amount=str(amount))
        return controller

    def get(self, flow_id: str) -> PaymentFlowController:
        try:
            return self._flows[flow_id]
        except KeyError:
            raise FlowNotFound(flow_id) from None

    def for_session(self, session_id: str) -> Optional[PaymentFlowController]:
        flow_id = self._by_session.get(session_id)
        return self._flows.get(flow_id) if flow_id else None

    async def aclose(self) -> None:
        """Close every open flow (application shutdown)."""
        for controller in list(self._flows.values()):
            if not controller.is_closed:
                controller.cancel(reason="shutdown")
            await controller.wait()
        self._flows.clear()
        self._by_session.clear()
