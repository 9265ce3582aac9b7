"""WebSocket route streaming a payment flow's view.

Server → client: {"type": "flow_view", "data": FlowView} whenever the visible
state changes. The latest message is always sufficient to render the screen.

Client → server (optional): {"action": "start"} and the other operator
actions; {"action": "select_terminal", "terminal_id": "..."} to pick a
terminal. Failures come back as {"type": "error", ...}.
"""
from __future__ import annotations

import asyncio
import contextlib
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Depends

from api.dependencies import get_flow_registry
from application.dtos.payments import FlowView
from application.services.flow_registry import FlowRegistry
from application.services.payment_flow import PaymentFlowController
from core.config import settings
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from domain.payment.exceptions import FlowNotFound
from shared.codes import BusinessCode


logger = get_logger(__name__)


router = APIRouter(prefix="/ws", tags=["WebSocket"])


async def _send_views(ws: WebSocket, queue: "asyncio.Queue[FlowView]") -> None:
    while True:
        view = await queue.get()
        await ws.send_json({"type": "flow_view", "data": view.model_dump(mode="json")})


async def _handle_message(flow: PaymentFlowController, msg: Any) -> None:
    if not isinstance(msg, dict) or not msg.get("action"):
        raise BusinessException(
            code=BusinessCode.PARAM_ERROR,
            message="Expected {\"action\": ...}",
            error_type="InvalidMessage",
        )
    action = str(msg["action"])
    if action == "select_terminal":
        flow.select_terminal(str(msg.get("terminal_id") or ""))
    elif action == "reload_terminals":
        await flow.load_terminals()
    else:
        flow.perform(action)


@router.websocket("/flows/{flow_id}")
async def flow_stream(
    ws: WebSocket,
    flow_id: str,
    registry: FlowRegistry = Depends(get_flow_registry),
) -> None:
    try:
        flow = registry.get(flow_id)
    except FlowNotFound:
        await ws.close(code=1008)
        return
    await ws.accept()

    # Bounded; when full the oldest view is dropped since only the latest matters
    queue: asyncio.Queue[FlowView] = asyncio.Queue(maxsize=max(1, settings.REALTIME_WS_SEND_QUEUE_MAX))

    def push(view: FlowView) -> None:
        if queue.full():
            queue.get_nowait()
        queue.put_nowait(view)

    # subscribe delivers the current view as the first frame
    unsubscribe = flow.subscribe(push)
    sender = asyncio.create_task(_send_views(ws, queue))
    logger.info("flow_stream_connected", flow_id=flow_id)
    try:
        while True:
            try:
                msg = await ws.receive_json()
            except ValueError:
                await ws.send_json({"type": "error", "error_type": "InvalidMessage", "message": "Invalid JSON"})
                continue
            try:
                await _handle_message(flow, msg)
            except BusinessException as exc:
                await ws.send_json({
                    "type": "error",
                    "code": int(exc.code),
                    "error_type": exc.error_type,
                    "message": exc.message,
                })
    except WebSocketDisconnect:
        logger.info("flow_stream_disconnected", flow_id=flow_id)
    finally:
        unsubscribe()
        sender.cancel()
        with contextlib.suppress(asyncio.CancelledError, WebSocketDisconnect):
            await sender
