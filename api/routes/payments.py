"""
Terminal payment API routes.

Thin layer over the flow registry and terminal directory: every handler
returns the flow's current view, so a client only ever needs the latest
response to render the screen.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from api.dependencies import (
    get_flow,
    get_flow_registry,
    get_terminal_directory,
    get_terminal_gateway,
)
from application.dtos.payments import (
    FlowCreate,
    OperatingModeUpdate,
    SelectTerminal,
    TerminalDTO,
)
from application.ports.payment_gateway import TerminalPaymentGateway
from application.services.flow_registry import FlowRegistry
from application.services.payment_flow import PaymentFlowController
from application.services.terminal_directory import TerminalDirectory
from core.logging_config import get_logger
from core.response import success_response
from domain.payment.entity import OperatingMode


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


@router.get("/terminals", summary="List enabled terminals")
async def list_terminals(directory: TerminalDirectory = Depends(get_terminal_directory)):
    terminals = await directory.list_enabled_terminals()
    return success_response(data=[TerminalDTO.from_entity(t).model_dump(mode="json") for t in terminals])


@router.patch("/terminals/{terminal_id}/operating-mode", summary="Switch a terminal's operating mode")
async def set_operating_mode(
    terminal_id: str,
    payload: OperatingModeUpdate,
    gateway: TerminalPaymentGateway = Depends(get_terminal_gateway),
):
    device = await gateway.set_operating_mode(terminal_id, OperatingMode(payload.mode))
    logger.info("terminal_operating_mode_updated", terminal_id=terminal_id, mode=payload.mode)
    return success_response(data=device.model_dump(mode="json"), message="Operating mode updated")


@router.post("/flows", summary="Open a payment flow")
async def open_flow(payload: FlowCreate, registry: FlowRegistry = Depends(get_flow_registry)):
    flow = registry.open(
        payload.session_id,
        order_id=payload.order_id,
        amount=payload.amount,
        description=payload.description,
    )
    await flow.load_terminals()
    return success_response(data=flow.view().model_dump(mode="json"), message="Payment flow opened")


@router.get("/flows/{flow_id}", summary="Current flow view")
async def get_flow_view(flow: PaymentFlowController = Depends(get_flow)):
    return success_response(data=flow.view().model_dump(mode="json"))


@router.post("/flows/{flow_id}/terminals/reload", summary="Reload terminals for a flow")
async def reload_terminals(flow: PaymentFlowController = Depends(get_flow)):
    await flow.load_terminals()
    return success_response(data=flow.view().model_dump(mode="json"))


@router.post("/flows/{flow_id}/select", summary="Select a terminal")
async def select_terminal(payload: SelectTerminal, flow: PaymentFlowController = Depends(get_flow)):
    flow.select_terminal(payload.terminal_id)
    return success_response(data=flow.view().model_dump(mode="json"))


@router.post("/flows/{flow_id}/{action}", summary="Perform an operator action")
async def perform_action(action: str, flow: PaymentFlowController = Depends(get_flow)):
    flow.perform(action)
    return success_response(data=flow.view().model_dump(mode="json"))
