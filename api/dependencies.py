"""
API依赖项 - 从 app.state 取出在 lifespan 中装配的组件
"""
from fastapi import Depends
from starlette.requests import HTTPConnection

from application.ports.payment_gateway import TerminalPaymentGateway
from application.services.flow_registry import FlowRegistry
from application.services.payment_flow import PaymentFlowController
from application.services.terminal_directory import TerminalDirectory
from infrastructure.external.api_clients.credentialed_gateway import CredentialedGateway


def _from_state(conn: HTTPConnection, name: str):
    component = getattr(conn.app.state, name, None)
    if component is None:
        raise RuntimeError(f"{name} not initialized. Ensure lifespan sets app.state.{name}.")
    return component


def get_credentialed_gateway(conn: HTTPConnection) -> CredentialedGateway:
    return _from_state(conn, "credentialed_gateway")


def get_terminal_gateway(conn: HTTPConnection) -> TerminalPaymentGateway:
    return _from_state(conn, "terminal_gateway")


def get_terminal_directory(conn: HTTPConnection) -> TerminalDirectory:
    return _from_state(conn, "terminal_directory")


def get_flow_registry(conn: HTTPConnection) -> FlowRegistry:
    return _from_state(conn, "flow_registry")


def get_flow(flow_id: str, registry: FlowRegistry = Depends(get_flow_registry)) -> PaymentFlowController:
    """按 flow_id 查找流程，不存在时抛出 FlowNotFound（404）"""
    return registry.get(flow_id)
