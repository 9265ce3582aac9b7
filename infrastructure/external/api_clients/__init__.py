"""
API客户端模块

支付服务商 REST API 的凭证网关
"""
from .credentialed_gateway import CredentialedGateway, GatewayResponse

__all__ = [
    "CredentialedGateway",
    "GatewayResponse",
]
