"""
Factory for terminal payment gateway clients.
"""
from __future__ import annotations

from typing import Optional

from core.settings import PaymentSettings, payment_settings
from application.ports.payment_gateway import TerminalPaymentGateway
from infrastructure.external.api_clients.credentialed_gateway import CredentialedGateway


def build_credentialed_gateway(settings: Optional[PaymentSettings] = None, **kwargs) -> CredentialedGateway:
    cfg = settings or payment_settings
    return CredentialedGateway(
        cfg.provider.base_url,
        cfg.provider.access_token,
        timeouts=cfg.provider.timeouts.model_dump(),
        passthrough_headers=cfg.proxy.passthrough_headers,
        **kwargs,
    )


def get_terminal_gateway(
    api: Optional[str] = None,
    gateway: Optional[CredentialedGateway] = None,
    settings: Optional[PaymentSettings] = None,
) -> TerminalPaymentGateway:
    cfg = settings or payment_settings
    name = (api or cfg.provider.api).lower()
    gateway = gateway or build_credentialed_gateway(cfg)
    retry = cfg.provider.retry.model_dump()
    if name in {"intents", "point_intents"}:
        from .point_intents_client import PointIntentsClient
        return PointIntentsClient(gateway, retry=retry)
    if name in {"orders", "point_orders"}:
        from .point_orders_client import PointOrdersClient
        return PointOrdersClient(
            gateway,
            retry=retry,
            expiration_time=cfg.orders.expiration_time,
            print_on_terminal=cfg.orders.print_on_terminal,
            description_prefix=cfg.orders.description_prefix,
        )
    raise ValueError(f"Unsupported terminal API: {name}")
