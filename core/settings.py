"""
Terminal payment settings using pydantic-settings v2 with nested env keys.

Values are read once here and handed to the gateway, clients, poller and
flow controller at construction; none of them read this module directly.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class GatewayTimeouts(BaseModel):
    connect: float = 3.0
    read: float = 10.0
    write: float = 10.0
    total: float = 15.0


class GatewayRetry(BaseModel):
    # Applies to read-only provider calls; intent creation is never retried
    max: int = 2
    base_backoff: float = 0.5
    max_backoff: float = 10.0


class ProviderSettings(BaseModel):
    base_url: str = "https://api.mercadopago.com"
    access_token: Optional[str] = None
    api: Literal["intents", "orders"] = "intents"
    timeouts: GatewayTimeouts = Field(default_factory=GatewayTimeouts)
    retry: GatewayRetry = Field(default_factory=GatewayRetry)


class ProxySettings(BaseModel):
    prefix: str = "/api/mercadopago"
    passthrough_headers: list[str] = Field(default_factory=lambda: ["X-Idempotency-Key", "X-Request-Id"])


class PollingSettings(BaseModel):
    interval_seconds: float = 1.0
    timeout_seconds: float = 60.0
    # "error": an unrecognized status ends the attempt; "continue": keep polling
    unknown_status_policy: Literal["error", "continue"] = "error"


class TerminalSettings(BaseModel):
    enabled: dict[str, bool] = Field(default_factory=dict)
    names: dict[str, str] = Field(default_factory=dict)
    enabled_by_default: bool = True


class OrderSettings(BaseModel):
    expiration_time: str = "PT5M"  # ISO-8601 duration
    print_on_terminal: Literal["seller_ticket", "client_ticket", "both", "none"] = "seller_ticket"
    description_prefix: str = "Order"


class FlowSettings(BaseModel):
    cancel_intent_on_close: bool = True
    min_amount: Optional[Decimal] = None
    display_reference_length: int = 8


class PaymentSettings(BaseSettings):
    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    proxy: ProxySettings = Field(default_factory=ProxySettings)
    polling: PollingSettings = Field(default_factory=PollingSettings)
    terminals: TerminalSettings = Field(default_factory=TerminalSettings)
    orders: OrderSettings = Field(default_factory=OrderSettings)
    flow: FlowSettings = Field(default_factory=FlowSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
