"""
Terminal payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.types import condecimal

if TYPE_CHECKING:
    from domain.payment.entity import Terminal


class ProviderDevice(BaseModel):
    """A device as listed by the provider directory."""

    id: str
    pos_id: Optional[str] = None
    store_id: Optional[str] = None
    external_pos_id: Optional[str] = None
    operating_mode: Optional[str] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("pos_id", "store_id", mode="before")
    @classmethod
    def _stringify_ids(cls, v: Any) -> Optional[str]:
        # The provider returns numeric pos ids
        return None if v is None else str(v)


class TerminalDTO(BaseModel):
    id: str
    name: str
    location: str
    enabled: bool = True
    operating_mode: Optional[str] = None

    @classmethod
    def from_entity(cls, terminal: "Terminal") -> "TerminalDTO":
        return cls(
            id=terminal.id,
            name=terminal.name,
            location=terminal.location,
            enabled=terminal.enabled,
            operating_mode=terminal.operating_mode.value if terminal.operating_mode else None,
        )


class FlowCreate(BaseModel):
    order_id: str = Field(min_length=1)
    amount: condecimal(gt=0, decimal_places=2)  # type: ignore[valid-type]
    description: Optional[str] = None
    session_id: str = Field(default="default", min_length=1)


class SelectTerminal(BaseModel):
    terminal_id: str = Field(min_length=1)


class OperatingModeUpdate(BaseModel):
    mode: Literal["PDV", "STANDALONE"]


class OutcomeDTO(BaseModel):
    status: str
    payment_id: Optional[str] = None
    error_message: Optional[str] = None
    raw_status: Optional[str] = None


class FlowView(BaseModel):
    """What the UI renders; the latest view is always sufficient on its own."""

    flow_id: str
    state: str
    message: str
    order_id: str
    display_reference: str
    amount: Decimal
    terminals: list[TerminalDTO] = Field(default_factory=list)
    terminals_loaded: bool = False
    selected_terminal: Optional[TerminalDTO] = None
    attempt: int = 0
    intent_id: Optional[str] = None
    elapsed_seconds: float = 0.0
    remaining_seconds: float = 0.0
    raw_status: Optional[str] = None
    outcome: Optional[OutcomeDTO] = None
    error_type: Optional[str] = None
    available_actions: list[str] = Field(default_factory=list)
