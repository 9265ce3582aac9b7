"""
Terminal directory: which terminals may be offered to the operator.

Intersects the configuration collaborator's enabled map with the provider's
device listing. Results are read-only for the lifetime of a flow.
"""
from __future__ import annotations

from typing import Optional

from application.dtos.payments import ProviderDevice
from application.ports.payment_gateway import TerminalPaymentGateway
from application.ports.terminal_config import TerminalConfigSource
from core.logging_config import get_logger
from domain.payment.entity import OperatingMode, Terminal


logger = get_logger(__name__)

LOCATION_BY_MODE = {
    OperatingMode.PDV: "Punto de Venta",
    OperatingMode.STANDALONE: "Standalone",
}


def default_terminal_name(device_id: str) -> str:
    # Provider ids look like "<MODEL>__<SERIAL>"
    parts = device_id.split("__")
    return f"Terminal {parts[1]}" if len(parts) > 1 and parts[1] else f"Terminal {device_id}"


def _operating_mode(value: Optional[str]) -> Optional[OperatingMode]:
    try:
        return OperatingMode(value) if value else None
    except ValueError:
        return None


def to_terminal(device: ProviderDevice, *, name: Optional[str], enabled: bool) -> Terminal:
    mode = _operating_mode(device.operating_mode)
    return Terminal(
        id=device.id,
        name=name or default_terminal_name(device.id),
        location=LOCATION_BY_MODE.get(mode, "Standalone"),
        enabled=enabled,
        operating_mode=mode,
        store_id=device.store_id,
        pos_id=device.pos_id,
        external_id=device.external_pos_id,
    )


class TerminalDirectory:
    def __init__(
        self,
        gateway: TerminalPaymentGateway,
        config: TerminalConfigSource,
        *,
        enabled_by_default: bool = True,
    ) -> None:
        self._gateway = gateway
        self._config = config
        self._enabled_by_default = enabled_by_default

    def _is_enabled(self, device_id: str, enabled_map: dict[str, bool]) -> bool:
        flag = enabled_map.get(device_id)
        return self._enabled_by_default if flag is None else bool(flag)

    async def list_terminals(self) -> list[Terminal]:
        """All provider devices, each marked enabled or not."""
        devices = await self._gateway.list_devices()
        enabled_map = await self._config.get_enabled()
        names = await self._config.get_names()
        terminals = [
            to_terminal(d, name=names.get(d.id), enabled=self._is_enabled(d.id, enabled_map))
            for d in devices
        ]
        return sorted(terminals, key=lambda t: (t.name.lower(), t.id))

    async def list_enabled_terminals(self) -> list[Terminal]:
        """Enabled terminals only; an empty list is a valid result."""
        terminals = [t for t in await self.list_terminals() if t.enabled]
        logger.info("terminals_listed", count=len(terminals), ids=[t.id for t in terminals])
        return terminals
