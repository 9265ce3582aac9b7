"""Infrastructure adapter that implements the application TerminalConfigSource
from settings-held maps.

Persisted terminal configuration is owned elsewhere; this adapter serves the
snapshot loaded at startup and can be replaced by any object with the same
two coroutines.
"""
from __future__ import annotations

from typing import Mapping, Optional

from application.ports.terminal_config import TerminalConfigSource
from core.settings import TerminalSettings


class StaticTerminalConfig(TerminalConfigSource):
    def __init__(
        self,
        enabled: Optional[Mapping[str, bool]] = None,
        names: Optional[Mapping[str, str]] = None,
    ):
        self._enabled = dict(enabled or {})
        self._names = dict(names or {})

    @classmethod
    def from_settings(cls, cfg: TerminalSettings) -> "StaticTerminalConfig":
        return cls(enabled=cfg.enabled, names=cfg.names)

    async def get_enabled(self) -> dict[str, bool]:
        return dict(self._enabled)

    async def get_names(self) -> dict[str, str]:
        return dict(self._names)
