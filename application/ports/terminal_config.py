"""
Terminal configuration port.

Which terminals are enabled (and any operator-chosen display names) is owned
by an external configuration collaborator; the directory only reads it.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class TerminalConfigSource(Protocol):
    async def get_enabled(self) -> dict[str, bool]: ...

    async def get_names(self) -> dict[str, str]: ...


__all__ = ["TerminalConfigSource"]
