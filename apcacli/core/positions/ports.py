from __future__ import annotations

from typing import Protocol

from apcacli.core.positions.models import Position


class PositionsPort(Protocol):
    async def list_positions(self) -> list[Position]:
        """Return every open position of the account."""
        raise NotImplementedError

    async def get_position(self, symbol: str) -> Position:
        """Return the open position in `symbol`."""
        raise NotImplementedError
