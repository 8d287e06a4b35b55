"""Position domain types."""

from apcacli.core.positions.models import Position
from apcacli.core.positions.ports import PositionsPort

__all__ = [
    "Position",
    "PositionsPort",
]
