from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class Position:
    symbol: str
    quantity: Decimal
    avg_entry_price: Decimal
    side: str = "long"
    market_value: Optional[Decimal] = None
    current_price: Optional[Decimal] = None
    cost_basis: Optional[Decimal] = None
    unrealized_pl: Optional[Decimal] = None
    unrealized_plpc: Optional[Decimal] = None
    asset_class: Optional[str] = None
    exchange: Optional[str] = None

    @property
    def is_short(self) -> bool:
        return self.quantity < 0
