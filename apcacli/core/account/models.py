from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional


class AccountStatus(str, Enum):
    ONBOARDING = "ONBOARDING"
    SUBMISSION_FAILED = "SUBMISSION_FAILED"
    SUBMITTED = "SUBMITTED"
    ACCOUNT_UPDATED = "ACCOUNT_UPDATED"
    APPROVAL_PENDING = "APPROVAL_PENDING"
    ACTIVE = "ACTIVE"
    REJECTED = "REJECTED"
    ACCOUNT_CLOSED = "ACCOUNT_CLOSED"
    INACTIVE = "INACTIVE"

    @property
    def label(self) -> str:
        return self.value.lower().replace("_", " ")


@dataclass(frozen=True)
class Account:
    account_id: str
    status: AccountStatus
    currency: str
    buying_power: Decimal
    cash: Decimal
    equity: Decimal
    account_number: Optional[str] = None
    withdrawable_cash: Optional[Decimal] = None
    portfolio_value: Optional[Decimal] = None
    pattern_day_trader: bool = False
    trading_blocked: bool = False
    transfers_blocked: bool = False
    account_blocked: bool = False
