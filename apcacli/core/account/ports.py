from __future__ import annotations

from typing import Protocol

from apcacli.core.account.models import Account


class AccountPort(Protocol):
    async def get_account(self) -> Account:
        """Return a fresh snapshot of the trading account."""
        raise NotImplementedError
