from __future__ import annotations

from apcacli.adapters.broker._alpaca_payloads import decode, parse_account
from apcacli.adapters.broker.alpaca_connection import AlpacaConnection
from apcacli.core.account.models import Account
from apcacli.core.account.ports import AccountPort


class AlpacaAccountPort(AccountPort):
    def __init__(self, connection: AlpacaConnection) -> None:
        self._connection = connection

    async def get_account(self) -> Account:
        payload = await self._connection.request("GET", "/v2/account")
        return decode(parse_account, payload, "account")
