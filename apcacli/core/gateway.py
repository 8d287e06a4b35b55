from __future__ import annotations

from typing import Protocol

from apcacli.core.account.ports import AccountPort
from apcacli.core.orders.ports import OrderPort
from apcacli.core.positions.ports import PositionsPort
from apcacli.core.stream.ports import UpdatesPort


class TradingGateway(OrderPort, PositionsPort, AccountPort, UpdatesPort, Protocol):
    """Everything the command dispatcher needs from the brokerage API.

    Operations raise ApiError subclasses on failure; the stream additionally
    raises StreamConnectionError while being iterated.
    """
