"""Broker adapters for apcacli."""

from apcacli.adapters.broker.alpaca_account_port import AlpacaAccountPort
from apcacli.adapters.broker.alpaca_connection import AlpacaConfig, AlpacaConnection
from apcacli.adapters.broker.alpaca_gateway import AlpacaGateway
from apcacli.adapters.broker.alpaca_order_port import AlpacaOrderPort
from apcacli.adapters.broker.alpaca_positions_port import AlpacaPositionsPort
from apcacli.adapters.broker.alpaca_update_stream import AlpacaUpdateStream

__all__ = [
    "AlpacaAccountPort",
    "AlpacaConfig",
    "AlpacaConnection",
    "AlpacaGateway",
    "AlpacaOrderPort",
    "AlpacaPositionsPort",
    "AlpacaUpdateStream",
]
