from __future__ import annotations

import asyncio
import os
import signal
import sys
from typing import Callable, Optional, Sequence

import click
from dotenv import load_dotenv
from loguru import logger

from apcacli.adapters.broker.alpaca_gateway import AlpacaGateway
from apcacli.cli.dispatcher import Dispatcher, RenderedOutput
from apcacli.core.commands import (
    CancelAllOrders,
    Command,
    GetAccount,
    ListPositions,
    StreamUpdates,
    build_cancel_order,
    build_get_order,
    build_get_position,
    build_list_orders,
    build_place_order,
)
from apcacli.core.errors import CommandFailed, ConfigError, DisplayError, ValidationError
from apcacli.core.gateway import TradingGateway

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_API = 2
EXIT_INTERRUPTED = 130

GatewayFactory = Callable[[], TradingGateway]

_VERBOSITY_LEVELS = ("WARNING", "INFO", "DEBUG", "TRACE")


def configure_logging(verbosity: int) -> str:
    level = os.getenv("LOG_LEVEL") or _VERBOSITY_LEVELS[min(max(verbosity, 0), len(_VERBOSITY_LEVELS) - 1)]
    logger.remove()
    logger.add(sys.stderr, level=level.upper())
    return level.upper()


@click.group()
@click.option("-v", "--verbose", count=True, help="Increase log verbosity (-v info, -vv debug, -vvv trace).")
@click.pass_context
def cli(ctx: click.Context, verbose: int) -> None:
    """Trade through the Alpaca brokerage API."""
    configure_logging(verbose)
    ctx.ensure_object(dict)


@cli.group()
def order() -> None:
    """Place, cancel and inspect orders."""


@order.command("place")
@click.option("--symbol", default=None, help="Ticker symbol.")
@click.option("--side", default=None, help="buy or sell.")
@click.option("--qty", default=None, help="Number of shares (fractional allowed).")
@click.option("--notional", default=None, help="Dollar amount to trade instead of a quantity.")
@click.option("--type", "order_type", default=None, help="market, limit, stop or stop-limit.")
@click.option("--limit-price", default=None, help="Limit price.")
@click.option("--stop-price", default=None, help="Stop price.")
@click.option("--tif", default=None, help="Time in force: day, gtc, opg, cls, ioc or fok.")
@click.option("--extended-hours", is_flag=True, default=False, help="Allow execution outside regular hours.")
@click.option("--client-id", default=None, help="Client order id (at most 48 characters).")
@click.pass_context
def order_place(
    ctx: click.Context,
    symbol: Optional[str],
    side: Optional[str],
    qty: Optional[str],
    notional: Optional[str],
    order_type: Optional[str],
    limit_price: Optional[str],
    stop_price: Optional[str],
    tif: Optional[str],
    extended_hours: bool,
    client_id: Optional[str],
) -> None:
    """Submit a new order."""
    command = _build(
        ctx,
        lambda: build_place_order(
            symbol=symbol,
            side=side,
            qty=qty,
            notional=notional,
            order_type=order_type,
            limit_price=limit_price,
            stop_price=stop_price,
            tif=tif,
            extended_hours=extended_hours,
            client_order_id=client_id,
        ),
    )
    _run(ctx, command)


@order.command("cancel")
@click.option("--id", "order_id", default=None, help="Order id to cancel.")
@click.pass_context
def order_cancel(ctx: click.Context, order_id: Optional[str]) -> None:
    """Cancel one open order."""
    _run(ctx, _build(ctx, lambda: build_cancel_order(order_id)))


@order.command("cancel-all")
@click.pass_context
def order_cancel_all(ctx: click.Context) -> None:
    """Cancel every open order."""
    _run(ctx, CancelAllOrders())


@order.command("get")
@click.option("--id", "reference", default=None, help="Order id or client order id.")
@click.pass_context
def order_get(ctx: click.Context, reference: Optional[str]) -> None:
    """Show one order."""
    _run(ctx, _build(ctx, lambda: build_get_order(reference)))


@order.command("list")
@click.option("--status", default=None, help="open (default), closed or all.")
@click.option("--limit", default=None, help="Maximum number of orders (1-500).")
@click.pass_context
def order_list(ctx: click.Context, status: Optional[str], limit: Optional[str]) -> None:
    """List orders sorted by symbol."""
    _run(ctx, _build(ctx, lambda: build_list_orders(status, limit)))


@cli.group()
def position() -> None:
    """Inspect open positions."""


@position.command("list")
@click.pass_context
def position_list(ctx: click.Context) -> None:
    """List open positions."""
    _run(ctx, ListPositions())


@position.command("get")
@click.option("--symbol", default=None, help="Ticker symbol.")
@click.pass_context
def position_get(ctx: click.Context, symbol: Optional[str]) -> None:
    """Show the position in one symbol."""
    _run(ctx, _build(ctx, lambda: build_get_position(symbol)))


@cli.group()
def account() -> None:
    """Inspect the trading account."""


@account.command("get")
@click.pass_context
def account_get(ctx: click.Context) -> None:
    """Show account balances and flags."""
    _run(ctx, GetAccount())


@cli.command()
@click.pass_context
def stream(ctx: click.Context) -> None:
    """Print trade and account updates until interrupted."""
    _run(ctx, StreamUpdates())


def _build(ctx: click.Context, build: Callable[[], Command]) -> Command:
    try:
        return build()
    except ValidationError as exc:
        for violation in exc.violations:
            click.echo(f"error: {violation}", err=True)
        ctx.exit(EXIT_USAGE)


def _run(ctx: click.Context, command: Command) -> None:
    factory: GatewayFactory = ctx.obj.get("gateway_factory") or AlpacaGateway.from_env
    try:
        gateway = factory()
    except ConfigError as exc:
        click.echo(f"error: {exc}", err=True)
        ctx.exit(EXIT_USAGE)
    dispatcher = Dispatcher(gateway, echo=click.echo)
    try:
        output = asyncio.run(_execute(dispatcher, command))
    except CommandFailed as exc:
        logger.debug("Command failed: {!r}", exc.error)
        click.echo(f"error: {exc}", err=True)
        ctx.exit(EXIT_API)
    except DisplayError as exc:
        logger.opt(exception=exc).error("Rendering failed")
        click.echo(f"error: {exc}", err=True)
        ctx.exit(EXIT_API)
    except KeyboardInterrupt:
        ctx.exit(EXIT_INTERRUPTED)
    finally:
        _close(gateway)
    for line in output.lines:
        click.echo(line)
    if output.interrupted:
        ctx.exit(EXIT_INTERRUPTED)


async def _execute(dispatcher: Dispatcher, command: Command) -> RenderedOutput:
    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    if isinstance(command, StreamUpdates):
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, dispatcher.stop)
            except (NotImplementedError, RuntimeError, ValueError):
                logger.debug("Cannot install a handler for {}; relying on KeyboardInterrupt", signum.name)
                continue
            installed.append(signum)
    try:
        return await dispatcher.execute(command)
    finally:
        for signum in installed:
            loop.remove_signal_handler(signum)


def _close(gateway: TradingGateway) -> None:
    close = getattr(gateway, "close", None)
    if close is not None:
        close()


def main(argv: Optional[Sequence[str]] = None, *, gateway_factory: Optional[GatewayFactory] = None) -> int:
    load_dotenv()
    try:
        result = cli.main(
            args=list(argv) if argv is not None else None,
            prog_name="apcacli",
            standalone_mode=False,
            obj={"gateway_factory": gateway_factory},
        )
    except click.exceptions.Abort:
        click.echo("Aborted!", err=True)
        return EXIT_INTERRUPTED
    except click.ClickException as exc:
        exc.show()
        return EXIT_USAGE
    if isinstance(result, int):
        return result
    return EXIT_OK


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
